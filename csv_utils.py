import csv
import re
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from io import StringIO
from typing import Sequence

from errors import InvalidInputError
from models import Transaction
from periods import to_local_naive


REQUIRED_COLUMNS = ("Date", "Category", "Amount", "Currency", "Wallet")
EXPORT_COLUMNS = ("Id", "Date", "Category", "Amount", "Currency", "Note", "Wallet")

_AMOUNT_NOISE = re.compile(r"[^\d.-]")


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def parse_date(value: str) -> datetime:
    value = value.strip()
    # fromisoformat only accepts the "Z" suffix from Python 3.11 on.
    if value[-1:] in ("Z", "z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise ValueError("Date must be an ISO 8601 date") from exc
    return to_local_naive(parsed)


def parse_amount(value: str) -> Decimal:
    # Currency symbols and thousands separators go, the sign stays.
    clean = _AMOUNT_NOISE.sub("", value)
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Amount must be a number") from exc
    if not amount.is_finite():
        raise ValueError("Amount must be a number")
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def read_csv(content: bytes) -> tuple[list[str], list[dict[str, str]]]:
    """Decode an uploaded file into its header names and raw rows."""
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise InvalidInputError("CSV file must be UTF-8 encoded") from exc
    reader = csv.DictReader(StringIO(text))
    rows: list[dict[str, str]] = []
    try:
        fieldnames = [(name or "").strip() for name in (reader.fieldnames or [])]
        reader.fieldnames = fieldnames
        for raw in reader:
            if not any((value or "").strip() for key, value in raw.items() if key):
                continue
            rows.append({key: (value or "") for key, value in raw.items() if key})
    except csv.Error as exc:
        raise InvalidInputError(f"CSV parsing error: {exc}") from exc
    return fieldnames, rows


def missing_columns(fieldnames: Sequence[str]) -> list[str]:
    present = set(fieldnames)
    return [column for column in REQUIRED_COLUMNS if column not in present]


def export_transactions(transactions: Sequence[Transaction]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_COLUMNS)
    for txn in transactions:
        writer.writerow(
            [
                str(txn.id),
                txn.transaction_date.isoformat(),
                sanitize_csv_value(txn.category.name if txn.category else ""),
                f"{txn.amount:.2f}",
                txn.account.currency if txn.account else "",
                sanitize_csv_value(txn.description or ""),
                sanitize_csv_value(txn.account.name if txn.account else ""),
            ]
        )
    return output.getvalue()
