from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session, joinedload

from csv_utils import export_transactions, missing_columns, read_csv
from default_categories import (
    INCOMING_TRANSFER,
    OUTGOING_TRANSFER,
    ensure_defaults_seeded,
)
from errors import ForbiddenError, InvalidInputError, NotFoundError
from models import (
    Account,
    Category,
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from periods import Clock, TimePeriod, local_now, resolve_range_start, to_local_naive
from recurrence import RecurringEngine, calculate_next_due_date
from schemas import (
    AccountIn,
    AccountUpdate,
    CategoryIn,
    CategoryUpdate,
    CSVRow,
    RecurringTransactionIn,
    RecurringTransactionUpdate,
    TransactionIn,
    TransactionUpdate,
    TransferIn,
)


logger = logging.getLogger(__name__)

IMPORTED_DESCRIPTION = "Imported transaction"


def get_current_user_id() -> int:
    return 1


def amount_sign_error(txn_type: TransactionType, amount: Decimal) -> Optional[str]:
    if txn_type == TransactionType.income and amount <= 0:
        return "Amount must be positive for income transactions"
    if txn_type == TransactionType.expense and amount >= 0:
        return "Amount must be negative for expense transactions"
    return None


def _check_type_and_sign(
    txn_type: TransactionType, amount: Decimal, category: Category
) -> None:
    if category.type != txn_type:
        raise InvalidInputError("Category type must match transaction type")
    error = amount_sign_error(txn_type, amount)
    if error:
        raise InvalidInputError(error)


def _patch_fields(data, nullable: tuple[str, ...] = ()) -> dict[str, object]:
    return {
        key: value
        for key, value in data.model_dump(exclude_unset=True).items()
        if value is not None or key in nullable
    }


def _adjust_balance(session: Session, account_id: int, delta: Decimal) -> None:
    """Add ``delta`` to the stored balance in one UPDATE, never from a cached row."""
    session.execute(
        update(Account)
        .where(Account.id == account_id)
        .values(balance=Account.balance + delta)
        .execution_options(synchronize_session="fetch")
    )


def _format_validation_error(exc: ValidationError) -> str:
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err["loc"])
        message = err["msg"].removeprefix("Value error, ")
        messages.append(f"{location}: {message}" if location else message)
    return ", ".join(messages)


class AccountService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_by_user(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id, Account.deleted_at.is_(None))
            .order_by(Account.created_at.desc(), Account.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def find_by_id(self, account_id: int) -> Optional[Account]:
        return self.session.scalar(
            select(Account).where(
                Account.id == account_id,
                Account.user_id == self.user_id,
                Account.deleted_at.is_(None),
            )
        )

    def get(self, account_id: int) -> Account:
        account = self.find_by_id(account_id)
        if not account:
            raise NotFoundError("Account not found")
        return account

    def create(self, data: AccountIn) -> Account:
        account = Account(
            user_id=self.user_id,
            name=data.name.strip(),
            currency=data.currency,
            balance=data.balance,
            opening_balance=data.balance,
            description=data.description,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def update(self, account_id: int, data: AccountUpdate) -> Account:
        account = self.get(account_id)
        for key, value in _patch_fields(data, nullable=("description",)).items():
            setattr(account, key, value)
        self.session.commit()
        self.session.refresh(account)
        return account

    def remove(self, account_id: int) -> None:
        """Soft delete the account and everything that posts to it.

        Transfer legs on other accounts stay, unlinked from the removed leg.
        """
        account = self.get(account_id)
        deleted_at = datetime.utcnow()
        account.deleted_at = deleted_at
        account.is_active = False

        definitions = self.session.scalars(
            select(RecurringTransaction).where(
                RecurringTransaction.account_id == account.id,
                RecurringTransaction.deleted_at.is_(None),
            )
        ).all()
        for definition in definitions:
            definition.is_active = False
            definition.deleted_at = deleted_at

        transactions = self.session.scalars(
            select(Transaction).where(
                Transaction.account_id == account.id,
                Transaction.deleted_at.is_(None),
            )
        ).all()
        for txn in transactions:
            txn.deleted_at = deleted_at
            if txn.related_transaction_id:
                partner = self.session.get(Transaction, txn.related_transaction_id)
                if partner and partner.account_id != account.id:
                    partner.related_transaction_id = None
                txn.related_transaction_id = None

        self.session.commit()
        logger.info(
            f"account_removed: account_id={account.id} "
            f"transactions={len(transactions)} recurring={len(definitions)}"
        )

    def _transaction_total(self, account_id: int) -> Decimal:
        total = self.session.execute(
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                Transaction.account_id == account_id,
                Transaction.deleted_at.is_(None),
            )
        ).scalar_one()
        return Decimal(str(total))

    def update_balance(self, account_id: int, new_balance: Decimal) -> Account:
        """Set the balance explicitly; later transactions keep adjusting it."""
        account = self.get(account_id)
        account.opening_balance = new_balance - self._transaction_total(account.id)
        account.balance = new_balance
        self.session.commit()
        self.session.refresh(account)
        return account

    def recalculate_balance(self, account_id: int) -> Account:
        account = self.get(account_id)
        expected = Decimal(str(account.opening_balance)) + self._transaction_total(
            account.id
        )
        if expected != account.balance:
            logger.info(
                f"balance_recalculated: account_id={account.id} "
                f"stored={account.balance} calculated={expected}"
            )
        account.balance = expected
        self.session.commit()
        self.session.refresh(account)
        return account


class CategoryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def ensure_defaults_seeded(self) -> int:
        return ensure_defaults_seeded(self.session)

    def _visible(self):
        return select(Category).where(
            Category.deleted_at.is_(None),
            or_(Category.user_id == self.user_id, Category.is_default.is_(True)),
        )

    def find_by_id(self, category_id: int) -> Optional[Category]:
        return self.session.scalar(
            select(Category).where(
                Category.id == category_id, Category.deleted_at.is_(None)
            )
        )

    def list_visible_to(self, txn_type: Optional[TransactionType] = None) -> list[Category]:
        stmt = self._visible().order_by(Category.name, Category.id)
        if txn_type:
            stmt = stmt.where(Category.type == txn_type)
        return list(self.session.scalars(stmt).all())

    def get(self, category_id: int) -> Category:
        category = self.find_by_id(category_id)
        if not category:
            raise NotFoundError("Category not found")
        if not category.is_default and category.user_id != self.user_id:
            raise ForbiddenError("Access denied to this category")
        return category

    def find_default(self, name: str, txn_type: TransactionType) -> Optional[Category]:
        return self.session.scalar(
            select(Category)
            .where(
                Category.name == name,
                Category.type == txn_type,
                Category.is_default.is_(True),
                Category.deleted_at.is_(None),
            )
            .order_by(Category.id)
            .limit(1)
        )

    def _check_parent(self, parent_id: int, txn_type: TransactionType) -> Category:
        parent = self.get(parent_id)
        if parent.parent_id:
            raise InvalidInputError("Cannot create category under a child category")
        if parent.type != txn_type:
            raise InvalidInputError("Category type must match parent type")
        return parent

    def _has_children(self, category_id: int) -> bool:
        count = self.session.execute(
            select(func.count(Category.id)).where(
                Category.parent_id == category_id, Category.deleted_at.is_(None)
            )
        ).scalar_one()
        return count > 0

    def _has_transactions(self, category_id: int) -> bool:
        count = self.session.execute(
            select(func.count(Transaction.id)).where(
                Transaction.category_id == category_id,
                Transaction.deleted_at.is_(None),
            )
        ).scalar_one()
        return count > 0

    def _has_recurring(self, category_id: int) -> bool:
        count = self.session.execute(
            select(func.count(RecurringTransaction.id)).where(
                RecurringTransaction.category_id == category_id,
                RecurringTransaction.deleted_at.is_(None),
            )
        ).scalar_one()
        return count > 0

    def create(self, data: CategoryIn) -> Category:
        if data.parent_id:
            self._check_parent(data.parent_id, data.type)
        category = Category(
            name=data.name.strip(),
            type=data.type,
            is_default=False,
            user_id=self.user_id,
            parent_id=data.parent_id,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryUpdate) -> Category:
        category = self.get(category_id)
        if category.is_default:
            raise ForbiddenError("Cannot update default categories")
        patch = _patch_fields(data)
        new_type = patch.get("type", category.type)
        if new_type != category.type and (
            self._has_children(category.id) or self._has_transactions(category.id)
        ):
            raise InvalidInputError("Cannot change the type of a category in use")
        parent_id = patch.get("parent_id", category.parent_id)
        if parent_id:
            if parent_id == category.id:
                raise InvalidInputError("A category cannot be its own parent")
            if parent_id != category.parent_id and self._has_children(category.id):
                raise InvalidInputError("Cannot nest a category that has child categories")
            self._check_parent(parent_id, new_type)
        for key, value in patch.items():
            setattr(category, key, value.strip() if key == "name" else value)
        self.session.commit()
        self.session.refresh(category)
        return category

    def remove(self, category_id: int) -> None:
        category = self.get(category_id)
        if category.is_default:
            raise ForbiddenError("Cannot delete default categories")
        if self._has_children(category.id):
            raise InvalidInputError("Cannot delete category that has child categories")
        if self._has_transactions(category.id):
            raise InvalidInputError(
                "Cannot delete category that has associated transactions"
            )
        if self._has_recurring(category.id):
            raise InvalidInputError(
                "Cannot delete category that has associated recurring transactions"
            )
        category.deleted_at = datetime.utcnow()
        self.session.commit()


class TransactionService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.clock = clock or local_now

    def _require_account(self, account_id: int) -> Account:
        return AccountService(self.session, self.user_id).get(account_id)

    def _require_category(self, category_id: int) -> Category:
        return CategoryService(self.session, self.user_id).get(category_id)

    def add(
        self,
        data: TransactionIn,
        *,
        recurring_transaction_id: Optional[int] = None,
    ) -> Transaction:
        """Validate and stage a transaction in the session without committing."""
        account = self._require_account(data.account_id)
        category = self._require_category(data.category_id)
        _check_type_and_sign(data.type, data.amount, category)

        txn = Transaction(
            user_id=self.user_id,
            type=data.type,
            amount=data.amount,
            description=data.description,
            category_id=category.id,
            account_id=account.id,
            transaction_date=to_local_naive(data.transaction_date or self.clock()),
            recurring_transaction_id=recurring_transaction_id,
        )
        self.session.add(txn)
        self.session.flush()
        _adjust_balance(self.session, account.id, data.amount)
        return txn

    def create(self, data: TransactionIn) -> Transaction:
        txn = self.add(data)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def _listing(self, period: Optional[TimePeriod], offset: int):
        start = resolve_range_start(period, offset, now=self.clock())
        return (
            select(Transaction)
            .options(
                joinedload(Transaction.account), joinedload(Transaction.category)
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.deleted_at.is_(None),
                Transaction.account.has(Account.deleted_at.is_(None)),
                Transaction.transaction_date >= start,
            )
            .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
        )

    def find_all(
        self, period: Optional[TimePeriod] = None, offset: int = 0
    ) -> list[Transaction]:
        return list(self.session.scalars(self._listing(period, offset)).all())

    def find_by_account(
        self,
        account_id: int,
        period: Optional[TimePeriod] = None,
        offset: int = 0,
    ) -> list[Transaction]:
        account = self._require_account(account_id)
        stmt = self._listing(period, offset).where(
            Transaction.account_id == account.id
        )
        return list(self.session.scalars(stmt).all())

    def find_one(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(
                joinedload(Transaction.account), joinedload(Transaction.category)
            )
            .where(
                Transaction.id == transaction_id,
                Transaction.user_id == self.user_id,
                Transaction.deleted_at.is_(None),
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def _partner(self, txn: Transaction) -> Optional[Transaction]:
        if not txn.related_transaction_id:
            return None
        related = self.session.get(Transaction, txn.related_transaction_id)
        if related and related.user_id == self.user_id and related.deleted_at is None:
            return related
        return None

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        """Apply a patch; on a transfer leg the partner leg is kept mirrored."""
        txn = self.find_one(transaction_id)
        patch = _patch_fields(data)

        partner = self._partner(txn)
        if partner and any(
            key in patch and patch[key] != getattr(txn, key)
            for key in ("type", "account_id", "category_id")
        ):
            raise InvalidInputError(
                "Cannot change the type, account or category of a transfer leg"
            )

        old_account_id = txn.account_id
        old_amount = txn.amount
        account = (
            self._require_account(patch["account_id"])
            if "account_id" in patch
            else txn.account
        )
        category = (
            self._require_category(patch["category_id"])
            if "category_id" in patch
            else txn.category
        )
        final_type = patch.get("type", txn.type)
        final_amount = patch.get("amount", txn.amount)
        _check_type_and_sign(final_type, final_amount, category)

        for key, value in patch.items():
            if key == "transaction_date":
                value = to_local_naive(value)
            setattr(txn, key, value)
        _adjust_balance(self.session, old_account_id, -old_amount)
        _adjust_balance(self.session, account.id, final_amount)

        if partner:
            mirrored = -final_amount
            _adjust_balance(self.session, partner.account_id, mirrored - partner.amount)
            partner.amount = mirrored
            partner.description = txn.description
            partner.transaction_date = txn.transaction_date

        self.session.commit()
        self.session.refresh(txn)
        return txn

    def remove(self, transaction_id: int) -> None:
        """Soft delete a transaction; a transfer leg takes its partner with it."""
        txn = self.find_one(transaction_id)
        legs = [txn]
        partner = self._partner(txn)
        if partner:
            legs.append(partner)
        deleted_at = datetime.utcnow()
        for leg in legs:
            leg.deleted_at = deleted_at
            _adjust_balance(self.session, leg.account_id, -leg.amount)
        self.session.commit()


@dataclass
class TransferResult:
    source_transaction: Transaction
    destination_transaction: Transaction


class TransferService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.clock = clock or local_now

    def transfer(self, data: TransferIn) -> TransferResult:
        if data.source_account_id == data.destination_account_id:
            raise InvalidInputError(
                "Source and destination accounts cannot be the same"
            )
        if data.amount == 0:
            raise InvalidInputError("Transfer amount must not be zero")

        accounts = AccountService(self.session, self.user_id)
        source = accounts.find_by_id(data.source_account_id)
        if not source:
            raise NotFoundError("Source account not found")
        destination = accounts.find_by_id(data.destination_account_id)
        if not destination:
            raise NotFoundError("Destination account not found")

        categories = CategoryService(self.session, self.user_id)
        outgoing = categories.find_default(OUTGOING_TRANSFER, TransactionType.expense)
        if not outgoing:
            raise NotFoundError("Outgoing transfer category not found")
        incoming = categories.find_default(INCOMING_TRANSFER, TransactionType.income)
        if not incoming:
            raise NotFoundError("Incoming transfer category not found")

        magnitude = abs(data.amount)
        transaction_date = data.transaction_date or self.clock()
        txns = TransactionService(self.session, self.user_id, clock=self.clock)
        try:
            debit = txns.add(
                TransactionIn(
                    type=TransactionType.expense,
                    amount=-magnitude,
                    description=data.description,
                    category_id=outgoing.id,
                    account_id=source.id,
                    transaction_date=transaction_date,
                )
            )
            credit = txns.add(
                TransactionIn(
                    type=TransactionType.income,
                    amount=magnitude,
                    description=data.description,
                    category_id=incoming.id,
                    account_id=destination.id,
                    transaction_date=transaction_date,
                )
            )
            debit.related_transaction_id = credit.id
            credit.related_transaction_id = debit.id
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(debit)
        self.session.refresh(credit)
        logger.info(
            f"transfer_created: user_id={self.user_id} source={source.id} "
            f"destination={destination.id} amount={magnitude}"
        )
        return TransferResult(source_transaction=debit, destination_transaction=credit)


@dataclass
class ImportResult:
    imported: int = 0
    errors: list[str] = field(default_factory=list)


class CSVImportService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.clock = clock or local_now

    def _lookups(self) -> tuple[dict[str, Account], dict[str, Category]]:
        accounts: dict[str, Account] = {}
        for account in AccountService(self.session, self.user_id).list_by_user():
            accounts.setdefault(account.name, account)
        categories: dict[str, Category] = {}
        visible = CategoryService(self.session, self.user_id).list_visible_to()
        # A user's own category shadows a default with the same name.
        for category in sorted(visible, key=lambda c: (not c.is_default, c.id)):
            categories[category.name] = category
        return accounts, categories

    def _check_file(
        self,
        fieldnames: list[str],
        raw_rows: list[dict[str, str]],
        accounts: dict[str, Account],
        categories: dict[str, Category],
    ) -> None:
        if not raw_rows:
            raise InvalidInputError("CSV file is empty")
        missing = missing_columns(fieldnames)
        if missing:
            raise InvalidInputError(f"Missing required columns: {', '.join(missing)}")

        wallet_names = dict.fromkeys(
            row["Wallet"].strip() for row in raw_rows if row["Wallet"].strip()
        )
        category_names = dict.fromkeys(
            row["Category"].strip() for row in raw_rows if row["Category"].strip()
        )
        missing_accounts = [name for name in wallet_names if name not in accounts]
        missing_categories = [name for name in category_names if name not in categories]

        problems: list[str] = []
        if missing_accounts:
            problems.append(
                f"Missing accounts: {', '.join(missing_accounts)}. "
                "Please create these accounts first."
            )
        if missing_categories:
            problems.append(
                f"Missing categories: {', '.join(missing_categories)}. "
                "Please create these categories first."
            )
        if problems:
            raise InvalidInputError(" ".join(problems))

    def _validate_rows(
        self,
        raw_rows: list[dict[str, str]],
        accounts: dict[str, Account],
        categories: dict[str, Category],
    ) -> tuple[list[TransactionIn], list[str]]:
        staged: list[TransactionIn] = []
        errors: list[str] = []
        for row_number, raw in enumerate(raw_rows, start=2):
            try:
                row = CSVRow.model_validate(raw)
            except ValidationError as exc:
                errors.append(f"Row {row_number}: {_format_validation_error(exc)}")
                continue

            account = accounts.get(row.wallet)
            if not account:
                errors.append(f'Row {row_number}: Account "{row.wallet}" not found')
                continue
            category = categories.get(row.category)
            if not category:
                errors.append(f'Row {row_number}: Category "{row.category}" not found')
                continue
            if account.currency.upper() != row.currency.upper():
                errors.append(
                    f"Row {row_number}: Currency mismatch. Account uses "
                    f"{account.currency}, transaction uses {row.currency}"
                )
                continue
            if amount_sign_error(category.type, row.amount):
                expected = (
                    "positive" if category.type == TransactionType.income else "negative"
                )
                errors.append(
                    f"Row {row_number}: Amount should be {expected} for "
                    f"{category.type.value} transactions"
                )
                continue

            try:
                staged.append(
                    TransactionIn(
                        type=category.type,
                        amount=row.amount,
                        description=row.note or IMPORTED_DESCRIPTION,
                        category_id=category.id,
                        account_id=account.id,
                        transaction_date=row.date,
                    )
                )
            except ValidationError as exc:
                errors.append(f"Row {row_number}: {_format_validation_error(exc)}")
        return staged, errors

    def _stage(self, content: bytes) -> tuple[list[TransactionIn], list[str]]:
        fieldnames, raw_rows = read_csv(content)
        accounts, categories = self._lookups()
        self._check_file(fieldnames, raw_rows, accounts, categories)
        return self._validate_rows(raw_rows, accounts, categories)

    def preview(self, content: bytes) -> tuple[list[TransactionIn], list[str]]:
        return self._stage(content)

    def import_csv(self, content: bytes) -> ImportResult:
        """Import every row or none of them.

        File-level problems raise InvalidInputError; row-level problems are
        returned in the result with nothing written.
        """
        staged, errors = self._stage(content)
        if errors:
            logger.info(
                f"csv_import_rejected: user_id={self.user_id} errors={len(errors)}"
            )
            return ImportResult(imported=0, errors=errors)

        txns = TransactionService(self.session, self.user_id, clock=self.clock)
        try:
            for data in staged:
                txns.add(data)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info(f"csv_import_committed: user_id={self.user_id} rows={len(staged)}")
        return ImportResult(imported=len(staged), errors=[])

    def export(self, period: Optional[TimePeriod] = None, offset: int = 0) -> str:
        txns = TransactionService(self.session, self.user_id, clock=self.clock)
        return export_transactions(txns.find_all(period, offset))


class RecurringTransactionService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.clock = clock or local_now

    def _validate_refs(
        self,
        txn_type: TransactionType,
        amount: Decimal,
        account_id: int,
        category_id: int,
    ) -> None:
        AccountService(self.session, self.user_id).get(account_id)
        category = CategoryService(self.session, self.user_id).get(category_id)
        _check_type_and_sign(txn_type, amount, category)

    @staticmethod
    def _check_dates(start_date: datetime, end_date: Optional[datetime]) -> None:
        if end_date and end_date < start_date:
            raise InvalidInputError("End date must not be before start date")

    def create(self, data: RecurringTransactionIn) -> RecurringTransaction:
        self._validate_refs(data.type, data.amount, data.account_id, data.category_id)
        start_date = to_local_naive(data.start_date)
        end_date = to_local_naive(data.end_date) if data.end_date else None
        self._check_dates(start_date, end_date)
        definition = RecurringTransaction(
            user_id=self.user_id,
            type=data.type,
            amount=data.amount,
            description=data.description,
            category_id=data.category_id,
            account_id=data.account_id,
            frequency=data.frequency,
            start_date=start_date,
            end_date=end_date,
            next_due_date=calculate_next_due_date(
                start_date, data.frequency, anchor_day=start_date.day
            ),
            is_active=data.is_active,
        )
        self.session.add(definition)
        self.session.commit()
        self.session.refresh(definition)
        return definition

    def list(self) -> list[RecurringTransaction]:
        stmt = (
            select(RecurringTransaction)
            .options(
                joinedload(RecurringTransaction.category),
                joinedload(RecurringTransaction.account),
            )
            .where(
                RecurringTransaction.user_id == self.user_id,
                RecurringTransaction.deleted_at.is_(None),
            )
            .order_by(RecurringTransaction.next_due_date, RecurringTransaction.id)
        )
        return list(self.session.scalars(stmt).all())

    def find_one(self, definition_id: int) -> RecurringTransaction:
        definition = self.session.get(RecurringTransaction, definition_id)
        if (
            not definition
            or definition.user_id != self.user_id
            or definition.deleted_at is not None
        ):
            raise NotFoundError("Recurring transaction not found")
        return definition

    def update(
        self, definition_id: int, data: RecurringTransactionUpdate
    ) -> RecurringTransaction:
        definition = self.find_one(definition_id)
        patch = _patch_fields(data, nullable=("end_date",))
        for key in ("start_date", "end_date"):
            if patch.get(key):
                patch[key] = to_local_naive(patch[key])

        self._validate_refs(
            patch.get("type", definition.type),
            patch.get("amount", definition.amount),
            patch.get("account_id", definition.account_id),
            patch.get("category_id", definition.category_id),
        )
        self._check_dates(
            patch.get("start_date", definition.start_date),
            patch.get("end_date", definition.end_date),
        )

        for key, value in patch.items():
            setattr(definition, key, value)
        if "frequency" in patch or "start_date" in patch:
            definition.next_due_date = calculate_next_due_date(
                definition.start_date,
                definition.frequency,
                anchor_day=definition.start_date.day,
            )
        self.session.commit()
        self.session.refresh(definition)
        return definition

    def set_active(self, definition_id: int, is_active: bool) -> RecurringTransaction:
        definition = self.find_one(definition_id)
        definition.is_active = is_active
        self.session.commit()
        self.session.refresh(definition)
        return definition

    def remove(self, definition_id: int) -> None:
        definition = self.find_one(definition_id)
        definition.deleted_at = datetime.utcnow()
        self.session.commit()

    def process_due_recurring_transactions(self) -> int:
        engine = RecurringEngine(self.session, clock=self.clock)
        return engine.process_due()
