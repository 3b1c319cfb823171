import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from models import Category, TransactionType


logger = logging.getLogger(__name__)

OUTGOING_TRANSFER = "Outgoing transfer"
INCOMING_TRANSFER = "Incoming transfer"

DEFAULT_CATEGORIES: list[tuple[str, TransactionType, list[str]]] = [
    (
        "Food & Beverage",
        TransactionType.expense,
        ["Café", "Restaurant", "Bread and Noodles"],
    ),
    (
        "Bills & Utilities",
        TransactionType.expense,
        ["Phone bill", "Television Bill", "Internet Bill", "Piggy bank"],
    ),
    (
        "Transportation",
        TransactionType.expense,
        ["Vehicle maintenance", "Parking fees", "Petrol", "Taxi"],
    ),
    (
        "Shopping",
        TransactionType.expense,
        ["Electronic devices", "Makeup", "Clothing", "Footwear", "Apps"],
    ),
    ("Family", TransactionType.expense, []),
    (
        "Health & Fitness",
        TransactionType.expense,
        ["Fitness", "Doctor", "Personal care", "Pharmacy", "Sports", "Barber"],
    ),
    ("Education", TransactionType.expense, ["Books"]),
    (
        "Entertainment",
        TransactionType.expense,
        ["Streaming service", "Games", "Movies", "Musics"],
    ),
    (
        "Gift & Donation",
        TransactionType.expense,
        ["Friends & Lover", "Funeral", "Marriage", "Lucky money"],
    ),
    ("Insurances", TransactionType.expense, []),
    ("Other expense", TransactionType.expense, []),
    (OUTGOING_TRANSFER, TransactionType.expense, []),
    ("Travel", TransactionType.expense, ["Hotel"]),
    ("Salary", TransactionType.income, []),
    (INCOMING_TRANSFER, TransactionType.income, []),
    ("Collect interest", TransactionType.income, []),
    ("Gifts", TransactionType.income, []),
    ("Award", TransactionType.income, []),
    ("Selling", TransactionType.income, []),
]


def ensure_defaults_seeded(session: Session) -> int:
    """Insert the global default categories unless any default already exists.

    Returns the number of categories created (0 when already seeded).
    """
    existing = session.execute(
        select(func.count(Category.id)).where(Category.is_default.is_(True))
    ).scalar_one()
    if existing:
        return 0

    created = 0
    for name, txn_type, children in DEFAULT_CATEGORIES:
        parent = Category(name=name, type=txn_type, is_default=True, user_id=None)
        session.add(parent)
        session.flush()
        created += 1
        for child_name in children:
            session.add(
                Category(
                    name=child_name,
                    type=txn_type,
                    is_default=True,
                    user_id=None,
                    parent_id=parent.id,
                )
            )
            created += 1
    session.commit()
    logger.info(f"default_categories_seeded: count={created}")
    return created
