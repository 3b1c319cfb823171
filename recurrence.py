import logging
from datetime import date, datetime, timedelta
from typing import Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import RecurrenceFrequency, RecurringTransaction
from periods import Clock, local_now


logger = logging.getLogger(__name__)

D = TypeVar("D", date, datetime)

AUTO_GENERATED_SUFFIX = " (Auto-generated)"


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def _add_months(base: D, months: int, *, desired_day: int) -> D:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    # Clamp to the month's last day when the desired day does not exist.
    day = min(desired_day, days_in_month(year, month))
    return base.replace(year=year, month=month, day=day)


def calculate_next_due_date(
    from_date: D,
    frequency: RecurrenceFrequency,
    *,
    anchor_day: Optional[int] = None,
) -> D:
    """One period after ``from_date``.

    Monthly and yearly steps clamp to the end of shorter months
    (2024-01-31 -> 2024-02-29). ``anchor_day`` is the day of month the
    schedule was started on; it is restored whenever the target month is long
    enough, so a clamped date does not drift for the rest of the schedule.
    """
    frequency = RecurrenceFrequency(frequency)
    if frequency == RecurrenceFrequency.daily:
        return from_date + timedelta(days=1)
    if frequency == RecurrenceFrequency.weekly:
        return from_date + timedelta(weeks=1)
    desired_day = anchor_day or from_date.day
    if frequency == RecurrenceFrequency.monthly:
        return _add_months(from_date, 1, desired_day=desired_day)
    return _add_months(from_date, 12, desired_day=desired_day)


def should_create_transaction(
    definition: RecurringTransaction, current: datetime
) -> bool:
    if not definition.is_active or definition.deleted_at is not None:
        return False
    if definition.end_date and current > definition.end_date:
        return False
    return bool(definition.next_due_date and current >= definition.next_due_date)


class RecurringEngine:
    def __init__(self, session: Session, clock: Optional[Clock] = None) -> None:
        self.session = session
        self.clock = clock or local_now

    def due_definitions(self, now: datetime) -> list[RecurringTransaction]:
        stmt = (
            select(RecurringTransaction)
            .where(
                RecurringTransaction.is_active.is_(True),
                RecurringTransaction.deleted_at.is_(None),
                RecurringTransaction.next_due_date.is_not(None),
                RecurringTransaction.next_due_date <= now,
            )
            .order_by(RecurringTransaction.next_due_date, RecurringTransaction.id)
        )
        return list(self.session.scalars(stmt).all())

    def process_due(self) -> int:
        """Materialize at most one occurrence per due definition.

        Each definition is committed on its own. An error stops the batch and
        propagates; definitions handled before it keep their new due date.
        """
        now = self.clock()
        processed = 0
        for definition in self.due_definitions(now):
            if not should_create_transaction(definition, now):
                continue
            try:
                self._post_occurrence(definition)
                definition.next_due_date = calculate_next_due_date(
                    definition.next_due_date,
                    definition.frequency,
                    anchor_day=definition.start_date.day,
                )
                self.session.commit()
            except Exception:
                self.session.rollback()
                raise
            processed += 1
            logger.info(
                f"recurring_posted: definition_id={definition.id} "
                f"next_due_date={definition.next_due_date.isoformat()}"
            )
        return processed

    def _post_occurrence(self, definition: RecurringTransaction) -> None:
        from schemas import TransactionIn
        from services import TransactionService

        data = TransactionIn(
            type=definition.type,
            amount=definition.amount,
            description=f"{definition.description}{AUTO_GENERATED_SUFFIX}",
            category_id=definition.category_id,
            account_id=definition.account_id,
            transaction_date=definition.next_due_date,
        )
        service = TransactionService(self.session, definition.user_id, clock=self.clock)
        service.add(data, recurring_transaction_id=definition.id)
