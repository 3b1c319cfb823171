import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import select

import scheduler
from models import Category, RecurrenceFrequency, Transaction, TransactionType
from schemas import CategoryIn, RecurringTransactionIn
from services import CategoryService, RecurringTransactionService


@pytest.fixture
def manager(monkeypatch, session, clock):
    @contextmanager
    def scope():
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise

    monkeypatch.setattr(scheduler, "session_scope", scope)
    monkeypatch.setattr(
        scheduler,
        "RecurringTransactionService",
        lambda s: RecurringTransactionService(s, clock=clock),
    )
    return scheduler.SchedulerManager()


def _monthly(category_id, account_id, start_date):
    return RecurringTransactionIn(
        type=TransactionType.expense,
        amount=Decimal("-9.99"),
        description="Streaming",
        category_id=category_id,
        account_id=account_id,
        frequency=RecurrenceFrequency.monthly,
        start_date=start_date,
    )


def _category_id(session, name):
    return next(
        c.id
        for c in CategoryService(session).list_visible_to(TransactionType.expense)
        if c.name == name
    )


def test_backlog_catches_up_one_period_per_run(manager, session, account, clock):
    RecurringTransactionService(session, clock=clock).create(
        _monthly(
            _category_id(session, "Entertainment"), account.id, datetime(2023, 12, 10)
        )
    )

    assert [manager._run_job("test") for _ in range(4)] == [1, 1, 1, 0]

    posted = session.scalars(
        select(Transaction).order_by(Transaction.transaction_date)
    ).all()
    assert [t.transaction_date for t in posted] == [
        datetime(2024, 1, 10),
        datetime(2024, 2, 10),
        datetime(2024, 3, 10),
    ]


def test_failed_run_is_logged_not_raised(manager, session, account, clock, caplog):
    service = RecurringTransactionService(session, clock=clock)
    games = CategoryService(session).create(
        CategoryIn(name="Arcade", type=TransactionType.expense)
    )
    service.create(_monthly(games.id, account.id, datetime(2024, 1, 20)))
    session.get(Category, games.id).deleted_at = datetime(2024, 3, 1)
    session.commit()

    with caplog.at_level(logging.INFO, logger="scheduler"):
        assert manager._run_job("test") == 0

    assert "scheduler_run_failed: source=test" in caplog.text
    assert "Category not found" in caplog.text
    assert session.scalars(select(Transaction)).all() == []

