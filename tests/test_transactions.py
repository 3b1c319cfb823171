from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from database import Base, create_db_engine
from default_categories import ensure_defaults_seeded
from errors import ForbiddenError, InvalidInputError, NotFoundError
from models import Account, Category, TransactionType
from periods import TimePeriod
from schemas import AccountIn, TransactionIn, TransactionUpdate, TransferIn
from services import (
    AccountService,
    CategoryService,
    TransactionService,
    TransferService,
)


def _category(session, name, txn_type):
    return next(
        c
        for c in CategoryService(session).list_visible_to(txn_type)
        if c.name == name
    )


def _txn(category, account, amount, **overrides):
    data = dict(
        type=category.type,
        amount=Decimal(amount),
        description="Entry",
        category_id=category.id,
        account_id=account.id,
    )
    data.update(overrides)
    return TransactionIn(**data)


def test_income_then_expense_scenario(session, account, clock):
    service = TransactionService(session, clock=clock)
    salary = _category(session, "Salary", TransactionType.income)
    food = _category(session, "Food & Beverage", TransactionType.expense)

    income = service.create(_txn(salary, account, "500"))
    expense = service.create(
        _txn(food, account, "-50", transaction_date=datetime(2024, 3, 15, 13, 0))
    )

    listed = service.find_all(TimePeriod.month, 0)
    assert [t.id for t in listed] == [expense.id, income.id]
    assert listed[0].category.name == "Food & Beverage"
    assert listed[0].account.name == "Cash"

    session.refresh(account)
    assert account.balance == Decimal("450.00")


def test_transaction_date_defaults_to_clock(session, account, clock):
    salary = _category(session, "Salary", TransactionType.income)
    txn = TransactionService(session, clock=clock).create(_txn(salary, account, "10"))
    assert txn.transaction_date == datetime(2024, 3, 15, 12, 0)


@pytest.mark.parametrize(
    "name, txn_type, amount, message",
    [
        ("Salary", TransactionType.income, "-10", "positive for income"),
        ("Salary", TransactionType.income, "0", "positive for income"),
        ("Food & Beverage", TransactionType.expense, "10", "negative for expense"),
        ("Food & Beverage", TransactionType.expense, "0", "negative for expense"),
    ],
)
def test_amount_sign_must_match_type(session, account, clock, name, txn_type, amount, message):
    category = _category(session, name, txn_type)
    with pytest.raises(InvalidInputError, match=message):
        TransactionService(session, clock=clock).create(_txn(category, account, amount))


def test_category_type_must_match(session, account, clock):
    salary = _category(session, "Salary", TransactionType.income)
    with pytest.raises(InvalidInputError, match="Category type must match"):
        TransactionService(session, clock=clock).create(
            _txn(salary, account, "-10", type=TransactionType.expense)
        )


def test_foreign_account_is_not_found(session, account, clock):
    salary = _category(session, "Salary", TransactionType.income)
    with pytest.raises(NotFoundError, match="Account not found"):
        TransactionService(session, user_id=2, clock=clock).create(
            _txn(salary, account, "10")
        )


def test_foreign_category_is_forbidden(session, account, clock):
    other = Category(name="Side gig", type=TransactionType.income, user_id=2)
    session.add(other)
    session.commit()
    with pytest.raises(ForbiddenError, match="Access denied to this category"):
        TransactionService(session, clock=clock).create(_txn(other, account, "10"))


def test_missing_category_is_not_found(session, account, clock):
    with pytest.raises(NotFoundError, match="Category not found"):
        TransactionService(session, clock=clock).create(
            TransactionIn(
                type=TransactionType.income,
                amount=Decimal("10"),
                description="Entry",
                category_id=9999,
                account_id=account.id,
            )
        )


def test_find_all_respects_period_start(session, account, clock):
    service = TransactionService(session, clock=clock)
    salary = _category(session, "Salary", TransactionType.income)
    service.create(_txn(salary, account, "100", transaction_date=datetime(2024, 2, 28)))
    march = service.create(_txn(salary, account, "100"))

    assert [t.id for t in service.find_all(TimePeriod.month, 0)] == [march.id]
    assert len(service.find_all(TimePeriod.month, -1)) == 2


def test_find_by_account_filters_and_checks_owner(session, account, clock):
    service = TransactionService(session, clock=clock)
    other = AccountService(session).create(AccountIn(name="Bank", currency="USD"))
    salary = _category(session, "Salary", TransactionType.income)
    service.create(_txn(salary, account, "100"))
    in_bank = service.create(_txn(salary, other, "200"))

    assert [t.id for t in service.find_by_account(other.id)] == [in_bank.id]
    with pytest.raises(NotFoundError):
        TransactionService(session, user_id=2, clock=clock).find_by_account(other.id)


def test_update_validates_merged_state(session, account, clock):
    service = TransactionService(session, clock=clock)
    food = _category(session, "Food & Beverage", TransactionType.expense)
    salary = _category(session, "Salary", TransactionType.income)
    txn = service.create(_txn(food, account, "-20"))

    with pytest.raises(InvalidInputError, match="negative for expense"):
        service.update(txn.id, TransactionUpdate(amount=Decimal("20")))
    with pytest.raises(InvalidInputError, match="Category type must match"):
        service.update(txn.id, TransactionUpdate(category_id=salary.id))

    updated = service.update(
        txn.id,
        TransactionUpdate(
            type=TransactionType.income, category_id=salary.id, amount=Decimal("20")
        ),
    )
    assert updated.type == TransactionType.income
    session.refresh(account)
    assert account.balance == Decimal("20.00")


def test_update_moves_balance_between_accounts(session, account, clock):
    service = TransactionService(session, clock=clock)
    bank = AccountService(session).create(AccountIn(name="Bank", currency="USD"))
    food = _category(session, "Food & Beverage", TransactionType.expense)
    txn = service.create(_txn(food, account, "-30"))

    service.update(txn.id, TransactionUpdate(account_id=bank.id))

    assert session.get(Account, account.id).balance == Decimal("0.00")
    assert session.get(Account, bank.id).balance == Decimal("-30.00")


def test_remove_soft_deletes_and_reverts_balance(session, account, clock):
    service = TransactionService(session, clock=clock)
    salary = _category(session, "Salary", TransactionType.income)
    txn = service.create(_txn(salary, account, "75"))

    service.remove(txn.id)

    with pytest.raises(NotFoundError, match="Transaction not found"):
        service.find_one(txn.id)
    assert service.find_all() == []
    session.refresh(account)
    assert account.balance == Decimal("0.00")


def test_find_one_is_owner_scoped(session, account, clock):
    salary = _category(session, "Salary", TransactionType.income)
    txn = TransactionService(session, clock=clock).create(_txn(salary, account, "5"))
    with pytest.raises(NotFoundError):
        TransactionService(session, user_id=2, clock=clock).find_one(txn.id)


def test_balance_correction_and_recalculation(session, account, clock):
    salary = _category(session, "Salary", TransactionType.income)
    TransactionService(session, clock=clock).create(_txn(salary, account, "100"))
    accounts = AccountService(session)

    corrected = accounts.update_balance(account.id, Decimal("250"))
    assert corrected.balance == Decimal("250")
    assert corrected.opening_balance == Decimal("150")

    corrected.balance = Decimal("1")
    session.commit()
    assert accounts.recalculate_balance(account.id).balance == Decimal("250.00")


def test_balance_survives_interleaved_sessions(tmp_path, clock):
    eng = create_db_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(eng)
    with Session(eng) as setup:
        ensure_defaults_seeded(setup)
        account_id = AccountService(setup).create(
            AccountIn(name="Cash", currency="USD")
        ).id
        salary = _category(setup, "Salary", TransactionType.income)
        salary_id = salary.id

    def income(amount):
        return TransactionIn(
            type=TransactionType.income,
            amount=Decimal(amount),
            description="Entry",
            category_id=salary_id,
            account_id=account_id,
        )

    with Session(eng) as first, Session(eng) as second:
        held = AccountService(first).get(account_id)
        assert held.balance == Decimal("0.00")
        TransactionService(second, clock=clock).create(income("10"))
        TransactionService(first, clock=clock).create(income("5"))

    with Session(eng) as check:
        assert check.get(Account, account_id).balance == Decimal("15.00")
    eng.dispose()


def test_removing_account_hides_its_transactions(session, account, clock):
    bank = AccountService(session).create(
        AccountIn(name="Bank", currency="USD", balance=Decimal("100"))
    )
    salary = _category(session, "Salary", TransactionType.income)
    service = TransactionService(session, clock=clock)
    service.create(_txn(salary, bank, "20"))
    result = TransferService(session, clock=clock).transfer(
        TransferIn(
            source_account_id=bank.id,
            destination_account_id=account.id,
            amount=Decimal("30"),
            description="Top up",
        )
    )

    AccountService(session).remove(bank.id)

    remaining = service.find_all()
    assert [t.id for t in remaining] == [result.destination_transaction.id]
    assert remaining[0].related_transaction_id is None
    assert session.get(Account, account.id).balance == Decimal("30.00")
