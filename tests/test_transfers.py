from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import select

from errors import InvalidInputError, NotFoundError
from models import Account, Category, Transaction, TransactionType
from schemas import AccountIn, TransactionUpdate, TransferIn
from services import AccountService, TransactionService, TransferService


@pytest.fixture
def bank(session):
    return AccountService(session).create(
        AccountIn(name="Bank", currency="EUR", balance=Decimal("100"))
    )


def _transfer(source_id, destination_id, amount="40", **overrides):
    data = dict(
        source_account_id=source_id,
        destination_account_id=destination_id,
        amount=Decimal(amount),
        description="Savings",
    )
    data.update(overrides)
    return TransferIn(**data)


def test_transfer_creates_two_linked_legs(session, account, bank, clock):
    result = TransferService(session, clock=clock).transfer(
        _transfer(bank.id, account.id, transaction_date=datetime(2024, 3, 1, 9, 0))
    )
    debit = result.source_transaction
    credit = result.destination_transaction

    assert debit.type == TransactionType.expense
    assert debit.amount == Decimal("-40.00")
    assert debit.account_id == bank.id
    assert debit.category.name == "Outgoing transfer"
    assert credit.type == TransactionType.income
    assert credit.amount == Decimal("40.00")
    assert credit.account_id == account.id
    assert credit.category.name == "Incoming transfer"

    assert debit.related_transaction_id == credit.id
    assert credit.related_transaction_id == debit.id
    assert debit.description == credit.description == "Savings"
    assert debit.transaction_date == credit.transaction_date == datetime(2024, 3, 1, 9, 0)

    assert session.get(Account, bank.id).balance == Decimal("60.00")
    assert session.get(Account, account.id).balance == Decimal("40.00")


def test_negative_amount_uses_magnitude(session, account, bank, clock):
    result = TransferService(session, clock=clock).transfer(
        _transfer(bank.id, account.id, amount="-15")
    )
    assert result.source_transaction.amount == Decimal("-15.00")
    assert result.destination_transaction.amount == Decimal("15.00")
    assert result.source_transaction.transaction_date == datetime(2024, 3, 15, 12, 0)


@pytest.mark.parametrize("amount", ["40", "0", "-5"])
def test_same_account_rejected_for_any_amount(session, account, clock, amount):
    with pytest.raises(InvalidInputError, match="cannot be the same"):
        TransferService(session, clock=clock).transfer(
            _transfer(account.id, account.id, amount=amount)
        )


def test_zero_amount_rejected(session, account, bank, clock):
    with pytest.raises(InvalidInputError, match="must not be zero"):
        TransferService(session, clock=clock).transfer(
            _transfer(bank.id, account.id, amount="0")
        )


def test_missing_accounts_reported_by_side(session, account, clock):
    service = TransferService(session, clock=clock)
    with pytest.raises(NotFoundError, match="Source account not found"):
        service.transfer(_transfer(999, account.id))
    with pytest.raises(NotFoundError, match="Destination account not found"):
        service.transfer(_transfer(account.id, 999))


def test_missing_transfer_category_writes_nothing(session, account, bank, clock):
    incoming = session.scalar(
        select(Category).where(Category.name == "Incoming transfer")
    )
    incoming.deleted_at = datetime(2024, 1, 1)
    session.commit()

    with pytest.raises(NotFoundError, match="Incoming transfer category not found"):
        TransferService(session, clock=clock).transfer(_transfer(bank.id, account.id))
    assert session.scalars(select(Transaction)).all() == []


def test_removing_one_leg_removes_both(session, account, bank, clock):
    result = TransferService(session, clock=clock).transfer(
        _transfer(bank.id, account.id)
    )
    service = TransactionService(session, clock=clock)

    service.remove(result.destination_transaction.id)

    assert service.find_all() == []
    assert session.get(Account, bank.id).balance == Decimal("100.00")
    assert session.get(Account, account.id).balance == Decimal("0.00")


def test_amount_change_is_mirrored_on_partner(session, account, bank, clock):
    result = TransferService(session, clock=clock).transfer(
        _transfer(bank.id, account.id)
    )
    service = TransactionService(session, clock=clock)

    service.update(
        result.source_transaction.id,
        TransactionUpdate(amount=Decimal("-25"), description="Less savings"),
    )

    credit = service.find_one(result.destination_transaction.id)
    assert credit.amount == Decimal("25.00")
    assert credit.description == "Less savings"
    assert session.get(Account, bank.id).balance == Decimal("75.00")
    assert session.get(Account, account.id).balance == Decimal("25.00")


def test_transfer_leg_cannot_move_account(session, account, bank, clock):
    third = AccountService(session).create(AccountIn(name="Safe", currency="USD"))
    result = TransferService(session, clock=clock).transfer(
        _transfer(bank.id, account.id)
    )
    with pytest.raises(InvalidInputError, match="transfer leg"):
        TransactionService(session, clock=clock).update(
            result.destination_transaction.id,
            TransactionUpdate(account_id=third.id),
        )
    assert session.get(Account, third.id).balance == Decimal("0.00")
