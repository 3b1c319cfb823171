from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from csv_utils import parse_amount, parse_date
from models import RecurrenceFrequency, TransactionType


def _upper_currency(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    return value.strip().upper()


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    currency: str = Field(..., min_length=3, max_length=3)
    balance: Decimal = Field(default=Decimal("0"), ge=0, max_digits=15, decimal_places=2)
    description: Optional[str] = None

    @field_validator("currency", mode="before")
    @classmethod
    def normalize_currency(cls, value: Optional[str]) -> Optional[str]:
        return _upper_currency(value)


class AccountUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    description: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("currency", mode="before")
    @classmethod
    def normalize_currency(cls, value: Optional[str]) -> Optional[str]:
        return _upper_currency(value)


class BalanceIn(BaseModel):
    balance: Decimal = Field(..., max_digits=15, decimal_places=2)


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    parent_id: Optional[int] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[TransactionType] = None
    parent_id: Optional[int] = None


class TransactionIn(BaseModel):
    type: TransactionType
    amount: Decimal = Field(..., max_digits=15, decimal_places=2)
    description: str = Field(..., min_length=1)
    category_id: int
    account_id: int
    transaction_date: Optional[datetime] = None


class TransactionUpdate(BaseModel):
    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(default=None, max_digits=15, decimal_places=2)
    description: Optional[str] = Field(default=None, min_length=1)
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    transaction_date: Optional[datetime] = None


class TransferIn(BaseModel):
    source_account_id: int
    destination_account_id: int
    amount: Decimal = Field(..., max_digits=15, decimal_places=2)
    description: str = Field(..., min_length=1)
    transaction_date: Optional[datetime] = None


class RecurringTransactionIn(BaseModel):
    type: TransactionType
    amount: Decimal = Field(..., max_digits=15, decimal_places=2)
    description: str = Field(..., min_length=1)
    category_id: int
    account_id: int
    frequency: RecurrenceFrequency
    start_date: datetime
    end_date: Optional[datetime] = None
    is_active: bool = True


class RecurringTransactionUpdate(BaseModel):
    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(default=None, max_digits=15, decimal_places=2)
    description: Optional[str] = Field(default=None, min_length=1)
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    frequency: Optional[RecurrenceFrequency] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None


class CSVRow(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = Field(default=None, alias="Id")
    date: datetime = Field(..., alias="Date")
    category: str = Field(..., alias="Category", min_length=1)
    amount: Decimal = Field(..., alias="Amount")
    currency: str = Field(..., alias="Currency", min_length=1)
    note: Optional[str] = Field(default=None, alias="Note")
    wallet: str = Field(..., alias="Wallet", min_length=1)

    @field_validator("date", mode="before")
    @classmethod
    def parse_date_value(cls, value: object) -> object:
        if isinstance(value, str):
            return parse_date(value)
        return value

    @field_validator("amount", mode="before")
    @classmethod
    def parse_amount_value(cls, value: object) -> object:
        if isinstance(value, str):
            return parse_amount(value)
        return value

    @field_validator("note", "id", mode="after")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class AccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    currency: str
    balance: Decimal
    description: Optional[str]
    is_active: bool
    created_at: datetime
    updated_at: datetime


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: TransactionType
    is_default: bool
    parent_id: Optional[int]


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: TransactionType
    amount: Decimal
    description: str
    category_id: int
    category: Optional[CategoryOut] = None
    account_id: int
    transaction_date: datetime
    related_transaction_id: Optional[int]
    recurring_transaction_id: Optional[int]
    created_at: datetime
    updated_at: datetime


class TransferOut(BaseModel):
    source_transaction: TransactionOut
    destination_transaction: TransactionOut


class RecurringTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: TransactionType
    amount: Decimal
    description: str
    category_id: int
    account_id: int
    frequency: RecurrenceFrequency
    start_date: datetime
    end_date: Optional[datetime]
    next_due_date: Optional[datetime]
    is_active: bool


class ImportResultOut(BaseModel):
    imported: int
    errors: list[str]
