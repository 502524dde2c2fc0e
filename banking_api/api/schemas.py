"""
Request and response models

Field names are camelCase on the wire. Amounts are accepted as decimal
strings or JSON numbers and returned as decimal strings. A JSON number is
turned into a Decimal through its shortest text form, so 40.5 arrives as
Decimal("40.5"); binary floats never reach the transfer engine.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..accounts import Account
from ..ledger import LedgerEntry
from ..statements import Direction, StatementLine
from ..users import Role


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def json_number_to_decimal(value: Any) -> Any:
    if isinstance(value, float):
        return Decimal(repr(value))
    return value


# Auth schemas
class LoginRequest(CamelModel):
    username: str
    password: str


class TokenResponse(CamelModel):
    token: str
    token_type: str = "bearer"
    expires_at: datetime


# Transfer schemas
class TransferRequest(CamelModel):
    from_account_number: str
    to_account_number: str
    amount: Any = Field(..., description="Decimal amount as string, e.g. \"40.00\"")
    description: str = ""

    @field_validator("amount", mode="before")
    @classmethod
    def decode_json_number(cls, value: Any) -> Any:
        return json_number_to_decimal(value)


class TransferResponse(CamelModel):
    transaction_id: str
    from_account_number: str
    to_account_number: str
    amount: Decimal
    description: str
    timestamp: datetime
    message: str = "Transfer completed successfully"

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> 'TransferResponse':
        return cls(
            transaction_id=entry.id,
            from_account_number=entry.source_account_number,
            to_account_number=entry.destination_account_number,
            amount=entry.amount,
            description=entry.description,
            timestamp=entry.timestamp
        )


class StatementLineResponse(CamelModel):
    amount: Decimal
    timestamp: datetime
    direction: Direction
    counterparty_account_number: str
    description: str

    @classmethod
    def from_line(cls, line: StatementLine) -> 'StatementLineResponse':
        return cls(
            amount=line.amount,
            timestamp=line.timestamp,
            direction=line.direction,
            counterparty_account_number=line.counterparty_account_number,
            description=line.description
        )


# Account schemas
class CreateAccountRequest(CamelModel):
    username: str
    holder_name: str
    tax_id: str
    account_number: str
    balance: Any = "0"

    @field_validator("balance", mode="before")
    @classmethod
    def decode_json_number(cls, value: Any) -> Any:
        return json_number_to_decimal(value)


class AccountResponse(CamelModel):
    account_number: str
    username: str
    holder_name: str
    tax_id: str
    balance: Decimal

    @classmethod
    def from_account(cls, account: Account) -> 'AccountResponse':
        return cls(
            account_number=account.account_number,
            username=account.owner_username,
            holder_name=account.holder_name,
            tax_id=account.tax_id,
            balance=account.balance
        )


# User schemas
class CreateUserRequest(CamelModel):
    username: str
    password: str
    role: Role


class UserResponse(CamelModel):
    username: str
    role: Role
