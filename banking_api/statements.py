"""
Account Statements

Builds an account's statement from the ledger: sent entries become OUTGOING
lines with the destination as counterparty, received entries become INCOMING
lines with the source as counterparty.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass
from enum import Enum
from typing import List

from .accounts import AccountManager
from .errors import AccountNotFoundError
from .ledger import LedgerStore


class Direction(Enum):
    OUTGOING = "OUTGOING"
    INCOMING = "INCOMING"


@dataclass(frozen=True)
class StatementLine:
    amount: Decimal
    timestamp: datetime
    direction: Direction
    counterparty_account_number: str
    description: str
    entry_id: str


class StatementService:
    """Answers statement queries for a single account"""

    def __init__(self, account_manager: AccountManager, ledger: LedgerStore):
        self.account_manager = account_manager
        self.ledger = ledger

    def statement(self, account_number: str) -> List[StatementLine]:
        """
        Statement lines for an account, oldest first

        A self-transfer shows up twice, once in each direction.

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        if self.account_manager.get_account_by_number(account_number) is None:
            raise AccountNotFoundError(account_number)

        lines = [
            StatementLine(
                amount=entry.amount,
                timestamp=entry.timestamp,
                direction=Direction.OUTGOING,
                counterparty_account_number=entry.destination_account_number,
                description=entry.description,
                entry_id=entry.id
            )
            for entry in self.ledger.query_sent(account_number)
        ]
        lines.extend(
            StatementLine(
                amount=entry.amount,
                timestamp=entry.timestamp,
                direction=Direction.INCOMING,
                counterparty_account_number=entry.source_account_number,
                description=entry.description,
                entry_id=entry.id
            )
            for entry in self.ledger.query_received(account_number)
        )

        # Stable sort keeps OUTGOING before INCOMING for a self-transfer
        lines.sort(key=lambda line: line.timestamp)
        return lines

    def statement_for_user(self, username: str) -> List[StatementLine]:
        """Statement of the account owned by ``username``"""
        account = self.account_manager.get_account_by_owner(username)
        if account is None:
            raise AccountNotFoundError(f"owned by {username}")
        return self.statement(account.account_number)
