"""
Account Management Module

The account store: creation by an administrator, lookup by account number
or owner, and the conditional balance write used by the transfer engine.
Balances are Decimal and only ever change through compare_and_swap_balance.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import uuid

from .amounts import parse_amount, DEFAULT_DECIMAL_PLACES
from .audit import AuditTrail, AuditEventType
from .errors import AccountNotFoundError, DuplicateAccountError
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord


@dataclass
class Account(StorageRecord):
    """
    Customer bank account
    """
    account_number: str
    owner_username: str
    holder_name: str
    tax_id: str
    balance: Decimal
    version: int = 0  # incremented on every balance write

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['balance'] = str(self.balance)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        data = dict(data)
        data['balance'] = Decimal(data['balance'])
        return super().from_dict(data)


class AccountManager:
    """
    Manages account creation, lookups and balance writes
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        decimal_places: int = DEFAULT_DECIMAL_PLACES
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.decimal_places = decimal_places
        self.accounts_table = "accounts"
        self.logger = get_logger("banking.accounts")

    def create_account(
        self,
        owner_username: str,
        holder_name: str,
        tax_id: str,
        account_number: str,
        initial_balance: Any = Decimal("0"),
        created_by: Optional[str] = None
    ) -> Account:
        """
        Create a new account

        Args:
            owner_username: User the account belongs to
            holder_name: Name of the account holder
            tax_id: Tax identification number (NUIT)
            account_number: Unique account number
            initial_balance: Opening balance, zero or positive
            created_by: Username of the administrator creating the account

        Returns:
            Created Account object

        Raises:
            DuplicateAccountError: If the number is taken or the owner already has an account
            InvalidAmountError: If the opening balance is negative or malformed
        """
        if not account_number or not account_number.strip():
            raise ValueError("Account number is required")

        balance = parse_amount(initial_balance, self.decimal_places, allow_zero=True)

        if self.get_account_by_number(account_number):
            raise DuplicateAccountError(f"Account number {account_number} already exists")
        if self.get_account_by_owner(owner_username):
            raise DuplicateAccountError(f"User {owner_username} already has an account")

        now = datetime.now(timezone.utc)
        account = Account(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            account_number=account_number,
            owner_username=owner_username,
            holder_name=holder_name,
            tax_id=tax_id,
            balance=balance
        )

        self.storage.save(self.accounts_table, account.id, account.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.ACCOUNT_CREATED,
            entity_type="account",
            entity_id=account.account_number,
            user_id=created_by,
            metadata={
                "owner_username": owner_username,
                "holder_name": holder_name,
                "opening_balance": balance
            }
        )

        log_action(
            self.logger, "info", f"Account created: {account_number}",
            user_id=created_by, action="create_account",
            resource=f"account:{account_number}",
            extra={"owner_username": owner_username}
        )

        return account

    def get_account_by_number(self, account_number: str) -> Optional[Account]:
        """Get account by account number"""
        accounts = self.storage.find(self.accounts_table, {"account_number": account_number})
        if accounts:
            return Account.from_dict(accounts[0])
        return None

    def get_account_by_owner(self, username: str) -> Optional[Account]:
        """Get the account owned by a user"""
        accounts = self.storage.find(self.accounts_table, {"owner_username": username})
        if accounts:
            return Account.from_dict(accounts[0])
        return None

    def list_accounts(self) -> List[Account]:
        accounts = [Account.from_dict(data) for data in self.storage.load_all(self.accounts_table)]
        accounts.sort(key=lambda a: a.account_number)
        return accounts

    def total_balance(self) -> Decimal:
        """Sum of all account balances"""
        return sum((a.balance for a in self.list_accounts()), Decimal("0"))

    def compare_and_swap_balance(self, account_number: str,
                                 expected_balance: Decimal,
                                 new_balance: Decimal) -> bool:
        """
        Write ``new_balance`` only if the stored balance still equals
        ``expected_balance``.

        The write is keyed on the account's version counter, so an
        intervening write that happens to restore the same balance is still
        detected.

        Returns:
            True if the balance was written, False on a stale expectation

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        account = self.get_account_by_number(account_number)
        if account is None:
            raise AccountNotFoundError(account_number)
        if account.balance != expected_balance:
            return False

        return self.storage.compare_and_swap(
            self.accounts_table, account.id, "version", account.version,
            {
                "balance": str(new_balance),
                "version": account.version + 1,
                "updated_at": datetime.now(timezone.utc).isoformat()
            }
        )
