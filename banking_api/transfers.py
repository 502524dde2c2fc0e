"""
Funds Transfer Module

Moves money between two accounts. A transfer validates its amount, resolves
both accounts, checks the source balance, then debits, credits and appends a
ledger entry as one atomic unit while holding both account locks. Value is
conserved: every completed transfer leaves the sum of all balances unchanged.

Validation failures are terminal. Write contention (ConflictError) and
storage timeouts (UnavailableError) are retried a bounded number of times
with exponential backoff, then surfaced as is.
"""

import time
from decimal import Decimal
from typing import Any, Callable, Optional

from .accounts import AccountManager
from .amounts import parse_amount, DEFAULT_DECIMAL_PLACES
from .audit import AuditTrail, AuditEventType
from .errors import (
    AccountNotFoundError, BankingError, ConflictError,
    InsufficientFundsError, UnavailableError
)
from .ledger import LedgerEntry, LedgerStore
from .locks import AccountLockManager
from .logging_config import get_logger, log_action
from .storage import StorageInterface


class TransferEngine:
    """
    Executes transfers between accounts

    The engine works on the account numbers it is given; it does not check
    that the caller owns the source account.
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_manager: AccountManager,
        ledger: LedgerStore,
        audit_trail: AuditTrail,
        lock_manager: Optional[AccountLockManager] = None,
        max_retries: int = 3,
        retry_backoff_seconds: float = 0.01,
        decimal_places: int = DEFAULT_DECIMAL_PLACES,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.storage = storage
        self.account_manager = account_manager
        self.ledger = ledger
        self.audit_trail = audit_trail
        self.lock_manager = lock_manager or AccountLockManager()
        self.max_retries = max_retries
        self.retry_backoff_seconds = retry_backoff_seconds
        self.decimal_places = decimal_places
        self._sleep = sleep
        self.logger = get_logger("banking.transfers")

    def transfer(
        self,
        source_account_number: str,
        destination_account_number: str,
        amount: Any,
        description: str = "",
        initiated_by: Optional[str] = None
    ) -> LedgerEntry:
        """
        Transfer ``amount`` from the source account to the destination account

        Args:
            source_account_number: Account to debit
            destination_account_number: Account to credit
            amount: Positive Decimal, int or numeric string
            description: Free-text description stored on the ledger entry
            initiated_by: Username of the caller, for logs and audit only

        Returns:
            The ledger entry recording the transfer

        Raises:
            InvalidAmountError: If the amount is not a positive decimal
            AccountNotFoundError: If either account does not exist (``side`` says which)
            InsufficientFundsError: If the source balance is below the amount
            ConflictError: If concurrent writes persisted through every retry
            UnavailableError: If storage or locks timed out through every retry
        """
        description = description or ""
        try:
            value = parse_amount(amount, self.decimal_places)
        except BankingError as e:
            self._record_rejection(source_account_number, destination_account_number,
                                   amount, e, initiated_by)
            raise

        attempt = 0
        while True:
            try:
                entry = self._execute(source_account_number, destination_account_number,
                                      value, description, initiated_by)
            except (ConflictError, UnavailableError) as e:
                if attempt >= self.max_retries:
                    self._record_rejection(source_account_number, destination_account_number,
                                           value, e, initiated_by)
                    raise
                delay = self.retry_backoff_seconds * (2 ** attempt)
                attempt += 1
                log_action(
                    self.logger, "warning",
                    f"Transfer attempt {attempt} failed with {e.code}, retrying in {delay:.3f}s",
                    user_id=initiated_by, action="transfer_retry",
                    resource=f"account:{source_account_number}",
                    extra={"attempt": attempt, "error": e.code}
                )
                self._sleep(delay)
            except BankingError as e:
                self._record_rejection(source_account_number, destination_account_number,
                                       value, e, initiated_by)
                raise
            else:
                return entry

    def _execute(self, source_account_number: str, destination_account_number: str,
                 amount: Decimal, description: str,
                 initiated_by: Optional[str]) -> LedgerEntry:
        """One attempt: lock both accounts, then validate and write atomically"""
        with self.lock_manager.hold(source_account_number, destination_account_number):
            with self.storage.atomic():
                source = self.account_manager.get_account_by_number(source_account_number)
                if source is None:
                    raise AccountNotFoundError(source_account_number, side="source")

                destination = self.account_manager.get_account_by_number(destination_account_number)
                if destination is None:
                    raise AccountNotFoundError(destination_account_number, side="destination")

                if source_account_number == destination_account_number:
                    log_action(
                        self.logger, "warning",
                        f"Self-transfer on account {source_account_number}",
                        user_id=initiated_by, action="self_transfer",
                        resource=f"account:{source_account_number}"
                    )

                if source.balance < amount:
                    raise InsufficientFundsError(
                        f"Insufficient funds: available {source.balance}, requested {amount}"
                    )

                if not self.account_manager.compare_and_swap_balance(
                        source_account_number, source.balance, source.balance - amount):
                    raise ConflictError(f"Balance of account {source_account_number} changed")

                # Re-read: for a self-transfer the debit above is already visible
                destination = self.account_manager.get_account_by_number(destination_account_number)
                if not self.account_manager.compare_and_swap_balance(
                        destination_account_number, destination.balance,
                        destination.balance + amount):
                    raise ConflictError(f"Balance of account {destination_account_number} changed")

                entry = self.ledger.append(
                    source_account_number, destination_account_number, amount, description
                )

            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSFER_COMPLETED,
                entity_type="transfer",
                entity_id=entry.id,
                user_id=initiated_by,
                metadata={
                    "source_account_number": source_account_number,
                    "destination_account_number": destination_account_number,
                    "amount": amount,
                    "description": description
                }
            )

        log_action(
            self.logger, "info", "Transfer completed",
            user_id=initiated_by, action="transfer",
            resource=f"transfer:{entry.id}",
            extra={
                "source_account_number": source_account_number,
                "destination_account_number": destination_account_number,
                "amount": str(amount)
            }
        )
        return entry

    def _record_rejection(self, source_account_number: str, destination_account_number: str,
                          amount: Any, error: BankingError,
                          initiated_by: Optional[str]) -> None:
        log_action(
            self.logger, "warning", f"Transfer rejected: {error.message}",
            user_id=initiated_by, action="transfer_rejected",
            resource=f"account:{source_account_number}",
            extra={"error": error.code, "amount": str(amount),
                   "destination_account_number": destination_account_number}
        )
        self.audit_trail.log_event(
            event_type=AuditEventType.TRANSFER_REJECTED,
            entity_type="transfer",
            entity_id=f"{source_account_number}->{destination_account_number}",
            user_id=initiated_by,
            metadata={
                "error": error.code,
                "message": error.message,
                "amount": str(amount)
            }
        )
