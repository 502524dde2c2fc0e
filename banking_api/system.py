"""
Banking system wiring: one storage backend and every component built on it.
"""

from datetime import datetime
from typing import Callable, Optional

from .accounts import AccountManager
from .audit import AuditTrail
from .config import BankingConfig, get_config
from .ledger import LedgerStore
from .locks import AccountLockManager
from .statements import StatementService
from .storage import StorageInterface, create_storage
from .tokens import IssuedToken, TokenService
from .transfers import TransferEngine
from .users import PasswordHasher, UserManager


class BankingSystem:
    """Banking system with all components initialized"""

    def __init__(
        self,
        config: Optional[BankingConfig] = None,
        storage: Optional[StorageInterface] = None,
        clock: Optional[Callable[[], datetime]] = None,
        hasher: Optional[PasswordHasher] = None
    ):
        self.config = config or get_config()
        self.storage = storage or create_storage(
            self.config.database_url, self.config.lock_timeout_seconds
        )

        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.user_manager = UserManager(self.storage, self.audit_trail, hasher=hasher)
        self.account_manager = AccountManager(
            self.storage, self.audit_trail, decimal_places=self.config.amount_decimal_places
        )
        self.ledger = LedgerStore(self.storage, clock=clock)
        self.lock_manager = AccountLockManager(timeout=self.config.lock_timeout_seconds)
        self.transfer_engine = TransferEngine(
            self.storage, self.account_manager, self.ledger, self.audit_trail,
            lock_manager=self.lock_manager,
            max_retries=self.config.transfer_max_retries,
            retry_backoff_seconds=self.config.transfer_retry_backoff_seconds,
            decimal_places=self.config.amount_decimal_places
        )
        self.statement_service = StatementService(self.account_manager, self.ledger)
        self.token_service = TokenService.from_config(self.config, clock=clock)

    def login(self, username: str, password: str) -> IssuedToken:
        """
        Verify credentials and issue a session token

        Raises:
            UnauthenticatedError: If the credentials are wrong
        """
        user = self.user_manager.authenticate(username, password)
        return self.token_service.issue(user.username, user.role)

    def close(self) -> None:
        self.storage.close()
