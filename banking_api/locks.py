"""
Per-Account Locking

Serialises read-check-write cycles on account balances. Locks for several
accounts are always taken in sorted account-number order, never in request
order, so two transfers between the same pair of accounts in opposite
directions cannot deadlock.

A lock only lives in the registry while some thread holds or waits for it,
so account numbers that appear in requests do not accumulate.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List

from .errors import UnavailableError


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class AccountLockManager:
    """Hands out one lock per account number"""

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout
        self._locks: Dict[str, _LockEntry] = {}
        self._registry_lock = threading.Lock()

    def _checkout(self, account_number: str) -> threading.Lock:
        with self._registry_lock:
            entry = self._locks.get(account_number)
            if entry is None:
                entry = _LockEntry()
                self._locks[account_number] = entry
            entry.users += 1
            return entry.lock

    def _checkin(self, account_number: str) -> None:
        with self._registry_lock:
            entry = self._locks[account_number]
            entry.users -= 1
            if entry.users == 0:
                del self._locks[account_number]

    def tracked_accounts(self) -> int:
        """Number of accounts with a lock currently held or awaited"""
        with self._registry_lock:
            return len(self._locks)

    @contextmanager
    def hold(self, *account_numbers: str) -> Iterator[List[str]]:
        """
        Hold the locks of all given accounts for the duration of the block.

        Duplicates are collapsed, so a self-transfer takes a single lock.

        Raises:
            UnavailableError: If a lock cannot be acquired within the timeout
        """
        ordered = sorted(set(account_numbers))
        checked_out: List[str] = []
        acquired: List[threading.Lock] = []
        try:
            for account_number in ordered:
                lock = self._checkout(account_number)
                checked_out.append(account_number)
                if not lock.acquire(timeout=self.timeout):
                    raise UnavailableError(
                        f"Timed out waiting for account {account_number}"
                    )
                acquired.append(lock)
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()
            for account_number in reversed(checked_out):
                self._checkin(account_number)
