"""
Transfer Ledger Module

Append-only record of completed transfers. Each entry references exactly one
source and one destination account; an account's history is the set of
entries where it appears on either side.
"""

from decimal import Decimal
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
import threading
import uuid

from .storage import StorageInterface, StorageRecord


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LedgerEntry(StorageRecord):
    """
    Record of one completed transfer. Entries are never updated once appended.
    """
    source_account_number: str
    destination_account_number: str
    amount: Decimal
    description: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['amount'] = str(self.amount)
        result['timestamp'] = self.timestamp.isoformat()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LedgerEntry':
        data = dict(data)
        data['amount'] = Decimal(data['amount'])
        data['timestamp'] = datetime.fromisoformat(data['timestamp'])
        return super().from_dict(data)

    def involves(self, account_number: str) -> bool:
        return account_number in (self.source_account_number, self.destination_account_number)


class LedgerStore:
    """
    Appends and queries ledger entries

    Timestamps are assigned here and are strictly increasing within the
    process: if the clock has not moved since the previous entry the new one
    is placed one microsecond later.
    """

    def __init__(self, storage: StorageInterface,
                 clock: Optional[Callable[[], datetime]] = None):
        self.storage = storage
        self.table_name = "ledger_entries"
        self._clock = clock or utc_now
        self._lock = threading.Lock()
        self._last_timestamp: Optional[datetime] = None

    def _next_timestamp(self) -> datetime:
        with self._lock:
            now = self._clock()
            if self._last_timestamp is not None and now <= self._last_timestamp:
                now = self._last_timestamp + timedelta(microseconds=1)
            self._last_timestamp = now
            return now

    def append(self, source_account_number: str, destination_account_number: str,
               amount: Decimal, description: str) -> LedgerEntry:
        """
        Append a new entry and return it with its generated id and timestamp
        """
        timestamp = self._next_timestamp()
        entry = LedgerEntry(
            id=str(uuid.uuid4()),
            created_at=timestamp,
            updated_at=timestamp,
            source_account_number=source_account_number,
            destination_account_number=destination_account_number,
            amount=amount,
            description=description,
            timestamp=timestamp
        )
        self.storage.save(self.table_name, entry.id, entry.to_dict())
        return entry

    def get_entry(self, entry_id: str) -> Optional[LedgerEntry]:
        data = self.storage.load(self.table_name, entry_id)
        if data:
            return LedgerEntry.from_dict(data)
        return None

    def _query(self, filters: Dict[str, Any]) -> List[LedgerEntry]:
        entries = [LedgerEntry.from_dict(data) for data in self.storage.find(self.table_name, filters)]
        entries.sort(key=lambda e: e.timestamp)
        return entries

    def query_sent(self, account_number: str) -> List[LedgerEntry]:
        """Entries where the account is the source, oldest first"""
        return self._query({"source_account_number": account_number})

    def query_received(self, account_number: str) -> List[LedgerEntry]:
        """Entries where the account is the destination, oldest first"""
        return self._query({"destination_account_number": account_number})

    def query_by_account(self, account_number: str) -> List[LedgerEntry]:
        """All entries the account took part in, oldest first, each entry once"""
        entries = {e.id: e for e in self.query_sent(account_number)}
        for entry in self.query_received(account_number):
            entries.setdefault(entry.id, entry)
        return sorted(entries.values(), key=lambda e: e.timestamp)

    def all_entries(self) -> List[LedgerEntry]:
        return self._query({})

    def count_entries(self) -> int:
        return self.storage.count(self.table_name)
