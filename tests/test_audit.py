"""
Test suite for audit module

Tests the hash-chained audit trail, tamper detection and integrity
verification.
"""

import threading
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from banking_api.audit import AuditEvent, AuditEventType, AuditTrail
from banking_api.storage import InMemoryStorage, SQLiteStorage


class TestAuditEvent:
    """Test AuditEvent functionality"""

    def test_metadata_serialization(self):
        """Test that metadata is properly serialized"""
        now = datetime.now(timezone.utc)

        event = AuditEvent(
            id="AUDIT001",
            created_at=now,
            updated_at=now,
            event_type=AuditEventType.TRANSFER_COMPLETED,
            entity_type="transfer",
            entity_id="T1",
            previous_hash="",
            current_hash="",
            metadata={
                "amount": Decimal("40.00"),
                "at": now,
                "kind": AuditEventType.ACCOUNT_CREATED,
                "nested": {"values": [Decimal("1.10")]}
            }
        )

        assert event.metadata["amount"] == "40.00"
        assert event.metadata["at"] == now.isoformat()
        assert event.metadata["kind"] == "account_created"
        assert event.metadata["nested"]["values"] == ["1.10"]

    def test_hash_is_deterministic_and_verifiable(self):
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT002",
            created_at=now,
            updated_at=now,
            event_type=AuditEventType.LOGIN_SUCCESS,
            entity_type="user",
            entity_id="cliente1",
            previous_hash="prev",
            current_hash="",
            metadata={}
        )

        event.current_hash = event.calculate_hash()
        assert len(event.current_hash) == 64
        assert event.calculate_hash() == event.current_hash
        assert event.verify_hash()

        event.entity_id = "cliente2"
        assert not event.verify_hash()


class TestAuditTrail:
    """Test AuditTrail functionality"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)

    def test_chain_links_events(self):
        first = self.audit_trail.log_event(AuditEventType.SYSTEM_START, "system", "banking_api")
        second = self.audit_trail.log_event(AuditEventType.USER_CREATED, "user", "admin1",
                                            metadata={"role": "ADMIN"}, user_id="seed")

        assert first.previous_hash == ""
        assert second.previous_hash == first.current_hash

        events = self.audit_trail.get_all_events()
        assert [e.id for e in events] == [first.id, second.id]
        assert self.audit_trail.count_events() == 2

        result = self.audit_trail.verify_integrity()
        assert result["valid"]
        assert result["total_events"] == 2

    def test_queries(self):
        self.audit_trail.log_event(AuditEventType.USER_CREATED, "user", "a")
        self.audit_trail.log_event(AuditEventType.USER_CREATED, "user", "b")
        self.audit_trail.log_event(AuditEventType.LOGIN_SUCCESS, "user", "a")

        assert len(self.audit_trail.get_events_by_type(AuditEventType.USER_CREATED)) == 2
        assert [e.event_type for e in self.audit_trail.get_events_for_entity("user", "a")] == [
            AuditEventType.USER_CREATED, AuditEventType.LOGIN_SUCCESS
        ]

    def test_tampered_metadata_detected(self):
        event = self.audit_trail.log_event(AuditEventType.TRANSFER_COMPLETED, "transfer", "T1",
                                           metadata={"amount": "10.00"})
        self.audit_trail.log_event(AuditEventType.LOGIN_SUCCESS, "user", "a")

        stored = self.storage.load("audit_events", event.id)
        stored["metadata"]["amount"] = "10000.00"
        self.storage.save("audit_events", event.id, stored)

        result = self.audit_trail.verify_integrity()
        assert not result["valid"]
        assert [e["event_id"] for e in result["hash_errors"]] == [event.id]

    def test_deleted_event_breaks_chain(self):
        self.audit_trail.log_event(AuditEventType.USER_CREATED, "user", "a")
        middle = self.audit_trail.log_event(AuditEventType.USER_CREATED, "user", "b")
        last = self.audit_trail.log_event(AuditEventType.USER_CREATED, "user", "c")

        self.storage.delete("audit_events", middle.id)

        result = self.audit_trail.verify_integrity()
        assert not result["valid"]
        assert [b["event_id"] for b in result["chain_breaks"]] == [last.id]

    def test_chain_continues_after_restart(self):
        first = self.audit_trail.log_event(AuditEventType.USER_CREATED, "user", "a")

        reopened = AuditTrail(self.storage)
        second = reopened.log_event(AuditEventType.USER_CREATED, "user", "b")

        assert second.previous_hash == first.current_hash
        assert reopened.verify_integrity()["valid"]

    def test_concurrent_events_keep_a_single_chain(self):
        threads = [
            threading.Thread(target=self.audit_trail.log_event,
                             args=(AuditEventType.LOGIN_SUCCESS, "user", f"u{i}"))
            for i in range(50)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        result = self.audit_trail.verify_integrity()
        assert result["valid"]
        assert result["total_events"] == 50

    def test_disabled_trail_persists_nothing(self):
        trail = AuditTrail(self.storage, enabled=False)
        event = trail.log_event(AuditEventType.USER_CREATED, "user", "a")

        assert event.verify_hash()
        assert trail.count_events() == 0


@pytest.fixture
def sqlite_storage(tmp_path):
    storage = SQLiteStorage(str(tmp_path / "audit.db"))
    yield storage
    storage.close()


def test_chain_on_sqlite(sqlite_storage):
    trail = AuditTrail(sqlite_storage)
    for i in range(3):
        trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", str(i),
                        metadata={"opening_balance": Decimal("1000.00")})

    assert AuditTrail(sqlite_storage).verify_integrity() == {
        "valid": True, "total_events": 3, "hash_errors": [], "chain_breaks": []
    }
