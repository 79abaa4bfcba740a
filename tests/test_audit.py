"""
Test suite for audit module

Tests hash-chained audit trail, tamper detection, integrity verification,
and that audit events share the fate of the transaction they are logged in.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from lending_ledger.storage import InMemoryStorage
from lending_ledger.audit import AuditTrail, AuditEvent, AuditEventType
from lending_ledger.loans import LoanStatus


class TestAuditEvent:
    """Test AuditEvent functionality"""

    def test_metadata_is_normalised(self):
        """Decimals, enums and dates in metadata become JSON values"""
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT001",
            created_at=now,
            updated_at=now,
            event_type=AuditEventType.PENALTY_ADDED,
            entity_type="loan",
            entity_id="L1",
            sequence=1,
            previous_hash="",
            current_hash="",
            metadata={
                "amount": Decimal("50.00"),
                "status": LoanStatus.PARTIAL,
                "when": now,
                "installments": ("L1_1", "L1_2")
            }
        )

        assert event.metadata == {
            "amount": "50.00",
            "status": "Partial",
            "when": now.isoformat(),
            "installments": ["L1_1", "L1_2"]
        }

    def test_hash_covers_metadata(self):
        """Test the event hash changes with its metadata"""
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT001", created_at=now, updated_at=now,
            event_type=AuditEventType.PAYMENT_APPLIED,
            entity_type="loan", entity_id="L1", sequence=1,
            previous_hash="", current_hash="", metadata={"amount": "100.00"}
        )
        event.current_hash = event.calculate_hash()
        assert event.verify_hash()

        event.metadata["amount"] = "1.00"
        assert not event.verify_hash()


class TestAuditTrail:
    """Test AuditTrail chaining and lookup"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)

    def test_events_are_chained(self):
        """Test each event links to the previous hash"""
        first = self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L1", {"months": 3})
        second = self.audit_trail.log_event(AuditEventType.PAYMENT_APPLIED, "loan", "L1",
                                            {"amount": Decimal("100")})

        assert first.sequence == 1
        assert first.previous_hash == ""
        assert second.sequence == 2
        assert second.previous_hash == first.current_hash
        assert self.audit_trail.get_latest_hash() == second.current_hash
        assert self.audit_trail.count_events() == 2

    def test_logging_does_not_scan_events(self, monkeypatch):
        """Test the chain head is read from its own record, not the event table"""
        first = self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L1")

        def fail(table, *args):
            raise AssertionError(f"unexpected scan of {table}")
        monkeypatch.setattr(self.storage, "load_all", fail)
        monkeypatch.setattr(self.storage, "find", fail)

        second = self.audit_trail.log_event(AuditEventType.PENALTY_ADDED, "loan", "L1")
        assert second.sequence == 2
        assert second.previous_hash == first.current_hash

    def test_get_events_for_entity(self):
        """Test looking up events for one entity"""
        self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L1")
        self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L2")
        self.audit_trail.log_event(AuditEventType.PENALTY_ADDED, "loan", "L1")
        self.audit_trail.log_event(AuditEventType.LOAN_CANCELLED, "loan", "L1")

        events = self.audit_trail.get_events_for_entity("loan", "L1")
        assert [e.event_type for e in events] == [
            AuditEventType.LOAN_CREATED,
            AuditEventType.PENALTY_ADDED,
            AuditEventType.LOAN_CANCELLED
        ]

        latest = self.audit_trail.get_events_for_entity("loan", "L1", limit=1)
        assert [e.event_type for e in latest] == [AuditEventType.LOAN_CANCELLED]

    def test_get_events_by_type(self):
        """Test looking up events by type"""
        self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L1")
        self.audit_trail.log_event(AuditEventType.PAYMENT_APPLIED, "loan", "L1")
        self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L2")

        events = self.audit_trail.get_events_by_type(AuditEventType.LOAN_CREATED)
        assert [e.entity_id for e in events] == ["L1", "L2"]

    def test_disabled_trail_logs_nothing(self):
        """Test a disabled trail writes no events"""
        trail = AuditTrail(self.storage, enabled=False)

        assert trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L1") is None
        assert trail.count_events() == 0

    def test_event_rolled_back_with_transaction(self):
        """Test an event logged in a failed transaction is discarded"""
        self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L1")

        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.audit_trail.log_event(AuditEventType.PAYMENT_APPLIED, "loan", "L1")
                raise RuntimeError("payment failed")

        assert self.audit_trail.count_events() == 1
        # The next event continues the surviving chain
        event = self.audit_trail.log_event(AuditEventType.PENALTY_ADDED, "loan", "L1")
        assert event.sequence == 2
        assert self.audit_trail.verify_integrity()["valid"]


class TestIntegrityVerification:
    """Test tamper detection"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        for entity_id in ("L1", "L2", "L3"):
            self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", entity_id,
                                       {"gross_receivable": Decimal("300.00")})

    def test_untouched_chain_is_valid(self):
        """Test an untouched chain verifies"""
        result = self.audit_trail.verify_integrity()

        assert result["valid"]
        assert result["total_events"] == 3
        assert result["hash_errors"] == []
        assert result["chain_breaks"] == []

    def test_modified_metadata_is_detected(self):
        """Test tampered metadata is detected"""
        event = self.audit_trail.get_events_for_entity("loan", "L2")[0]
        data = self.storage.load("audit_events", event.id)
        data["metadata"]["gross_receivable"] = "1.00"
        self.storage.save("audit_events", event.id, data)

        result = self.audit_trail.verify_integrity()

        assert not result["valid"]
        assert [e["event_id"] for e in result["hash_errors"]] == [event.id]

    def test_deleted_event_breaks_chain(self):
        """Test a deleted event breaks the chain"""
        event = self.audit_trail.get_events_for_entity("loan", "L2")[0]
        self.storage.delete("audit_events", event.id)

        result = self.audit_trail.verify_integrity()

        assert not result["valid"]
        assert result["total_events"] == 2
        assert len(result["chain_breaks"]) == 1
