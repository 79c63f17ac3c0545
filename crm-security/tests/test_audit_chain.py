"""
Tests for hash chaining in the audit trail.
"""

import asyncio
import hashlib
import json
from unittest.mock import patch

import pytest

from crm_security.audit import (
    GENESIS_HASH,
    Actor,
    AuditEntry,
    AuditEventType,
    ChainState,
    HashChainAuditTrail,
    MemorySink,
    RequestSnapshot,
    ResponseSnapshot,
    canonical_serialize,
    compute_entry_hash,
)
from crm_security.sanitizer import REDACTION_MARKER


class FailingSink(MemorySink):
    """Sink that fails for the first N audit writes."""

    def __init__(self, failures: int = 1):
        super().__init__()
        self.failures = failures

    async def write(self, stream, level, message, fields):
        if stream == "audit" and self.failures > 0:
            self.failures -= 1
            raise OSError("disk full")
        await super().write(stream, level, message, fields)


class SlowSink(MemorySink):
    """Sink that yields to the event loop mid-write."""

    async def write(self, stream, level, message, fields):
        await asyncio.sleep(0)
        await super().write(stream, level, message, fields)


def audit_entries(sink):
    return [AuditEntry.from_dict(r.fields) for r in sink.stream("audit")]


class TestHashing:
    """Tests for canonical serialization and entry hashes."""

    def test_genesis_hash(self):
        """GENESIS anchor is sha256 of the literal string."""
        assert GENESIS_HASH == hashlib.sha256(b"GENESIS").hexdigest()

    def test_canonical_serialize_is_key_order_independent(self):
        """Key order does not change the canonical form."""
        assert canonical_serialize({"b": 1, "a": [1, 2]}) == canonical_serialize({"a": [1, 2], "b": 1})
        assert canonical_serialize({"b": 1, "a": 2}) == '{"a":2,"b":1}'

    def test_entry_hash_covers_body_and_previous(self):
        """Hash is sha256(canonical body + previous hash)."""
        entry = AuditEntry(
            correlation_id="c-1",
            timestamp="2024-03-01T12:00:00.000Z",
            event_type="USER_LOGIN",
            data={"ip": "10.0.0.1"},
        )
        expected = hashlib.sha256(
            (canonical_serialize(entry.body_dict()) + GENESIS_HASH).encode("utf-8")
        ).hexdigest()

        assert compute_entry_hash(entry, GENESIS_HASH) == expected
        assert compute_entry_hash(entry, "0" * 64) != expected

    def test_hash_ignores_existing_chain_fields(self):
        """An entry's own hash fields are not part of its hash input."""
        entry = AuditEntry("c-1", "2024-03-01T12:00:00.000Z", "API_REQUEST")
        chained = entry.chained("a" * 64, "b" * 64)

        assert compute_entry_hash(entry, GENESIS_HASH) == compute_entry_hash(chained, GENESIS_HASH)

    def test_wire_form_round_trip(self):
        """Parsing the wire form reproduces the same hash."""
        entry = AuditEntry(
            correlation_id="c-1",
            timestamp="2024-03-01T12:00:00.000Z",
            event_type="DEAL_CREATE",
            actor=Actor(id=7, email="a@b.com", role="admin"),
            request=RequestSnapshot(method="POST", path="/api/deals", ip="1.2.3.4", body={"name": "x"}),
            response=ResponseSnapshot(status_code=201, duration_ms=12.4),
        )
        entry = entry.chained(GENESIS_HASH, compute_entry_hash(entry, GENESIS_HASH))

        wire = json.loads(json.dumps({**entry.to_dict(), "level": "info", "message": "Audit Log Entry"}))
        parsed = AuditEntry.from_dict(wire)

        assert wire["response"] == {"statusCode": 201, "duration": "12ms"}
        assert compute_entry_hash(parsed, parsed.previous_hash) == entry.hash


class TestChainState:
    """Tests for ChainState locking."""

    @pytest.mark.asyncio
    async def test_mutation_requires_lock(self):
        """Advancing outside the lock is a programming error."""
        state = ChainState()
        with pytest.raises(RuntimeError):
            state.advance("a" * 64)

    @pytest.mark.asyncio
    async def test_advance_under_lock(self):
        state = ChainState()
        async with state.lock:
            state.advance("a" * 64)

        assert state.last_hash == "a" * 64
        assert state.appended == 1

    @pytest.mark.asyncio
    async def test_advance_rejects_non_hash(self):
        state = ChainState()
        async with state.lock:
            with pytest.raises(ValueError):
                state.advance("not-a-hash")


class TestRecord:
    """Tests for HashChainAuditTrail.record."""

    @pytest.mark.asyncio
    async def test_first_entry_links_to_genesis(self):
        """A fresh trail with no logs starts from GENESIS."""
        trail = HashChainAuditTrail(MemorySink())
        entry = await trail.record(AuditEventType.USER_LOGIN, {"ip": "10.0.0.1"})

        assert entry.previous_hash == GENESIS_HASH
        assert trail.last_hash == entry.hash
        assert trail.chain.source == "GENESIS"

    @pytest.mark.asyncio
    async def test_second_entry_links_to_first(self):
        trail = HashChainAuditTrail(MemorySink())
        e1 = await trail.record(AuditEventType.USER_LOGIN, {"n": 1})
        e2 = await trail.record(AuditEventType.USER_LOGOUT, {"n": 2})

        assert e2.previous_hash == e1.hash

    @pytest.mark.asyncio
    async def test_password_redacted_before_hash(self):
        """Raw secrets never reach the persisted entry or its hash."""
        sink = MemorySink()
        trail = HashChainAuditTrail(sink)
        entry = await trail.record(
            AuditEventType.PASSWORD_CHANGE,
            {"user": {"credentials": {"password": "secret123"}}},
        )

        persisted = sink.stream("audit")[0].fields
        assert persisted["data"]["user"]["credentials"]["password"] == REDACTION_MARKER
        assert "secret123" not in json.dumps(persisted)
        assert compute_entry_hash(AuditEntry.from_dict(persisted), GENESIS_HASH) == entry.hash

    @pytest.mark.asyncio
    async def test_request_payload_becomes_sanitized_body(self):
        """With a request snapshot the payload is stored as request.body."""
        sink = MemorySink()
        trail = HashChainAuditTrail(sink)
        await trail.record(
            "USER_LOGIN",
            {"email": "jane@broker.com", "password": "hunter2"},
            request=RequestSnapshot(method="POST", path="/api/auth/login", query={"token": "abc"}),
            response=ResponseSnapshot(status_code=200, duration_ms=5),
        )

        persisted = sink.stream("audit")[0].fields
        assert persisted["data"] is None
        assert persisted["request"]["body"]["password"] == REDACTION_MARKER
        assert persisted["request"]["body"]["email"] == "j***@broker.com"
        assert persisted["request"]["query"]["token"] == REDACTION_MARKER

    @pytest.mark.asyncio
    async def test_severity_from_classifier(self):
        """Critical events log at warn; 5xx at error; 4xx at warn; else info."""
        sink = MemorySink()
        trail = HashChainAuditTrail(sink)
        ok = ResponseSnapshot(status_code=200)

        await trail.record("PASSWORD_CHANGE", response=ok)
        await trail.record("API_REQUEST", response=ResponseSnapshot(status_code=503))
        await trail.record("API_REQUEST", response=ResponseSnapshot(status_code=404))
        await trail.record("API_REQUEST", response=ok)
        await trail.record("API_REQUEST", response=ok, severity="error")

        levels = [r.level for r in sink.stream("audit")]
        assert levels == ["warn", "error", "warn", "info", "error"]

    @pytest.mark.asyncio
    async def test_security_events_mirrored(self):
        """Security event types also go to the non-chained security stream."""
        sink = MemorySink()
        trail = HashChainAuditTrail(sink)
        actor = {"id": 42, "email": "user@example.com", "role": "broker"}

        entry = await trail.record(AuditEventType.ADMIN_ACTION, {"action": "x"}, actor=actor)
        await trail.record(AuditEventType.DEAL_UPDATE, {"id": 1}, actor=actor)

        security = sink.stream("security")
        assert len(security) == 1
        assert security[0].message == "Security Event: ADMIN_ACTION"
        assert security[0].fields["correlationId"] == entry.correlation_id
        assert security[0].fields["userId"] == 42
        assert "hash" not in security[0].fields
        assert len(sink.stream("audit")) == 2

    @pytest.mark.asyncio
    async def test_concurrent_records_never_fork(self):
        """Concurrent records produce a single linear chain in sink order."""
        sink = SlowSink()
        trail = HashChainAuditTrail(sink)

        await asyncio.gather(*[
            trail.record(AuditEventType.API_REQUEST, {"n": i}) for i in range(50)
        ])

        entries = audit_entries(sink)
        assert len(entries) == 50
        assert len({e.previous_hash for e in entries}) == 50
        assert entries[0].previous_hash == GENESIS_HASH
        for prev, cur in zip(entries, entries[1:]):
            assert cur.previous_hash == prev.hash
        assert trail.verify_entries(entries, GENESIS_HASH) == (True, None)

    @pytest.mark.asyncio
    async def test_persist_failure_is_swallowed(self):
        """A sink failure is logged, not raised, and the head does not move."""
        sink = FailingSink(failures=1)
        trail = HashChainAuditTrail(sink)

        lost = await trail.record(AuditEventType.API_REQUEST, {"n": 1})
        assert trail.last_hash == GENESIS_HASH

        kept = await trail.record(AuditEventType.API_REQUEST, {"n": 2})
        assert kept.previous_hash == GENESIS_HASH
        assert kept.hash != lost.hash
        assert trail.verify_entries(audit_entries(sink), GENESIS_HASH) == (True, None)

    @pytest.mark.asyncio
    async def test_persist_failure_logged_with_stream(self):
        trail = HashChainAuditTrail(FailingSink(failures=1))

        with patch("crm_security.audit.trail.logger") as logger:
            entry = await trail.record(AuditEventType.API_REQUEST, {"n": 1})

        logger.error.assert_called_once()
        args, kwargs = logger.error.call_args
        assert args == ("audit_persist_failed",)
        assert kwargs["stream"] == "audit"
        assert kwargs["correlation_id"] == entry.correlation_id
        assert "disk full" in kwargs["error"]

    @pytest.mark.asyncio
    async def test_actor_from_object(self):
        """Actors can be plain objects with id/email/role attributes."""

        class User:
            id = 9
            email = "b@c.com"
            role = "agent"

        entry = await HashChainAuditTrail(MemorySink()).record("API_REQUEST", actor=User())

        assert entry.actor == Actor(id=9, email="b@c.com", role="agent")

    @pytest.mark.asyncio
    async def test_unencodable_strings_still_chained(self):
        """Lone surrogates in the payload, keys or actor never stop a record."""
        sink = MemorySink()
        trail = HashChainAuditTrail(sink)

        entry = await trail.record(
            "API_REQUEST",
            {"name": "\ud800", "bad\udfffkey": 1},
            actor={"id": 3, "email": "x\ud800@example.com", "role": "agent"},
        )

        assert entry.data == {"name": REDACTION_MARKER, REDACTION_MARKER: 1}
        assert entry.actor == Actor(id=3, email=REDACTION_MARKER, role="agent")
        assert trail.last_hash == entry.hash
        assert trail.verify_entries(audit_entries(sink), GENESIS_HASH) == (True, None)

    @pytest.mark.asyncio
    async def test_background_records_keep_order(self):
        """Background writes reach the chain in scheduling order."""
        sink = SlowSink()
        trail = HashChainAuditTrail(sink)

        for n in range(5):
            trail.record_in_background(AuditEventType.API_REQUEST, {"n": n})
        await trail.drain()

        entries = audit_entries(sink)
        assert [e.data["n"] for e in entries] == [0, 1, 2, 3, 4]
        assert trail.pending == 0
        assert trail.verify_entries(entries, GENESIS_HASH) == (True, None)

    @pytest.mark.asyncio
    async def test_background_failure_logged(self):
        """An exception in a background audit write does not escape."""

        async def broken():
            raise RuntimeError("boom")

        trail = HashChainAuditTrail(MemorySink())
        task = trail.run_in_background(broken)
        await trail.drain()

        assert task.result() is None


class TestHelpers:
    """Tests for the non-HTTP convenience helpers."""

    @pytest.mark.asyncio
    async def test_log_auth_event_failure_is_warn(self):
        sink = MemorySink()
        trail = HashChainAuditTrail(sink)
        await trail.log_auth_event(
            AuditEventType.LOGIN_FAILED,
            {"id": 42, "email": "user@example.com"},
            ip="10.0.0.1",
            success=False,
            metadata={"password": "oops"},
        )

        record = sink.stream("audit")[0]
        assert record.level == "warn"
        assert record.message == "Auth Event: LOGIN_FAILED"
        assert record.fields["data"]["metadata"]["password"] == REDACTION_MARKER
        security = sink.stream("security")[0].fields
        assert security["success"] is False
        assert security["ip"] == "10.0.0.1"

    @pytest.mark.asyncio
    async def test_log_data_modification(self):
        sink = MemorySink()
        trail = HashChainAuditTrail(sink)
        entry = await trail.log_data_modification(
            AuditEventType.PROPERTY_UPDATE,
            "Property",
            17,
            {"askingPrice": 1_250_000},
            {"id": 3, "email": "a@b.com", "role": "broker"},
        )

        assert entry.data["entityType"] == "Property"
        assert entry.data["entityId"] == 17
        assert sink.stream("audit")[0].message == "Data Modification: PROPERTY_UPDATE"
        assert sink.stream("security") == []

    @pytest.mark.asyncio
    async def test_log_admin_action(self):
        sink = MemorySink()
        trail = HashChainAuditTrail(sink)
        entry = await trail.log_admin_action(
            "role_change",
            {"id": 1, "email": "admin@b.com", "role": "admin"},
            target=55,
            changes={"role": "manager"},
        )

        assert entry.event_type == "ADMIN_ACTION"
        assert entry.data["targetUser"]["id"] == 55
        assert sink.stream("audit")[0].level == "warn"
        assert sink.stream("security")[0].fields["eventType"] == "ADMIN_ACTION"

    @pytest.mark.asyncio
    async def test_helpers_share_the_chain(self):
        trail = HashChainAuditTrail(MemorySink())
        e1 = await trail.log_auth_event("USER_LOGIN", {"id": 1})
        e2 = await trail.log_admin_action("purge", {"id": 1})
        e3 = await trail.log_critical_event("MFA_DISABLE", {"method": "totp"})

        assert e2.previous_hash == e1.hash
        assert e3.previous_hash == e2.hash
