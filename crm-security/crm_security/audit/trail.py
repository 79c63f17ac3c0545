"""
Hash-Chained Audit Trail
========================
Tamper-evident audit trail. Every entry carries the hash of its
predecessor, and the chain head survives restarts by being recovered from
the newest persisted segment.

Pipeline for each ``record`` call:
1. Sanitize the payload (redaction always happens before hashing)
2. Assemble the entry without hash/previousHash
3. Under the chain lock: hash, persist to the audit stream, advance the head
4. For security event types, also emit a non-chained security record
"""

import asyncio
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Sequence, Set, Tuple

import structlog

from ..config import AUDIT_STREAM, SECURITY_STREAM
from ..errors import AuditPersistFailure
from ..sanitizer import redact, scrub_text
from .chain import ChainState
from .classifier import SEVERITY_WARN, SecurityEventClassifier
from .event_types import SECURITY_EVENT_TYPES, AuditEventType, normalize_event_type
from .hashing import compute_entry_hash, verify_entries
from .models import Actor, AuditEntry, RequestSnapshot, ResponseSnapshot
from .segments import recover_last_hash, verify_segment
from .sink import AuditSink

logger = structlog.get_logger(__name__)

AUDIT_MESSAGE = "Audit Log Entry"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(moment: datetime) -> str:
    # Millisecond precision with a Z suffix, matching the persisted schema
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class HashChainAuditTrail:
    """
    Hash-chained audit trail over an append-only sink.

    Usage:
        trail = HashChainAuditTrail(RotatingFileSink("./logs"), log_dir="./logs")
        await trail.initialize()
        await trail.record(AuditEventType.PASSWORD_CHANGE, {"userId": 7}, actor=user)

    ``record`` never raises: persistence failures are logged and the chain
    head only moves past entries that reached the sink.
    """

    def __init__(
        self,
        sink: AuditSink,
        log_dir: Optional[Any] = None,
        classifier: Optional[SecurityEventClassifier] = None,
        sensitive_fields: Optional[Iterable[str]] = None,
        security_event_types: FrozenSet[str] = SECURITY_EVENT_TYPES,
        stream: str = AUDIT_STREAM,
        security_stream: str = SECURITY_STREAM,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.sink = sink
        self.log_dir = Path(log_dir) if log_dir is not None else None
        self.classifier = classifier or SecurityEventClassifier()
        self.sensitive_fields = tuple(sensitive_fields) if sensitive_fields is not None else None
        self.security_event_types = frozenset(normalize_event_type(t) for t in security_event_types)
        self.stream = stream
        self.security_stream = security_stream
        self._clock = clock
        self._chain = ChainState()
        self._initialized = False
        self._pending: Set[asyncio.Task] = set()
        self._tail: Optional[asyncio.Task] = None

    @property
    def chain(self) -> ChainState:
        return self._chain

    @property
    def last_hash(self) -> str:
        return self._chain.last_hash

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self, force: bool = False) -> ChainState:
        """
        Recover the chain head from persisted segments.

        Runs once; later calls are no-ops unless ``force`` is set.

        Returns:
            The trail's ChainState
        """
        async with self._chain.lock:
            if self._initialized and not force:
                return self._chain

            last_hash, source = await asyncio.to_thread(recover_last_hash, self.log_dir, self.stream)
            self._chain.reset(last_hash, source)
            self._initialized = True

        logger.info(
            "hash_chain_initialized",
            source=source,
            last_hash=last_hash[:16],
            log_dir=str(self.log_dir) if self.log_dir else None,
        )
        return self._chain

    def _sanitize(self, value: Any) -> Any:
        return redact(value, self.sensitive_fields)

    def build_entry(
        self,
        event_type,
        payload: Any = None,
        actor: Any = None,
        request: Optional[RequestSnapshot] = None,
        response: Optional[ResponseSnapshot] = None,
        correlation_id: Optional[str] = None,
    ) -> AuditEntry:
        """
        Assemble a sanitized, not yet chained entry.

        With a request snapshot the payload becomes the request body;
        otherwise it is stored as ``data``.
        """
        data = None
        if request is not None:
            body = payload if payload is not None else request.body
            request = replace(
                request,
                method=scrub_text(request.method),
                path=scrub_text(request.path),
                url=scrub_text(request.url),
                ip=scrub_text(request.ip),
                user_agent=scrub_text(request.user_agent),
                body=self._sanitize(body),
                query=self._sanitize(request.query) if request.query else request.query,
            )
        elif payload is not None:
            data = self._sanitize(payload)

        actor = Actor.from_user(actor)
        if actor is not None:
            # Actor fields are client-influenced (login emails); keep them hashable
            actor = Actor(id=scrub_text(actor.id), email=scrub_text(actor.email), role=scrub_text(actor.role))

        return AuditEntry(
            correlation_id=scrub_text(correlation_id) or str(uuid.uuid4()),
            timestamp=_isoformat(self._clock()),
            event_type=scrub_text(normalize_event_type(event_type)),
            actor=actor,
            request=request,
            response=response,
            data=data,
        )

    async def record(
        self,
        event_type,
        payload: Any = None,
        actor: Any = None,
        severity: Optional[str] = None,
        *,
        request: Optional[RequestSnapshot] = None,
        response: Optional[ResponseSnapshot] = None,
        correlation_id: Optional[str] = None,
        message: str = AUDIT_MESSAGE,
    ) -> AuditEntry:
        """
        Sanitize, chain and persist one audit entry.

        Args:
            event_type: AuditEventType or any event type string
            payload: Raw event data (sanitized before hashing)
            actor: User the event is attributed to (Actor, mapping or object)
            severity: Log level override; classified from type/status otherwise
            request: Snapshot of the HTTP request, if any
            response: Snapshot of the HTTP response, if any
            correlation_id: Correlation id (a new UUID4 if omitted)
            message: Sink message for the audit stream

        Returns:
            The entry; unchained if it could not be hashed
        """
        if not self._initialized:
            await self.initialize()

        entry = self.build_entry(event_type, payload, actor, request, response, correlation_id)
        status_code = response.status_code if response else None
        level = severity or self.classifier.severity_for(entry.event_type, status_code)

        async with self._chain.lock:
            previous_hash = self._chain.last_hash
            try:
                entry_hash = compute_entry_hash(entry, previous_hash)
            except (TypeError, ValueError) as e:
                logger.error(
                    "audit_entry_unhashable",
                    correlation_id=entry.correlation_id,
                    event_type=entry.event_type,
                    error=str(e),
                )
                return entry
            entry = entry.chained(previous_hash, entry_hash)
            persisted = await self._persist(self.stream, level, message, entry.to_dict(), entry)
            if persisted:
                self._chain.advance(entry.hash)

        if persisted and entry.event_type in self.security_event_types:
            await self._persist(
                self.security_stream,
                level,
                f"Security Event: {entry.event_type}",
                self._security_record(entry),
                entry,
            )

        return entry

    # =========================================================================
    # Background recording
    # =========================================================================

    def run_in_background(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> asyncio.Task:
        """
        Schedule an audit coroutine without awaiting it.

        Tasks run one after another in scheduling order, so entries reach the
        chain in the order the events happened. ``drain`` waits for them.

        Returns:
            The scheduled task
        """
        previous = self._tail
        task = asyncio.create_task(self._run_after(previous, func, args, kwargs))
        self._tail = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def record_in_background(
        self, event_type, payload: Any = None, actor: Any = None, **kwargs: Any
    ) -> asyncio.Task:
        """``record`` scheduled through ``run_in_background``."""
        return self.run_in_background(self.record, event_type, payload, actor, **kwargs)

    async def _run_after(
        self,
        previous: Optional[asyncio.Task],
        func: Callable[..., Awaitable[Any]],
        args: Tuple[Any, ...],
        kwargs: Dict[str, Any],
    ) -> Any:
        # A tail left over from another event loop (test clients) cannot be awaited here
        if previous is not None and not previous.done() and previous.get_loop() is asyncio.get_running_loop():
            await asyncio.wait({previous})
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            logger.error("audit_background_failed", error=str(e), error_type=type(e).__name__)
            return None

    @property
    def pending(self) -> int:
        """Number of background audit writes not yet finished."""
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every background audit write scheduled so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _persist(
        self,
        stream: str,
        level: str,
        message: str,
        fields: Mapping[str, Any],
        entry: AuditEntry,
    ) -> bool:
        try:
            await self._write(stream, level, message, fields)
        except AuditPersistFailure as failure:
            logger.error(
                "audit_persist_failed",
                stream=failure.stream,
                correlation_id=entry.correlation_id,
                event_type=entry.event_type,
                error=failure.message,
            )
            return False
        return True

    async def _write(self, stream: str, level: str, message: str, fields: Mapping[str, Any]) -> None:
        """
        Write to the sink.

        Raises:
            AuditPersistFailure: Whatever the sink raised, wrapped
        """
        try:
            await self.sink.write(stream, level, message, fields)
        except Exception as e:
            raise AuditPersistFailure(f"Failed to persist audit entry: {e}", stream=stream, cause=e) from e

    def _security_record(self, entry: AuditEntry) -> Dict[str, Any]:
        actor = entry.actor or Actor(id=None)
        if entry.response is not None:
            success = entry.response.status_code < 400
        elif isinstance(entry.data, Mapping):
            success = bool(entry.data.get("success", True))
        else:
            success = True
        ip = entry.request.ip if entry.request else None
        if ip is None and isinstance(entry.data, Mapping):
            ip = entry.data.get("ip")
        return {
            "correlationId": entry.correlation_id,
            "eventType": entry.event_type,
            "userId": actor.id,
            "email": actor.email,
            "role": actor.role,
            "ip": ip,
            "timestamp": entry.timestamp,
            "success": success,
        }

    # =========================================================================
    # Convenience helpers for non-HTTP events
    # =========================================================================

    async def log_auth_event(
        self,
        event_type,
        actor: Any,
        ip: Optional[str] = None,
        success: bool = True,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> AuditEntry:
        """Record an authentication event; failures log at "warn"."""
        event_type = normalize_event_type(event_type)
        payload = {"ip": ip, "success": success, "metadata": dict(metadata or {})}
        severity = None if success else SEVERITY_WARN
        return await self.record(
            event_type,
            payload,
            actor=actor,
            severity=severity,
            message=f"Auth Event: {event_type}",
        )

    async def log_data_modification(
        self,
        event_type,
        entity_type: str,
        entity_id: Any,
        changes: Optional[Mapping[str, Any]],
        actor: Any,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> AuditEntry:
        """Record a create/update/delete of a business entity."""
        event_type = normalize_event_type(event_type)
        payload = {
            "entityType": entity_type,
            "entityId": entity_id,
            "changes": dict(changes or {}),
            "metadata": dict(metadata or {}),
        }
        return await self.record(
            event_type,
            payload,
            actor=actor,
            message=f"Data Modification: {event_type}",
        )

    async def log_admin_action(
        self,
        action: str,
        admin: Any,
        target: Any = None,
        changes: Optional[Mapping[str, Any]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> AuditEntry:
        """Record an administrative action; always logged at "warn"."""
        target_actor = Actor.from_user(target) if not isinstance(target, (str, int)) else Actor(id=target)
        payload = {
            "action": action,
            "targetUser": target_actor.to_dict() if target_actor else None,
            "changes": dict(changes or {}),
            "metadata": dict(metadata or {}),
        }
        return await self.record(
            AuditEventType.ADMIN_ACTION,
            payload,
            actor=admin,
            severity=SEVERITY_WARN,
            message=f"Admin Action: {action}",
        )

    async def log_critical_event(self, event_type, data: Any = None, actor: Any = None) -> AuditEntry:
        """Record a critical event outside a request/response cycle."""
        event_type = normalize_event_type(event_type)
        return await self.record(event_type, data, actor=actor, message=f"Critical Event: {event_type}")

    # =========================================================================
    # Verification
    # =========================================================================

    async def verify(self, segment, expected_previous_hash: Optional[str] = None) -> bool:
        """
        Replay a persisted segment and check every hash/previousHash link.

        Args:
            segment: Path to a plain or gzip-compressed segment
            expected_previous_hash: Hash the first entry must link to, if known

        Returns:
            False at the first break
        """
        return await asyncio.to_thread(verify_segment, segment, expected_previous_hash)

    @staticmethod
    def verify_entries(
        entries: Sequence[AuditEntry],
        expected_previous_hash: Optional[str] = None,
    ) -> Tuple[bool, Optional[int]]:
        """Verify an in-memory sequence of entries."""
        return verify_entries(entries, expected_previous_hash)
