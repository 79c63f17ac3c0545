"""
Audit Models
============
Data models for audit trail entries.

The wire form (``to_dict``) keeps the camelCase schema used by the
persisted JSON-lines segments.
"""

import re
from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional

# Envelope keys added by sinks around an entry; not part of the hashed body
ENVELOPE_KEYS = frozenset({"level", "message", "service", "stream"})

_DURATION_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*ms\s*$")


@dataclass(frozen=True)
class Actor:
    """The authenticated user an event is attributed to."""
    id: Any
    email: Optional[str] = None
    role: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email, "role": self.role}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional["Actor"]:
        if not data:
            return None
        return cls(id=data.get("id"), email=data.get("email"), role=data.get("role"))

    @classmethod
    def from_user(cls, user: Any) -> Optional["Actor"]:
        """Build an actor from a user mapping or an object with id/email/role."""
        if user is None:
            return None
        if isinstance(user, Actor):
            return user
        if isinstance(user, Mapping):
            return cls.from_dict(user)
        return cls(
            id=getattr(user, "id", None),
            email=getattr(user, "email", None),
            role=getattr(user, "role", None),
        )


@dataclass(frozen=True)
class RequestSnapshot:
    """Sanitized snapshot of the HTTP request an event describes."""
    method: str
    path: str
    url: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    body: Any = None
    query: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "url": self.url,
            "path": self.path,
            "ip": self.ip,
            "userAgent": self.user_agent,
            "body": self.body,
            "query": self.query,
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional["RequestSnapshot"]:
        if not data:
            return None
        return cls(
            method=data.get("method"),
            path=data.get("path"),
            url=data.get("url"),
            ip=data.get("ip"),
            user_agent=data.get("userAgent"),
            body=data.get("body"),
            query=data.get("query"),
        )


@dataclass(frozen=True)
class ResponseSnapshot:
    """Outcome of the HTTP request an event describes."""
    status_code: int
    duration_ms: int = 0

    def __post_init__(self):
        # Whole milliseconds only, so the "<n>ms" wire form parses back exactly
        object.__setattr__(self, "status_code", int(self.status_code))
        object.__setattr__(self, "duration_ms", int(round(self.duration_ms or 0)))

    def to_dict(self) -> Dict[str, Any]:
        return {"statusCode": self.status_code, "duration": f"{self.duration_ms}ms"}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional["ResponseSnapshot"]:
        if not data:
            return None
        duration = data.get("duration", 0)
        if isinstance(duration, str):
            match = _DURATION_PATTERN.match(duration)
            duration = int(float(match.group(1))) if match else 0
        return cls(status_code=int(data.get("statusCode", 0)), duration_ms=int(duration or 0))


@dataclass(frozen=True)
class AuditEntry:
    """
    A single hash-chained audit entry.

    Immutable once written; never updated or deleted.
    """
    correlation_id: str
    timestamp: str
    event_type: str
    actor: Optional[Actor] = None
    request: Optional[RequestSnapshot] = None
    response: Optional[ResponseSnapshot] = None
    data: Any = None
    hash: str = ""
    previous_hash: str = ""

    def body_dict(self) -> Dict[str, Any]:
        """The hashed content: everything except hash/previousHash."""
        return {
            "correlationId": self.correlation_id,
            "timestamp": self.timestamp,
            "eventType": self.event_type,
            "user": self.actor.to_dict() if self.actor else None,
            "request": self.request.to_dict() if self.request else None,
            "response": self.response.to_dict() if self.response else None,
            "data": self.data,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted wire form."""
        d = self.body_dict()
        d["hash"] = self.hash
        d["previousHash"] = self.previous_hash
        return d

    def chained(self, previous_hash: str, entry_hash: str) -> "AuditEntry":
        """Return a copy carrying its chain link."""
        return replace(self, previous_hash=previous_hash, hash=entry_hash)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AuditEntry":
        """Parse a persisted entry, ignoring sink envelope keys."""
        return cls(
            correlation_id=data.get("correlationId"),
            timestamp=data.get("timestamp"),
            event_type=data.get("eventType"),
            actor=Actor.from_dict(data.get("user")),
            request=RequestSnapshot.from_dict(data.get("request")),
            response=ResponseSnapshot.from_dict(data.get("response")),
            data=data.get("data"),
            hash=data.get("hash", ""),
            previous_hash=data.get("previousHash", ""),
        )
