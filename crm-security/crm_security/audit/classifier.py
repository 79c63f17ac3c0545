"""
Security Event Classifier
=========================
Maps an HTTP request to a semantic audit event type and log severity.

Rules are evaluated top-down against the path with its API mount prefix
removed; the first match wins. A rule pattern matches at a path segment
boundary, so ``properties`` matches ``/properties`` and
``/properties/42`` but not ``/propertiesearch``.
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional, Sequence, Tuple

from ..config import AUDIT_EXCLUDED_PREFIXES
from .event_types import CRITICAL_EVENT_TYPES, AuditEventType, normalize_event_type

SEVERITY_INFO = "info"
SEVERITY_WARN = "warn"
SEVERITY_ERROR = "error"

DEFAULT_MOUNT_PREFIXES = ("/api/v1", "/api")


@dataclass(frozen=True)
class ClassificationRule:
    """
    One row of the rule table.

    Attributes:
        pattern: Path prefix relative to the mount point, without leading slash
        event_type: Event type assigned on match
        methods: HTTP methods the rule applies to (None means any)
    """
    pattern: str
    event_type: str
    methods: Optional[FrozenSet[str]] = None

    def matches(self, method: str, path: str) -> bool:
        if self.methods is not None and method.upper() not in self.methods:
            return False
        prefix = "/" + self.pattern.strip("/")
        return path == prefix or path.startswith(prefix + "/")


def _rule(pattern: str, event_type: AuditEventType, *methods: str) -> ClassificationRule:
    return ClassificationRule(pattern, event_type.value, frozenset(methods) if methods else None)


DEFAULT_RULES: Tuple[ClassificationRule, ...] = (
    _rule("auth/login", AuditEventType.USER_LOGIN),
    _rule("auth/logout", AuditEventType.USER_LOGOUT),
    _rule("auth/change-password", AuditEventType.PASSWORD_CHANGE),
    _rule("auth/reset-password", AuditEventType.PASSWORD_RESET),
    _rule("auth/mfa", AuditEventType.MFA_OPERATION),
    _rule("admin/users", AuditEventType.USER_UPDATE, "PUT", "PATCH"),
    _rule("admin/users", AuditEventType.USER_DELETE, "DELETE"),
    _rule("admin/users", AuditEventType.USER_CREATE, "POST"),
    _rule("properties", AuditEventType.PROPERTY_CREATE, "POST"),
    _rule("properties", AuditEventType.PROPERTY_UPDATE, "PUT", "PATCH"),
    _rule("properties", AuditEventType.PROPERTY_DELETE, "DELETE"),
    _rule("deals", AuditEventType.DEAL_CREATE, "POST"),
    _rule("deals", AuditEventType.DEAL_UPDATE, "PUT", "PATCH"),
    _rule("deals", AuditEventType.DEAL_DELETE, "DELETE"),
    _rule("admin", AuditEventType.ADMIN_ACTION),
)


class SecurityEventClassifier:
    """
    Classifies requests into audit event types and severities.

    Usage:
        classifier = SecurityEventClassifier()
        event_type, severity = classifier.classify("POST", "/api/deals", 201)
        # ("DEAL_CREATE", "info")
    """

    def __init__(
        self,
        rules: Sequence[ClassificationRule] = DEFAULT_RULES,
        mount_prefixes: Iterable[str] = DEFAULT_MOUNT_PREFIXES,
        excluded_prefixes: Iterable[str] = AUDIT_EXCLUDED_PREFIXES,
        critical_event_types: FrozenSet[str] = CRITICAL_EVENT_TYPES,
        fallback: str = AuditEventType.API_REQUEST.value,
    ):
        self.rules = tuple(rules)
        # Longest prefix first so "/api/v1" wins over "/api"
        self.mount_prefixes = tuple(sorted(mount_prefixes, key=len, reverse=True))
        self.excluded_prefixes = tuple(excluded_prefixes)
        self.critical_event_types = frozenset(critical_event_types)
        self.fallback = fallback

    def _strip_mount(self, path: str) -> str:
        for prefix in self.mount_prefixes:
            if path == prefix:
                return "/"
            if path.startswith(prefix + "/"):
                return path[len(prefix):]
        return path

    def event_type_for(self, method: str, path: str) -> str:
        """Return the event type of the first matching rule, or the fallback."""
        relative = self._strip_mount(path.split("?", 1)[0].rstrip("/") or "/")
        for rule in self.rules:
            if rule.matches(method, relative):
                return rule.event_type
        return self.fallback

    def severity_for(self, event_type, status_code: Optional[int] = None) -> str:
        """
        Determine the log severity for an event.

        Critical event types are always "warn"; otherwise 5xx is "error",
        4xx is "warn" and everything else "info".
        """
        if normalize_event_type(event_type) in self.critical_event_types:
            return SEVERITY_WARN
        if status_code is not None and status_code >= 500:
            return SEVERITY_ERROR
        if status_code is not None and status_code >= 400:
            return SEVERITY_WARN
        return SEVERITY_INFO

    def classify(self, method: str, path: str, status_code: Optional[int] = None) -> Tuple[str, str]:
        """Return ``(event_type, severity)`` for a completed request."""
        event_type = self.event_type_for(method, path)
        return event_type, self.severity_for(event_type, status_code)

    def should_audit(self, path: str) -> bool:
        """False for health checks, static uploads and high-volume polling routes."""
        return not any(path.startswith(prefix) for prefix in self.excluded_prefixes)
