"""
Audit Event Types
=================
Semantic event types recorded in the audit trail. The set is open-ended:
``record`` accepts any string, these are the ones the core itself emits.
"""

from enum import Enum


class AuditEventType(str, Enum):
    """Standard audit event types."""
    # Authentication
    USER_LOGIN = "USER_LOGIN"
    USER_LOGOUT = "USER_LOGOUT"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGIN_BLOCKED = "LOGIN_BLOCKED"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    PASSWORD_CHANGE = "PASSWORD_CHANGE"
    PASSWORD_RESET = "PASSWORD_RESET"

    # MFA
    MFA_OPERATION = "MFA_OPERATION"
    MFA_ENABLE = "MFA_ENABLE"
    MFA_DISABLE = "MFA_DISABLE"

    # User administration
    USER_CREATE = "USER_CREATE"
    USER_UPDATE = "USER_UPDATE"
    USER_DELETE = "USER_DELETE"
    ADMIN_ACTION = "ADMIN_ACTION"

    # Properties
    PROPERTY_CREATE = "PROPERTY_CREATE"
    PROPERTY_UPDATE = "PROPERTY_UPDATE"
    PROPERTY_DELETE = "PROPERTY_DELETE"

    # Deals
    DEAL_CREATE = "DEAL_CREATE"
    DEAL_UPDATE = "DEAL_UPDATE"
    DEAL_DELETE = "DEAL_DELETE"

    # Security
    DUPLICATE_REQUEST = "DUPLICATE_REQUEST"

    # Fallback
    API_REQUEST = "API_REQUEST"


# Always logged at "warn", whatever the response status
CRITICAL_EVENT_TYPES = frozenset({
    AuditEventType.PASSWORD_CHANGE.value,
    AuditEventType.PASSWORD_RESET.value,
    AuditEventType.USER_DELETE.value,
    AuditEventType.MFA_OPERATION.value,
    AuditEventType.MFA_ENABLE.value,
    AuditEventType.MFA_DISABLE.value,
    AuditEventType.ADMIN_ACTION.value,
    AuditEventType.USER_CREATE.value,
    AuditEventType.USER_UPDATE.value,
    AuditEventType.ACCOUNT_LOCKED.value,
})

# Also mirrored to the non-chained security stream for alerting
SECURITY_EVENT_TYPES = frozenset({
    AuditEventType.USER_LOGIN.value,
    AuditEventType.USER_LOGOUT.value,
    AuditEventType.LOGIN_FAILED.value,
    AuditEventType.LOGIN_BLOCKED.value,
    AuditEventType.ACCOUNT_LOCKED.value,
    AuditEventType.PASSWORD_CHANGE.value,
    AuditEventType.PASSWORD_RESET.value,
    AuditEventType.MFA_OPERATION.value,
    AuditEventType.MFA_ENABLE.value,
    AuditEventType.MFA_DISABLE.value,
    AuditEventType.ADMIN_ACTION.value,
})


def normalize_event_type(event_type) -> str:
    """Return the string value of an event type (enum or plain string)."""
    if isinstance(event_type, AuditEventType):
        return event_type.value
    return str(event_type)
