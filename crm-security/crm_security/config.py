"""
Security Core Configuration
===========================
Configuration constants read from the environment, plus per-component
configuration dataclasses whose defaults come from those constants.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


ENVIRONMENT = os.getenv("ENVIRONMENT", "production").lower()
DEMO_MODE = _env_bool("DEMO_MODE", "false")
SERVICE_NAME = os.getenv("SERVICE_NAME", "cre-crm")

# Audit storage
LOG_DIR = Path(os.getenv("LOG_DIR", "./logs"))
AUDIT_STREAM = "audit"
SECURITY_STREAM = "security"
AUDIT_RETENTION_DAYS = int(os.getenv("AUDIT_RETENTION_DAYS", "90"))
SECURITY_RETENTION_DAYS = int(os.getenv("SECURITY_RETENTION_DAYS", "90"))
APP_LOG_RETENTION_DAYS = int(os.getenv("APP_LOG_RETENTION_DAYS", "30"))

# Paths never audited by the middleware
AUDIT_EXCLUDED_PREFIXES = (
    "/health",
    "/uploads",
    "/api/auth/refresh",
    "/api/dashboard/stats",
    "/favicon.ico",
)

# Lockout
LOCKOUT_MAX_ATTEMPTS = int(os.getenv("LOCKOUT_MAX_ATTEMPTS", "5"))
LOCKOUT_ATTEMPT_WINDOW_SECONDS = int(os.getenv("LOCKOUT_ATTEMPT_WINDOW_SECONDS", str(30 * 60)))
LOCKOUT_DURATION_SECONDS = int(os.getenv("LOCKOUT_DURATION_SECONDS", str(30 * 60)))
LOCKOUT_MEMO_MAX_ENTRIES = int(os.getenv("LOCKOUT_MEMO_MAX_ENTRIES", "10000"))

# Fast store
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
FAST_STORE_RETRY_INTERVAL_SECONDS = float(os.getenv("FAST_STORE_RETRY_INTERVAL_SECONDS", "30"))

# Duplicate request guard
DUPLICATE_WINDOW_SECONDS = float(os.getenv("DUPLICATE_WINDOW_SECONDS", "2.0"))
DUPLICATE_MAX_ENTRIES = int(os.getenv("DUPLICATE_MAX_ENTRIES", "10000"))
DUPLICATE_SWEEP_HORIZON_SECONDS = float(os.getenv("DUPLICATE_SWEEP_HORIZON_SECONDS", "60"))
# Bypassed in development/demo unless explicitly enabled
DUPLICATE_GUARD_ENABLED = _env_bool(
    "DUPLICATE_GUARD_ENABLED",
    "false" if (ENVIRONMENT == "development" or DEMO_MODE) else "true",
)


@dataclass
class LockoutConfig:
    """Configuration for the login lockout tracker."""
    max_attempts: int = LOCKOUT_MAX_ATTEMPTS
    attempt_window: int = LOCKOUT_ATTEMPT_WINDOW_SECONDS  # seconds
    lockout_duration: int = LOCKOUT_DURATION_SECONDS      # seconds
    key_prefix: str = "auth"
    memo_max_entries: int = LOCKOUT_MEMO_MAX_ENTRIES


@dataclass
class DuplicateGuardConfig:
    """Configuration for the duplicate request guard."""
    window: float = DUPLICATE_WINDOW_SECONDS
    max_entries: int = DUPLICATE_MAX_ENTRIES
    sweep_horizon: float = DUPLICATE_SWEEP_HORIZON_SECONDS
    enabled: bool = DUPLICATE_GUARD_ENABLED


@dataclass
class AuditConfig:
    """Configuration for the audit trail and its file sink."""
    log_dir: Path = LOG_DIR
    service_name: str = SERVICE_NAME
    retention_days: Dict[str, int] = field(default_factory=lambda: {
        AUDIT_STREAM: AUDIT_RETENTION_DAYS,
        SECURITY_STREAM: SECURITY_RETENTION_DAYS,
    })
    default_retention_days: int = APP_LOG_RETENTION_DAYS
    excluded_prefixes: FrozenSet[str] = frozenset(AUDIT_EXCLUDED_PREFIXES)
