"""
Audit Hashing
=============
Canonical serialization, hash computation and chain verification for
audit entries.

    hash = SHA256(canonical(entry without hash/previousHash) + previousHash)
"""

import hashlib
import json
import re
from typing import Any, Dict, Iterable, Optional, Tuple

import structlog

from .models import AuditEntry

logger = structlog.get_logger(__name__)

GENESIS_SOURCE = "GENESIS"
GENESIS_HASH = hashlib.sha256(b"GENESIS").hexdigest()

_HEX_SHA256 = re.compile(r"^[0-9a-f]{64}$")


def is_sha256_hex(value: Any) -> bool:
    """True if value looks like a lower-case hex SHA-256 digest."""
    return isinstance(value, str) and bool(_HEX_SHA256.match(value))


def canonical_serialize(body: Dict[str, Any]) -> str:
    """
    Produce deterministic JSON for an entry body.

    - Sorts keys for stability
    - Uses compact separators
    - Leaves non-ASCII characters unescaped
    """
    return json.dumps(
        body,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def compute_entry_hash(entry: AuditEntry, previous_hash: str) -> str:
    """
    Compute the chain hash for an entry.

    Args:
        entry: The entry (its own hash/previous_hash are ignored)
        previous_hash: Hash of the preceding entry, or GENESIS_HASH

    Returns:
        Hex SHA-256 digest
    """
    content = canonical_serialize(entry.body_dict()) + previous_hash
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def verify_entries(
    entries: Iterable[AuditEntry],
    expected_previous_hash: Optional[str] = None,
) -> Tuple[bool, Optional[int]]:
    """
    Verify the integrity of a sequence of audit entries.

    Args:
        entries: Entries in chronological order
        expected_previous_hash: If given, the first entry must link to it
            (GENESIS_HASH for a chain that starts from scratch)

    Returns:
        Tuple of (is_valid, first_invalid_index)
    """
    previous: Optional[str] = expected_previous_hash

    for i, entry in enumerate(entries):
        if previous is not None and entry.previous_hash != previous:
            logger.warning(
                "audit_chain_linkage_broken",
                correlation_id=entry.correlation_id,
                index=i,
            )
            return False, i

        expected_hash = compute_entry_hash(entry, entry.previous_hash)
        if entry.hash != expected_hash:
            logger.warning(
                "audit_chain_integrity_violation",
                correlation_id=entry.correlation_id,
                index=i,
                expected_hash=expected_hash[:16],
                actual_hash=(entry.hash or "")[:16],
            )
            return False, i

        previous = entry.hash

    return True, None
