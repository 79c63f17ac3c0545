"""
Audit Segments
==============
Reading rotated audit log segments (plain and gzip-compressed) for chain
recovery and verification.

Segments are named ``<stream>-YYYY-MM-DD.log`` and become
``<stream>-YYYY-MM-DD.log.gz`` once rotated.
"""

import gzip
import json
import zlib
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

import structlog

from ..errors import ChainRecoveryError
from .hashing import GENESIS_HASH, GENESIS_SOURCE, is_sha256_hex, verify_entries
from .models import AuditEntry

logger = structlog.get_logger(__name__)

PathLike = Union[str, Path]


def is_segment_name(name: str, stream: str) -> bool:
    """True for ``<stream>-*.log`` and ``<stream>-*.log.gz`` filenames."""
    return name.startswith(f"{stream}-") and (name.endswith(".log") or name.endswith(".log.gz"))


def list_segments(log_dir: PathLike, stream: str = "audit") -> List[Path]:
    """
    List a stream's segments, newest first by modification time.

    Args:
        log_dir: Directory holding the segments
        stream: Stream name (filename prefix)

    Returns:
        Segment paths, newest first; empty if the directory does not exist
    """
    directory = Path(log_dir)
    if not directory.is_dir():
        return []

    segments = [
        path for path in directory.iterdir()
        if path.is_file() and is_segment_name(path.name, stream)
    ]
    # Name as tie-breaker: same-second rotations still sort by date stamp
    return sorted(segments, key=lambda p: (p.stat().st_mtime, p.name), reverse=True)


def read_segment(path: PathLike) -> str:
    """
    Read a segment, decompressing it transparently.

    Raises:
        ChainRecoveryError: If the file cannot be read or decompressed
    """
    path = Path(path)
    try:
        if path.name.endswith(".gz"):
            with gzip.open(path, "rb") as f:
                raw = f.read()
        else:
            raw = path.read_bytes()
        return raw.decode("utf-8")
    except (OSError, EOFError, zlib.error, UnicodeDecodeError) as e:
        raise ChainRecoveryError(
            f"Unable to read segment {path.name}: {e}",
            segment=path.name,
            cause=e,
        ) from e


def last_hash_in_text(text: str) -> Optional[str]:
    """
    Find the hash of the last usable entry in a segment's text.

    Walks lines from the end; blank, unparsable (e.g. partially written)
    lines and lines without a valid ``hash`` are skipped.
    """
    for line in reversed(text.splitlines()):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except ValueError:
            logger.debug("audit_segment_line_unparsable", preview=line[:32])
            continue
        if isinstance(record, dict) and is_sha256_hex(record.get("hash")):
            return record["hash"]
    return None


def recover_last_hash(log_dir: Optional[PathLike], stream: str = "audit") -> Tuple[str, str]:
    """
    Recover the chain head from persisted segments.

    Segments are tried newest first; a segment that is unreadable, empty or
    holds no usable entry falls through to the next older one. With nothing
    usable, the chain starts from GENESIS.

    Args:
        log_dir: Directory holding the segments (None means GENESIS)
        stream: Stream name

    Returns:
        Tuple of (last_hash, source) where source is a segment filename or
        "GENESIS"
    """
    if log_dir is None:
        return GENESIS_HASH, GENESIS_SOURCE

    try:
        segments = list_segments(log_dir, stream)
    except OSError as e:
        logger.error("audit_segment_listing_failed", log_dir=str(log_dir), error=str(e))
        return GENESIS_HASH, GENESIS_SOURCE

    for segment in segments:
        try:
            text = read_segment(segment)
        except ChainRecoveryError as e:
            logger.warning("audit_segment_unreadable", segment=e.segment, error=str(e.cause))
            continue

        last_hash = last_hash_in_text(text)
        if last_hash is None:
            logger.info("audit_segment_without_entries", segment=segment.name)
            continue
        return last_hash, segment.name

    return GENESIS_HASH, GENESIS_SOURCE


def iter_segment_entries(path: PathLike) -> Iterator[AuditEntry]:
    """
    Yield the entries of a segment in file order.

    Raises:
        ChainRecoveryError: If the segment cannot be read or holds a line
            that is not an audit entry
    """
    text = read_segment(path)
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except ValueError as e:
            raise ChainRecoveryError(
                f"Unparsable line {lineno} in {Path(path).name}",
                segment=Path(path).name,
                cause=e,
            ) from e
        if not isinstance(record, dict) or "hash" not in record:
            raise ChainRecoveryError(
                f"Line {lineno} in {Path(path).name} is not an audit entry",
                segment=Path(path).name,
            )
        yield AuditEntry.from_dict(record)


def verify_segment(path: PathLike, expected_previous_hash: Optional[str] = None) -> bool:
    """
    Replay a segment and confirm every hash/previousHash relationship.

    Args:
        path: Plain or gzip-compressed segment
        expected_previous_hash: If given, the first entry must link to it

    Returns:
        False at the first break (or if the segment cannot be read)
    """
    try:
        entries = list(iter_segment_entries(path))
    except ChainRecoveryError as e:
        logger.warning("audit_segment_verification_failed", segment=e.segment, error=e.message)
        return False

    is_valid, first_invalid = verify_entries(entries, expected_previous_hash)
    if not is_valid:
        logger.warning(
            "audit_segment_chain_broken",
            segment=Path(path).name,
            index=first_invalid,
        )
    return is_valid
