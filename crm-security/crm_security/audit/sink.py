"""
Audit Sinks
===========
Append-only destinations for audit and security records.

A sink receives ``write(stream, level, message, fields)`` and appends one
JSON line per record. ``RotatingFileSink`` keeps one file per stream per
day, gzips the previous days' files and prunes files past retention.
"""

import asyncio
import gzip
import json
import os
import shutil
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

import structlog

from ..config import APP_LOG_RETENTION_DAYS, AUDIT_RETENTION_DAYS, SECURITY_RETENTION_DAYS, SERVICE_NAME
from .segments import is_segment_name

logger = structlog.get_logger(__name__)


class AuditSink(ABC):
    """Append-only log sink contract."""

    @abstractmethod
    async def write(self, stream: str, level: str, message: str, fields: Mapping[str, Any]) -> None:
        """
        Append one record to a stream.

        Args:
            stream: Logical stream ("audit", "security", ...)
            level: "info", "warn" or "error"
            message: Short human-readable message
            fields: Structured record body
        """

    async def close(self) -> None:
        """Release any resources held by the sink."""
        return None


@dataclass
class SinkRecord:
    """A record captured by MemorySink."""
    stream: str
    level: str
    message: str
    fields: Dict[str, Any]


class MemorySink(AuditSink):
    """
    In-memory sink.

    For development and testing only.
    Use RotatingFileSink in production.
    """

    def __init__(self):
        self.records: List[SinkRecord] = []

    async def write(self, stream: str, level: str, message: str, fields: Mapping[str, Any]) -> None:
        # Round-trip through JSON so captured records match what a file holds
        body = json.loads(json.dumps(dict(fields), default=str))
        self.records.append(SinkRecord(stream, level, message, body))

    def stream(self, name: str) -> List[SinkRecord]:
        """Records written to one stream, in write order."""
        return [r for r in self.records if r.stream == name]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RotatingFileSink(AuditSink):
    """
    Daily-rotating JSON-lines file sink.

    - One file per stream per day: ``<stream>-YYYY-MM-DD.log``
    - On the first write of a new day, older plain files are gzipped to
      ``.log.gz`` (keeping their modification time)
    - Files older than the stream's retention are deleted

    File I/O runs in a worker thread; a lock keeps lines whole.
    """

    def __init__(
        self,
        log_dir,
        retention_days: Optional[Mapping[str, int]] = None,
        default_retention_days: int = APP_LOG_RETENTION_DAYS,
        service_name: str = SERVICE_NAME,
        compress: bool = True,
        fsync: bool = False,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.log_dir = Path(log_dir)
        self.retention_days = dict(retention_days or {
            "audit": AUDIT_RETENTION_DAYS,
            "security": SECURITY_RETENTION_DAYS,
        })
        self.default_retention_days = default_retention_days
        self.service_name = service_name
        self.compress = compress
        self.fsync = fsync
        self._clock = clock
        self._lock = threading.Lock()
        self._current_day: Dict[str, date] = {}
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def segment_path(self, stream: str, day: date) -> Path:
        return self.log_dir / f"{stream}-{day.isoformat()}.log"

    async def write(self, stream: str, level: str, message: str, fields: Mapping[str, Any]) -> None:
        record = dict(fields)
        record["level"] = level
        record["message"] = message
        record["service"] = self.service_name
        line = json.dumps(record, ensure_ascii=False, default=str)
        await asyncio.to_thread(self._append, stream, line)

    def _append(self, stream: str, line: str) -> None:
        with self._lock:
            today = self._clock().date()
            if self._current_day.get(stream) != today:
                self._rotate(stream, today)
                self._current_day[stream] = today

            with open(self.segment_path(stream, today), "a", encoding="utf-8") as f:
                f.write(line + "\n")
                f.flush()
                if self.fsync:
                    os.fsync(f.fileno())

    def rotate(self, stream: str) -> None:
        """Compress and prune a stream's segments as of today."""
        with self._lock:
            self._rotate(stream, self._clock().date())

    def _rotate(self, stream: str, today: date) -> None:
        current_name = self.segment_path(stream, today).name

        for path in sorted(self.log_dir.iterdir()):
            if not path.is_file() or not is_segment_name(path.name, stream):
                continue
            if self.compress and path.name.endswith(".log") and path.name != current_name:
                self._compress(path)

        self._prune(stream, today)

    def _compress(self, path: Path) -> None:
        target = path.with_name(path.name + ".gz")
        try:
            with open(path, "rb") as src, gzip.open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)
            # Recovery orders segments by mtime; keep the original one
            shutil.copystat(path, target)
            path.unlink()
            logger.info("audit_segment_compressed", segment=target.name)
        except OSError as e:
            logger.error("audit_segment_compression_failed", segment=path.name, error=str(e))
            if target.exists() and path.exists():
                target.unlink()

    def _prune(self, stream: str, today: date) -> None:
        retention = self.retention_days.get(stream, self.default_retention_days)
        cutoff = today - timedelta(days=retention)

        for path in self.log_dir.iterdir():
            if not path.is_file() or not is_segment_name(path.name, stream):
                continue
            stamp = path.name[len(stream) + 1:len(stream) + 11]
            try:
                day = date.fromisoformat(stamp)
            except ValueError:
                continue
            if day < cutoff:
                try:
                    path.unlink()
                    logger.info("audit_segment_expired", segment=path.name, retention_days=retention)
                except OSError as e:
                    logger.error("audit_segment_prune_failed", segment=path.name, error=str(e))
