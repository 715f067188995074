"""
Audit sink - write side of the audit/journal subsystem.

Every price resolution and every registry mutation is reported here. A sink
signals a rejected write by raising AuditWriteError; the registry treats that
as fatal (the mutation rolls back), the resolver treats it as non-fatal and
escalates it through an ErrorReporter.

Payloads carry ids and resolved values only, so deleting an override never
rewrites its history.
"""
import json
import sqlite3
import threading
from contextlib import closing
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from ..errors import AuditWriteError
from ..utils.logging import get_logger

log = get_logger(__name__)

EVENT_PRICE_RESOLVED = "price.resolved"
EVENT_OVERRIDE_CREATED = "override.created"
EVENT_OVERRIDE_UPDATED = "override.updated"
EVENT_OVERRIDE_DEACTIVATED = "override.deactivated"
EVENT_OVERRIDE_DELETED = "override.deleted"


@dataclass(frozen=True)
class AuditEntry:
    """One recorded audit event."""
    event_type: str
    actor_id: Optional[str]
    payload: dict[str, Any]
    timestamp: datetime


class AuditSink:
    """Receives audit events. Implementations raise AuditWriteError on failure."""

    def record(self, event_type: str, actor_id: Optional[str], payload: dict, timestamp: datetime) -> None:
        raise NotImplementedError


class InMemoryAuditSink(AuditSink):
    """Keeps entries in a list; `fail_with` makes every write raise (for outage drills)."""

    def __init__(self, fail_with: Optional[str] = None):
        self.fail_with = fail_with
        self.entries: list[AuditEntry] = []
        self._lock = threading.Lock()

    def record(self, event_type, actor_id, payload, timestamp):
        if self.fail_with:
            raise AuditWriteError(self.fail_with)
        with self._lock:
            self.entries.append(AuditEntry(event_type, actor_id, dict(payload), timestamp))

    def events(self, event_type: Optional[str] = None) -> list[AuditEntry]:
        with self._lock:
            return [e for e in self.entries if event_type is None or e.event_type == event_type]


class LoggingAuditSink(AuditSink):
    """Writes each event as one structured log line on the audit logger."""

    def __init__(self, logger_name: str = "override_pricing.audit"):
        self._log = get_logger(logger_name)

    def record(self, event_type, actor_id, payload, timestamp):
        self._log.info(
            "%s by %s", event_type, actor_id or "system",
            extra={
                "event_type": event_type,
                "actor_id": actor_id,
                "payload": payload,
                "recorded_at": timestamp.isoformat(),
            },
        )


class SQLiteAuditSink(AuditSink):
    """Append-only audit table in a SQLite file."""

    def __init__(self, db_path: Path, busy_timeout: float = 5.0):
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as conn, conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS audit_log (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    event_type TEXT NOT NULL,
                    actor_id TEXT,
                    payload_json TEXT NOT NULL,
                    recorded_at TEXT NOT NULL
                )
                """
            )

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=self.busy_timeout)

    def record(self, event_type, actor_id, payload, timestamp):
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute(
                    "INSERT INTO audit_log (event_type, actor_id, payload_json, recorded_at) "
                    "VALUES (?, ?, ?, ?)",
                    (event_type, actor_id, json.dumps(payload, default=str, sort_keys=True),
                     timestamp.isoformat()),
                )
        except sqlite3.Error as e:
            raise AuditWriteError(f"audit write failed: {e}") from e

    def list_entries(self, event_type: Optional[str] = None) -> list[AuditEntry]:
        query = "SELECT event_type, actor_id, payload_json, recorded_at FROM audit_log"
        params: tuple = ()
        if event_type:
            query += " WHERE event_type = ?"
            params = (event_type,)
        with closing(self._connect()) as conn:
            rows = conn.execute(query + " ORDER BY seq", params).fetchall()
        return [
            AuditEntry(row[0], row[1], json.loads(row[2]), datetime.fromisoformat(row[3]))
            for row in rows
        ]


class ErrorReporter:
    """Observability channel for failures that must not break the caller."""

    def report(self, error: Exception, context: dict) -> None:
        raise NotImplementedError


class LoggingErrorReporter(ErrorReporter):
    """Logs at ERROR and counts failures so alerting can watch the counter."""

    def __init__(self):
        self._lock = threading.Lock()
        self.failures = 0
        self.last_error: Optional[Exception] = None

    def report(self, error, context):
        with self._lock:
            self.failures += 1
            self.last_error = error
        log.error("Audit write lost: %s", error, extra={"audit_context": context})


@dataclass
class CollectingErrorReporter(ErrorReporter):
    """Keeps reported errors in memory."""
    reports: list[tuple[Exception, dict]] = field(default_factory=list)

    def report(self, error, context):
        self.reports.append((error, dict(context)))
