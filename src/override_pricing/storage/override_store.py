"""Override storage: transactional unit of work over override records."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Iterator, Optional

from ..engine.models import OverrideRecord, Target
from ..errors import ConflictError


class OverrideUnitOfWork:
    """Reads and writes issued inside one store transaction."""

    def get(self, override_id: str) -> Optional[OverrideRecord]:
        raise NotImplementedError

    def find_active_for_target(self, client_id: str, target: Target) -> list[OverrideRecord]:
        raise NotImplementedError

    def insert(self, record: OverrideRecord) -> None:
        raise NotImplementedError

    def replace(self, record: OverrideRecord) -> None:
        raise NotImplementedError

    def remove(self, override_id: str) -> bool:
        raise NotImplementedError


class OverrideStore:
    """
    Persistence for override records.

    `transaction()` must run the enclosed reads and writes as one serialised
    unit: a second writer cannot interleave between a conflict check and the
    insert that follows it. Any exception leaving the block rolls back.
    """

    def transaction(self):
        raise NotImplementedError

    def get(self, override_id: str) -> Optional[OverrideRecord]:
        raise NotImplementedError

    def list_candidates(
        self, client_id: str, product_id: Optional[str], category_name: Optional[str]
    ) -> list[OverrideRecord]:
        raise NotImplementedError

    def list_all(self) -> list[OverrideRecord]:
        raise NotImplementedError


def _newest_first(records) -> list[OverrideRecord]:
    return sorted(
        records,
        key=lambda r: (r.created_at.isoformat() if r.created_at else "", r.id),
        reverse=True,
    )


class _InMemoryUnitOfWork(OverrideUnitOfWork):
    def __init__(self, records: dict[str, OverrideRecord]) -> None:
        self._records = records

    def get(self, override_id: str) -> Optional[OverrideRecord]:
        return self._records.get(override_id)

    def find_active_for_target(self, client_id: str, target: Target) -> list[OverrideRecord]:
        return [
            r for r in self._records.values()
            if r.client_id == client_id and r.is_active and r.target.key == target.key
        ]

    def insert(self, record: OverrideRecord) -> None:
        if record.id in self._records:
            raise ConflictError(f"Override with ID '{record.id}' already exists", conflicting_id=record.id)
        self._records[record.id] = record

    def replace(self, record: OverrideRecord) -> None:
        if record.id not in self._records:
            raise KeyError(record.id)
        self._records[record.id] = record

    def remove(self, override_id: str) -> bool:
        return self._records.pop(override_id, None) is not None


class InMemoryOverrideStore(OverrideStore):
    """Process-local store; transactions serialise on a lock and restore a snapshot on failure."""

    def __init__(self, records: Optional[list[OverrideRecord]] = None) -> None:
        self._lock = threading.RLock()
        self._records: dict[str, OverrideRecord] = {r.id: r for r in records or []}

    @contextmanager
    def transaction(self) -> Iterator[OverrideUnitOfWork]:
        with self._lock:
            snapshot = dict(self._records)
            try:
                yield _InMemoryUnitOfWork(self._records)
            except BaseException:
                self._records.clear()
                self._records.update(snapshot)
                raise

    def get(self, override_id: str) -> Optional[OverrideRecord]:
        with self._lock:
            return self._records.get(override_id)

    def list_candidates(
        self, client_id: str, product_id: Optional[str], category_name: Optional[str]
    ) -> list[OverrideRecord]:
        with self._lock:
            records = list(self._records.values())
        return [
            r for r in records
            if r.client_id == client_id
            and r.is_active
            and (r.target.matches_product(product_id) or r.target.matches_category(category_name))
        ]

    def list_all(self) -> list[OverrideRecord]:
        with self._lock:
            return _newest_first(self._records.values())


_COLUMNS = (
    "id", "client_id", "product_id", "category_name", "discount_percent",
    "fixed_price", "minimum_quantity", "valid_from", "valid_until",
    "is_active", "notes", "created_by", "created_at", "updated_at",
)


def _to_row(record: OverrideRecord) -> tuple:
    data = record.to_dict()
    data["is_active"] = 1 if record.is_active else 0
    return tuple(data[c] for c in _COLUMNS)


def _from_row(row: sqlite3.Row) -> OverrideRecord:
    data = dict(row)
    data["is_active"] = bool(data["is_active"])
    return OverrideRecord.from_dict(data)


class _SQLiteUnitOfWork(OverrideUnitOfWork):
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get(self, override_id: str) -> Optional[OverrideRecord]:
        row = self._conn.execute(
            "SELECT * FROM price_overrides WHERE id = ?", (override_id,)
        ).fetchone()
        return _from_row(row) if row else None

    def find_active_for_target(self, client_id: str, target: Target) -> list[OverrideRecord]:
        product_id, category_name = target.key
        rows = self._conn.execute(
            """
            SELECT * FROM price_overrides
            WHERE client_id = ? AND is_active = 1
              AND product_id IS ? AND category_name IS ?
            """,
            (client_id, product_id, category_name),
        ).fetchall()
        return [_from_row(r) for r in rows]

    def insert(self, record: OverrideRecord) -> None:
        placeholders = ", ".join("?" for _ in _COLUMNS)
        try:
            self._conn.execute(
                f"INSERT INTO price_overrides ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                _to_row(record),
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError(
                f"Override with ID '{record.id}' already exists", conflicting_id=record.id
            ) from e

    def replace(self, record: OverrideRecord) -> None:
        assignments = ", ".join(f"{c} = ?" for c in _COLUMNS[1:])
        cur = self._conn.execute(
            f"UPDATE price_overrides SET {assignments} WHERE id = ?",
            _to_row(record)[1:] + (record.id,),
        )
        if cur.rowcount == 0:
            raise KeyError(record.id)

    def remove(self, override_id: str) -> bool:
        cur = self._conn.execute("DELETE FROM price_overrides WHERE id = ?", (override_id,))
        return cur.rowcount > 0


class SQLiteOverrideStore(OverrideStore):
    """
    Durable store in a SQLite file.

    Write transactions open with BEGIN IMMEDIATE, which takes the database
    write lock up front; a concurrent writer in another process blocks (up
    to busy_timeout) until the first one commits or rolls back, and then
    sees its insert during its own conflict check.
    """

    def __init__(self, db_path: Path, busy_timeout: float = 5.0) -> None:
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        with closing(self._connect()) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS price_overrides (
                    id TEXT PRIMARY KEY,
                    client_id TEXT NOT NULL,
                    product_id TEXT,
                    category_name TEXT,
                    discount_percent TEXT,
                    fixed_price TEXT,
                    minimum_quantity INTEGER NOT NULL DEFAULT 1,
                    valid_from TEXT,
                    valid_until TEXT,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    notes TEXT,
                    created_by TEXT,
                    created_at TEXT,
                    updated_at TEXT
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS ix_overrides_client_product "
                "ON price_overrides (client_id, product_id, is_active)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS ix_overrides_client_category "
                "ON price_overrides (client_id, category_name, is_active)"
            )

    @contextmanager
    def transaction(self) -> Iterator[OverrideUnitOfWork]:
        with closing(self._connect()) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield _SQLiteUnitOfWork(conn)
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def get(self, override_id: str) -> Optional[OverrideRecord]:
        with closing(self._connect()) as conn:
            return _SQLiteUnitOfWork(conn).get(override_id)

    def list_candidates(
        self, client_id: str, product_id: Optional[str], category_name: Optional[str]
    ) -> list[OverrideRecord]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                """
                SELECT * FROM price_overrides
                WHERE client_id = ? AND is_active = 1
                  AND (product_id = ? OR category_name = ?)
                """,
                (client_id, product_id, category_name),
            ).fetchall()
        return [_from_row(r) for r in rows]

    def list_all(self) -> list[OverrideRecord]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT * FROM price_overrides ORDER BY created_at DESC, id DESC"
            ).fetchall()
        return [_from_row(r) for r in rows]
