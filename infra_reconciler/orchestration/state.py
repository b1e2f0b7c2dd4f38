"""Orchestration layer — Applied state store.

Records, per resource id, what was last successfully applied: the remote
identifier, the attributes sent to the provider, the dependency edges and a
timestamp.  Absent a live drift check, this store is the only source of
"what exists now".

Persists to SQLite via aiosqlite.  Only the executor writes resource rows,
and only after the provider confirmed the change.  Secret values never
reach this store.

A second table keeps a journal of apply runs so that the last run can be
rolled back explicitly.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import aiosqlite

from infra_reconciler.exceptions import StateStoreError
from infra_reconciler.graph.models import ResourceKind
from infra_reconciler.logging import get_logger

log = get_logger(__name__)

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS applied_state (
    resource_id TEXT PRIMARY KEY,
    kind        TEXT NOT NULL,
    remote_id   TEXT NOT NULL,
    attributes  TEXT NOT NULL,
    depends_on  TEXT NOT NULL DEFAULT '[]',
    applied_at  REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS runs (
    run_id      TEXT PRIMARY KEY,
    command     TEXT NOT NULL,
    status      TEXT NOT NULL,
    started_at  REAL NOT NULL,
    finished_at REAL,
    data        TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_runs_started_at ON runs (started_at);
"""


@dataclass
class AppliedState:
    """Last confirmed state of one resource."""

    resource_id: str
    kind: ResourceKind
    remote_id: str
    attributes: dict[str, Any] = field(default_factory=dict)
    depends_on: list[str] = field(default_factory=list)
    applied_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource_id": self.resource_id,
            "kind": self.kind.value,
            "remote_id": self.remote_id,
            "attributes": self.attributes,
            "depends_on": self.depends_on,
            "applied_at": self.applied_at,
        }


@dataclass
class RunRecord:
    run_id: str
    command: str
    status: str
    started_at: float
    finished_at: float | None = None
    data: dict[str, Any] = field(default_factory=dict)


class AppliedStateStore:
    """Async SQLite-backed store of applied resource state.

    Usage::

        store = AppliedStateStore(Path("~/.infra-reconciler/state.db"))
        await store.init()
        current = await store.load()
        await store.put(AppliedState(...))
        await store.remove("secret/db-password")
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path.expanduser()
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def init(self) -> None:
        """Open the database and create tables if they do not exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = await aiosqlite.connect(str(self._db_path))
            await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.executescript(_SCHEMA_SQL)
            await self._conn.commit()
            log.debug("state_store_ready", db=str(self._db_path))
        except Exception as exc:
            raise StateStoreError(f"Failed to initialise state store: {exc}") from exc

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StateStoreError("State store is not initialised; call init() first")
        return self._conn

    async def _write(self, operation: str, sql: str, params: tuple[Any, ...]) -> None:
        """Execute and commit one write, translating driver errors."""
        conn = self._connection()
        async with self._lock:
            try:
                await conn.execute(sql, params)
                await conn.commit()
            except (aiosqlite.Error, ValueError) as exc:
                raise StateStoreError(
                    f"State store {operation} failed: {exc}",
                    context={"operation": operation, "db": str(self._db_path)},
                ) from exc

    # ------------------------------------------------------------------
    # Resource records
    # ------------------------------------------------------------------

    async def put(self, state: AppliedState) -> None:
        """Insert or replace the record for ``state.resource_id``."""
        await self._write(
            "put",
            """INSERT INTO applied_state
                   (resource_id, kind, remote_id, attributes, depends_on, applied_at)
               VALUES (?,?,?,?,?,?)
               ON CONFLICT(resource_id) DO UPDATE SET
                   kind=excluded.kind, remote_id=excluded.remote_id,
                   attributes=excluded.attributes, depends_on=excluded.depends_on,
                   applied_at=excluded.applied_at""",
            (
                state.resource_id,
                state.kind.value,
                state.remote_id,
                json.dumps(state.attributes, sort_keys=True),
                json.dumps(state.depends_on),
                state.applied_at,
            ),
        )

    async def remove(self, resource_id: str) -> None:
        await self._write(
            "remove", "DELETE FROM applied_state WHERE resource_id=?", (resource_id,)
        )

    async def get(self, resource_id: str) -> AppliedState | None:
        conn = self._connection()
        async with conn.execute(
            "SELECT resource_id, kind, remote_id, attributes, depends_on, applied_at "
            "FROM applied_state WHERE resource_id=?",
            (resource_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return self._row_to_state(row) if row else None

    async def load(self) -> dict[str, AppliedState]:
        """Return every record keyed by resource id, in first-applied order."""
        conn = self._connection()
        states: dict[str, AppliedState] = {}
        async with conn.execute(
            "SELECT resource_id, kind, remote_id, attributes, depends_on, applied_at "
            "FROM applied_state ORDER BY rowid"
        ) as cursor:
            async for row in cursor:
                state = self._row_to_state(row)
                states[state.resource_id] = state
        return states

    @staticmethod
    def _row_to_state(row: Any) -> AppliedState:
        return AppliedState(
            resource_id=row[0],
            kind=ResourceKind(row[1]),
            remote_id=row[2],
            attributes=json.loads(row[3]),
            depends_on=json.loads(row[4]),
            applied_at=row[5],
        )

    # ------------------------------------------------------------------
    # Run journal
    # ------------------------------------------------------------------

    async def record_run(self, record: RunRecord) -> None:
        await self._write(
            "record_run",
            """INSERT INTO runs (run_id, command, status, started_at, finished_at, data)
               VALUES (?,?,?,?,?,?)
               ON CONFLICT(run_id) DO UPDATE SET
                   status=excluded.status, finished_at=excluded.finished_at,
                   data=excluded.data""",
            (
                record.run_id,
                record.command,
                record.status,
                record.started_at,
                record.finished_at,
                json.dumps(record.data),
            ),
        )

    async def last_run(self, commands: tuple[str, ...] | None = None) -> RunRecord | None:
        """Return the most recent run, optionally restricted to *commands*."""
        conn = self._connection()
        query = "SELECT run_id, command, status, started_at, finished_at, data FROM runs"
        params: tuple[Any, ...] = ()
        if commands:
            query += f" WHERE command IN ({','.join('?' for _ in commands)})"
            params = tuple(commands)
        query += " ORDER BY started_at DESC, rowid DESC LIMIT 1"
        async with conn.execute(query, params) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return RunRecord(
            run_id=row[0],
            command=row[1],
            status=row[2],
            started_at=row[3],
            finished_at=row[4],
            data=json.loads(row[5]),
        )
