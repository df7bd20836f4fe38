# tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import threading
import time
from collections.abc import Callable
from pathlib import Path

from .task_models import Task, Tier

logger = logging.getLogger(__name__)

_COLUMNS = "id, title, tier, is_completed, created_at, tier_assigned_at, completed_at"


class StorageError(Exception):
    """Base class for task storage failures."""


class StorageUnavailable(StorageError):
    """The database could not be opened or initialized."""


class StorageWriteFailed(StorageError):
    """A single write (insert/update/delete) did not go through."""


class TaskStore:
    """
    SQLite task store.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Serialization:
    - every public call holds one store-wide lock, so calls never interleave
      ("mutate then reload" always sees the write)
    - each call opens its own short-lived SQLite connection

    Failure policy:
    - if the schema cannot be created, the store stays up in degraded mode:
      reads return empty results, writes raise StorageUnavailable
    - read errors are logged and return empty results
    - write errors are logged, rolled back and raised as StorageWriteFailed
    """

    def __init__(
        self,
        db_path: str | Path = "stash.sqlite3",
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db_path = Path(db_path)
        self._clock = clock
        self._lock = threading.RLock()
        self._available = False

        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._ensure_schema()
            self._available = True
        except (OSError, sqlite3.Error):
            logger.exception("TaskStore unavailable db=%s; running without persistence", self._db_path)
            return

        logger.info("TaskStore ready db=%s total=%s", self._db_path, self.count_tasks())

    @property
    def available(self) -> bool:
        return self._available

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS task (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    tier TEXT NOT NULL DEFAULT 'l1',
                    is_completed INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL,
                    tier_assigned_at REAL NOT NULL,
                    completed_at REAL
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(task)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE task ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("tier", "TEXT NOT NULL DEFAULT 'l1'")
            add_col("is_completed", "INTEGER NOT NULL DEFAULT 0")
            add_col("created_at", "REAL NOT NULL DEFAULT 0")
            add_col("tier_assigned_at", "REAL NOT NULL DEFAULT 0")
            add_col("completed_at", "REAL")

            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_task_active_assigned "
                "ON task(is_completed, tier_assigned_at)"
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_task_active_tier ON task(is_completed, tier)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=str(row["id"]),
            title=str(row["title"] or ""),
            tier=Tier.from_db(row["tier"]),
            is_completed=bool(row["is_completed"]),
            created_at=float(row["created_at"] or 0.0),
            tier_assigned_at=float(row["tier_assigned_at"] or 0.0),
            completed_at=float(row["completed_at"]) if row["completed_at"] is not None else None,
        )

    def _now(self, now_ts: float | None) -> float:
        return float(self._clock() if now_ts is None else now_ts)

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        """Run a read; errors degrade to an empty result."""
        with self._lock:
            if not self._available:
                return []
            try:
                conn = self._get_conn()
            except sqlite3.Error:
                logger.exception("TaskStore read failed (connect)")
                return []
            try:
                return conn.execute(sql, params).fetchall()
            except sqlite3.Error:
                logger.exception("TaskStore read failed sql=%s", sql.split()[0])
                return []
            finally:
                conn.close()

    def _write(self, what: str, sql: str, params: tuple = ()) -> int:
        """Run one write in its own transaction. Returns rowcount."""
        with self._lock:
            if not self._available:
                raise StorageUnavailable(f"{what}: task database is not available")
            conn: sqlite3.Connection | None = None
            try:
                conn = self._get_conn()
                cur = conn.execute(sql, params)
                conn.commit()
                return int(cur.rowcount)
            except sqlite3.Error as e:
                logger.exception("TaskStore %s failed", what)
                if conn is not None:
                    with contextlib.suppress(sqlite3.Error):
                        conn.rollback()
                raise StorageWriteFailed(f"{what}: {e}") from e
            finally:
                if conn is not None:
                    conn.close()

    # ---- public API ----

    def count_tasks(self) -> int:
        rows = self._query("SELECT COUNT(*) AS n FROM task")
        return int(rows[0]["n"]) if rows else 0

    def add_task(self, task: Task) -> None:
        """Insert a new task. A duplicate id raises StorageWriteFailed."""
        self._write(
            "add_task",
            f"INSERT INTO task({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                task.id,
                task.title,
                task.tier.value,
                1 if task.is_completed else 0,
                float(task.created_at),
                float(task.tier_assigned_at),
                task.completed_at,
            ),
        )
        logger.debug("Task added id=%s tier=%s", task.id, task.tier.value)

    def get_task(self, task_id: str) -> Task | None:
        rows = self._query(f"SELECT {_COLUMNS} FROM task WHERE id = ?", (str(task_id),))
        return self._row_to_task(rows[0]) if rows else None

    def fetch_active(self) -> list[Task]:
        """
        Active tasks, oldest tier assignment first.

        This order is also the escalation tie-break: tasks that have waited
        longest in their tier are considered first.
        """
        rows = self._query(
            f"""
            SELECT {_COLUMNS}
            FROM task
            WHERE is_completed = 0
            ORDER BY tier_assigned_at ASC, created_at ASC, rowid ASC
            """
        )
        return [self._row_to_task(r) for r in rows]

    def fetch_completed(self) -> list[Task]:
        """Completed tasks, most recently completed first."""
        rows = self._query(
            f"""
            SELECT {_COLUMNS}
            FROM task
            WHERE is_completed = 1
            ORDER BY completed_at DESC, rowid DESC
            """
        )
        return [self._row_to_task(r) for r in rows]

    def complete_task(self, task_id: str, *, now_ts: float | None = None) -> bool:
        """
        Mark an active task completed.

        Completed rows are left alone so completed_at is only ever set once.
        Returns False if no active task has this id.
        """
        n = self._write(
            "complete_task",
            "UPDATE task SET is_completed = 1, completed_at = ? WHERE id = ? AND is_completed = 0",
            (self._now(now_ts), str(task_id)),
        )
        if n:
            logger.debug("Task completed id=%s", task_id)
        return n == 1

    def update_tier(self, task_id: str, new_tier: Tier, *, now_ts: float | None = None) -> bool:
        """
        Move an active task to new_tier and restart its escalation clock.

        This is the only path that changes tier or tier_assigned_at.
        """
        n = self._write(
            "update_tier",
            "UPDATE task SET tier = ?, tier_assigned_at = ? WHERE id = ? AND is_completed = 0",
            (new_tier.value, self._now(now_ts), str(task_id)),
        )
        if n:
            logger.debug("Task tier updated id=%s tier=%s", task_id, new_tier.value)
        return n == 1

    def clear_completed(self) -> int:
        n = self._write("clear_completed", "DELETE FROM task WHERE is_completed = 1")
        logger.info("Cleared %d completed task(s)", n)
        return n

    def clear_all(self) -> int:
        n = self._write("clear_all", "DELETE FROM task")
        logger.warning("Cleared ALL tasks (%d row(s))", n)
        return n

    def count_active(self, tier: Tier) -> int:
        rows = self._query(
            "SELECT COUNT(*) AS n FROM task WHERE is_completed = 0 AND tier = ?",
            (tier.value,),
        )
        return int(rows[0]["n"]) if rows else 0

    def export_snapshot(self) -> str:
        """
        Serialize every task (active first, then completed) as pretty JSON.

        Dates are ISO-8601 strings, keys sorted.
        """
        with self._lock:
            tasks = self.fetch_active() + self.fetch_completed()
        return json.dumps(
            [t.to_export_dict() for t in tasks],
            ensure_ascii=False,
            indent=2,
            sort_keys=True,
        )
