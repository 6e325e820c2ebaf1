# src/steeb_core/push/registry.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any

from .push_models import AdaptiveStrategy, PushRegistration, registration_id_for

logger = logging.getLogger(__name__)


class PushRegistry:
    """
    SQLite store of push registrations, keyed by a hash of the endpoint.

    The schema is migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "push.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count()
        except Exception:
            total = -1
        logger.info("PushRegistry ready db=%s total=%s", self._db_path, total)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS push_registrations (
                    id TEXT PRIMARY KEY,
                    endpoint TEXT NOT NULL,
                    subscription TEXT NOT NULL,
                    metadata TEXT NOT NULL DEFAULT '{}',
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

            cur.execute("PRAGMA table_info(push_registrations)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE push_registrations ADD COLUMN {name} {decl}")
                logger.info("PushRegistry migration: added column %s", name)

            add_col("last_daily_sent_key", "TEXT")
            add_col("adaptive_strategy", "TEXT")
            add_col("last_adaptive_hour", "INTEGER")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _json_to_str(value: dict[str, Any] | None) -> str:
        return json.dumps(value or {}, ensure_ascii=False)

    @staticmethod
    def _str_to_json(s: str | None) -> dict[str, Any]:
        if not s:
            return {}
        try:
            val = json.loads(s)
            return val if isinstance(val, dict) else {}
        except ValueError:
            return {}

    def _row_to_registration(self, row: sqlite3.Row) -> PushRegistration:
        strategy_raw = row["adaptive_strategy"]
        try:
            strategy = AdaptiveStrategy(strategy_raw) if strategy_raw else None
        except ValueError:
            strategy = None
        hour = row["last_adaptive_hour"]
        return PushRegistration(
            id=str(row["id"]),
            subscription=self._str_to_json(row["subscription"]),
            metadata=self._str_to_json(row["metadata"]),
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
            last_daily_sent_key=row["last_daily_sent_key"],
            adaptive_strategy=strategy,
            last_adaptive_hour=int(hour) if hour is not None else None,
        )

    # ---- public API ----

    def count(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM push_registrations").fetchone()
            return int(n)
        finally:
            conn.close()

    def register(
        self,
        subscription: dict[str, Any],
        metadata: dict[str, Any] | None = None,
        *,
        now_ts: float | None = None,
    ) -> str:
        """
        Insert or overwrite a registration.

        Re-registering the same endpoint replaces subscription/metadata but keeps
        created_at and the daily-sent state, so the exploration schedule continues.
        """
        endpoint = str((subscription or {}).get("endpoint") or "").strip()
        if not endpoint:
            raise ValueError("Invalid subscription: missing endpoint")

        reg_id = registration_id_for(endpoint)
        now = time.time() if now_ts is None else float(now_ts)

        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO push_registrations(id, endpoint, subscription, metadata, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    subscription = excluded.subscription,
                    metadata = excluded.metadata,
                    updated_at = excluded.updated_at
                """,
                (reg_id, endpoint, self._json_to_str(subscription), self._json_to_str(metadata), now, now),
            )
            conn.commit()
        finally:
            conn.close()

        logger.info("Push registration saved id=%s user=%s", reg_id[:12], (metadata or {}).get("userId"))
        return reg_id

    def get(self, registration_id: str) -> PushRegistration | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM push_registrations WHERE id = ?", (registration_id,)).fetchone()
            return self._row_to_registration(row) if row else None
        finally:
            conn.close()

    def list_all(self) -> list[PushRegistration]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT * FROM push_registrations ORDER BY created_at ASC, id ASC").fetchall()
            return [self._row_to_registration(r) for r in rows]
        finally:
            conn.close()

    def remove(self, registration_id: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM push_registrations WHERE id = ?", (registration_id,))
            conn.commit()
        finally:
            conn.close()

    def remove_by_endpoint(self, endpoint: str) -> None:
        self.remove(registration_id_for(endpoint))

    def try_claim_daily(
        self,
        registration_id: str,
        *,
        date_key: str,
        strategy: str,
        hour: int,
    ) -> bool:
        """
        Claim today's push for this registration before delivering it.

        Atomically transitions:
          last_daily_sent_key != date_key -> last_daily_sent_key = date_key

        Returns True if the row was claimed by this caller.
        """
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                UPDATE push_registrations
                SET last_daily_sent_key = ?,
                    adaptive_strategy = ?,
                    last_adaptive_hour = ?,
                    updated_at = ?
                WHERE id = ?
                  AND (last_daily_sent_key IS NULL OR last_daily_sent_key <> ?)
                """,
                (date_key, str(strategy), int(hour), time.time(), registration_id, date_key),
            )
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def release_daily_claim(
        self,
        registration_id: str,
        *,
        date_key: str,
        previous_key: str | None,
        previous_strategy: str | None = None,
        previous_hour: int | None = None,
    ) -> None:
        """Undo try_claim_daily() after a transient delivery failure (only if the claim is still ours)."""
        conn = self._get_conn()
        try:
            conn.execute(
                """
                UPDATE push_registrations
                SET last_daily_sent_key = ?,
                    adaptive_strategy = ?,
                    last_adaptive_hour = ?,
                    updated_at = ?
                WHERE id = ?
                  AND last_daily_sent_key = ?
                """,
                (
                    previous_key,
                    str(previous_strategy) if previous_strategy else None,
                    previous_hour,
                    time.time(),
                    registration_id,
                    date_key,
                ),
            )
            conn.commit()
        finally:
            conn.close()
