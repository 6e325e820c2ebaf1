# src/steeb_core/engagement/store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EngagementProfile:
    user_id: str
    hourly_scores: dict[int, int]
    total_events: int
    timezone: str | None
    created_at: float
    updated_at: float

    def preferred_hour(self) -> int | None:
        """Hour with the highest score; earliest hour wins ties."""
        best: int | None = None
        best_score = 0
        for hour in range(24):
            score = self.hourly_scores.get(hour, 0)
            if score > best_score:
                best, best_score = hour, score
        return best


def local_hour(occurred_at: datetime, timezone: str | None) -> int:
    """Hour of day of occurred_at in timezone (naive datetimes are taken as UTC; bad zones fall back to UTC)."""
    if occurred_at.tzinfo is None:
        occurred_at = occurred_at.replace(tzinfo=UTC)
    tz: Any = UTC
    if timezone:
        try:
            tz = ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r; using UTC for engagement hour", timezone)
    return occurred_at.astimezone(tz).hour


class EngagementStore:
    """
    SQLite per-user engagement counters ("what local hour does this user interact at").

    Every recorded event increments hourly_scores[hour] and total_events; no dedup.
    When total_events exceeds decay_threshold, all hourly scores are halved so that
    old habits fade and rows stay bounded.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "engagement.sqlite3", *, decay_threshold: int = 1000) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._decay_threshold = max(0, int(decay_threshold))
        self._ensure_schema()
        logger.info("EngagementStore ready db=%s users=%s", self._db_path, self.count_users())

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
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS engagement (
                    user_id TEXT PRIMARY KEY,
                    timezone TEXT,
                    hourly_scores TEXT NOT NULL DEFAULT '{}',
                    total_events INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _scores_from_str(s: str | None) -> dict[int, int]:
        if not s:
            return {}
        try:
            raw = json.loads(s)
        except ValueError:
            return {}
        if not isinstance(raw, dict):
            return {}
        out: dict[int, int] = {}
        for k, v in raw.items():
            try:
                hour, count = int(k), int(v)
            except (TypeError, ValueError):
                continue
            if 0 <= hour <= 23 and count > 0:
                out[hour] = count
        return out

    @staticmethod
    def _scores_to_str(scores: dict[int, int]) -> str:
        return json.dumps({str(h): c for h, c in sorted(scores.items()) if c > 0})

    def _row_to_profile(self, row: sqlite3.Row) -> EngagementProfile:
        return EngagementProfile(
            user_id=str(row["user_id"]),
            hourly_scores=self._scores_from_str(row["hourly_scores"]),
            total_events=int(row["total_events"] or 0),
            timezone=row["timezone"],
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
        )

    def _decay(self, scores: dict[int, int]) -> dict[int, int]:
        return {h: c // 2 for h, c in scores.items() if c // 2 > 0}

    # ---- public API ----

    def count_users(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM engagement").fetchone()
            return int(n)
        finally:
            conn.close()

    def record_event(self, user_id: str, timezone: str | None, occurred_at: datetime | None = None) -> None:
        if not user_id:
            raise ValueError("user_id is required")

        hour = local_hour(occurred_at or datetime.now(UTC), timezone)
        now = time.time()

        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute("SELECT * FROM engagement WHERE user_id = ?", (user_id,)).fetchone()
            if row is None:
                scores: dict[int, int] = {}
                created_at = now
                tz = timezone
            else:
                scores = self._scores_from_str(row["hourly_scores"])
                created_at = float(row["created_at"] or now)
                tz = timezone or row["timezone"]

            scores[hour] = scores.get(hour, 0) + 1
            total = sum(scores.values())
            if self._decay_threshold and total > self._decay_threshold:
                scores = self._decay(scores)
                total = sum(scores.values())
                logger.info("Engagement counters decayed user=%s total=%s", user_id, total)

            conn.execute(
                """
                INSERT INTO engagement(user_id, timezone, hourly_scores, total_events, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    timezone = excluded.timezone,
                    hourly_scores = excluded.hourly_scores,
                    total_events = excluded.total_events,
                    updated_at = excluded.updated_at
                """,
                (user_id, tz, self._scores_to_str(scores), total, created_at, now),
            )
            conn.commit()
            logger.debug("Engagement recorded user=%s hour=%s total=%s", user_id, hour, total)
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def get_profile(self, user_id: str) -> EngagementProfile | None:
        if not user_id:
            return None
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM engagement WHERE user_id = ?", (user_id,)).fetchone()
            return self._row_to_profile(row) if row else None
        finally:
            conn.close()
