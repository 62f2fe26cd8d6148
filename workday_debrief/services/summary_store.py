"""
Summary Store - SQLite persistence for summaries, channel configs and settings.

One row per calendar date. Aggregated fields are overwritten on every
generation; user-edited fields are only touched by explicit saves; the
delivered-to list only ever grows.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

from workday_debrief.integrations.core.errors import PersistenceError, SummaryNotFound
from workday_debrief.integrations.core.types import (
    AggregatedData,
    DeliveryChannel,
    DeliveryConfigRecord,
    Summary,
    SummaryMeta,
    Tone,
    default_sources_status,
    utc_now_iso,
)
from .settings import Settings

logger = logging.getLogger(__name__)

MAX_DAYS_BACK = 3650
SNIPPET_LENGTH = 100

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS daily_summaries (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    summary_date        TEXT NOT NULL UNIQUE,
    tickets_closed      TEXT NOT NULL DEFAULT '[]',
    tickets_in_progress TEXT NOT NULL DEFAULT '[]',
    meetings            TEXT NOT NULL DEFAULT '[]',
    focus_hours         REAL NOT NULL DEFAULT 0,
    blockers            TEXT,
    tomorrow_priorities TEXT,
    manual_notes        TEXT,
    narrative           TEXT,
    tone                TEXT NOT NULL DEFAULT 'professional',
    delivered_to        TEXT NOT NULL DEFAULT '[]',
    sources_status      TEXT NOT NULL DEFAULT '{}',
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_summaries_date ON daily_summaries(summary_date DESC);

CREATE TABLE IF NOT EXISTS delivery_configs (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    delivery_type TEXT NOT NULL UNIQUE,
    config        TEXT NOT NULL DEFAULT '{}',
    is_enabled    INTEGER NOT NULL DEFAULT 0,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS settings (
    id       INTEGER PRIMARY KEY CHECK (id = 1),
    data     TEXT NOT NULL DEFAULT '{}',
    updated_at TEXT NOT NULL
);
"""


def merge_delivered(existing: Iterable[str], added: Iterable[str]) -> list[str]:
    """Union of channel ids, sorted. Never drops an existing entry."""
    return sorted(set(existing) | set(added))


def _dumps_models(items) -> str:
    return json.dumps([i.model_dump() for i in items])


class SummaryStore:
    """
    SQLite-backed store.

    A single connection is shared across worker threads and serialized by a
    lock; async callers go through asyncio.to_thread.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not open database {self._db_path}: {e}") from e

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def _tx(self) -> Iterator[sqlite3.Connection]:
        """Locked transaction; sqlite errors surface as PersistenceError."""
        with self._lock:
            try:
                with self._conn:
                    yield self._conn
            except sqlite3.Error as e:
                logger.error(f"[STORE] Database error: {e}")
                raise PersistenceError(f"Database error: {e}") from e

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_summary(row: sqlite3.Row) -> Summary:
        return Summary(
            id=row["id"],
            summary_date=row["summary_date"],
            tickets_closed=json.loads(row["tickets_closed"] or "[]"),
            tickets_in_progress=json.loads(row["tickets_in_progress"] or "[]"),
            meetings=json.loads(row["meetings"] or "[]"),
            focus_hours=row["focus_hours"] or 0.0,
            blockers=row["blockers"],
            tomorrow_priorities=row["tomorrow_priorities"],
            manual_notes=row["manual_notes"],
            narrative=row["narrative"],
            tone=Tone.parse(row["tone"]),
            delivered_to=json.loads(row["delivered_to"] or "[]"),
            sources_status=json.loads(row["sources_status"] or "{}") or default_sources_status(),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    def upsert_aggregated(self, summary_date: str, data: AggregatedData) -> Summary:
        """
        Write the source-derived fields for a date.

        Concurrent writers for the same date end with one row; the last
        write's aggregated fields win. User fields and delivered_to are kept.
        """
        now = utc_now_iso()
        status_json = json.dumps({k.value: v.model_dump(mode="json") for k, v in data.sources_status.items()})
        with self._tx() as conn:
            conn.execute(
                """
                INSERT INTO daily_summaries (
                    summary_date, tickets_closed, tickets_in_progress, meetings,
                    focus_hours, sources_status, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(summary_date) DO UPDATE SET
                    tickets_closed = excluded.tickets_closed,
                    tickets_in_progress = excluded.tickets_in_progress,
                    meetings = excluded.meetings,
                    focus_hours = excluded.focus_hours,
                    sources_status = excluded.sources_status,
                    updated_at = excluded.updated_at
                """,
                (
                    summary_date,
                    _dumps_models(data.tickets_closed),
                    _dumps_models(data.tickets_in_progress),
                    _dumps_models(data.meetings),
                    data.focus_hours,
                    status_json,
                    now,
                    now,
                ),
            )
            row = conn.execute(
                "SELECT * FROM daily_summaries WHERE summary_date = ?", (summary_date,)
            ).fetchone()
        logger.info(f"[STORE] Upserted aggregated data for {summary_date}")
        return self._row_to_summary(row)

    def save_user_fields(
        self,
        summary_date: str,
        blockers: Optional[str] = None,
        tomorrow_priorities: Optional[str] = None,
        manual_notes: Optional[str] = None,
    ) -> Summary:
        """Save free-text fields. None leaves a field unchanged. Creates the row if needed."""
        now = utc_now_iso()
        with self._tx() as conn:
            conn.execute(
                """
                INSERT INTO daily_summaries (
                    summary_date, blockers, tomorrow_priorities, manual_notes, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(summary_date) DO UPDATE SET
                    blockers = COALESCE(excluded.blockers, blockers),
                    tomorrow_priorities = COALESCE(excluded.tomorrow_priorities, tomorrow_priorities),
                    manual_notes = COALESCE(excluded.manual_notes, manual_notes),
                    updated_at = excluded.updated_at
                """,
                (summary_date, blockers, tomorrow_priorities, manual_notes, now, now),
            )
            row = conn.execute(
                "SELECT * FROM daily_summaries WHERE summary_date = ?", (summary_date,)
            ).fetchone()
        return self._row_to_summary(row)

    def update_narrative(self, summary_id: int, narrative: str, tone: Tone) -> Summary:
        """Replace only the narrative and tone of a summary."""
        with self._tx() as conn:
            cur = conn.execute(
                "UPDATE daily_summaries SET narrative = ?, tone = ?, updated_at = ? WHERE id = ?",
                (narrative, Tone(tone).value, utc_now_iso(), summary_id),
            )
            if cur.rowcount == 0:
                raise SummaryNotFound(summary_id)
            row = conn.execute("SELECT * FROM daily_summaries WHERE id = ?", (summary_id,)).fetchone()
        return self._row_to_summary(row)

    def append_delivered(self, summary_id: int, channels: Iterable[str]) -> Summary:
        """Add channels to delivered_to. Existing entries are never removed."""
        channels = [DeliveryChannel(c).value for c in channels]
        with self._tx() as conn:
            row = conn.execute(
                "SELECT delivered_to FROM daily_summaries WHERE id = ?", (summary_id,)
            ).fetchone()
            if row is None:
                raise SummaryNotFound(summary_id)
            merged = merge_delivered(json.loads(row["delivered_to"] or "[]"), channels)
            conn.execute(
                "UPDATE daily_summaries SET delivered_to = ?, updated_at = ? WHERE id = ?",
                (json.dumps(merged), utc_now_iso(), summary_id),
            )
            row = conn.execute("SELECT * FROM daily_summaries WHERE id = ?", (summary_id,)).fetchone()
        return self._row_to_summary(row)

    def get_by_date(self, summary_date: str) -> Optional[Summary]:
        with self._tx() as conn:
            row = conn.execute(
                "SELECT * FROM daily_summaries WHERE summary_date = ?", (summary_date,)
            ).fetchone()
        return self._row_to_summary(row) if row else None

    def get_by_id(self, summary_id: int) -> Optional[Summary]:
        with self._tx() as conn:
            row = conn.execute("SELECT * FROM daily_summaries WHERE id = ?", (summary_id,)).fetchone()
        return self._row_to_summary(row) if row else None

    def count_for_date(self, summary_date: str) -> int:
        with self._tx() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM daily_summaries WHERE summary_date = ?", (summary_date,)
            ).fetchone()
        return row["n"]

    def list_metas(self, days_back: int, today: Optional[date] = None) -> list[SummaryMeta]:
        """
        History entries from the last `days_back` days, newest first.

        Raises:
            ValueError: If days_back is outside 0..3650
        """
        if not 0 <= days_back <= MAX_DAYS_BACK:
            raise ValueError(f"days_back must be between 0 and {MAX_DAYS_BACK}")
        cutoff = ((today or date.today()) - timedelta(days=days_back)).isoformat()
        with self._tx() as conn:
            rows = conn.execute(
                """
                SELECT id, summary_date, narrative, delivered_to FROM daily_summaries
                WHERE summary_date >= ? ORDER BY summary_date DESC
                """,
                (cutoff,),
            ).fetchall()
        return [
            SummaryMeta(
                id=r["id"],
                summary_date=r["summary_date"],
                narrative_snippet=r["narrative"][:SNIPPET_LENGTH] if r["narrative"] else None,
                delivered_to=json.loads(r["delivered_to"] or "[]"),
            )
            for r in rows
        ]

    def purge_older_than(self, retention_days: int, today: Optional[date] = None) -> int:
        """Delete summaries older than the retention window. Returns rows removed."""
        cutoff = ((today or date.today()) - timedelta(days=retention_days)).isoformat()
        with self._tx() as conn:
            cur = conn.execute("DELETE FROM daily_summaries WHERE summary_date < ?", (cutoff,))
        if cur.rowcount:
            logger.info(f"[STORE] Purged {cur.rowcount} summaries older than {cutoff}")
        return cur.rowcount

    # ------------------------------------------------------------------
    # Delivery configs
    # ------------------------------------------------------------------

    def get_delivery_configs(self, enabled_only: bool = False) -> list[DeliveryConfigRecord]:
        sql = "SELECT delivery_type, config, is_enabled FROM delivery_configs"
        if enabled_only:
            sql += " WHERE is_enabled = 1"
        with self._tx() as conn:
            rows = conn.execute(sql + " ORDER BY delivery_type").fetchall()

        records = []
        for r in rows:
            try:
                channel = DeliveryChannel(r["delivery_type"])
            except ValueError:
                logger.warning(f"[STORE] Ignoring unknown delivery type {r['delivery_type']!r}")
                continue
            records.append(DeliveryConfigRecord(
                channel=channel,
                config=json.loads(r["config"] or "{}"),
                is_enabled=bool(r["is_enabled"]),
            ))
        return records

    def save_delivery_config(self, record: DeliveryConfigRecord) -> None:
        now = utc_now_iso()
        with self._tx() as conn:
            conn.execute(
                """
                INSERT INTO delivery_configs (delivery_type, config, is_enabled, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(delivery_type) DO UPDATE SET
                    config = excluded.config,
                    is_enabled = excluded.is_enabled,
                    updated_at = excluded.updated_at
                """,
                (record.channel.value, json.dumps(record.config), int(record.is_enabled), now, now),
            )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def load_settings(self) -> Settings:
        with self._tx() as conn:
            row = conn.execute("SELECT data FROM settings WHERE id = 1").fetchone()
        if not row:
            return Settings()
        data: dict[str, Any] = json.loads(row["data"] or "{}")
        return Settings.model_validate(data)

    def save_settings(self, settings: Settings) -> None:
        with self._tx() as conn:
            conn.execute(
                """
                INSERT INTO settings (id, data, updated_at) VALUES (1, ?, ?)
                ON CONFLICT(id) DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at
                """,
                (settings.model_dump_json(), utc_now_iso()),
            )
        logger.info("[STORE] Settings saved")
