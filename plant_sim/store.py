"""SQLite backed plant, activity, weather and reference data store."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from .environment import FacilityState
from .errors import StoreError
from .models import PlantRecord, UserActivity
from .reference_data import DatasetReferenceSource
from .utils import format_timestamp, normalize_key, parse_timestamp, utcnow
from .weather import WeatherSeries

_LOGGER = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 25

__all__ = ["BatchWriteResult", "PlantStore", "DEFAULT_BATCH_SIZE"]


@dataclass(slots=True)
class BatchWriteResult:
    """Outcome of a batched upsert."""

    written: int = 0
    failed: list[tuple[str, str]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class PlantStore:
    """Per-user plant collections plus the data the scheduler consumes.

    Plants are keyed by ``(username, plant_id)`` and stored as JSON payloads.
    One instance may be shared by worker threads; every operation holds an
    internal lock.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._is_memory = str(path) == ":memory:"
        if not self._is_memory:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._shared_conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                if self._is_memory:
                    if self._shared_conn is None:
                        self._shared_conn = sqlite3.connect(":memory:", check_same_thread=False)
                        self._shared_conn.row_factory = sqlite3.Row
                    yield self._shared_conn
                else:
                    conn = sqlite3.connect(self.path)
                    conn.row_factory = sqlite3.Row
                    try:
                        yield conn
                    finally:
                        conn.close()
            except sqlite3.Error as err:
                raise StoreError(str(err)) from err

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    username TEXT PRIMARY KEY,
                    is_playing INTEGER NOT NULL DEFAULT 0,
                    last_active_time TEXT,
                    timezone TEXT
                );

                CREATE TABLE IF NOT EXISTS plants (
                    username TEXT NOT NULL,
                    plant_id TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (username, plant_id)
                );

                CREATE TABLE IF NOT EXISTS weather (
                    username TEXT PRIMARY KEY,
                    entries TEXT NOT NULL,
                    last_weather_update TEXT,
                    timezone TEXT
                );

                CREATE TABLE IF NOT EXISTS facilities (
                    username TEXT PRIMARY KEY,
                    payload TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS species (
                    key TEXT PRIMARY KEY,
                    payload TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS fertilizers (
                    key TEXT PRIMARY KEY,
                    payload TEXT NOT NULL
                );
                """
            )
            conn.commit()

    def close(self) -> None:
        with self._lock:
            if self._shared_conn is not None:
                self._shared_conn.close()
                self._shared_conn = None

    # ------------------------------------------------------------------
    # plants
    def get_plants(self, username: str) -> list[PlantRecord]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT payload FROM plants WHERE username = ? ORDER BY plant_id",
                (username,),
            ).fetchall()
        return [PlantRecord.from_dict(json.loads(row["payload"])) for row in rows]

    def get_plant(self, username: str, plant_id: str) -> PlantRecord | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT payload FROM plants WHERE username = ? AND plant_id = ?",
                (username, plant_id),
            ).fetchone()
        if row is None:
            return None
        return PlantRecord.from_dict(json.loads(row["payload"]))

    def put_plant(self, record: PlantRecord) -> None:
        with self._connection() as conn:
            self._write_batch(conn, [record])
            conn.commit()

    def _write_batch(self, conn: sqlite3.Connection, records: Sequence[PlantRecord]) -> None:
        now = format_timestamp(utcnow())
        conn.executemany(
            """
            INSERT OR REPLACE INTO plants(username, plant_id, payload, updated_at)
            VALUES(?, ?, ?, ?)
            """,
            [(r.username, r.plant_id, json.dumps(r.to_dict()), now) for r in records],
        )

    def put_plants(
        self,
        records: Iterable[PlantRecord],
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> BatchWriteResult:
        """Upsert ``records`` in sub-batches of at most ``batch_size``.

        Each sub-batch commits on its own. A failing sub-batch is rolled back
        and logged while the others still commit.
        """

        items = list(records)
        size = max(1, int(batch_size))
        result = BatchWriteResult()
        for start in range(0, len(items), size):
            chunk = items[start : start + size]
            try:
                with self._connection() as conn:
                    try:
                        self._write_batch(conn, chunk)
                        conn.commit()
                    except (sqlite3.Error, StoreError):
                        conn.rollback()
                        raise
            except StoreError as err:
                _LOGGER.warning(
                    "Failed to persist %d plants starting at %s/%s: %s",
                    len(chunk),
                    chunk[0].username,
                    chunk[0].plant_id,
                    err,
                )
                result.failed.extend(r.key for r in chunk)
                result.errors.append(str(err))
                continue
            result.written += len(chunk)
        return result

    def update_plant_fields(self, username: str, plant_id: str, fields: Mapping[str, Any]) -> bool:
        """Merge serialised ``fields`` into a stored plant.

        Applying the same update twice leaves the same record. Returns
        ``False`` when the plant does not exist.
        """

        with self._connection() as conn:
            row = conn.execute(
                "SELECT payload FROM plants WHERE username = ? AND plant_id = ?",
                (username, plant_id),
            ).fetchone()
            if row is None:
                return False
            payload = json.loads(row["payload"])
            payload.update(fields)
            payload["username"] = username
            payload["plantId"] = plant_id
            record = PlantRecord.from_dict(payload)
            self._write_batch(conn, [record])
            conn.commit()
        return True

    def delete_plant(self, username: str, plant_id: str) -> bool:
        with self._connection() as conn:
            cur = conn.execute(
                "DELETE FROM plants WHERE username = ? AND plant_id = ?",
                (username, plant_id),
            )
            conn.commit()
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # user activity
    def upsert_user(self, activity: UserActivity) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO users(username, is_playing, last_active_time, timezone)
                VALUES(?, ?, ?, ?)
                """,
                (
                    activity.username,
                    int(activity.is_playing),
                    format_timestamp(activity.last_active_time),
                    activity.timezone,
                ),
            )
            conn.commit()

    def get_user(self, username: str) -> UserActivity | None:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE username = ?", (username,)).fetchone()
        return self._user_from_row(row) if row else None

    def list_users(self) -> list[UserActivity]:
        with self._connection() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY username").fetchall()
        return [self._user_from_row(row) for row in rows]

    @staticmethod
    def _user_from_row(row: sqlite3.Row) -> UserActivity:
        return UserActivity(
            username=row["username"],
            is_playing=bool(row["is_playing"]),
            last_active_time=parse_timestamp(row["last_active_time"]),
            timezone=row["timezone"],
        )

    def set_playing(self, username: str, is_playing: bool) -> None:
        with self._connection() as conn:
            conn.execute(
                "UPDATE users SET is_playing = ? WHERE username = ?",
                (int(is_playing), username),
            )
            conn.commit()

    def heartbeat(self, username: str, now: datetime | None = None) -> None:
        """Mark ``username`` as actively playing at ``now``."""

        stamp = format_timestamp(now or utcnow())
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO users(username, is_playing, last_active_time)
                VALUES(?, 1, ?)
                ON CONFLICT(username) DO UPDATE SET is_playing = 1, last_active_time = excluded.last_active_time
                """,
                (username, stamp),
            )
            conn.commit()

    # ------------------------------------------------------------------
    # weather and facilities
    def put_weather(
        self,
        username: str,
        entries: Sequence[Mapping[str, Any]],
        *,
        last_weather_update: str | None = None,
        timezone: str | None = None,
    ) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO weather(username, entries, last_weather_update, timezone)
                VALUES(?, ?, ?, ?)
                """,
                (username, json.dumps(list(entries)), last_weather_update, timezone),
            )
            conn.commit()

    def get_weather(self, username: str) -> WeatherSeries | None:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM weather WHERE username = ?", (username,)).fetchone()
        if row is None:
            return None
        return WeatherSeries.from_records(
            json.loads(row["entries"]),
            last_weather_update=row["last_weather_update"],
            timezone_name=row["timezone"],
        )

    def put_facility_state(self, username: str, state: FacilityState) -> None:
        with self._connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO facilities(username, payload) VALUES(?, ?)",
                (username, json.dumps(state.to_dict())),
            )
            conn.commit()

    def get_facility_state(self, username: str) -> FacilityState:
        with self._connection() as conn:
            row = conn.execute("SELECT payload FROM facilities WHERE username = ?", (username,)).fetchone()
        return FacilityState.from_dict(json.loads(row["payload"]) if row else None)

    # ------------------------------------------------------------------
    # reference data
    def put_species(self, record: Mapping[str, Any]) -> None:
        with self._connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO species(key, payload) VALUES(?, ?)",
                (normalize_key(record["plantName"]), json.dumps(dict(record))),
            )
            conn.commit()

    def get_species(self, name: str) -> dict[str, Any] | None:
        with self._connection() as conn:
            row = conn.execute("SELECT payload FROM species WHERE key = ?", (normalize_key(name),)).fetchone()
        return json.loads(row["payload"]) if row else None

    def put_fertilizer(self, record: Mapping[str, Any]) -> None:
        with self._connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO fertilizers(key, payload) VALUES(?, ?)",
                (normalize_key(record["name"]), json.dumps(dict(record))),
            )
            conn.commit()

    def get_fertilizer(self, name: str) -> dict[str, Any] | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT payload FROM fertilizers WHERE key = ?", (normalize_key(name),)
            ).fetchone()
        return json.loads(row["payload"]) if row else None

    def seed_reference_data(self, source: DatasetReferenceSource | None = None) -> int:
        """Copy bundled species and fertilizer records into the store."""

        source = source or DatasetReferenceSource()
        count = 0
        for name in source.list_species():
            record = source.get_species(name)
            if record is not None:
                self.put_species(record)
                count += 1
        for name in source.list_fertilizers():
            record = source.get_fertilizer(name)
            if record is not None:
                self.put_fertilizer(record)
                count += 1
        return count
