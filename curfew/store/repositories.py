"""Stores over the local database: devices, cats, schedules, events, cache."""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from .database import Database
from .models import Cat, CurfewSchedule, Device, Event, ScheduleCreate, ScheduleUpdate

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DeviceStore:
    """Flap devices mirrored from the cloud."""

    def __init__(self, db: Database):
        self.db = db

    def upsert(self, device: Device):
        """Insert or overwrite a device row."""
        with self.db.conn as conn:
            conn.execute(
                """
                INSERT INTO devices (id, name, product_id, battery_level, battery_voltage,
                                     online, lock_mode, signal_strength, raw_data, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    product_id = excluded.product_id,
                    battery_level = excluded.battery_level,
                    battery_voltage = excluded.battery_voltage,
                    online = excluded.online,
                    lock_mode = excluded.lock_mode,
                    signal_strength = excluded.signal_strength,
                    raw_data = excluded.raw_data,
                    updated_at = excluded.updated_at
                """,
                (
                    device.id,
                    device.name,
                    device.product_id,
                    device.battery_level,
                    device.battery_voltage,
                    int(device.online),
                    int(device.lock_mode),
                    device.signal_strength,
                    device.raw_data,
                    _now(),
                ),
            )

    def get_by_id(self, device_id: int) -> Optional[Device]:
        """Get device by id."""
        row = self.db.conn.execute(
            "SELECT * FROM devices WHERE id = ?", (device_id,)
        ).fetchone()
        return Device(**dict(row)) if row else None

    def get_all(self) -> list[Device]:
        """Get all devices."""
        rows = self.db.conn.execute("SELECT * FROM devices ORDER BY id").fetchall()
        return [Device(**dict(row)) for row in rows]

    def update_lock_mode(self, device_id: int, lock_mode: int):
        """Record a new whole-device lock mode."""
        with self.db.conn as conn:
            conn.execute(
                "UPDATE devices SET lock_mode = ?, updated_at = ? WHERE id = ?",
                (int(lock_mode), _now(), device_id),
            )


class CatStore:
    """Cats mirrored from the cloud."""

    def __init__(self, db: Database):
        self.db = db

    def upsert(self, cat: Cat):
        """Insert or overwrite a cat row."""
        with self.db.conn as conn:
            conn.execute(
                """
                INSERT INTO cats (id, name, tag_id, device_id, location, current_profile,
                                  curfew_active, raw_data, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    tag_id = excluded.tag_id,
                    device_id = excluded.device_id,
                    location = excluded.location,
                    current_profile = excluded.current_profile,
                    curfew_active = excluded.curfew_active,
                    raw_data = excluded.raw_data,
                    updated_at = excluded.updated_at
                """,
                (
                    cat.id,
                    cat.name,
                    cat.tag_id,
                    cat.device_id,
                    cat.location,
                    int(cat.current_profile),
                    int(cat.curfew_active),
                    cat.raw_data,
                    _now(),
                ),
            )

    def get_by_id(self, cat_id: int) -> Optional[Cat]:
        """Get cat by id."""
        row = self.db.conn.execute("SELECT * FROM cats WHERE id = ?", (cat_id,)).fetchone()
        return Cat(**dict(row)) if row else None

    def get_all(self) -> list[Cat]:
        """Get all cats."""
        rows = self.db.conn.execute("SELECT * FROM cats ORDER BY id").fetchall()
        return [Cat(**dict(row)) for row in rows]

    def update_profile(self, cat_id: int, profile: int, curfew_active: bool):
        """Record a confirmed profile change."""
        with self.db.conn as conn:
            conn.execute(
                "UPDATE cats SET current_profile = ?, curfew_active = ?, updated_at = ? WHERE id = ?",
                (int(profile), int(curfew_active), _now(), cat_id),
            )


class ScheduleStore:
    """Curfew schedules, owned locally."""

    def __init__(self, db: Database):
        self.db = db

    def _to_schedule(self, row: sqlite3.Row) -> CurfewSchedule:
        data = dict(row)
        data["days_of_week"] = json.loads(data["days_of_week"] or "[]")
        return CurfewSchedule(**data)

    def get_all(self) -> list[CurfewSchedule]:
        rows = self.db.conn.execute(
            "SELECT * FROM curfew_schedules ORDER BY cat_id, lock_time"
        ).fetchall()
        return [self._to_schedule(row) for row in rows]

    def get_enabled(self) -> list[CurfewSchedule]:
        """Get enabled schedules, grouped by cat."""
        rows = self.db.conn.execute(
            "SELECT * FROM curfew_schedules WHERE enabled = 1 ORDER BY cat_id, lock_time"
        ).fetchall()
        return [self._to_schedule(row) for row in rows]

    def get_by_cat_id(self, cat_id: int) -> list[CurfewSchedule]:
        rows = self.db.conn.execute(
            "SELECT * FROM curfew_schedules WHERE cat_id = ? ORDER BY lock_time",
            (cat_id,),
        ).fetchall()
        return [self._to_schedule(row) for row in rows]

    def get_by_id(self, schedule_id: int) -> Optional[CurfewSchedule]:
        row = self.db.conn.execute(
            "SELECT * FROM curfew_schedules WHERE id = ?", (schedule_id,)
        ).fetchone()
        return self._to_schedule(row) if row else None

    def create(self, schedule: ScheduleCreate) -> CurfewSchedule:
        """Create a schedule (enabled)."""
        now = _now()
        with self.db.conn as conn:
            cursor = conn.execute(
                """
                INSERT INTO curfew_schedules (cat_id, name, days_of_week, lock_time, unlock_time,
                                              enabled, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, 1, ?, ?)
                """,
                (
                    schedule.cat_id,
                    schedule.name,
                    json.dumps(schedule.days_of_week),
                    schedule.lock_time,
                    schedule.unlock_time,
                    now,
                    now,
                ),
            )
        logger.info(f"Created schedule {cursor.lastrowid}: {schedule.name} (cat {schedule.cat_id})")
        return self.get_by_id(cursor.lastrowid)

    def update(self, schedule_id: int, fields: ScheduleUpdate) -> Optional[CurfewSchedule]:
        """Update the given fields; returns None for an unknown id."""
        if not self.get_by_id(schedule_id):
            return None

        updates = []
        params = []

        if fields.name is not None:
            updates.append("name = ?")
            params.append(fields.name)

        if fields.days_of_week is not None:
            updates.append("days_of_week = ?")
            params.append(json.dumps(fields.days_of_week))

        if fields.lock_time is not None:
            updates.append("lock_time = ?")
            params.append(fields.lock_time)

        if fields.unlock_time is not None:
            updates.append("unlock_time = ?")
            params.append(fields.unlock_time)

        if updates:
            updates.append("updated_at = ?")
            params.append(_now())
            params.append(schedule_id)
            with self.db.conn as conn:
                conn.execute(
                    f"UPDATE curfew_schedules SET {', '.join(updates)} WHERE id = ?",
                    params,
                )

        return self.get_by_id(schedule_id)

    def delete(self, schedule_id: int) -> bool:
        with self.db.conn as conn:
            cursor = conn.execute("DELETE FROM curfew_schedules WHERE id = ?", (schedule_id,))
        return cursor.rowcount > 0

    def toggle(self, schedule_id: int) -> Optional[CurfewSchedule]:
        """Flip the enabled flag."""
        with self.db.conn as conn:
            conn.execute(
                """
                UPDATE curfew_schedules
                SET enabled = CASE WHEN enabled = 1 THEN 0 ELSE 1 END, updated_at = ?
                WHERE id = ?
                """,
                (_now(), schedule_id),
            )
        return self.get_by_id(schedule_id)


class EventLog:
    """Append-only audit trail."""

    def __init__(self, db: Database):
        self.db = db

    def append(
        self,
        event_type: str,
        details: Optional[dict] = None,
        cat_id: Optional[int] = None,
        device_id: Optional[int] = None,
    ) -> int:
        """
        Append an event.

        Args:
            event_type: Event type tag (see EventType)
            details: Optional JSON-serializable payload
            cat_id: Related cat, if any
            device_id: Related device, if any

        Returns:
            Id of the new event
        """
        with self.db.conn as conn:
            cursor = conn.execute(
                "INSERT INTO event_log (event_type, cat_id, device_id, details, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    event_type,
                    cat_id,
                    device_id,
                    json.dumps(details) if details is not None else None,
                    _now(),
                ),
            )
        return cursor.lastrowid

    def _to_event(self, row: sqlite3.Row) -> Event:
        data = dict(row)
        data["details"] = json.loads(data["details"]) if data["details"] else None
        return Event(**data)

    def _filters(self, event_type: Optional[str], cat_id: Optional[int]) -> tuple[str, list]:
        sql = " WHERE 1=1"
        params = []
        if event_type:
            sql += " AND event_type = ?"
            params.append(event_type)
        if cat_id is not None:
            sql += " AND cat_id = ?"
            params.append(cat_id)
        return sql, params

    def get_all(
        self,
        limit: int = 100,
        offset: int = 0,
        event_type: Optional[str] = None,
        cat_id: Optional[int] = None,
    ) -> list[Event]:
        """Get events, newest first."""
        where, params = self._filters(event_type, cat_id)
        rows = self.db.conn.execute(
            f"SELECT * FROM event_log{where} ORDER BY id DESC LIMIT ? OFFSET ?",
            [*params, limit, offset],
        ).fetchall()
        return [self._to_event(row) for row in rows]

    def count(self, event_type: Optional[str] = None, cat_id: Optional[int] = None) -> int:
        where, params = self._filters(event_type, cat_id)
        row = self.db.conn.execute(f"SELECT COUNT(*) FROM event_log{where}", params).fetchone()
        return row[0]

    def get_by_cat_id(self, cat_id: int, limit: int = 50) -> list[Event]:
        return self.get_all(limit=limit, cat_id=cat_id)


class Cache:
    """Key/value state (auth token, last poll, household id)."""

    def __init__(self, db: Database):
        self.db = db

    def get(self, key: str) -> Optional[str]:
        row = self.db.conn.execute(
            "SELECT value FROM state_cache WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str):
        with self.db.conn as conn:
            conn.execute(
                """
                INSERT INTO state_cache (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, str(value), _now()),
            )

    def delete(self, key: str):
        with self.db.conn as conn:
            conn.execute("DELETE FROM state_cache WHERE key = ?", (key,))
