"""Records stored in the local database."""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ..exceptions import ValidationError

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

LOCATION_INSIDE = "inside"
LOCATION_OUTSIDE = "outside"
LOCATION_UNKNOWN = "unknown"

ALL_DAYS = [0, 1, 2, 3, 4, 5, 6]


class EventType:
    """Event log type tags."""

    DEVICE_DISCOVERED = "device_discovered"
    DEVICE_ONLINE = "device_online"
    DEVICE_OFFLINE = "device_offline"
    DEVICE_LOCK_CHANGED = "device_lock_changed"
    CAT_DISCOVERED = "cat_discovered"
    CAT_MOVEMENT = "cat_movement"
    CURFEW_ACTIVATED = "curfew_activated"
    CURFEW_DEACTIVATED = "curfew_deactivated"
    CURFEW_ERROR = "curfew_error"
    CRON_LOCK = "cron_lock"
    CRON_UNLOCK = "cron_unlock"


def validate_time(value: str) -> str:
    """Check an "HH:MM" time of day."""
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise ValidationError(f"time must be HH:MM format, got {value!r}")
    return value


def validate_days(days: list[int]) -> list[int]:
    """Check a list of weekdays (0=Sunday .. 6=Saturday)."""
    if not isinstance(days, list) or not all(
        isinstance(d, int) and not isinstance(d, bool) and d in ALL_DAYS for d in days
    ):
        raise ValidationError("days_of_week must be array of 0-6 (Sun-Sat)")
    if len(set(days)) != len(days):
        raise ValidationError("days_of_week must not contain duplicates")
    return days


class Device(BaseModel):
    """Flap device record."""

    id: int
    name: str
    product_id: Optional[int] = None
    battery_level: Optional[float] = None
    battery_voltage: Optional[float] = None
    online: bool = False
    lock_mode: int = 0
    signal_strength: Optional[float] = None
    raw_data: Optional[str] = None
    updated_at: Optional[datetime] = None


class Cat(BaseModel):
    """Cat record."""

    id: int
    name: str
    tag_id: int
    device_id: Optional[int] = None
    location: str = LOCATION_UNKNOWN
    current_profile: int = 2
    curfew_active: bool = False
    raw_data: Optional[str] = None
    updated_at: Optional[datetime] = None


class CurfewSchedule(BaseModel):
    """Curfew schedule record."""

    id: int
    cat_id: int
    name: str
    days_of_week: list[int]
    lock_time: str
    unlock_time: str
    enabled: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_overnight(self) -> bool:
        """True when the window wraps past midnight."""
        return self.lock_time > self.unlock_time


class Event(BaseModel):
    """Event log entry."""

    id: int
    event_type: str
    cat_id: Optional[int] = None
    device_id: Optional[int] = None
    details: Optional[dict] = None
    created_at: Optional[datetime] = None


class ScheduleCreate(BaseModel):
    """Fields for a new schedule."""

    cat_id: int
    name: str
    days_of_week: list[int] = ALL_DAYS
    lock_time: str
    unlock_time: str

    @field_validator("lock_time", "unlock_time")
    @classmethod
    def _check_time(cls, v):
        return validate_time(v)

    @field_validator("days_of_week")
    @classmethod
    def _check_days(cls, v):
        return validate_days(v)


class ScheduleUpdate(BaseModel):
    """Partial update of a schedule."""

    name: Optional[str] = None
    days_of_week: Optional[list[int]] = None
    lock_time: Optional[str] = None
    unlock_time: Optional[str] = None

    @field_validator("lock_time", "unlock_time")
    @classmethod
    def _check_time(cls, v):
        return v if v is None else validate_time(v)

    @field_validator("days_of_week")
    @classmethod
    def _check_days(cls, v):
        return v if v is None else validate_days(v)
