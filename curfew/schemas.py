"""HTTP API request/response models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from .store.models import Cat, CurfewSchedule, Device


class HealthResponse(BaseModel):
    """Response for /health endpoint."""

    status: str = "ok"
    uptime: int
    last_poll: Optional[str] = None
    polling: bool = False
    active_schedules: int = 0


class CatWithSchedules(Cat):
    schedules: list[CurfewSchedule] = []


class DeviceWithMode(Device):
    lock_mode_name: str = "unknown"


class StatusResponse(BaseModel):
    """Response for /api/status endpoint."""

    cats: list[CatWithSchedules]
    devices: list[DeviceWithMode]
    household_id: Optional[int] = None
    last_poll: Optional[str] = None
    active_schedules: int = 0


class LockRequest(BaseModel):
    """Body for /api/devices/{id}/lock."""

    mode: str


class SyncResponse(BaseModel):
    status: str = "synced"
    timestamp: datetime
