"""Models for Sure Petcare API payloads."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SurePetModel(BaseModel):
    """Base for API payloads; unknown fields are kept for raw_data."""

    model_config = ConfigDict(extra="allow")


class Household(SurePetModel):
    """A household the account belongs to."""

    id: int
    name: str = ""


class Signal(SurePetModel):
    device_rssi: Optional[float] = None
    hub_rssi: Optional[float] = None


class DeviceStatus(SurePetModel):
    battery: Optional[float] = None
    online: bool = False
    signal: Optional[Signal] = None


class DeviceControl(SurePetModel):
    locking: int = 0


class DeviceTag(SurePetModel):
    """A tag entry in a flap's access-control list."""

    id: int
    profile: int = 2


class Device(SurePetModel):
    """A device (hub, flap, feeder, ...) as returned by the dashboard."""

    id: int
    name: str = ""
    product_id: Optional[int] = None
    household_id: Optional[int] = None
    status: Optional[DeviceStatus] = None
    control: Optional[DeviceControl] = None
    tags: Optional[list[DeviceTag]] = None


class Activity(SurePetModel):
    where: Optional[int] = None
    device_id: Optional[int] = None
    since: Optional[str] = None


class PetStatus(SurePetModel):
    activity: Optional[Activity] = None


class Pet(SurePetModel):
    """A pet registered in the household."""

    id: int
    name: str = ""
    tag_id: Optional[int] = None
    household_id: Optional[int] = None
    status: Optional[PetStatus] = None

    @property
    def where(self) -> Optional[int]:
        """Raw location value from the last recorded activity."""
        if self.status and self.status.activity:
            return self.status.activity.where
        return None


class Tag(SurePetModel):
    id: int
    tag: str = ""


class Dashboard(SurePetModel):
    """Full account snapshot returned by /me/start."""

    households: list[Household] = Field(default_factory=list)
    devices: list[Device] = Field(default_factory=list)
    pets: list[Pet] = Field(default_factory=list)
    tags: list[Tag] = Field(default_factory=list)
