"""Mirrors Sure Petcare devices and pets into the local database."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from ..store.models import (
    LOCATION_INSIDE,
    LOCATION_OUTSIDE,
    LOCATION_UNKNOWN,
    Cat,
    Device,
    EventType,
)
from ..store.repositories import Cache, CatStore, DeviceStore, EventLog
from ..surepet import models as api
from ..surepet.client import SurePetClient
from ..surepet.const import (
    BATTERY_VOLTAGE_EMPTY,
    BATTERY_VOLTAGE_RANGE,
    FLAP_PRODUCTS,
    WHERE_INSIDE,
    WHERE_OUTSIDE,
    TagProfile,
)

logger = logging.getLogger(__name__)

HOUSEHOLD_CACHE_KEY = "household_id"
LAST_POLL_CACHE_KEY = "last_poll"


def battery_percent(voltage: Optional[float]) -> Optional[int]:
    """Estimate battery percentage from pack voltage."""
    if not voltage:
        return None
    percent = round((voltage - BATTERY_VOLTAGE_EMPTY) / BATTERY_VOLTAGE_RANGE * 100)
    return max(0, min(100, percent))


def location_name(where: Optional[int]) -> str:
    """Map the API's activity "where" value to a location."""
    if where == WHERE_INSIDE:
        return LOCATION_INSIDE
    if where == WHERE_OUTSIDE:
        return LOCATION_OUTSIDE
    return LOCATION_UNKNOWN


def resolve_tag(pet: api.Pet, devices: list[api.Device]) -> tuple[Optional[int], int]:
    """
    Find the flap a pet's tag is registered on.

    The first device in snapshot order wins.

    Returns:
        Tuple of (device_id, profile); (None, FULL_ACCESS) if no device has the tag
    """
    for device in devices:
        for tag in device.tags or []:
            if tag.id == pet.tag_id:
                return device.id, tag.profile
    return None, int(TagProfile.FULL_ACCESS)


class StateManager:
    """Polls the cloud dashboard and reconciles it into the local stores."""

    def __init__(
        self,
        client: SurePetClient,
        devices: DeviceStore,
        cats: CatStore,
        events: EventLog,
        cache: Cache,
        poll_interval: float = 60,
    ):
        """
        Initialize state manager.

        Args:
            client: Sure Petcare API client
            devices: Device store
            cats: Cat store
            events: Event log
            cache: Cache for household id and last poll time
            poll_interval: Seconds between polls
        """
        self.client = client
        self.devices = devices
        self.cats = cats
        self.events = events
        self.cache = cache
        self.poll_interval = poll_interval
        self._poll_lock = asyncio.Lock()
        self._poll_task: Optional[asyncio.Task] = None

    async def initial_sync(self):
        logger.info("Starting initial sync with Sure Petcare API")
        await self.sync()
        logger.info("Initial sync complete")

    def start_polling(self):
        """Start the periodic poll loop."""
        if self._poll_task is not None:
            return
        logger.info(f"Starting poll loop (every {self.poll_interval}s)")
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())

    def stop_polling(self):
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
            logger.info("Poll loop stopped")

    @property
    def polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def _poll_loop(self):
        while True:
            await asyncio.sleep(self.poll_interval)
            logger.debug("Poll tick")
            try:
                await self.sync()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Poll failed")

    async def sync(self):
        """Run poll() with at most one poll in flight."""
        async with self._poll_lock:
            await self.poll()

    async def poll(self):
        """
        Fetch the dashboard and reconcile devices and cats.

        Raises whatever the API client raises.
        """
        dashboard = await self.client.get_dashboard()

        for device in dashboard.devices:
            if device.product_id in FLAP_PRODUCTS:
                self._sync_device(device)

        locations = {}
        for pet in dashboard.pets:
            if pet.tag_id is None:
                logger.warning(f"Pet {pet.name} ({pet.id}) has no tag, skipping")
                continue
            cat = self._sync_pet(pet, dashboard.devices)
            locations[cat.name] = cat.location

        if dashboard.households:
            self.cache.set(HOUSEHOLD_CACHE_KEY, str(dashboard.households[0].id))
        self.cache.set(LAST_POLL_CACHE_KEY, datetime.now(timezone.utc).isoformat())

        logger.info(f"Poll complete: {len(dashboard.devices)} devices, cats={locations}")

    def _sync_device(self, remote: api.Device) -> Device:
        existing = self.devices.get_by_id(remote.id)

        status = remote.status or api.DeviceStatus()
        voltage = status.battery
        device = Device(
            id=remote.id,
            name=remote.name,
            product_id=remote.product_id,
            battery_level=battery_percent(voltage),
            battery_voltage=voltage,
            online=status.online,
            lock_mode=remote.control.locking if remote.control else 0,
            signal_strength=status.signal.device_rssi if status.signal else None,
            raw_data=remote.model_dump_json(),
        )
        self.devices.upsert(device)

        if existing is None:
            logger.info(
                f"Device discovered: {device.name} ({device.id}), "
                f"battery={device.battery_level}, online={device.online}"
            )
            self.events.append(
                EventType.DEVICE_DISCOVERED,
                {"name": device.name, "product_id": device.product_id},
                device_id=device.id,
            )
        elif existing.online != device.online:
            logger.info(f"Device {device.name} ({device.id}) is now {'online' if device.online else 'offline'}")
            self.events.append(
                EventType.DEVICE_ONLINE if device.online else EventType.DEVICE_OFFLINE,
                {"name": device.name},
                device_id=device.id,
            )

        return device

    def _sync_pet(self, pet: api.Pet, devices: list[api.Device]) -> Cat:
        existing = self.cats.get_by_id(pet.id)

        device_id, profile = resolve_tag(pet, devices)
        cat = Cat(
            id=pet.id,
            name=pet.name,
            tag_id=pet.tag_id,
            device_id=device_id,
            location=location_name(pet.where),
            current_profile=profile,
            curfew_active=profile == TagProfile.INDOOR_ONLY,
            raw_data=pet.model_dump_json(),
        )
        self.cats.upsert(cat)

        if existing is None:
            logger.info(
                f"Cat discovered: {cat.name} ({cat.id}), tag={cat.tag_id}, "
                f"location={cat.location}, device={cat.device_id}"
            )
            self.events.append(
                EventType.CAT_DISCOVERED,
                {"name": cat.name, "tag_id": cat.tag_id},
                cat.id,
                cat.device_id,
            )
        elif existing.location != cat.location:
            logger.info(f"Cat movement: {cat.name} {existing.location} -> {cat.location}")
            self.events.append(
                EventType.CAT_MOVEMENT,
                {"name": cat.name, "from": existing.location, "to": cat.location},
                cat.id,
                cat.device_id,
            )

        return cat

    def get_household_id(self) -> Optional[int]:
        cached = self.cache.get(HOUSEHOLD_CACHE_KEY)
        return int(cached) if cached else None

    def get_last_poll(self) -> Optional[str]:
        return self.cache.get(LAST_POLL_CACHE_KEY)
