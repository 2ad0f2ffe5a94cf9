"""Whole-device lock mode control."""

import logging

from ..exceptions import NotFoundError, ValidationError
from ..store.models import EventType
from ..store.repositories import DeviceStore, EventLog
from ..surepet.client import SurePetClient
from ..surepet.const import LOCK_MODE_NAMES, LockMode

logger = logging.getLogger(__name__)

LOCK_MODES_BY_NAME = {name: mode for mode, name in LOCK_MODE_NAMES.items()}


class DeviceControl:
    """Sets a flap's lock mode and records it locally."""

    def __init__(self, client: SurePetClient, devices: DeviceStore, events: EventLog):
        self.client = client
        self.devices = devices
        self.events = events

    async def set_lock_mode(self, device_id: int, mode: str) -> LockMode:
        """
        Set the lock mode of a device.

        Args:
            device_id: Device to update
            mode: One of unlocked, locked_in, locked_out, locked_all

        Returns:
            The numeric lock mode applied

        Raises:
            ValidationError: Unknown mode name
            NotFoundError: Unknown device
            SurePetError: The API call failed
        """
        lock_mode = LOCK_MODES_BY_NAME.get(mode)
        if lock_mode is None:
            raise ValidationError(f"mode must be one of: {', '.join(LOCK_MODES_BY_NAME)}")

        device = self.devices.get_by_id(device_id)
        if not device:
            raise NotFoundError(f"Device not found: {device_id}")

        await self.client.set_device_lock(device_id, lock_mode)
        self.devices.update_lock_mode(device_id, lock_mode)
        self.events.append(
            EventType.DEVICE_LOCK_CHANGED,
            {"name": device.name, "mode": mode, "lock_mode": int(lock_mode)},
            device_id=device_id,
        )
        logger.info(f"Device {device.name} ({device_id}) lock mode set to {mode}")
        return lock_mode
