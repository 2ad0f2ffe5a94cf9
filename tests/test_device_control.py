"""Tests for whole-device lock control."""

import pytest

from curfew.exceptions import NotFoundError, RemoteApiError, ValidationError
from curfew.services.device_control import DeviceControl
from curfew.store.models import Device, EventType
from curfew.surepet.const import LockMode


@pytest.fixture
def control(fake_client, devices, events):
    devices.upsert(Device(id=10, name="Back door", product_id=6, online=True))
    return DeviceControl(fake_client, devices, events)


@pytest.mark.asyncio
async def test_set_lock_mode_writes_through(control, fake_client, devices, events):
    lock_mode = await control.set_lock_mode(10, "locked_in")

    assert lock_mode == LockMode.LOCKED_IN
    assert fake_client.lock_calls == [(10, 1)]
    assert devices.get_by_id(10).lock_mode == 1
    [event] = events.get_all()
    assert event.event_type == EventType.DEVICE_LOCK_CHANGED
    assert event.device_id == 10
    assert event.details == {"name": "Back door", "mode": "locked_in", "lock_mode": 1}


@pytest.mark.asyncio
async def test_unknown_mode_is_rejected(control, fake_client):
    with pytest.raises(ValidationError):
        await control.set_lock_mode(10, "sideways")

    assert fake_client.lock_calls == []


@pytest.mark.asyncio
async def test_unknown_device_is_not_found(control, fake_client):
    with pytest.raises(NotFoundError):
        await control.set_lock_mode(99, "unlocked")

    assert fake_client.lock_calls == []


@pytest.mark.asyncio
async def test_remote_failure_leaves_local_state(control, fake_client, devices, events, remote_failure):
    fake_client.fail_with = remote_failure

    with pytest.raises(RemoteApiError):
        await control.set_lock_mode(10, "locked_all")

    assert devices.get_by_id(10).lock_mode == 0
    assert events.count() == 0
