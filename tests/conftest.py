"""Shared fixtures: a temporary database, its stores and a fake API client."""

import asyncio

import pytest

from curfew.exceptions import RemoteApiError
from curfew.store.database import Database
from curfew.store.models import Cat
from curfew.store.repositories import Cache, CatStore, DeviceStore, EventLog, ScheduleStore
from curfew.surepet.models import Dashboard


class FakeSurePetClient:
    """Stands in for SurePetClient; records profile and lock writes."""

    def __init__(self):
        self.dashboard = Dashboard()
        self.dashboard_error = None
        self.dashboard_calls = 0
        self.profile_calls = []
        self.lock_calls = []
        self.fail_with = None
        self.delay = 0.0

    async def get_dashboard(self):
        self.dashboard_calls += 1
        if self.dashboard_error:
            raise self.dashboard_error
        return self.dashboard

    async def set_tag_profile(self, device_id, tag_id, profile):
        if self.delay:
            await asyncio.sleep(self.delay)
        self.profile_calls.append((device_id, tag_id, int(profile)))
        if self.fail_with:
            raise self.fail_with
        return {"data": {"tag_id": tag_id, "profile": int(profile)}}

    async def set_device_lock(self, device_id, lock_mode):
        self.lock_calls.append((device_id, int(lock_mode)))
        if self.fail_with:
            raise self.fail_with
        return {"data": {"locking": int(lock_mode)}}

    async def close(self):
        pass


@pytest.fixture
def db(tmp_path):
    database = Database(str(tmp_path / "surepet.db"))
    yield database
    database.close()


@pytest.fixture
def devices(db):
    return DeviceStore(db)


@pytest.fixture
def cats(db):
    return CatStore(db)


@pytest.fixture
def schedules(db):
    return ScheduleStore(db)


@pytest.fixture
def events(db):
    return EventLog(db)


@pytest.fixture
def cache(db):
    return Cache(db)


@pytest.fixture
def fake_client():
    return FakeSurePetClient()


@pytest.fixture
def remote_failure():
    return RemoteApiError(500, "boom", "PUT", "/device/10/tag/100")


@pytest.fixture
def add_cat(cats):
    """Insert a cat row: add_cat(cat_id, profile=2, device_id=10)."""

    def _add(cat_id=1, profile=2, device_id=10, name=None, location="inside"):
        cat = Cat(
            id=cat_id,
            name=name or f"Cat {cat_id}",
            tag_id=100 + cat_id,
            device_id=device_id,
            location=location,
            current_profile=profile,
            curfew_active=profile == 3,
        )
        cats.upsert(cat)
        return cat

    return _add
