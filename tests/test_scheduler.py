"""Tests for the schedule engine."""

import asyncio
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio

from curfew.services.scheduler import Scheduler
from curfew.store.models import EventType, ScheduleCreate, ScheduleUpdate

UTC = ZoneInfo("UTC")
MONDAY = datetime(2024, 1, 1, tzinfo=UTC)


class RecordingCurfewService:
    def __init__(self, result=True):
        self.calls = []
        self.result = result

    async def activate(self, cat_id):
        self.calls.append(("activate", cat_id))
        return self.result

    async def deactivate(self, cat_id):
        self.calls.append(("deactivate", cat_id))
        return self.result


@pytest.fixture
def curfew_service():
    return RecordingCurfewService()


@pytest_asyncio.fixture
async def scheduler(schedules, curfew_service, events):
    engine = Scheduler(schedules, curfew_service, events, "UTC")
    yield engine
    engine.stop_all()
    await asyncio.sleep(0)


def add_schedule(schedules, cat_id=1, days=(1,), lock="21:00", unlock="07:00", name="Night"):
    return schedules.create(
        ScheduleCreate(
            cat_id=cat_id, name=name, days_of_week=list(days), lock_time=lock, unlock_time=unlock
        )
    )


@pytest.mark.asyncio
async def test_create_then_stop_removes_the_pair(scheduler, schedules):
    other = add_schedule(schedules, cat_id=2)
    schedule = add_schedule(schedules)
    scheduler.create_jobs(other.id)

    assert scheduler.create_jobs(schedule.id) is True
    assert scheduler.active_job_count == 2

    scheduler.stop_jobs(schedule.id)

    assert scheduler.active_job_count == 1
    assert not scheduler.has_jobs(schedule.id)


@pytest.mark.asyncio
async def test_create_jobs_replaces_existing_pair(scheduler, schedules):
    schedule = add_schedule(schedules)
    scheduler.create_jobs(schedule.id)
    old = scheduler._jobs[schedule.id]

    scheduler.create_jobs(schedule.id)
    await asyncio.sleep(0)

    assert scheduler.active_job_count == 1
    assert scheduler._jobs[schedule.id] is not old
    assert not old.lock_job.running
    assert not old.unlock_job.running


@pytest.mark.asyncio
async def test_overnight_unlock_is_installed_on_following_day(scheduler, schedules):
    schedule = add_schedule(schedules, days=(1, 6), lock="21:00", unlock="07:00")

    scheduler.create_jobs(schedule.id)
    job = scheduler._jobs[schedule.id]

    assert job.lock_job.trigger.days == {1, 6}
    assert job.unlock_job.trigger.days == {2, 0}
    assert (job.unlock_job.trigger.hour, job.unlock_job.trigger.minute) == (7, 0)


@pytest.mark.asyncio
async def test_disabled_schedule_gets_no_jobs_and_loses_old_ones(scheduler, schedules):
    schedule = add_schedule(schedules)
    scheduler.create_jobs(schedule.id)

    schedules.toggle(schedule.id)

    assert scheduler.create_jobs(schedule.id) is False
    assert scheduler.active_job_count == 0


@pytest.mark.asyncio
async def test_schedule_without_days_gets_no_jobs(scheduler, schedules):
    schedule = add_schedule(schedules)
    scheduler.create_jobs(schedule.id)

    schedules.update(schedule.id, ScheduleUpdate(days_of_week=[]))

    assert scheduler.create_jobs(schedule.id) is False
    assert scheduler.active_job_count == 0


@pytest.mark.asyncio
async def test_missing_schedule_gets_no_jobs(scheduler):
    assert scheduler.create_jobs(404) is False
    assert scheduler.active_job_count == 0


@pytest.mark.asyncio
async def test_equal_lock_and_unlock_times_are_accepted(scheduler, schedules):
    schedule = add_schedule(schedules, lock="09:00", unlock="09:00")

    assert scheduler.create_jobs(schedule.id) is True


@pytest.mark.asyncio
async def test_initialize_installs_enabled_schedules_only(scheduler, schedules):
    add_schedule(schedules, cat_id=1)
    add_schedule(schedules, cat_id=2)
    disabled = add_schedule(schedules, cat_id=3)
    schedules.toggle(disabled.id)

    scheduler.initialize()
    assert scheduler.active_job_count == 2

    scheduler.initialize()
    assert scheduler.active_job_count == 2


@pytest.mark.asyncio
async def test_lock_job_fires_and_records_event(schedules, curfew_service, events):
    schedule = add_schedule(schedules, days=(1,), lock="21:00", unlock="07:00")
    now = MONDAY.replace(hour=21) - timedelta(milliseconds=20)
    scheduler = Scheduler(schedules, curfew_service, events, "UTC", clock=lambda: now)

    scheduler.create_jobs(schedule.id)
    await asyncio.sleep(0.2)
    scheduler.stop_all()
    await asyncio.sleep(0)

    assert curfew_service.calls == [("activate", 1)]
    [event] = events.get_all(event_type=EventType.CRON_LOCK)
    assert event.details == {"schedule_id": schedule.id, "name": "Night", "success": True}
    assert event.cat_id == 1


@pytest.mark.asyncio
async def test_unlock_job_records_failure(schedules, events):
    curfew_service = RecordingCurfewService(result=False)
    schedule = add_schedule(schedules, days=(1,), lock="21:00", unlock="07:00")
    now = MONDAY.replace(day=2, hour=7) - timedelta(milliseconds=20)  # Tuesday
    scheduler = Scheduler(schedules, curfew_service, events, "UTC", clock=lambda: now)

    scheduler.create_jobs(schedule.id)
    await asyncio.sleep(0.2)
    scheduler.stop_all()
    await asyncio.sleep(0)

    assert curfew_service.calls == [("deactivate", 1)]
    [event] = events.get_all(event_type=EventType.CRON_UNLOCK)
    assert event.details["success"] is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "now, expected",
    [
        (MONDAY.replace(hour=22), "activate"),
        (MONDAY.replace(day=2, hour=6), "activate"),
        (MONDAY.replace(day=2, hour=8), "deactivate"),
        (MONDAY.replace(day=7, hour=23), "deactivate"),
    ],
)
async def test_apply_current_state_overnight(scheduler, schedules, curfew_service, now, expected):
    add_schedule(schedules, days=(1,), lock="21:00", unlock="07:00")

    await scheduler.apply_current_state(now)

    assert curfew_service.calls == [(expected, 1)]


@pytest.mark.asyncio
async def test_apply_current_state_unions_schedules(scheduler, schedules, curfew_service):
    add_schedule(schedules, cat_id=1, days=(1,), lock="08:00", unlock="17:00", name="Day")
    add_schedule(schedules, cat_id=1, days=(1,), lock="21:00", unlock="07:00", name="Night")

    await scheduler.apply_current_state(MONDAY.replace(hour=12))

    assert curfew_service.calls == [("activate", 1)]


@pytest.mark.asyncio
async def test_apply_current_state_calls_each_cat_once(scheduler, schedules, curfew_service):
    add_schedule(schedules, cat_id=1, days=(1,), lock="08:00", unlock="17:00")
    add_schedule(schedules, cat_id=1, days=(2,), lock="08:00", unlock="17:00")
    add_schedule(schedules, cat_id=2, days=(1,), lock="13:00", unlock="14:00")
    disabled = add_schedule(schedules, cat_id=3, days=(1,), lock="08:00", unlock="17:00")
    schedules.toggle(disabled.id)

    await scheduler.apply_current_state(MONDAY.replace(hour=12))

    assert sorted(curfew_service.calls) == [("activate", 1), ("deactivate", 2)]


@pytest.mark.asyncio
async def test_apply_current_state_uses_configured_timezone(schedules, curfew_service, events):
    add_schedule(schedules, days=(1,), lock="08:00", unlock="17:00")
    scheduler = Scheduler(schedules, curfew_service, events, "Asia/Tokyo")

    # 00:30 UTC Monday is 09:30 Monday in Tokyo
    await scheduler.apply_current_state(datetime(2024, 1, 1, 0, 30, tzinfo=UTC))

    assert curfew_service.calls == [("activate", 1)]
