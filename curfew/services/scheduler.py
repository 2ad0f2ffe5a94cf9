"""Curfew schedule engine: lock/unlock jobs per schedule."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from ..store.models import CurfewSchedule, EventType
from ..store.repositories import EventLog, ScheduleStore
from .curfew_service import CurfewService
from .triggers import (
    TriggerJob,
    WeeklyTrigger,
    day_of_week,
    is_in_curfew_window,
    lock_days,
    unlock_days,
)

logger = logging.getLogger(__name__)


@dataclass
class ActiveJob:
    """Lock and unlock jobs installed for one schedule."""

    schedule_id: int
    lock_job: TriggerJob
    unlock_job: TriggerJob

    def cancel(self):
        self.lock_job.cancel()
        self.unlock_job.cancel()


class Scheduler:
    """Keeps one lock/unlock job pair per enabled schedule.

    All methods run on the event loop thread, so the job map is only ever
    mutated between awaits.
    """

    def __init__(
        self,
        schedules: ScheduleStore,
        curfew_service: CurfewService,
        events: EventLog,
        timezone: str,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            schedules: Schedule store
            curfew_service: Service applying curfew transitions
            events: Event log
            timezone: IANA zone schedule times are interpreted in
            clock: Returns the current aware datetime (tests)
        """
        self.schedules = schedules
        self.curfew_service = curfew_service
        self.events = events
        self.tz = ZoneInfo(timezone)
        self._clock = clock or (lambda: datetime.now(self.tz))
        self._jobs: dict[int, ActiveJob] = {}

    @property
    def active_job_count(self) -> int:
        return len(self._jobs)

    def has_jobs(self, schedule_id: int) -> bool:
        return schedule_id in self._jobs

    def initialize(self):
        """Drop all jobs and create them again for every enabled schedule."""
        logger.info("Initializing scheduler")
        self.stop_all()

        for schedule in self.schedules.get_enabled():
            self.create_jobs(schedule.id)

        logger.info(f"Scheduler initialized with {self.active_job_count} active schedules")

    def create_jobs(self, schedule_id: int) -> bool:
        """
        (Re)install the lock and unlock jobs for a schedule.

        Existing jobs for the schedule are always removed first. Nothing is
        installed for a missing or disabled schedule, or one without days.

        Returns:
            True if a job pair was installed
        """
        self.stop_jobs(schedule_id)

        schedule = self.schedules.get_by_id(schedule_id)
        if not schedule or not schedule.enabled:
            return False
        if not schedule.days_of_week:
            logger.info(f"Schedule {schedule_id} has no days selected, no jobs created")
            return False

        lock_trigger = WeeklyTrigger.at(lock_days(schedule.days_of_week), schedule.lock_time, self.tz)
        unlock_trigger = WeeklyTrigger.at(
            unlock_days(schedule.days_of_week, schedule.lock_time, schedule.unlock_time),
            schedule.unlock_time,
            self.tz,
        )

        logger.info(
            f"Creating jobs for schedule {schedule.id} ({schedule.name}, cat {schedule.cat_id}): "
            f"lock='{lock_trigger.describe()}' unlock='{unlock_trigger.describe()}'"
        )

        job = ActiveJob(
            schedule_id=schedule.id,
            lock_job=TriggerJob(
                f"schedule-{schedule.id}-lock",
                lock_trigger,
                lambda: self._run_lock(schedule),
                self._clock,
            ),
            unlock_job=TriggerJob(
                f"schedule-{schedule.id}-unlock",
                unlock_trigger,
                lambda: self._run_unlock(schedule),
                self._clock,
            ),
        )
        job.lock_job.start()
        job.unlock_job.start()
        self._jobs[schedule.id] = job
        return True

    def stop_jobs(self, schedule_id: int):
        """Cancel and remove the jobs of a schedule."""
        job = self._jobs.pop(schedule_id, None)
        if job:
            job.cancel()
            logger.debug(f"Stopped jobs for schedule {schedule_id}")

    def stop_all(self):
        for schedule_id in list(self._jobs):
            self.stop_jobs(schedule_id)

    async def _run_lock(self, schedule: CurfewSchedule):
        logger.info(f"Schedule {schedule.id} ({schedule.name}): activating curfew for cat {schedule.cat_id}")
        success = await self.curfew_service.activate(schedule.cat_id)
        self.events.append(
            EventType.CRON_LOCK,
            {"schedule_id": schedule.id, "name": schedule.name, "success": success},
            schedule.cat_id,
        )

    async def _run_unlock(self, schedule: CurfewSchedule):
        logger.info(f"Schedule {schedule.id} ({schedule.name}): deactivating curfew for cat {schedule.cat_id}")
        success = await self.curfew_service.deactivate(schedule.cat_id)
        self.events.append(
            EventType.CRON_UNLOCK,
            {"schedule_id": schedule.id, "name": schedule.name, "success": success},
            schedule.cat_id,
        )

    async def apply_current_state(self, now: Optional[datetime] = None):
        """
        Bring every scheduled cat to the state its schedules call for now.

        A cat is in curfew if any of its enabled schedules' windows contains
        the current instant. Each such cat gets exactly one activate or
        deactivate call.

        Args:
            now: Instant to evaluate (defaults to the clock)
        """
        logger.info("Evaluating current curfew state")
        now = (now or self._clock()).astimezone(self.tz)
        current_day = day_of_week(now)
        current_time = now.strftime("%H:%M")

        by_cat: dict[int, list[CurfewSchedule]] = {}
        for schedule in self.schedules.get_enabled():
            by_cat.setdefault(schedule.cat_id, []).append(schedule)

        for cat_id, cat_schedules in by_cat.items():
            in_curfew = any(
                is_in_curfew_window(
                    s.days_of_week, s.lock_time, s.unlock_time, current_day, current_time
                )
                for s in cat_schedules
            )

            if in_curfew:
                logger.info(f"Cat {cat_id}: curfew should be active now")
                await self.curfew_service.activate(cat_id)
            else:
                logger.info(f"Cat {cat_id}: curfew should be inactive now")
                await self.curfew_service.deactivate(cat_id)
