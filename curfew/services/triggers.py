"""Weekly time-of-day triggers and curfew window evaluation.

Days are numbered 0=Sunday .. 6=Saturday and times are "HH:MM" strings, which
compare correctly as text.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Awaitable, Callable, Iterable, Optional
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


def day_of_week(dt: datetime) -> int:
    """
    Get day of week where Sunday=0, Saturday=6.

    Args:
        dt: Datetime to check

    Returns:
        Day of week (0-6)
    """
    # Python weekday: Monday=0, Sunday=6
    return (dt.weekday() + 1) % 7


def is_overnight(lock_time: str, unlock_time: str) -> bool:
    return lock_time > unlock_time


def is_in_curfew_window(
    days: Iterable[int],
    lock_time: str,
    unlock_time: str,
    current_day: int,
    current_time: str,
) -> bool:
    """
    Check whether an instant falls inside a schedule's curfew window.

    A window opens at lock_time on each listed day. Same-day windows close at
    unlock_time that day (exclusive); overnight windows close at unlock_time on
    the following day.

    Args:
        days: Days the window opens on
        lock_time: Opening time "HH:MM"
        unlock_time: Closing time "HH:MM"
        current_day: Day of week of the instant
        current_time: Time of day of the instant, "HH:MM"

    Returns:
        True if the instant is inside the window
    """
    days = set(days)

    if is_overnight(lock_time, unlock_time):
        yesterday = (current_day + 6) % 7
        if current_day in days and current_time >= lock_time:
            return True
        if yesterday in days and current_time < unlock_time:
            return True
        return False

    return current_day in days and lock_time <= current_time < unlock_time


def lock_days(days: Iterable[int]) -> frozenset[int]:
    """Days on which a window opens."""
    return frozenset(days)


def unlock_days(days: Iterable[int], lock_time: str, unlock_time: str) -> frozenset[int]:
    """
    Days on which a window closes.

    An overnight window opened on day d is still open on (d + 1) before
    unlock_time (the "yesterday" branch of is_in_curfew_window), so it closes
    on d + 1.
    """
    if is_overnight(lock_time, unlock_time):
        return frozenset((d + 1) % 7 for d in days)
    return frozenset(days)


@dataclass(frozen=True)
class WeeklyTrigger:
    """Fires at a fixed local time on a set of weekdays."""

    days: frozenset[int]
    hour: int
    minute: int
    tz: ZoneInfo

    @classmethod
    def at(cls, days: Iterable[int], hhmm: str, tz: ZoneInfo) -> "WeeklyTrigger":
        hour, minute = (int(part) for part in hhmm.split(":"))
        return cls(frozenset(days), hour, minute, tz)

    def next_fire(self, after: datetime) -> datetime:
        """
        Get the first firing instant strictly after a given instant.

        Args:
            after: Timezone-aware reference instant

        Returns:
            Next firing instant in the trigger's timezone
        """
        if not self.days:
            raise ValueError("Trigger has no days")

        local = after.astimezone(self.tz)
        for offset in range(8):
            date = local.date() + timedelta(days=offset)
            candidate = datetime.combine(date, time(self.hour, self.minute), tzinfo=self.tz)
            if day_of_week(candidate) in self.days and candidate.timestamp() > local.timestamp():
                return candidate

        raise ValueError("No firing time found")  # unreachable with non-empty days

    def describe(self) -> str:
        days = ",".join(str(d) for d in sorted(self.days))
        return f"{self.minute} {self.hour} * * {days}"


class TriggerJob:
    """Runs an async action every time a trigger fires, until cancelled.

    The action is awaited to completion before the next firing is computed, so
    a job never overlaps with itself.
    """

    def __init__(
        self,
        name: str,
        trigger: WeeklyTrigger,
        action: Callable[[], Awaitable[None]],
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.name = name
        self.trigger = trigger
        self.action = action
        self._clock = clock or (lambda: datetime.now(trigger.tz))
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Start the job on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    def cancel(self):
        """Stop the job. An action in progress is cancelled too."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def next_wait(self, last_fire: Optional[datetime] = None) -> tuple[datetime, float]:
        """
        Get the next firing instant and the seconds to sleep until it.

        Args:
            last_fire: Instant of the previous firing, if any

        Returns:
            Tuple of (fire instant, seconds from now)
        """
        now = self._clock()
        reference = max(now, last_fire, key=datetime.timestamp) if last_fire else now
        fire_at = self.trigger.next_fire(reference)
        # Subtracting datetimes that share a tzinfo ignores offset changes
        delay = fire_at.timestamp() - now.timestamp()
        return fire_at, delay

    async def _run(self):
        last_fire: Optional[datetime] = None
        while True:
            fire_at, delay = self.next_wait(last_fire)
            logger.debug(f"Job {self.name}: next run at {fire_at.isoformat()} (in {delay:.0f}s)")

            await asyncio.sleep(max(delay, 0))
            last_fire = fire_at

            try:
                await self.action()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Job {self.name} failed")
