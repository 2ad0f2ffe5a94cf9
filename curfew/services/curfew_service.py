"""Per-cat curfew transitions (indoor only / full access)."""

import asyncio
import logging
from contextlib import asynccontextmanager

from ..exceptions import SurePetError
from ..store.models import EventType
from ..store.repositories import CatStore, EventLog
from ..surepet.client import SurePetClient
from ..surepet.const import TagProfile

logger = logging.getLogger(__name__)


class CurfewService:
    """Applies a tag profile to a cat, idempotently.

    Transitions for the same cat are serialized; different cats run in parallel.
    """

    def __init__(self, client: SurePetClient, cats: CatStore, events: EventLog):
        """Initialize with the API client and stores."""
        self.client = client
        self.cats = cats
        self.events = events
        self._locks: dict[int, asyncio.Lock] = {}
        self._lock_users: dict[int, int] = {}

    @asynccontextmanager
    async def _cat_lock(self, cat_id: int):
        """Hold the lock of one cat; it is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(cat_id, asyncio.Lock())
        self._lock_users[cat_id] = self._lock_users.get(cat_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[cat_id] -= 1
            if not self._lock_users[cat_id]:
                del self._lock_users[cat_id]
                del self._locks[cat_id]

    async def activate(self, cat_id: int) -> bool:
        """Activate curfew for a cat: set profile to indoor only."""
        return await self._transition(cat_id, TagProfile.INDOOR_ONLY)

    async def deactivate(self, cat_id: int) -> bool:
        """Deactivate curfew for a cat: set profile to full access."""
        return await self._transition(cat_id, TagProfile.FULL_ACCESS)

    async def _transition(self, cat_id: int, profile: TagProfile) -> bool:
        """
        Move a cat to the target profile.

        Args:
            cat_id: Cat to update
            profile: INDOOR_ONLY or FULL_ACCESS

        Returns:
            True if the cat is in the target profile afterwards
        """
        activating = profile == TagProfile.INDOOR_ONLY
        action = "activate" if activating else "deactivate"

        async with self._cat_lock(cat_id):
            cat = self.cats.get_by_id(cat_id)
            if not cat:
                logger.warning(f"Cat not found: {cat_id}")
                return False

            if not cat.device_id:
                logger.warning(f"Cat {cat.name} ({cat_id}) has no associated device")
                return False

            if cat.current_profile == profile:
                logger.info(
                    f"Curfew already {'active' if activating else 'inactive'} "
                    f"for {cat.name}, skipping"
                )
                return True

            try:
                await self.client.set_tag_profile(cat.device_id, cat.tag_id, profile)
            except SurePetError as e:
                logger.error(f"Failed to {action} curfew for {cat.name}: {e}")
                self.events.append(
                    EventType.CURFEW_ERROR,
                    {"name": cat.name, "action": action, "error": str(e)},
                    cat_id,
                    cat.device_id,
                )
                return False

            self.cats.update_profile(cat_id, profile, activating)
            self.events.append(
                EventType.CURFEW_ACTIVATED if activating else EventType.CURFEW_DEACTIVATED,
                {"name": cat.name, "profile": int(profile)},
                cat_id,
                cat.device_id,
            )
            logger.info(
                f"Curfew {'activated (indoor only)' if activating else 'deactivated (full access)'} "
                f"for {cat.name} (device={cat.device_id}, tag={cat.tag_id})"
            )
            return True
