"""Regional heartbeat - mirrors this agent's connectivity to its identity record."""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..schemas.service import RegionalIdentity
from .backend_client import BackendClient, BackendError

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL_SECONDS = 30

ONLINE = "online"
OFFLINE = "offline"


class RegionalHeartbeat:
    """Marks the agent online/offline as backend reachability changes."""

    def __init__(
        self,
        backend: BackendClient,
        identity: Optional[RegionalIdentity],
        interval: int = HEARTBEAT_INTERVAL_SECONDS,
    ):
        self.backend = backend
        self.identity = identity
        self.interval = interval if interval > 0 else HEARTBEAT_INTERVAL_SECONDS
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.is_online = False
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Mark online now, then test connectivity on every interval."""
        if self._running:
            return

        await self._update_connection(ONLINE)
        self.is_online = True

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.check_connection,
            trigger=IntervalTrigger(seconds=self.interval),
            id="regional_heartbeat",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.start()
        self._running = True
        logger.info(f"Regional heartbeat started (interval={self.interval}s)")

    async def stop(self):
        """Stop the schedule and leave a final offline mark."""
        if not self._running:
            return
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None
        self._running = False

        await self._update_connection(OFFLINE)
        self.is_online = False
        if self.identity is not None:
            logger.info(f"Regional heartbeat stopped for region: {self.identity.region_name}")

    async def check_connection(self):
        """Flip the connection state only on reachability transitions."""
        try:
            await self.backend.test_connection()
            reachable = True
        except BackendError as e:
            reachable = False
            error = e

        if not reachable and self.is_online:
            await self._update_connection(OFFLINE)
            self.is_online = False
            logger.warning(f"Regional agent went offline: {error}")
        elif reachable and not self.is_online:
            await self._update_connection(ONLINE)
            self.is_online = True
            logger.info("Regional agent back online")

    async def _update_connection(self, connection: str):
        if self.identity is None:
            return
        try:
            await self.backend.update_regional_connection(self.identity.id, connection)
        except BackendError as e:
            logger.debug(f"Failed to mark regional service {self.identity.id} {connection}: {e}")
            return
        self.identity.connection = connection
