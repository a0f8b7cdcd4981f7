"""Per-service monitor - one periodic check task per assigned service."""
import asyncio
import logging
from typing import Optional

from ..schemas.service import DEFAULT_HEARTBEAT_INTERVAL
from .checker import ServiceChecker

logger = logging.getLogger(__name__)


class ServiceMonitor:
    """Runs an immediate check and then one check per interval until stopped.

    Ticks are deadline based: when a check overruns, the ticks it covered
    are skipped instead of being run back to back.
    """

    def __init__(self, service_id: str, name: str, interval: int, checker: ServiceChecker):
        self.service_id = service_id
        self.name = name
        self.interval = interval if interval and interval > 0 else DEFAULT_HEARTBEAT_INTERVAL
        self.checker = checker
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.checks_run = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=f"monitor-{self.service_id}")
        logger.info(f"Started monitoring {self.name} ({self.service_id}) every {self.interval}s")

    async def stop(self):
        """Signal the task and wait until it has exited."""
        self._stop_event.set()
        task, self._task = self._task, None
        if task is not None:
            await task
        logger.info(f"Stopped monitoring {self.name} ({self.service_id})")

    async def _run(self):
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while not self._stop_event.is_set():
            await self._check_once()

            next_tick += self.interval
            now = loop.time()
            if now > next_tick:
                skipped = int((now - next_tick) // self.interval) + 1
                next_tick += skipped * self.interval
                logger.debug(f"Check for {self.name} overran, skipped {skipped} tick(s)")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=next_tick - now)
            except asyncio.TimeoutError:
                pass

    async def _check_once(self):
        try:
            await self.checker.perform_check(self.service_id, self._stop_event)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Check for {self.name} ({self.service_id}) failed")
        finally:
            self.checks_run += 1
