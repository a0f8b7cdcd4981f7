"""Monitoring engine - reconciles assigned services with running monitors.

Every reconcile cycle the engine asks the backend which services are
assigned to this region/agent, starts a monitor for each new one and, once
the assigned set is complete, stops monitors whose service is gone. A single
asyncio.Lock guards the monitor table and the engine state; the check path
never takes it.
"""
import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .assignment import is_assigned, split_comma_values
from .backend_client import BackendClient, BackendError
from .checker import DEFAULT_CHECK_TIMEOUT, ServiceChecker
from .heartbeat import RegionalHeartbeat
from .metrics_saver import MetricsSaver
from .service_monitor import ServiceMonitor

logger = logging.getLogger(__name__)

RECONCILE_INTERVAL_SECONDS = 30


class EngineState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class MonitoringEngine:
    """Owns the per-service monitors and the agent heartbeat."""

    def __init__(
        self,
        backend: BackendClient,
        region_name: str,
        agent_id: str,
        heartbeat: Optional[RegionalHeartbeat] = None,
        checker: Optional[ServiceChecker] = None,
        reconcile_interval: int = RECONCILE_INTERVAL_SECONDS,
        check_timeout: float = DEFAULT_CHECK_TIMEOUT,
        reconcile_immediately: bool = True,
    ):
        self.backend = backend
        self.region_name = (region_name or "").strip()
        self.agent_id = (agent_id or "").strip()
        self.heartbeat = heartbeat
        if checker is None:
            checker = ServiceChecker(
                backend,
                MetricsSaver(backend, self.region_name, self.agent_id),
                self.region_name,
                self.agent_id,
                timeout=check_timeout,
            )
        self.checker = checker
        self.reconcile_interval = reconcile_interval if reconcile_interval > 0 else RECONCILE_INTERVAL_SECONDS
        self.reconcile_immediately = reconcile_immediately
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.state = EngineState.STOPPED
        self._monitors: Dict[str, ServiceMonitor] = {}
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self.state == EngineState.RUNNING

    @property
    def active_service_ids(self) -> List[str]:
        return sorted(self._monitors)

    def get_monitor(self, service_id: str) -> Optional[ServiceMonitor]:
        return self._monitors.get(service_id)

    async def start(self) -> bool:
        """Start the heartbeat and the reconcile schedule.

        Returns False, without touching the backend, when the region or agent
        identity is missing.
        """
        async with self._lock:
            if self.state == EngineState.RUNNING:
                logger.warning("Monitoring engine is already running")
                return True
            if self.state != EngineState.STOPPED:
                logger.warning(f"Monitoring engine cannot start while {self.state.value}")
                return False
            if not self.region_name or not self.agent_id:
                logger.error(
                    f"Cannot start monitoring: invalid regional configuration "
                    f"(region_name='{self.region_name}', agent_id='{self.agent_id}')"
                )
                return False

            self.state = EngineState.STARTING
            if self.heartbeat is not None:
                await self.heartbeat.start()

            # next_run_time=None would add the job paused, so only pass it to run now
            job_options = {}
            if self.reconcile_immediately:
                job_options["next_run_time"] = datetime.now()
            self.scheduler = AsyncIOScheduler()
            self.scheduler.add_job(
                self.reconcile,
                trigger=IntervalTrigger(seconds=self.reconcile_interval),
                id="reconcile_assignments",
                replace_existing=True,
                max_instances=1,
                **job_options,
            )
            self.scheduler.start()
            self.state = EngineState.RUNNING

        logger.info(
            f"Monitoring engine started (region={self.region_name}, agent={self.agent_id}, "
            f"reconcile={self.reconcile_interval}s)"
        )
        return True

    async def stop(self):
        """Stop the heartbeat and every monitor; returns once all have exited."""
        async with self._lock:
            if self.state != EngineState.RUNNING:
                return
            self.state = EngineState.STOPPING
            logger.info("Stopping monitoring engine...")

            if self.scheduler:
                self.scheduler.shutdown(wait=False)
                self.scheduler = None
            if self.heartbeat is not None:
                await self.heartbeat.stop()

            monitors = list(self._monitors.values())
            self._monitors.clear()
            await self._stop_monitors(monitors)
            self.state = EngineState.STOPPED

        logger.info(f"Monitoring engine stopped ({len(monitors)} monitors stopped)")

    async def reconcile(self):
        """One reconcile cycle. A no-op unless the engine is running."""
        if self.state != EngineState.RUNNING:
            return
        try:
            services = await self.backend.get_assigned_services(self.region_name, self.agent_id)
        except BackendError as e:
            logger.error(
                f"Failed to load assigned services for region='{self.region_name}', "
                f"agent='{self.agent_id}': {e}"
            )
            return

        async with self._lock:
            if self.state != EngineState.RUNNING:
                return

            assigned = {}
            for service in services:
                if not is_assigned(service, self.region_name, self.agent_id):
                    logger.debug(f"Skipping service {service.name}: region/agent assignment check failed")
                    continue
                assigned[service.id] = service

            started = 0
            for service_id, service in assigned.items():
                if service_id in self._monitors:
                    continue
                logger.info(
                    f"Starting monitoring: {service.name} ({service.service_type}) "
                    f"regions={split_comma_values(service.region_name)} "
                    f"agents={split_comma_values(service.agent_id)}"
                )
                monitor = ServiceMonitor(service_id, service.name, service.check_interval, self.checker)
                self._monitors[service_id] = monitor
                monitor.start()
                started += 1

            stale = [monitor for service_id, monitor in self._monitors.items() if service_id not in assigned]
            for monitor in stale:
                logger.info(
                    f"Stopping monitoring: service {monitor.service_id} (no longer assigned to "
                    f"region={self.region_name}, agent={self.agent_id})"
                )
                del self._monitors[monitor.service_id]
            await self._stop_monitors(stale)

        if started or stale:
            logger.info(
                f"Reconciled assignments: {len(assigned)} assigned, {len(self._monitors)} active, "
                f"{started} started, {len(stale)} stopped"
            )

    async def _stop_monitors(self, monitors: List[ServiceMonitor]):
        if not monitors:
            return
        results = await asyncio.gather(*(monitor.stop() for monitor in monitors), return_exceptions=True)
        for monitor, result in zip(monitors, results):
            if isinstance(result, Exception):
                logger.error(f"Error stopping monitor for {monitor.service_id}: {result}")

    def status(self) -> dict:
        return {
            "region_name": self.region_name,
            "agent_id": self.agent_id,
            "state": self.state.value,
            "active_monitors": len(self._monitors),
            "heartbeat_online": self.heartbeat.is_online if self.heartbeat is not None else False,
        }
