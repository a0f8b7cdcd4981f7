"""Checker service - runs one check of one assigned service."""
import asyncio
import logging
from typing import Callable, Optional

from ..schemas.service import Service
from .assignment import is_assigned
from .backend_client import BackendClient, BackendError
from .metrics_saver import MetricsSaver
from .operations import OperationInputError, OperationType, ProbeResult, build_operation

logger = logging.getLogger(__name__)

DEFAULT_CHECK_TIMEOUT = 10
DEFAULT_TCP_PORT = 80
MONITOR_PING_COUNT = 1
MONITOR_DNS_QUERY = "A"


class ServiceChecker:
    """Fetch, probe, re-validate and report a single service.

    The service record is always re-read from the backend before probing and
    again before writing, so pauses and assignment changes made while a
    probe is in flight are honoured.
    """

    def __init__(
        self,
        backend: BackendClient,
        metrics_saver: MetricsSaver,
        region_name: str,
        agent_id: str,
        timeout: float = DEFAULT_CHECK_TIMEOUT,
        operation_factory: Callable = build_operation,
    ):
        self.backend = backend
        self.metrics_saver = metrics_saver
        self.region_name = region_name
        self.agent_id = agent_id
        self.timeout = timeout
        self.operation_factory = operation_factory

    async def _fetch(self, service_id: str, stage: str) -> Optional[Service]:
        try:
            return await self.backend.get_service(service_id)
        except BackendError as e:
            logger.warning(f"Failed to fetch service {service_id} {stage}: {e}")
            return None

    async def perform_check(
        self,
        service_id: str,
        stop_event: Optional[asyncio.Event] = None,
    ) -> Optional[ProbeResult]:
        """Run one check. Returns the probe result, or None when nothing was probed."""
        service = await self._fetch(service_id, "before check")
        if service is None:
            return None
        if service.is_paused:
            return None
        if not is_assigned(service, self.region_name, self.agent_id):
            logger.info(
                f"Skipping check for {service.name}: no longer assigned to "
                f"region={self.region_name}, agent={self.agent_id}"
            )
            return None

        op_type = OperationType.from_kind(service.service_type)
        if op_type == OperationType.UNSUPPORTED:
            logger.warning(f"Unknown service type: {service.service_type} for service {service.name}")
            return None

        result: Optional[ProbeResult] = None
        error_message = ""
        response_time = 0
        try:
            result = await self._probe(service, op_type)
        except OperationInputError as e:
            error_message = str(e)
            logger.warning(f"{service.name} failed: {e}")

        status = "down"
        if result is not None:
            response_time = int(result.response_time_ms)
            if result.success:
                status = "up"
                logger.info(f"{service.name}: {response_time}ms")
            else:
                error_message = result.error
                logger.info(f"{service.name} failed: {error_message}")

        if stop_event is not None and stop_event.is_set():
            return result

        current = await self._fetch(service.id, "before status update")
        if current is None or current.is_paused:
            return result
        if not is_assigned(current, self.region_name, self.agent_id):
            logger.info(f"Skipping status update for {service.name}: assignment changed during check")
            return result
        if stop_event is not None and stop_event.is_set():
            return result

        try:
            await self.backend.update_service_status(service.id, status, response_time, error_message)
        except BackendError as e:
            logger.warning(f"Failed to update service status for {service.name}: {e}")

        if result is not None:
            await self.metrics_saver.save_for_service(service, result)
        return result

    async def _probe(self, service: Service, op_type: OperationType) -> ProbeResult:
        operation = self.operation_factory(op_type, self.timeout)
        if op_type == OperationType.PING:
            return await operation.execute(service.host or service.url, MONITOR_PING_COUNT)
        if op_type == OperationType.DNS:
            return await operation.execute(service.host or service.domain, MONITOR_DNS_QUERY)
        if op_type == OperationType.TCP:
            port = service.port if service.port > 0 else DEFAULT_TCP_PORT
            return await operation.execute(service.host or service.url, port)
        return await operation.execute(service.url or service.host, "GET")
