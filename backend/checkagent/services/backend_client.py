"""Backend client - REST access to the PocketBase data store.

The backend is both the source of service/assignment records and the sink
for status updates and metrics. Every failure surfaces as BackendError so
callers can decide whether to log and continue.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional, Type

import httpx
from pydantic import BaseModel, ValidationError

from ..schemas.records import (
    DNSDataRecord,
    MetricsRecord,
    PingDataRecord,
    TCPDataRecord,
    UptimeDataRecord,
)
from ..schemas.service import RegionalIdentity, Service, ServicesPage

logger = logging.getLogger(__name__)

DEFAULT_BACKEND_URL = "http://127.0.0.1:8090"
DEFAULT_PER_PAGE = 30

SERVICES_COLLECTION = "services"
REGIONAL_COLLECTION = "regional_service"
METRICS_COLLECTION = "services_metrics"
PING_COLLECTION = "ping_data"
UPTIME_COLLECTION = "uptime_data"
DNS_COLLECTION = "dns_data"
TCP_COLLECTION = "tcp_data"


class BackendError(Exception):
    """A backend request failed or returned an unexpected status."""


class ServiceNotFoundError(BackendError):
    """The requested service record does not exist."""


def quote_filter_value(value: str) -> str:
    """Quote a value for a PocketBase filter expression."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


class BackendClient:
    """Async client for the backend's record collections."""

    def __init__(
        self,
        base_url: str = DEFAULT_BACKEND_URL,
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or DEFAULT_BACKEND_URL).rstrip("/")
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def aclose(self):
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.debug(f"Backend request {method} {self.base_url}{path} failed: {e!r}")
            raise BackendError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _records_path(collection: str, record_id: Optional[str] = None) -> str:
        path = f"/api/collections/{collection}/records"
        if record_id:
            path = f"{path}/{record_id}"
        return path

    @staticmethod
    def _json(response: httpx.Response, what: str):
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"Invalid JSON in {what} response: {e}") from e

    @staticmethod
    def _validate(model: Type[BaseModel], data, what: str):
        if not isinstance(data, dict):
            raise BackendError(f"Unexpected {what} payload: {type(data).__name__}")
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise BackendError(f"Malformed {what} record: {e}") from e

    async def test_connection(self):
        """Raise BackendError unless the backend health endpoint answers 200."""
        response = await self._request("GET", "/api/health")
        if response.status_code != 200:
            raise BackendError(f"Backend health check failed with status: {response.status_code}")

    # Generic record operations

    async def create_record(self, collection: str, data: dict) -> dict:
        response = await self._request("POST", self._records_path(collection), json=data)
        if response.status_code not in (200, 201):
            raise BackendError(f"Failed to create record in {collection}, status: {response.status_code}")
        if not response.content:
            return {}
        return self._json(response, f"{collection} create")

    async def update_record(self, collection: str, record_id: str, data: dict) -> dict:
        response = await self._request("PATCH", self._records_path(collection, record_id), json=data)
        if response.status_code != 200:
            raise BackendError(
                f"Failed to update record {record_id} in {collection}, status: {response.status_code}"
            )
        if not response.content:
            return {}
        return self._json(response, f"{collection} update")

    # Services (assignment source)

    async def get_service(self, service_id: str) -> Service:
        response = await self._request("GET", self._records_path(SERVICES_COLLECTION, service_id))
        if response.status_code == 404:
            raise ServiceNotFoundError(f"Service {service_id} not found")
        if response.status_code != 200:
            raise BackendError(f"Failed to get service {service_id}: status {response.status_code}")
        return self._validate(Service, self._json(response, "service"), "service")

    async def list_services(
        self,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
        filter: Optional[str] = None,
    ) -> ServicesPage:
        params = {"page": page, "perPage": per_page}
        if filter:
            params["filter"] = filter
        response = await self._request("GET", self._records_path(SERVICES_COLLECTION), params=params)
        if response.status_code != 200:
            raise BackendError(f"Failed to get services: status {response.status_code}")
        return self._validate(ServicesPage, self._json(response, "services"), "services")

    async def get_all_services(self, filter: Optional[str] = None) -> List[Service]:
        """Fetch every page of services matching an optional filter."""
        services: List[Service] = []
        page = 1
        while True:
            result = await self.list_services(page=page, filter=filter)
            services.extend(result.items)
            if page >= result.totalPages or not result.items:
                break
            page += 1
        return services

    async def get_assigned_services(self, region_name: str, agent_id: str) -> List[Service]:
        """Services whose assignment lists mention this region and agent.

        The `~` (contains) filter is a superset of exact token membership;
        callers must re-check the assignment predicate.
        """
        filter = (
            f"region_name~{quote_filter_value(region_name)} && "
            f"agent_id~{quote_filter_value(agent_id)} && status!='paused'"
        )
        return await self.get_all_services(filter=filter)

    async def update_service_status(
        self,
        service_id: str,
        status: str,
        response_time_ms: int,
        error_message: str = "",
    ):
        data = {
            "status": status,
            "response_time": response_time_ms,
            "last_checked": datetime.now(timezone.utc).isoformat(),
            "error_message": error_message or "",
        }
        await self.update_record(SERVICES_COLLECTION, service_id, data)

    # Regional identity

    async def list_regional_services(self) -> List[RegionalIdentity]:
        response = await self._request("GET", self._records_path(REGIONAL_COLLECTION))
        if response.status_code == 403:
            raise BackendError("Access denied to regional_service collection")
        if response.status_code != 200:
            raise BackendError(f"Failed to get regional services: status {response.status_code}")
        data = self._json(response, "regional services")
        if not isinstance(data, dict):
            raise BackendError(f"Unexpected regional services payload: {type(data).__name__}")
        return [self._validate(RegionalIdentity, item, "regional service") for item in data.get("items") or []]

    async def find_regional_service(self, agent_id: str) -> Optional[RegionalIdentity]:
        for identity in await self.list_regional_services():
            if identity.agent_id == agent_id:
                return identity
        return None

    async def create_regional_service(self, data: dict) -> RegionalIdentity:
        record = await self.create_record(REGIONAL_COLLECTION, data)
        if not isinstance(record, dict) or not record.get("id"):
            raise BackendError("Created regional service record has no id")
        return self._validate(RegionalIdentity, record, "regional service")

    async def update_regional_connection(self, record_id: str, connection: str):
        """Mirror the agent's connection state (online/offline) to its record."""
        data = {
            "connection": connection,
            "status": "active" if connection == "online" else "inactive",
        }
        await self.update_record(REGIONAL_COLLECTION, record_id, data)

    # Result sink

    async def save_metrics(self, record: MetricsRecord):
        await self.create_record(METRICS_COLLECTION, record.model_dump(exclude_none=True))

    async def save_ping_data(self, record: PingDataRecord):
        await self.create_record(PING_COLLECTION, record.model_dump(exclude_none=True))

    async def save_uptime_data(self, record: UptimeDataRecord):
        await self.create_record(UPTIME_COLLECTION, record.model_dump(exclude_none=True))

    async def save_dns_data(self, record: DNSDataRecord):
        await self.create_record(DNS_COLLECTION, record.model_dump(exclude_none=True))

    async def save_tcp_data(self, record: TCPDataRecord):
        await self.create_record(TCP_COLLECTION, record.model_dump(exclude_none=True))
