"""Service and regional identity records exchanged with the backend."""
from typing import List, Optional

from pydantic import BaseModel, field_validator

DEFAULT_HEARTBEAT_INTERVAL = 60


class Service(BaseModel):
    """A monitored target as stored in the backend `services` collection."""
    id: str
    name: str = ""
    url: str = ""
    host: str = ""
    domain: str = ""
    port: int = 0
    service_type: str = ""  # ping, icmp, dns, tcp, http, https
    status: str = ""  # active, paused, up, down
    heartbeat_interval: int = 0  # seconds
    region_name: str = ""  # comma-separated region list
    agent_id: str = ""  # comma-separated agent list
    created: Optional[str] = None
    updated: Optional[str] = None

    class Config:
        extra = "ignore"

    @field_validator("name", "url", "host", "domain", "service_type", "status",
                     "region_name", "agent_id", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value

    @field_validator("port", "heartbeat_interval", mode="before")
    @classmethod
    def _none_to_zero(cls, value):
        return 0 if value in (None, "") else value

    @property
    def is_paused(self) -> bool:
        return self.status == "paused"

    @property
    def check_interval(self) -> int:
        """Check interval in seconds, falling back to 60 when unset."""
        if self.heartbeat_interval <= 0:
            return DEFAULT_HEARTBEAT_INTERVAL
        return self.heartbeat_interval


class ServicesPage(BaseModel):
    """One page of a paginated services listing."""
    page: int = 1
    perPage: int = 30
    totalItems: int = 0
    totalPages: int = 0
    items: List[Service] = []


class RegionalIdentity(BaseModel):
    """This agent's own presence record (`regional_service` collection)."""
    id: str
    region_name: str = ""
    agent_id: str = ""
    agent_ip_address: str = ""
    connection: str = "offline"  # online, offline
    status: str = "active"  # active, inactive
    token: str = ""

    class Config:
        extra = "ignore"
