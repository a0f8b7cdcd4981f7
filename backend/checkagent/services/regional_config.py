"""Regional configuration - validates and bootstraps this agent's identity."""
import logging
import time
from typing import Optional

from ..config import Settings
from ..schemas.service import RegionalIdentity
from .backend_client import BackendClient, BackendError

logger = logging.getLogger(__name__)

DEFAULT_AGENT_IP_ADDRESS = "127.0.0.1"
FALLBACK_ID_PREFIX = "fallback-"


class ConfigError(Exception):
    """Required regional configuration is missing."""


class RegionalConfigManager:
    """Loads this agent's `regional_service` record, creating it when absent.

    When the backend refuses to list or create identities, a local fallback
    identity is used so monitoring can still run.
    """

    def __init__(self, settings: Settings, backend: BackendClient):
        self.settings = settings
        self.backend = backend
        self.region_name = settings.region_name.strip()
        self.agent_id = settings.agent_id.strip()
        self.agent_ip_address = settings.agent_ip_address.strip()
        self.token = settings.agent_token
        self.identity: Optional[RegionalIdentity] = None

    def validate(self):
        """Raise ConfigError unless region and agent id are set."""
        if not self.region_name:
            raise ConfigError("REGION_NAME is required but not set")
        if not self.agent_id:
            raise ConfigError("AGENT_ID is required but not set")
        if not self.agent_ip_address:
            logger.warning(f"AGENT_IP_ADDRESS not set, using default: {DEFAULT_AGENT_IP_ADDRESS}")
            self.agent_ip_address = DEFAULT_AGENT_IP_ADDRESS

    def summary(self) -> str:
        return f"Region: {self.region_name}, Agent: {self.agent_id}, IP: {self.agent_ip_address}"

    async def load_or_create_identity(self) -> RegionalIdentity:
        try:
            existing = await self.backend.find_regional_service(self.agent_id)
        except BackendError as e:
            logger.warning(f"Could not get regional services: {e}")
            return self._use(self._fallback_identity())

        if existing is not None:
            logger.info(
                f"Loaded existing regional service configuration: "
                f"Region={existing.region_name}, Agent={existing.agent_id}"
            )
            return self._use(existing)

        return await self._create_identity()

    async def _create_identity(self) -> RegionalIdentity:
        logger.info(f"Creating new regional service: Region={self.region_name}, Agent={self.agent_id}")
        data = {
            "region_name": self.region_name,
            "status": "active",
            "agent_id": self.agent_id,
            "agent_ip_address": self.agent_ip_address,
            "connection": "offline",
            "token": self.token or f"agent-{self.agent_id}-{int(time.time())}",
        }
        try:
            identity = await self.backend.create_regional_service(data)
        except BackendError as e:
            logger.warning(f"Could not create regional service: {e}")
            return self._use(self._fallback_identity())
        return self._use(identity)

    def _fallback_identity(self) -> RegionalIdentity:
        return RegionalIdentity(
            id=f"{FALLBACK_ID_PREFIX}{self.agent_id}",
            region_name=self.region_name,
            agent_id=self.agent_id,
            agent_ip_address=self.agent_ip_address,
            connection="offline",
            status="active",
            token=self.token or f"fallback-{self.agent_id}-{int(time.time())}",
        )

    def _use(self, identity: RegionalIdentity) -> RegionalIdentity:
        # Stored values win over the environment, except the agent id itself
        if identity.region_name:
            self.region_name = identity.region_name
        if identity.agent_ip_address:
            self.agent_ip_address = identity.agent_ip_address
        if identity.token:
            self.token = identity.token
        self.identity = identity
        return identity

    @property
    def is_fallback(self) -> bool:
        return self.identity is not None and self.identity.id.startswith(FALLBACK_ID_PREFIX)
