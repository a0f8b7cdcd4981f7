"""Agent configuration from environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Agent settings loaded from environment variables (and .env if present)."""

    # HTTP API port
    port: int = 8091

    # On-demand operation defaults and limits
    default_count: int = 4
    default_timeout: int = 10  # seconds
    max_count: int = 20
    max_timeout: int = 30  # seconds

    log_level: str = "INFO"

    # Backend (PocketBase) integration
    backend_enabled: bool = True
    backend_url: str = "http://localhost:8090"
    backend_timeout: int = 30  # seconds

    # Regional agent identity - no defaults, monitoring requires both
    region_name: str = ""
    agent_id: str = ""
    agent_ip_address: str = ""
    agent_token: str = ""

    # Reconciliation and heartbeat cadence
    check_interval: int = 30  # seconds

    # Probe timeout used by scheduled service checks
    request_timeout: int = 10  # seconds

    class Config:
        env_prefix = ""
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
