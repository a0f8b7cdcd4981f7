"""Services for probing, monitoring and reporting."""
from .backend_client import BackendClient, BackendError, ServiceNotFoundError
from .checker import ServiceChecker
from .heartbeat import RegionalHeartbeat
from .metrics_saver import MetricsSaver
from .monitoring import EngineState, MonitoringEngine
from .regional_config import ConfigError, RegionalConfigManager
from .service_monitor import ServiceMonitor

__all__ = [
    "BackendClient",
    "BackendError",
    "ServiceNotFoundError",
    "ServiceChecker",
    "RegionalHeartbeat",
    "MetricsSaver",
    "EngineState",
    "MonitoringEngine",
    "ConfigError",
    "RegionalConfigManager",
    "ServiceMonitor",
]
