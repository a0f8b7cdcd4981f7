"""Main FastAPI application - operation API plus the regional monitoring engine."""
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import settings
from .routers import operations_router
from .routers.operations import API_OPERATION_TYPES
from .services.backend_client import BackendClient, BackendError
from .services.heartbeat import RegionalHeartbeat
from .services.metrics_saver import MetricsSaver
from .services.monitoring import MonitoringEngine
from .services.regional_config import ConfigError, RegionalConfigManager

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def start_monitoring(app: FastAPI, backend: BackendClient):
    """Bootstrap the regional identity and start the engine.

    Configuration problems leave the API running with monitoring disabled.
    """
    manager = RegionalConfigManager(settings, backend)
    try:
        manager.validate()
    except ConfigError as e:
        logger.error(f"Regional monitoring disabled: {e}")
        return

    try:
        await backend.test_connection()
        logger.info(f"Connected to backend at {backend.base_url}")
    except BackendError as e:
        logger.warning(f"Backend not reachable yet: {e}")

    identity = await manager.load_or_create_identity()
    if manager.is_fallback:
        logger.warning(f"Using local fallback identity {identity.id}")
    logger.info(f"Regional configuration: {manager.summary()}")

    app.state.metrics_saver = MetricsSaver(backend, manager.region_name, manager.agent_id)
    engine = MonitoringEngine(
        backend,
        manager.region_name,
        manager.agent_id,
        heartbeat=RegionalHeartbeat(backend, identity, interval=settings.check_interval),
        reconcile_interval=settings.check_interval,
        check_timeout=settings.request_timeout,
    )
    app.state.engine = engine
    await engine.start()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info(f"Starting checkagent v{__version__} on port {settings.port}")
    app.state.engine = None
    app.state.metrics_saver = None
    backend = None

    if settings.backend_enabled:
        backend = BackendClient(settings.backend_url, timeout=settings.backend_timeout)
        app.state.metrics_saver = MetricsSaver(backend, settings.region_name, settings.agent_id)
        try:
            await start_monitoring(app, backend)
        except Exception as e:
            logger.exception(f"Regional monitoring disabled, startup failed: {e}")
            if app.state.engine is not None:
                await app.state.engine.stop()
            app.state.engine = None
    else:
        logger.info("Backend integration disabled, serving on-demand operations only")

    yield

    # Shutdown
    if app.state.engine is not None:
        await app.state.engine.stop()
    if backend is not None:
        await backend.aclose()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="checkagent",
        description="Regional monitoring agent - ping, DNS, TCP and HTTP checks",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(operations_router)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        engine = getattr(app.state, "engine", None)
        return {
            "status": "healthy",
            "service": "checkagent",
            "timestamp": int(time.time()),
            "version": __version__,
            "operations": list(API_OPERATION_TYPES),
            "monitoring": engine.status() if engine is not None else {"state": "disabled"},
        }

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)
