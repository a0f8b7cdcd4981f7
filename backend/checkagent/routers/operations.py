"""On-demand operation API endpoints."""
import logging
from typing import Callable, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request

from ..config import Settings, settings as default_settings
from ..schemas.operation import OperationRequest
from ..services.metrics_saver import MetricsSaver
from ..services.operations import (
    OperationInputError,
    OperationType,
    ProbeResult,
    build_operation,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["operations"])

API_OPERATION_TYPES = ("ping", "dns", "tcp", "http")


def get_settings() -> Settings:
    return default_settings


def get_operation_factory() -> Callable:
    return build_operation


def get_metrics_saver(request: Request) -> Optional[MetricsSaver]:
    """Metrics saver set up by the application lifespan (None when the backend is disabled)."""
    return getattr(request.app.state, "metrics_saver", None)


def clamp_count(count: int, config: Settings) -> int:
    if count <= 0:
        count = config.default_count
    return min(count, config.max_count)


def clamp_timeout(timeout: int, config: Settings) -> int:
    if timeout <= 0:
        timeout = config.default_timeout
    return min(timeout, config.max_timeout)


async def run_operation(req: OperationRequest, config: Settings, operation_factory: Callable) -> ProbeResult:
    """Validate a request, apply defaults and limits, and run the operation.

    Raises HTTPException(400) for invalid input.
    """
    if not req.host and not req.url:
        raise HTTPException(status_code=400, detail="Host or URL is required")

    if req.type.strip().lower() not in API_OPERATION_TYPES:
        raise HTTPException(status_code=400, detail="Invalid operation type")
    op_type = OperationType.from_kind(req.type)
    if op_type == OperationType.TCP and req.port <= 0:
        raise HTTPException(status_code=400, detail="Port is required for TCP operations")

    count = clamp_count(req.count, config)
    timeout = clamp_timeout(req.timeout, config)
    operation = operation_factory(op_type, timeout)

    try:
        if op_type == OperationType.PING:
            return await operation.execute(req.host, count)
        if op_type == OperationType.DNS:
            return await operation.execute(req.host, req.query or "A")
        if op_type == OperationType.TCP:
            return await operation.execute(req.host, req.port)
        return await operation.execute(req.url or req.host, req.method or "GET")
    except OperationInputError as e:
        raise HTTPException(status_code=400, detail=str(e))


async def _save_metrics(saver: MetricsSaver, result: ProbeResult, service_id: Optional[str]):
    try:
        await saver.save_for_result(result, service_id)
    except Exception:
        logger.exception(f"Failed to save metrics for {result.type.value} operation on {result.host}")


async def _handle(
    req: OperationRequest,
    background_tasks: BackgroundTasks,
    config: Settings,
    operation_factory: Callable,
    saver: Optional[MetricsSaver],
) -> dict:
    result = await run_operation(req, config, operation_factory)
    if saver is not None:
        background_tasks.add_task(_save_metrics, saver, result, req.service_id)
    return result.to_dict()


@router.post("/operation")
async def execute_operation(
    req: OperationRequest,
    background_tasks: BackgroundTasks,
    config: Settings = Depends(get_settings),
    operation_factory: Callable = Depends(get_operation_factory),
    saver: Optional[MetricsSaver] = Depends(get_metrics_saver),
):
    """Run one ping, DNS, TCP or HTTP operation and return its result."""
    return await _handle(req, background_tasks, config, operation_factory, saver)


@router.post("/ping")
async def execute_ping_legacy(
    req: OperationRequest,
    background_tasks: BackgroundTasks,
    config: Settings = Depends(get_settings),
    operation_factory: Callable = Depends(get_operation_factory),
    saver: Optional[MetricsSaver] = Depends(get_metrics_saver),
):
    """Legacy alias of POST /operation."""
    return await _handle(req, background_tasks, config, operation_factory, saver)


async def _quick(
    type: str,
    host: str,
    count: int,
    port: int,
    query: str,
    url: str,
    method: str,
    service_id: Optional[str],
    background_tasks: BackgroundTasks,
    config: Settings,
    operation_factory: Callable,
    saver: Optional[MetricsSaver],
) -> dict:
    if not type or not host:
        raise HTTPException(status_code=400, detail="Type and host parameters are required")
    req = OperationRequest(
        type=type,
        host=host,
        url=url,
        port=port if 0 < port <= 65535 else 0,
        count=count if 0 < count <= config.max_count else 0,
        query=query,
        method=method,
        service_id=service_id or None,
    )
    return await _handle(req, background_tasks, config, operation_factory, saver)


@router.get("/operation/quick")
async def quick_operation(
    background_tasks: BackgroundTasks,
    type: str = Query(""),
    host: str = Query(""),
    count: int = Query(0),
    port: int = Query(0),
    query: str = Query(""),
    url: str = Query(""),
    method: str = Query(""),
    service_id: Optional[str] = Query(None),
    config: Settings = Depends(get_settings),
    operation_factory: Callable = Depends(get_operation_factory),
    saver: Optional[MetricsSaver] = Depends(get_metrics_saver),
):
    """Run one operation described by query parameters."""
    return await _quick(type, host, count, port, query, url, method, service_id,
                        background_tasks, config, operation_factory, saver)


@router.get("/ping/quick")
async def quick_ping_legacy(
    background_tasks: BackgroundTasks,
    type: str = Query(""),
    host: str = Query(""),
    count: int = Query(0),
    port: int = Query(0),
    query: str = Query(""),
    url: str = Query(""),
    method: str = Query(""),
    service_id: Optional[str] = Query(None),
    config: Settings = Depends(get_settings),
    operation_factory: Callable = Depends(get_operation_factory),
    saver: Optional[MetricsSaver] = Depends(get_metrics_saver),
):
    """Legacy alias of GET /operation/quick."""
    return await _quick(type, host, count, port, query, url, method, service_id,
                        background_tasks, config, operation_factory, saver)
