"""
Gateway 管理端点

包含健康检查、服务信息，以及流、权限和 provider 的运行时管理。
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from log import log

from ..config import SERVICE_DESCRIPTION, SERVICE_NAME, SERVICE_VERSION
from ..context import GatewayContext, get_gateway
from ..errors import InvalidRequestError, StreamNotFoundError

router = APIRouter()

__all__ = ["router"]

DEFAULT_STOP_ALL_TIMEOUT = 10.0


class PermissionDecision(BaseModel):
    granted: bool = Field(..., description="是否授权")


class ProviderSelection(BaseModel):
    provider_id: str = Field(..., alias="providerId", description="provider id")


class StreamCeiling(BaseModel):
    max_concurrent_streams: int = Field(..., alias="maxConcurrentStreams", ge=1)


# ==================== 健康检查端点 ====================

@router.get("/health")
async def gateway_health(gateway: GatewayContext = Depends(get_gateway)):
    """网关健康检查"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "config": gateway.config.public_view(),
        "streams": {
            "active": gateway.streams.active_count,
            "max": gateway.streams.max_concurrent_streams,
        },
        "timings": log.get_metrics("stream"),
    }


@router.get("/")
async def service_info():
    return {
        "name": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "description": SERVICE_DESCRIPTION,
        "endpoints": {
            "messages": "POST /v1/messages",
            "countTokens": "POST /v1/messages/count_tokens",
            "chatCompletions": "POST /v1/chat/completions",
            "models": "GET /v1/models",
            "health": "GET /health",
        },
    }


# ==================== 流管理 ====================

@router.get("/admin/streams")
async def list_streams(gateway: GatewayContext = Depends(get_gateway)):
    return {"streams": [state.to_dict() for state in gateway.streams.list_streams()]}


@router.post("/admin/streams/stop-all")
async def stop_all_streams(timeout: Optional[float] = None, gateway: GatewayContext = Depends(get_gateway)):
    """取消全部活跃流，等待它们结束"""
    stopped = await gateway.streams.stop_all_streams(
        timeout=timeout if timeout is not None else DEFAULT_STOP_ALL_TIMEOUT
    )
    return {"stopped": stopped}


@router.get("/admin/streams/{event_id}")
async def get_stream_state(event_id: str, gateway: GatewayContext = Depends(get_gateway)):
    state = gateway.streams.get_stream_state(event_id)
    if state is None:
        raise StreamNotFoundError(event_id)
    return state.to_dict()


@router.post("/admin/streams/{event_id}/stop")
async def stop_stream(event_id: str, gateway: GatewayContext = Depends(get_gateway)):
    if not await gateway.streams.stop_stream(event_id):
        raise StreamNotFoundError(event_id)
    return {"eventId": event_id, "stopped": True}


# ==================== 权限 ====================

@router.get("/admin/permissions")
async def list_permissions(gateway: GatewayContext = Depends(get_gateway)):
    return {"permissions": [p.to_dict() for p in gateway.permissions.list_pending()]}


@router.post("/admin/permissions/{request_id}")
async def resolve_permission(
    request_id: str,
    decision: PermissionDecision,
    gateway: GatewayContext = Depends(get_gateway),
):
    pending = gateway.resolve_permission(request_id, decision.granted)
    return {"requestId": pending.request_id, "eventId": pending.event_id, "granted": decision.granted}


# ==================== Provider 与配置 ====================

@router.get("/admin/providers/current")
async def get_current_provider(gateway: GatewayContext = Depends(get_gateway)):
    return {
        "providerId": gateway.providers.current_id,
        "providers": [
            {"id": p.info.id, "name": p.info.display_name, "enabled": p.info.enabled}
            for p in gateway.providers.get_all()
        ],
    }


@router.put("/admin/providers/current")
async def set_current_provider(selection: ProviderSelection, gateway: GatewayContext = Depends(get_gateway)):
    """切换当前 provider，会先取消全部活跃流"""
    await gateway.set_current_provider(selection.provider_id, stop_timeout=DEFAULT_STOP_ALL_TIMEOUT)
    return {"providerId": selection.provider_id}


@router.put("/admin/config/max-concurrent-streams")
async def set_max_concurrent_streams(ceiling: StreamCeiling, gateway: GatewayContext = Depends(get_gateway)):
    try:
        gateway.set_max_concurrent_streams(ceiling.max_concurrent_streams)
    except ValueError as e:
        raise InvalidRequestError(str(e))
    log.info(f"Stream ceiling updated to {ceiling.max_concurrent_streams}", tag="CONFIG")
    return {"maxConcurrentStreams": gateway.streams.max_concurrent_streams}
