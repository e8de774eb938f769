"""
Gateway 端点模块

包含 Anthropic、OpenAI、模型列表以及管理端点，和它们共用的请求/响应辅助函数。
"""

import uuid
from typing import AsyncIterator, Dict

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from ..normalization import parse_json_body

__all__ = [
    "EVENT_ID_HEADER",
    "create_gateway_router",
    "read_json_body",
    "request_event_id",
    "sse_response",
]

EVENT_ID_HEADER = "X-Event-Id"

SSE_HEADERS: Dict[str, str] = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def create_gateway_router() -> APIRouter:
    """
    创建网关路由器

    Returns:
        配置好的 APIRouter 实例
    """
    from .admin import router as admin_router
    from .anthropic import router as anthropic_router
    from .models import router as models_router
    from .openai import router as openai_router

    router = APIRouter()
    router.include_router(models_router, tags=["models"])
    router.include_router(openai_router, tags=["openai"])
    router.include_router(anthropic_router, tags=["anthropic"])
    router.include_router(admin_router, tags=["admin"])
    return router


async def read_json_body(request: Request) -> dict:
    return parse_json_body(await request.body())


def request_event_id(request: Request) -> str:
    """调用方可以通过 X-Event-Id 指定会话 id，便于之后停止该流"""
    return request.headers.get(EVENT_ID_HEADER) or uuid.uuid4().hex


def sse_response(stream: AsyncIterator[bytes], event_id: str) -> StreamingResponse:
    return StreamingResponse(
        stream,
        media_type="text/event-stream",
        headers={**SSE_HEADERS, EVENT_ID_HEADER: event_id},
    )
