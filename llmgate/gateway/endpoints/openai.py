"""
Gateway OpenAI 格式端点

包含 /v1/chat/completions。
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from log import log

from . import EVENT_ID_HEADER, read_json_body, request_event_id, sse_response
from ..context import GatewayContext, get_gateway
from ..normalization import normalize_openai_request, parse_openai_request
from ..proxy import (
    OPENAI_USER_STOP_REASON,
    build_completion_request,
    collect_completion,
    prime_stream,
    stream_encoded,
)
from ..sse.openai import OpenAIStreamEncoder, build_openai_completion

router = APIRouter()

__all__ = ["router"]


@router.post("/v1/chat/completions")
async def chat_completions(request: Request, gateway: GatewayContext = Depends(get_gateway)):
    """OpenAI Chat Completions 兼容端点"""
    body = await read_json_body(request)
    wire_request = parse_openai_request(body)
    normalized = normalize_openai_request(wire_request)

    route = gateway.resolve_route(normalized.model)
    provider = gateway.resolve_provider(route)
    event_id = request_event_id(request)
    completion = build_completion_request(normalized, route, event_id)

    log.info(
        f"Chat completions request: {wire_request.model} -> {route} (stream={wire_request.stream})",
        tag="GATEWAY",
        event_id=event_id,
    )

    if wire_request.stream:
        encoder = OpenAIStreamEncoder(model=wire_request.model)
        stream = await prime_stream(stream_encoded(
            gateway.streams, provider, completion, encoder, OPENAI_USER_STOP_REASON,
        ))
        return sse_response(stream, event_id)

    result = await collect_completion(gateway.streams, provider, completion, OPENAI_USER_STOP_REASON)
    return JSONResponse(
        content=build_openai_completion(
            model=wire_request.model,
            text=result.text,
            tool_calls=result.tool_call_list(),
            stop_reason=result.stop_reason,
            prompt_tokens=result.prompt_tokens,
            completion_tokens=result.completion_tokens,
        ),
        headers={EVENT_ID_HEADER: event_id},
    )
