"""
Gateway Anthropic 格式端点

包含 /v1/messages 与 /v1/messages/count_tokens。
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from log import log

from . import EVENT_ID_HEADER, read_json_body, request_event_id, sse_response
from ..context import GatewayContext, get_gateway
from ..normalization import (
    estimate_input_tokens,
    normalize_anthropic_request,
    parse_anthropic_count_tokens_request,
    parse_anthropic_request,
)
from ..proxy import (
    ANTHROPIC_USER_STOP_REASON,
    build_completion_request,
    collect_completion,
    prime_stream,
    stream_encoded,
)
from ..sse.anthropic import AnthropicStreamEncoder, build_anthropic_message

router = APIRouter()

__all__ = ["router"]


# ==================== Anthropic Messages 端点 ====================

@router.post("/v1/messages")
async def anthropic_messages(request: Request, gateway: GatewayContext = Depends(get_gateway)):
    """Anthropic Messages API 兼容端点"""
    body = await read_json_body(request)
    wire_request = parse_anthropic_request(body)
    normalized = normalize_anthropic_request(wire_request)

    route = gateway.resolve_route(normalized.model)
    provider = gateway.resolve_provider(route)
    event_id = request_event_id(request)
    completion = build_completion_request(normalized, route, event_id)

    log.info(
        f"Messages request: {wire_request.model} -> {route} (stream={wire_request.stream})",
        tag="GATEWAY",
        event_id=event_id,
    )

    if wire_request.stream:
        encoder = AnthropicStreamEncoder(model=wire_request.model)
        stream = await prime_stream(stream_encoded(
            gateway.streams, provider, completion, encoder, ANTHROPIC_USER_STOP_REASON,
        ))
        return sse_response(stream, event_id)

    result = await collect_completion(gateway.streams, provider, completion, ANTHROPIC_USER_STOP_REASON)
    return JSONResponse(
        content=build_anthropic_message(
            model=wire_request.model,
            text=result.text,
            tool_calls=result.tool_call_list(),
            stop_reason=result.stop_reason,
            input_tokens=result.prompt_tokens,
            output_tokens=result.completion_tokens,
        ),
        headers={EVENT_ID_HEADER: event_id},
    )


@router.post("/v1/messages/count_tokens")
async def anthropic_messages_count_tokens(request: Request):
    """
    Anthropic Messages API 兼容的 token 计数端点。

    只做估算，不调用任何 provider。
    """
    body = await read_json_body(request)
    wire_request = parse_anthropic_count_tokens_request(body)
    input_tokens = estimate_input_tokens(wire_request)

    log.debug(f"Estimated input tokens: {input_tokens}", tag="GATEWAY")
    return JSONResponse(content={"input_tokens": input_tokens})
