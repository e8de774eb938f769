"""
Gateway 代理模块

把规范事件流接到线协议上：
- 流式：驱动流管理器，把事件交给编码器，产出 SSE 字节
- 非流式：聚合全部事件，构建一次性 JSON 响应
"""

from contextlib import aclosing
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Tuple, Union

from log import log

from .backends.interface import CompletionRequest, LLMProvider
from .errors import INTERNAL_ERROR_MESSAGE, UpstreamError
from .events import (
    TOOL_CALL_START,
    TOOL_CALL_UPDATE,
    AgentEvent,
    EndEvent,
    ErrorEvent,
    ResponseEvent,
)
from .normalization import NormalizedRequest
from .routing import ModelRoute
from .sse.anthropic import AnthropicStreamEncoder
from .sse.openai import OpenAIStreamEncoder
from .streams import StreamLifecycleManager

__all__ = [
    "CompletionResult",
    "build_completion_request",
    "encode_event",
    "stream_encoded",
    "prime_stream",
    "collect_completion",
    "ANTHROPIC_USER_STOP_REASON",
    "OPENAI_USER_STOP_REASON",
]

StreamEncoder = Union[AnthropicStreamEncoder, OpenAIStreamEncoder]

# 会话被取消时的默认结束原因
ANTHROPIC_USER_STOP_REASON = "stop_sequence"
OPENAI_USER_STOP_REASON = "stop"


def build_completion_request(normalized: NormalizedRequest, route: ModelRoute, event_id: str) -> CompletionRequest:
    return CompletionRequest(
        event_id=event_id,
        model_id=route.model_id,
        messages=normalized.messages,
        tools=normalized.tools,
        temperature=normalized.temperature,
        max_tokens=normalized.max_tokens,
    )


# ==================== 流式 ====================

def encode_event(encoder: StreamEncoder, event: ResponseEvent) -> bytes:
    """把一个 ResponseEvent 编码成零个或多个帧"""
    frames: List[bytes] = []

    # 推理内容按普通文本输出
    if event.reasoning_content:
        frames.append(encoder.text_delta(event.reasoning_content))
    if event.content:
        frames.append(encoder.text_delta(event.content))

    if event.tool_call_id:
        if event.tool_call == TOOL_CALL_START:
            frames.append(encoder.tool_call_start(event.tool_call_id, event.tool_call_name or ""))
            if event.tool_call_params:
                frames.append(encoder.tool_call_chunk(event.tool_call_id, event.tool_call_params))
        elif event.tool_call == TOOL_CALL_UPDATE and event.tool_call_params:
            frames.append(encoder.tool_call_chunk(event.tool_call_id, event.tool_call_params))

    return b"".join(frames)


async def stream_encoded(
    streams: StreamLifecycleManager,
    provider: LLMProvider,
    request: CompletionRequest,
    encoder: StreamEncoder,
    user_stop_reason: str,
) -> AsyncIterator[bytes]:
    """
    流式管线：准入 → initial → 逐事件编码 → final

    provider 出错或编码失败时输出一个流内错误帧后结束，不再输出 final。
    """
    async with streams.session(provider.info.id, request.model_id, request.event_id) as session:
        yield encoder.initial()

        reported_reason: Optional[str] = None
        prompt_tokens = completion_tokens = 0
        events = streams.iterate_events(session, provider, request)
        async with aclosing(events):
            try:
                async for event in events:
                    if isinstance(event, ResponseEvent):
                        if event.total_usage is not None:
                            prompt_tokens = event.total_usage.prompt_tokens
                            completion_tokens = event.total_usage.completion_tokens
                        if event.stop_reason:
                            reported_reason = event.stop_reason
                        frame = encode_event(encoder, event)
                        if frame:
                            yield frame
                    elif isinstance(event, ErrorEvent):
                        yield encoder.error("api_error", event.error)
                    elif isinstance(event, EndEvent):
                        if reported_reason:
                            encoder.set_stop_reason(reported_reason)
                        elif event.user_stop:
                            encoder.set_stop_reason(user_stop_reason)
            except Exception as e:
                log.error(f"Stream encoding failed: {e}", tag="GATEWAY", event_id=session.event_id)
                if not encoder.finished:
                    yield encoder.error("api_error", INTERNAL_ERROR_MESSAGE)
                return

        if not encoder.finished:
            encoder.set_usage(prompt_tokens, completion_tokens)
            yield encoder.final()


async def prime_stream(stream: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    """
    先取出第一个帧再返回，让准入失败等错误在发送响应头之前以异常形式抛出

    Raises:
        CapacityError / InvalidRequestError: 会话准入失败
    """
    first = await stream.__anext__()

    async def replay() -> AsyncIterator[bytes]:
        try:
            yield first
            async for chunk in stream:
                yield chunk
        finally:
            await stream.aclose()

    return replay()


# ==================== 非流式 ====================

@dataclass
class CompletionResult:
    """聚合后的补全结果"""
    text: str = ""
    tool_calls: Dict[str, List[str]] = field(default_factory=dict)
    stop_reason: Optional[str] = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    user_stop: bool = False

    def add(self, event: ResponseEvent) -> None:
        if event.reasoning_content:
            self.text += event.reasoning_content
        if event.content:
            self.text += event.content

        if event.tool_call_id:
            if event.tool_call == TOOL_CALL_START and event.tool_call_id not in self.tool_calls:
                self.tool_calls[event.tool_call_id] = [event.tool_call_name or "", event.tool_call_params or ""]
            elif event.tool_call == TOOL_CALL_UPDATE and event.tool_call_id in self.tool_calls:
                self.tool_calls[event.tool_call_id][1] += event.tool_call_params or ""

        if event.total_usage is not None:
            self.prompt_tokens = event.total_usage.prompt_tokens
            self.completion_tokens = event.total_usage.completion_tokens
        if event.stop_reason:
            self.stop_reason = event.stop_reason

    def tool_call_list(self) -> List[Tuple[str, str, str]]:
        """(id, name, arguments) 按首次出现排序"""
        return [(tool_call_id, name, arguments) for tool_call_id, (name, arguments) in self.tool_calls.items()]


async def collect_completion(
    streams: StreamLifecycleManager,
    provider: LLMProvider,
    request: CompletionRequest,
    user_stop_reason: str,
) -> CompletionResult:
    """
    非流式管线：聚合全部事件

    Raises:
        CapacityError: 准入失败
        UpstreamError: provider 报错
    """
    result = CompletionResult()
    async with streams.session(provider.info.id, request.model_id, request.event_id) as session:
        events: AsyncIterator[AgentEvent] = streams.iterate_events(session, provider, request)
        async with aclosing(events):
            async for event in events:
                if isinstance(event, ResponseEvent):
                    result.add(event)
                elif isinstance(event, ErrorEvent):
                    raise UpstreamError(event.error)
                elif isinstance(event, EndEvent):
                    result.user_stop = event.user_stop

    if result.stop_reason is None and result.user_stop:
        result.stop_reason = user_stop_reason
    return result
