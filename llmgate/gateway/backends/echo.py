"""
内置 echo provider

把最后一条用户消息的文本分块原样返回，用于联调两种线协议和流控制。
"""

import asyncio
from typing import AsyncIterator, List

from ..events import AgentEvent, ResponseEvent, Usage
from ..messages import content_text
from .interface import CompletionRequest, ModelInfo, ProviderInfo, StreamContext

__all__ = ["EchoProvider"]


class EchoProvider:
    """每次产出 chunk_size 个字符，最后上报 usage（按 4 字符 1 token 估算）"""

    def __init__(self, provider_id: str = "echo", chunk_size: int = 16, delay: float = 0.0):
        self._info = ProviderInfo(id=provider_id, name="Echo")
        self.chunk_size = chunk_size
        self.delay = delay

    @property
    def info(self) -> ProviderInfo:
        return self._info

    async def list_models(self) -> List[ModelInfo]:
        return [ModelInfo(id="echo", name="Echo")]

    async def _cancelled_during_delay(self, context: StreamContext) -> bool:
        """分块间隔内等待取消；停止请求不必等到间隔结束"""
        if not self.delay:
            return False
        try:
            await asyncio.wait_for(context.wait_cancelled(), self.delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def stream_completion(self, request: CompletionRequest, context: StreamContext) -> AsyncIterator[AgentEvent]:
        user_messages = [m for m in request.messages if m.role == "user"]
        text = content_text(user_messages[-1].content) if user_messages else ""

        for start in range(0, len(text), self.chunk_size):
            if context.cancelled or await self._cancelled_during_delay(context):
                return
            yield ResponseEvent(content=text[start:start + self.chunk_size])

        prompt_chars = sum(len(content_text(m.content)) for m in request.messages)
        prompt_tokens = max(1, prompt_chars // 4)
        completion_tokens = max(1, len(text) // 4) if text else 0
        yield ResponseEvent(
            total_usage=Usage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            stop_reason="complete",
        )
