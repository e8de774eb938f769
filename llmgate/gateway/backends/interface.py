"""
Gateway Provider 接口定义

定义 LLMProvider Protocol，以及 provider 与网关之间交换的数据类。
provider 负责把各自的原生响应翻译成规范事件（ResponseEvent / ErrorEvent），
会话的 EndEvent 由流管理器统一产生。
"""

import asyncio
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Protocol

from ..events import AgentEvent
from ..messages import ChatMessage, ToolDefinition

__all__ = [
    "ProviderInfo",
    "ModelInfo",
    "CompletionRequest",
    "StreamContext",
    "LLMProvider",
]


@dataclass
class ProviderInfo:
    """Provider 描述"""

    id: str
    """唯一标识，对应模型字符串 "provider/model" 的前半段"""

    name: str = ""
    """展示名称，/v1/models 的 owned_by"""

    enabled: bool = True
    """是否启用"""

    @property
    def display_name(self) -> str:
        return self.name or self.id


@dataclass
class ModelInfo:
    id: str
    name: str = ""


@dataclass
class CompletionRequest:
    """一次补全请求，已经过规范化和模型路由"""
    event_id: str
    model_id: str
    messages: List[ChatMessage]
    tools: List[ToolDefinition] = field(default_factory=list)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


PermissionWaiter = Callable[[str], Awaitable[bool]]


class StreamContext:
    """
    流管理器交给 provider 的会话上下文

    - cancelled: 会话已被要求停止，provider 应在下一个事件边界结束
    - wait_for_permission: 在产出 permission-required 事件之后等待用户决定
    """

    def __init__(self, event_id: str, cancel_event: asyncio.Event, permission_waiter: PermissionWaiter):
        self.event_id = event_id
        self._cancel_event = cancel_event
        self._permission_waiter = permission_waiter

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    async def wait_cancelled(self) -> None:
        await self._cancel_event.wait()

    async def wait_for_permission(self, request_id: str) -> bool:
        """
        挂起直到该权限请求被处理

        Returns:
            True 表示授权，False 表示拒绝（包括会话结束时被丢弃）

        Raises:
            PermissionNotFoundError: 该 request_id 未登记
        """
        return await self._permission_waiter(request_id)


class LLMProvider(Protocol):
    """
    LLM Provider 接口协议

    所有 provider 实现必须遵循此协议。
    """

    @property
    def info(self) -> ProviderInfo:
        """Provider 描述"""
        ...

    async def list_models(self) -> List[ModelInfo]:
        """
        列出可用模型

        Returns:
            模型列表
        """
        ...

    def stream_completion(self, request: CompletionRequest, context: StreamContext) -> AsyncIterator[AgentEvent]:
        """
        流式补全

        Args:
            request: 补全请求
            context: 会话上下文

        Yields:
            规范事件；迭代结束即表示正常完成
        """
        ...
