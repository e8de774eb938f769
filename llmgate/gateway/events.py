"""
规范 Agent 事件

provider 产出的增量事件。一次会话由若干 ResponseEvent 组成，
以恰好一个 EndEvent 结束；出错时在 EndEvent 之前有一个 ErrorEvent。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union

__all__ = [
    "TOOL_CALL_START",
    "TOOL_CALL_UPDATE",
    "TOOL_CALL_END",
    "TOOL_CALL_PERMISSION",
    "Usage",
    "RateLimitInfo",
    "PermissionRequest",
    "ResponseEvent",
    "EndEvent",
    "ErrorEvent",
    "AgentEvent",
]

TOOL_CALL_START = "start"
TOOL_CALL_UPDATE = "update"
TOOL_CALL_END = "end"
TOOL_CALL_PERMISSION = "permission-required"

ToolCallPhase = Literal["start", "update", "end", "permission-required"]


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class RateLimitInfo:
    current_qps: float = 0.0
    queue_length: int = 0
    max_qps: float = 0.0
    provider_id: Optional[str] = None


@dataclass
class PermissionRequest:
    """
    工具执行前需要用户确认的请求

    request_id 在网关内唯一，resolve 时用它找到挂起的 provider。
    """
    request_id: str
    tool_name: str
    description: str = ""
    permission_type: str = "write"
    server_name: Optional[str] = None
    session_id: Optional[str] = None
    options: List[Dict[str, Any]] = field(default_factory=list)
    rememberable: bool = True


@dataclass
class ResponseEvent:
    """
    一次增量输出，所有字段都可选

    tool_call_params 在 start/update 时是参数 JSON 的一个片段，
    同一个 tool_call_id 的片段按顺序拼接得到完整参数。
    stop_reason 为 provider 主动上报的结束原因（规范词汇）。
    """
    content: Optional[str] = None
    reasoning_content: Optional[str] = None
    tool_call: Optional[ToolCallPhase] = None
    tool_call_id: Optional[str] = None
    tool_call_name: Optional[str] = None
    tool_call_params: Optional[str] = None
    total_usage: Optional[Usage] = None
    rate_limit: Optional[RateLimitInfo] = None
    image_data: Optional[Dict[str, str]] = None
    permission_request: Optional[PermissionRequest] = None
    stop_reason: Optional[str] = None


@dataclass
class EndEvent:
    """会话结束，user_stop 表示由取消导致"""
    user_stop: bool = False


@dataclass
class ErrorEvent:
    error: str = "Unknown error"


AgentEvent = Union[ResponseEvent, EndEvent, ErrorEvent]
