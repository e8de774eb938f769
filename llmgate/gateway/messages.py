"""
规范消息模型

两种线协议都先转换成这里的 ChatMessage 序列，再交给 provider。
content 要么是纯字符串，要么是 TextPart / ImagePart 列表；
只有一个文本片段的列表一律折叠成字符串。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union

__all__ = [
    "Role",
    "TextPart",
    "ImagePart",
    "ContentPart",
    "MessageContent",
    "ToolCallFunction",
    "ToolCall",
    "ToolDefinition",
    "ChatMessage",
    "canonicalize_content",
    "expand_content",
    "content_text",
]

Role = Literal["system", "user", "assistant", "tool"]


@dataclass
class TextPart:
    text: str
    type: Literal["text"] = "text"


@dataclass
class ImagePart:
    """图片片段，url 可以是 data URI 或普通 URL"""
    url: str
    type: Literal["image_url"] = "image_url"


ContentPart = Union[TextPart, ImagePart]
MessageContent = Union[str, List[ContentPart]]


@dataclass
class ToolCallFunction:
    name: str
    arguments: str = ""


@dataclass
class ToolCall:
    """助手消息里的一次工具调用，arguments 为 JSON 文本"""
    id: str
    function: ToolCallFunction
    type: Literal["function"] = "function"


@dataclass
class ToolDefinition:
    name: str
    description: str = ""
    input_schema: Dict[str, Any] = field(default_factory=dict)


def canonicalize_content(content: Optional[MessageContent]) -> Optional[MessageContent]:
    """单个文本片段的列表折叠为字符串，其它情况原样返回"""
    if isinstance(content, list) and len(content) == 1 and isinstance(content[0], TextPart):
        return content[0].text
    return content


def expand_content(content: Optional[MessageContent]) -> List[ContentPart]:
    """canonicalize_content 的逆操作：统一展开为片段列表"""
    if content is None:
        return []
    if isinstance(content, str):
        return [TextPart(text=content)]
    return list(content)


def content_text(content: Optional[MessageContent], separator: str = "") -> str:
    """提取 content 中全部文本"""
    return separator.join(part.text for part in expand_content(content) if isinstance(part, TextPart))


@dataclass
class ChatMessage:
    """
    规范消息

    Attributes:
        role: system / user / assistant / tool
        content: 字符串或片段列表；assistant 只有工具调用时为 None
        tool_calls: assistant 的工具调用
        tool_call_id: tool 消息对应的调用 id
    """
    role: Role
    content: Optional[MessageContent] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None

    def __post_init__(self):
        self.content = canonicalize_content(self.content)
