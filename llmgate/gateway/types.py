# -*- coding: utf-8 -*-
"""
Wire Protocol Types
===================

Pydantic 类型定义，对应两种入站请求格式：
- Anthropic Messages (/v1/messages, /v1/messages/count_tokens)
- OpenAI Chat Completions (/v1/chat/completions)

内容块按 type / role 字段做判别联合，不认识的块类型或角色在解析阶段就会失败，
由 normalization 转成 400 invalid_request_error。
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import Annotated

__all__ = [
    # Anthropic
    "AnthropicTextBlock",
    "AnthropicBase64ImageSource",
    "AnthropicUrlImageSource",
    "AnthropicImageBlock",
    "AnthropicToolUseBlock",
    "AnthropicToolResultBlock",
    "AnthropicThinkingBlock",
    "AnthropicRedactedThinkingBlock",
    "AnthropicContentBlock",
    "AnthropicMessage",
    "AnthropicTool",
    "AnthropicMessagesRequest",
    "AnthropicCountTokensRequest",
    # OpenAI
    "OpenAITextPart",
    "OpenAIImageUrl",
    "OpenAIImagePart",
    "OpenAIContentPart",
    "OpenAIFunctionCall",
    "OpenAIToolCall",
    "OpenAISystemMessage",
    "OpenAIDeveloperMessage",
    "OpenAIUserMessage",
    "OpenAIAssistantMessage",
    "OpenAIToolMessage",
    "OpenAIMessage",
    "OpenAIFunctionDefinition",
    "OpenAITool",
    "OpenAIChatCompletionRequest",
]


class _WireModel(BaseModel):
    """入站模型基类：忽略未建模的附加字段（cache_control、metadata 等）"""
    model_config = ConfigDict(extra="ignore")


# ============== Anthropic 内容块 ==============

class AnthropicTextBlock(_WireModel):
    type: Literal["text"]
    text: str = Field(..., description="文本内容")


class AnthropicBase64ImageSource(_WireModel):
    type: Literal["base64"]
    media_type: str = Field(..., description="图片 MIME 类型")
    data: str = Field(..., description="base64 数据")


class AnthropicUrlImageSource(_WireModel):
    type: Literal["url"]
    url: str


AnthropicImageSource = Annotated[
    Union[AnthropicBase64ImageSource, AnthropicUrlImageSource],
    Field(discriminator="type"),
]


class AnthropicImageBlock(_WireModel):
    type: Literal["image"]
    source: AnthropicImageSource


class AnthropicToolUseBlock(_WireModel):
    """助手历史中的工具调用"""
    type: Literal["tool_use"]
    id: str = Field(..., description="工具调用唯一ID")
    name: str = Field(..., description="工具名称")
    input: Dict[str, Any] = Field(default_factory=dict, description="工具输入参数")


class AnthropicToolResultBlock(_WireModel):
    """用户回合中的工具执行结果，content 可以是字符串或内容块数组"""
    type: Literal["tool_result"]
    tool_use_id: str = Field(..., description="对应的工具调用ID")
    content: Any = Field(default="", description="工具执行结果")
    is_error: Optional[bool] = None


class AnthropicThinkingBlock(_WireModel):
    type: Literal["thinking"]
    thinking: str = ""
    signature: Optional[str] = None


class AnthropicRedactedThinkingBlock(_WireModel):
    type: Literal["redacted_thinking"]
    data: str = ""


AnthropicContentBlock = Annotated[
    Union[
        AnthropicTextBlock,
        AnthropicImageBlock,
        AnthropicToolUseBlock,
        AnthropicToolResultBlock,
        AnthropicThinkingBlock,
        AnthropicRedactedThinkingBlock,
    ],
    Field(discriminator="type"),
]


class AnthropicMessage(_WireModel):
    role: Literal["user", "assistant"]
    content: Union[str, List[AnthropicContentBlock]]


class AnthropicTool(_WireModel):
    name: str = Field(..., description="工具名称")
    description: Optional[str] = None
    input_schema: Dict[str, Any] = Field(default_factory=dict)


# ============== Anthropic 请求 ==============

class AnthropicMessagesRequest(_WireModel):
    """POST /v1/messages 请求体"""
    model: str
    messages: List[AnthropicMessage] = Field(..., min_length=1)
    max_tokens: int
    system: Optional[Union[str, List[AnthropicTextBlock]]] = None
    tools: Optional[List[AnthropicTool]] = None
    stream: bool = False
    temperature: Optional[float] = None
    stop_sequences: Optional[List[str]] = None


class AnthropicCountTokensRequest(_WireModel):
    """POST /v1/messages/count_tokens 请求体"""
    model: str
    messages: List[AnthropicMessage] = Field(..., min_length=1)
    system: Optional[Union[str, List[AnthropicTextBlock]]] = None
    tools: Optional[List[AnthropicTool]] = None


# ============== OpenAI 消息 ==============

class OpenAITextPart(_WireModel):
    type: Literal["text"]
    text: str


class OpenAIImageUrl(_WireModel):
    url: str
    detail: Optional[str] = None


class OpenAIImagePart(_WireModel):
    type: Literal["image_url"]
    image_url: OpenAIImageUrl


OpenAIContentPart = Annotated[
    Union[OpenAITextPart, OpenAIImagePart],
    Field(discriminator="type"),
]

OpenAIContent = Union[str, List[OpenAIContentPart]]


class OpenAIFunctionCall(_WireModel):
    name: str
    arguments: str = ""


class OpenAIToolCall(_WireModel):
    id: str
    type: Literal["function"] = "function"
    function: OpenAIFunctionCall


class OpenAISystemMessage(_WireModel):
    role: Literal["system"]
    content: OpenAIContent


class OpenAIDeveloperMessage(_WireModel):
    role: Literal["developer"]
    content: OpenAIContent


class OpenAIUserMessage(_WireModel):
    role: Literal["user"]
    content: OpenAIContent


class OpenAIAssistantMessage(_WireModel):
    role: Literal["assistant"]
    content: Optional[OpenAIContent] = None
    tool_calls: Optional[List[OpenAIToolCall]] = None


class OpenAIToolMessage(_WireModel):
    role: Literal["tool"]
    content: OpenAIContent
    tool_call_id: str


OpenAIMessage = Annotated[
    Union[
        OpenAISystemMessage,
        OpenAIDeveloperMessage,
        OpenAIUserMessage,
        OpenAIAssistantMessage,
        OpenAIToolMessage,
    ],
    Field(discriminator="role"),
]


class OpenAIFunctionDefinition(_WireModel):
    name: str
    description: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None


class OpenAITool(_WireModel):
    type: Literal["function"] = "function"
    function: OpenAIFunctionDefinition


# ============== OpenAI 请求 ==============

class OpenAIChatCompletionRequest(_WireModel):
    """POST /v1/chat/completions 请求体"""
    model: str
    messages: List[OpenAIMessage] = Field(..., min_length=1)
    stream: bool = False
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    max_completion_tokens: Optional[int] = None
    tools: Optional[List[OpenAITool]] = None
