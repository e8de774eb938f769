"""
Gateway 请求规范化模块

把 Anthropic Messages / OpenAI Chat Completions 两种入站请求转换为规范消息模型。
两个方向各自独立实现，只向规范模型转换，从不在两种线协议之间直接互转。
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from log import log

from .config import (
    ANTHROPIC_DEFAULT_TEMPERATURE,
    OPENAI_DEFAULT_MAX_TOKENS,
    OPENAI_DEFAULT_TEMPERATURE,
)
from .errors import InvalidRequestError
from .messages import ChatMessage, ContentPart, ImagePart, TextPart, ToolCall, ToolCallFunction, ToolDefinition
from .types import (
    AnthropicCountTokensRequest,
    AnthropicImageBlock,
    AnthropicMessage,
    AnthropicMessagesRequest,
    AnthropicRedactedThinkingBlock,
    AnthropicTextBlock,
    AnthropicThinkingBlock,
    AnthropicTool,
    AnthropicToolResultBlock,
    AnthropicToolUseBlock,
    OpenAIAssistantMessage,
    OpenAIChatCompletionRequest,
    OpenAIDeveloperMessage,
    OpenAIImagePart,
    OpenAISystemMessage,
    OpenAITextPart,
    OpenAITool,
    OpenAIToolMessage,
    OpenAIUserMessage,
)

__all__ = [
    "NormalizedRequest",
    # 请求解析
    "parse_json_body",
    "parse_anthropic_request",
    "parse_anthropic_count_tokens_request",
    "parse_openai_request",
    # 规范化
    "normalize_anthropic_messages",
    "normalize_anthropic_tools",
    "normalize_anthropic_request",
    "normalize_openai_messages",
    "normalize_openai_tools",
    "normalize_openai_request",
    # token 估算
    "estimate_input_tokens",
]

ANTHROPIC_REQUIRED_FIELDS = ("model", "messages", "max_tokens")
OPENAI_REQUIRED_FIELDS = ("model", "messages")
COUNT_TOKENS_REQUIRED_FIELDS = ("model", "messages")

_COMPACT_JSON = (",", ":")

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass
class NormalizedRequest:
    """规范化之后交给路由和 provider 的请求"""
    model: str
    messages: List[ChatMessage]
    tools: List[ToolDefinition] = field(default_factory=list)
    stream: bool = False
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


# ==================== 请求解析 ====================

def parse_json_body(raw: bytes) -> Dict[str, Any]:
    """
    解析请求体 JSON

    Raises:
        InvalidRequestError: 非法 JSON 或顶层不是对象
    """
    try:
        body = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        raise InvalidRequestError("Invalid JSON body")
    if not isinstance(body, dict):
        raise InvalidRequestError("Invalid JSON body")
    return body


def _require_fields(body: Dict[str, Any], required: Sequence[str]) -> None:
    for name in required:
        value = body.get(name)
        # max_tokens 为 0 同样视为缺失
        if value is None or value == "" or (name == "max_tokens" and not value):
            raise InvalidRequestError(f"Missing required field: {name}")
        if name == "messages" and (not isinstance(value, list) or not value):
            raise InvalidRequestError(f"Missing required field: {name}")


def _format_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


def _validate(model: Type[ModelT], body: Dict[str, Any]) -> ModelT:
    try:
        return model.model_validate(body)
    except ValidationError as e:
        detail = _format_validation_error(e)
        log.debug(f"Rejected {model.__name__}: {detail}", tag="GATEWAY")
        raise InvalidRequestError(detail)


def parse_anthropic_request(body: Dict[str, Any]) -> AnthropicMessagesRequest:
    """必填字段检查在 schema 校验之前，保证错误信息稳定"""
    _require_fields(body, ANTHROPIC_REQUIRED_FIELDS)
    return _validate(AnthropicMessagesRequest, body)


def parse_anthropic_count_tokens_request(body: Dict[str, Any]) -> AnthropicCountTokensRequest:
    _require_fields(body, COUNT_TOKENS_REQUIRED_FIELDS)
    return _validate(AnthropicCountTokensRequest, body)


def parse_openai_request(body: Dict[str, Any]) -> OpenAIChatCompletionRequest:
    _require_fields(body, OPENAI_REQUIRED_FIELDS)
    return _validate(OpenAIChatCompletionRequest, body)


# ==================== Anthropic → 规范模型 ====================

def _anthropic_system_text(system: Union[None, str, List[AnthropicTextBlock]]) -> str:
    if system is None:
        return ""
    if isinstance(system, str):
        return system.strip()
    return "\n\n".join(block.text for block in system).strip()


def _anthropic_image_part(block: AnthropicImageBlock) -> ImagePart:
    source = block.source
    if source.type == "base64":
        return ImagePart(url=f"data:{source.media_type};base64,{source.data}")
    return ImagePart(url=source.url)


def _tool_result_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    return json.dumps(content, ensure_ascii=False, separators=_COMPACT_JSON)


def _anthropic_user_messages(message: AnthropicMessage) -> List[ChatMessage]:
    """
    用户回合：tool_result 变成独立的 tool 消息并排在前面，
    其余文本/图片按原顺序组成一条 user 消息；只有工具结果时不产生 user 消息。
    """
    if isinstance(message.content, str):
        return [ChatMessage(role="user", content=message.content)]

    tool_messages: List[ChatMessage] = []
    parts: List[ContentPart] = []
    for block in message.content:
        if isinstance(block, AnthropicTextBlock):
            parts.append(TextPart(text=block.text))
        elif isinstance(block, AnthropicImageBlock):
            parts.append(_anthropic_image_part(block))
        elif isinstance(block, AnthropicToolResultBlock):
            tool_messages.append(ChatMessage(
                role="tool",
                content=_tool_result_text(block.content),
                tool_call_id=block.tool_use_id,
            ))
        elif isinstance(block, (AnthropicThinkingBlock, AnthropicRedactedThinkingBlock)):
            continue
        else:
            raise InvalidRequestError(f"Content block type '{block.type}' is not allowed in user messages")

    if parts:
        tool_messages.append(ChatMessage(role="user", content=parts))
    return tool_messages


def _anthropic_assistant_message(message: AnthropicMessage) -> ChatMessage:
    if isinstance(message.content, str):
        return ChatMessage(role="assistant", content=message.content)

    texts: List[str] = []
    tool_calls: List[ToolCall] = []
    for block in message.content:
        if isinstance(block, AnthropicTextBlock):
            texts.append(block.text)
        elif isinstance(block, AnthropicToolUseBlock):
            tool_calls.append(ToolCall(
                id=block.id,
                function=ToolCallFunction(
                    name=block.name,
                    arguments=json.dumps(block.input, ensure_ascii=False, separators=_COMPACT_JSON),
                ),
            ))
        elif isinstance(block, (AnthropicThinkingBlock, AnthropicRedactedThinkingBlock)):
            # 思考块不回传给 provider
            continue
        else:
            raise InvalidRequestError(f"Content block type '{block.type}' is not allowed in assistant messages")

    text = "".join(texts)
    if tool_calls:
        return ChatMessage(role="assistant", content=text or None, tool_calls=tool_calls)
    return ChatMessage(role="assistant", content=text)


def normalize_anthropic_messages(
    messages: List[AnthropicMessage],
    system: Union[None, str, List[AnthropicTextBlock]] = None,
) -> List[ChatMessage]:
    """
    Convert Anthropic messages (plus optional system prompt) to canonical messages.

    The system prompt becomes one leading system message, omitted when blank.
    """
    result: List[ChatMessage] = []

    system_text = _anthropic_system_text(system)
    if system_text:
        result.append(ChatMessage(role="system", content=system_text))

    for message in messages:
        if message.role == "user":
            result.extend(_anthropic_user_messages(message))
        else:
            result.append(_anthropic_assistant_message(message))

    return result


def normalize_anthropic_tools(tools: Optional[List[AnthropicTool]]) -> List[ToolDefinition]:
    return [
        ToolDefinition(name=tool.name, description=tool.description or "", input_schema=tool.input_schema)
        for tool in tools or []
    ]


def normalize_anthropic_request(request: AnthropicMessagesRequest) -> NormalizedRequest:
    messages = normalize_anthropic_messages(request.messages, request.system)
    tools = normalize_anthropic_tools(request.tools)
    log.debug(
        f"Normalized Anthropic request: {len(request.messages)} wire messages -> {len(messages)} canonical",
        tag="GATEWAY",
        tools=len(tools),
    )
    return NormalizedRequest(
        model=request.model,
        messages=messages,
        tools=tools,
        stream=request.stream,
        temperature=request.temperature if request.temperature is not None else ANTHROPIC_DEFAULT_TEMPERATURE,
        max_tokens=request.max_tokens,
    )


# ==================== OpenAI → 规范模型 ====================

def _openai_text(content: Union[None, str, List[Any]]) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return "".join(part.text for part in content if isinstance(part, OpenAITextPart))


def _openai_user_content(content: Union[str, List[Any]]) -> Union[str, List[ContentPart]]:
    if isinstance(content, str):
        return content

    parts: List[ContentPart] = []
    for part in content:
        if isinstance(part, OpenAITextPart):
            parts.append(TextPart(text=part.text))
        elif isinstance(part, OpenAIImagePart):
            parts.append(ImagePart(url=part.image_url.url))
    return parts


def normalize_openai_messages(messages: List[Any]) -> List[ChatMessage]:
    """
    Convert OpenAI chat messages to canonical messages.

    ``developer`` is treated as ``system``. Assistant tool calls pass through unchanged.
    """
    result: List[ChatMessage] = []

    for message in messages:
        if isinstance(message, (OpenAISystemMessage, OpenAIDeveloperMessage)):
            result.append(ChatMessage(role="system", content=_openai_text(message.content)))
        elif isinstance(message, OpenAIUserMessage):
            result.append(ChatMessage(role="user", content=_openai_user_content(message.content)))
        elif isinstance(message, OpenAIAssistantMessage):
            tool_calls = [
                ToolCall(id=call.id, function=ToolCallFunction(name=call.function.name,
                                                               arguments=call.function.arguments))
                for call in message.tool_calls or []
            ]
            if tool_calls:
                content = _openai_text(message.content) if message.content is not None else None
                result.append(ChatMessage(role="assistant", content=content, tool_calls=tool_calls))
            else:
                result.append(ChatMessage(role="assistant", content=_openai_text(message.content)))
        elif isinstance(message, OpenAIToolMessage):
            result.append(ChatMessage(
                role="tool",
                content=_openai_text(message.content),
                tool_call_id=message.tool_call_id,
            ))

    return result


def normalize_openai_tools(tools: Optional[List[OpenAITool]]) -> List[ToolDefinition]:
    return [
        ToolDefinition(
            name=tool.function.name,
            description=tool.function.description or "",
            input_schema=tool.function.parameters or {},
        )
        for tool in tools or []
    ]


def normalize_openai_request(request: OpenAIChatCompletionRequest) -> NormalizedRequest:
    messages = normalize_openai_messages(request.messages)
    tools = normalize_openai_tools(request.tools)
    max_tokens = request.max_tokens or request.max_completion_tokens or OPENAI_DEFAULT_MAX_TOKENS
    log.debug(
        f"Normalized OpenAI request: {len(request.messages)} wire messages -> {len(messages)} canonical",
        tag="GATEWAY",
        tools=len(tools),
    )
    return NormalizedRequest(
        model=request.model,
        messages=messages,
        tools=tools,
        stream=request.stream,
        temperature=request.temperature if request.temperature is not None else OPENAI_DEFAULT_TEMPERATURE,
        max_tokens=max_tokens,
    )


# ==================== Token 估算 ====================

def _count_block_chars(content: Union[str, List[Any]]) -> int:
    if isinstance(content, str):
        return len(content)

    total = 0
    for block in content:
        if isinstance(block, AnthropicTextBlock):
            total += len(block.text)
        elif isinstance(block, AnthropicToolResultBlock):
            if isinstance(block.content, str):
                total += len(block.content)
            elif isinstance(block.content, list):
                total += sum(
                    len(item.get("text", "")) for item in block.content
                    if isinstance(item, dict) and item.get("type") == "text"
                )
    return total


def estimate_input_tokens(request: AnthropicCountTokensRequest) -> int:
    """粗略估算：全部文本字符数 / 4，至少为 1"""
    total_chars = len(_anthropic_system_text(request.system))
    for message in request.messages:
        total_chars += _count_block_chars(message.content)
    return max(1, total_chars // 4)
