"""
Anthropic Messages 流式编码器

把规范事件编码为 Anthropic SSE 帧（event: <type>\\ndata: <json>\\n\\n）。

内容块编号：
- 0 号块固定为文本块，在 initial() 中打开
- 每个新的工具调用按首次 start 的顺序依次分配 1, 2, 3 ...，同一会话内不复用

工具参数增量：按 tool_call_id 累积片段，只有累积结果是合法 JSON 时才输出一次
input_json_delta，内容为完整的累积文本；不完整时不输出。
"""

import json
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .stop_reasons import map_anthropic_stop_reason

__all__ = [
    "AnthropicStreamEncoder",
    "build_anthropic_message",
    "new_message_id",
    "sse_event",
]

TEXT_BLOCK_INDEX = 0


def sse_event(event: str, data: Dict[str, Any]) -> bytes:
    payload = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
    return f"event: {event}\ndata: {payload}\n\n".encode("utf-8")


def new_message_id() -> str:
    return f"msg_{uuid.uuid4().hex[:24]}"


def _is_complete_json(text: str) -> bool:
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


@dataclass
class _ToolBlock:
    index: int
    name: str
    arguments: str = ""


class AnthropicStreamEncoder:
    """
    单个客户端连接的 Anthropic 流编码器

    所有方法返回待写出的字节，没有输出时返回 b""。
    """

    def __init__(self, model: str, message_id: Optional[str] = None, created: Optional[int] = None):
        self.model = model
        self.message_id = message_id or new_message_id()
        self.created = created if created is not None else int(time.time())
        self._tool_blocks: Dict[str, _ToolBlock] = {}
        self._tool_counter = 0
        self._stop_reason: Optional[str] = None
        self._input_tokens = 0
        self._output_tokens = 0
        self._finished = False

    # ==================== 状态查询 ====================

    @property
    def has_tool_calls(self) -> bool:
        return bool(self._tool_blocks)

    @property
    def stop_reason(self) -> Optional[str]:
        return self._stop_reason

    @property
    def finished(self) -> bool:
        return self._finished

    def tool_block_index(self, tool_call_id: str) -> Optional[int]:
        block = self._tool_blocks.get(tool_call_id)
        return block.index if block else None

    # ==================== 帧生成 ====================

    def initial(self) -> bytes:
        """message_start + 文本块 content_block_start + ping"""
        return b"".join((
            sse_event("message_start", {
                "type": "message_start",
                "message": {
                    "id": self.message_id,
                    "type": "message",
                    "role": "assistant",
                    "content": [],
                    "model": self.model,
                    "stop_reason": None,
                    "stop_sequence": None,
                    "usage": {"input_tokens": 0, "output_tokens": 0},
                },
            }),
            sse_event("content_block_start", {
                "type": "content_block_start",
                "index": TEXT_BLOCK_INDEX,
                "content_block": {"type": "text", "text": ""},
            }),
            sse_event("ping", {"type": "ping"}),
        ))

    def text_delta(self, text: str) -> bytes:
        if not text:
            return b""
        return sse_event("content_block_delta", {
            "type": "content_block_delta",
            "index": TEXT_BLOCK_INDEX,
            "delta": {"type": "text_delta", "text": text},
        })

    def tool_call_start(self, tool_call_id: str, name: str) -> bytes:
        if tool_call_id in self._tool_blocks:
            return b""

        self._tool_counter += 1
        block = _ToolBlock(index=TEXT_BLOCK_INDEX + self._tool_counter, name=name)
        self._tool_blocks[tool_call_id] = block
        return sse_event("content_block_start", {
            "type": "content_block_start",
            "index": block.index,
            "content_block": {"type": "tool_use", "id": tool_call_id, "name": name, "input": {}},
        })

    def tool_call_chunk(self, tool_call_id: str, fragment: str) -> bytes:
        block = self._tool_blocks.get(tool_call_id)
        if block is None or not fragment:
            return b""

        block.arguments += fragment
        if not _is_complete_json(block.arguments):
            return b""
        return sse_event("content_block_delta", {
            "type": "content_block_delta",
            "index": block.index,
            "delta": {"type": "input_json_delta", "partial_json": block.arguments},
        })

    def set_usage(self, input_tokens: int, output_tokens: int) -> None:
        self._input_tokens = input_tokens
        self._output_tokens = output_tokens

    def set_stop_reason(self, reason: Optional[str]) -> None:
        self._stop_reason = map_anthropic_stop_reason(reason)

    def final(self) -> bytes:
        """关闭全部内容块，输出 message_delta 与 message_stop"""
        if self._finished:
            return b""
        self._finished = True

        frames = [sse_event("content_block_stop", {"type": "content_block_stop", "index": TEXT_BLOCK_INDEX})]
        for block in self._tool_blocks.values():
            frames.append(sse_event("content_block_stop", {"type": "content_block_stop", "index": block.index}))

        stop_reason = "tool_use" if self.has_tool_calls else (self._stop_reason or "end_turn")
        frames.append(sse_event("message_delta", {
            "type": "message_delta",
            "delta": {"stop_reason": stop_reason, "stop_sequence": None},
            "usage": {"input_tokens": self._input_tokens, "output_tokens": self._output_tokens},
        }))
        frames.append(sse_event("message_stop", {"type": "message_stop"}))
        return b"".join(frames)

    def error(self, error_type: str, message: str) -> bytes:
        """流内错误帧；之后连接直接关闭，不再有 message_stop"""
        self._finished = True
        return sse_event("error", {"type": "error", "error": {"type": error_type, "message": message}})


# ==================== 非流式响应 ====================

def _parse_tool_input(arguments: str) -> Dict[str, Any]:
    if not arguments:
        return {}
    try:
        parsed = json.loads(arguments)
    except ValueError:
        return {"raw": arguments}
    return parsed if isinstance(parsed, dict) else {"raw": arguments}


def build_anthropic_message(
    model: str,
    text: str,
    tool_calls: Sequence[Tuple[str, str, str]] = (),
    stop_reason: Optional[str] = None,
    input_tokens: int = 0,
    output_tokens: int = 0,
    message_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    构建非流式 message 响应

    Args:
        tool_calls: (id, name, 累积参数文本) 按首次出现排序
        stop_reason: 规范词汇的结束原因
    """
    content: List[Dict[str, Any]] = []
    if text:
        content.append({"type": "text", "text": text})
    for tool_call_id, name, arguments in tool_calls:
        content.append({
            "type": "tool_use",
            "id": tool_call_id,
            "name": name,
            "input": _parse_tool_input(arguments),
        })
    if not content:
        content.append({"type": "text", "text": ""})

    return {
        "id": message_id or new_message_id(),
        "type": "message",
        "role": "assistant",
        "model": model,
        "content": content,
        "stop_reason": "tool_use" if tool_calls else (map_anthropic_stop_reason(stop_reason) or "end_turn"),
        "stop_sequence": None,
        "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
    }
