"""
OpenAI Chat Completions 流式编码器

每帧为 data: <chunk json>\\n\\n，流末尾为 data: [DONE]\\n\\n。
工具参数片段不做缓冲，逐个原样转发。
"""

import json
import time
import uuid
from typing import Any, Dict, Optional, Sequence, Tuple

from .stop_reasons import map_openai_finish_reason

__all__ = [
    "DONE_FRAME",
    "OpenAIStreamEncoder",
    "build_openai_completion",
    "new_completion_id",
    "sse_data",
]

DONE_FRAME = b"data: [DONE]\n\n"


def sse_data(data: Dict[str, Any]) -> bytes:
    payload = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
    return f"data: {payload}\n\n".encode("utf-8")


def new_completion_id() -> str:
    return f"chatcmpl-{uuid.uuid4().hex}"


class OpenAIStreamEncoder:
    """
    单个客户端连接的 OpenAI 流编码器

    所有方法返回待写出的字节，没有输出时返回 b""。
    """

    def __init__(self, model: str, completion_id: Optional[str] = None, created: Optional[int] = None):
        self.model = model
        self.completion_id = completion_id or new_completion_id()
        self.created = created if created is not None else int(time.time())
        self._tool_indexes: Dict[str, int] = {}
        self._stop_reason: Optional[str] = None
        self._prompt_tokens = 0
        self._completion_tokens = 0
        self._finished = False

    @property
    def has_tool_calls(self) -> bool:
        return bool(self._tool_indexes)

    @property
    def finished(self) -> bool:
        return self._finished

    def _chunk(self, delta: Dict[str, Any], finish_reason: Optional[str] = None,
               usage: Optional[Dict[str, int]] = None) -> bytes:
        chunk: Dict[str, Any] = {
            "id": self.completion_id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": self.model,
            "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
        }
        if usage is not None:
            chunk["usage"] = usage
        return sse_data(chunk)

    def initial(self) -> bytes:
        return self._chunk({"role": "assistant", "content": ""})

    def text_delta(self, text: str) -> bytes:
        if not text:
            return b""
        return self._chunk({"content": text})

    def tool_call_start(self, tool_call_id: str, name: str) -> bytes:
        if tool_call_id in self._tool_indexes:
            return b""

        index = len(self._tool_indexes)
        self._tool_indexes[tool_call_id] = index
        return self._chunk({"tool_calls": [{
            "index": index,
            "id": tool_call_id,
            "type": "function",
            "function": {"name": name, "arguments": ""},
        }]})

    def tool_call_chunk(self, tool_call_id: str, fragment: str) -> bytes:
        index = self._tool_indexes.get(tool_call_id)
        if index is None or not fragment:
            return b""
        return self._chunk({"tool_calls": [{"index": index, "function": {"arguments": fragment}}]})

    def set_usage(self, prompt_tokens: int, completion_tokens: int) -> None:
        self._prompt_tokens = prompt_tokens
        self._completion_tokens = completion_tokens

    def set_stop_reason(self, reason: Optional[str]) -> None:
        self._stop_reason = reason

    def final(self) -> bytes:
        """带 finish_reason 和 usage 的最后一个 chunk，紧接 [DONE]"""
        if self._finished:
            return b""
        self._finished = True

        finish_reason = map_openai_finish_reason(self._stop_reason, self.has_tool_calls) or "stop"
        usage = {
            "prompt_tokens": self._prompt_tokens,
            "completion_tokens": self._completion_tokens,
            "total_tokens": self._prompt_tokens + self._completion_tokens,
        }
        return self._chunk({}, finish_reason=finish_reason, usage=usage) + DONE_FRAME

    def error(self, error_type: str, message: str) -> bytes:
        """流内错误：一个 error 对象后紧接 [DONE]"""
        self._finished = True
        payload = {"error": {"message": message, "type": error_type, "param": None, "code": None}}
        return sse_data(payload) + DONE_FRAME


# ==================== 非流式响应 ====================

def build_openai_completion(
    model: str,
    text: str,
    tool_calls: Sequence[Tuple[str, str, str]] = (),
    stop_reason: Optional[str] = None,
    prompt_tokens: int = 0,
    completion_tokens: int = 0,
    completion_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    构建非流式 chat.completion 响应

    Args:
        tool_calls: (id, name, 累积参数文本) 按首次出现排序
        stop_reason: 规范词汇的结束原因
    """
    message: Dict[str, Any] = {"role": "assistant", "content": text or None}
    if tool_calls:
        message["tool_calls"] = [
            {"id": tool_call_id, "type": "function", "function": {"name": name, "arguments": arguments}}
            for tool_call_id, name, arguments in tool_calls
        ]

    return {
        "id": completion_id or new_completion_id(),
        "object": "chat.completion",
        "created": int(time.time()),
        "model": model,
        "choices": [{
            "index": 0,
            "message": message,
            "finish_reason": map_openai_finish_reason(stop_reason, bool(tool_calls)) or "stop",
        }],
        "usage": {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
    }
