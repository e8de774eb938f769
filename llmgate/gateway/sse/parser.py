"""
SSE 帧解析器

把网关输出的 SSE 字节流拆回 (event, data) 事件，供客户端工具和测试使用。
"""

import json
from typing import Any, Dict, List, Optional, Tuple

__all__ = [
    "DONE",
    "parse_sse_line",
    "SSEParser",
    "parse_sse_stream",
]

DONE = {"done": True}

SSEEvent = Tuple[Optional[str], Any]


def parse_sse_line(line: str) -> Optional[Dict[str, Any]]:
    """
    解析单行 data: 数据

    Returns:
        解析后的 JSON 对象；[DONE] 返回 DONE；不是有效数据行时返回 None
    """
    line = line.strip()
    if not line.startswith("data:"):
        return None

    json_str = line[5:].strip()
    if json_str == "[DONE]":
        return DONE

    try:
        return json.loads(json_str)
    except json.JSONDecodeError:
        return None


class SSEParser:
    """
    SSE 流解析器

    处理分块的 SSE 数据，支持跨块缓冲；以空行作为事件分隔。
    """

    def __init__(self):
        self.buffer = ""

    def feed(self, chunk: str) -> List[SSEEvent]:
        self.buffer += chunk
        events: List[SSEEvent] = []

        while "\n\n" in self.buffer:
            raw_event, self.buffer = self.buffer.split("\n\n", 1)
            event = self._parse_event(raw_event)
            if event is not None:
                events.append(event)

        return events

    def flush(self) -> List[SSEEvent]:
        """处理缓冲区中剩余的不完整事件"""
        remaining, self.buffer = self.buffer, ""
        event = self._parse_event(remaining)
        return [event] if event is not None else []

    @staticmethod
    def _parse_event(raw_event: str) -> Optional[SSEEvent]:
        event_name: Optional[str] = None
        data = None
        for line in raw_event.split("\n"):
            if line.startswith("event:"):
                event_name = line[6:].strip()
            elif line.startswith("data:"):
                data = parse_sse_line(line)
        if event_name is None and data is None:
            return None
        return event_name, data


def parse_sse_stream(payload: str) -> List[SSEEvent]:
    """一次性解析完整的 SSE 文本"""
    parser = SSEParser()
    return parser.feed(payload) + parser.flush()
