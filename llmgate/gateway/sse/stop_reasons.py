"""
结束原因映射

规范词汇（provider 上报或网关推断）到两种线协议各自的词汇。
"""

from typing import Optional

__all__ = [
    "ANTHROPIC_STOP_REASONS",
    "OPENAI_FINISH_REASONS",
    "map_anthropic_stop_reason",
    "map_openai_finish_reason",
]

ANTHROPIC_STOP_REASONS = ("end_turn", "max_tokens", "stop_sequence", "tool_use")
OPENAI_FINISH_REASONS = ("stop", "length", "tool_calls")

_END_TURN = {"complete", "stop", "end_turn"}
_MAX_TOKENS = {"max_tokens", "length"}
_TOOL_USE = {"tool_use", "tool_calls", "function_call"}


def map_anthropic_stop_reason(reason: Optional[str]) -> Optional[str]:
    """未设置时返回 None，无法识别时返回 end_turn"""
    if not reason:
        return None
    if reason in _END_TURN:
        return "end_turn"
    if reason in _MAX_TOKENS:
        return "max_tokens"
    if reason in _TOOL_USE:
        return "tool_use"
    if reason == "stop_sequence":
        return "stop_sequence"
    return "end_turn"


def map_openai_finish_reason(reason: Optional[str], has_tool_calls: bool = False) -> Optional[str]:
    """
    发生过工具调用时一律为 tool_calls；未设置时返回 None，无法识别时返回 stop
    """
    if has_tool_calls:
        return "tool_calls"
    if not reason:
        return None
    if reason in _END_TURN:
        return "stop"
    if reason in _MAX_TOKENS:
        return "length"
    if reason in _TOOL_USE:
        return "tool_calls"
    return "stop"
