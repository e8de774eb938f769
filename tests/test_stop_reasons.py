"""
结束原因映射测试
"""

import pytest

from llmgate.gateway.sse.stop_reasons import map_anthropic_stop_reason, map_openai_finish_reason


class TestAnthropicStopReason:

    @pytest.mark.parametrize("reason,expected", [
        ("complete", "end_turn"),
        ("stop", "end_turn"),
        ("end_turn", "end_turn"),
        ("max_tokens", "max_tokens"),
        ("length", "max_tokens"),
        ("tool_calls", "tool_use"),
        ("function_call", "tool_use"),
        ("tool_use", "tool_use"),
        ("stop_sequence", "stop_sequence"),
        ("content_filter", "end_turn"),
    ])
    def test_mapping(self, reason, expected):
        assert map_anthropic_stop_reason(reason) == expected

    def test_unset(self):
        assert map_anthropic_stop_reason(None) is None
        assert map_anthropic_stop_reason("") is None


class TestOpenAIFinishReason:

    @pytest.mark.parametrize("reason,expected", [
        ("complete", "stop"),
        ("end_turn", "stop"),
        ("max_tokens", "length"),
        ("length", "length"),
        ("tool_use", "tool_calls"),
        ("function_call", "tool_calls"),
        ("something_new", "stop"),
    ])
    def test_mapping(self, reason, expected):
        assert map_openai_finish_reason(reason) == expected

    def test_tool_calls_override(self):
        """发生过工具调用时忽略上报的原因"""
        assert map_openai_finish_reason("max_tokens", has_tool_calls=True) == "tool_calls"
        assert map_openai_finish_reason(None, has_tool_calls=True) == "tool_calls"

    def test_unset(self):
        assert map_openai_finish_reason(None) is None
