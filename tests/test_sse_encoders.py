"""
SSE 编码器测试

- Anthropic: 帧顺序、内容块编号、工具参数 JSON 完整性门控
- OpenAI: chunk 结构、参数片段原样转发、[DONE] 结尾
- encode_event: 带参数的工具调用 start 事件
- 非流式响应构建
"""

from llmgate.gateway.events import TOOL_CALL_START, ResponseEvent
from llmgate.gateway.proxy import encode_event
from llmgate.gateway.sse.anthropic import AnthropicStreamEncoder, build_anthropic_message
from llmgate.gateway.sse.openai import DONE_FRAME, OpenAIStreamEncoder, build_openai_completion
from llmgate.gateway.sse.parser import DONE, SSEParser, parse_sse_line, parse_sse_stream


def decode(frames: bytes):
    return parse_sse_stream(frames.decode("utf-8"))


class TestAnthropicStreamEncoder:

    def test_initial_frames(self):
        encoder = AnthropicStreamEncoder("claude-x", message_id="msg_1")
        events = decode(encoder.initial())
        assert [name for name, _ in events] == ["message_start", "content_block_start", "ping"]
        message = events[0][1]["message"]
        assert message["id"] == "msg_1"
        assert message["model"] == "claude-x"
        assert message["usage"] == {"input_tokens": 0, "output_tokens": 0}
        assert events[1][1]["index"] == 0
        assert events[1][1]["content_block"] == {"type": "text", "text": ""}

    def test_text_delta(self):
        encoder = AnthropicStreamEncoder("claude-x")
        (name, data), = decode(encoder.text_delta("Hi"))
        assert name == "content_block_delta"
        assert data["index"] == 0
        assert data["delta"] == {"type": "text_delta", "text": "Hi"}
        assert encoder.text_delta("") == b""

    def test_tool_arguments_gated_until_valid_json(self):
        encoder = AnthropicStreamEncoder("claude-x")
        encoder.tool_call_start("call-1", "f")

        assert encoder.tool_call_chunk("call-1", '{"a":') == b""
        (name, data), = decode(encoder.tool_call_chunk("call-1", "1}"))
        assert name == "content_block_delta"
        assert data["index"] == 1
        assert data["delta"] == {"type": "input_json_delta", "partial_json": '{"a":1}'}

    def test_tool_block_indexes_monotonic(self):
        encoder = AnthropicStreamEncoder("claude-x")
        starts = [decode(encoder.tool_call_start(f"call-{i}", "f"))[0][1] for i in range(3)]
        assert [s["index"] for s in starts] == [1, 2, 3]
        assert starts[0]["content_block"] == {"type": "tool_use", "id": "call-0", "name": "f", "input": {}}

    def test_duplicate_start_and_unknown_chunk_ignored(self):
        encoder = AnthropicStreamEncoder("claude-x")
        encoder.tool_call_start("call-1", "f")
        assert encoder.tool_call_start("call-1", "f") == b""
        assert encoder.tool_call_chunk("nope", "{}") == b""
        assert encoder.tool_block_index("call-1") == 1
        assert encoder.tool_block_index("nope") is None

    def test_final_with_tools(self):
        encoder = AnthropicStreamEncoder("claude-x")
        encoder.tool_call_start("call-1", "f")
        encoder.tool_call_start("call-2", "g")
        encoder.set_stop_reason("complete")
        encoder.set_usage(10, 4)

        events = decode(encoder.final())
        assert [name for name, _ in events] == [
            "content_block_stop", "content_block_stop", "content_block_stop", "message_delta", "message_stop",
        ]
        assert [data["index"] for _, data in events[:3]] == [0, 1, 2]
        assert events[3][1]["delta"]["stop_reason"] == "tool_use"
        assert events[3][1]["usage"] == {"input_tokens": 10, "output_tokens": 4}

    def test_final_stop_reason_mapping(self):
        encoder = AnthropicStreamEncoder("claude-x")
        encoder.set_stop_reason("length")
        events = decode(encoder.final())
        assert events[-2][1]["delta"]["stop_reason"] == "max_tokens"

    def test_final_default_end_turn_and_idempotent(self):
        encoder = AnthropicStreamEncoder("claude-x")
        events = decode(encoder.final())
        assert events[-2][1]["delta"]["stop_reason"] == "end_turn"
        assert encoder.finished
        assert encoder.final() == b""

    def test_error_frame(self):
        encoder = AnthropicStreamEncoder("claude-x")
        (name, data), = decode(encoder.error("api_error", "boom"))
        assert name == "error"
        assert data == {"type": "error", "error": {"type": "api_error", "message": "boom"}}
        assert encoder.final() == b""


class TestOpenAIStreamEncoder:

    def test_initial_chunk(self):
        encoder = OpenAIStreamEncoder("gpt-x", completion_id="chatcmpl-1", created=1700000000)
        (_, chunk), = decode(encoder.initial())
        assert chunk["id"] == "chatcmpl-1"
        assert chunk["object"] == "chat.completion.chunk"
        assert chunk["created"] == 1700000000
        assert chunk["choices"] == [{"index": 0, "delta": {"role": "assistant", "content": ""}, "finish_reason": None}]

    def test_tool_fragments_forwarded_verbatim(self):
        encoder = OpenAIStreamEncoder("gpt-x")
        (_, start), = decode(encoder.tool_call_start("call-1", "f"))
        assert start["choices"][0]["delta"]["tool_calls"] == [
            {"index": 0, "id": "call-1", "type": "function", "function": {"name": "f", "arguments": ""}},
        ]

        frames = encoder.tool_call_chunk("call-1", '{"a":') + encoder.tool_call_chunk("call-1", "1}")
        fragments = [
            chunk["choices"][0]["delta"]["tool_calls"][0]["function"]["arguments"]
            for _, chunk in decode(frames)
        ]
        assert fragments == ['{"a":', "1}"]

    def test_tool_indexes_start_at_zero(self):
        encoder = OpenAIStreamEncoder("gpt-x")
        encoder.tool_call_start("call-1", "f")
        (_, second), = decode(encoder.tool_call_start("call-2", "g"))
        assert second["choices"][0]["delta"]["tool_calls"][0]["index"] == 1

    def test_final_chunk_and_done(self):
        encoder = OpenAIStreamEncoder("gpt-x")
        encoder.set_stop_reason("max_tokens")
        encoder.set_usage(7, 5)
        frames = encoder.final()
        assert frames.endswith(DONE_FRAME)

        (_, chunk), (_, done) = decode(frames)
        assert chunk["choices"][0] == {"index": 0, "delta": {}, "finish_reason": "length"}
        assert chunk["usage"] == {"prompt_tokens": 7, "completion_tokens": 5, "total_tokens": 12}
        assert done is DONE

    def test_final_finish_reason_tool_calls(self):
        encoder = OpenAIStreamEncoder("gpt-x")
        encoder.tool_call_start("call-1", "f")
        (_, chunk), _ = decode(encoder.final())
        assert chunk["choices"][0]["finish_reason"] == "tool_calls"

    def test_error_then_done(self):
        encoder = OpenAIStreamEncoder("gpt-x")
        (_, error), (_, done) = decode(encoder.error("api_error", "boom"))
        assert error == {"error": {"message": "boom", "type": "api_error", "param": None, "code": None}}
        assert done is DONE
        assert encoder.final() == b""


class TestNonStreamingBuilders:

    def test_anthropic_message(self):
        message = build_anthropic_message(
            "claude-x", "Checking.", [("call-1", "f", '{"a":1}'), ("call-2", "g", "not json")],
            stop_reason="complete", input_tokens=3, output_tokens=2, message_id="msg_1",
        )
        assert message["id"] == "msg_1"
        assert message["stop_reason"] == "tool_use"
        assert message["content"] == [
            {"type": "text", "text": "Checking."},
            {"type": "tool_use", "id": "call-1", "name": "f", "input": {"a": 1}},
            {"type": "tool_use", "id": "call-2", "name": "g", "input": {"raw": "not json"}},
        ]
        assert message["usage"] == {"input_tokens": 3, "output_tokens": 2}

    def test_anthropic_empty_message_has_text_block(self):
        message = build_anthropic_message("claude-x", "")
        assert message["content"] == [{"type": "text", "text": ""}]
        assert message["stop_reason"] == "end_turn"

    def test_openai_completion(self):
        completion = build_openai_completion(
            "gpt-x", "", [("call-1", "f", '{"a":1}')], prompt_tokens=3, completion_tokens=2,
        )
        choice = completion["choices"][0]
        assert completion["object"] == "chat.completion"
        assert choice["message"]["content"] is None
        assert choice["message"]["tool_calls"][0]["function"] == {"name": "f", "arguments": '{"a":1}'}
        assert choice["finish_reason"] == "tool_calls"
        assert completion["usage"]["total_tokens"] == 5

    def test_openai_completion_text(self):
        completion = build_openai_completion("gpt-x", "Hello", stop_reason="complete")
        assert completion["choices"][0]["message"] == {"role": "assistant", "content": "Hello"}
        assert completion["choices"][0]["finish_reason"] == "stop"


class TestSSEParser:

    def test_split_across_chunks(self):
        parser = SSEParser()
        assert parser.feed('event: ping\ndata: {"type"') == []
        assert parser.feed(': "ping"}\n\n') == [("ping", {"type": "ping"})]

    def test_done_line(self):
        assert parse_sse_line("data: [DONE]") is DONE
        assert parse_sse_line("event: ping") is None


class TestEncodeEvent:

    def test_start_with_arguments_forwards_first_chunk(self):
        """start 事件自带的参数紧跟在工具块开始之后输出"""
        encoder = OpenAIStreamEncoder("gpt-x")
        event = ResponseEvent(
            tool_call=TOOL_CALL_START, tool_call_id="call-1", tool_call_name="get_weather",
            tool_call_params='{"city": "Paris"}',
        )
        deltas = [data["choices"][0]["delta"] for _, data in decode(encode_event(encoder, event))]
        assert deltas == [
            {"tool_calls": [{"index": 0, "id": "call-1", "type": "function",
                             "function": {"name": "get_weather", "arguments": ""}}]},
            {"tool_calls": [{"index": 0, "function": {"arguments": '{"city": "Paris"}'}}]},
        ]

    def test_start_without_arguments(self):
        encoder = OpenAIStreamEncoder("gpt-x")
        event = ResponseEvent(tool_call=TOOL_CALL_START, tool_call_id="call-1", tool_call_name="get_weather")
        assert len(decode(encode_event(encoder, event))) == 1
