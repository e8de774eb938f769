"""
Gateway SSE 编码模块

- anthropic.py: Anthropic Messages 流式编码器与非流式响应构建
- openai.py: OpenAI Chat Completions 流式编码器与非流式响应构建
- stop_reasons.py: 结束原因映射
- parser.py: SSE 帧解析
"""

__all__ = [
    "AnthropicStreamEncoder",
    "OpenAIStreamEncoder",
    "build_anthropic_message",
    "build_openai_completion",
    "map_anthropic_stop_reason",
    "map_openai_finish_reason",
    "parse_sse_line",
    "SSEParser",
]


# 延迟导入避免循环依赖
def __getattr__(name: str):
    if name in ("AnthropicStreamEncoder", "build_anthropic_message"):
        from . import anthropic
        return getattr(anthropic, name)
    if name in ("OpenAIStreamEncoder", "build_openai_completion"):
        from . import openai
        return getattr(openai, name)
    if name in ("map_anthropic_stop_reason", "map_openai_finish_reason"):
        from . import stop_reasons
        return getattr(stop_reasons, name)
    if name in ("parse_sse_line", "SSEParser"):
        from . import parser
        return getattr(parser, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
