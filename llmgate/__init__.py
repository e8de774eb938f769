"""
llmgate - 流式 LLM 协议网关

同时接受 Anthropic Messages 与 OpenAI Chat Completions 两种线协议，
归一化后路由到 provider，再把 provider 的事件流编码回调用方的协议。
"""

__version__ = "1.0.0"
