"""
Gateway Provider 模块

- interface.py: LLMProvider Protocol 与请求/上下文数据类
- registry.py: ProviderRegistry
- echo.py: 内置 echo provider
"""

from .interface import CompletionRequest, LLMProvider, ModelInfo, ProviderInfo, StreamContext
from .registry import ProviderRegistry

__all__ = [
    "CompletionRequest",
    "LLMProvider",
    "ModelInfo",
    "ProviderInfo",
    "StreamContext",
    "ProviderRegistry",
    "EchoProvider",
]


def __getattr__(name: str):
    if name == "EchoProvider":
        from .echo import EchoProvider
        return EchoProvider
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
