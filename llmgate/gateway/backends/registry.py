"""
Gateway Provider 注册中心

管理 provider 的注册、注销、查询，以及当前选中的 provider。
每个网关实例持有自己的注册中心。
"""

import threading
from typing import Dict, List, Optional, TYPE_CHECKING

from ..errors import NotFoundError

if TYPE_CHECKING:
    from .interface import LLMProvider

__all__ = ["ProviderRegistry"]


class ProviderRegistry:
    """
    Provider 注册中心

    所有修改都在同一把锁内完成。
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._providers: Dict[str, "LLMProvider"] = {}
        self._current_id: Optional[str] = None

    def register(self, provider: "LLMProvider") -> None:
        """
        注册 provider，同 id 的旧实例会被替换

        Args:
            provider: provider 实例
        """
        with self._lock:
            self._providers[provider.info.id] = provider

    def unregister(self, provider_id: str) -> None:
        with self._lock:
            self._providers.pop(provider_id, None)
            if self._current_id == provider_id:
                self._current_id = None

    def get(self, provider_id: str) -> Optional["LLMProvider"]:
        """
        获取 provider

        Returns:
            provider 实例或 None
        """
        with self._lock:
            return self._providers.get(provider_id)

    def get_all(self) -> List["LLMProvider"]:
        with self._lock:
            return list(self._providers.values())

    def get_enabled(self) -> List["LLMProvider"]:
        return [p for p in self.get_all() if p.info.enabled]

    @property
    def current_id(self) -> Optional[str]:
        return self._current_id

    def select_current(self, provider_id: str) -> "LLMProvider":
        """
        设置当前 provider

        Raises:
            NotFoundError: provider 不存在
        """
        with self._lock:
            provider = self._providers.get(provider_id)
            if provider is None:
                raise NotFoundError(f"Provider not found: {provider_id}")
            self._current_id = provider_id
            return provider

