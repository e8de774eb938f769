"""
网关上下文

一个应用实例对应一个 GatewayContext，持有配置、provider 注册中心、流管理器和权限关联器。
端点通过 request.app.state.gateway 取得它。
"""

from typing import Optional

from fastapi import Request

from log import log

from .backends.interface import LLMProvider
from .backends.registry import ProviderRegistry
from .config import GatewayConfig
from .errors import InvalidRequestError, NotFoundError
from .permissions import PendingPermission, PermissionCorrelator
from .routing import ModelRoute, build_model_table, resolve_model, unmapped_model_message
from .streams import StreamLifecycleManager

__all__ = ["GatewayContext", "get_gateway"]


class GatewayContext:
    """网关各组件的唯一持有者"""

    def __init__(self, config: Optional[GatewayConfig] = None, providers: Optional[ProviderRegistry] = None):
        self.config = config or GatewayConfig()
        self.providers = providers or ProviderRegistry()
        self.permissions = PermissionCorrelator()
        self.streams = StreamLifecycleManager(
            max_concurrent_streams=self.config.max_concurrent_streams,
            permissions=self.permissions,
        )
        self.model_table = build_model_table(self.config.model_aliases)

        if self.config.echo_provider_enabled:
            from .backends.echo import EchoProvider
            self.providers.register(EchoProvider())
            log.info("Echo provider registered", tag="CONFIG")

    @classmethod
    def from_settings(cls) -> "GatewayContext":
        return cls(GatewayConfig.from_settings())

    # ==================== 路由 ====================

    def resolve_route(self, model: str) -> ModelRoute:
        """
        Raises:
            InvalidRequestError: 无法映射
        """
        route = resolve_model(
            model,
            self.config.default_provider_id,
            self.config.default_model_id,
            self.model_table,
        )
        if route is None:
            raise InvalidRequestError(unmapped_model_message(model))
        return route

    def resolve_provider(self, route: ModelRoute) -> LLMProvider:
        """
        Raises:
            InvalidRequestError: provider 不存在或未启用
        """
        provider = self.providers.get(route.provider_id)
        if provider is None:
            raise InvalidRequestError(f"Provider not found: {route.provider_id}")
        if not provider.info.enabled:
            raise InvalidRequestError(f"Provider is disabled: {route.provider_id}")
        return provider

    # ==================== 运行时操作 ====================

    async def set_current_provider(self, provider_id: str, stop_timeout: Optional[float] = None) -> LLMProvider:
        """
        切换当前 provider；切换前取消全部活跃流

        Raises:
            NotFoundError: provider 不存在
        """
        if self.providers.get(provider_id) is None:
            raise NotFoundError(f"Provider not found: {provider_id}")

        stopped = await self.streams.stop_all_streams(timeout=stop_timeout)
        provider = self.providers.select_current(provider_id)
        log.info(f"Current provider set to {provider_id} ({stopped} stream(s) stopped)", tag="CONFIG")
        return provider

    def resolve_permission(self, request_id: str, granted: bool) -> PendingPermission:
        return self.permissions.resolve(request_id, granted)

    def set_max_concurrent_streams(self, value: int) -> None:
        self.streams.max_concurrent_streams = value
        self.config.update(max_concurrent_streams=self.streams.max_concurrent_streams)

    def update_config(self, **changes) -> GatewayConfig:
        """运行时修改配置，并同步到依赖配置的组件"""
        self.config.update(**changes)
        if "model_aliases" in changes:
            self.model_table = build_model_table(self.config.model_aliases)
        if "max_concurrent_streams" in changes:
            self.streams.max_concurrent_streams = self.config.max_concurrent_streams
        return self.config


def get_gateway(request: Request) -> GatewayContext:
    """FastAPI 依赖：取得当前应用的 GatewayContext"""
    return request.app.state.gateway
