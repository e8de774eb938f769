"""
Gateway 模块 - 协议网关核心

目录结构:
- config.py: 网关配置 (GatewayConfig, 协议默认值)
- config_loader.py: YAML 配置文件加载与环境变量展开
- errors.py: 错误类型与两种协议的错误信封
- messages.py / events.py: 规范消息与 provider 事件
- types.py: 两种线协议的请求模型 (pydantic)
- normalization.py: 请求校验与归一化
- routing.py: 模型路由 (resolve_model)
- streams.py: 流生命周期管理 (准入、取消、注销)
- permissions.py: 工具权限关联器
- proxy.py: 事件流到线协议的管线
- context.py: GatewayContext，持有以上组件
- middleware.py: CORS / 鉴权 / 异常兜底
- endpoints/: API 端点定义
- sse/: SSE 编码器与结束原因映射
- backends/: provider 接口、注册中心与内置 echo provider
"""

from typing import TYPE_CHECKING

__version__ = "1.0.0"

# 延迟导入，避免循环依赖
if TYPE_CHECKING:
    from .context import GatewayContext
    from .errors import GatewayError
    from .routing import ModelRoute, resolve_model
    from .streams import StreamLifecycleManager
    from .permissions import PermissionCorrelator
    from .normalization import NormalizedRequest

__all__ = [
    # 上下文
    "GatewayContext",
    # 错误
    "GatewayError",
    # 路由
    "ModelRoute",
    "resolve_model",
    # 流与权限
    "StreamLifecycleManager",
    "PermissionCorrelator",
    # 规范化
    "NormalizedRequest",
    # 路由器工厂
    "create_gateway_router",
]

_LAZY_IMPORTS = {
    "GatewayContext": "context",
    "GatewayError": "errors",
    "ModelRoute": "routing",
    "resolve_model": "routing",
    "StreamLifecycleManager": "streams",
    "PermissionCorrelator": "permissions",
    "NormalizedRequest": "normalization",
    "create_gateway_router": "endpoints",
}


def __getattr__(name: str):
    module_name = _LAZY_IMPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    import importlib
    module = importlib.import_module(f".{module_name}", __name__)
    return getattr(module, name)
