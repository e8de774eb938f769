"""
Gateway 配置模块

网关运行时配置快照，以及两种线协议各自的请求默认值。
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

__all__ = [
    # 请求默认值
    "ANTHROPIC_DEFAULT_TEMPERATURE",
    "OPENAI_DEFAULT_TEMPERATURE",
    "OPENAI_DEFAULT_MAX_TOKENS",
    # 服务信息
    "SERVICE_NAME",
    "SERVICE_VERSION",
    "SERVICE_DESCRIPTION",
    # 配置
    "GatewayConfig",
]


# ==================== 请求默认值 ====================

ANTHROPIC_DEFAULT_TEMPERATURE = 0.6
OPENAI_DEFAULT_TEMPERATURE = 0.7
OPENAI_DEFAULT_MAX_TOKENS = 4096


# ==================== 服务信息 ====================

SERVICE_NAME = "llmgate"
SERVICE_VERSION = "1.0.0"
SERVICE_DESCRIPTION = (
    "Streaming gateway that serves the Anthropic Messages and OpenAI Chat Completions "
    "protocols on top of pluggable LLM providers"
)


# ==================== 运行时配置 ====================

@dataclass
class GatewayConfig:
    """
    网关运行时配置

    Attributes:
        host: 监听地址
        port: 监听端口
        api_key: 访问密钥，None 表示不校验
        default_provider_id: 默认 provider
        default_model_id: 默认模型
        max_concurrent_streams: 同时活跃的流上限
        echo_provider_enabled: 是否注册内置 echo provider
        model_aliases: 额外的模型名映射 name -> "provider/model"
    """
    host: str = "0.0.0.0"
    port: int = 3456
    api_key: Optional[str] = None
    default_provider_id: Optional[str] = None
    default_model_id: Optional[str] = None
    max_concurrent_streams: int = 10
    echo_provider_enabled: bool = False
    model_aliases: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls) -> "GatewayConfig":
        """从根目录 config 模块（环境变量 > 配置文件 > 默认值）构建"""
        import config as settings

        return cls(
            host=settings.get_server_host(),
            port=settings.get_server_port(),
            api_key=settings.get_api_key(),
            default_provider_id=settings.get_default_provider_id(),
            default_model_id=settings.get_default_model_id(),
            max_concurrent_streams=settings.get_max_concurrent_streams(),
            echo_provider_enabled=settings.get_echo_provider_enabled(),
            model_aliases=settings.get_model_aliases(),
        )

    @property
    def api_key_configured(self) -> bool:
        return bool(self.api_key)

    def update(self, **changes: Any) -> "GatewayConfig":
        """
        运行时修改配置

        Raises:
            ValueError: 未知字段
        """
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown config fields: {', '.join(sorted(unknown))}")
        for name, value in changes.items():
            setattr(self, name, value)
        return self

    def public_view(self) -> Dict[str, Any]:
        """健康检查输出用，不包含密钥本身"""
        return {
            "port": self.port,
            "host": self.host,
            "defaultProviderId": self.default_provider_id,
            "defaultModelId": self.default_model_id,
            "apiKeyConfigured": self.api_key_configured,
        }
