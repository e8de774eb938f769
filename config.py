"""
Configuration getters for the LLM protocol gateway.
Centralizes all settings so the web layer and the gateway read them the same way.

- 启动时从 YAML 配置文件加载一次到内存
- 修改配置文件后调用 reload_config() 重新加载
- 优先级：环境变量 > 配置文件 > 默认值
"""

import os
from typing import Any, Dict, Optional

from llmgate.gateway.config_loader import load_config_file

# 全局配置缓存
_config_cache: Dict[str, Any] = {}
_config_initialized = False

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3456
DEFAULT_MAX_CONCURRENT_STREAMS = 10

_TRUE_VALUES = ("true", "1", "yes", "on")


# ====================== 配置系统 ======================

def get_config_file_path() -> Optional[str]:
    """配置文件路径，环境变量 GATEWAY_CONFIG_FILE 可覆盖"""
    return os.getenv("GATEWAY_CONFIG_FILE") or None


def init_config():
    """初始化配置缓存（启动时调用一次）"""
    global _config_cache, _config_initialized

    if _config_initialized:
        return

    _config_cache = load_config_file(get_config_file_path())
    _config_initialized = True


def reload_config():
    """重新加载配置（修改配置文件后调用）"""
    global _config_cache, _config_initialized

    _config_cache = load_config_file(get_config_file_path())
    _config_initialized = True


def get_config_value(key: str, default: Any = None, env_var: Optional[str] = None) -> Any:
    """Get configuration value with priority: ENV > config file > default."""
    if not _config_initialized:
        init_config()

    if env_var and os.getenv(env_var):
        return os.getenv(env_var)

    value = _config_cache.get(key)
    if value is not None:
        return value

    return default


def _get_int(key: str, default: int, env_var: str) -> int:
    env_value = os.getenv(env_var)
    if env_value:
        try:
            return int(env_value)
        except ValueError:
            pass
    return int(get_config_value(key, default))


def _get_bool(key: str, default: bool, env_var: str) -> bool:
    env_value = os.getenv(env_var)
    if env_value:
        return env_value.lower() in _TRUE_VALUES
    value = get_config_value(key, default)
    if isinstance(value, str):
        return value.lower() in _TRUE_VALUES
    return bool(value)


def _get_optional_str(key: str, env_var: str) -> Optional[str]:
    value = get_config_value(key, None, env_var)
    if value is None or value == "":
        return None
    return str(value)


# Server Configuration
def get_server_host() -> str:
    """
    Get server host setting.

    Environment variable: HOST
    Config file key: host
    Default: 0.0.0.0
    """
    return str(get_config_value("host", DEFAULT_HOST, "HOST"))


def get_server_port() -> int:
    """
    Get server port setting.

    Environment variable: PORT
    Config file key: port
    Default: 3456
    """
    return _get_int("port", DEFAULT_PORT, "PORT")


def get_api_key() -> Optional[str]:
    """
    Get the gateway API key. When unset, requests are not authenticated.

    Environment variable: GATEWAY_API_KEY
    Config file key: api_key
    """
    return _get_optional_str("api_key", "GATEWAY_API_KEY")


# Routing Configuration
def get_default_provider_id() -> Optional[str]:
    """Environment variable: DEFAULT_PROVIDER_ID, config file key: default_provider_id"""
    return _get_optional_str("default_provider_id", "DEFAULT_PROVIDER_ID")


def get_default_model_id() -> Optional[str]:
    """Environment variable: DEFAULT_MODEL_ID, config file key: default_model_id"""
    return _get_optional_str("default_model_id", "DEFAULT_MODEL_ID")


def get_model_aliases() -> Dict[str, str]:
    """
    Extra model name mappings, ``name -> "provider/model"``.

    Config file key: model_aliases (no environment variable)
    """
    aliases = get_config_value("model_aliases", {})
    if not isinstance(aliases, dict):
        return {}
    return {str(name): str(target) for name, target in aliases.items()}


# Stream Configuration
def get_max_concurrent_streams() -> int:
    """
    Get the ceiling on simultaneously active streaming sessions.

    Environment variable: MAX_CONCURRENT_STREAMS
    Config file key: max_concurrent_streams
    Default: 10
    """
    return _get_int("max_concurrent_streams", DEFAULT_MAX_CONCURRENT_STREAMS, "MAX_CONCURRENT_STREAMS")


def get_echo_provider_enabled() -> bool:
    """
    Register the built-in echo provider for diagnostics.

    Environment variable: ECHO_PROVIDER_ENABLED
    Config file key: echo_provider_enabled
    Default: False
    """
    return _get_bool("echo_provider_enabled", False, "ECHO_PROVIDER_ENABLED")
