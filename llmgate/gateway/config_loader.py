"""
Gateway 配置加载器

从 YAML 配置文件加载网关设置，支持 ${VAR:default} 形式的环境变量替换。
"""

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "expand_env_vars",
    "load_config_file",
]

DEFAULT_CONFIG_PATH = Path("config") / "gateway.yaml"

_ENV_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*?)(?::([^}]*))?\}')


def _coerce(result: str) -> Any:
    """把替换后的字符串转换为布尔、数字或 JSON 列表"""
    lowered = result.lower()
    if lowered in ("true", "yes"):
        return True
    if lowered in ("false", "no"):
        return False

    number = float if "." in result else int
    try:
        return number(result)
    except ValueError:
        pass

    if result[:1] == "[" and result[-1:] == "]":
        try:
            return json.loads(result)
        except ValueError:
            return result
    return result


def _lookup(match: "re.Match") -> str:
    name, fallback = match.group(1), match.group(2)
    return os.environ.get(name, fallback or "")


def _expand_string(text: str) -> Any:
    # 只有发生过替换的字符串才做类型转换
    if _ENV_PATTERN.search(text) is None:
        return text
    return _coerce(_ENV_PATTERN.sub(_lookup, text))


def expand_env_vars(value: Any) -> Any:
    """
    递归展开 ${VAR_NAME:default_value} 占位符

    YAML 本身写出的字面量保持原样。

    Examples:
        >>> os.environ["GATEWAY_PORT"] = "8080"
        >>> expand_env_vars({"port": "${GATEWAY_PORT:7861}"})
        {'port': 8080}
        >>> expand_env_vars(["${UNSET_PROVIDER:echo}"])
        ['echo']
    """
    if isinstance(value, dict):
        return {key: expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    if isinstance(value, str):
        return _expand_string(value)
    return value


def load_config_file(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    读取网关 YAML 配置文件

    Args:
        config_path: 配置文件路径（默认为 config/gateway.yaml）

    Returns:
        展开环境变量之后的配置字典；文件不存在时返回空字典

    Raises:
        ValueError: 顶层不是字典
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    if not path.exists():
        return {}

    loaded = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"配置文件格式错误：顶层必须是字典 ({path})")
    return expand_env_vars(loaded)
