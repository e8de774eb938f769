"""
Gateway 模型路由模块

把客户端传入的模型字符串解析为 (provider_id, model_id)。

解析优先级（先命中者生效）：
1. 同时配置了默认 provider 和默认模型时，无条件使用默认值
2. 含 "/" 时按第一个 "/" 拆成两段，两段都不能为空
3. 含 "," 时同样拆分，并去掉两侧空白
4. 在已知模型映射表中精确查找
5. 配置了默认 provider 时，与原始模型字符串配对
6. 否则无法映射
"""

from typing import Dict, Mapping, NamedTuple, Optional

from log import log

__all__ = [
    "ModelRoute",
    "KNOWN_MODEL_MAPPINGS",
    "build_model_table",
    "resolve_model",
    "unmapped_model_message",
]


class ModelRoute(NamedTuple):
    provider_id: str
    model_id: str

    def __str__(self) -> str:
        return f"{self.provider_id}/{self.model_id}"


# 已知模型名 -> (provider, model)
KNOWN_MODEL_MAPPINGS: Dict[str, ModelRoute] = {
    "claude-3-5-sonnet-20241022": ModelRoute("anthropic", "claude-3-5-sonnet-20241022"),
    "claude-3-5-haiku-20241022": ModelRoute("anthropic", "claude-3-5-haiku-20241022"),
    "claude-3-opus-20240229": ModelRoute("anthropic", "claude-3-opus-20240229"),
    "claude-3-sonnet-20240229": ModelRoute("anthropic", "claude-3-sonnet-20240229"),
    "claude-3-haiku-20240307": ModelRoute("anthropic", "claude-3-haiku-20240307"),
    "claude-sonnet-4-20250514": ModelRoute("anthropic", "claude-sonnet-4-20250514"),
    "claude-opus-4-20250514": ModelRoute("anthropic", "claude-opus-4-20250514"),
}


def _split_pair(model: str, separator: str, strip: bool = False) -> Optional[ModelRoute]:
    provider_id, _, model_id = model.partition(separator)
    if strip:
        provider_id, model_id = provider_id.strip(), model_id.strip()
    if provider_id and model_id:
        return ModelRoute(provider_id, model_id)
    return None


def build_model_table(aliases: Optional[Mapping[str, str]] = None) -> Dict[str, ModelRoute]:
    """
    合并内置映射表与配置文件中的 model_aliases

    Args:
        aliases: 模型名 -> "provider/model"

    Raises:
        ValueError: 别名目标不是 provider/model 形式
    """
    table = dict(KNOWN_MODEL_MAPPINGS)
    for name, target in (aliases or {}).items():
        route = _split_pair(target, "/")
        if route is None:
            raise ValueError(f"Invalid model alias target for '{name}': {target!r}")
        table[name] = route
    return table


def resolve_model(
    model: str,
    default_provider_id: Optional[str] = None,
    default_model_id: Optional[str] = None,
    model_table: Optional[Mapping[str, ModelRoute]] = None,
) -> Optional[ModelRoute]:
    """
    解析模型字符串

    Args:
        model: 客户端请求中的 model 字段
        default_provider_id: 默认 provider
        default_model_id: 默认模型
        model_table: 已知模型映射表，默认为 KNOWN_MODEL_MAPPINGS

    Returns:
        ModelRoute，无法映射时返回 None
    """
    if default_provider_id and default_model_id:
        route = ModelRoute(default_provider_id, default_model_id)
        log.route(f"Model {model} -> {route} (configured default)", tag="ROUTER")
        return route

    if "/" in model:
        route = _split_pair(model, "/")
        if route:
            log.route(f"Model {model} -> {route}", tag="ROUTER")
            return route

    if "," in model:
        route = _split_pair(model, ",", strip=True)
        if route:
            log.route(f"Model {model} -> {route}", tag="ROUTER")
            return route

    table = KNOWN_MODEL_MAPPINGS if model_table is None else model_table
    route = table.get(model)
    if route:
        log.route(f"Model {model} -> {route} (known model)", tag="ROUTER")
        return route

    if default_provider_id:
        route = ModelRoute(default_provider_id, model)
        log.fallback(f"Model {model} -> {route} (default provider)", tag="ROUTER")
        return route

    log.warning(f"Unable to map model: {model}", tag="ROUTER")
    return None


def unmapped_model_message(model: str) -> str:
    return (
        f'Unable to map model: {model}. '
        f'Use format "providerId/modelId" or configure default provider.'
    )
