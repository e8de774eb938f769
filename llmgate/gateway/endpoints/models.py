"""
Gateway 模型列表端点

聚合所有已启用 provider 的模型列表；单个 provider 失败时跳过它，返回其余结果。
"""

import time
from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from log import log

from ..context import GatewayContext, get_gateway

router = APIRouter()

__all__ = ["router", "collect_models"]


async def collect_models(gateway: GatewayContext) -> List[Dict[str, Any]]:
    created = int(time.time())
    models: List[Dict[str, Any]] = []

    for provider in gateway.providers.get_enabled():
        info = provider.info
        try:
            provider_models = await provider.list_models()
        except Exception as e:
            log.warning(f"Failed to get models from {info.id}: {e}", tag="GATEWAY")
            continue

        for model in provider_models:
            models.append({
                "id": f"{info.id}/{model.id}",
                "object": "model",
                "created": created,
                "owned_by": info.display_name,
            })

    return models


# ==================== 模型列表端点 ====================

@router.get("/v1/models")
async def list_models(gateway: GatewayContext = Depends(get_gateway)):
    """获取所有已启用 provider 的模型列表"""
    models = await collect_models(gateway)
    log.debug(f"Listed {len(models)} models", tag="GATEWAY")
    return {"object": "list", "data": models}
