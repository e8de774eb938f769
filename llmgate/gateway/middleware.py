"""
GatewayHTTPMiddleware - FastAPI 中间件

对所有请求生效：
1. 为每个请求设置日志 request_id
2. 所有响应附带 CORS 头；OPTIONS 预检直接返回 204
3. 配置了 API key 时校验 Authorization: Bearer <key> 或 X-Api-Key
4. 路由中未被处理的异常记录日志后转为 500 api_error
"""

import secrets
import traceback
import uuid
from typing import Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from log import clear_request_id, log, set_request_id

from .errors import INTERNAL_ERROR_MESSAGE, AuthenticationError, error_response, wire_format_for_path

__all__ = ["CORS_HEADERS", "GatewayHTTPMiddleware", "extract_api_key"]

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Api-Key, anthropic-version",
}


def extract_api_key(request: Request) -> Optional[str]:
    """Bearer token 优先，其次 X-Api-Key"""
    authorization = request.headers.get("authorization", "")
    if authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return request.headers.get("x-api-key")


class GatewayHTTPMiddleware(BaseHTTPMiddleware):
    """
    网关 HTTP 中间件

    API key 每次从 app.state.gateway.config 读取，运行时修改立即生效。
    """

    def _check_api_key(self, request: Request) -> None:
        """
        Raises:
            AuthenticationError: 配置了 API key 且请求未携带或不匹配
        """
        expected = request.app.state.gateway.config.api_key
        if not expected:
            return

        provided = extract_api_key(request) or ""
        if not secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
            raise AuthenticationError("Invalid API key")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        token = set_request_id(uuid.uuid4().hex[:8])
        try:
            if request.method == "OPTIONS":
                response = Response(status_code=204)
            else:
                try:
                    self._check_api_key(request)
                except AuthenticationError as e:
                    log.warning(f"Rejected request to {request.url.path}: {e.message}", tag="GATEWAY")
                    response = error_response(
                        wire_format_for_path(request.url.path), e.status_code, e.error_type, e.message,
                    )
                else:
                    response = await self._call_route(request, call_next)

            response.headers.update(CORS_HEADERS)
            return response
        finally:
            clear_request_id(token)

    async def _call_route(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            log.error(f"Unhandled error on {request.method} {request.url.path}: {e}", tag="GATEWAY")
            log.debug(traceback.format_exc(), tag="GATEWAY")
            return error_response(
                wire_format_for_path(request.url.path), 500, "api_error", INTERNAL_ERROR_MESSAGE,
            )
