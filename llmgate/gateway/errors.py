"""
网关错误分类与两种线协议的错误信封

- 客户端错误 400 invalid_request_error
- 认证失败 401 authentication_error
- 未知端点/资源 404 not_found
- 并发上限 429 rate_limit_error
- 内部或上游错误 500 api_error
"""

from enum import Enum
from typing import Any, Dict

from fastapi.responses import JSONResponse

__all__ = [
    "GatewayError",
    "InvalidRequestError",
    "AuthenticationError",
    "NotFoundError",
    "StreamNotFoundError",
    "PermissionNotFoundError",
    "CapacityError",
    "UpstreamError",
    "WireFormat",
    "INTERNAL_ERROR_MESSAGE",
    "wire_format_for_path",
    "anthropic_error_body",
    "openai_error_body",
    "error_body",
    "error_response",
]

INTERNAL_ERROR_MESSAGE = "An internal error occurred"


# ==================== 异常层级 ====================

class GatewayError(Exception):
    """网关错误基类，携带 HTTP 状态码和线协议错误类型"""

    status_code = 500
    error_type = "api_error"

    def __init__(self, message: str, *, error_type: str = None, status_code: int = None):
        super().__init__(message)
        self.message = message
        if error_type is not None:
            self.error_type = error_type
        if status_code is not None:
            self.status_code = status_code


class InvalidRequestError(GatewayError):
    status_code = 400
    error_type = "invalid_request_error"


class AuthenticationError(GatewayError):
    status_code = 401
    error_type = "authentication_error"


class NotFoundError(GatewayError):
    status_code = 404
    error_type = "not_found"


class StreamNotFoundError(NotFoundError):
    def __init__(self, event_id: str):
        super().__init__(f"Stream not found: {event_id}")
        self.event_id = event_id


class PermissionNotFoundError(NotFoundError):
    def __init__(self, request_id: str):
        super().__init__(f"Permission request not found: {request_id}")
        self.request_id = request_id


class CapacityError(GatewayError):
    status_code = 429
    error_type = "rate_limit_error"


class UpstreamError(GatewayError):
    status_code = 500
    error_type = "api_error"


# ==================== 错误信封 ====================

class WireFormat(str, Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


def wire_format_for_path(path: str) -> WireFormat:
    """/v1/chat/completions 使用 OpenAI 信封，其它路径一律 Anthropic 信封"""
    if path.rstrip("/").endswith("/chat/completions"):
        return WireFormat.OPENAI
    return WireFormat.ANTHROPIC


def anthropic_error_body(error_type: str, message: str) -> Dict[str, Any]:
    return {"type": "error", "error": {"type": error_type, "message": message}}


def openai_error_body(error_type: str, message: str) -> Dict[str, Any]:
    return {"error": {"message": message, "type": error_type, "param": None, "code": None}}


def error_body(fmt: WireFormat, error_type: str, message: str) -> Dict[str, Any]:
    if fmt == WireFormat.OPENAI:
        return openai_error_body(error_type, message)
    return anthropic_error_body(error_type, message)


def error_response(fmt: WireFormat, status_code: int, error_type: str, message: str,
                   headers: Dict[str, str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_body(fmt, error_type, message),
        headers=headers,
    )
