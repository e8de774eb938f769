"""
Main Web Integration - builds the gateway application and starts the server
组装网关路由、中间件与异常处理，并启动主服务
"""

# 加载 .env 文件中的环境变量（必须在其他导入之前）
from dotenv import load_dotenv
load_dotenv()

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_server_host, get_server_port
from log import log

from llmgate.gateway.config import SERVICE_DESCRIPTION, SERVICE_NAME, SERVICE_VERSION
from llmgate.gateway.context import GatewayContext
from llmgate.gateway.endpoints import create_gateway_router
from llmgate.gateway.errors import GatewayError, error_response, wire_format_for_path
from llmgate.gateway.middleware import GatewayHTTPMiddleware

SHUTDOWN_STREAM_TIMEOUT = 5.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    gateway: GatewayContext = app.state.gateway
    log.info(
        f"Gateway started with {len(gateway.providers.get_all())} provider(s), "
        f"max {gateway.streams.max_concurrent_streams} concurrent streams",
        tag="GATEWAY",
    )

    yield

    stopped = await gateway.streams.stop_all_streams(timeout=SHUTDOWN_STREAM_TIMEOUT)
    log.info(f"Gateway stopped ({stopped} stream(s) cancelled)", tag="GATEWAY")


# ==================== 异常处理 ====================

async def handle_gateway_error(request: Request, exc: GatewayError):
    if exc.status_code >= 500:
        log.error(f"{request.method} {request.url.path} failed: {exc.message}", tag="GATEWAY")
    else:
        log.debug(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}", tag="GATEWAY")
    return error_response(wire_format_for_path(request.url.path), exc.status_code, exc.error_type, exc.message)


async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    fmt = wire_format_for_path(request.url.path)
    if exc.status_code in (404, 405):
        return error_response(fmt, 404, "not_found", f"Endpoint not found: {request.url.path}")
    if exc.status_code >= 500:
        return error_response(fmt, exc.status_code, "api_error", str(exc.detail))
    return error_response(fmt, exc.status_code, "invalid_request_error", str(exc.detail))


async def handle_validation_error(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"
    return error_response(wire_format_for_path(request.url.path), 400, "invalid_request_error", message)


def create_app(gateway: Optional[GatewayContext] = None) -> FastAPI:
    """
    创建网关应用

    Args:
        gateway: 网关上下文；为空时按环境变量和配置文件构建
    """
    app = FastAPI(
        title=SERVICE_NAME,
        description=SERVICE_DESCRIPTION,
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )
    app.state.gateway = gateway or GatewayContext.from_settings()

    app.add_middleware(GatewayHTTPMiddleware)

    app.add_exception_handler(GatewayError, handle_gateway_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)

    app.include_router(create_gateway_router())
    return app


# 导出给其他模块使用
__all__ = ["create_app", "main", "run"]


async def main():
    """异步主启动函数"""
    from hypercorn.asyncio import serve
    from hypercorn.config import Config

    port = get_server_port()
    host = get_server_host()
    app = create_app()

    log.info("=" * 60)
    log.info(f"Starting {SERVICE_NAME} {SERVICE_VERSION}")
    log.info("=" * 60)
    log.info("API endpoints:")
    log.info(f"   Anthropic Messages: http://127.0.0.1:{port}/v1/messages")
    log.info(f"   OpenAI Chat Completions: http://127.0.0.1:{port}/v1/chat/completions")
    log.info(f"   Models: http://127.0.0.1:{port}/v1/models")
    log.info("=" * 60)

    config = Config()
    config.bind = [f"{host}:{port}"]
    config.accesslog = "-"
    config.errorlog = "-"
    config.loglevel = "INFO"

    # 流式响应可能持续较长时间
    config.keep_alive_timeout = 300
    config.read_timeout = 300

    await serve(app, config)


def run():
    """命令行入口"""
    asyncio.run(main())


if __name__ == "__main__":
    run()
