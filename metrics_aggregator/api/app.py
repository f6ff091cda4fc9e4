"""
FastAPI 应用配置

配置 CORS 与路由，并统一处理请求校验错误。
"""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import get_config
from .routers import clients, health, metrics

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """
    创建 FastAPI 应用实例

    配置：
    - CORS 中间件
    - 请求校验错误处理
    - API 路由
    """
    config = get_config()

    app = FastAPI(
        title="Metrics Aggregator",
        description="服务器实时指标聚合 API",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        # 原始输入可能是 inf/NaN，无法序列化为 JSON，响应中不回显
        errors = [
            {key: value for key, value in error.items() if key != "input"}
            for error in exc.errors()
        ]
        logger.debug(f"Rejected request to {request.url.path}: {len(errors)} validation errors")
        return JSONResponse(
            status_code=422,
            content={"detail": jsonable_encoder(errors)},
        )

    app.include_router(metrics.router)
    app.include_router(clients.router)
    app.include_router(health.router)

    return app
