"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import RequestIDMiddleware
from api.routes import payments as payments_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from infrastructure.adapters.user_directory import UnitOfWorkUserDirectory
from infrastructure.cache import (
    InMemoryRateLimitStore,
    RedisRateLimitStore,
    init_redis_client,
    shutdown_redis_client,
)
from infrastructure.database import create_tables, dispose_engine
from infrastructure.external.payments.registry import ProviderRegistry, initialize_providers
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

# 初始化日志：在入口处显式配置
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时创建数据库表（仅开发环境）。生产应使用 Alembic 迁移
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    else:
        logger.info(
            "database_migrations_required",
            message="No auto-create in production, use Alembic migrations (alembic upgrade head)",
        )

    # 限流计数存储：多实例部署必须配置 Redis
    if settings.redis.url:
        client = await init_redis_client()
        app.state.rate_limit_store = RedisRateLimitStore(client, namespace=settings.redis.namespace)
        logger.info("rate_limit_store_selected", store="redis")
    else:
        app.state.rate_limit_store = InMemoryRateLimitStore()
        logger.warning("rate_limit_store_selected", store="memory", message="REDIS__URL not set, single instance only")

    registry = ProviderRegistry()
    await initialize_providers(registry, user_directory=UnitOfWorkUserDirectory(SQLAlchemyUnitOfWork))
    app.state.provider_registry = registry

    yield

    # 关闭时的清理工作
    await registry.aclose()
    if settings.redis.url:
        await shutdown_redis_client()
        logger.info("redis_client_shutdown")
    await dispose_engine()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="多渠道支付对账服务",
)

# 添加中间件（注意顺序：从下往上执行）
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册全局异常处理器
register_exception_handlers(app)

# 注册路由
app.include_router(payments_routes.router, prefix="/api/v1")


@app.get("/", tags=["Root"])
async def root():
    """API根路径"""
    return success_response(
        data={"name": settings.PROJECT_NAME, "version": settings.VERSION, "docs": "/docs"},
        message="Welcome",
    )


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """健康检查端点"""
    registry = getattr(request.app.state, "provider_registry", None)
    return success_response(
        data={
            "status": "healthy",
            "providers_enabled": registry.enabled_count if registry else 0,
        },
        message="OK",
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
