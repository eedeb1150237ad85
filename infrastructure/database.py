"""
数据库引擎与会话工厂

DATABASE__URL 可以写成普通的 postgresql:// 或 sqlite://，这里统一换成异步驱动。
"""
from typing import Any

from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.config import settings
from infrastructure.models import Base

_ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def _async_url(database_url: str) -> URL:
    url = make_url(database_url)
    if "+" in url.drivername:
        return url
    if url.drivername not in _ASYNC_DRIVERS:
        raise ValueError(f"Unsupported database driver: {url.drivername}. Use an async driver in DATABASE__URL")
    return url.set(drivername=_ASYNC_DRIVERS[url.drivername])


def _engine_options(url: URL) -> dict[str, Any]:
    if url.get_backend_name() != "sqlite":
        return {"pool_pre_ping": True}
    options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    # 内存库必须共享同一个连接，否则每个会话看到的都是空库
    if url.database in (None, "", ":memory:"):
        options["poolclass"] = StaticPool
    return options


_url = _async_url(settings.database.url)

engine = create_async_engine(_url, echo=settings.database.echo, **_engine_options(_url))

AsyncSessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)


async def create_tables() -> None:
    """开发环境建表；生产环境使用 Alembic 迁移"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    await engine.dispose()
