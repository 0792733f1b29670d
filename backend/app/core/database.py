"""
数据库：引擎与会话工厂由进程入口（FastAPI lifespan / Celery 任务）显式创建并持有，
请求通过 get_db 依赖从 app.state.database 取会话，不使用首次访问时初始化的全局单例。
"""
import logging
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """异步数据库句柄：持有 engine 与 session 工厂"""

    def __init__(self, url: str, echo: bool = False, **engine_kwargs):
        if not url:
            raise ValueError("DATABASE_URL 未配置")
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, echo=echo, pool_pre_ping=True, **engine_kwargs)
        # expire_on_commit=False：提交后仍可读取已加载属性，避免异步下的隐式懒加载
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_all(self) -> None:
        """按模型建表（不做迁移）"""
        # 确保所有模型已注册到 Base.metadata
        import app.models  # noqa: F401
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        await self.engine.dispose()


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """FastAPI 依赖：每个请求一个会话，请求结束自动关闭"""
    database: Database = request.app.state.database
    async with database.session_factory() as session:
        yield session
