"""
数据库连接模块 (Database Connection Module)

基于 SQLAlchemy 2.0 异步模式创建数据库引擎和会话管理，为控制平面提供动作队列的持久化支持。
所有跨请求协调都依赖数据库的事务保证，而不是进程内锁。

Creates database engine and session management based on SQLAlchemy 2.0 async mode.
All cross-request coordination relies on the store's transactional guarantees, not in-process locks.
"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.core.config import settings

# 创建异步数据库引擎 (Create Async Database Engine)
engine = create_async_engine(
    settings.database_url,
    echo=False  # 生产环境关闭 SQL 日志输出 (Disable SQL logging in production)
)

# 创建异步会话工厂 (Create Async Session Factory)
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False  # 提交后不过期对象，便于访问已保存的数据 (Don't expire objects after commit)
)


class Base(DeclarativeBase):
    """ORM 模型基类 (ORM Model Base Class)"""
    pass


async def get_db() -> AsyncSession:
    """
    FastAPI 依赖项：获取数据库会话 (FastAPI Dependency: Get Database Session)

    使用异步上下文管理器确保会话在请求结束后正确关闭，防止连接泄漏。

    Yields:
        AsyncSession: 异步数据库会话实例 (Async database session instance)
    """
    async with async_session() as session:
        yield session
