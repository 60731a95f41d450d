"""
Lab Portal 测试基础配置

提供 SQLite in-memory 异步数据库、mock Redis、FastAPI 测试客户端、管理员和 Agent 凭证等通用 fixture。
所有测试使用隔离的 SQLite 数据库，不依赖外部 PostgreSQL/Redis。
"""
import fnmatch
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# 必须在导入 app 之前设置环境变量，避免真实连接
import os
os.environ["POSTGRES_HOST"] = "localhost"
os.environ["POSTGRES_PORT"] = "5432"
os.environ["REDIS_HOST"] = "localhost"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-for-labportal-tests"
os.environ["ADMIN_EMAIL"] = "admin@local"
os.environ["ADMIN_PASSWORD"] = "admin-pass"
os.environ["ADMIN_PASSWORD_HASH"] = ""
os.environ["ADMIN_CRON_SECRET"] = "cron-secret"
os.environ["ENABLE_CONTROL_PLANE"] = "true"

from app.core.config import settings
from app.core.database import Base, get_db
from app.core.security import create_access_token, generate_agent_token
import app.core.redis as redis_module
from app.core.redis import get_redis
from app.models.host import Host
from app.models.managed_service import ManagedService


# ── SQLite 异步引擎 ──────────────────────────────────────────────────
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# 所有会话共享同一个内存连接
engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
TestingSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# ── Mock Redis ────────────────────────────────────────────────────────
class FakeRedis:
    """内存级 Redis 模拟，支持 get/set(nx)/delete 等基本操作。"""
    def __init__(self):
        self._store: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False, **kwargs):
        if nx and key in self._store:
            return None
        self._store[key] = value
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for k in keys:
            if self._store.pop(k, None) is not None:
                removed += 1
        return removed

    async def exists(self, key: str) -> int:
        return 1 if key in self._store else 0

    async def keys(self, pattern: str = "*") -> list[str]:
        return [k for k in self._store if fnmatch.fnmatch(k, pattern)]

    async def eval(self, script: str, numkeys: int, *keys_and_args) -> int:
        """只模拟锁释放脚本：值匹配时删除键。"""
        keys, args = keys_and_args[:numkeys], keys_and_args[numkeys:]
        if self._store.get(keys[0]) == args[0]:
            del self._store[keys[0]]
            return 1
        return 0

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass


fake_redis = FakeRedis()


# ── Fixtures ──────────────────────────────────────────────────────────

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """每个测试前创建所有表，测试后清空。"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    fake_redis._store.clear()


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """提供一个干净的数据库会话。"""
    async with TestingSessionLocal() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """提供配置好依赖覆盖的异步 HTTP 测试客户端。"""
    from app.main import app

    async def override_get_db():
        yield db_session

    async def override_get_redis():
        return fake_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    # Patch redis_client directly so any code calling get_redis() gets fake_redis
    original_redis_client = redis_module.redis_client
    redis_module.redis_client = fake_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    redis_module.redis_client = original_redis_client


@pytest.fixture
def redis():
    return fake_redis


@pytest.fixture
def admin_token() -> str:
    """管理员的 JWT access token。"""
    return create_access_token(settings.admin_email)


@pytest.fixture
def auth_headers(admin_token: str) -> dict:
    """管理员认证头。"""
    return {"Authorization": f"Bearer {admin_token}"}


async def make_host(db: AsyncSession, name: str = "lab-01") -> tuple[Host, str]:
    """创建主机，返回 (主机, 明文令牌)。"""
    token = generate_agent_token()
    host = Host(name=name, address="10.0.0.5", agent_token_hash=token.hash, agent_token_prefix=token.prefix)
    db.add(host)
    await db.commit()
    await db.refresh(host)
    return host, token.plaintext


async def make_service(
    db: AsyncSession,
    host: Host,
    unit_name: str = "nginx.service",
    allow_start: bool = True,
    allow_stop: bool = True,
    allow_restart: bool = True,
) -> ManagedService:
    service = ManagedService(
        host_id=host.id,
        unit_name=unit_name,
        display_name=unit_name.split(".")[0],
        allow_start=allow_start,
        allow_stop=allow_stop,
        allow_restart=allow_restart,
    )
    db.add(service)
    await db.commit()
    await db.refresh(service)
    return service


@pytest_asyncio.fixture
async def host_with_token(db_session: AsyncSession) -> tuple[Host, str]:
    return await make_host(db_session)


@pytest_asyncio.fixture
async def host(host_with_token) -> Host:
    return host_with_token[0]


@pytest.fixture
def agent_headers(host_with_token) -> dict:
    """Agent 认证头。"""
    return {"Authorization": f"Bearer {host_with_token[1]}"}


@pytest_asyncio.fixture
async def service(db_session: AsyncSession, host: Host) -> ManagedService:
    return await make_service(db_session, host)


@pytest.fixture
def host_factory(db_session: AsyncSession):
    async def _make(name: str = "lab-02") -> tuple[Host, str]:
        return await make_host(db_session, name)
    return _make


@pytest.fixture
def service_factory(db_session: AsyncSession):
    async def _make(host: Host, unit_name: str = "nginx.service", **flags) -> ManagedService:
        return await make_service(db_session, host, unit_name, **flags)
    return _make


@pytest.fixture
def session_factory():
    """独立会话工厂，用于模拟并发请求或后台任务。"""
    return TestingSessionLocal
