"""
Lab Portal 控制平面应用入口模块 (Lab Portal Control Plane Application Entry Module)

负责 FastAPI 应用的完整生命周期管理：建表、后台任务启动与停止、路由注册和健康检查。

Main application entry point of the Lab Portal control plane, responsible for the
FastAPI application lifecycle: table creation, background task start/stop, route
registration and health checks.

主要功能 (Main Features):
- 数据库表自动创建 (Automatic database table creation)
- 每日动作剪枝和可选的僵死动作回收 (Daily action pruning and optional stale action reclaim)
- 健康检查 (Health checks)
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.core.config import settings
from app.core.database import Base, async_session, engine
from app.core.exceptions import register_exception_handlers
from app.core.redis import close_redis, get_redis
# 导入所有模型以确保 SQLAlchemy 表注册 (Import all models to ensure SQLAlchemy table registration)
from app.models import Action, Host, ManagedService  # noqa: F401
from app.routers import actions, agent, auth, control, hosts, managed_services
from app.tasks.action_prune_task import ActionPruneScheduler
from app.tasks.stale_action_task import stale_action_loop

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理器 (Application Lifecycle Manager)

    启动时建表并启动后台任务，关闭时按相反顺序停止任务并释放连接。
    """
    # 自动创建数据库表结构 (Automatically create database table structure)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # 每日动作剪枝 (Daily action prune)
    prune_scheduler = None
    if settings.action_prune_enabled:
        prune_scheduler = ActionPruneScheduler(async_session, get_redis)
        prune_scheduler.start()

    # 僵死 running 动作回收，仅在配置超时后启用 (Stale running reclaim, only when configured)
    stale_stop = asyncio.Event()
    stale_task = None
    if settings.stale_action_timeout_minutes > 0:
        stale_task = asyncio.create_task(
            stale_action_loop(settings.stale_action_timeout_minutes, stale_stop)
        )

    app.state.prune_scheduler = prune_scheduler

    yield

    # 关闭阶段 (Shutdown Phase)
    if prune_scheduler is not None:
        await prune_scheduler.stop()
    if stale_task is not None:
        stale_stop.set()
        await stale_task

    await close_redis()
    await engine.dispose()


# 创建 FastAPI 应用实例 (Create FastAPI application instance)
app = FastAPI(
    title="Lab Portal",
    description="Host/service control plane | 主机与服务控制平面",
    version="0.1.0",
    lifespan=lifespan,
)

# 注册全局异常处理器 (Register global exception handlers)
register_exception_handlers(app)

is_production = settings.environment.lower() == "production"
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if not is_production else [],
    allow_credentials=not is_production,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# 注册所有 API 路由模块 (Register all API router modules)
app.include_router(auth.router)  # 管理员认证 (Admin authentication)
app.include_router(agent.router)  # Agent 心跳、队列、上报 (Agent heartbeat, queue, report)
app.include_router(hosts.router)  # 主机管理 (Host management)
app.include_router(managed_services.router)  # 受管服务 (Managed services)
app.include_router(actions.router)  # 控制动作 (Control actions)
app.include_router(control.router)  # 诊断与剪枝 (Diagnostics and pruning)


@app.get("/health")
@app.get("/api/v1/health")
async def health():
    """
    健康检查接口 (Health Check Endpoint)

    验证数据库和 Redis 的连通性，任一组件异常时返回 degraded。
    """
    checks = {"api": "ok"}

    # 数据库连通性检查 (Database connectivity check)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception:
        logger.warning("Health check: database unreachable", exc_info=True)
        checks["database"] = "error"

    # Redis 连通性检查 (Redis connectivity check)
    try:
        r = await get_redis()
        await r.ping()
        checks["redis"] = "ok"
    except Exception:
        logger.warning("Health check: redis unreachable", exc_info=True)
        checks["redis"] = "error"

    status = "ok" if all(v == "ok" for v in checks.values()) else "degraded"

    return {
        "status": status,
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
