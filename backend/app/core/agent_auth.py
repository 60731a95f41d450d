"""
Agent 令牌认证模块

验证主机 Agent 请求携带的 Bearer Token，返回作用域限定在对应主机的 AgentPrincipal。
管理员 JWT 永远不能满足 Agent 路由。
"""
import logging

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import ForbiddenError, UnauthorizedError
from app.core.principal import AgentPrincipal
from app.core.security import decode_token, hash_agent_token
from app.models.host import Host

logger = logging.getLogger(__name__)

# Agent 专用 Bearer Token 认证方案，缺失时由本模块返回 401
agent_security = HTTPBearer(auto_error=False)


async def verify_agent_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(agent_security),
    db: AsyncSession = Depends(get_db),
) -> AgentPrincipal:
    """验证 Agent Bearer Token，返回对应主机的 AgentPrincipal。"""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("缺少 Agent 令牌 (Missing agent token)")
    raw_token = credentials.credentials

    # 管理员会话令牌不能用于 Agent 路由
    payload = decode_token(raw_token)
    if payload is not None and payload.get("type") == "access":
        logger.warning("Admin credential presented on agent route")
        raise ForbiddenError("管理员凭证不能访问 Agent 接口 (Admin credentials cannot access agent routes)")

    # 计算 SHA-256 哈希与数据库存储的哈希比对
    token_hash = hash_agent_token(raw_token)
    result = await db.execute(select(Host).where(Host.agent_token_hash == token_hash))
    host = result.scalar_one_or_none()
    if host is None:
        raise UnauthorizedError("Agent 令牌无效 (Invalid agent token)")

    return AgentPrincipal(host_id=host.id, host_name=host.name)
