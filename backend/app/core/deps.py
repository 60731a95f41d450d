"""
FastAPI 依赖项模块 (FastAPI Dependencies Module)

提供管理员侧路由的鉴权依赖：拒绝 Agent 令牌、校验管理员 JWT、校验定时任务共享密钥。
只存在一种管理员身份，没有分级角色。

Provides the admin-side authorization dependencies: agent token rejection, admin JWT
verification and the cron shared-secret check. There is exactly one admin identity.
"""
import hmac
import logging

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import ForbiddenError, UnauthorizedError
from app.core.principal import AdminPrincipal
from app.core.security import decode_token, hash_agent_token
from app.models.host import Host

logger = logging.getLogger(__name__)

# Bearer Token 认证方案 (Bearer Token Authentication Scheme)
security = HTTPBearer(auto_error=False)


async def reject_agent_tokens(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> None:
    """
    拒绝 Agent 令牌访问管理员路由 (Reject agent tokens on admin routes)

    Bearer 的哈希命中任一主机令牌时直接返回 403，先于其他任何校验。
    """
    if credentials is None or not credentials.credentials:
        return
    token_hash = hash_agent_token(credentials.credentials)
    result = await db.execute(select(Host.id).where(Host.agent_token_hash == token_hash))
    if result.scalar_one_or_none() is not None:
        logger.warning("Agent token presented on admin route")
        raise ForbiddenError("Agent 令牌不能访问管理接口 (Agent tokens cannot access admin routes)")


async def get_admin_principal(
    _: None = Depends(reject_agent_tokens),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> AdminPrincipal:
    """
    从请求头中提取并验证管理员 JWT (Extract and validate the admin JWT)

    令牌必须是有效的访问令牌，且 subject 恰好等于配置的管理员身份。
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("缺少认证令牌 (Missing credentials)")

    payload = decode_token(credentials.credentials)
    if payload is None or payload.get("type") != "access":
        raise UnauthorizedError("令牌无效 (Invalid token)")

    subject = payload.get("sub")
    if subject != settings.admin_email:
        raise UnauthorizedError("令牌无效 (Invalid token)")

    return AdminPrincipal(email=subject)


async def require_cron_secret(
    admin: AdminPrincipal = Depends(get_admin_principal),
    x_cron_secret: str | None = Header(default=None),
) -> AdminPrincipal:
    """要求管理员身份且 x-cron-secret 与配置一致；未配置密钥时接口整体禁用。"""
    if not settings.admin_cron_secret:
        raise ForbiddenError("定时任务密钥未配置 (Cron secret is not configured)")
    if not x_cron_secret or not hmac.compare_digest(x_cron_secret, settings.admin_cron_secret):
        raise ForbiddenError("定时任务密钥无效 (Invalid cron secret)")
    return admin
