"""
管理员认证路由模块 (Admin Authentication Router)

功能说明：单一管理员身份的登录与会话查询
核心职责：
  - 校验配置的管理员邮箱和 bcrypt 密码哈希
  - 签发 JWT 访问令牌
  - 返回当前管理员信息
API端点：POST /login, GET /me
"""
import hmac
import logging

from fastapi import APIRouter, Depends

from app.core.config import settings
from app.core.deps import get_admin_principal
from app.core.exceptions import UnauthorizedError
from app.core.principal import AdminPrincipal
from app.core.security import create_access_token, verify_password
from app.schemas.auth import AdminLogin, AdminResponse, TokenResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
async def login(data: AdminLogin):
    """
    管理员登录接口 (Admin Login)

    Raises:
        UnauthorizedError: 邮箱或密码错误，或未配置管理员密码
    """
    email_ok = hmac.compare_digest(data.email.strip().lower(), settings.admin_email.lower())
    if not (email_ok and verify_password(data.password, settings.admin_password_hash)):
        logger.warning("Failed admin login attempt for %s", data.email)
        raise UnauthorizedError("邮箱或密码错误 (Invalid email or password)")

    return TokenResponse(
        access_token=create_access_token(settings.admin_email),
        expires_in=settings.jwt_access_token_expire_minutes * 60,
    )


@router.get("/me", response_model=AdminResponse)
async def get_me(admin: AdminPrincipal = Depends(get_admin_principal)):
    """获取当前管理员信息。"""
    return AdminResponse(email=admin.email)
