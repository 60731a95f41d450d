"""
认证相关请求/响应模型

定义管理员登录 API 的数据结构。
"""
from pydantic import BaseModel


class AdminLogin(BaseModel):
    """管理员登录请求体。"""
    email: str
    password: str


class TokenResponse(BaseModel):
    """令牌响应体。"""
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # 秒 (seconds)


class AdminResponse(BaseModel):
    """当前管理员信息。"""
    email: str
