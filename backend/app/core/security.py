"""
安全工具模块 (Security Tools Module)

提供控制平面的安全功能：管理员密码校验、JWT 令牌生成与解析、Agent 令牌的生成与哈希。
Agent 令牌只以 SHA-256 哈希形式落库，明文只在创建或轮换时返回一次。

Provides security functions: admin password verification, JWT token issue/decode,
and agent token generation/hashing. Agent tokens are persisted only as SHA-256 hashes;
the plaintext is returned exactly once on creation or rotation.
"""
import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import NamedTuple

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings

# 密码哈希上下文，使用 bcrypt 算法 (Password Hash Context using bcrypt algorithm)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Agent 令牌前缀，便于在日志和界面中识别 (Agent token prefix for recognition)
AGENT_TOKEN_PREFIX = "lpa_"
# 界面展示用的前缀长度 (Display prefix length)
TOKEN_DISPLAY_LENGTH = 8


class AgentTokenInfo(NamedTuple):
    """新生成的 Agent 令牌：明文、展示前缀、哈希。"""
    plaintext: str
    prefix: str
    hash: str


def hash_password(password: str) -> str:
    """对明文密码进行 bcrypt 哈希 (Hash plain text password with bcrypt)"""
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    """
    验证明文密码是否与哈希值匹配 (Verify if plain text password matches hash)

    哈希为空时直接返回 False，避免未配置密码时任意口令登录。
    """
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)


def create_access_token(subject: str) -> str:
    """
    生成访问令牌（短期有效） (Generate access token with short expiry)

    Args:
        subject (str): 管理员身份标识 (Admin identity)

    Returns:
        str: JWT 访问令牌字符串 (JWT access token string)
    """
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    return jwt.encode(
        {"sub": subject, "exp": expire, "type": "access"},
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm
    )


def decode_token(token: str) -> dict | None:
    """解析 JWT 令牌，失败返回 None (Decode JWT token, return None on failure)"""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def hash_agent_token(token: str) -> str:
    """计算 Agent 令牌的 SHA-256 哈希值（64 位十六进制字符串）。"""
    return hashlib.sha256(token.encode()).hexdigest()


def generate_agent_token() -> AgentTokenInfo:
    """
    生成新的 Agent 令牌 (Generate New Agent Token)

    Token Format: lpa_<64 位十六进制随机字符串>（256 bits 熵）
    """
    plaintext = f"{AGENT_TOKEN_PREFIX}{secrets.token_hex(32)}"
    return AgentTokenInfo(
        plaintext=plaintext,
        prefix=plaintext[:TOKEN_DISPLAY_LENGTH],
        hash=hash_agent_token(plaintext),
    )
