"""
应用配置模块 (Application Configuration Module)

使用 Pydantic Settings 管理 Lab Portal 控制平面的所有配置项，支持从 .env 文件和环境变量读取。
提供数据库连接、Redis 锁、管理员认证、JWT、动作保留策略等各模块的配置管理。

Uses Pydantic Settings to manage all configuration items for the Lab Portal control plane,
supporting reading from .env files and environment variables. Provides configuration
management for database connections, Redis locks, admin authentication, JWT and action retention.
"""
import logging
import secrets

from passlib.context import CryptContext
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    应用全局配置类 (Application Global Configuration Class)

    字段名自动映射同名环境变量（不区分大小写），支持 .env 文件加载。

    Field names automatically map to same-named environment variables (case insensitive),
    supporting .env file loading.
    """

    # 数据库配置 (Database Configuration)
    postgres_host: str = "localhost"  # PostgreSQL 主机地址 (PostgreSQL Host)
    postgres_port: int = 5432  # PostgreSQL 端口号 (PostgreSQL Port)
    postgres_db: str = "labportal"  # 数据库名称 (Database Name)
    postgres_user: str = "labportal"  # 数据库用户名 (Database Username)
    postgres_password: str = "labportal_dev_password"  # 数据库密码 (Database Password)

    # Redis 配置 (Redis Configuration)
    redis_host: str = "localhost"  # Redis 主机地址 (Redis Host)
    redis_port: int = 6379  # Redis 端口号 (Redis Port)

    # 管理员认证配置 (Admin Authentication Configuration)
    # 只有一个固定管理员身份，没有分级角色 (Single fixed admin identity, no role levels)
    admin_email: str = "admin@local"  # 管理员身份标识 (Admin Identity)
    admin_password_hash: str = ""  # bcrypt 密码哈希 (bcrypt Password Hash)
    admin_password: str = ""  # 明文密码，仅在未设置哈希时使用，加载时立即哈希 (Plaintext, hashed on load)
    # ⚠️ 为空时剪枝触发接口整体禁用 (Prune trigger endpoint disabled when empty)
    admin_cron_secret: str = ""  # x-cron-secret 请求头共享密钥 (x-cron-secret Shared Secret)

    # JWT 认证配置 (JWT Authentication Configuration)
    # ⚠️ 生产环境必须通过环境变量 JWT_SECRET_KEY 设置！未设置时自动生成随机密钥（每次重启会变化）
    jwt_secret_key: str = ""  # JWT 签名密钥 (JWT Secret Key)
    jwt_algorithm: str = "HS256"  # JWT 算法 (JWT Algorithm)
    jwt_access_token_expire_minutes: int = 120  # 访问令牌过期时间（分钟） (Access Token Expiry Minutes)

    # 控制平面配置 (Control Plane Configuration)
    enable_control_plane: bool = True  # 是否允许创建控制动作 (Allow Enqueueing Actions)
    action_queue_max_batch: int = 10  # 单次拉取队列的上限 (Max Actions per Queue Pull)
    online_threshold_seconds: int = 300  # 主机在线判定阈值，5 分钟 (Online Threshold)
    # 0 表示关闭僵死 running 动作回收；不设默认阈值 (0 disables stale running reclaim)
    stale_action_timeout_minutes: int = 0

    # 动作保留策略 (Action Retention Policy)
    action_prune_enabled: bool = True  # 是否启用每日自动剪枝 (Enable Daily Pruning)
    action_retention_days: int = 90  # 已结束动作保留天数 (Retention Days for Finished Actions)
    action_prune_batch_size: int = 1000  # 每批删除数量 (Rows per Delete Batch)

    environment: str = "development"  # 运行环境：development/production (Runtime Environment)

    @property
    def database_url(self) -> str:
        """
        构造 PostgreSQL 异步连接 URL (Build PostgreSQL Async Connection URL)

        生成适用于 asyncpg 驱动的连接字符串，用于 SQLAlchemy 异步会话。
        """
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def redis_url(self) -> str:
        """构造 Redis 连接 URL (Build Redis Connection URL)，默认使用数据库 0。"""
        return f"redis://{self.redis_host}:{self.redis_port}/0"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}  # Pydantic 配置：自动加载 .env 文件 (Pydantic Config: Auto-load .env file)


# 全局配置实例 (Global Configuration Instance)
settings = Settings()

# JWT 密钥安全检查：未设置时生成随机密钥并警告
if not settings.jwt_secret_key or settings.jwt_secret_key == "change-me-in-production":
    settings.jwt_secret_key = secrets.token_urlsafe(64)
    logger.warning(
        "JWT_SECRET_KEY 未设置，已自动生成随机密钥。此密钥在每次重启后会变化，所有已签发的 token 将失效。"
        " | JWT_SECRET_KEY not set, using auto-generated random key. "
        "All issued tokens will be invalidated on restart. "
        "Set JWT_SECRET_KEY environment variable in production!"
    )

# 明文管理员密码只在内存中停留到哈希完成 (Plaintext admin password is hashed immediately)
if not settings.admin_password_hash and settings.admin_password:
    settings.admin_password_hash = CryptContext(schemes=["bcrypt"], deprecated="auto").hash(settings.admin_password)
    settings.admin_password = ""

if not settings.admin_password_hash:
    logger.warning(
        "ADMIN_PASSWORD_HASH 未设置，管理员无法登录。"
        " | ADMIN_PASSWORD_HASH not set, admin sign-in is disabled."
    )
