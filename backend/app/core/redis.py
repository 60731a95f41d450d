"""
Redis 连接模块

管理 Redis 客户端的创建和关闭，提供全局单例访问，以及跨进程互斥用的简单锁。
"""
import secrets

import redis.asyncio as redis

from app.core.config import settings

# 全局 Redis 客户端实例
redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """获取 Redis 客户端实例，首次调用时自动创建连接。"""
    global redis_client
    if redis_client is None:
        redis_client = redis.from_url(settings.redis_url, decode_responses=True)
    return redis_client


async def close_redis() -> None:
    """关闭 Redis 连接，释放资源。"""
    global redis_client
    if redis_client is not None:
        await redis_client.close()
        redis_client = None


# 只有持有者令牌仍匹配时才删除，避免误删过期后被他人重新获取的锁
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


async def acquire_lock(client: redis.Redis, key: str, ttl_seconds: int) -> str | None:
    """
    尝试获取锁 (SET NX EX)，成功返回持有者令牌，已被占用时返回 None。

    Try to take a lock with SET NX EX. Returns the owner token, or None when
    another holder owns it.
    """
    token = secrets.token_hex(16)
    if await client.set(key, token, ex=ttl_seconds, nx=True):
        return token
    return None


async def release_lock(client: redis.Redis, key: str, token: str) -> bool:
    """释放锁；锁已过期或换了持有者时不做任何事并返回 False。"""
    return bool(await client.eval(_RELEASE_SCRIPT, 1, key, token))
