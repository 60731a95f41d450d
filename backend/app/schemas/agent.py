"""
Agent 接口请求/响应模型

定义 Agent 心跳等 API 的数据结构。
"""
from datetime import datetime

from pydantic import BaseModel


class HeartbeatHost(BaseModel):
    """心跳响应中的主机信息。"""
    id: int
    name: str
    last_seen_at: datetime | None = None

    model_config = {"from_attributes": True}


class AgentHeartbeatResponse(BaseModel):
    """Agent 心跳响应体。"""
    status: str
    server_time: datetime
    host: HeartbeatHost
