"""
Agent 控制平面路由

提供 Agent 心跳、拉取动作队列和上报执行结果三个接口。
所有接口只接受 Agent 令牌，作用域限定在令牌所属的主机。
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.agent_auth import verify_agent_principal
from app.core.config import settings
from app.core.database import get_db
from app.core.principal import AgentPrincipal
from app.schemas.action import ActionReport, ActionResponse, QueuedAction, QueuedService
from app.schemas.agent import AgentHeartbeatResponse, HeartbeatHost
from app.services.dispatcher import MAX_PULL, ActionDispatcher
from app.services.heartbeat import record_heartbeat

router = APIRouter(prefix="/api/v1/agent", tags=["agent"])


@router.post("/heartbeat", response_model=AgentHeartbeatResponse)
async def heartbeat(
    agent: AgentPrincipal = Depends(verify_agent_principal),
    db: AsyncSession = Depends(get_db),
):
    """Agent 心跳接口，更新调用方主机的 last_seen_at。"""
    host = await record_heartbeat(db, agent.host_id)
    return AgentHeartbeatResponse(
        status="ok",
        server_time=datetime.now(timezone.utc),
        host=HeartbeatHost.model_validate(host),
    )


@router.get("/queue", response_model=list[QueuedAction])
async def pull_queue(
    max: int = Query(1, ge=1),
    agent: AgentPrincipal = Depends(verify_agent_principal),
    db: AsyncSession = Depends(get_db),
):
    """拉取并领取调用方主机最早的 queued 动作，领取后状态为 running。"""
    # 超过上限时按上限处理
    limit = min(max, settings.action_queue_max_batch, MAX_PULL)
    claimed = await ActionDispatcher(db).pull_queued(agent.host_id, limit)
    return [
        QueuedAction(
            id=action.id,
            host_id=action.host_id,
            kind=action.kind,
            status=action.status,
            requested_at=action.requested_at,
            started_at=action.started_at,
            service=QueuedService.model_validate(service),
        )
        for action, service in claimed
    ]


@router.post("/report", response_model=ActionResponse)
async def report(
    body: ActionReport,
    agent: AgentPrincipal = Depends(verify_agent_principal),
    db: AsyncSession = Depends(get_db),
):
    """Agent 上报动作状态。"""
    return await ActionDispatcher(db).report_result(
        action_id=body.action_id,
        host_id=agent.host_id,
        status=body.status,
        exit_code=body.exit_code,
        message=body.message,
    )
