"""
主机管理路由模块 (Host Management Router)

功能说明：受管主机的增删改查与 Agent 令牌轮换
核心职责：
  - 分页查询主机列表，附带读取时计算的在线状态
  - 创建主机并一次性返回明文 Agent 令牌
  - 轮换 Agent 令牌，旧令牌立即失效
  - 删除主机（存在未结束动作时拒绝）
API端点：GET/POST /hosts, GET/PUT/DELETE /hosts/{id}, POST /hosts/{id}/token
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import get_admin_principal
from app.core.exceptions import ConflictError, NotFoundError
from app.core.principal import AdminPrincipal
from app.core.security import generate_agent_token
from app.models.action import OPEN_STATUSES, Action
from app.models.host import Host
from app.models.managed_service import ManagedService
from app.schemas.host import HostCreate, HostCreated, HostResponse, HostTokenRotated, HostUpdate
from app.services.heartbeat import is_online, last_seen_age_seconds

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/hosts", tags=["hosts"])


def _to_response(host: Host, now: datetime | None = None) -> HostResponse:
    data = HostResponse.model_validate(host)
    data.is_online = is_online(host.last_seen_at, now)
    data.last_seen_age_seconds = last_seen_age_seconds(host.last_seen_at, now)
    return data


async def _get_host(db: AsyncSession, host_id: int) -> Host:
    host = await db.get(Host, host_id)
    if host is None:
        raise NotFoundError(f"主机不存在 (Host not found): {host_id}")
    return host


async def _ensure_name_free(db: AsyncSession, name: str, exclude_id: int | None = None) -> None:
    query = select(Host.id).where(Host.name == name)
    if exclude_id is not None:
        query = query.where(Host.id != exclude_id)
    if (await db.execute(query)).scalar_one_or_none() is not None:
        raise ConflictError(f"主机名已存在 (Host name already exists): {name}")


@router.get("")
async def list_hosts(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    search: str | None = None,
    admin: AdminPrincipal = Depends(get_admin_principal),
    db: AsyncSession = Depends(get_db),
):
    """
    主机列表查询接口 (Host List Query)

    Args:
        page: 页码，从1开始
        page_size: 每页数量，限制1-100之间
        search: 主机名关键词搜索（模糊匹配）
    Returns:
        dict: 包含主机列表、总数、分页信息的响应
    """
    query = select(Host)
    count_query = select(func.count()).select_from(Host)
    if search:
        query = query.where(Host.name.ilike(f"%{search}%"))
        count_query = count_query.where(Host.name.ilike(f"%{search}%"))

    total = (await db.execute(count_query)).scalar()
    query = query.order_by(Host.id.desc()).offset((page - 1) * page_size).limit(page_size)
    hosts = (await db.execute(query)).scalars().all()

    now = datetime.now(timezone.utc)
    items = [_to_response(h, now).model_dump(mode="json") for h in hosts]
    return {"items": items, "total": total, "page": page, "page_size": page_size}


@router.post("", response_model=HostCreated, status_code=status.HTTP_201_CREATED)
async def create_host(
    data: HostCreate,
    admin: AdminPrincipal = Depends(get_admin_principal),
    db: AsyncSession = Depends(get_db),
):
    """创建主机，明文令牌只在此响应中出现一次。"""
    await _ensure_name_free(db, data.name)

    token = generate_agent_token()
    host = Host(
        name=data.name,
        address=data.address,
        agent_token_hash=token.hash,
        agent_token_prefix=token.prefix,
    )
    db.add(host)
    await db.commit()
    await db.refresh(host)
    logger.info("Host %s (id=%s) created by %s", host.name, host.id, admin.email)

    return HostCreated(**_to_response(host).model_dump(), agent_token=token.plaintext)


@router.get("/{host_id}", response_model=HostResponse)
async def get_host(
    host_id: int,
    admin: AdminPrincipal = Depends(get_admin_principal),
    db: AsyncSession = Depends(get_db),
):
    """单个主机详情查询接口 (Single Host Detail Query)"""
    return _to_response(await _get_host(db, host_id))


@router.put("/{host_id}", response_model=HostResponse)
async def update_host(
    host_id: int,
    data: HostUpdate,
    admin: AdminPrincipal = Depends(get_admin_principal),
    db: AsyncSession = Depends(get_db),
):
    """更新主机名称或地址，不影响令牌。"""
    host = await _get_host(db, host_id)
    changes = data.model_dump(exclude_unset=True)
    if changes.get("name") is not None and changes["name"] != host.name:
        await _ensure_name_free(db, changes["name"], exclude_id=host.id)
    for field, value in changes.items():
        if field == "name" and value is None:
            continue
        setattr(host, field, value)
    await db.commit()
    await db.refresh(host)
    return _to_response(host)


@router.delete("/{host_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_host(
    host_id: int,
    admin: AdminPrincipal = Depends(get_admin_principal),
    db: AsyncSession = Depends(get_db),
):
    """删除主机及其服务和历史动作；存在 queued/running 动作时拒绝。"""
    host = await _get_host(db, host_id)
    open_count = (
        await db.execute(
            select(func.count(Action.id)).where(Action.host_id == host_id, Action.status.in_(OPEN_STATUSES))
        )
    ).scalar()
    if open_count:
        raise ConflictError(f"主机仍有 {open_count} 个未结束的动作 (Host has open actions)")

    await db.execute(delete(Action).where(Action.host_id == host_id))
    await db.execute(delete(ManagedService).where(ManagedService.host_id == host_id))
    await db.delete(host)
    await db.commit()
    logger.info("Host %s (id=%s) deleted by %s", host.name, host_id, admin.email)


@router.post("/{host_id}/token", response_model=HostTokenRotated)
async def rotate_token(
    host_id: int,
    admin: AdminPrincipal = Depends(get_admin_principal),
    db: AsyncSession = Depends(get_db),
):
    """轮换 Agent 令牌，旧令牌立即失效，新明文令牌只返回一次。"""
    host = await _get_host(db, host_id)
    token = generate_agent_token()
    now = datetime.now(timezone.utc)
    host.agent_token_hash = token.hash
    host.agent_token_prefix = token.prefix
    host.token_rotated_at = now
    await db.commit()
    logger.info("Agent token rotated for host %s (id=%s)", host.name, host_id)

    return HostTokenRotated(
        host_id=host_id,
        agent_token=token.plaintext,
        agent_token_prefix=token.prefix,
        token_rotated_at=now,
    )
