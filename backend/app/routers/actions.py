"""
控制动作路由模块 (Control Action Router)

功能说明：管理员创建、查询和删除控制动作
API端点：GET/POST /actions, GET/DELETE /actions/{id}
"""
import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import get_admin_principal
from app.core.exceptions import ConflictError, NotFoundError
from app.core.principal import AdminPrincipal
from app.models.action import STATUS_RUNNING, Action
from app.schemas.action import ActionCreate, ActionResponse
from app.services.dispatcher import ActionDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/actions", tags=["actions"])


async def _get_action(db: AsyncSession, action_id: int) -> Action:
    action = await db.get(Action, action_id)
    if action is None:
        raise NotFoundError(f"动作不存在 (Action not found): {action_id}")
    return action


@router.get("")
async def list_actions(
    host_id: int | None = None,
    service_id: int | None = None,
    status: str | None = None,
    kind: str | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    admin: AdminPrincipal = Depends(get_admin_principal),
    db: AsyncSession = Depends(get_db),
):
    """分页查询动作，按请求时间倒序。"""
    filters = []
    if host_id is not None:
        filters.append(Action.host_id == host_id)
    if service_id is not None:
        filters.append(Action.service_id == service_id)
    if status:
        filters.append(Action.status == status)
    if kind:
        filters.append(Action.kind == kind)

    total = (await db.execute(select(func.count(Action.id)).where(*filters))).scalar()
    query = (
        select(Action)
        .where(*filters)
        .order_by(Action.requested_at.desc(), Action.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    actions = (await db.execute(query)).scalars().all()
    return {
        "items": [ActionResponse.model_validate(a).model_dump(mode="json") for a in actions],
        "total": total,
        "page": page,
        "page_size": page_size,
    }


@router.post("", response_model=ActionResponse, status_code=status.HTTP_201_CREATED)
async def create_action(
    data: ActionCreate,
    admin: AdminPrincipal = Depends(get_admin_principal),
    db: AsyncSession = Depends(get_db),
):
    """创建控制动作，校验和权限检查失败时不会产生任何记录。"""
    return await ActionDispatcher(db).enqueue(
        host_id=data.host_id,
        service_id=data.service_id,
        kind=data.kind,
        requested_by=admin.email,
        idempotency_key=data.idempotency_key,
    )


@router.get("/{action_id}", response_model=ActionResponse)
async def get_action(
    action_id: int,
    admin: AdminPrincipal = Depends(get_admin_principal),
    db: AsyncSession = Depends(get_db),
):
    return await _get_action(db, action_id)


@router.delete("/{action_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_action(
    action_id: int,
    admin: AdminPrincipal = Depends(get_admin_principal),
    db: AsyncSession = Depends(get_db),
):
    """删除动作；正在执行的动作不能删除。"""
    action = await _get_action(db, action_id)
    if action.status == STATUS_RUNNING:
        raise ConflictError("动作正在执行，不能删除 (Running actions cannot be deleted)")
    await db.delete(action)
    await db.commit()
    logger.info("Action %s deleted by %s", action_id, admin.email)
