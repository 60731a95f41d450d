"""
受管服务路由模块 (Managed Service Router)

功能说明：注册和维护主机上可被控制的 systemd 单元及其权限标志
API端点：GET/POST /services, GET/PUT/DELETE /services/{id}
"""
import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import get_admin_principal
from app.core.exceptions import ConflictError, NotFoundError
from app.core.principal import AdminPrincipal
from app.models.action import OPEN_STATUSES, Action
from app.models.host import Host
from app.models.managed_service import ManagedService
from app.schemas.managed_service import ManagedServiceCreate, ManagedServiceResponse, ManagedServiceUpdate
from app.services.command_validator import validate_managed_unit_name

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/services", tags=["services"])


async def _get_service(db: AsyncSession, service_id: int) -> ManagedService:
    service = await db.get(ManagedService, service_id)
    if service is None:
        raise NotFoundError(f"服务不存在 (Service not found): {service_id}")
    return service


async def _unit_registered(db: AsyncSession, host_id: int, unit_name: str) -> bool:
    result = await db.execute(
        select(ManagedService.id).where(
            ManagedService.host_id == host_id,
            ManagedService.unit_name == unit_name,
        )
    )
    return result.scalar_one_or_none() is not None


@router.get("")
async def list_services(
    host_id: int | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    admin: AdminPrincipal = Depends(get_admin_principal),
    db: AsyncSession = Depends(get_db),
):
    """分页查询受管服务，可按主机过滤。"""
    query = select(ManagedService)
    count_query = select(func.count()).select_from(ManagedService)
    if host_id is not None:
        query = query.where(ManagedService.host_id == host_id)
        count_query = count_query.where(ManagedService.host_id == host_id)

    total = (await db.execute(count_query)).scalar()
    query = query.order_by(ManagedService.host_id, ManagedService.unit_name)
    query = query.offset((page - 1) * page_size).limit(page_size)
    services = (await db.execute(query)).scalars().all()
    return {
        "items": [ManagedServiceResponse.model_validate(s).model_dump(mode="json") for s in services],
        "total": total,
        "page": page,
        "page_size": page_size,
    }


@router.post("", response_model=ManagedServiceResponse, status_code=status.HTTP_201_CREATED)
async def create_service(
    data: ManagedServiceCreate,
    admin: AdminPrincipal = Depends(get_admin_principal),
    db: AsyncSession = Depends(get_db),
):
    """注册受管服务；单元名必须是合法的 .service 单元，且同一主机内唯一。"""
    validate_managed_unit_name(data.unit_name)
    if await db.get(Host, data.host_id) is None:
        raise NotFoundError(f"主机不存在 (Host not found): {data.host_id}")

    conflict = f"该主机已注册此单元 (Unit already registered on host): {data.unit_name}"
    if await _unit_registered(db, data.host_id, data.unit_name):
        raise ConflictError(conflict)

    service = ManagedService(**data.model_dump())
    db.add(service)
    try:
        await db.commit()
    except IntegrityError:
        # 并发注册同一单元时由唯一约束兜底
        await db.rollback()
        raise ConflictError(conflict)
    await db.refresh(service)
    logger.info("Service %s registered on host %s by %s", service.unit_name, service.host_id, admin.email)
    return service


@router.get("/{service_id}", response_model=ManagedServiceResponse)
async def get_service(
    service_id: int,
    admin: AdminPrincipal = Depends(get_admin_principal),
    db: AsyncSession = Depends(get_db),
):
    return await _get_service(db, service_id)


@router.put("/{service_id}", response_model=ManagedServiceResponse)
async def update_service(
    service_id: int,
    data: ManagedServiceUpdate,
    admin: AdminPrincipal = Depends(get_admin_principal),
    db: AsyncSession = Depends(get_db),
):
    """更新展示信息和权限标志。"""
    service = await _get_service(db, service_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is None and field in ("display_name", "allow_start", "allow_stop", "allow_restart"):
            continue
        setattr(service, field, value)
    await db.commit()
    await db.refresh(service)
    return service


@router.delete("/{service_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_service(
    service_id: int,
    admin: AdminPrincipal = Depends(get_admin_principal),
    db: AsyncSession = Depends(get_db),
):
    """删除受管服务；仍有 queued/running 动作引用时拒绝。"""
    service = await _get_service(db, service_id)
    open_count = (
        await db.execute(
            select(func.count(Action.id)).where(
                Action.service_id == service_id, Action.status.in_(OPEN_STATUSES)
            )
        )
    ).scalar()
    if open_count:
        raise ConflictError(f"服务仍有 {open_count} 个未结束的动作 (Service has open actions)")

    # 已结束的历史动作随服务一起删除
    terminal = await db.execute(select(Action).where(Action.service_id == service_id))
    for action in terminal.scalars().all():
        await db.delete(action)
    await db.delete(service)
    await db.commit()
    logger.info("Service %s (id=%s) deleted by %s", service.unit_name, service_id, admin.email)
