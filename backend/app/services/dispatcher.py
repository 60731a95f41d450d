"""
动作分发服务 (Action Dispatcher Service)

控制平面的服务端核心：创建动作、Agent 拉取队列、Agent 上报结果。
所有跨请求协调都依赖数据库的原子条件更新，不使用进程内锁。

Server-side core of the control plane: enqueue, queue pull and result reporting.
Cross-request coordination relies on conditional updates in the store, never on
in-process locks.

领取流程 (Claim flow):
    1. 按 requested_at, id 升序选出最早的 queued 候选 id
    2. 对每个 id 执行 UPDATE ... WHERE id=:id AND status='queued'
    3. 只返回影响行数恰好为 1 的动作；被别的轮询抢先的行直接跳过
"""
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    ConflictError,
    ForbiddenError,
    HostMismatchError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from app.models.action import (
    MESSAGE_MAX_LENGTH,
    STATUS_FAILED,
    STATUS_QUEUED,
    STATUS_RUNNING,
    Action,
)
from app.models.host import Host
from app.models.managed_service import ManagedService
from app.services import action_fsm
from app.services.command_validator import check_service_permission, validate_command

logger = logging.getLogger(__name__)

# 单次拉取的上限 (Max actions per pull)
MAX_PULL = 10

# 僵死回收写入的消息
STALE_MESSAGE = "Agent 未在超时前上报结果 (No report received before timeout)"


def _check_idempotent_match(existing: Action, service_id: int, kind: str) -> None:
    if existing.service_id != service_id or existing.kind != kind:
        raise ConflictError(
            f"幂等键已用于其他动作 (Idempotency key reused for a different action): action {existing.id}",
            detail=f"existing: service {existing.service_id} {existing.kind}",
        )


class ActionDispatcher:
    """动作分发器，每个请求使用自己的数据库会话构造一个实例。"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # 管理员侧：创建动作 (Admin side: enqueue)
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        host_id: int,
        service_id: int,
        kind: str,
        requested_by: str,
        idempotency_key: str | None = None,
    ) -> Action:
        """
        创建一个 queued 动作。

        所有校验都在插入之前完成：主机和服务存在、服务属于该主机、命令和单元名合法、
        服务的权限标志允许该动作。任何一步失败都不会留下记录。
        带幂等键时，同一主机上已存在相同键的动作会被直接返回；
        若该键已用于其他服务或其他命令，则抛出 ConflictError。
        """
        if not settings.enable_control_plane:
            raise ForbiddenError("控制平面已关闭 (Control plane is disabled)")

        host = await self.db.get(Host, host_id)
        if host is None:
            raise NotFoundError(f"主机不存在 (Host not found): {host_id}")
        service = await self.db.get(ManagedService, service_id)
        if service is None:
            raise NotFoundError(f"服务不存在 (Service not found): {service_id}")
        if service.host_id != host.id:
            raise ValidationError(
                f"服务 {service_id} 不属于主机 {host_id} (Service does not belong to host)"
            )

        validate_command(kind, service.unit_name)
        check_service_permission(service, kind)

        if idempotency_key:
            existing = await self._find_by_idempotency_key(host_id, idempotency_key)
            if existing is not None:
                _check_idempotent_match(existing, service_id, kind)
                logger.info("Enqueue deduplicated by idempotency key %r -> action %s", idempotency_key, existing.id)
                return existing

        action = Action(
            host_id=host_id,
            service_id=service_id,
            kind=kind,
            status=STATUS_QUEUED,
            requested_at=datetime.now(timezone.utc),
            requested_by=requested_by,
            idempotency_key=idempotency_key,
        )
        self.db.add(action)
        try:
            await self.db.commit()
        except IntegrityError:
            # 并发的相同幂等键请求先一步插入
            await self.db.rollback()
            if idempotency_key:
                existing = await self._find_by_idempotency_key(host_id, idempotency_key)
                if existing is not None:
                    _check_idempotent_match(existing, service_id, kind)
                    return existing
            raise
        await self.db.refresh(action)
        logger.info(
            "Action %s enqueued: %s %s on host %s by %s",
            action.id, kind, service.unit_name, host.name, requested_by,
        )
        return action

    async def _find_by_idempotency_key(self, host_id: int, key: str) -> Action | None:
        result = await self.db.execute(
            select(Action).where(Action.host_id == host_id, Action.idempotency_key == key)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Agent 侧：拉取队列 (Agent side: pull)
    # ------------------------------------------------------------------

    async def pull_queued(self, host_id: int, max_actions: int = 1) -> list[tuple[Action, ManagedService]]:
        """
        领取主机最早的 queued 动作并标记为 running。

        Returns:
            list: (动作, 服务) 元组列表，按 requested_at 先进先出
        """
        if not 1 <= max_actions <= MAX_PULL:
            raise ValidationError(f"max 必须在 1 到 {MAX_PULL} 之间 (max must be between 1 and {MAX_PULL})")

        candidate_ids = await self._queued_candidates(host_id, max_actions)
        claimed_ids = await self._claim(candidate_ids)
        if not claimed_ids:
            return []

        result = await self.db.execute(
            select(Action, ManagedService)
            .join(ManagedService, ManagedService.id == Action.service_id)
            .where(Action.id.in_(claimed_ids))
            .order_by(Action.requested_at, Action.id)
            .execution_options(populate_existing=True)
        )
        claimed = [(row[0], row[1]) for row in result.all()]
        logger.info("Host %s claimed actions %s", host_id, claimed_ids)
        return claimed

    async def _queued_candidates(self, host_id: int, limit: int) -> list[int]:
        result = await self.db.execute(
            select(Action.id)
            .where(Action.host_id == host_id, Action.status == STATUS_QUEUED)
            .order_by(Action.requested_at, Action.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def _claim(self, candidate_ids: list[int]) -> list[int]:
        """逐行条件更新，只保留真正由本次调用翻转为 running 的 id。"""
        claimed: list[int] = []
        now = datetime.now(timezone.utc)
        for action_id in candidate_ids:
            result = await self.db.execute(
                update(Action)
                .where(Action.id == action_id, Action.status == STATUS_QUEUED)
                .values(status=STATUS_RUNNING, started_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                claimed.append(action_id)
        await self.db.commit()
        return claimed

    # ------------------------------------------------------------------
    # Agent 侧：上报结果 (Agent side: report)
    # ------------------------------------------------------------------

    async def report_result(
        self,
        action_id: int,
        host_id: int,
        status: str,
        exit_code: int | None = None,
        message: str | None = None,
    ) -> Action:
        """
        处理 Agent 上报。

        running 上报只在动作已处于 running 时作为确认接受，不产生变更；
        succeeded/failed 要求动作当前为 running，终态写入本身也是条件更新。

        Raises:
            NotFoundError: 动作不存在
            HostMismatchError: 动作属于其他主机
            InvalidStateTransitionError: 当前状态不允许该迁移
            ValidationError: 状态或消息不合法
        """
        if message is not None and len(message) > MESSAGE_MAX_LENGTH:
            raise ValidationError(f"message 不能超过 {MESSAGE_MAX_LENGTH} 个字符 (message too long)")

        action = await self._get_action(action_id)
        if action is None:
            raise NotFoundError(f"动作不存在 (Action not found): {action_id}")
        if action.host_id != host_id:
            logger.warning("Host %s reported on action %s owned by host %s", host_id, action_id, action.host_id)
            raise HostMismatchError(f"动作 {action_id} 不属于该主机 (Action belongs to another host)")

        if status == STATUS_RUNNING:
            if action.status != STATUS_RUNNING:
                raise InvalidStateTransitionError(
                    f"非法的状态迁移 (Invalid state transition): {action.status} -> {status}"
                )
            return action

        if not action_fsm.is_terminal(status):
            raise ValidationError(f"不支持的上报状态 (Unsupported report status): {status!r}")
        action_fsm.guard(action.status, status)

        result = await self.db.execute(
            update(Action)
            .where(Action.id == action_id, Action.status == STATUS_RUNNING)
            .values(
                status=status,
                finished_at=datetime.now(timezone.utc),
                exit_code=exit_code,
                message=message,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise InvalidStateTransitionError(
                f"动作 {action_id} 已不处于 running 状态 (Action is no longer running)"
            )
        await self.db.commit()

        action = await self._get_action(action_id)
        logger.info("Action %s finished on host %s: %s (exit_code=%s)", action_id, host_id, status, exit_code)
        return action

    async def _get_action(self, action_id: int) -> Action | None:
        result = await self.db.execute(
            select(Action).where(Action.id == action_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # 僵死 running 回收 (Stale running reclaim)
    # ------------------------------------------------------------------

    async def fail_stale_running(self, older_than: timedelta) -> list[int]:
        """将 started_at 早于 now - older_than 且仍为 running 的动作标记为 failed。"""
        now = datetime.now(timezone.utc)
        cutoff = now - older_than
        result = await self.db.execute(
            select(Action.id).where(Action.status == STATUS_RUNNING, Action.started_at < cutoff)
        )
        stale_ids = list(result.scalars().all())

        failed: list[int] = []
        for action_id in stale_ids:
            res = await self.db.execute(
                update(Action)
                .where(Action.id == action_id, Action.status == STATUS_RUNNING)
                .values(status=STATUS_FAILED, finished_at=now, message=STALE_MESSAGE)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount == 1:
                failed.append(action_id)
        await self.db.commit()
        if failed:
            logger.warning("Marked %d stale running actions as failed: %s", len(failed), failed)
        return failed
