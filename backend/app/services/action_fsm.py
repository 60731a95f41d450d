"""
动作状态机 (Action State Machine)

queued → running → succeeded | failed。终态没有任何出边。
"""
from __future__ import annotations

from app.core.exceptions import InvalidStateTransitionError
from app.models.action import (
    STATUS_FAILED,
    STATUS_QUEUED,
    STATUS_RUNNING,
    STATUS_SUCCEEDED,
    TERMINAL_STATUSES,
)

TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_QUEUED: frozenset({STATUS_RUNNING}),
    STATUS_RUNNING: frozenset({STATUS_SUCCEEDED, STATUS_FAILED}),
    STATUS_SUCCEEDED: frozenset(),
    STATUS_FAILED: frozenset(),
}


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def valid_targets(status: str) -> frozenset[str]:
    """返回从当前状态可到达的状态集合，未知状态返回空集。"""
    return TRANSITIONS.get(status, frozenset())


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in valid_targets(from_status)


def guard(from_status: str, to_status: str) -> None:
    """迁移非法时抛出 InvalidStateTransitionError。"""
    if not can_transition(from_status, to_status):
        raise InvalidStateTransitionError(
            f"非法的状态迁移 (Invalid state transition): {from_status} -> {to_status}",
            detail=f"allowed from {from_status}: {sorted(valid_targets(from_status))}",
        )

