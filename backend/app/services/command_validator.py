"""
控制命令校验模块 (Control Command Validator)

白名单校验：命令只允许四个字面量，systemd 单元名只允许四种后缀模式。
命令以参数向量传递给 systemctl，从不经过 shell；这里是执行前的第二道防线。
校验通过之后，还要检查目标服务自身的 allow_* 权限标志。

Allow-list validation of command verbs and systemd unit names. Commands are passed as an
argument vector, never through a shell. Per-service permission flags form a second layer
on top of the syntax checks.
"""
from __future__ import annotations

import re

from app.core.exceptions import ForbiddenError, InvalidCommandError, InvalidUnitNameError, ValidationError

# === 命令白名单 ===
ALLOWED_COMMANDS: tuple[str, ...] = ("start", "stop", "restart", "status")

# === 单元名白名单模式 ===
UNIT_NAME_PATTERNS: list[str] = [
    r"^[a-zA-Z0-9._@-]+\.service$",
    r"^[a-zA-Z0-9._@-]+\.socket$",
    r"^[a-zA-Z0-9._@-]+\.timer$",
    r"^[a-zA-Z0-9._@-]+\.path$",
]

_UNIT_NAME_RE = [re.compile(p) for p in UNIT_NAME_PATTERNS]

# 需要权限标志的命令；status 只读，始终允许
_PERMISSION_FLAGS = {
    "start": "allow_start",
    "stop": "allow_stop",
    "restart": "allow_restart",
}


def is_valid_command(command: str) -> bool:
    return isinstance(command, str) and command in ALLOWED_COMMANDS


def is_valid_unit_name(unit_name: str) -> bool:
    if not isinstance(unit_name, str):
        return False
    return any(p.fullmatch(unit_name) for p in _UNIT_NAME_RE)


def validate_command(command: str, unit_name: str) -> None:
    """
    校验命令和单元名，失败时抛出区分两种情况的异常。

    Raises:
        InvalidCommandError: 命令不在白名单内（大小写敏感）
        InvalidUnitNameError: 单元名不匹配任何允许模式
    """
    if not is_valid_command(command):
        raise InvalidCommandError(
            f"不支持的命令 (Unsupported command): {command!r}",
            detail=f"allowed: {', '.join(ALLOWED_COMMANDS)}",
        )
    if not is_valid_unit_name(unit_name):
        raise InvalidUnitNameError(
            f"非法的单元名 (Invalid unit name): {unit_name!r}",
            detail="expected <name>.service|.socket|.timer|.path with name in [a-zA-Z0-9._@-]",
        )


def validate_managed_unit_name(unit_name: str) -> None:
    """注册受管服务时使用：除通用模式外，还必须以 .service 结尾。"""
    if not is_valid_unit_name(unit_name) or not unit_name.endswith(".service"):
        raise InvalidUnitNameError(
            f"受管服务必须是 .service 单元 (Managed units must be .service units): {unit_name!r}"
        )


def check_service_permission(service, kind: str) -> None:
    """
    检查服务的权限标志是否允许该动作类型。

    Raises:
        ForbiddenError: 对应的 allow_* 标志为 False
        ValidationError: kind 不是已知命令
    """
    if kind == "status":
        return
    flag = _PERMISSION_FLAGS.get(kind)
    if flag is None:
        raise ValidationError(f"未知的动作类型 (Unknown action kind): {kind!r}")
    if not getattr(service, flag, False):
        raise ForbiddenError(
            f"服务 {service.unit_name} 不允许 {kind} (Service does not allow {kind})",
            detail=flag,
        )
