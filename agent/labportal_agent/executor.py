"""
动作执行器。

本地再次校验命令和单元名，然后以参数向量方式调用 systemctl（从不经过 shell）：
先尝试用户级 `systemctl --user`，任何失败都回退到 `sudo -n systemctl`。
每次尝试都有超时和输出上限，超过即终止进程；输出在返回前脱敏。
"""
from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Optional, Sequence

from labportal_agent.config import ExecutorConfig

logger = logging.getLogger(__name__)

# === 命令与单元名白名单（与服务端保持一致） ===
ALLOWED_COMMANDS = ("start", "stop", "restart", "status")

UNIT_NAME_PATTERNS = [
    r"^[a-zA-Z0-9._@-]+\.service$",
    r"^[a-zA-Z0-9._@-]+\.socket$",
    r"^[a-zA-Z0-9._@-]+\.timer$",
    r"^[a-zA-Z0-9._@-]+\.path$",
]
_UNIT_NAME_RE = [re.compile(p) for p in UNIT_NAME_PATTERNS]

USER_SYSTEMCTL = ("systemctl", "--user")
SUDO_SYSTEMCTL = ("sudo", "-n", "systemctl")

_SECRET_RE = re.compile(r"(password|token|key)\s*[:=]\s*\S+", re.IGNORECASE)


class ExecutionRejected(ValueError):
    """命令或单元名未通过本地校验。"""


def validate(command: str, unit_name: str) -> None:
    if command not in ALLOWED_COMMANDS:
        raise ExecutionRejected(f"Invalid command: {command!r}")
    if not isinstance(unit_name, str) or not any(p.fullmatch(unit_name) for p in _UNIT_NAME_RE):
        raise ExecutionRejected(f"Invalid unit name: {unit_name!r}")


def sanitize_output(text: str) -> str:
    """把 password/token/key 后跟分隔符和值的片段替换为占位符。"""
    if not text:
        return text
    return _SECRET_RE.sub(lambda m: f"{m.group(1).lower()}: [REDACTED]", text)


@dataclass
class ExecutionResult:
    """一次动作执行的结果，失败也作为数据上报而不是异常。"""
    success: bool
    exit_code: Optional[int]  # 无法启动进程为 -1，超时为 None
    stdout: str = ""
    stderr: str = ""
    message: str = ""
    duration_ms: int = 0
    is_timeout: bool = False


@dataclass
class _Attempt:
    exit_code: Optional[int]
    stdout: bytes = b""
    stderr: bytes = b""
    timed_out: bool = False
    overflow: bool = False
    launch_error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out and not self.overflow


class ActionExecutor:
    """执行单个 systemctl 动作。"""

    def __init__(
        self,
        config: Optional[ExecutorConfig] = None,
        user_cmd: Sequence[str] = USER_SYSTEMCTL,
        privileged_cmd: Sequence[str] = SUDO_SYSTEMCTL,
    ) -> None:
        self.config = config or ExecutorConfig()
        self.user_cmd = tuple(user_cmd)
        self.privileged_cmd = tuple(privileged_cmd)

    async def execute(self, command: str, unit_name: str) -> ExecutionResult:
        """校验后执行；失败的 restart（非超时）按配置延迟重试。"""
        validate(command, unit_name)

        result = await self._execute_once(command, unit_name)
        retries = self.config.restart_retry if command == "restart" else 0
        while not result.success and not result.is_timeout and retries > 0:
            retries -= 1
            logger.info("Restart of %s failed, retrying in %.1fs", unit_name, self.config.restart_retry_delay)
            await asyncio.sleep(self.config.restart_retry_delay)
            result = await self._execute_once(command, unit_name)
        return result

    async def _execute_once(self, command: str, unit_name: str) -> ExecutionResult:
        start = time.monotonic()

        attempt = await self._run([*self.user_cmd, command, unit_name])
        fallback_note = ""
        if not attempt.ok:
            logger.debug(
                "User-scope %s %s failed (exit=%s), falling back to privileged call",
                command, unit_name, attempt.exit_code,
            )
            privileged = await self._run([*self.privileged_cmd, command, unit_name])
            if privileged.launch_error is not None and attempt.launch_error is None:
                # 特权调用不可用时保留用户级尝试的真实结果
                fallback_note = f" (privileged fallback unavailable: {privileged.launch_error})"
            else:
                attempt = privileged

        elapsed = int((time.monotonic() - start) * 1000)
        stdout = sanitize_output(attempt.stdout.decode(errors="replace"))
        stderr = sanitize_output(attempt.stderr.decode(errors="replace"))

        if attempt.timed_out:
            return ExecutionResult(
                success=False,
                exit_code=None,
                stdout=stdout,
                stderr=stderr,
                message=f"timeout after {self.config.timeout:g}s{fallback_note}",
                duration_ms=elapsed,
                is_timeout=True,
            )
        if attempt.launch_error is not None:
            return ExecutionResult(
                success=False,
                exit_code=-1,
                stderr=stderr,
                message=sanitize_output(f"failed to launch systemctl: {attempt.launch_error}"),
                duration_ms=elapsed,
            )
        if attempt.overflow:
            return ExecutionResult(
                success=False,
                exit_code=attempt.exit_code,
                stdout=stdout,
                stderr=stderr,
                message=f"output exceeded {self.config.max_output_bytes} bytes{fallback_note}",
                duration_ms=elapsed,
            )

        success = attempt.exit_code == 0
        if success:
            message = f"{command} {unit_name} succeeded"
        else:
            first_line = stderr.strip().splitlines()[0] if stderr.strip() else ""
            message = first_line or f"{command} {unit_name} failed with exit code {attempt.exit_code}"
            message = sanitize_output(message + fallback_note)
        return ExecutionResult(
            success=success,
            exit_code=attempt.exit_code,
            stdout=stdout,
            stderr=stderr,
            message=message,
            duration_ms=elapsed,
        )

    async def _run(self, argv: list[str]) -> _Attempt:
        """执行一次进程，受超时和每个流的输出上限约束。"""
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.warning("Cannot launch %s: %s", argv[0], e)
            return _Attempt(exit_code=-1, stderr=str(e).encode(), launch_error=str(e))

        limit = self.config.max_output_bytes
        out, err = bytearray(), bytearray()
        overflow = False

        def _kill() -> None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass

        async def _drain(stream: asyncio.StreamReader, buf: bytearray) -> None:
            nonlocal overflow
            while True:
                chunk = await stream.read(65536)
                if not chunk:
                    return
                if len(buf) + len(chunk) > limit:
                    buf.extend(chunk[: limit - len(buf)])
                    if not overflow:
                        overflow = True
                        _kill()
                    continue
                buf.extend(chunk)

        try:
            await asyncio.wait_for(
                asyncio.gather(_drain(proc.stdout, out), _drain(proc.stderr, err), proc.wait()),
                timeout=self.config.timeout,
            )
        except asyncio.TimeoutError:
            _kill()
            await proc.wait()
            logger.warning("%s timed out after %ss", " ".join(argv), self.config.timeout)
            return _Attempt(exit_code=None, stdout=bytes(out), stderr=bytes(err), timed_out=True)

        return _Attempt(exit_code=proc.returncode, stdout=bytes(out), stderr=bytes(err), overflow=overflow)
