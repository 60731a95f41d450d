"""
Agent 配置加载模块。

定义配置数据类，从可选的 YAML 文件加载配置，环境变量优先。
必填项：HOST_ID、PORTAL_BASE_URL、AGENT_TOKEN；缺失时抛出 ConfigError。
支持时间间隔简写（如 '4s'、'1m'、'500ms'），纯数字按秒处理。
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

# 单次执行的输出上限（每个流），超过即终止进程
MAX_OUTPUT_BYTES = 1024 * 1024


class ConfigError(ValueError):
    """配置缺失或非法。"""


@dataclass
class PortalConfig:
    """门户连接配置。"""
    url: str = ""
    token: str = ""
    timeout: float = 10.0  # HTTP 请求超时（秒）


@dataclass
class ExecutorConfig:
    """命令执行配置。"""
    timeout: float = 30.0  # 每次尝试的超时（秒）
    max_output_bytes: int = MAX_OUTPUT_BYTES
    restart_retry: int = 1  # restart 失败后的重试次数
    restart_retry_delay: float = 2.0  # 重试前等待（秒）


@dataclass
class AgentConfig:
    """Agent 主配置，聚合所有子配置。"""
    host_id: str = ""
    portal: PortalConfig = field(default_factory=PortalConfig)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
    poll_interval: float = 4.0  # 轮询间隔（秒）

    def validate(self) -> None:
        """检查必填项，缺失时抛出 ConfigError 并列出全部缺失的变量。"""
        missing = []
        if not self.host_id:
            missing.append("HOST_ID")
        if not self.portal.url:
            missing.append("PORTAL_BASE_URL")
        if not self.portal.token:
            missing.append("AGENT_TOKEN")
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")
        if self.poll_interval <= 0:
            raise ConfigError("poll_interval must be positive")
        if self.executor.timeout <= 0:
            raise ConfigError("executor timeout must be positive")


def _parse_interval(val) -> float:
    """解析时间间隔，支持 '500ms'、'4s'、'1m' 等简写格式，纯数字按秒处理。"""
    if isinstance(val, (int, float)):
        return float(val)
    s = str(val).strip().lower()
    try:
        if s.endswith("ms"):
            return float(s[:-2]) / 1000
        if s.endswith("s"):
            return float(s[:-1])
        if s.endswith("m"):
            return float(s[:-1]) * 60
        return float(s)
    except ValueError:
        raise ConfigError(f"Invalid interval: {val!r}") from None


def _parse_int(name: str, val) -> int:
    try:
        return int(val)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {val!r}") from None


def load_config(path: Optional[str] = None, required: bool = False) -> AgentConfig:
    """加载 Agent 配置。

    Args:
        path: YAML 配置文件路径，可选。
        required: 为 True 时文件不存在抛出 FileNotFoundError，否则只使用环境变量。

    Returns:
        解析后的 AgentConfig 实例（尚未校验必填项）。
    """
    data: dict = {}
    if path:
        p = Path(path)
        if p.exists():
            with open(p) as f:
                data = yaml.safe_load(f) or {}
        elif required:
            raise FileNotFoundError(f"Config file not found: {path}")

    cfg = AgentConfig()

    # 文件配置
    cfg.host_id = str(data.get("host_id", "") or "")
    portal = data.get("portal", {}) or {}
    cfg.portal.url = portal.get("url", "")
    cfg.portal.token = portal.get("token", "")
    if "timeout" in portal:
        cfg.portal.timeout = _parse_interval(portal["timeout"])
    if "poll_interval" in data:
        cfg.poll_interval = _parse_interval(data["poll_interval"])

    ex = data.get("executor", {}) or {}
    if "timeout" in ex:
        cfg.executor.timeout = _parse_interval(ex["timeout"])
    if "max_output_bytes" in ex:
        cfg.executor.max_output_bytes = _parse_int("max_output_bytes", ex["max_output_bytes"])
    if "restart_retry" in ex:
        cfg.executor.restart_retry = _parse_int("restart_retry", ex["restart_retry"])
    if "restart_retry_delay" in ex:
        cfg.executor.restart_retry_delay = _parse_interval(ex["restart_retry_delay"])

    # 环境变量优先
    env = os.environ
    cfg.host_id = env.get("HOST_ID", cfg.host_id)
    cfg.portal.url = env.get("PORTAL_BASE_URL", cfg.portal.url)
    cfg.portal.token = env.get("AGENT_TOKEN", cfg.portal.token)
    if env.get("POLL_INTERVAL"):
        cfg.poll_interval = _parse_interval(env["POLL_INTERVAL"])
    if env.get("EXEC_TIMEOUT"):
        cfg.executor.timeout = _parse_interval(env["EXEC_TIMEOUT"])
    if env.get("RESTART_RETRY"):
        cfg.executor.restart_retry = _parse_int("RESTART_RETRY", env["RESTART_RETRY"])

    cfg.portal.url = cfg.portal.url.rstrip("/")
    return cfg
