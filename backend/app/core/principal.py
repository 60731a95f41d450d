"""
调用主体定义 (Principal Definitions)

每个请求在通过鉴权后恰好对应一种主体：管理员或 Agent。
两者是不同的类型，路由通过依赖声明自己接受哪一种，不存在"已登录"之类的共享标志。

Each authorized request resolves to exactly one principal kind: an admin or an agent.
They are distinct types; routes declare which one they accept through dependencies.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class AdminPrincipal:
    """管理员主体，email 为配置的管理员身份 (Admin principal)"""
    email: str


@dataclass(frozen=True)
class AgentPrincipal:
    """Agent 主体，作用域限定在单台主机 (Agent principal scoped to one host)"""
    host_id: int
    host_name: str
