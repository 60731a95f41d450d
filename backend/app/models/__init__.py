"""
数据模型包 (Data Models Package)

集中导出控制平面的所有 SQLAlchemy ORM 模型：主机、受管服务和控制动作。

Centrally exports all SQLAlchemy ORM models of the control plane:
hosts, managed services and control actions.
"""
from app.models.host import Host
from app.models.managed_service import ManagedService
from app.models.action import Action

# 导出所有模型类供外部模块使用 (Export all model classes for external modules)
__all__ = ["Host", "ManagedService", "Action"]
