"""
核心模块包 (Core Module Package)

Lab Portal 控制平面的核心功能模块，包含配置管理、数据库连接、安全认证、主体鉴权和依赖注入等基础组件。

Core modules of the Lab Portal control plane: configuration, database connections,
security helpers, principal authorization and dependency injection.
"""
