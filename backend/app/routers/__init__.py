"""
Lab Portal 路由模块包 (Lab Portal Router Module Package)

本包包含控制平面的所有路由模块，按调用方分组。

=== 管理员路由 (Admin Routes) ===
- auth.py: 管理员登录（JWT 访问令牌）
- hosts.py: 主机管理与 Agent 令牌轮换
- managed_services.py: 受管 systemd 单元及权限标志
- actions.py: 控制动作的创建、查询、删除
- control.py: 诊断概览与动作剪枝

=== Agent 路由 (Agent Routes) ===
- agent.py: 心跳、拉取队列、上报结果

管理员路由只接受管理员 JWT 并显式拒绝 Agent 令牌；Agent 路由只接受 Agent 令牌。
所有路由在 main.py 中通过 app.include_router() 统一注册，使用 /api/v1/ 前缀。
"""
