"""
LanWatch 路由模块包 (LanWatch Router Module Package)

本包包含 LanWatch 后端 API 的所有路由模块，按调用方进行组织。

=== Agent 路由 (Called by the agent, Bearer agent token) ===
- agent.py: 心跳与身份绑定判定、设备注册/更新/删除、设备全量同步

=== 仪表盘路由 (Called by the dashboard, JWT session) ===
- auth.py: 用户注册、登录、JWT令牌刷新
- agent_tokens.py: Agent令牌管理（生成、列表、吊销、批准、拒绝）
- devices.py: 设备只读查询与网络状态
- account.py: 账户注销

路由注册:
所有路由模块在 main.py 中通过 app.include_router() 统一注册，统一使用 /api/v1/ 前缀。
"""
