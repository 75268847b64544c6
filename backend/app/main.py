"""
LanWatch 后端应用入口模块 (LanWatch Backend Application Entry Module)

局域网设备远程监控服务的主应用入口：采集 Agent 定期上报发现的设备，
服务端负责 Agent 令牌认证、Agent 身份绑定审批和设备集合对账。

Main application entry point for the LanWatch server. Local collector agents
periodically report discovered devices; the server authenticates agent tokens,
gates agent bindings behind human approval and reconciles device snapshots.
"""
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.core.config import settings as app_settings
from app.core.database import Base, engine
from app.core.exceptions import register_exception_handlers
# 导入所有模型以确保 SQLAlchemy 表注册 (Import all models to ensure SQLAlchemy table registration)
from app.models import User, AgentToken, Device, NetworkState  # noqa: F401
from app.routers import account, agent, agent_tokens, auth, devices

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理器 (Application Lifecycle Manager)

    启动时自动创建缺失的数据库表（生产环境以 Alembic 迁移为准），关闭时释放连接池。
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("LanWatch started (environment=%s)", app_settings.environment)

    yield

    await engine.dispose()


# 创建 FastAPI 应用实例 (Create FastAPI application instance)
app = FastAPI(
    title="LanWatch",
    description="Remote monitoring of devices on private networks via local collector agents",
    version="0.1.0",
    lifespan=lifespan,
)

# 注册全局异常处理器 (Register global exception handlers)
register_exception_handlers(app)

# CORS：Agent 接口依赖 Bearer 令牌而非来源校验，允许任意来源；生产环境仪表盘来源受限
# (Agent endpoints are protected by bearer tokens, not origin checks)
is_production = app_settings.environment.lower() == "production"
allowed_origins = ["*"] if not is_production else [
    "http://localhost:3001",
    "https://localhost:3001",
    app_settings.frontend_url,
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# 注册所有 API 路由模块 (Register all API router modules)
app.include_router(auth.router)  # 用户认证 (User authentication)
app.include_router(agent_tokens.router)  # Agent 令牌管理 (Agent token management)
app.include_router(agent.router)  # Agent 数据上报 (Agent reporting)
app.include_router(devices.router)  # 设备查询 (Device queries)
app.include_router(account.router)  # 账户管理 (Account management)


@app.get("/health")
@app.get("/api/v1/health")
async def health():
    """
    健康检查接口 (Health Check Endpoint)

    验证 API 与数据库连通性，用于负载均衡器健康检查。
    """
    checks = {"api": "ok"}

    # 数据库连通性检查 (Database connectivity check)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception:
        logger.exception("Database health check failed")
        checks["database"] = "error"

    status = "ok" if all(v == "ok" for v in checks.values()) else "degraded"

    return {
        "status": status,
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
