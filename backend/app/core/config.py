"""
应用配置模块 (Application Configuration Module)

使用 Pydantic Settings 管理 LanWatch 服务端的所有配置项，支持从 .env 文件和环境变量读取。
提供数据库连接、JWT 认证、Agent 令牌策略等配置管理。

Uses Pydantic Settings to manage all configuration items for the LanWatch server,
supporting reading from .env files and environment variables. Provides configuration
for database connections, JWT authentication and agent token policy.
"""
import logging
import secrets

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    应用全局配置类 (Application Global Configuration Class)

    字段名自动映射同名环境变量（不区分大小写），支持 .env 文件加载。

    Field names automatically map to same-named environment variables (case insensitive),
    supporting .env file loading.
    """

    # 数据库配置 (Database Configuration)
    postgres_host: str = "localhost"  # PostgreSQL 主机地址 (PostgreSQL Host)
    postgres_port: int = 5432  # PostgreSQL 端口号 (PostgreSQL Port)
    postgres_db: str = "lanwatch"  # 数据库名称 (Database Name)
    postgres_user: str = "lanwatch"  # 数据库用户名 (Database Username)
    postgres_password: str = "lanwatch_dev_password"  # 数据库密码 (Database Password)
    # 直接指定完整连接串时优先使用，例如 sqlite+aiosqlite:///./lanwatch.db
    database_url_override: str = ""

    # JWT 认证配置 (JWT Authentication Configuration)
    # ⚠️ 生产环境必须通过环境变量 JWT_SECRET_KEY 设置！
    jwt_secret_key: str = ""  # JWT 签名密钥 (JWT Secret Key)
    jwt_algorithm: str = "HS256"  # JWT 算法 (JWT Algorithm)
    jwt_access_token_expire_minutes: int = 120  # 访问令牌过期时间（分钟） (Access Token Expiry Minutes)
    jwt_refresh_token_expire_days: int = 7  # 刷新令牌过期时间（天） (Refresh Token Expiry Days)

    # Agent 令牌配置 (Agent Token Configuration)
    agent_token_bytes: int = 32  # 令牌随机字节数，32 字节 = 64 位十六进制 (Random bytes per token)
    agent_token_min_length: int = 32  # 低于此长度的 Bearer 值直接拒绝 (Minimum accepted bearer length)
    heartbeat_interval: int = 60  # 建议的心跳间隔（秒） (Suggested heartbeat interval in seconds)

    environment: str = "development"  # 运行环境：development/production (Runtime Environment)
    frontend_url: str = "http://localhost:3001"  # 前端 URL (Frontend URL)

    @property
    def database_url(self) -> str:
        """
        构造数据库异步连接 URL (Build Async Database Connection URL)

        未设置 DATABASE_URL_OVERRIDE 时，生成适用于 asyncpg 驱动的 PostgreSQL 连接字符串。
        """
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}  # Pydantic 配置：自动加载 .env 文件 (Pydantic Config: Auto-load .env file)


# 全局配置实例 (Global Configuration Instance)
settings = Settings()

# JWT 密钥安全检查：未设置时生成随机密钥并警告
if not settings.jwt_secret_key or settings.jwt_secret_key == "change-me-in-production":
    settings.jwt_secret_key = secrets.token_urlsafe(64)
    logger.warning(
        "JWT_SECRET_KEY 未设置，已自动生成随机密钥。此密钥在每次重启后会变化，所有已签发的会话将失效。"
        " | JWT_SECRET_KEY not set, using auto-generated random key. "
        "All issued sessions will be invalidated on restart. "
        "Set JWT_SECRET_KEY environment variable in production!"
    )
