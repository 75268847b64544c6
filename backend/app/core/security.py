"""
安全工具模块 (Security Tools Module)

两类凭证的底层原语：
- 仪表盘用户：bcrypt 密码哈希 + JWT 会话令牌
- 采集 Agent：高熵随机 Bearer 令牌 + SHA-256 摘要

Low-level primitives for the two credential kinds the server deals with:
bcrypt/JWT for dashboard users, random bearer secrets with SHA-256 digests for agents.
"""
import hashlib
import secrets
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings

# 密码哈希上下文，使用 bcrypt 算法 (Password Hash Context using bcrypt algorithm)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# 界面展示用的令牌前缀长度 (Length of the non-secret display prefix)
TOKEN_PREFIX_LENGTH = 8


def hash_password(password: str) -> str:
    """对明文密码进行 bcrypt 哈希 (Hash plain text password with bcrypt)"""
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    """验证明文密码是否与哈希值匹配 (Verify plain text password against hash)"""
    return pwd_context.verify(plain, hashed)


def _create_token(subject: str, token_type: str, expires_delta: timedelta) -> str:
    expire = datetime.now(timezone.utc) + expires_delta
    return jwt.encode(
        {"sub": subject, "exp": expire, "type": token_type},
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def create_access_token(subject: str) -> str:
    """生成访问令牌（短期有效） (Generate access token with short expiry)"""
    return _create_token(subject, "access", timedelta(minutes=settings.jwt_access_token_expire_minutes))


def create_refresh_token(subject: str) -> str:
    """生成刷新令牌（长期有效） (Generate refresh token with long expiry)"""
    return _create_token(subject, "refresh", timedelta(days=settings.jwt_refresh_token_expire_days))


def decode_token(token: str) -> dict | None:
    """
    解析 JWT 令牌，失败返回 None (Decode JWT token, return None on failure)

    令牌格式错误、签名无效或已过期时返回 None。
    """
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def hash_agent_token(raw_token: str) -> str:
    """
    计算 Agent 令牌的 SHA-256 哈希值 (Calculate agent token SHA-256 digest)

    确定性摘要，数据库仅按此值查找；即使数据库泄漏也无法还原出可用令牌。

    Returns:
        str: 64 位十六进制字符串 (64-char hex digest)
    """
    return hashlib.sha256(raw_token.encode()).hexdigest()


def generate_agent_token() -> tuple[str, str, str]:
    """
    生成新的 Agent 令牌 (Generate a new agent token)

    Returns:
        tuple: (明文令牌, SHA-256 哈希, 展示前缀)
               (plaintext, sha256 hex digest, display prefix)
    """
    raw_token = secrets.token_hex(settings.agent_token_bytes)
    return raw_token, hash_agent_token(raw_token), raw_token[:TOKEN_PREFIX_LENGTH]
