"""
全局异常处理模块 (Global Exception Handling Module)

定义业务异常类和 FastAPI 全局异常处理器，提供统一的错误响应格式：
``{"message": str, "errors": {field: [str, ...]}}``（errors 仅在字段校验失败时出现）。
所有未捕获的异常都会被转换为结构化 JSON 响应，避免裸 500 错误。

Defines business exception classes and FastAPI global exception handlers,
providing a unified error response format. All uncaught exceptions are converted
to structured JSON responses, preventing raw 500 errors.
"""
import logging
import traceback
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


# ============================================================
# 业务异常类 (Business Exception Classes)
# ============================================================

class BusinessError(Exception):
    """业务异常基类 (Base Business Exception)"""
    status_code: int = 400

    def __init__(self, message: str, errors: Optional[dict[str, list[str]]] = None):
        self.message = message
        self.errors = errors
        super().__init__(message)


class AuthenticationError(BusinessError):
    """凭证缺失、格式错误、未知或已吊销 (Missing / malformed / unknown / revoked credential)"""
    status_code = 401


class NotFoundError(BusinessError):
    """资源不存在或不属于当前用户，两种情况返回相同响应 (Absent or foreign-owned resource)"""
    status_code = 404


class ValidationError(BusinessError):
    """数据校验失败 (Validation Error)"""
    status_code = 400


class ConflictError(BusinessError):
    """资源状态冲突 (Resource State Conflict)"""
    status_code = 409


def _error_body(message: str, errors: Optional[dict[str, list[str]]] = None) -> dict:
    body: dict = {"message": message}
    if errors:
        body["errors"] = errors
    return body


def format_validation_errors(exc: RequestValidationError) -> dict[str, list[str]]:
    """
    将 Pydantic 校验错误按字段路径分组 (Group pydantic errors by dotted field path)

    ``("body", "devices", 1, "hardwareAddress")`` → ``"devices.1.hardwareAddress"``
    """
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        if err.get("type") == "json_invalid":
            # loc 中是 JSON 解码出错的字符位置，不是字段
            field = "body"
        else:
            loc = [str(part) for part in err.get("loc", ()) if part != "body"]
            field = ".".join(loc) or "body"
        errors.setdefault(field, []).append(err.get("msg", "Invalid value"))
    return errors


# ============================================================
# 全局异常处理器注册 (Global Exception Handler Registration)
# ============================================================

def register_exception_handlers(app: FastAPI) -> None:
    """
    注册全局异常处理器到 FastAPI 应用 (Register global exception handlers to FastAPI app)

    处理优先级：
    1. BusinessError 子类 → 对应 HTTP 状态码 + 结构化响应
    2. RequestValidationError → 400 + 按字段分组的错误详情（Agent 接口凭证无效时为 401）
    3. HTTPException（含路由 404/405）→ 保持状态码，包装为统一格式
    4. Exception → 500 + 完整 traceback 日志
    """

    @app.exception_handler(BusinessError)
    async def business_error_handler(request: Request, exc: BusinessError) -> JSONResponse:
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.message, exc.errors),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        # Agent 接口先认证后校验：请求体无法解析时也不能绕过 401
        from app.core.agent_auth import check_agent_credentials
        try:
            await check_agent_credentials(request)
        except AuthenticationError as auth_exc:
            return await business_error_handler(request, auth_exc)

        return JSONResponse(
            status_code=400,
            content=_error_body("Validation error", format_validation_errors(exc)),
        )

    # Starlette 基类同时覆盖路由层的 404/405
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        # 记录完整 traceback 用于调试 (Log full traceback for debugging)
        logger.error(
            "Unhandled exception on %s %s: %s\n%s",
            request.method,
            request.url.path,
            str(exc),
            traceback.format_exc(),
        )
        return JSONResponse(
            status_code=500,
            content=_error_body("Internal server error, please try again later"),
        )
