"""
全局异常处理模块 (Global Exception Handling Module)

定义控制平面的业务异常类和 FastAPI 全局异常处理器，提供统一的错误响应格式。
校验和鉴权失败都在任何状态变更之前抛出，不会部分生效。

Defines the control plane's business exception taxonomy and FastAPI global exception
handlers, providing a unified error response format. Validation and authorization
failures are raised before any state mutation.
"""
import logging
import traceback
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ============================================================
# 业务异常类 (Business Exception Classes)
# ============================================================

class BusinessError(Exception):
    """业务异常基类 (Base Business Exception)"""
    status_code: int = 400
    error: str = "business_error"

    def __init__(self, message: str, detail: Optional[str] = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class UnauthorizedError(BusinessError):
    """凭证缺失或无效 (Missing or Invalid Credential)"""
    status_code = 401
    error = "unauthorized"


class ForbiddenError(BusinessError):
    """凭证正确但作用域或权限标志不符 (Right Credential, Wrong Scope or Permission Flag)"""
    status_code = 403
    error = "forbidden"


class ValidationError(BusinessError):
    """数据校验失败 (Validation Error)"""
    status_code = 400
    error = "validation_error"


class InvalidCommandError(ValidationError):
    """命令不在白名单内 (Command Not Allow-listed)"""
    error = "invalid_command"


class InvalidUnitNameError(ValidationError):
    """systemd 单元名不合法 (Invalid systemd Unit Name)"""
    error = "invalid_unit_name"


class NotFoundError(BusinessError):
    """资源不存在 (Resource Not Found)"""
    status_code = 404
    error = "not_found"


class HostMismatchError(BusinessError):
    """动作不属于上报的主机 (Action Owned by Another Host)"""
    status_code = 403
    error = "host_mismatch"


class InvalidStateTransitionError(BusinessError):
    """动作状态迁移非法 (Illegal Action State Transition)"""
    status_code = 409
    error = "invalid_state_transition"


class ConflictError(BusinessError):
    """资源冲突 (Resource Conflict)"""
    status_code = 409
    error = "conflict"


# ============================================================
# 全局异常处理器注册 (Global Exception Handler Registration)
# ============================================================

def _error_body(error: str, message: str, detail, status_code: int) -> dict:
    return {
        "error": error,
        "message": message,
        "detail": detail,
        "status_code": status_code,
    }


def register_exception_handlers(app: FastAPI) -> None:
    """
    注册全局异常处理器到 FastAPI 应用 (Register global exception handlers to FastAPI app)

    处理优先级：
    1. BusinessError 子类 → 对应 HTTP 状态码 + 结构化响应
    2. RequestValidationError → 400 validation_error
    3. HTTPException → 保持原样，包装为统一格式
    4. Exception → 500 + 完整 traceback 日志
    """

    @app.exception_handler(BusinessError)
    async def business_error_handler(request: Request, exc: BusinessError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error, exc.message, exc.detail, exc.status_code),
            headers={"Cache-Control": "no-store"},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content=_error_body("validation_error", "请求参数校验失败 (Request validation failed)", exc.errors(), 400),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body("http_error", str(exc.detail), None, exc.status_code),
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
            content=_error_body(
                "internal_server_error",
                "服务器内部错误，请稍后重试 (Internal server error, please try again later)",
                None,
                500,
            ),
        )
