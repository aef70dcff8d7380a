"""
錯誤處理

把 AppError、FastAPI 驗證錯誤、HTTPException 與未預期的例外
統一轉成 `{success: false, error, errors?}` 回應。
"""

import logging
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import get_settings
from app.core.errors import AppError, RateLimited, UpstreamFailure, ValidationFailed
from app.schemas.common import FieldError, fail

logger = logging.getLogger(__name__)


def _client_ip(request: Request) -> str:
    return getattr(request.client, "host", "unknown") if request.client else "unknown"


def _log_error(request: Request, status_code: int, message: str, exc: BaseException | None = None) -> None:
    """根據錯誤嚴重程度選擇日誌等級"""
    if status_code >= 500:
        logger.error(
            f"Internal server error: {message} | "
            f"Request: {request.method} {request.url.path} | "
            f"Client: {_client_ip(request)}",
            exc_info=exc,
        )
    elif status_code == 429:
        logger.info(f"Rate limited: {request.method} {request.url.path} | Client: {_client_ip(request)}")
    else:
        logger.warning(
            f"Client error: {message} | "
            f"Request: {request.method} {request.url.path} | "
            f"Client: {_client_ip(request)}"
        )


def _validation_field_errors(exc: RequestValidationError) -> List[FieldError]:
    errors = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", []) if part not in ("body", "path", "query")]
        errors.append(FieldError(field=".".join(loc) or "body", message=error.get("msg", "Invalid value")))
    return errors


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """處理應用程式錯誤"""
    _log_error(request, exc.status_code, exc.message, exc if exc.status_code >= 500 else None)

    headers: Dict[str, str] = {}
    extra: Dict[str, Any] = {}
    errors = None

    if isinstance(exc, ValidationFailed):
        errors = exc.errors
    elif isinstance(exc, RateLimited):
        headers["Retry-After"] = str(exc.retry_after)
        extra["retryAfter"] = exc.retry_after
    elif isinstance(exc, UpstreamFailure) and not get_settings().is_production():
        extra["details"] = exc.detail

    return JSONResponse(
        status_code=exc.status_code,
        content=fail(exc.message, errors, **extra),
        headers=headers or None,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """處理 FastAPI 參數驗證錯誤（統一改為 400）"""
    errors = _validation_field_errors(exc)
    _log_error(request, 400, f"參數驗證失敗: {[e.field for e in errors]}")
    return JSONResponse(status_code=400, content=fail("Validation failed", errors))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """處理路由層 HTTPException（未知路徑、方法不允許等）"""
    _log_error(request, exc.status_code, str(exc.detail))
    return JSONResponse(
        status_code=exc.status_code,
        content=fail(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """最外層保護：捕捉所有未處理的例外，回傳 500"""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            _log_error(request, 500, str(exc), exc)

            extra: Dict[str, Any] = {}
            if not get_settings().is_production():
                extra["details"] = f"{type(exc).__name__}: {exc}"
            return JSONResponse(status_code=500, content=fail("Internal server error", **extra))


def register_error_handlers(app: FastAPI) -> None:
    """註冊所有錯誤處理器與中介軟體"""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_middleware(ErrorHandlerMiddleware)
