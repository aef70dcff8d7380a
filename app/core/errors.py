"""
錯誤分類

每種錯誤都帶有對應的 HTTP 狀態碼與可以安全回傳給客戶端的訊息，
由 app.middleware.error_handler 統一轉成 `{success: false, ...}` 回應。
"""

from typing import List, Optional

from app.schemas.common import FieldError


class AppError(Exception):
    """應用程式錯誤基底類別"""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailed(AppError):
    """請求格式驗證失敗（400，可由使用者修正）"""

    status_code = 400
    default_message = "Validation failed"

    def __init__(self, errors: Optional[List[FieldError]] = None, message: Optional[str] = None):
        super().__init__(message)
        self.errors = list(errors or [])


class BadRequest(AppError):
    """身分提供者拒絕請求（400），例如帳號已存在、目前密碼錯誤"""

    status_code = 400
    default_message = "Bad request"


class Unauthorized(AppError):
    """缺少、無效或過期的 bearer token（401）"""

    status_code = 401
    default_message = "Invalid or expired token"


class NotFound(AppError):
    """資源不存在或不屬於呼叫者（404，兩者刻意不區分）"""

    status_code = 404
    default_message = "Not found"


class RateLimited(AppError):
    """超過速率限制（429）"""

    status_code = 429
    default_message = "Too many requests, please try again later"

    def __init__(self, retry_after: int, message: Optional[str] = None):
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamFailure(AppError):
    """外部服務（Supabase）呼叫失敗（500）"""

    status_code = 500

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        super().__init__(message)
        # 僅記錄在伺服器日誌；非 production 環境才會附在回應中
        self.detail = detail
