"""
共用回應模型

所有 API 回應都遵循 `{success, data?, error?, errors?, message?}` 信封格式
"""

from typing import Any, List, Optional

from pydantic import BaseModel, Field


class FieldError(BaseModel):
    """單一欄位的驗證錯誤"""
    field: str = Field(description="欄位名稱")
    message: str = Field(description="錯誤訊息")


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    """建立成功回應；data 為 None 時省略（空列表仍會保留）"""
    body: dict = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return body


def fail(error: str, errors: Optional[List[FieldError]] = None, **extra: Any) -> dict:
    """建立失敗回應"""
    body: dict = {"success": False, "error": error}
    if errors:
        body["errors"] = [e.model_dump() for e in errors]
    body.update({k: v for k, v in extra.items() if v is not None})
    return body
