"""
請求格式驗證工具

純函式：輸入請求 payload，回傳欄位錯誤列表（空列表代表通過）。
不做任何 I/O，必須在任何資料存取之前執行。
"""

import logging
import re
from typing import Any, List

from app.schemas.common import FieldError
from app.schemas.note import MAX_ANNOTATION_LENGTH, MAX_CONTENT_LENGTH, MAX_TITLE_LENGTH

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = 128
MAX_EMAIL_LENGTH = 255
MIN_EMAIL_LENGTH = 3

# 較嚴格的 email 格式（拒絕常見的無效寫法）
EMAIL_REGEX = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)
UUID_REGEX = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def _body_errors(payload: Any) -> List[FieldError]:
    if not isinstance(payload, dict):
        return [FieldError(field="body", message="Request body must be a JSON object")]
    return []


def _check_password(errors: List[FieldError], field: str, label: str, value: Any, min_length: int) -> None:
    if not value:
        errors.append(FieldError(field=field, message=f"{label} is required"))
    elif not isinstance(value, str):
        errors.append(FieldError(field=field, message=f"{label} must be a string"))
    elif len(value) < min_length:
        errors.append(FieldError(field=field, message=f"{label} must be at least {min_length} characters"))
    elif len(value) > MAX_PASSWORD_LENGTH:
        errors.append(FieldError(field=field, message=f"{label} is too long"))


def validate_note(payload: Any) -> List[FieldError]:
    """
    驗證筆記建立 / 更新請求

    title 與 content 皆為選填；有提供（包含 null）時必須是字串且不超過長度上限。

    Args:
        payload: 解析後的 JSON body

    Returns:
        List[FieldError]: 欄位錯誤列表
    """
    errors = _body_errors(payload)
    if errors:
        return errors

    if "title" in payload:
        title = payload["title"]
        if not isinstance(title, str):
            errors.append(FieldError(field="title", message="Title must be a string"))
        elif len(title) > MAX_TITLE_LENGTH:
            errors.append(FieldError(
                field="title", message=f"Title must not exceed {MAX_TITLE_LENGTH} characters"
            ))

    if "content" in payload:
        content = payload["content"]
        if not isinstance(content, str):
            errors.append(FieldError(field="content", message="Content must be a string"))
        elif len(content) > MAX_CONTENT_LENGTH:
            errors.append(FieldError(
                field="content", message=f"Content must not exceed {MAX_CONTENT_LENGTH} characters"
            ))

    if errors:
        logger.warning(f"❌ 筆記驗證失敗: {[e.field for e in errors]}")
    return errors


def validate_credentials(payload: Any) -> List[FieldError]:
    """驗證註冊 / 登入的 email 與密碼"""
    errors = _body_errors(payload)
    if errors:
        return errors

    email = payload.get("email")
    if not email:
        errors.append(FieldError(field="email", message="Email is required"))
    elif not isinstance(email, str):
        errors.append(FieldError(field="email", message="Email must be a string"))
    elif not EMAIL_REGEX.match(email):
        errors.append(FieldError(field="email", message="Invalid email format"))
    elif len(email) > MAX_EMAIL_LENGTH:
        errors.append(FieldError(field="email", message="Email is too long"))

    _check_password(errors, "password", "Password", payload.get("password"), MIN_PASSWORD_LENGTH)
    return errors


def validate_uuid(value: Any) -> bool:
    """
    驗證路徑參數是否為 UUID 格式

    Returns:
        bool: 8-4-4-4-12 十六進位格式（不分大小寫）則返回 True
    """
    is_valid = isinstance(value, str) and bool(UUID_REGEX.match(value))
    if not is_valid:
        logger.debug(f"❌ ID 格式驗證失敗: {value!r}")
    return is_valid


def validate_password_change(payload: Any) -> List[FieldError]:
    """
    驗證變更密碼請求

    只檢查格式；目前密碼的正確性交由身分提供者重新驗證，
    程式內不比較兩個密碼值。
    """
    errors = _body_errors(payload)
    if errors:
        return errors

    current = payload.get("currentPassword")
    if not current:
        errors.append(FieldError(field="currentPassword", message="Current password is required"))
    elif not isinstance(current, str):
        errors.append(FieldError(field="currentPassword", message="Current password must be a string"))
    elif len(current) > MAX_PASSWORD_LENGTH:
        errors.append(FieldError(field="currentPassword", message="Current password is too long"))

    _check_password(errors, "newPassword", "New password", payload.get("newPassword"), MIN_PASSWORD_LENGTH)
    return errors


def normalize_email(value: str) -> str:
    return value.strip().lower()


def validate_email_change(payload: Any) -> List[FieldError]:
    """驗證變更 email 請求（先正規化為小寫並去除空白）"""
    errors = _body_errors(payload)
    if errors:
        return errors

    new_email = payload.get("newEmail")
    if not new_email:
        errors.append(FieldError(field="newEmail", message="New email is required"))
    elif not isinstance(new_email, str):
        errors.append(FieldError(field="newEmail", message="New email must be a string"))
    else:
        normalized = normalize_email(new_email)
        if not EMAIL_REGEX.match(normalized):
            errors.append(FieldError(field="newEmail", message="Invalid email format"))
        elif len(normalized) > MAX_EMAIL_LENGTH:
            errors.append(FieldError(field="newEmail", message="Email is too long"))
        elif len(normalized) < MIN_EMAIL_LENGTH:
            errors.append(FieldError(field="newEmail", message="Email is too short"))
    return errors


def validate_annotation(payload: Any) -> List[FieldError]:
    """驗證版本說明：必填、不可全空白、最多 500 字"""
    errors = _body_errors(payload)
    if errors:
        return errors

    annotation = payload.get("annotation")
    if not isinstance(annotation, str) or not annotation.strip():
        errors.append(FieldError(field="annotation", message="Annotation is required"))
    elif len(annotation) > MAX_ANNOTATION_LENGTH:
        errors.append(FieldError(
            field="annotation", message=f"Annotation must not exceed {MAX_ANNOTATION_LENGTH} characters"
        ))
    return errors
