"""
API 共用依賴

請求處理順序：速率限制（router 層）→ 驗證 token → 格式驗證 → 資料存取
"""

import json
from typing import Any, Callable, List

from fastapi import Depends, Request

from app.core.errors import ValidationFailed
from app.middleware.auth_gate import AuthContext, require_auth
from app.schemas.common import FieldError
from app.services.notes_store import NotesStore
from app.services.versions_store import VersionsStore
from app.utils.validators import validate_uuid


async def json_body(request: Request) -> Any:
    """讀取 JSON body；沒有 body 時視為空物件"""
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        raise ValidationFailed([FieldError(field="body", message="Malformed JSON body")])


def validated_body(validator: Callable[[Any], List[FieldError]]) -> Callable:
    """建立依賴：以指定 validator 檢查 body，失敗時拋出 ValidationFailed"""

    def dependency(payload: Any = Depends(json_body)) -> dict:
        errors = validator(payload)
        if errors:
            raise ValidationFailed(errors)
        return payload

    return dependency


def _check_id(value: str) -> str:
    if not validate_uuid(value):
        raise ValidationFailed(message="Invalid ID format")
    return value.lower()


def valid_id(id: str) -> str:
    """路徑參數 `{id}` 必須是 UUID 格式"""
    return _check_id(id)


def valid_note_id(note_id: str) -> str:
    """路徑參數 `{note_id}` 必須是 UUID 格式"""
    return _check_id(note_id)


def get_notes_store(ctx: AuthContext = Depends(require_auth)) -> NotesStore:
    return NotesStore.for_context(ctx)


def get_versions_store(ctx: AuthContext = Depends(require_auth)) -> VersionsStore:
    return VersionsStore.for_context(ctx)
