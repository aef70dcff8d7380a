"""
Notes 管理 API 端點

以使用者為範圍的筆記 CRUD、軟刪除與復原
"""

import logging

from fastapi import APIRouter, Depends, status

from app.api.deps import get_notes_store, valid_id, validated_body
from app.lib.rate_limit import api_rate_limiter, rate_limit
from app.schemas.common import ok
from app.schemas.note import NoteOut
from app.services.notes_store import NotesStore
from app.utils.validators import validate_note

# 建立路由器
router = APIRouter(
    prefix="/api/notes",
    tags=["筆記管理"],
    dependencies=[Depends(rate_limit(api_rate_limiter))],
)
logger = logging.getLogger(__name__)


@router.get("")
def list_notes(store: NotesStore = Depends(get_notes_store)):
    """列出使用者的筆記（最近更新在前，不含已刪除）"""
    return ok([NoteOut.model_validate(n) for n in store.list()])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_note(
    store: NotesStore = Depends(get_notes_store),
    payload: dict = Depends(validated_body(validate_note)),
):
    """
    建立筆記

    - body 可省略：預設標題 "Untitled"、內容空字串
    """
    note = store.create(title=payload.get("title"), content=payload.get("content"))
    return ok(NoteOut.model_validate(note))


@router.get("/{id}")
def get_note(
    store: NotesStore = Depends(get_notes_store),
    note_id: str = Depends(valid_id),
):
    return ok(NoteOut.model_validate(store.get(note_id)))


@router.put("/{id}")
def update_note(
    store: NotesStore = Depends(get_notes_store),
    note_id: str = Depends(valid_id),
    payload: dict = Depends(validated_body(validate_note)),
):
    """
    更新筆記（部分更新）

    - 只修改 body 中有提供的欄位
    - 不做衝突偵測，最後寫入者為準
    """
    note = store.update(note_id, title=payload.get("title"), content=payload.get("content"))
    return ok(NoteOut.model_validate(note))


@router.delete("/{id}")
def delete_note(
    store: NotesStore = Depends(get_notes_store),
    note_id: str = Depends(valid_id),
):
    """軟刪除筆記（可透過 restore 復原）"""
    store.soft_delete(note_id)
    return ok({"id": note_id}, message="Note deleted successfully")


@router.post("/{id}/restore")
def restore_note(
    store: NotesStore = Depends(get_notes_store),
    note_id: str = Depends(valid_id),
):
    """復原軟刪除的筆記"""
    return ok(NoteOut.model_validate(store.restore(note_id)), message="Note restored successfully")
