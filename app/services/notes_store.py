"""
NotesStore

筆記的 CRUD：所有操作都限定在呼叫者自己的資料列，
「不存在」與「不屬於你」一律回報 NotFound。
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client

from app.core.errors import NotFound, UpstreamFailure
from app.schemas.note import DEFAULT_TITLE

logger = logging.getLogger(__name__)

NOTES_TABLE = "notes"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def execute(query: Any, action: str) -> List[Dict[str, Any]]:
    """
    執行 PostgREST 查詢並回傳資料列

    外部服務錯誤一律包成 UpstreamFailure，客戶端只會看到 `Failed to <action>`。
    """
    try:
        response = query.execute()
    except Exception as e:
        logger.error(f"❌ Supabase 操作失敗 ({action}): {e}")
        raise UpstreamFailure(f"Failed to {action}", detail=str(e)) from e
    data = getattr(response, "data", None)
    return data if isinstance(data, list) else ([data] if data else [])


class NotesStore:
    """以使用者為範圍的筆記存取"""

    def __init__(self, client: Client, user_id: str):
        self.client = client
        self.user_id = str(user_id)

    @classmethod
    def for_context(cls, ctx) -> "NotesStore":
        return cls(ctx.client, ctx.user_id)

    def _table(self):
        return self.client.table(NOTES_TABLE)

    def list(self) -> List[Dict[str, Any]]:
        """列出使用者未刪除的筆記，最近更新的在前"""
        return execute(
            self._table()
            .select("*")
            .eq("user_id", self.user_id)
            .eq("is_deleted", False)
            .order("updated_at", desc=True),
            "fetch notes",
        )

    def _find(self, note_id: str, *, deleted: Optional[bool] = False) -> Optional[Dict[str, Any]]:
        query = self._table().select("*").eq("id", str(note_id)).eq("user_id", self.user_id)
        if deleted is not None:
            query = query.eq("is_deleted", deleted)
        rows = execute(query.limit(1), "fetch note")
        return rows[0] if rows else None

    def get(self, note_id: str) -> Dict[str, Any]:
        """取得單篇筆記；不存在、已刪除或不屬於使用者時拋出 NotFound"""
        note = self._find(note_id)
        if note is None:
            raise NotFound("Note not found")
        return note

    def create(self, title: Optional[str] = None, content: Optional[str] = None) -> Dict[str, Any]:
        """建立筆記，預設標題 "Untitled"、內容空字串"""
        note_data = {
            "user_id": self.user_id,
            "title": DEFAULT_TITLE if title is None else title,
            "content": "" if content is None else content,
            "is_deleted": False,
        }
        logger.info(f"📝 建立筆記 user={self.user_id}")
        rows = execute(self._table().insert(note_data), "create note")
        if not rows:
            raise UpstreamFailure("Failed to create note", detail="insert returned no rows")
        return rows[0]

    def update(self, note_id: str, title: Optional[str] = None, content: Optional[str] = None) -> Dict[str, Any]:
        """
        部分更新：只修改有提供的欄位

        沒有版本比對，同一篇筆記的並行寫入以最後一次為準。
        """
        update_data: Dict[str, Any] = {"updated_at": utc_now_iso()}
        if title is not None:
            update_data["title"] = title
        if content is not None:
            update_data["content"] = content

        rows = execute(
            self._table()
            .update(update_data)
            .eq("id", str(note_id))
            .eq("user_id", self.user_id)
            .eq("is_deleted", False),
            "update note",
        )
        if not rows:
            raise NotFound("Note not found")
        return rows[0]

    def soft_delete(self, note_id: str) -> Dict[str, Any]:
        """軟刪除：標記 is_deleted，保留資料以便復原"""
        rows = execute(
            self._table()
            .update({"is_deleted": True})
            .eq("id", str(note_id))
            .eq("user_id", self.user_id)
            .eq("is_deleted", False),
            "delete note",
        )
        if not rows:
            raise NotFound("Note not found")
        logger.info(f"🗑️ 筆記已軟刪除 note={note_id}")
        return rows[0]

    def restore(self, note_id: str) -> Dict[str, Any]:
        """復原軟刪除的筆記（id 與內容不變）；對未刪除的筆記為冪等操作"""
        rows = execute(
            self._table()
            .update({"is_deleted": False})
            .eq("id", str(note_id))
            .eq("user_id", self.user_id),
            "restore note",
        )
        if not rows:
            raise NotFound("Note not found")
        logger.info(f"♻️ 筆記已復原 note={note_id}")
        return rows[0]
