"""
VersionsStore

筆記版本快照：建立時複製筆記當下的標題與內容，之後不再修改
"""

import logging
from typing import Any, Dict, List

from supabase import Client

from app.core.errors import NotFound, UpstreamFailure
from app.services.notes_store import NotesStore, execute

logger = logging.getLogger(__name__)

VERSIONS_TABLE = "note_versions"


class VersionsStore:
    """以使用者為範圍的版本快照存取"""

    def __init__(self, client: Client, user_id: str):
        self.client = client
        self.user_id = str(user_id)
        self.notes = NotesStore(client, user_id)

    @classmethod
    def for_context(cls, ctx) -> "VersionsStore":
        return cls(ctx.client, ctx.user_id)

    def _table(self):
        return self.client.table(VERSIONS_TABLE)

    def list_for_note(self, note_id: str) -> List[Dict[str, Any]]:
        """列出某篇筆記的版本，版本號大的在前"""
        return execute(
            self._table()
            .select("*")
            .eq("note_id", str(note_id))
            .eq("user_id", self.user_id)
            .order("version_number", desc=True),
            "fetch versions",
        )

    def get(self, version_id: str) -> Dict[str, Any]:
        rows = execute(
            self._table().select("*").eq("id", str(version_id)).eq("user_id", self.user_id).limit(1),
            "fetch version",
        )
        if not rows:
            raise NotFound("Version not found")
        return rows[0]

    def next_version_number(self, note_id: str) -> int:
        """目前最大版本號 + 1；尚無版本時為 0（刪除造成的空號不會被補回）"""
        rows = execute(
            self._table()
            .select("version_number")
            .eq("note_id", str(note_id))
            .order("version_number", desc=True)
            .limit(1),
            "fetch versions",
        )
        return rows[0]["version_number"] + 1 if rows else 0

    def create(self, note_id: str, annotation: str) -> Dict[str, Any]:
        """
        建立版本快照

        1. 取得目前筆記（必須存在、未刪除、屬於使用者）
        2. 計算下一個版本號
        3. 寫入標題 + 內容快照
        """
        note = self.notes.get(note_id)
        version_number = self.next_version_number(note_id)

        version_data = {
            "note_id": str(note_id),
            "user_id": self.user_id,
            "version_number": version_number,
            "annotation": annotation.strip(),
            "title": note["title"],
            "content": note["content"],
        }
        rows = execute(self._table().insert(version_data), "create version")
        if not rows:
            raise UpstreamFailure("Failed to create version", detail="insert returned no rows")

        logger.info(f"📸 建立版本 note={note_id} version={version_number}")
        return rows[0]

    def delete(self, version_id: str) -> Dict[str, Any]:
        rows = execute(
            self._table().delete().eq("id", str(version_id)).eq("user_id", self.user_id),
            "delete version",
        )
        if not rows:
            raise NotFound("Version not found")
        return rows[0]
