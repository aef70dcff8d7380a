"""
網址 hash 路由

`#note/{id}` 直接連到某篇筆記；空字串或 `#` 顯示空白狀態
"""

from typing import Optional

from app.utils.validators import validate_uuid

NOTE_HASH_PREFIX = "#note/"


def note_hash(note_id: str) -> str:
    return f"{NOTE_HASH_PREFIX}{note_id}"


def parse_note_hash(location_hash: Optional[str]) -> Optional[str]:
    """
    解析 location.hash

    Returns:
        Optional[str]: 筆記 ID；空白、`#` 或格式不符時為 None
    """
    value = (location_hash or "").strip()
    if not value.startswith(NOTE_HASH_PREFIX):
        return None
    note_id = value[len(NOTE_HASH_PREFIX):].strip("/")
    return note_id if validate_uuid(note_id) else None
