"""
Note / NoteVersion Pydantic 模型

定義筆記與版本快照的輸出模型（寫入請求由 app.utils.validators 驗證）
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

MAX_TITLE_LENGTH = 200
MAX_CONTENT_LENGTH = 1_000_000
MAX_ANNOTATION_LENGTH = 500
DEFAULT_TITLE = "Untitled"


class NoteOut(BaseModel):
    """筆記輸出模型"""
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: UUID = Field(description="筆記 ID")
    user_id: UUID = Field(description="擁有者 ID")
    title: str = Field(description="標題")
    content: str = Field(description="筆記內容（Markdown）")
    created_at: datetime = Field(description="建立時間")
    updated_at: datetime = Field(description="最後更新時間")
    is_deleted: bool = Field(False, description="是否已軟刪除")


class NoteVersionOut(BaseModel):
    """版本快照輸出模型（建立後不可變）"""
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: UUID = Field(description="版本 ID")
    note_id: UUID = Field(description="所屬筆記 ID")
    user_id: UUID = Field(description="擁有者 ID")
    version_number: int = Field(ge=0, description="每篇筆記遞增的版本號，從 0 開始")
    annotation: str = Field(description="使用者輸入的版本說明")
    title: str = Field(description="快照標題")
    content: str = Field(description="快照內容")
    created_at: Optional[datetime] = Field(None, description="建立時間")
