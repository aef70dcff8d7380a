"""
Note Versions API 端點

版本快照的列表、建立、讀取與刪除
"""

import logging

from fastapi import APIRouter, Depends, status

from app.api.deps import get_versions_store, valid_id, valid_note_id, validated_body
from app.lib.rate_limit import api_rate_limiter, rate_limit
from app.schemas.common import ok
from app.schemas.note import NoteVersionOut
from app.services.versions_store import VersionsStore
from app.utils.validators import validate_annotation

router = APIRouter(
    prefix="/api/versions",
    tags=["版本管理"],
    dependencies=[Depends(rate_limit(api_rate_limiter))],
)
logger = logging.getLogger(__name__)


@router.get("/note/{note_id}")
def list_versions(
    store: VersionsStore = Depends(get_versions_store),
    note_id: str = Depends(valid_note_id),
):
    """列出筆記的所有版本（版本號由大到小）"""
    return ok([NoteVersionOut.model_validate(v) for v in store.list_for_note(note_id)])


@router.post("/note/{note_id}", status_code=status.HTTP_201_CREATED)
def create_version(
    store: VersionsStore = Depends(get_versions_store),
    note_id: str = Depends(valid_note_id),
    payload: dict = Depends(validated_body(validate_annotation)),
):
    """以筆記目前的標題與內容建立版本快照"""
    version = store.create(note_id, payload["annotation"])
    return ok(
        NoteVersionOut.model_validate(version),
        message=f"Version {version['version_number']} created successfully",
    )


@router.get("/{id}")
def get_version(
    store: VersionsStore = Depends(get_versions_store),
    version_id: str = Depends(valid_id),
):
    return ok(NoteVersionOut.model_validate(store.get(version_id)))


@router.delete("/{id}")
def delete_version(
    store: VersionsStore = Depends(get_versions_store),
    version_id: str = Depends(valid_id),
):
    store.delete(version_id)
    return ok({"id": version_id}, message="Version deleted successfully")
