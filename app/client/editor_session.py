"""
編輯器工作階段狀態機

對應瀏覽器端的筆記編輯畫面：
- 目前開啟的筆記、標題欄、Monaco 編輯器內容
- 自動儲存（debounce）與儲存狀態指示
- 版本快照檢視（唯讀）、建立與刪除
- 軟刪除後的復原提示
- 編輯 / 預覽模式切換與 `#note/{id}` 路由

所有 API 回應在套用前都會確認目標筆記仍是目前筆記，
避免較慢的回應覆蓋使用者已切換過去的畫面。
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

from app.client.api import ApiError, NotesApiClient, SessionExpired
from app.client.routing import note_hash, parse_note_hash
from app.core.config import settings
from app.schemas.note import DEFAULT_TITLE, MAX_ANNOTATION_LENGTH

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    EMPTY = "empty"
    EDITING = "editing"
    VIEWING_VERSION = "viewing_version"
    DELETED = "deleted"


class SaveStatus(str, enum.Enum):
    NONE = ""
    SAVED = "saved"
    UNSAVED = "unsaved"
    SAVING = "saving"
    ERROR = "error"


class DisplayMode(str, enum.Enum):
    EDIT = "edit"
    PREVIEW = "preview"


class SidePanel(str, enum.Enum):
    NOTES = "notes"
    VERSIONS = "versions"


@dataclass
class EditorBuffer:
    """編輯器元件的狀態（ready 為 False 表示尚未初始化完成）"""
    ready: bool = True
    value: str = ""
    read_only: bool = False


def _no_alert(message: str) -> None:
    logger.warning(f"⚠️ {message}")


def _always_confirm(message: str) -> bool:
    return True


class EditorSession:
    """單一使用者的筆記編輯工作階段"""

    def __init__(
        self,
        api: NotesApiClient,
        render_markdown: Callable[[str], str],
        *,
        editor: Optional[EditorBuffer] = None,
        alert: Callable[[str], None] = _no_alert,
        confirm: Callable[[str], bool] = _always_confirm,
        on_logout: Optional[Callable[[], None]] = None,
        autosave_delay: Optional[float] = None,
        retry_delay: Optional[float] = None,
    ):
        """
        Args:
            api: Notes API 客戶端
            render_markdown: Markdown → HTML 轉換函式（預覽模式使用）
            editor: 編輯器狀態，預設為已就緒的空白編輯器
            alert: 顯示錯誤訊息
            confirm: 刪除前的確認對話框
            on_logout: token 失效或登出時呼叫（回到登入頁）
            autosave_delay: 自動儲存延遲秒數，預設依設定檔
            retry_delay: 編輯器尚未就緒時的重試間隔秒數
        """
        self.api = api
        self.render_markdown = render_markdown
        self.editor = editor or EditorBuffer()
        self.alert = alert
        self.confirm = confirm
        self.on_logout = on_logout
        self.autosave_delay = settings.AUTOSAVE_DELAY_SEC if autosave_delay is None else autosave_delay
        self.retry_delay = settings.EDITOR_RETRY_DELAY_SEC if retry_delay is None else retry_delay

        self.state = SessionState.EMPTY
        self.status = SaveStatus.NONE
        self.mode = DisplayMode.EDIT
        self.panel = SidePanel.NOTES

        self.notes: List[Dict[str, Any]] = []
        self.versions: List[Dict[str, Any]] = []
        self.current_note_id: Optional[str] = None
        self.viewing_version_id: Optional[str] = None
        self.title = ""
        self.title_enabled = True
        self.last_saved_at: Optional[str] = None
        self.deleted_title: Optional[str] = None
        self.preview_html: Optional[str] = None
        self.location_hash = ""

        self._autosave_task: Optional[asyncio.Task] = None
        self._deferred_load: Optional[asyncio.Task] = None
        self._background_saves: Set[asyncio.Task] = set()
        self._save_lock = asyncio.Lock()
        self._load_seq = 0

    # ---- 狀態查詢 ----

    @property
    def is_saving(self) -> bool:
        return self._save_lock.locked()

    @property
    def pending_autosave(self) -> Optional[asyncio.Task]:
        return self._autosave_task

    @property
    def pending_load(self) -> Optional[asyncio.Task]:
        return self._deferred_load

    def _find_note(self, note_id: str) -> Optional[Dict[str, Any]]:
        return next((n for n in self.notes if n["id"] == note_id), None)

    def _merge_note(self, note: Dict[str, Any]) -> None:
        for i, existing in enumerate(self.notes):
            if existing["id"] == note["id"]:
                self.notes[i] = note
                return

    # ---- 筆記列表與載入 ----

    async def load_notes(self) -> List[Dict[str, Any]]:
        """
        取得筆記列表

        失敗時保留原本的列表；列表為空且沒有開啟任何筆記時才顯示空白狀態
        （版本檢視與刪除後的復原提示都不受影響）
        """
        try:
            notes = await self.api.list_notes()
        except SessionExpired:
            self._session_expired()
            return self.notes
        except ApiError as e:
            logger.error(f"❌ 載入筆記列表失敗: {e.message}")
            self.alert("Failed to fetch notes")
            return self.notes

        self.notes = notes
        if not notes and self.current_note_id is None:
            self.show_empty_state()
        return notes

    async def load_note(self, note_id: str) -> bool:
        """
        開啟筆記

        - 編輯器尚未就緒時延後重試
        - 較新的載入會取代仍在進行中的舊載入
        - 離開前尚未儲存的修改會立即送出
        """
        self._cancel_deferred_load()
        if not self.editor.ready:
            logger.debug(f"⏳ 編輯器尚未就緒，{self.retry_delay}s 後重新載入 {note_id}")
            self._deferred_load = asyncio.create_task(self._retry_load(note_id))
            return False

        if note_id != self.current_note_id:
            self._flush_in_background()
        self._cancel_autosave()

        self._load_seq += 1
        seq = self._load_seq
        try:
            note = await self.api.get_note(note_id)
        except SessionExpired:
            self._session_expired()
            return False
        except ApiError as e:
            if seq != self._load_seq:
                return False
            logger.warning(f"⚠️ 載入筆記失敗 {note_id}: {e.message}")
            self.alert(f"Failed to load note: {e.message}")
            if e.status_code == 404:
                self.show_empty_state()
            return False

        if seq != self._load_seq:
            logger.debug(f"🔄 載入 {note_id} 已被較新的請求取代")
            return False

        self._merge_note(note)
        self._enter_editing(note)
        return True

    async def _retry_load(self, note_id: str) -> None:
        await asyncio.sleep(self.retry_delay)
        self._deferred_load = None
        await self.load_note(note_id)

    def _enter_editing(self, note: Dict[str, Any]) -> None:
        if note["id"] != self.current_note_id:
            self.versions = []
            self.panel = SidePanel.NOTES
        self.state = SessionState.EDITING
        self.current_note_id = note["id"]
        self.viewing_version_id = None
        self.deleted_title = None
        self.title = note.get("title") or ""
        self.title_enabled = True
        self.editor.value = note.get("content") or ""
        self.editor.read_only = False
        self.mode = DisplayMode.EDIT
        self.preview_html = None
        self.status = SaveStatus.SAVED
        self.last_saved_at = note.get("updated_at")
        self.location_hash = note_hash(note["id"])

    def show_empty_state(self) -> None:
        self._cancel_deferred_load()
        self._flush_in_background()
        self._cancel_autosave()
        self._load_seq += 1
        self.state = SessionState.EMPTY
        self.current_note_id = None
        self.viewing_version_id = None
        self.deleted_title = None
        self.title = ""
        self.editor.value = ""
        self.editor.read_only = False
        self.versions = []
        self.panel = SidePanel.NOTES
        self.status = SaveStatus.NONE
        self.preview_html = None
        self.location_hash = ""

    async def create_new_note(self) -> Optional[Dict[str, Any]]:
        """建立空白筆記並直接開啟"""
        try:
            note = await self.api.create_note()
        except SessionExpired:
            self._session_expired()
            return None
        except ApiError as e:
            self.alert(f"Failed to create note: {e.message}")
            return None

        self._flush_in_background()
        self._cancel_autosave()
        self._load_seq += 1
        self.notes.insert(0, note)
        self._enter_editing(note)
        logger.info(f"📝 已建立新筆記 {note['id']}")
        return note

    # ---- 編輯與自動儲存 ----

    def _accepts_edits(self) -> bool:
        return (
            self.state is SessionState.EDITING
            and self.current_note_id is not None
            and not self.editor.read_only
        )

    def edit_title(self, text: str) -> bool:
        if not self._accepts_edits():
            return False
        self.title = text
        self.schedule_autosave()
        return True

    def edit_content(self, text: str) -> bool:
        if not self._accepts_edits():
            return False
        self.editor.value = text
        if self.mode is DisplayMode.PREVIEW:
            self.preview_html = self.render_markdown(text)
        self.schedule_autosave()
        return True

    def schedule_autosave(self) -> None:
        """重設 debounce 計時器；延遲內的連續修改只會觸發一次儲存"""
        if self.current_note_id is None or self.state is not SessionState.EDITING:
            return
        self._cancel_autosave()
        self.status = SaveStatus.UNSAVED
        self._autosave_task = asyncio.create_task(self._autosave_after_delay())

    async def _autosave_after_delay(self) -> None:
        await asyncio.sleep(self.autosave_delay)
        # 計時器已觸發，之後的取消不應中斷進行中的儲存
        self._autosave_task = None
        await self.save_current_note()

    def _cancel_autosave(self) -> None:
        if self._autosave_task is not None and not self._autosave_task.done():
            self._autosave_task.cancel()
        self._autosave_task = None

    def _cancel_deferred_load(self) -> None:
        if self._deferred_load is not None and not self._deferred_load.done():
            self._deferred_load.cancel()
        self._deferred_load = None

    def _snapshot(self) -> Dict[str, str]:
        return {
            "note_id": self.current_note_id,
            "title": self.title.strip() or DEFAULT_TITLE,
            "content": self.editor.value,
        }

    async def save_current_note(self) -> bool:
        """
        儲存目前筆記

        已有儲存進行中時不排隊，改為重新排程自動儲存
        """
        if self.current_note_id is None or self.state is not SessionState.EDITING or not self.editor.ready:
            return False
        if self.is_saving:
            logger.debug("⏳ 上一次儲存尚未完成，重新排程自動儲存")
            self.schedule_autosave()
            return False
        return await self._save(**self._snapshot())

    async def _save(self, note_id: str, title: str, content: str) -> bool:
        async with self._save_lock:
            if self.current_note_id == note_id and self.state is SessionState.EDITING:
                self.status = SaveStatus.SAVING
            try:
                note = await self.api.update_note(note_id, title=title, content=content)
            except SessionExpired:
                self._session_expired()
                return False
            except ApiError as e:
                logger.error(f"❌ 儲存筆記失敗 {note_id}: {e.message}")
                if self.current_note_id == note_id and self.state is SessionState.EDITING:
                    self.status = SaveStatus.ERROR
                return False

            self._merge_note(note)
            # 使用者已切換到其他筆記或版本時，不動目前畫面
            if self.current_note_id == note_id and self.state is SessionState.EDITING:
                if self._autosave_task is None:
                    self.status = SaveStatus.SAVED
                self.last_saved_at = note.get("updated_at")
            logger.debug(f"💾 筆記已儲存 {note_id}")
            return True

    def _flush_in_background(self) -> None:
        """有尚未觸發的自動儲存時，立即以目前內容在背景送出"""
        if self._autosave_task is None or self.state is not SessionState.EDITING:
            return
        self._cancel_autosave()
        task = asyncio.create_task(self._save(**self._snapshot()))
        self._background_saves.add(task)
        task.add_done_callback(self._background_saves.discard)

    async def flush_pending_save(self) -> None:
        """送出尚未觸發的自動儲存，並等待所有進行中的儲存完成"""
        if self._autosave_task is not None and self.state is SessionState.EDITING:
            self._cancel_autosave()
            await self._save(**self._snapshot())
        await self.wait_for_saves()

    async def wait_for_saves(self) -> None:
        if self._background_saves:
            await asyncio.gather(*list(self._background_saves))
        async with self._save_lock:
            pass

    # ---- 刪除與復原 ----

    async def delete_current_note(self) -> bool:
        """軟刪除目前筆記，畫面改為顯示復原提示（保留目前筆記 ID）"""
        if self.current_note_id is None or self.state not in (SessionState.EDITING, SessionState.VIEWING_VERSION):
            return False
        if not self.confirm("Are you sure you want to delete this note?"):
            return False

        self._cancel_autosave()
        note_id = self.current_note_id
        cached = self._find_note(note_id)
        title = (cached or {}).get("title") or self.title or DEFAULT_TITLE
        try:
            await self.api.delete_note(note_id)
        except SessionExpired:
            self._session_expired()
            return False
        except ApiError as e:
            logger.error(f"❌ 刪除筆記失敗 {note_id}: {e.message}")
            self.alert("Failed to delete note")
            return False

        self.notes = [n for n in self.notes if n["id"] != note_id]
        if self.current_note_id != note_id:
            return True

        self._load_seq += 1
        self.state = SessionState.DELETED
        self.deleted_title = title
        self.viewing_version_id = None
        self.versions = []
        self.panel = SidePanel.NOTES
        self.status = SaveStatus.NONE
        self.preview_html = None
        logger.info(f"🗑️ 筆記已刪除 {note_id}")
        return True

    async def recover_note(self) -> bool:
        if self.state is not SessionState.DELETED or self.current_note_id is None:
            return False
        note_id = self.current_note_id
        try:
            note = await self.api.restore_note(note_id)
        except SessionExpired:
            self._session_expired()
            return False
        except ApiError as e:
            logger.error(f"❌ 復原筆記失敗 {note_id}: {e.message}")
            self.alert("Failed to recover note")
            return False

        self.notes = [n for n in self.notes if n["id"] != note["id"]]
        self.notes.insert(0, note)
        if self.current_note_id == note_id and self.state is SessionState.DELETED:
            self._enter_editing(note)
        logger.info(f"♻️ 筆記已復原 {note_id}")
        return True

    # ---- 版本 ----

    async def load_versions(self) -> List[Dict[str, Any]]:
        if self.current_note_id is None:
            self.versions = []
            return []
        note_id = self.current_note_id
        try:
            versions = await self.api.list_versions(note_id)
        except SessionExpired:
            self._session_expired()
            return []
        except ApiError as e:
            logger.error(f"❌ 載入版本列表失敗 {note_id}: {e.message}")
            self.alert("Failed to load versions")
            return self.versions

        if self.current_note_id == note_id:
            self.versions = versions
        return versions

    async def switch_panel(self, panel: SidePanel) -> None:
        self.panel = SidePanel(panel)
        if self.panel is SidePanel.VERSIONS:
            await self.load_versions()

    async def view_version(self, version_id: str) -> bool:
        """以唯讀方式顯示版本快照（先送出尚未儲存的修改）"""
        if self.current_note_id is None or self.state not in (SessionState.EDITING, SessionState.VIEWING_VERSION):
            return False
        await self.flush_pending_save()

        note_id = self.current_note_id
        self._load_seq += 1
        seq = self._load_seq
        try:
            version = await self.api.get_version(version_id)
        except SessionExpired:
            self._session_expired()
            return False
        except ApiError as e:
            logger.error(f"❌ 載入版本失敗 {version_id}: {e.message}")
            self.alert("Failed to load version")
            return False

        if seq != self._load_seq or self.current_note_id != note_id:
            return False

        self._cancel_autosave()
        self.state = SessionState.VIEWING_VERSION
        self.viewing_version_id = version["id"]
        self.title = version.get("title") or ""
        self.title_enabled = False
        self.editor.value = version.get("content") or ""
        self.editor.read_only = True
        if self.mode is DisplayMode.PREVIEW:
            self.preview_html = self.render_markdown(self.editor.value)
        return True

    async def exit_version_view(self) -> bool:
        """離開版本檢視，重新載入筆記目前內容"""
        if self.state is not SessionState.VIEWING_VERSION or self.current_note_id is None:
            return False
        return await self.load_note(self.current_note_id)

    async def create_version(self, annotation: Optional[str]) -> Optional[Dict[str, Any]]:
        """
        建立版本快照

        Args:
            annotation: 版本註解；None 代表使用者取消輸入

        Returns:
            Optional[Dict]: 建立的版本，取消或失敗時為 None
        """
        if annotation is None or self.state is not SessionState.EDITING or self.current_note_id is None:
            return None
        text = annotation.strip()
        if not text:
            self.alert("Annotation is required")
            return None
        if len(text) > MAX_ANNOTATION_LENGTH:
            self.alert(f"Annotation must be {MAX_ANNOTATION_LENGTH} characters or less")
            return None

        # 快照取自伺服器上的內容，先把尚未儲存的修改送出
        await self.flush_pending_save()

        note_id = self.current_note_id
        try:
            version = await self.api.create_version(note_id, text)
        except SessionExpired:
            self._session_expired()
            return None
        except ApiError as e:
            logger.error(f"❌ 建立版本失敗 {note_id}: {e.message}")
            self.alert(f"Failed to create version: {e.message}")
            return None

        logger.info(f"📌 已建立版本 {version.get('version_number')} ({note_id})")
        if self.current_note_id == note_id:
            self.panel = SidePanel.VERSIONS
            await self.load_versions()
        return version

    async def delete_version(self, version_id: str) -> bool:
        if not self.confirm("Are you sure you want to delete this version?"):
            return False
        try:
            await self.api.delete_version(version_id)
        except SessionExpired:
            self._session_expired()
            return False
        except ApiError as e:
            logger.error(f"❌ 刪除版本失敗 {version_id}: {e.message}")
            self.alert("Failed to delete version")
            return False

        self.versions = [v for v in self.versions if v["id"] != version_id]
        if self.viewing_version_id == version_id:
            await self.exit_version_view()
        return True

    # ---- 顯示模式與路由 ----

    def switch_mode(self, mode: DisplayMode) -> None:
        self.mode = DisplayMode(mode)
        if self.mode is DisplayMode.PREVIEW:
            self.preview_html = self.render_markdown(self.editor.value)
        else:
            self.preview_html = None

    async def navigate(self, location_hash: str) -> bool:
        """依 location.hash 開啟筆記或顯示空白狀態"""
        note_id = parse_note_hash(location_hash)
        if note_id is None:
            self.show_empty_state()
            return True
        if note_id == self.current_note_id and self.state is SessionState.EDITING:
            return True
        return await self.load_note(note_id)

    # ---- 工作階段 ----

    def _session_expired(self) -> None:
        logger.warning("🔐 登入已過期，返回登入頁")
        self._cancel_autosave()
        self._cancel_deferred_load()
        self.api.access_token = None
        if self.on_logout is not None:
            self.on_logout()

    async def logout(self) -> None:
        self._cancel_autosave()
        self._cancel_deferred_load()
        try:
            await self.api.sign_out()
        except ApiError as e:
            logger.warning(f"⚠️ 登出請求失敗: {e.message}")
        if self.on_logout is not None:
            self.on_logout()

    async def close(self) -> None:
        """取消計時器並等待背景儲存完成"""
        self._cancel_deferred_load()
        await self.flush_pending_save()
