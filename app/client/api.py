"""
Notes API 客戶端

瀏覽器端 fetch 輔助函式的 Python 對應版本：包裝 JSON API 信封，
把失敗轉成 ApiError（401 → SessionExpired，429 → RateLimitedError）。
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from app.lib.httpx_timeout import get_httpx_timeout

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """API 請求失敗（status_code 為 0 代表網路錯誤）"""

    def __init__(self, status_code: int, message: str, errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.errors = errors or []


class SessionExpired(ApiError):
    """token 缺少、無效或過期，客戶端應登出並回到登入頁"""


class RateLimitedError(ApiError):
    def __init__(self, message: str, retry_after: int):
        super().__init__(429, message)
        self.retry_after = retry_after


class NotesApiClient:
    """Notes JSON API 的非同步客戶端"""

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[httpx.Timeout] = None,
    ):
        """
        Args:
            base_url: 服務根網址，例如 http://localhost:3000
            access_token: 已登入時的 JWT
            transport: 測試用 transport（例如 httpx.ASGITransport）
            timeout: 請求逾時，預設依設定檔
        """
        self.access_token = access_token
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            transport=transport,
            timeout=timeout or get_httpx_timeout(),
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "NotesApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = await self._http.request(method, path, json=json, headers=self._headers())
        except httpx.HTTPError as e:
            logger.warning(f"❌ 網路錯誤 {method} {path}: {e}")
            raise ApiError(0, "Network error, please check your connection") from e

        try:
            body = response.json()
        except ValueError as e:
            if response.status_code == 401:
                raise SessionExpired(401, "Session expired") from e
            raise ApiError(response.status_code, "Invalid response from server") from e

        if not isinstance(body, dict):
            body = {}
        message = body.get("error")
        if response.status_code == 401:
            raise SessionExpired(401, message or "Session expired")
        if response.status_code == 429:
            retry_after = int(response.headers.get("Retry-After") or body.get("retryAfter") or 0)
            raise RateLimitedError(message or "Too many requests", retry_after)
        if response.status_code >= 400 or not body.get("success"):
            raise ApiError(
                response.status_code,
                message or f"Request failed ({response.status_code})",
                body.get("errors"),
            )
        return body.get("data")

    # ---- 身分驗證 ----

    async def sign_up(self, email: str, password: str) -> Dict[str, Any]:
        data = await self._request("POST", "/api/auth/signup", {"email": email, "password": password})
        self._remember_session(data)
        return data

    async def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        data = await self._request("POST", "/api/auth/signin", {"email": email, "password": password})
        self._remember_session(data)
        return data

    def _remember_session(self, data: Optional[Dict[str, Any]]) -> None:
        session = (data or {}).get("session") or {}
        if session.get("access_token"):
            self.access_token = session["access_token"]

    async def sign_out(self) -> None:
        try:
            await self._request("POST", "/api/auth/signout")
        finally:
            self.access_token = None

    async def change_password(self, current_password: str, new_password: str) -> None:
        await self._request(
            "PUT", "/api/auth/password",
            {"currentPassword": current_password, "newPassword": new_password},
        )

    async def change_email(self, new_email: str) -> None:
        await self._request("PUT", "/api/auth/email", {"newEmail": new_email})

    # ---- 筆記 ----

    async def list_notes(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/api/notes") or []

    async def get_note(self, note_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/api/notes/{note_id}")

    async def create_note(self, title: Optional[str] = None, content: Optional[str] = None) -> Dict[str, Any]:
        payload = {k: v for k, v in {"title": title, "content": content}.items() if v is not None}
        return await self._request("POST", "/api/notes", payload)

    async def update_note(self, note_id: str, title: Optional[str] = None, content: Optional[str] = None) -> Dict[str, Any]:
        payload = {k: v for k, v in {"title": title, "content": content}.items() if v is not None}
        return await self._request("PUT", f"/api/notes/{note_id}", payload)

    async def delete_note(self, note_id: str) -> None:
        await self._request("DELETE", f"/api/notes/{note_id}")

    async def restore_note(self, note_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/api/notes/{note_id}/restore")

    # ---- 版本 ----

    async def list_versions(self, note_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/api/versions/note/{note_id}") or []

    async def get_version(self, version_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/api/versions/{version_id}")

    async def create_version(self, note_id: str, annotation: str) -> Dict[str, Any]:
        return await self._request("POST", f"/api/versions/note/{note_id}", {"annotation": annotation})

    async def delete_version(self, version_id: str) -> None:
        await self._request("DELETE", f"/api/versions/{version_id}")
