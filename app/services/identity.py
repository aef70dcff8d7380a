"""
身分服務

註冊、登入、登出、查詢使用者、變更密碼與 email 全部交給 Supabase Auth。
綁定使用者 token 的操作（登出、更新使用者）直接呼叫 GoTrue REST 端點，
不需要在伺服器端保存使用者 session。
supabase-py 的 Auth 客戶端是同步的，一律在 threadpool 中執行，不阻塞事件迴圈。
"""

import logging
from typing import Any, Dict, Optional

import httpx
from fastapi.concurrency import run_in_threadpool

from app.core.errors import BadRequest, Unauthorized, UpstreamFailure
from app.db.supabase_config import SupabaseConfig, supabase_config
from app.lib.httpx_timeout import get_httpx_timeout

logger = logging.getLogger(__name__)


def to_jsonable(obj: Any) -> Any:
    """把 supabase 回傳的 pydantic 模型轉成 dict"""
    if obj is None:
        return None
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    return obj


def provider_message(exc: Exception, fallback: str) -> str:
    """取出身分提供者的錯誤訊息"""
    return getattr(exc, "message", None) or str(exc) or fallback


class IdentityService:
    """Supabase Auth 包裝"""

    def __init__(self, config: Optional[SupabaseConfig] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            config: Supabase 配置（預設使用全域實例）
            transport: 測試用的 httpx transport
        """
        self.config = config or supabase_config
        self._transport = transport

    def _client(self):
        client = self.config.get_client()
        if client is None:
            raise UpstreamFailure("Authentication service unavailable", detail="Supabase is not configured")
        return client

    async def sign_up(self, email: str, password: str) -> Dict[str, Any]:
        """註冊；若專案要求 email 驗證，session 會是 None"""
        try:
            response = await run_in_threadpool(self._client().auth.sign_up, {"email": email, "password": password})
        except UpstreamFailure:
            raise
        except Exception as e:
            logger.warning(f"⚠️ 註冊失敗: {e}")
            raise BadRequest(provider_message(e, "Failed to sign up")) from e

        return {"user": to_jsonable(response.user), "session": to_jsonable(response.session)}

    async def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        """以 email + 密碼登入"""
        try:
            response = await run_in_threadpool(self._client().auth.sign_in_with_password, {"email": email, "password": password})
        except UpstreamFailure:
            raise
        except Exception as e:
            logger.info(f"🔒 登入失敗: {e}")
            raise Unauthorized(provider_message(e, "Failed to sign in")) from e

        return {"user": to_jsonable(response.user), "session": to_jsonable(response.session)}

    async def verify_password(self, email: Optional[str], password: str) -> bool:
        """以全新的登入請求確認密碼是否正確（不在程式內比對密碼）"""
        if not email:
            return False
        try:
            response = await run_in_threadpool(self._client().auth.sign_in_with_password, {"email": email, "password": password})
        except UpstreamFailure:
            raise
        except Exception as e:
            logger.info(f"🔒 密碼重新驗證失敗: {type(e).__name__}")
            return False
        return getattr(response, "user", None) is not None

    async def get_user(self, access_token: str) -> Dict[str, Any]:
        try:
            response = await run_in_threadpool(self._client().auth.get_user, access_token)
        except UpstreamFailure:
            raise
        except Exception as e:
            raise Unauthorized() from e
        if response is None or not getattr(response, "user", None):
            raise Unauthorized()
        return to_jsonable(response.user)

    async def sign_out(self, access_token: str) -> None:
        """撤銷目前這個 session（scope=local，不影響使用者的其他裝置）"""
        await self._gotrue_request("POST", "/logout", access_token, params={"scope": "local"})

    async def change_password(self, access_token: str, email: Optional[str], current_password: str, new_password: str) -> None:
        """
        變更密碼

        先用目前密碼重新登入確認身分，再更新為新密碼。

        Raises:
            BadRequest: 目前密碼錯誤或新密碼被拒絕
        """
        if not await self.verify_password(email, current_password):
            raise BadRequest("Current password is incorrect")
        await self._gotrue_request("PUT", "/user", access_token, json={"password": new_password})
        logger.info("🔑 密碼已更新")

    async def change_email(self, access_token: str, new_email: str) -> Dict[str, Any]:
        """
        申請變更 email

        身分提供者會寄出驗證信，驗證前使用者的 email 維持不變。
        """
        user = await self._gotrue_request("PUT", "/user", access_token, json={"email": new_email})
        logger.info("📧 已申請變更 email，等待驗證")
        return user or {}

    async def _gotrue_request(
        self,
        method: str,
        path: str,
        access_token: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Optional[Dict[str, Any]]:
        """呼叫 GoTrue REST 端點（帶 apikey 與使用者 token）"""
        headers = {
            "apikey": self.config.supabase_key,
            "Authorization": f"Bearer {access_token}",
        }
        try:
            async with httpx.AsyncClient(timeout=get_httpx_timeout(), transport=self._transport) as client:
                response = await client.request(
                    method, f"{self.config.auth_url}{path}", headers=headers, json=json, params=params
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ GoTrue 請求失敗 {method} {path}: {e}")
            raise UpstreamFailure("Authentication service unavailable", detail=str(e)) from e

        if response.status_code == 401:
            raise Unauthorized()
        if response.status_code >= 400:
            message = _gotrue_error_message(response)
            logger.warning(f"⚠️ GoTrue 拒絕 {method} {path}: {response.status_code} {message}")
            if response.status_code >= 500:
                raise UpstreamFailure("Authentication service error", detail=message)
            raise BadRequest(message)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()


def _gotrue_error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or "Request rejected"
    if isinstance(body, dict):
        return body.get("msg") or body.get("message") or body.get("error_description") or body.get("error") or "Request rejected"
    return "Request rejected"


identity_service = IdentityService()


def get_identity_service() -> IdentityService:
    """FastAPI 依賴：測試可透過 dependency_overrides 替換"""
    return identity_service
