"""
Auth Gate

驗證 bearer token，並把限定於該使用者的 Supabase 客戶端附加到請求上
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import Header
from supabase import Client

from app.core.errors import Unauthorized
from app.db.supabase_config import supabase_config

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass
class AuthContext:
    """單一請求的驗證結果：受 RLS 限制的客戶端 + 使用者身分"""
    client: Client
    user: Any
    access_token: str

    @property
    def user_id(self) -> str:
        return str(_attr(self.user, "id"))

    @property
    def email(self) -> Optional[str]:
        return _attr(self.user, "email")


def _attr(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def extract_bearer_token(authorization: Optional[str]) -> str:
    """取出 `Bearer ` 後的 token；缺少或格式錯誤時拋出 Unauthorized"""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise Unauthorized("No authorization token provided")
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise Unauthorized("No authorization token provided")
    return token


class AuthGate:
    """以身分提供者驗證 token 的守門員"""

    @staticmethod
    def authenticate(authorization: Optional[str]) -> AuthContext:
        """
        驗證 Authorization 標頭

        任何驗證失敗都回傳相同的 Unauthorized，不透露是哪一步失敗，
        避免被用來探測帳號是否存在。

        Args:
            authorization: 原始 Authorization 標頭值

        Returns:
            AuthContext: 受限客戶端與使用者

        Raises:
            Unauthorized: token 缺少、格式錯誤、過期或無效
        """
        token = extract_bearer_token(authorization)

        client = supabase_config.get_scoped_client(token)
        try:
            response = client.auth.get_user(token)
        except Exception as e:
            logger.warning(f"🔒 [AuthGate] token 驗證失敗: {type(e).__name__}: {e}")
            raise Unauthorized() from e

        user = getattr(response, "user", None) if response is not None else None
        if not user:
            logger.warning("🔒 [AuthGate] 身分提供者未回傳使用者")
            raise Unauthorized()

        return AuthContext(client=client, user=user, access_token=token)


def require_auth(authorization: Optional[str] = Header(None)) -> AuthContext:
    """FastAPI 依賴：要求有效的 bearer token"""
    return AuthGate.authenticate(authorization)


def get_bearer_token(authorization: Optional[str] = Header(None)) -> str:
    """FastAPI 依賴：只取出 token，不向身分提供者驗證"""
    return extract_bearer_token(authorization)
