"""
Supabase 配置管理

建立匿名（anon key）客戶端，以及帶使用者 token 的客戶端，
後者的所有資料表操作都會受 Row-Level-Security 限制在該使用者的資料列。
"""

import os
from typing import Optional
from dotenv import load_dotenv
from supabase import create_client, Client

# 載入環境變數
load_dotenv()

class SupabaseConfig:
    """Supabase 配置管理類別"""

    def __init__(self):
        self.supabase_url = os.getenv("SUPABASE_URL", "")
        self.supabase_key = os.getenv("SUPABASE_ANON_KEY", "")

    def is_configured(self) -> bool:
        """檢查 Supabase 是否已正確配置"""
        return bool(self.supabase_url) and bool(self.supabase_key)

    @property
    def auth_url(self) -> str:
        """GoTrue REST 端點根路徑"""
        return f"{self.supabase_url.rstrip('/')}/auth/v1"

    def get_client(self) -> Optional[Client]:
        """
        建立 Supabase 客戶端連接

        每次都建立新實例，避免不同請求共用同一個 auth 狀態。

        Returns:
            Optional[Client]: Supabase 客戶端實例，未配置時回傳 None
        """
        if self.is_configured():
            return create_client(self.supabase_url, self.supabase_key)
        return None

    def get_scoped_client(self, access_token: str) -> Client:
        """
        建立以使用者身分存取資料表的客戶端

        Args:
            access_token: 使用者的 JWT

        Returns:
            Client: PostgREST 請求帶 `Authorization: Bearer <token>` 的客戶端
        """
        client = get_supabase_client()
        client.postgrest.auth(access_token)
        return client


# 全域配置實例
supabase_config = SupabaseConfig()

# 便利函式
def get_supabase_client() -> Client:
    """獲取 Supabase 客戶端實例"""
    client = supabase_config.get_client()
    if client is None:
        raise ValueError("Supabase 客戶端無法初始化，請檢查 SUPABASE_URL / SUPABASE_ANON_KEY")
    return client
