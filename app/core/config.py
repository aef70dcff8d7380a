from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
import os

# 根據執行環境決定要讀取的 .env 檔案。
# 如果偵測到 TESTING 環境變數為真 (由 pytest/conftest 設定)，
# 則讀取 `.env.local`；預設情況 (正式環境) 則讀取 `.env`。

_ENV_FILE: str = ".env.local" if os.getenv("TESTING", "").lower() in {"1", "true", "yes"} else ".env"

class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = Field("development", description="執行環境 (development / production)")
    CORS_ORIGINS: str = "http://localhost:3000"
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    PUBLIC_DIR: str = Field("public", description="前端靜態檔案目錄，不存在則不掛載")

    # Supabase（驗證與資料儲存）
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""

    # 固定視窗 Rate Limiting 配置
    AUTH_RATE_LIMIT_MAX: int = Field(5, description="登入/註冊視窗內最大請求數")
    AUTH_RATE_LIMIT_WINDOW_SEC: int = Field(15 * 60, description="登入/註冊視窗長度（秒）")
    API_RATE_LIMIT_MAX: int = Field(100, description="一般 API 視窗內最大請求數")
    API_RATE_LIMIT_WINDOW_SEC: int = Field(60, description="一般 API 視窗長度（秒）")
    PASSWORD_RATE_LIMIT_MAX: int = Field(3, description="變更密碼視窗內最大請求數")
    PASSWORD_RATE_LIMIT_WINDOW_SEC: int = Field(15 * 60, description="變更密碼視窗長度（秒）")
    RATE_LIMIT_SWEEP_INTERVAL_SEC: int = Field(5 * 60, description="過期計數清理間隔（秒）")
    TRUST_PROXY_HEADERS: bool = Field(False, description="是否信任 X-Forwarded-For / X-Real-IP")

    # httpx 逾時（GoTrue REST 呼叫）
    HTTPX_CONNECT_TIMEOUT: float = 5.0
    HTTPX_READ_TIMEOUT: float = 15.0
    HTTPX_WRITE_TIMEOUT: float = 15.0
    HTTPX_POOL_TIMEOUT: float = 5.0

    # 編輯器 session（客戶端）
    AUTOSAVE_DELAY_SEC: float = Field(2.0, description="停止輸入後自動儲存延遲（秒）", gt=0)
    EDITOR_RETRY_DELAY_SEC: float = Field(0.1, description="編輯器尚未就緒時重試載入的延遲（秒）", gt=0)

    model_config = SettingsConfigDict(env_file=_ENV_FILE, env_file_encoding="utf-8", extra="ignore")

    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

settings = Settings()

def get_settings() -> Settings:
    """獲取應用程式設定實例"""
    return settings
