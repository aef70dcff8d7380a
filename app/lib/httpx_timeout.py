from httpx import Timeout
from app.core.config import get_settings

def get_httpx_timeout() -> Timeout:
    """
    依據設定檔回傳 GoTrue REST 呼叫用的 httpx.Timeout 物件。
    每次呼叫都重新讀取設定，測試可直接覆寫 settings。
    """
    s = get_settings()
    return Timeout(
        connect=s.HTTPX_CONNECT_TIMEOUT,
        read=s.HTTPX_READ_TIMEOUT,
        write=s.HTTPX_WRITE_TIMEOUT,
        pool=s.HTTPX_POOL_TIMEOUT,
    )
