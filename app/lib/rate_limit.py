"""
固定視窗速率限制器

以客戶端 IP 為 key 的記憶體計數器：視窗開始時計數歸 1，
超過上限即拒絕並回報剩餘秒數。視窗邊界前後最多可放行
2 倍上限的請求，這是固定視窗的已知取捨。
"""

import asyncio
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from fastapi import Request

from app.core.config import get_settings
from app.core.errors import RateLimited
from app.lib.prom_helpers import safe_counter

logger = logging.getLogger(__name__)

RATE_LIMIT_REJECTIONS = safe_counter(
    "notes_rate_limit_rejections_total",
    "Requests rejected by the fixed-window rate limiter",
    ["limiter"],
)


@dataclass
class RateLimitEntry:
    count: int
    reset_time: float


@dataclass(frozen=True)
class RateLimitDecision:
    """check() 的結果；拒絕時 retry_after 為建議等待秒數"""
    allowed: bool
    retry_after: int = 0
    remaining: int = 0


class FixedWindowRateLimiter:
    """固定視窗速率限制器"""

    def __init__(
        self,
        name: str,
        max_requests: int,
        window_seconds: float,
        message: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        初始化速率限制器

        Args:
            name: 限制器名稱（日誌與指標標籤）
            max_requests: 每個視窗允許的最大請求數
            window_seconds: 視窗長度（秒）
            message: 拒絕時回傳給客戶端的訊息
            clock: 回傳秒數的時鐘，測試時可注入假時鐘
        """
        self.name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message or "Too many requests, please try again later"
        self._clock = clock
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        logger.info(f"🪟 [RateLimiter:{name}] 初始化完成：{max_requests} requests/{window_seconds}s")

    def check(self, client_key: str) -> RateLimitDecision:
        """
        記錄一次請求並判斷是否放行

        Args:
            client_key: 客戶端識別（通常是 IP）

        Returns:
            RateLimitDecision: allowed=False 時附帶 retry_after 秒數
        """
        with self._lock:
            now = self._clock()
            entry = self._entries.get(client_key)

            if entry is None or now >= entry.reset_time:
                self._entries[client_key] = RateLimitEntry(count=1, reset_time=now + self.window_seconds)
                return RateLimitDecision(allowed=True, remaining=self.max_requests - 1)

            entry.count += 1
            if entry.count > self.max_requests:
                retry_after = max(1, math.ceil(entry.reset_time - now))
                RATE_LIMIT_REJECTIONS.labels(limiter=self.name).inc()
                logger.debug(f"🚦 [RateLimiter:{self.name}] 拒絕 client={client_key}，{retry_after}s 後重試")
                return RateLimitDecision(allowed=False, retry_after=retry_after)

            return RateLimitDecision(allowed=True, remaining=self.max_requests - entry.count)

    def sweep(self) -> int:
        """清除視窗已結束的計數，回傳清除數量"""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.reset_time <= now]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.debug(f"🧹 [RateLimiter:{self.name}] 清理了 {len(expired)} 個過期客戶端記錄")
        return len(expired)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()

    @property
    def active_clients(self) -> int:
        return len(self._entries)

    def get_stats(self) -> dict:
        return {
            "name": self.name,
            "type": "fixed_window",
            "max_requests": self.max_requests,
            "window_seconds": self.window_seconds,
            "active_clients": len(self._entries),
        }


def get_client_ip_from_request(request: Request, trust_proxy_headers: bool = False) -> str:
    """
    從請求中提取客戶端IP

    只有在部署於可信任的反向代理後方時才讀取代理標頭。
    """
    if trust_proxy_headers:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            # 取第一個IP（如果有多個代理）
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

    return str(request.client.host) if request.client else "unknown"


def rate_limit(limiter: FixedWindowRateLimiter) -> Callable:
    """
    建立 FastAPI 依賴：超過限制時拋出 RateLimited（由錯誤處理器轉成 429）

    Usage:
        @router.post("/signin", dependencies=[Depends(rate_limit(auth_rate_limiter))])
    """

    def dependency(request: Request) -> None:
        client_key = get_client_ip_from_request(request, get_settings().TRUST_PROXY_HEADERS)
        decision = limiter.check(client_key)
        if not decision.allowed:
            raise RateLimited(retry_after=decision.retry_after, message=limiter.message)

    return dependency


def _build_presets() -> List[FixedWindowRateLimiter]:
    s = get_settings()
    return [
        FixedWindowRateLimiter(
            "auth", s.AUTH_RATE_LIMIT_MAX, s.AUTH_RATE_LIMIT_WINDOW_SEC,
            message="Too many login attempts, please try again later",
        ),
        FixedWindowRateLimiter(
            "api", s.API_RATE_LIMIT_MAX, s.API_RATE_LIMIT_WINDOW_SEC,
            message="Too many requests, please slow down",
        ),
        FixedWindowRateLimiter(
            "password", s.PASSWORD_RATE_LIMIT_MAX, s.PASSWORD_RATE_LIMIT_WINDOW_SEC,
            message="Too many password change attempts, please try again later",
        ),
    ]


# 全域實例
auth_rate_limiter, api_rate_limiter, password_rate_limiter = _build_presets()
ALL_LIMITERS = (auth_rate_limiter, api_rate_limiter, password_rate_limiter)


async def sweep_forever(limiters=ALL_LIMITERS, interval: Optional[float] = None) -> None:
    """背景任務：定期清理所有限制器的過期計數，直到被取消"""
    interval = interval or get_settings().RATE_LIMIT_SWEEP_INTERVAL_SEC
    while True:
        await asyncio.sleep(interval)
        removed = sum(limiter.sweep() for limiter in limiters)
        if removed:
            logger.info(f"🧹 [RateLimiter] 本輪清理 {removed} 筆過期記錄")
