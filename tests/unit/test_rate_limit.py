"""
測試固定視窗速率限制器

以可控制的假時鐘驗證視窗計數、重試秒數與過期清理
"""

import asyncio
from unittest.mock import Mock

import pytest

from app.core.errors import RateLimited
from app.lib.rate_limit import (
    FixedWindowRateLimiter,
    auth_rate_limiter,
    api_rate_limiter,
    get_client_ip_from_request,
    password_rate_limiter,
    rate_limit,
    sweep_forever,
)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter("test", max_requests=5, window_seconds=900, clock=clock)


def _request(host: str = "10.0.0.1", headers: dict | None = None) -> Mock:
    request = Mock()
    request.client.host = host
    request.headers = headers or {}
    return request


class TestFixedWindowRateLimiter:
    """測試固定視窗計數"""

    def test_allows_up_to_max_then_rejects(self, limiter):
        """視窗內第 max+1 次請求被拒絕"""
        decisions = [limiter.check("1.2.3.4") for _ in range(6)]
        assert all(d.allowed for d in decisions[:5])
        assert decisions[5].allowed is False
        assert decisions[5].retry_after == 900

    def test_remaining_counts_down(self, limiter):
        assert limiter.check("a").remaining == 4
        assert limiter.check("a").remaining == 3

    def test_retry_after_reflects_time_left(self, limiter, clock):
        for _ in range(5):
            limiter.check("a")
        clock.advance(899.5)
        decision = limiter.check("a")
        assert decision.allowed is False
        assert decision.retry_after == 1

    def test_new_window_after_expiry(self, limiter, clock):
        """視窗結束後計數重新開始"""
        for _ in range(6):
            limiter.check("a")
        clock.advance(900)
        decision = limiter.check("a")
        assert decision.allowed is True
        assert decision.remaining == 4

    def test_clients_are_counted_separately(self, limiter):
        for _ in range(6):
            limiter.check("a")
        assert limiter.check("b").allowed is True

    def test_sweep_removes_only_expired_entries(self, limiter, clock):
        limiter.check("old")
        clock.advance(600)
        limiter.check("new")
        clock.advance(300)

        assert limiter.sweep() == 1
        assert limiter.active_clients == 1
        assert limiter.get_stats()["active_clients"] == 1

    def test_reset(self, limiter):
        limiter.check("a")
        limiter.reset()
        assert limiter.active_clients == 0


class TestPresets:
    def test_preset_limits(self):
        assert (auth_rate_limiter.max_requests, auth_rate_limiter.window_seconds) == (5, 900)
        assert (api_rate_limiter.max_requests, api_rate_limiter.window_seconds) == (100, 60)
        assert (password_rate_limiter.max_requests, password_rate_limiter.window_seconds) == (3, 900)


class TestClientIp:
    def test_uses_socket_address_by_default(self):
        request = _request(headers={"X-Forwarded-For": "9.9.9.9"})
        assert get_client_ip_from_request(request) == "10.0.0.1"

    def test_trusts_forwarded_for_when_enabled(self):
        request = _request(headers={"X-Forwarded-For": "9.9.9.9, 10.0.0.2"})
        assert get_client_ip_from_request(request, trust_proxy_headers=True) == "9.9.9.9"

    def test_real_ip_fallback(self):
        request = _request(headers={"X-Real-IP": "8.8.8.8"})
        assert get_client_ip_from_request(request, trust_proxy_headers=True) == "8.8.8.8"


class TestRateLimitDependency:
    def test_raises_rate_limited_with_retry_after(self, clock):
        limiter = FixedWindowRateLimiter("dep", max_requests=1, window_seconds=60, message="slow down", clock=clock)
        dependency = rate_limit(limiter)
        request = _request()

        dependency(request)
        with pytest.raises(RateLimited) as exc_info:
            dependency(request)

        assert exc_info.value.retry_after == 60
        assert exc_info.value.message == "slow down"
        assert exc_info.value.status_code == 429


class TestSweepForever:
    @pytest.mark.asyncio
    async def test_sweeps_until_cancelled(self, clock):
        limiter = FixedWindowRateLimiter("sweep", max_requests=1, window_seconds=1, clock=clock)
        limiter.check("a")
        clock.advance(5)

        task = asyncio.create_task(sweep_forever([limiter], interval=0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert limiter.active_clients == 0
