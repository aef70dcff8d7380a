"""
pytest 配置檔案

提供測試所需的共用 fixtures 和配置：
- 記憶體版 Supabase（資料表 + Auth），取代真正的 create_client
- 每個測試前重設速率限制器
"""

import os
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import patch

import pytest
from pydantic import BaseModel

# 設定測試環境變數（必須在匯入 app 模組之前）
os.environ.update({
    "SUPABASE_URL": "https://test.supabase.co",
    "SUPABASE_ANON_KEY": "test-anon-key",
    "ENVIRONMENT": "test",
    "PUBLIC_DIR": "public-test-missing",
    "TESTING": "true"  # 測試模式標誌
})


class FakeUser(BaseModel):
    id: str
    email: str


class FakeSession(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: FakeUser


class FakeAuthResponse:
    def __init__(self, user: Optional[FakeUser], session: Optional[FakeSession] = None):
        self.user = user
        self.session = session


class FakeResponse:
    def __init__(self, data: List[Dict[str, Any]]):
        self.data = data


class FakeAuthError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class FakeBackend:
    """共用的記憶體資料：資料表列、使用者帳號與有效 token"""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {"notes": [], "note_versions": []}
        self.users: Dict[str, Dict[str, Any]] = {}
        self.tokens: Dict[str, FakeUser] = {}
        self.scoped_tokens: List[str] = []
        self.auth_threads: List[int] = []
        self.fail_next: Optional[str] = None
        self._tick = 0

    def now_iso(self) -> str:
        # 每次呼叫往後推進，排序結果才穩定
        self._tick += 1
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        return (base + timedelta(seconds=self._tick)).isoformat()

    def add_user(self, email: str, password: str) -> FakeUser:
        user = FakeUser(id=str(uuid.uuid4()), email=email)
        self.users[email] = {"user": user, "password": password}
        return user

    def issue_token(self, user: FakeUser) -> str:
        token = f"token-{uuid.uuid4().hex}"
        self.tokens[token] = user
        return token


class FakeQuery:
    """PostgREST 查詢鏈的記憶體實作"""

    def __init__(self, backend: FakeBackend, table: str):
        self.backend = backend
        self.table = table
        self.action = "select"
        self.payload: Optional[Dict[str, Any]] = None
        self.filters: List[tuple] = []
        self.order_by: Optional[tuple] = None
        self.row_limit: Optional[int] = None

    def select(self, columns: str = "*") -> "FakeQuery":
        self.action = "select"
        return self

    def insert(self, data: Dict[str, Any]) -> "FakeQuery":
        self.action, self.payload = "insert", data
        return self

    def update(self, data: Dict[str, Any]) -> "FakeQuery":
        self.action, self.payload = "update", data
        return self

    def delete(self) -> "FakeQuery":
        self.action = "delete"
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append((column, value))
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self.order_by = (column, desc)
        return self

    def limit(self, size: int) -> "FakeQuery":
        self.row_limit = size
        return self

    def _matches(self, row: Dict[str, Any]) -> bool:
        return all(row.get(column) == value for column, value in self.filters)

    def execute(self) -> FakeResponse:
        if self.backend.fail_next:
            message, self.backend.fail_next = self.backend.fail_next, None
            raise RuntimeError(message)

        rows = self.backend.tables.setdefault(self.table, [])
        if self.action == "insert":
            now = self.backend.now_iso()
            row = {"id": str(uuid.uuid4()), "created_at": now, "updated_at": now, **self.payload}
            rows.append(row)
            return FakeResponse([dict(row)])

        matched = [row for row in rows if self._matches(row)]
        if self.action == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResponse([dict(row) for row in matched])
        if self.action == "delete":
            self.backend.tables[self.table] = [row for row in rows if row not in matched]
            return FakeResponse([dict(row) for row in matched])

        if self.order_by:
            column, desc = self.order_by
            matched = sorted(matched, key=lambda r: r[column], reverse=desc)
        if self.row_limit is not None:
            matched = matched[:self.row_limit]
        return FakeResponse([dict(row) for row in matched])


class FakeAuth:
    def __init__(self, backend: FakeBackend):
        self.backend = backend

    def sign_up(self, credentials: Dict[str, str]) -> FakeAuthResponse:
        self.backend.auth_threads.append(threading.get_ident())
        email = credentials["email"]
        if email in self.backend.users:
            raise FakeAuthError("User already registered")
        user = self.backend.add_user(email, credentials["password"])
        token = self.backend.issue_token(user)
        return FakeAuthResponse(user, FakeSession(access_token=token, user=user))

    def sign_in_with_password(self, credentials: Dict[str, str]) -> FakeAuthResponse:
        self.backend.auth_threads.append(threading.get_ident())
        account = self.backend.users.get(credentials["email"])
        if account is None or account["password"] != credentials["password"]:
            raise FakeAuthError("Invalid login credentials")
        user = account["user"]
        token = self.backend.issue_token(user)
        return FakeAuthResponse(user, FakeSession(access_token=token, user=user))

    def get_user(self, token: str) -> FakeAuthResponse:
        user = self.backend.tokens.get(token)
        if user is None:
            raise FakeAuthError("invalid JWT")
        return FakeAuthResponse(user)


class FakePostgrest:
    def __init__(self, backend: FakeBackend):
        self.backend = backend
        self.token: Optional[str] = None

    def auth(self, token: str) -> None:
        self.token = token
        self.backend.scoped_tokens.append(token)


class FakeSupabaseClient:
    """supabase.Client 的記憶體替身"""

    def __init__(self, backend: FakeBackend):
        self.backend = backend
        self.auth = FakeAuth(backend)
        self.postgrest = FakePostgrest(backend)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self.backend, name)


@pytest.fixture
def fake_backend() -> FakeBackend:
    """記憶體版 Supabase 資料"""
    return FakeBackend()


@pytest.fixture
def fake_supabase(fake_backend):
    """把 create_client 換成記憶體版客戶端"""
    with patch(
        "app.db.supabase_config.create_client",
        side_effect=lambda url, key: FakeSupabaseClient(fake_backend),
    ) as mock_create:
        yield mock_create


@pytest.fixture
def supabase_client(fake_backend) -> FakeSupabaseClient:
    return FakeSupabaseClient(fake_backend)


@pytest.fixture
def user(fake_backend) -> FakeUser:
    """已註冊的測試使用者"""
    return fake_backend.add_user("alice@example.com", "secret123")


@pytest.fixture
def other_user(fake_backend) -> FakeUser:
    return fake_backend.add_user("bob@example.com", "hunter22")


@pytest.fixture(autouse=True)
def reset_rate_limiters():
    """每個測試使用乾淨的速率限制計數"""
    from app.lib.rate_limit import ALL_LIMITERS

    for limiter in ALL_LIMITERS:
        limiter.reset()
    yield
    for limiter in ALL_LIMITERS:
        limiter.reset()
