"""
Notes / Versions API 整合測試

完整走過 FastAPI app：速率限制 → 驗證 token → 格式驗證 → 記憶體版 Supabase
"""

from contextlib import asynccontextmanager
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient

from app.lib.rate_limit import api_rate_limiter
from app.services.notes_store import NotesStore
from main import app

MISSING_ID = "7025232d-a297-4b58-a478-3e80ecdefe47"


@pytest.fixture(autouse=True)
def mock_supabase_globally(fake_supabase):
    """所有請求都使用記憶體版 Supabase"""
    yield fake_supabase


@asynccontextmanager
async def app_client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        yield client


async def signup(client: AsyncClient, email: str = "a@b.com") -> dict:
    response = await client.post("/api/auth/signup", json={"email": email, "password": "abcdef"})
    assert response.status_code == 201
    token = response.json()["data"]["session"]["access_token"]
    return {"Authorization": f"Bearer {token}"}


class TestNotesAuth:
    @pytest.mark.asyncio
    async def test_missing_token(self):
        async with app_client() as client:
            response = await client.get("/api/notes")
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "No authorization token provided"}

    @pytest.mark.asyncio
    async def test_invalid_token(self):
        async with app_client() as client:
            response = await client.get("/api/notes", headers={"Authorization": "Bearer forged"})
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid or expired token"


class TestNotesApi:
    """測試筆記 CRUD 端點"""

    @pytest.mark.asyncio
    async def test_create_without_body_uses_defaults(self):
        async with app_client() as client:
            headers = await signup(client)
            response = await client.post("/api/notes", headers=headers)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["title"] == "Untitled"
        assert body["data"]["content"] == ""

    @pytest.mark.asyncio
    async def test_invalid_id_rejected_before_store(self):
        async with app_client() as client:
            headers = await signup(client)
            with patch.object(NotesStore, "update") as mock_update:
                response = await client.put("/api/notes/not-a-uuid", json={"title": "x"}, headers=headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid ID format"
        mock_update.assert_not_called()

    @pytest.mark.asyncio
    async def test_title_too_long(self):
        async with app_client() as client:
            headers = await signup(client)
            created = (await client.post("/api/notes", headers=headers)).json()["data"]
            response = await client.put(
                f"/api/notes/{created['id']}", json={"title": "a" * 201}, headers=headers
            )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Validation failed"
        assert body["errors"][0]["field"] == "title"

    @pytest.mark.asyncio
    async def test_null_title_rejected(self):
        async with app_client() as client:
            headers = await signup(client)
            created = (await client.post("/api/notes", json={"title": "Keep"}, headers=headers)).json()["data"]
            response = await client.put(f"/api/notes/{created['id']}", json={"title": None}, headers=headers)
            current = (await client.get(f"/api/notes/{created['id']}", headers=headers)).json()["data"]

        assert response.status_code == 400
        assert response.json()["errors"] == [{"field": "title", "message": "Title must be a string"}]
        assert current["title"] == "Keep"

    @pytest.mark.asyncio
    async def test_malformed_json(self):
        async with app_client() as client:
            headers = await signup(client)
            response = await client.post(
                "/api/notes", content=b"{not json", headers={**headers, "Content-Type": "application/json"}
            )
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "body"

    @pytest.mark.asyncio
    async def test_note_lifecycle(self):
        """建立 → 更新 → 列表 → 刪除 → 404 → 復原"""
        async with app_client() as client:
            headers = await signup(client)
            note = (await client.post("/api/notes", json={"title": "Plan", "content": "# todo"}, headers=headers)).json()["data"]
            note_id = note["id"]

            updated = await client.put(f"/api/notes/{note_id}", json={"content": "# done"}, headers=headers)
            assert updated.status_code == 200
            assert updated.json()["data"]["title"] == "Plan"
            assert updated.json()["data"]["content"] == "# done"

            listed = (await client.get("/api/notes", headers=headers)).json()["data"]
            assert [n["id"] for n in listed] == [note_id]

            deleted = await client.delete(f"/api/notes/{note_id}", headers=headers)
            assert deleted.json() == {"success": True, "data": {"id": note_id}, "message": "Note deleted successfully"}

            missing = await client.get(f"/api/notes/{note_id}", headers=headers)
            assert missing.status_code == 404
            assert missing.json()["error"] == "Note not found"
            assert (await client.get("/api/notes", headers=headers)).json()["data"] == []

            restored = await client.post(f"/api/notes/{note_id}/restore", headers=headers)
            assert restored.status_code == 200
            assert restored.json()["data"]["id"] == note_id
            assert restored.json()["data"]["content"] == "# done"

    @pytest.mark.asyncio
    async def test_other_users_note_is_not_found(self):
        async with app_client() as client:
            owner = await signup(client, "owner@example.com")
            intruder = await signup(client, "intruder@example.com")
            note_id = (await client.post("/api/notes", headers=owner)).json()["data"]["id"]

            response = await client.get(f"/api/notes/{note_id}", headers=intruder)
            assert response.status_code == 404
            assert (await client.delete(f"/api/notes/{note_id}", headers=intruder)).status_code == 404

    @pytest.mark.asyncio
    async def test_upstream_failure_is_500(self, fake_backend):
        async with app_client() as client:
            headers = await signup(client)
            fake_backend.fail_next = "connection refused"
            response = await client.get("/api/notes", headers=headers)

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Failed to fetch notes"
        assert body["details"] == "connection refused"


class TestRateLimiting:
    @pytest.mark.asyncio
    async def test_rate_limit_applies_before_auth(self, monkeypatch):
        monkeypatch.setattr(api_rate_limiter, "max_requests", 2)
        async with app_client() as client:
            statuses = [(await client.get("/api/notes")).status_code for _ in range(2)]
            limited = await client.get("/api/notes")

        assert statuses == [401, 401]
        assert limited.status_code == 429
        assert limited.headers["Retry-After"] == "60"
        body = limited.json()
        assert body["success"] is False
        assert body["error"] == "Too many requests, please slow down"
        assert body["retryAfter"] == 60


class TestVersionsApi:
    """測試版本端點"""

    @pytest.mark.asyncio
    async def test_version_lifecycle(self):
        async with app_client() as client:
            headers = await signup(client)
            note_id = (await client.post("/api/notes", json={"content": "v0"}, headers=headers)).json()["data"]["id"]

            first = await client.post(f"/api/versions/note/{note_id}", json={"annotation": " first "}, headers=headers)
            assert first.status_code == 201
            assert first.json()["message"] == "Version 0 created successfully"
            assert first.json()["data"]["annotation"] == "first"

            await client.put(f"/api/notes/{note_id}", json={"content": "v1"}, headers=headers)
            second = (await client.post(f"/api/versions/note/{note_id}", json={"annotation": "second"}, headers=headers)).json()["data"]
            assert second["version_number"] == 1
            assert second["content"] == "v1"

            listed = (await client.get(f"/api/versions/note/{note_id}", headers=headers)).json()["data"]
            assert [v["version_number"] for v in listed] == [1, 0]

            fetched = (await client.get(f"/api/versions/{first.json()['data']['id']}", headers=headers)).json()["data"]
            assert fetched["content"] == "v0"

            deleted = await client.delete(f"/api/versions/{second['id']}", headers=headers)
            assert deleted.json()["message"] == "Version deleted successfully"
            assert (await client.get(f"/api/versions/{second['id']}", headers=headers)).status_code == 404

    @pytest.mark.asyncio
    async def test_annotation_required(self):
        async with app_client() as client:
            headers = await signup(client)
            note_id = (await client.post("/api/notes", headers=headers)).json()["data"]["id"]
            response = await client.post(f"/api/versions/note/{note_id}", json={"annotation": "  "}, headers=headers)

        assert response.status_code == 400
        assert response.json()["errors"] == [{"field": "annotation", "message": "Annotation is required"}]

    @pytest.mark.asyncio
    async def test_version_for_missing_note(self):
        async with app_client() as client:
            headers = await signup(client)
            response = await client.post(f"/api/versions/note/{MISSING_ID}", json={"annotation": "x"}, headers=headers)
        assert response.status_code == 404
        assert response.json()["error"] == "Note not found"

    @pytest.mark.asyncio
    async def test_invalid_version_id(self):
        async with app_client() as client:
            headers = await signup(client)
            response = await client.get("/api/versions/abc", headers=headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid ID format"


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self):
        async with app_client() as client:
            response = await client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
