import httpx
import pytest

from vanessa_chat.contracts import CompletionResult, SourceProvider


class FakeInvoker:
    async def get_answer(self, question, prior_conversation=None):
        return CompletionResult(answer_text="ok", source_provider=SourceProvider.PRIMARY, model_identifier="m1")

    async def close(self) -> None:
        return None


def _client(app):
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.fixture
def app_factory(cfg, tmp_path):
    pytest.importorskip("fastapi")
    from vanessa_chat.conversation_store import ConversationHistoryStore
    from vanessa_chat.server import create_app

    def _make(**overrides):
        return create_app(
            cfg=cfg.model_copy(update=overrides),
            invoker=FakeInvoker(),
            store=ConversationHistoryStore(tmp_path / "conversations.txt"),
        )

    return _make


@pytest.mark.asyncio
async def test_train_is_disabled_without_admin_token(app_factory):
    async with _client(app_factory()) as client:
        resp = await client.post("/api/ai/train", json={"question": "abc", "answer": "def"})
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_train_requires_matching_bearer_token(app_factory):
    async with _client(app_factory(admin_auth_token="admin-sekret")) as client:
        resp = await client.post(
            "/api/ai/train",
            headers={"Authorization": "Bearer wrong"},
            json={"question": "abc", "answer": "def"},
        )
        assert resp.status_code == 401
        assert resp.headers.get("WWW-Authenticate", "").lower().startswith("bearer")

        resp_ok = await client.post(
            "/api/ai/train",
            headers={"X-API-Key": "admin-sekret"},
            json={"question": "abc", "answer": "def"},
        )
        assert resp_ok.status_code == 200


@pytest.mark.asyncio
async def test_chat_is_public_even_with_admin_token(app_factory):
    async with _client(app_factory(admin_auth_token="admin-sekret")) as client:
        resp = await client.post("/api/ai/chat", json={"question": "hi"})
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_max_body_size_413(app_factory):
    async with _client(app_factory(max_request_body_bytes=60)) as client:
        payload = b'{"question":"' + (b"x" * 200) + b'"}'
        resp = await client.post(
            "/api/ai/chat", content=payload, headers={"Content-Type": "application/json"}
        )
    assert resp.status_code == 413
    assert resp.json()["error"] == "payload_too_large"


@pytest.mark.asyncio
async def test_security_headers_and_request_id(app_factory):
    async with _client(app_factory()) as client:
        resp = await client.get("/healthz", headers={"X-Request-Id": "req_12345678"})
        assert resp.status_code == 200
        assert resp.headers.get("X-Request-Id") == "req_12345678"
        assert resp.headers.get("X-Content-Type-Options") == "nosniff"
        assert resp.headers.get("X-Frame-Options") == "DENY"
        assert resp.headers.get("Referrer-Policy") == "no-referrer"
        assert resp.headers.get("Cache-Control") is None

        resp2 = await client.post("/api/ai/chat", json={"question": "hi"})
        assert resp2.headers.get("Cache-Control") == "no-store"
        assert len(resp2.headers.get("X-Request-Id", "")) == 32


@pytest.mark.asyncio
async def test_cors_allowlist_applies(app_factory):
    async with _client(app_factory(cors_allow_origins=["https://vanessa.example"])) as client:
        resp = await client.options(
            "/api/ai/chat",
            headers={"Origin": "https://vanessa.example", "Access-Control-Request-Method": "POST"},
        )
    assert resp.status_code in (200, 204)
    assert resp.headers.get("access-control-allow-origin") == "https://vanessa.example"


def test_cors_wildcard_with_credentials_is_rejected(app_factory):
    with pytest.raises(ValueError):
        app_factory(cors_allow_origins=["*"], cors_allow_credentials=True)
