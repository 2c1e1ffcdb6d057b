"""HTTP-level tests: intake, webhook, health and status, end to end through fakes."""
import pytest
from unittest.mock import patch

import httpx

from api.main import create_app
from core.errors import ProviderError
from tests.conftest import transcript_detail


@pytest.fixture
def client(context):
    app = create_app(context=context)
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_form_to_transcript_email(self, context, client, primary, backup):
        context.provider.call_ids = ["call_e2e"]
        context.provider.script = [transcript_detail("call_e2e", text="Agent: Hello Ann\nUser: Bye")]

        async with client:
            resp = await client.post("/api/initiate-call", json={
                "name": "Ann", "phone": "9998887776", "email": "ann@x.com",
            })
            assert resp.status_code == 200
            assert resp.json() == {"message": "Call initiated successfully.", "callId": "call_e2e"}
            assert context.registry.get("call_e2e").email == "ann@x.com"

            resp = await client.post("/", json={
                "event": "call_ended",
                "call": {"call_id": "call_e2e", "call_status": "ended", "end_timestamp": 1735689695000},
            })
            assert resp.status_code == 200
            assert resp.json() == {"success": True, "message": "Webhook processed for event: call_ended"}

            await context.retriever.join()

        assert len(primary.sent) == 1
        assert backup.sent == []
        mail = primary.sent[0]
        assert mail["to"] == "ann@x.com"
        assert "call_e2e" in mail["html"]
        assert "Agent: Hello Ann" in mail["html"]
        assert len(context.registry) == 0
        assert context.provider.created[0]["to_number"] == "+919998887776"


class TestInitiateCall:
    @pytest.mark.asyncio
    async def test_missing_phone_is_400(self, client, context):
        async with client:
            resp = await client.post("/api/initiate-call", json={"name": "Ann", "email": "ann@x.com"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Phone and email are required."}
        assert context.provider.created == []

    @pytest.mark.asyncio
    async def test_bad_email_is_400(self, client):
        async with client:
            resp = await client.post("/api/initiate-call", json={"phone": "9998887776", "email": "nope"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Email address is not valid."}

    @pytest.mark.asyncio
    async def test_provider_failure_is_500(self, client, context):
        context.provider.create_error = ProviderError("HTTP 401", status_code=401)
        async with client:
            resp = await client.post("/api/initiate-call", json={
                "name": "Ann", "phone": "9998887776", "email": "ann@x.com",
            })
        assert resp.status_code == 500
        assert resp.json() == {"error": "Call initiation failed."}
        assert len(context.registry) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"name": "Ann", "phone": None, "email": "ann@x.com"},
        {"name": "Ann", "phone": "9998887776", "email": None},
        {"name": None, "phone": None, "email": None},
    ])
    async def test_null_fields_are_400(self, client, context, body):
        async with client:
            resp = await client.post("/api/initiate-call", json=body)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Phone and email are required."}
        assert context.provider.created == []

    @pytest.mark.asyncio
    async def test_numeric_phone_and_null_name_accepted(self, client, context):
        async with client:
            resp = await client.post("/api/initiate-call", json={
                "name": None, "phone": 9998887776, "email": "ann@x.com",
            })
        assert resp.status_code == 200
        assert context.provider.created[0]["to_number"] == "+919998887776"
        assert context.registry.get("call_001").name == "User"

    @pytest.mark.asyncio
    async def test_short_numeric_phone_is_400(self, client):
        async with client:
            resp = await client.post("/api/initiate-call", json={"phone": 12345, "email": "ann@x.com"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Phone number must be 10 digits."}


class TestWebhook:
    @pytest.mark.asyncio
    async def test_empty_object_is_400(self, client, context):
        async with client:
            resp = await client.post("/", json={})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid payload structure"}
        assert len(context.registry) == 0

    @pytest.mark.asyncio
    async def test_non_json_is_400(self, client):
        async with client:
            resp = await client.post("/", content=b"not json",
                                     headers={"Content-Type": "application/json"})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_call_acknowledged(self, client):
        async with client:
            resp = await client.post("/", json={
                "event": "call_ended",
                "call": {"call_id": "ghost", "call_status": "ended", "end_timestamp": 1},
            })
        assert resp.status_code == 200
        assert resp.json()["success"] is True

    @pytest.mark.asyncio
    async def test_unexpected_error_is_500_with_call_id(self, client, context):
        with patch.object(context.dispatcher, "_on_call_ended", side_effect=RuntimeError("boom")):
            async with client:
                resp = await client.post("/", json={
                    "event": "call_ended",
                    "call": {"call_id": "call_x", "call_status": "ended", "end_timestamp": 1},
                })
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error", "call_id": "call_x"}


class TestHealthAndStatus:
    @pytest.mark.asyncio
    async def test_health(self, client, context):
        async with client:
            await client.post("/api/initiate-call", json={
                "name": "Ann", "phone": "9998887776", "email": "ann@x.com",
            })
            resp = await client.get("/health")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["activeCallsCount"] == 1
        assert body["activeCalls"] == ["call_001"]
        assert body["activeRetrievals"] == []
        assert [t["transport"] for t in body["transports"]] == ["primary", "backup"]
        assert body["version"] == "1.0.0"
        assert body["uptime"] >= 0
        assert "timestamp" in body

    @pytest.mark.asyncio
    async def test_status(self, client):
        async with client:
            resp = await client.get("/api/status")
        assert resp.status_code == 200
        assert resp.json() == {
            "message": "TranscriptRelay API is running",
            "environment": "development",
            "retellFromNumber": "+18005550100",
            "activeCallMappings": 0,
        }


class TestCors:
    @staticmethod
    def _client(context):
        app = create_app(context=context)
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")

    @pytest.mark.asyncio
    async def test_development_allows_localhost(self, context):
        async with self._client(context) as client:
            resp = await client.get("/api/status", headers={"Origin": "http://localhost:5173"})
        assert resp.headers["access-control-allow-origin"] == "http://localhost:5173"

    @pytest.mark.asyncio
    async def test_production_uses_configured_origins_only(self, context):
        context.settings.server.environment = "production"
        context.settings.server.production_origins = ["https://app.example.com"]

        async with self._client(context) as client:
            local = await client.get("/api/status", headers={"Origin": "http://localhost:5173"})
            prod = await client.get("/api/status", headers={"Origin": "https://app.example.com"})

        assert "access-control-allow-origin" not in local.headers
        assert prod.headers["access-control-allow-origin"] == "https://app.example.com"
        assert prod.json()["environment"] == "production"
