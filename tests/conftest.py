"""Shared test fixtures for TranscriptRelay."""
import pytest
from typing import Any, Optional

from channels.base import EmailTransport, TransportError
from config.settings import CallConfig, EmailConfig, RetellConfig, Settings
from core.context import ServiceContext, build_context
from core.delivery import DeliveryPipeline
from core.registry import CallRegistry
from models.schemas import CallDetail


class FakeProvider:
    """Stands in for RetellClient. get_call replays a script of details/exceptions."""

    def __init__(self, script: list = None, call_ids: list[str] = None):
        self.script = list(script or [])
        self.call_ids = list(call_ids or ["call_001"])
        self.created: list[dict[str, Any]] = []
        self.fetches: list[str] = []
        self.create_error: Optional[Exception] = None
        self.closed = False

    async def create_call(self, from_number, to_number, agent_id, metadata=None) -> str:
        if self.create_error is not None:
            raise self.create_error
        self.created.append({
            "from_number": from_number, "to_number": to_number,
            "agent_id": agent_id, "metadata": metadata,
        })
        return self.call_ids.pop(0)

    async def get_call(self, call_id: str) -> CallDetail:
        self.fetches.append(call_id)
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        self.closed = True


class FakeTransport(EmailTransport):
    """Transport that records messages and succeeds or fails on demand."""

    def __init__(self, name: str = "fake", fail: bool = False):
        self.name = name
        super().__init__(from_email="noreply@example.com", from_name="Acme")
        self.fail = fail
        self.sent: list[dict[str, str]] = []
        self.calls = 0

    async def _do_send(self, to, subject, html, to_name=""):
        self.calls += 1
        if self.fail:
            raise TransportError(f"{self.name} down", transport=self.name)
        self.sent.append({"to": to, "subject": subject, "html": html, "to_name": to_name})
        return f"<{self.name}-{self.calls}@test>"


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


def empty_detail(call_id: str = "call_001") -> CallDetail:
    return CallDetail(call_id=call_id, call_status="ended", transcript="")


def transcript_detail(call_id: str = "call_001", text: str = "Agent: Hello Ann\nUser: Hi!") -> CallDetail:
    return CallDetail(
        call_id=call_id,
        call_status="ended",
        transcript=text,
        duration_ms=95000,
        start_timestamp=1735689600000,
        end_timestamp=1735689695000,
        disconnection_reason="user_hangup",
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        retell=RetellConfig(api_key="key_test", agent_id="agent_test", from_number="+18005550100"),
        email=EmailConfig(service="console", from_email="noreply@example.com", from_name="Acme"),
        call=CallConfig(max_retries=5, retry_delay_ms=15000),
    )


@pytest.fixture
def registry() -> CallRegistry:
    return CallRegistry()


@pytest.fixture
def primary() -> FakeTransport:
    return FakeTransport("primary")


@pytest.fixture
def backup() -> FakeTransport:
    return FakeTransport("backup")


@pytest.fixture
def pipeline(primary, backup) -> DeliveryPipeline:
    return DeliveryPipeline([primary, backup], from_name="Acme")


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider(script=[transcript_detail()])


@pytest.fixture
def context(settings, provider, primary, backup, sleep) -> ServiceContext:
    return build_context(settings, provider=provider, transports=[primary, backup], sleep=sleep)
