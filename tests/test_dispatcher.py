"""Tests for webhook envelope parsing and call_ended routing."""
import pytest

from core.dispatcher import parse_envelope
from core.errors import PayloadError
from models.schemas import CallRecord, CallState
from tests.conftest import FakeProvider, empty_detail, transcript_detail


def ended(call_id="call_001", status="ended", end_ts=1735689695000, **extra):
    call = {"call_id": call_id, "call_status": status, "end_timestamp": end_ts}
    call.update(extra)
    return {"event": "call_ended", "call": call}


def register(context, call_id="call_001", email="ann@x.com", name="Ann"):
    context.registry.put(call_id, CallRecord(call_id=call_id, name=name, email=email))


class TestParseEnvelope:
    @pytest.mark.parametrize("body", [
        {},
        {"event": "call_ended"},
        {"call": {"call_id": "c1"}},
        {"event": "call_ended", "call": {}},
        {"event": "call_ended", "call": "c1"},
        {"event": 7, "call": {"call_id": "c1"}},
        ["call_ended"],
        None,
    ])
    def test_malformed_rejected(self, body):
        with pytest.raises(PayloadError):
            parse_envelope(body)

    def test_extra_fields_kept(self):
        env = parse_envelope(ended(agent_id="agent_x"))
        assert env.event == "call_ended"
        assert env.call.call_id == "call_001"
        assert env.call.completed
        assert env.call.model_extra["agent_id"] == "agent_x"

    def test_string_timestamp_accepted(self):
        env = parse_envelope(ended(end_ts="2025-01-01T00:01:35Z"))
        assert env.call.completed

    def test_float_timestamp_accepted(self):
        env = parse_envelope(ended(end_ts=1735689695000.5, start_timestamp=1735689600000.0))
        assert env.call.completed
        assert env.call.end_timestamp == 1735689695000.5


class TestCallEnded:
    @pytest.mark.asyncio
    async def test_completed_call_triggers_one_retrieval(self, context, primary, provider):
        register(context)

        result = await context.dispatcher.handle(ended())
        assert result == {"success": True, "message": "Webhook processed for event: call_ended"}
        assert context.registry.state_of("call_001") == CallState.PROCESSING

        await context.retriever.join()

        assert provider.fetches == ["call_001"]
        assert len(primary.sent) == 1
        assert primary.sent[0]["to"] == "ann@x.com"
        assert "call_001" not in context.registry
        assert context.registry.is_completed("call_001")

    @pytest.mark.asyncio
    async def test_missing_end_timestamp_drops_record(self, context, provider, primary):
        register(context)

        result = await context.dispatcher.handle(ended(end_ts=None))
        assert result["success"] is True

        await context.retriever.join()
        assert provider.fetches == []
        assert primary.sent == []
        assert "call_001" not in context.registry

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["error", "not_connected", "ongoing"])
    async def test_non_ended_status_drops_record(self, context, provider, status):
        register(context)
        await context.dispatcher.handle(ended(status=status))
        await context.retriever.join()
        assert provider.fetches == []
        assert len(context.registry) == 0

    @pytest.mark.asyncio
    async def test_unknown_call_is_acknowledged(self, context, provider):
        result = await context.dispatcher.handle(ended(call_id="ghost"))
        assert result["success"] is True
        assert context.retriever.active_jobs() == []
        assert provider.fetches == []

    @pytest.mark.asyncio
    async def test_duplicate_call_ended_processed_once(self, context, primary, provider):
        register(context)

        await context.dispatcher.handle(ended())
        await context.dispatcher.handle(ended())       # while still processing
        await context.retriever.join()
        await context.dispatcher.handle(ended())       # after completion

        await context.retriever.join()
        assert provider.fetches == ["call_001"]
        assert len(primary.sent) == 1

    @pytest.mark.asyncio
    async def test_exhausted_retrieval_sends_notice_and_cleans_up(self, context, primary, sleep):
        context.provider.script = [empty_detail()]
        register(context)

        await context.dispatcher.handle(ended())
        await context.retriever.join()

        assert len(context.provider.fetches) == 5
        assert sleep.delays == [15.0] * 4
        assert len(primary.sent) == 1
        assert primary.sent[0]["subject"] == "Call Completed - Transcript Processing Issue"
        assert len(context.registry) == 0

    @pytest.mark.asyncio
    async def test_cancelled_retrieval_still_removes_record(self, context, provider, primary):
        register(context)

        await context.dispatcher.handle(ended())
        assert context.retriever.cancel("call_001") is True
        await context.retriever.join()

        assert provider.fetches == []
        assert primary.sent == []
        assert "call_001" not in context.registry
        assert context.registry.is_completed("call_001")

    @pytest.mark.asyncio
    async def test_two_calls_processed_independently(self, context, primary):
        context.provider.script = [transcript_detail("call_001"), transcript_detail("call_002")]
        register(context, "call_001", "ann@x.com", "Ann")
        register(context, "call_002", "bob@x.com", "Bob")

        await context.dispatcher.handle(ended("call_001"))
        await context.dispatcher.handle(ended("call_002"))
        await context.retriever.join()

        assert sorted(m["to"] for m in primary.sent) == ["ann@x.com", "bob@x.com"]
        assert len(context.registry) == 0


class TestOtherEvents:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("event", ["call_started", "call_analyzed", "something_new"])
    async def test_informational_events_leave_registry_alone(self, context, provider, event):
        register(context)
        result = await context.dispatcher.handle({"event": event, "call": {"call_id": "call_001"}})

        assert result == {"success": True, "message": f"Webhook processed for event: {event}"}
        assert context.registry.get("call_001").state == CallState.PENDING
        assert provider.fetches == []

    @pytest.mark.asyncio
    async def test_malformed_leaves_registry_unchanged(self, context):
        register(context)
        with pytest.raises(PayloadError):
            await context.dispatcher.handle({})
        assert context.registry.ids() == ["call_001"]
        assert context.retriever.active_jobs() == []
