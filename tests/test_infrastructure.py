"""Tests for the ticket store client, notification dispatch and model output parsing."""

import json

import httpx
import pytest

from helpdesk_intel.config import PipelineEventType
from helpdesk_intel.core import ConfigurationException, LLMException, ResourceNotFoundException, TicketStoreException
from helpdesk_intel.infrastructure.llm import (
    MockInferenceClient,
    create_inference_client,
    estimate_tokens,
    extract_json,
)
from helpdesk_intel.infrastructure.notifications import (
    CircuitBreaker,
    CircuitState,
    PipelineEvent,
    WebhookNotificationDispatcher,
)
from helpdesk_intel.infrastructure.ticket_store import HttpTicketStore

from tests.conftest import START

EVENT = PipelineEvent(
    type=PipelineEventType.TICKET_ESCALATED,
    subject_id="T-9",
    summary="Ticket T-9 escalated to team 4",
    payload={"team_id": 4, "complexity_score": 91},
    occurred_at=START
)


# ========== Model output parsing ==========

class TestExtractJson:

    def test_plain_object(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_markdown_fence_is_stripped(self):
        text = 'Here you go:\n```json\n{"response": "hi"}\n```'
        assert extract_json(text) == {"response": "hi"}

    def test_prose_is_rejected(self):
        with pytest.raises(LLMException):
            extract_json("I cannot help with that.")

    def test_array_is_rejected(self):
        with pytest.raises(LLMException):
            extract_json("[1, 2]")


def test_token_estimate_rounds_up():
    assert estimate_tokens("abcde") == 2
    assert estimate_tokens("") == 0


async def test_mock_backend_reports_usage():
    result = await MockInferenceClient().invoke(
        "Question?", "model", 100, 0.3, system_prompt="You answer questions."
    )
    assert result.input_tokens > 0
    assert result.output_tokens == estimate_tokens(result.text)


def test_unknown_provider_is_a_configuration_error():
    with pytest.raises(ConfigurationException):
        create_inference_client("carrier-pigeon")


# ========== Ticket store ==========

def _store(handler) -> HttpTicketStore:
    store = HttpTicketStore(base_url="http://helpdesk.test", token="secret")
    store._client = httpx.AsyncClient(
        base_url="http://helpdesk.test",
        headers={"Authorization": "Bearer secret"},
        transport=httpx.MockTransport(handler)
    )
    return store


class TestHttpTicketStore:

    async def test_get_ticket_maps_camel_case_fields(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/tickets/42"
            assert request.headers["Authorization"] == "Bearer secret"
            return httpx.Response(200, json={
                "id": 42,
                "title": "Printer offline",
                "description": "Floor 3 printer",
                "category": "technical",
                "priority": "high",
                "status": "resolved",
                "createdAt": "2026-03-10T09:00:00Z",
                "resolvedAt": "2026-03-10T11:00:00Z",
                "createdBy": 7
            })

        ticket = await _store(handler).get_ticket("42")

        assert ticket.id == "42"
        assert ticket.status == "resolved"
        assert ticket.created_by == "7"
        assert (ticket.resolved_at - ticket.created_at).total_seconds() == 7200

    async def test_missing_ticket_is_not_found(self):
        store = _store(lambda request: httpx.Response(404))
        with pytest.raises(ResourceNotFoundException):
            await store.get_ticket("404")

    async def test_server_error_is_a_store_failure(self):
        store = _store(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(TicketStoreException):
            await store.get_comments("1")

    async def test_update_sends_camel_case_patch(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={})

        await _store(handler).update_ticket("5", {"assigned_team_id": 3})

        assert seen == {"method": "PATCH", "body": {"assignedTeamId": 3}}

    async def test_create_comment_posts_system_flag(self):
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            return httpx.Response(201, json={"id": 11, "content": body["content"], "isSystem": body["isSystem"]})

        comment = await _store(handler).create_comment("5", "Try a new link.", is_system=True)

        assert comment.id == "11"
        assert comment.is_system is True


# ========== Notifications ==========

class TestCircuitBreaker:

    def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)
        breaker.record_failure()
        assert breaker.allow_request()

        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert not breaker.allow_request()

    def test_half_opens_after_recovery_timeout(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        breaker.record_failure()
        assert breaker.state == CircuitState.HALF_OPEN

        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED


def _dispatcher(handler) -> WebhookNotificationDispatcher:
    dispatcher = WebhookNotificationDispatcher(
        webhook_url="http://hooks.test/teams", timeout=1, max_retries=2, backoff_base=0
    )
    dispatcher._http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return dispatcher


class TestWebhookNotificationDispatcher:

    def test_card_lists_payload_as_facts(self):
        card = WebhookNotificationDispatcher.build_card(EVENT)

        assert card["title"] == "Ticket escalated"
        facts = {f["name"]: f["value"] for f in card["sections"][0]["facts"]}
        assert facts["Subject"] == "T-9"
        assert facts["Team Id"] == "4"

    async def test_delivered_event(self):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(200)

        assert await _dispatcher(handler).emit(EVENT) is True
        assert received[0]["summary"] == EVENT.summary

    async def test_failure_is_reported_not_raised(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(502)

        assert await _dispatcher(handler).emit(EVENT) is False
        assert len(calls) == 2

    async def test_transport_errors_are_retried(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        assert await _dispatcher(handler).emit(EVENT) is False

    async def test_unconfigured_webhook_skips(self):
        dispatcher = WebhookNotificationDispatcher(webhook_url="http://hooks.test/teams")
        dispatcher._webhook_url = None
        assert await dispatcher.emit(EVENT) is False
