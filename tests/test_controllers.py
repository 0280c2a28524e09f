"""HTTP tests: routing, status mapping and response shapes."""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from helpdesk_intel.ai_settings.domain import AISettings, RateLimitConfig
from helpdesk_intel.ai_settings.infrastructure import StaticSettingsProvider
from helpdesk_intel.main import build_services, create_app

from tests.conftest import SOLUTION_COMMENT, resolved_ticket

TICKET = {
    "title": "Cannot login",
    "description": "Password reset link expired",
    "category": "support",
    "priority": "medium",
    "ticket_id": "T-1",
}


def _client(services) -> TestClient:
    app = create_app(use_lifespan=False)
    app.state.services = services
    return TestClient(app)


@pytest.fixture
def client(settings_provider, inference_client, ticket_store, notifier, clock):
    ticket_store.add_ticket(resolved_ticket("R-1"), [SOLUTION_COMMENT])
    services = build_services(settings_provider, inference_client, ticket_store, notifier, clock=clock)
    return _client(services)


# ========== Health ==========

def test_health_reports_component_checks(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["checks"]["inference"] == "available"
    assert body["checks"]["learning_pass"] == "idle"


def test_root_lists_modules(client):
    modules = client.get("/").json()["modules"]
    assert set(modules) == {"governance", "faq", "intelligence", "learning"}


def test_responses_carry_correlation_id(client):
    response = client.get("/health", headers={"X-Correlation-ID": "abc-123"})
    assert response.headers["X-Correlation-ID"] == "abc-123"


# ========== Intelligence ==========

def test_analyze_returns_classification(client):
    response = client.post("/intelligence/analyze", json=TICKET)

    assert response.status_code == 200
    body = response.json()
    assert body["category"] == "support"
    assert body["confidence"] == 0.85
    assert 0 <= body["complexity"] <= 100


def test_empty_ticket_field_is_422(client):
    response = client.post("/intelligence/analyze", json={**TICKET, "title": "   "})

    assert response.status_code == 422
    assert response.json()["error_type"] == "ValidationException"


def test_rate_limited_analysis_is_429_with_retry_hint(inference_client, ticket_store, notifier, clock):
    provider = StaticSettingsProvider(AISettings(rate_limits=RateLimitConfig(max_requests_per_minute=1)))
    client = _client(build_services(provider, inference_client, ticket_store, notifier, clock=clock))

    assert client.post("/intelligence/analyze", json=TICKET).status_code == 200
    response = client.post("/intelligence/analyze", json=TICKET)

    assert response.status_code == 429
    assert response.json()["detail"].endswith("Try again later.")
    assert response.headers["Retry-After"] == "60"


def test_missing_inference_is_503(settings_provider, ticket_store, notifier, clock):
    client = _client(build_services(settings_provider, None, ticket_store, notifier, clock=clock))

    response = client.post("/intelligence/analyze", json=TICKET)

    assert response.status_code == 503
    assert client.get("/health").json()["checks"]["inference"] == "not_configured"


def test_respond_returns_draft(client):
    response = client.post("/intelligence/respond", json={"ticket": TICKET})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["response"]["was_applied"] is False
    assert body["response"]["ticket_id"] == "T-1"


def test_created_event_is_accepted_and_processed(client):
    response = client.post("/intelligence/events/ticket-created", json={"ticket_id": "T-1"})

    assert response.status_code == 202
    assert response.json()["accepted"] is True

    stats = client.get("/intelligence/stats").json()
    assert stats["total_responses"] == 1
    assert stats["applied_responses"] == 1


def test_event_for_unknown_ticket_is_still_accepted(client):
    response = client.post("/intelligence/events/ticket-created", json={"ticket_id": "NOPE"})
    assert response.status_code == 202


def test_process_returns_stage_report(client):
    response = client.post("/intelligence/tickets/T-1/process")

    assert response.status_code == 200
    body = response.json()
    assert body["stages"]["analysis"] == "ok"
    assert body["response_applied"] is True
    assert body["partial_failures"] == []


def test_applying_without_draft_is_404(client):
    assert client.post("/intelligence/responses/T-1/apply").status_code == 404


def test_manual_apply_of_a_draft(client):
    client.post("/intelligence/respond", json={"ticket": TICKET})

    response = client.post("/intelligence/responses/T-1/apply")

    assert response.status_code == 200
    assert response.json()["was_applied"] is True


def test_escalation_evaluation(client):
    response = client.post("/intelligence/escalation/evaluate", json={"complexity_score": 95})
    assert response.status_code == 200
    assert response.json()["should_escalate"] is False


def test_resolved_event_queues_once(client):
    first = client.post("/intelligence/events/ticket-resolved", json={"ticket_id": "R-1"})
    second = client.post("/intelligence/events/ticket-resolved", json={"ticket_id": "R-1"})

    assert (first.status_code, second.status_code) == (202, 202)
    assert first.json()["accepted"] is True
    assert second.json()["detail"] == "already queued"


# ========== Learning ==========

def test_learning_run_creates_draft_awaiting_approval(client):
    client.post("/intelligence/events/ticket-resolved", json={"ticket_id": "R-1"})

    result = client.post("/learning/run").json()
    assert result["articles_created"] == 1
    assert result["skipped"] is False

    queue = client.get("/learning/queue", params={"status": "completed"}).json()
    assert queue["total"] == 1

    drafts = client.get("/learning/articles", params={"published": False}).json()["articles"]
    article_id = drafts[0]["id"]

    approved = client.post(f"/learning/articles/{article_id}/approve")
    assert approved.status_code == 200
    assert approved.json()["is_published"] is True

    again = client.post(f"/learning/articles/{article_id}/approve")
    assert again.status_code == 409


def test_approving_unknown_article_is_404(client):
    assert client.post("/learning/articles/999/approve").status_code == 404


def test_improve_article(client):
    client.post("/intelligence/events/ticket-resolved", json={"ticket_id": "R-1"})
    client.post("/learning/run")
    article_id = client.get("/learning/articles").json()["articles"][0]["id"]

    response = client.post(f"/learning/articles/{article_id}/improve", json={"ticket_id": "R-1"})

    assert response.status_code == 200
    assert response.json()["updated"] is True


def test_feedback_on_article_updates_score(client):
    client.post("/intelligence/events/ticket-resolved", json={"ticket_id": "R-1"})
    client.post("/learning/run")
    article_id = client.get("/learning/articles").json()["articles"][0]["id"]

    response = client.post(
        "/learning/feedback",
        json={"kind": "knowledgeArticle", "target_id": article_id, "rating": 5}
    )

    assert response.status_code == 200
    assert response.json()["effectiveness_score"] == 5.0


def test_feedback_with_invalid_rating_is_422(client):
    response = client.post(
        "/learning/feedback",
        json={"kind": "knowledgeArticle", "target_id": 1, "rating": 3}
    )
    assert response.status_code == 422


def test_feedback_for_unknown_response_is_404(client):
    response = client.post(
        "/learning/feedback",
        json={"kind": "autoResponse", "target_id": 12, "rating": 5}
    )
    assert response.status_code == 404


# ========== FAQ ==========

def test_faq_ask_then_lookup(client):
    question = "How do I change my billing address?"

    first = client.post("/faq/ask", json={"question": question}).json()
    second = client.post("/faq/ask", json={"question": question.upper()}).json()

    assert first["from_cache"] is False
    assert second["from_cache"] is True

    lookup = client.get("/faq/lookup", params={"question": question})
    assert lookup.status_code == 200
    assert lookup.json()["hit_count"] == 2


def test_faq_lookup_miss_is_404(client):
    assert client.get("/faq/lookup", params={"question": "never asked"}).status_code == 404


def test_faq_clear(client):
    client.post("/faq/ask", json={"question": "How do I change my billing address?"})

    assert client.delete("/faq").json()["cleared"] == 1
    assert client.get("/faq/popular").json()["entries"] == []


# ========== Governance ==========

def test_governance_limits_and_presets(client):
    limits = client.get("/governance/limits").json()
    assert "Strict" in limits["available_presets"]

    strict = client.post("/governance/limits/preset/Strict").json()
    assert strict["active_preset"] == "Strict"

    edited = client.put("/governance/limits", json={"max_requests_per_minute": 11}).json()
    assert edited["active_preset"] == "Custom"
    assert edited["max_requests_per_minute"] == 11


def test_unknown_preset_is_422(client):
    assert client.post("/governance/limits/preset/Unlimited").status_code == 422


def test_usage_counts_calls(client):
    client.post("/intelligence/analyze", json=TICKET)

    usage = client.get("/governance/usage").json()
    assert usage["requests_last_minute"] == 1
    assert usage["in_flight"] == 0
    assert Decimal(str(usage["spend_today_usd"])) > 0


def test_pricing_lists_known_models(client):
    models = client.get("/governance/pricing").json()["models"]
    assert "anthropic.claude-3-sonnet-20240229-v1:0" in models


def test_usage_includes_daily_and_monthly_breakdowns(client):
    client.post("/intelligence/analyze", json=TICKET)

    usage = client.get("/governance/usage").json()
    assert usage["today"]["period"] == "2026-03-10"
    assert usage["today"]["operations"] == {"analysis": 1}
    assert usage["this_month"]["request_count"] == 1


def test_daily_and_monthly_usage(client):
    client.post("/intelligence/analyze", json=TICKET)

    daily = client.get("/governance/usage/daily", params={"date": "2026-03-10"}).json()
    assert daily["request_count"] == 1
    assert client.get("/governance/usage/daily", params={"date": "2026-03-09"}).json()["request_count"] == 0

    monthly = client.get("/governance/usage/monthly", params={"year": 2026, "month": 3}).json()
    assert (monthly["period"], monthly["request_count"]) == ("2026-03", 1)
    assert client.get("/governance/usage/monthly", params={"year": 2026, "month": 13}).status_code == 422


def test_usage_export_by_date_range(client):
    client.post("/intelligence/analyze", json=TICKET)

    export = client.get(
        "/governance/usage/export",
        params={"start": "2026-03-10T00:00:00Z", "end": "2026-03-10T23:59:59Z"}
    ).json()
    assert export["count"] == 1
    assert export["records"][0]["operation"] == "analysis"

    earlier = client.get(
        "/governance/usage/export",
        params={"start": "2026-03-01T00:00:00Z", "end": "2026-03-09T00:00:00Z"}
    ).json()
    assert earlier["count"] == 0


def test_usage_export_with_start_after_end_is_422(client):
    response = client.get(
        "/governance/usage/export",
        params={"start": "2026-03-10T00:00:00Z", "end": "2026-03-09T00:00:00Z"}
    )
    assert response.status_code == 422


def test_connection_test_is_billed(client):
    body = client.post("/governance/test-connection").json()

    assert body["success"] is True
    assert Decimal(str(body["cost_usd"])) > 0
    usage = client.get("/governance/usage").json()
    assert usage["today"]["operations"] == {"test_connection": 1}


def test_connection_test_without_backend_reports_failure(settings_provider, ticket_store, notifier, clock):
    client = _client(build_services(settings_provider, None, ticket_store, notifier, clock=clock))

    response = client.post("/governance/test-connection")
    assert response.status_code == 200
    assert response.json()["success"] is False
