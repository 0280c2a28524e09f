"""Tests for ticket analysis, auto-responses, escalation and the pipeline."""

import asyncio

import pytest

from helpdesk_intel.ai_settings.domain import AISettings, EscalationRule, RateLimitConfig
from helpdesk_intel.config import (
    ComplexityLevel,
    PipelineEventType,
    StageStatus,
    TicketCategory,
    TicketPriority,
)
from helpdesk_intel.core import (
    DomainException,
    RepositoryException,
    ResourceNotFoundException,
    TicketStoreException,
    ValidationException,
)
from helpdesk_intel.infrastructure.notifications import PipelineEvent
from helpdesk_intel.intelligence.domain import (
    ComplexityCalculator,
    EscalationEvaluator,
    TicketAnalysis,
    TicketInput,
)

from tests.conftest import RESET_REPLY, analysis_payload, make_ticket

TICKET = TicketInput(
    title="Cannot login",
    description="Password reset link expired",
    category="support",
    priority="medium",
    ticket_id="T-1"
)


def _analysis(confidence: float = 0.85, complexity: int = 45) -> TicketAnalysis:
    return TicketAnalysis(
        complexity=complexity,
        category=TicketCategory.SUPPORT,
        priority=TicketPriority.MEDIUM,
        confidence=confidence
    )


def _with(provider, **changes) -> None:
    provider.save(provider.snapshot().model_copy(update=changes))


# ========== Analyzer ==========

class TestTicketAnalyzer:

    async def test_analysis_is_parsed_and_scored(self, services):
        result = await services.analyzer.analyze(TICKET)

        assert result.is_ok
        analysis = result.value
        assert analysis.category == TicketCategory.SUPPORT
        assert analysis.confidence == 0.85
        # medium level (30) + medium priority (15)
        assert analysis.complexity == 45
        assert analysis.tags == ("login", "password")

    async def test_numeric_complexity_is_used_as_is(self, services, inference_client):
        inference_client.script("ticket analysis", analysis_payload(complexity=88))
        result = await services.analyzer.analyze(TICKET)
        assert result.value.complexity == 88

    async def test_percentage_confidence_is_normalized(self, services, inference_client):
        inference_client.script("ticket analysis", analysis_payload(confidence=72))
        result = await services.analyzer.analyze(TICKET)
        assert result.value.confidence == pytest.approx(0.72)

    async def test_fenced_json_is_accepted(self, services, inference_client):
        inference_client.script(
            "ticket analysis",
            '```json\n{"complexity": "low", "category": "bug", "priority": "low", "confidence": 0.9}\n```'
        )
        result = await services.analyzer.analyze(TICKET)
        assert result.value.category == TicketCategory.BUG

    @pytest.mark.parametrize("field", ["title", "description", "category", "priority"])
    async def test_empty_field_is_rejected_before_inference(self, services, inference_client, field):
        values = {"title": "t", "description": "d", "category": "support", "priority": "low"}
        values[field] = "   "

        with pytest.raises(ValidationException):
            await services.analyzer.analyze(TicketInput(**values))
        assert inference_client.calls == []

    async def test_missing_backend_is_service_unavailable(self, settings_provider, ticket_store, notifier, clock):
        from helpdesk_intel.main import build_services

        services = build_services(settings_provider, None, ticket_store, notifier, clock=clock)
        result = await services.analyzer.analyze(TICKET)
        assert result.status == StageStatus.SERVICE_UNAVAILABLE

    async def test_unparseable_output_is_service_unavailable(self, services, inference_client):
        inference_client.script("ticket analysis", "I think it is a login problem.")
        result = await services.analyzer.analyze(TICKET)
        assert result.status == StageStatus.SERVICE_UNAVAILABLE

    async def test_back_to_back_calls_over_minute_limit_are_rate_limited(self, services, settings_provider):
        _with(settings_provider, rate_limits=RateLimitConfig(max_requests_per_minute=1))

        first = await services.analyzer.analyze(TICKET)
        second = await services.analyzer.analyze(TICKET)

        assert first.is_ok
        assert second.status == StageStatus.RATE_LIMITED


class TestComplexityCalculator:

    def test_points_are_additive(self):
        score, factors = ComplexityCalculator.calculate(ComplexityLevel.MEDIUM, TicketPriority.HIGH, 12, 0.6)
        assert score == 30 + 25 + 10 + 10
        assert set(factors) == {"level", "priority", "estimated_hours", "low_confidence"}

    def test_score_is_capped_at_100(self):
        score, _ = ComplexityCalculator.calculate(ComplexityLevel.CRITICAL, TicketPriority.URGENT, 48, 0.2)
        assert score == 100


# ========== Response generator ==========

class TestAutoResponseGenerator:

    async def test_confident_analysis_produces_a_response(self, services):
        result = await services.generator.generate(TICKET, _analysis(0.85))

        assert result.is_ok
        assert result.value.response_text == RESET_REPLY
        assert result.value.confidence_score == 0.85
        assert result.value.was_applied is False

    async def test_confidence_equal_to_threshold_passes_the_gate(self, services):
        result = await services.generator.generate(TICKET, _analysis(0.7))
        assert result.is_ok

    async def test_confidence_just_below_threshold_is_no_response(self, services, inference_client):
        result = await services.generator.generate(TICKET, _analysis(0.69))

        assert result.status == StageStatus.NO_RESPONSE
        assert inference_client.calls_for("first support response") == []

    async def test_slow_generation_times_out(self, services, settings_provider, inference_client):
        inference_client.delay = 0.5
        snapshot = settings_provider.snapshot().model_copy(update={"response_timeout": 0.05})

        result = await services.generator.generate(TICKET, _analysis(), snapshot)
        assert result.status == StageStatus.TIMEOUT

    async def test_identical_tickets_reuse_one_generation(self, services, inference_client):
        other = TicketInput(
            title="Cannot login",
            description="Password reset link expired",
            category="support",
            priority="medium",
            ticket_id="T-2"
        )
        await services.generator.generate(TICKET, _analysis())
        second = await services.generator.generate(other, _analysis())

        assert second.value.ticket_id == "T-2"
        assert len(inference_client.calls_for("first support response")) == 1

    async def test_published_articles_are_suggested(self, services):
        from helpdesk_intel.learning.domain import KnowledgeArticle

        article = await services.article_repository.add(KnowledgeArticle(
            title="Resetting an expired password link",
            content="Request a new password reset link from the login page.",
            is_published=True
        ))
        await services.article_repository.add(KnowledgeArticle(
            title="Password policy draft",
            content="Passwords must be rotated.",
            is_published=False
        ))

        result = await services.generator.generate(TICKET, _analysis())
        assert result.value.suggested_article_ids == [article.id]


# ========== Escalation ==========

class TestEscalation:

    RULES = [
        EscalationRule(id=1, complexity_threshold=70, team_id=10, priority=1),
        EscalationRule(id=2, complexity_threshold=90, team_id=20, priority=5),
        EscalationRule(id=3, complexity_threshold=60, team_id=30, priority=5, enabled=False),
    ]

    def test_score_equal_to_threshold_does_not_escalate(self):
        assert not EscalationEvaluator.evaluate(70, self.RULES, threshold=70).should_escalate

    def test_score_just_above_threshold_escalates(self):
        decision = EscalationEvaluator.evaluate(71, self.RULES, threshold=70)
        assert decision.should_escalate
        assert decision.team_id == 10

    def test_highest_priority_matching_rule_wins(self):
        decision = EscalationEvaluator.evaluate(95, self.RULES, threshold=70)
        assert (decision.rule_id, decision.team_id) == (2, 20)

    def test_priority_ties_go_to_lowest_id(self):
        rules = [
            EscalationRule(id=8, complexity_threshold=50, team_id=80, priority=2),
            EscalationRule(id=4, complexity_threshold=50, team_id=40, priority=2),
        ]
        assert EscalationEvaluator.evaluate(75, rules, threshold=70).rule_id == 4

    def test_disabled_rules_are_ignored(self):
        rules = [EscalationRule(id=3, complexity_threshold=60, team_id=30, enabled=False)]
        assert not EscalationEvaluator.evaluate(99, rules, threshold=70).should_escalate

    def test_no_matching_rule_means_no_escalation(self):
        rules = [EscalationRule(id=1, complexity_threshold=95, team_id=10)]
        assert not EscalationEvaluator.evaluate(80, rules, threshold=70).should_escalate

    def test_disabled_escalation_never_escalates(self):
        settings = AISettings(escalation_enabled=False, escalation_team_id=5)
        assert not EscalationEvaluator.evaluate_with_settings(100, settings).should_escalate

    def test_fallback_team_catches_unmatched_scores(self):
        settings = AISettings(
            complexity_threshold=70,
            escalation_team_id=5,
            escalation_rules=[EscalationRule(id=1, complexity_threshold=95, team_id=10)]
        )
        assert EscalationEvaluator.evaluate_with_settings(80, settings).team_id == 5
        assert EscalationEvaluator.evaluate_with_settings(96, settings).team_id == 10


# ========== Pipeline ==========

class TestPipeline:

    async def test_confident_ticket_gets_response_applied_as_system_comment(
        self, services, ticket_store, notifier
    ):
        report = await services.pipeline.process_ticket("T-1")

        assert report.stages["analysis"] == StageStatus.OK
        assert report.stages["response"] == StageStatus.OK
        assert report.response_applied is True
        assert report.partial_failures == []

        comments = ticket_store.comments["T-1"]
        assert [(c.content, c.is_system) for c in comments] == [(RESET_REPLY, True)]
        assert len(notifier.of_type(PipelineEventType.RESPONSE_GENERATED)) == 1

    async def test_unconfident_ticket_is_left_for_a_human(self, services, ticket_store, inference_client):
        inference_client.script("ticket analysis", analysis_payload(confidence=0.4, complexity="low"))

        report = await services.pipeline.process_ticket("T-1")

        assert report.stages["response"] == StageStatus.NO_RESPONSE
        assert report.response_id is None
        assert ticket_store.comments["T-1"] == []
        assert ticket_store.tickets["T-1"].assigned_team_id is None
        assert (await services.pipeline.stats()).total == 0

    async def test_draft_below_auto_apply_threshold_is_stored_unapplied(
        self, services, settings_provider, ticket_store
    ):
        _with(settings_provider, confidence_threshold=0.5, auto_apply_threshold=0.9)

        report = await services.pipeline.process_ticket("T-1")

        assert report.response_id is not None
        assert report.response_applied is False
        assert ticket_store.comments["T-1"] == []

        applied = await services.pipeline.apply_response("T-1")
        assert applied.was_applied is True
        assert ticket_store.comments["T-1"][0].is_system is True

    async def test_applied_response_is_not_regenerated_on_repeat_create(self, services, inference_client):
        await services.pipeline.process_ticket("T-1")
        calls = len(inference_client.calls)

        report = await services.pipeline.process_ticket("T-1")

        assert report.skipped_reason is not None
        assert len(inference_client.calls) == calls

    async def test_update_event_reanalyzes_an_answered_ticket(self, services, inference_client):
        await services.pipeline.process_ticket("T-1")
        calls = len(inference_client.calls_for("ticket analysis"))

        report = await services.pipeline.process_ticket("T-1", "updated")

        assert report.skipped_reason is None
        assert len(inference_client.calls_for("ticket analysis")) == calls + 1

    async def test_complex_ticket_is_escalated_to_team(
        self, services, settings_provider, ticket_store, notifier, inference_client
    ):
        _with(settings_provider, escalation_team_id=7, complexity_threshold=70)
        inference_client.script("ticket analysis", analysis_payload(complexity=85))

        report = await services.pipeline.process_ticket("T-1")

        assert report.escalated_to == 7
        assert ticket_store.tickets["T-1"].assigned_team_id == 7
        assert len(notifier.of_type(PipelineEventType.TICKET_ESCALATED)) == 1

    async def test_missing_ticket_is_a_partial_failure(self, services):
        report = await services.pipeline.process_ticket("T-404")

        assert report.partial_failures[0]["stage"] == "analysis"
        assert report.stages == {}

    async def test_notifier_failure_does_not_fail_the_run(self, services, notifier):
        async def broken(event: PipelineEvent) -> bool:
            raise RuntimeError("webhook exploded")

        notifier.emit = broken
        report = await services.pipeline.process_ticket("T-1")

        assert report.response_applied is True
        assert report.partial_failures == [{"stage": "notify", "reason": "webhook exploded"}]

    async def test_governor_refusal_is_a_partial_failure(self, services, settings_provider):
        _with(settings_provider, rate_limits=RateLimitConfig(max_requests_per_minute=1))

        report = await services.pipeline.process_ticket("T-1")

        assert report.stages["analysis"] == StageStatus.OK
        assert report.stages["response"] == StageStatus.RATE_LIMITED
        assert report.partial_failures[0]["stage"] == "response"

    async def test_unrecorded_draft_is_never_posted(self, services, ticket_store, monkeypatch):
        async def broken(response):
            raise RepositoryException("database unavailable")

        monkeypatch.setattr(services.pipeline._responses, "add", broken)
        report = await services.pipeline.process_ticket("T-1")

        assert report.partial_failures[0]["stage"] == "response"
        assert report.response_applied is False
        assert ticket_store.comments["T-1"] == []

    async def test_failed_comment_leaves_the_draft_unapplied(self, services, ticket_store, monkeypatch):
        async def broken(ticket_id, content, is_system):
            raise TicketStoreException("helpdesk unavailable")

        monkeypatch.setattr(ticket_store, "create_comment", broken)
        report = await services.pipeline.process_ticket("T-1")

        assert report.partial_failures[0]["stage"] == "response"
        assert report.response_id is not None
        draft = await services.pipeline._responses.get_active("T-1")
        assert draft.id == report.response_id
        assert (await services.pipeline.stats()).applied == 0

    async def test_disabled_auto_response_still_escalates(
        self, services, settings_provider, ticket_store, inference_client
    ):
        _with(settings_provider, auto_response_enabled=False, escalation_team_id=3)
        inference_client.script("ticket analysis", analysis_payload(complexity=99))

        report = await services.pipeline.process_ticket("T-1")

        assert "response" not in report.stages
        assert report.escalated_to == 3

    async def test_concurrent_runs_for_different_tickets_are_independent(self, services, ticket_store):
        ticket_store.add_ticket(make_ticket("T-2", title="Cannot print", description="Printer offline"))

        reports = await asyncio.gather(
            services.pipeline.process_ticket("T-1"),
            services.pipeline.process_ticket("T-2"),
        )
        assert all(r.response_applied for r in reports)


class TestManualOperations:

    async def test_respond_without_analysis_analyzes_first(self, services, inference_client):
        result = await services.pipeline.respond(TICKET)

        assert result.is_ok
        assert len(inference_client.calls_for("ticket analysis")) == 1

    async def test_apply_without_active_response_is_not_found(self, services):
        with pytest.raises(ResourceNotFoundException):
            await services.pipeline.apply_response("T-1")

    async def test_applying_twice_is_rejected(self, services):
        await services.pipeline.respond(TICKET)
        await services.pipeline.apply_response("T-1")
        applied = await services.pipeline._responses.get_applied("T-1")

        with pytest.raises(DomainException):
            await services.pipeline._responses.mark_applied(applied.id, applied.applied_at)

    async def test_new_draft_replaces_previous_unapplied_draft(self, services):
        first = await services.pipeline.respond(TICKET)
        second = await services.pipeline.respond(TICKET)

        stats = await services.pipeline.stats()
        assert stats.total == 1
        assert second.value.id != first.value.id
