"""Tests for the learning queue, the learning job and feedback tracking."""

import asyncio
from datetime import timedelta

import pytest

from helpdesk_intel.ai_settings.domain import RateLimitConfig
from helpdesk_intel.config import FeedbackKind, PipelineEventType, QueueStatus
from helpdesk_intel.core import (
    DomainException,
    ResourceNotFoundException,
    ValidationException,
)
from helpdesk_intel.infrastructure.ticket_store import TicketComment
from helpdesk_intel.intelligence.domain import AutoResponse
from helpdesk_intel.learning.domain import (
    KnowledgeArticle,
    KnowledgeMatcher,
    LearningQueueItem,
    ResolutionQualityScorer,
    resolution_text,
)
from helpdesk_intel.main import build_services

from tests.conftest import SOLUTION_COMMENT, START, make_ticket, resolved_ticket


def _with(provider, **changes) -> None:
    provider.save(provider.snapshot().model_copy(update=changes))


@pytest.fixture
def learning_store(ticket_store):
    ticket_store.add_ticket(resolved_ticket("R-1"), [SOLUTION_COMMENT])
    ticket_store.add_ticket(resolved_ticket("R-2", title="VPN drops"), [SOLUTION_COMMENT])
    return ticket_store


# ========== Domain ==========

class TestLearningQueueItem:

    def test_happy_path_transitions(self):
        item = LearningQueueItem(ticket_id="R-1")
        item.start()
        item.complete()
        assert item.status == QueueStatus.COMPLETED
        assert item.attempts == 1

    def test_completed_is_final(self):
        item = LearningQueueItem(ticket_id="R-1")
        item.start()
        item.complete()
        with pytest.raises(DomainException):
            item.start()

    def test_failed_item_can_retry_until_exhausted(self):
        item = LearningQueueItem(ticket_id="R-1")
        for _ in range(3):
            item.start()
            item.fail("boom")
        assert item.is_exhausted(3)
        assert not item.is_ready(3)
        assert item.last_error == "boom"

    def test_defer_refunds_the_attempt(self):
        item = LearningQueueItem(ticket_id="R-1")
        item.start()
        item.defer()
        assert (item.status, item.attempts) == (QueueStatus.PENDING, 0)


class TestResolutionQuality:

    def test_unresolved_ticket_scores_zero(self):
        assert ResolutionQualityScorer.score(make_ticket(), [SOLUTION_COMMENT]) == 0.0

    def test_well_documented_quick_fix_scores_full_marks(self):
        assert ResolutionQualityScorer.score(resolved_ticket(), [SOLUTION_COMMENT]) == 1.0

    def test_system_comments_do_not_count(self):
        comments = [TicketComment(content=SOLUTION_COMMENT.content, is_system=True)]
        # only the 72-hour component remains
        assert ResolutionQualityScorer.score(resolved_ticket(), comments) == 0.2

    def test_slow_resolution_loses_speed_points(self):
        ticket = resolved_ticket(created_at=START - timedelta(days=10))
        assert ResolutionQualityScorer.score(ticket, [SOLUTION_COMMENT]) == 0.8

    def test_resolution_text_uses_last_three_human_comments(self):
        comments = [TicketComment(content=f"note {i}") for i in range(5)]
        comments.append(TicketComment(content="auto-closed", is_system=True))
        assert resolution_text(comments) == "note 2\n\nnote 3\n\nnote 4"

    def test_resolution_text_has_a_fallback(self):
        assert resolution_text([]) == "Issue resolved"


class TestKnowledgeMatcher:

    def test_title_matches_rank_above_body_matches(self):
        body = KnowledgeArticle(title="Account basics", content="How to reset a password", id=1)
        title = KnowledgeArticle(title="Password reset", content="Steps", id=2)

        ranked = KnowledgeMatcher.rank("password reset", [body, title], limit=5)
        assert [a.id for a in ranked] == [2, 1]

    def test_query_of_only_short_words_matches_nothing(self):
        article = KnowledgeArticle(title="It is on", content="on and on", id=1)
        assert KnowledgeMatcher.rank("is it on", [article], limit=5) == []


# ========== Queue ==========

class TestLearningQueue:

    async def test_enqueue_is_idempotent(self, services):
        first, created = await services.learning_queue.enqueue("R-1")
        again, created_again = await services.learning_queue.enqueue("R-1")

        assert created is True
        assert created_again is False
        assert again.id == first.id
        assert len(await services.learning_queue.list_items()) == 1

    async def test_requeue_never_regresses_a_completed_item(self, services, learning_store):
        await services.learning_queue.enqueue("R-1")
        await services.learning_job.run_pass()

        item, created = await services.learning_queue.enqueue("R-1")

        assert created is False
        assert item.status == QueueStatus.COMPLETED


# ========== Learning job ==========

class TestKnowledgeLearningJob:

    async def test_pass_turns_resolution_into_draft_article(self, services, learning_store, notifier):
        await services.learning_queue.enqueue("R-1")

        result = await services.learning_job.run_pass()

        assert (result.patterns_found, result.articles_created, result.articles_published) == (1, 1, 0)
        assert result.items_processed == 1

        drafts = await services.article_repository.list_articles(published=False)
        assert [a.title for a in drafts] == ["Mock article"]
        assert drafts[0].source_ticket_id == "R-1"
        assert len(notifier.of_type(PipelineEventType.ARTICLE_PENDING_APPROVAL)) == 1

    async def test_articles_publish_directly_without_approval(self, services, settings_provider, learning_store):
        _with(settings_provider, article_approval_required=False)
        await services.learning_queue.enqueue("R-1")

        result = await services.learning_job.run_pass()

        assert result.articles_published == 1
        assert len(await services.article_repository.list_articles(published=True)) == 1

    async def test_completed_items_are_never_reselected(self, services, learning_store, inference_client):
        await services.learning_queue.enqueue("R-1")
        await services.learning_job.run_pass()
        calls = len(inference_client.calls)

        result = await services.learning_job.run_pass()

        assert result.items_processed == 0
        assert len(inference_client.calls) == calls

    async def test_duplicate_titles_are_skipped(self, services, learning_store):
        await services.learning_queue.enqueue("R-1")
        await services.learning_queue.enqueue("R-2")

        result = await services.learning_job.run_pass()

        assert result.patterns_found == 2
        assert result.articles_created == 1
        assert result.items_processed == 2

    async def test_low_quality_resolution_is_completed_without_inference(
        self, services, ticket_store, inference_client
    ):
        ticket_store.add_ticket(resolved_ticket("R-3"), [TicketComment(content="done")])
        await services.learning_queue.enqueue("R-3")

        result = await services.learning_job.run_pass()

        assert result.items_processed == 1
        assert result.patterns_found == 0
        assert inference_client.calls == []

    async def test_unreliable_pattern_does_not_become_an_article(self, services, learning_store, inference_client):
        inference_client.script("resolution pattern", {"problemType": "Flaky VPN", "successRate": 40})
        await services.learning_queue.enqueue("R-1")

        result = await services.learning_job.run_pass()

        assert result.patterns_found == 1
        assert result.articles_created == 0

    async def test_failing_item_does_not_stop_the_pass(self, services, learning_store):
        await services.learning_queue.enqueue("R-404")
        await services.learning_queue.enqueue("R-1")

        result = await services.learning_job.run_pass()

        assert result.items_failed == 1
        assert result.items_processed == 1
        failed = await services.learning_queue.list_items(QueueStatus.FAILED)
        assert failed[0].ticket_id == "R-404"
        assert failed[0].last_error

    async def test_retries_are_bounded(self, services, learning_store, inference_client, notifier):
        inference_client.script("resolution pattern", "not json at all")
        await services.learning_queue.enqueue("R-1")

        for _ in range(4):
            await services.learning_job.run_pass()

        item = (await services.learning_queue.list_items())[0]
        assert item.status == QueueStatus.FAILED
        assert item.attempts == 3
        assert len(inference_client.calls_for("resolution pattern")) == 3
        assert len(notifier.of_type(PipelineEventType.LEARNING_ITEM_FAILED)) == 1

    async def test_governor_refusal_defers_and_stops_the_pass(
        self, services, settings_provider, learning_store
    ):
        _with(settings_provider, rate_limits=RateLimitConfig(max_requests_per_minute=1))
        await services.learning_queue.enqueue("R-1")
        await services.learning_queue.enqueue("R-2")

        result = await services.learning_job.run_pass()

        # the pattern call is admitted, the article call is refused
        assert result.items_deferred == 1
        assert result.items_processed == 0
        items = {i.ticket_id: i for i in await services.learning_queue.list_items()}
        assert items["R-1"].status == QueueStatus.PENDING
        assert items["R-1"].attempts == 0
        assert items["R-2"].attempts == 0

    async def test_pass_is_skipped_without_inference(self, settings_provider, learning_store, notifier, clock):
        services = build_services(settings_provider, None, learning_store, notifier, clock=clock)
        await services.learning_queue.enqueue("R-1")

        result = await services.learning_job.run_pass()

        assert result.skipped is True
        item = (await services.learning_queue.list_items())[0]
        assert (item.status, item.attempts) == (QueueStatus.PENDING, 0)

    async def test_overlapping_trigger_is_skipped(self, services, learning_store, inference_client):
        inference_client.delay = 0.05
        await services.learning_queue.enqueue("R-1")

        first = asyncio.create_task(services.learning_job.run_pass())
        await asyncio.sleep(0)
        second = await services.learning_job.run_pass()
        first_result = await first

        assert second.skipped is True
        assert first_result.items_processed == 1

    async def test_cancelled_pass_releases_its_item(self, services, learning_store, inference_client):
        inference_client.delay = 0.05
        await services.learning_queue.enqueue("R-1")

        running = asyncio.create_task(services.learning_job.run_pass())
        await asyncio.sleep(0.01)
        running.cancel()
        with pytest.raises(asyncio.CancelledError):
            await running

        item = (await services.learning_queue.list_items())[0]
        assert (item.status, item.attempts) == (QueueStatus.PENDING, 0)

    async def _claim(self, services, ticket_id: str, clock, failures: int = 0) -> None:
        queue = services.learning_queue._repo
        await services.learning_queue.enqueue(ticket_id)
        item = await queue.get(ticket_id)
        for _ in range(failures):
            item.start(clock())
            item.fail("boom", clock())
        item.start(clock())
        await queue.save(item)

    async def test_abandoned_claim_is_retried_after_lease(self, services, learning_store, clock):
        await self._claim(services, "R-1", clock)

        fresh = await services.learning_job.run_pass()
        assert fresh.items_processed == 0
        assert (await services.learning_queue.list_items())[0].status == QueueStatus.PROCESSING

        clock.advance(minutes=31)
        result = await services.learning_job.run_pass()

        assert (result.items_failed, result.items_processed) == (1, 1)
        item = (await services.learning_queue.list_items())[0]
        assert (item.status, item.attempts) == (QueueStatus.COMPLETED, 2)

    async def test_abandoned_claim_on_last_attempt_is_surfaced(self, services, learning_store, clock, notifier):
        await self._claim(services, "R-1", clock, failures=2)
        clock.advance(minutes=31)

        result = await services.learning_job.run_pass()

        assert result.items_processed == 0
        item = (await services.learning_queue.list_items())[0]
        assert (item.status, item.attempts) == (QueueStatus.FAILED, 3)
        assert "exceeded" in item.last_error
        assert len(notifier.of_type(PipelineEventType.LEARNING_ITEM_FAILED)) == 1

    async def test_scheduled_pass_honors_auto_learn_switch(self, services, settings_provider, learning_store):
        _with(settings_provider, auto_learn_enabled=False)
        await services.learning_queue.enqueue("R-1")

        result = await services.learning_job.run_scheduled()

        assert result.skipped is True
        assert (await services.learning_queue.list_items())[0].status == QueueStatus.PENDING


class TestArticleLifecycle:

    async def _draft(self, services) -> KnowledgeArticle:
        return await services.article_repository.add(KnowledgeArticle(
            title="Resetting an expired password link",
            content="Request a new link.",
        ))

    async def test_approve_publishes_a_draft(self, services):
        draft = await self._draft(services)

        article = await services.learning_job.approve_article(draft.id)

        assert article.is_published is True

    async def test_approving_twice_is_rejected(self, services):
        draft = await self._draft(services)
        await services.learning_job.approve_article(draft.id)

        with pytest.raises(DomainException):
            await services.learning_job.approve_article(draft.id)

    async def test_approving_unknown_article_is_not_found(self, services):
        with pytest.raises(ResourceNotFoundException):
            await services.learning_job.approve_article(999)

    async def test_improvement_revises_content(self, services, learning_store):
        draft = await self._draft(services)

        article, updated = await services.learning_job.improve_article(draft.id, "R-1")

        assert updated is True
        assert article.content.startswith("Step 1.")

    async def test_low_confidence_improvement_is_ignored(self, services, learning_store, inference_client):
        inference_client.script(
            "article improvement",
            {"shouldUpdate": True, "improvedContent": "Rewritten.", "confidence": 40}
        )
        draft = await self._draft(services)

        article, updated = await services.learning_job.improve_article(draft.id, "R-1")

        assert updated is False
        assert article.content == "Request a new link."

    async def test_published_articles_are_searchable_and_counted(self, services):
        draft = await self._draft(services)
        await services.learning_job.approve_article(draft.id)

        found = await services.article_repository.search("expired password", limit=3)

        assert [a.id for a in found] == [draft.id]
        assert (await services.article_repository.get(draft.id)).usage_count == 1

    async def test_rating_during_improvement_is_kept(self, services, learning_store, inference_client):
        draft = await self._draft(services)
        inference_client.delay = 0.05

        improving = asyncio.create_task(services.learning_job.improve_article(draft.id, "R-1"))
        await asyncio.sleep(0.01)
        await services.feedback_tracker.record_feedback(FeedbackKind.KNOWLEDGE_ARTICLE, draft.id, 5)
        article, updated = await improving

        assert updated is True
        stored = await services.article_repository.get(draft.id)
        assert stored.content.startswith("Step 1.")
        assert (stored.feedback_count, stored.effectiveness_score) == (1, 5.0)

    async def test_rating_before_approval_is_kept(self, services):
        draft = await self._draft(services)
        await services.feedback_tracker.record_feedback(FeedbackKind.KNOWLEDGE_ARTICLE, draft.id, 1)

        article = await services.learning_job.approve_article(draft.id)

        assert article.is_published is True
        assert (article.feedback_count, article.effectiveness_score) == (1, 1.0)


# ========== Feedback ==========

class TestFeedbackTracker:

    async def _article(self, services) -> KnowledgeArticle:
        return await services.article_repository.add(KnowledgeArticle(
            title="Printer offline", content="Restart the spooler.", is_published=True
        ))

    async def test_article_score_is_running_mean(self, services):
        article = await self._article(services)
        tracker = services.feedback_tracker

        for rating in (5, 5, 1):
            ack = await tracker.record_feedback(FeedbackKind.KNOWLEDGE_ARTICLE, article.id, rating)

        assert ack.effectiveness_score == pytest.approx(11 / 3)
        stored = await services.article_repository.get(article.id)
        assert stored.feedback_count == 3

    @pytest.mark.parametrize("rating", [0, 2, 3, 4, 6])
    async def test_ratings_outside_binary_scale_are_rejected(self, services, rating):
        article = await self._article(services)
        with pytest.raises(ValidationException):
            await services.feedback_tracker.record_feedback(FeedbackKind.KNOWLEDGE_ARTICLE, article.id, rating)

    async def test_unknown_article_is_not_found(self, services):
        with pytest.raises(ResourceNotFoundException):
            await services.feedback_tracker.record_feedback(FeedbackKind.KNOWLEDGE_ARTICLE, 41, 5)

    async def test_response_feedback_marks_helpfulness_and_rates_suggestions(self, services):
        article = await self._article(services)
        responses = services.feedback_tracker._responses
        response = await responses.add(AutoResponse(
            ticket_id="T-1",
            response_text="Restart the spooler service.",
            confidence_score=0.9,
            suggested_article_ids=[article.id]
        ))

        ack = await services.feedback_tracker.record_feedback(FeedbackKind.AUTO_RESPONSE, response.id, 1)

        assert ack.was_helpful is False
        assert ack.articles_updated == [article.id]
        assert (await responses.get_by_id(response.id)).was_helpful is False
        assert (await services.article_repository.get(article.id)).effectiveness_score == 1.0

    async def test_feedback_never_changes_applied_state(self, services):
        await services.pipeline.process_ticket("T-1")
        response = await services.feedback_tracker._responses.get_applied("T-1")

        await services.feedback_tracker.record_feedback(FeedbackKind.AUTO_RESPONSE, response.id, 1)

        assert (await services.feedback_tracker._responses.get_by_id(response.id)).was_applied is True
        stats = await services.pipeline.stats()
        assert (stats.helpful, stats.not_helpful) == (0, 1)

    async def test_feedback_racing_a_manual_apply_keeps_both(self, services, monkeypatch):
        responses = services.feedback_tracker._responses
        draft = await responses.add(AutoResponse(
            ticket_id="T-1", response_text="Restart the spooler service.", confidence_score=0.7
        ))

        def slow(read):
            async def wrapper(key):
                found = await read(key)
                await asyncio.sleep(0.01)
                return found
            return wrapper

        monkeypatch.setattr(responses, "get_by_id", slow(responses.get_by_id))
        monkeypatch.setattr(responses, "get_active", slow(responses.get_active))

        await asyncio.gather(
            services.feedback_tracker.record_feedback(FeedbackKind.AUTO_RESPONSE, draft.id, 1),
            services.pipeline.apply_response("T-1"),
        )

        stored = await responses.get_by_id(draft.id)
        assert stored.was_applied is True
        assert stored.was_helpful is False

    async def test_unknown_response_is_not_found(self, services):
        with pytest.raises(ResourceNotFoundException):
            await services.feedback_tracker.record_feedback(FeedbackKind.AUTO_RESPONSE, 77, 5)
