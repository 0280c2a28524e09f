"""
Learning Application Services
=============================

The learning queue, the knowledge learning job, knowledge search and the
feedback tracker.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from helpdesk_intel.ai_settings.application import ISettingsProvider
from helpdesk_intel.ai_settings.domain import AISettings
from helpdesk_intel.config import (
    VALID_RATINGS,
    ArticleSource,
    FeedbackKind,
    PipelineEventType,
    QueueStatus,
)
from helpdesk_intel.core import (
    ApplicationException,
    GovernorRefusalException,
    LearningItemFailedException,
    LLMException,
    ResourceNotFoundException,
    TimeoutException,
    ValidationException,
)
from helpdesk_intel.governance.application import Clock, GovernedInference, utc_now
from helpdesk_intel.infrastructure.llm import extract_json
from helpdesk_intel.infrastructure.notifications import INotificationDispatcher, PipelineEvent
from helpdesk_intel.infrastructure.ticket_store import ITicketStore, TicketComment, TicketRecord
from helpdesk_intel.intelligence.application import IAutoResponseRepository, IKnowledgeSearch
from helpdesk_intel.intelligence.domain import KnowledgeSnippet
from helpdesk_intel.learning.domain import (
    ArticlePromptBuilder,
    ImprovementPromptBuilder,
    KnowledgeArticle,
    LearningPassResult,
    LearningQueueItem,
    PatternPromptBuilder,
    ResolutionPattern,
    ResolutionQualityScorer,
    resolution_hours,
    resolution_text,
)
from helpdesk_intel.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Patterns below this success rate never become articles
MIN_PATTERN_SUCCESS_RATE = 70
# Minimum model confidence (0-100) before an article rewrite is accepted
MIN_IMPROVEMENT_CONFIDENCE = 70


# ========== Repository Interfaces ==========

class ILearningQueueRepository(ABC):
    """Interface for learning queue storage."""

    @abstractmethod
    async def enqueue(self, item: LearningQueueItem) -> Tuple[LearningQueueItem, bool]:
        """Insert unless the ticket is already queued. Returns (item, created)."""

    @abstractmethod
    async def get(self, ticket_id: str) -> Optional[LearningQueueItem]:
        """Get the item for a ticket."""

    @abstractmethod
    async def select_ready(self, limit: int, max_attempts: int) -> List[LearningQueueItem]:
        """Pending items and failed items with attempts left, oldest first."""

    @abstractmethod
    async def list_stale(self, stale_before: datetime) -> List[LearningQueueItem]:
        """Items still processing whose last transition is older than stale_before."""

    @abstractmethod
    async def save(self, item: LearningQueueItem) -> LearningQueueItem:
        """Persist a status transition."""

    @abstractmethod
    async def list_items(self, status: Optional[QueueStatus] = None, limit: int = 100) -> List[LearningQueueItem]:
        """Items, newest first, optionally filtered by status."""


class IKnowledgeArticleRepository(ABC):
    """Interface for knowledge article storage."""

    @abstractmethod
    async def get(self, article_id: int) -> Optional[KnowledgeArticle]:
        """Get an article by id."""

    @abstractmethod
    async def find_by_title(self, title: str) -> Optional[KnowledgeArticle]:
        """Case-insensitive exact title match."""

    @abstractmethod
    async def add(self, article: KnowledgeArticle) -> KnowledgeArticle:
        """Insert a new article."""

    @abstractmethod
    async def publish(self, article_id: int, at: datetime) -> Optional[KnowledgeArticle]:
        """
        Publish the stored row; other columns are left as stored.

        Raises:
            DomainException: Already published
        """

    @abstractmethod
    async def revise(self, article_id: int, content: str, at: datetime) -> Optional[KnowledgeArticle]:
        """Replace content only; ratings and usage stay as stored."""

    @abstractmethod
    async def list_articles(self, published: Optional[bool] = None, limit: int = 100) -> List[KnowledgeArticle]:
        """Articles, newest first."""

    @abstractmethod
    async def search(self, query: str, limit: int) -> List[KnowledgeArticle]:
        """Published articles matching a query; increments their usage_count."""

    @abstractmethod
    async def apply_rating(self, article_id: int, rating: int) -> Optional[KnowledgeArticle]:
        """Fold one rating into the running mean atomically."""


# ========== Application Services ==========

class LearningQueue:
    """Entry point for resolved tickets."""

    def __init__(self, repository: ILearningQueueRepository, clock: Clock = utc_now):
        self._repo = repository
        self._clock = clock

    async def enqueue(self, ticket_id: str) -> Tuple[LearningQueueItem, bool]:
        """Queue a resolved ticket. Enqueueing the same ticket twice is a no-op."""
        now = self._clock()
        item, created = await self._repo.enqueue(
            LearningQueueItem(ticket_id=ticket_id, created_at=now, updated_at=now)
        )
        if created:
            logger.info("Ticket queued for learning", extra={"ticket_id": ticket_id})
        return item, created

    async def list_items(self, status: Optional[QueueStatus] = None, limit: int = 100) -> List[LearningQueueItem]:
        return await self._repo.list_items(status, limit)


class ArticleKnowledgeSearch(IKnowledgeSearch):
    """Knowledge search over published articles."""

    def __init__(self, articles: IKnowledgeArticleRepository):
        self._articles = articles

    async def search(self, query: str, limit: int = 3) -> List[KnowledgeSnippet]:
        found = await self._articles.search(query, limit)
        return [KnowledgeSnippet(id=a.id, title=a.title, content=a.content) for a in found]


class KnowledgeLearningJob:
    """
    Mines resolved tickets into knowledge articles.

    Only one pass runs at a time; a second trigger while a pass is running
    returns a skipped result. Each item is processed in isolation: an error
    fails that item (bounded retries) and the pass moves on.
    """

    def __init__(
        self,
        queue: ILearningQueueRepository,
        articles: IKnowledgeArticleRepository,
        ticket_store: ITicketStore,
        inference: GovernedInference,
        settings_provider: ISettingsProvider,
        notifier: INotificationDispatcher,
        batch_size: int = 20,
        max_attempts: int = 3,
        lease: timedelta = timedelta(minutes=30),
        clock: Clock = utc_now
    ):
        self._queue = queue
        self._articles = articles
        self._store = ticket_store
        self._inference = inference
        self._settings = settings_provider
        self._notifier = notifier
        self._batch_size = batch_size
        self._max_attempts = max_attempts
        self._lease = lease
        self._clock = clock
        self._run_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    async def run_scheduled(self) -> LearningPassResult:
        """Scheduler entry point; honors auto_learn_enabled."""
        if not self._settings.snapshot().auto_learn_enabled:
            logger.info("Automatic learning disabled, skipping scheduled pass")
            return LearningPassResult(skipped=True, skip_reason="auto learning disabled")
        return await self.run_pass()

    async def run_pass(self) -> LearningPassResult:
        if self._run_lock.locked():
            logger.info("Learning pass already running, skipping")
            return LearningPassResult(skipped=True, skip_reason="pass already running")

        async with self._run_lock:
            if not self._inference.is_available:
                logger.warning("Inference capability unavailable, skipping learning pass")
                return LearningPassResult(skipped=True, skip_reason="inference capability unavailable")

            ai_settings = self._settings.snapshot()
            result = LearningPassResult()

            # Claims left behind by a crashed or frozen pass count as a failed attempt
            lease_expired = TimeoutException("learning item processing", self._lease.total_seconds())
            for stale in await self._queue.list_stale(self._clock() - self._lease):
                await self._fail_item(stale, lease_expired)
                result.items_failed += 1

            items = await self._queue.select_ready(self._batch_size, self._max_attempts)
            logger.info("Learning pass started", extra={"items": len(items)})

            for item in items:
                item.start(self._clock())
                item = await self._queue.save(item)

                try:
                    await self._process_item(item, ai_settings, result)
                except GovernorRefusalException as e:
                    item.defer(self._clock())
                    await self._queue.save(item)
                    result.items_deferred += 1
                    logger.warning(
                        "Learning pass stopped by governor",
                        extra={"ticket_id": item.ticket_id, "limit": e.limit}
                    )
                    break
                except asyncio.CancelledError:
                    item.defer(self._clock())
                    await self._queue.save(item)
                    logger.warning("Learning pass cancelled, item released", extra={"ticket_id": item.ticket_id})
                    raise
                except Exception as e:
                    await self._fail_item(item, e)
                    result.items_failed += 1
                    continue

                item.complete(self._clock())
                await self._queue.save(item)
                result.items_processed += 1

            logger.info(
                "Learning pass completed",
                extra={
                    "patterns_found": result.patterns_found,
                    "articles_created": result.articles_created,
                    "articles_published": result.articles_published,
                    "items_processed": result.items_processed,
                    "items_failed": result.items_failed,
                    "items_deferred": result.items_deferred
                }
            )
            return result

    async def _fail_item(self, item: LearningQueueItem, error: Exception) -> None:
        reason = error.message if isinstance(error, ApplicationException) else (str(error) or type(error).__name__)
        item.fail(reason, self._clock())
        await self._queue.save(item)
        logger.warning(
            "Learning item failed",
            extra={"ticket_id": item.ticket_id, "attempts": item.attempts, "error": reason}
        )

        if item.is_exhausted(self._max_attempts):
            exhausted = LearningItemFailedException(item.ticket_id, item.attempts, reason)
            logger.error(exhausted.message, extra=exhausted.details)
            await self._notifier.emit(PipelineEvent(
                type=PipelineEventType.LEARNING_ITEM_FAILED,
                subject_id=item.ticket_id,
                summary=exhausted.message,
                payload={"attempts": item.attempts, "last_error": reason},
                occurred_at=self._clock()
            ))

    async def _process_item(
        self,
        item: LearningQueueItem,
        ai_settings: AISettings,
        result: LearningPassResult
    ) -> None:
        ticket = await self._store.get_ticket(item.ticket_id)
        comments = await self._store.get_comments(item.ticket_id)

        quality = ResolutionQualityScorer.score(ticket, comments)
        if quality < ai_settings.min_resolution_score:
            logger.info(
                "Resolution below quality bar, nothing to learn",
                extra={"ticket_id": item.ticket_id, "score": quality, "min": ai_settings.min_resolution_score}
            )
            return

        pattern = await self._extract_pattern(ticket, comments, ai_settings)
        result.patterns_found += 1
        if pattern.success_rate < MIN_PATTERN_SUCCESS_RATE:
            return

        article = await self._draft_article(pattern, ticket, ai_settings)
        if await self._articles.find_by_title(article.title) is not None:
            logger.info("Similar article already exists", extra={"title": article.title})
            return

        article.is_published = not ai_settings.article_approval_required
        article = await self._articles.add(article)
        result.articles_created += 1

        if article.is_published:
            result.articles_published += 1
            return

        await self._notifier.emit(PipelineEvent(
            type=PipelineEventType.ARTICLE_PENDING_APPROVAL,
            subject_id=str(article.id),
            summary=f"Draft article '{article.title}' needs approval",
            payload={"source_ticket_id": item.ticket_id},
            occurred_at=self._clock()
        ))

    async def _extract_pattern(
        self,
        ticket: TicketRecord,
        comments: List[TicketComment],
        ai_settings: AISettings
    ) -> ResolutionPattern:
        response = await self._inference.complete(
            PatternPromptBuilder.build_prompt(ticket, resolution_text(comments), resolution_hours(ticket)),
            system_prompt=PatternPromptBuilder.SYSTEM_PROMPT,
            ai_settings=ai_settings,
            operation="learning_pattern",
            max_tokens=min(ai_settings.max_tokens, 1000)
        )
        data = extract_json(response.text)

        problem_type = str(data.get("problemType", "")).strip()
        if not problem_type:
            raise LLMException("Pattern response has no problemType")
        return ResolutionPattern(
            problem_type=problem_type,
            common_solutions=tuple(str(s) for s in data.get("commonSolutions") or []),
            preventive_measures=tuple(str(p) for p in data.get("preventiveMeasures") or []),
            success_rate=max(0, min(100, int(data.get("successRate", 0))))
        )

    async def _draft_article(
        self,
        pattern: ResolutionPattern,
        ticket: TicketRecord,
        ai_settings: AISettings
    ) -> KnowledgeArticle:
        response = await self._inference.complete(
            ArticlePromptBuilder.build_prompt(pattern, ticket.category),
            system_prompt=ArticlePromptBuilder.SYSTEM_PROMPT,
            ai_settings=ai_settings,
            operation="learning_article"
        )
        data = extract_json(response.text)

        title = str(data.get("title", "")).strip()
        content = str(data.get("content", "")).strip()
        if not title or not content:
            raise LLMException("Article response is missing title or content")

        now = self._clock()
        return KnowledgeArticle(
            title=title[:255],
            content=content,
            category=str(data.get("category") or ticket.category or "support"),
            tags=[str(t) for t in data.get("tags") or []][:10],
            source=ArticleSource.LEARNED,
            source_ticket_id=ticket.id,
            created_at=now,
            updated_at=now
        )

    async def approve_article(self, article_id: int) -> KnowledgeArticle:
        """
        Publish a draft.

        Raises:
            ResourceNotFoundException: Unknown article
            DomainException: Already published
        """
        article = await self._articles.publish(article_id, self._clock())
        if article is None:
            raise ResourceNotFoundException("KnowledgeArticle", str(article_id))
        logger.info("Knowledge article approved", extra={"article_id": article_id})
        return article

    async def improve_article(
        self,
        article_id: int,
        ticket_id: str,
        success: bool = True
    ) -> Tuple[KnowledgeArticle, bool]:
        """
        Revise an article with a newly resolved ticket.

        Returns:
            (article, updated)
        """
        article = await self._articles.get(article_id)
        if article is None:
            raise ResourceNotFoundException("KnowledgeArticle", str(article_id))

        ticket = await self._store.get_ticket(ticket_id)
        comments = await self._store.get_comments(ticket_id)
        ai_settings = self._settings.snapshot()

        response = await self._inference.complete(
            ImprovementPromptBuilder.build_prompt(
                article, resolution_text(comments), resolution_hours(ticket), success
            ),
            system_prompt=ImprovementPromptBuilder.SYSTEM_PROMPT,
            ai_settings=ai_settings,
            operation="learning_improve"
        )
        data = extract_json(response.text)

        improved = str(data.get("improvedContent", "")).strip()
        confidence = float(data.get("confidence", 0) or 0)
        if not data.get("shouldUpdate") or not improved or confidence < MIN_IMPROVEMENT_CONFIDENCE:
            logger.info("Article left unchanged", extra={"article_id": article_id, "confidence": confidence})
            return article, False

        article = await self._articles.revise(article_id, improved, self._clock())
        if article is None:
            raise ResourceNotFoundException("KnowledgeArticle", str(article_id))
        logger.info(
            "Knowledge article improved",
            extra={"article_id": article_id, "reason": str(data.get("improvementReason", ""))[:200]}
        )
        return article, True


@dataclass
class FeedbackAck:
    """Acknowledgement of recorded feedback."""
    kind: FeedbackKind
    target_id: int
    rating: int
    was_helpful: bool
    effectiveness_score: Optional[float] = None
    articles_updated: List[int] = field(default_factory=list)


class FeedbackTracker:
    """
    Records helpfulness ratings.

    Feedback is a signal only: it never changes whether a response was
    applied.
    """

    def __init__(self, responses: IAutoResponseRepository, articles: IKnowledgeArticleRepository):
        self._responses = responses
        self._articles = articles

    async def record_feedback(self, kind: FeedbackKind, target_id: int, rating: int) -> FeedbackAck:
        """
        Raises:
            ValidationException: Rating outside {1, 5}
            ResourceNotFoundException: Unknown response or article
        """
        if rating not in VALID_RATINGS:
            raise ValidationException(
                f"Rating must be one of {VALID_RATINGS}",
                {"rating": rating}
            )
        helpful = rating == max(VALID_RATINGS)

        if kind == FeedbackKind.KNOWLEDGE_ARTICLE:
            article = await self._articles.apply_rating(target_id, rating)
            if article is None:
                raise ResourceNotFoundException("KnowledgeArticle", str(target_id))
            logger.info(
                "Article feedback recorded",
                extra={"article_id": target_id, "rating": rating, "score": article.effectiveness_score}
            )
            return FeedbackAck(
                kind=kind,
                target_id=target_id,
                rating=rating,
                was_helpful=helpful,
                effectiveness_score=article.effectiveness_score,
                articles_updated=[target_id]
            )

        response = await self._responses.mark_helpful(target_id, helpful)
        if response is None:
            raise ResourceNotFoundException("AutoResponse", str(target_id))

        updated = []
        for article_id in response.suggested_article_ids:
            if await self._articles.apply_rating(article_id, rating) is not None:
                updated.append(article_id)

        logger.info(
            "Response feedback recorded",
            extra={"response_id": target_id, "helpful": helpful, "articles_updated": len(updated)}
        )
        return FeedbackAck(
            kind=kind,
            target_id=target_id,
            rating=rating,
            was_helpful=helpful,
            articles_updated=updated
        )
