"""
Learning DTOs
=============

Request/response models for the learning API.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from helpdesk_intel.config import ArticleSource, FeedbackKind, QueueStatus
from helpdesk_intel.learning.domain import KnowledgeArticle, LearningPassResult, LearningQueueItem


class LearningPassResponse(BaseModel):
    """Counters for one learning pass."""
    patterns_found: int
    articles_created: int
    articles_published: int
    items_processed: int
    items_failed: int
    items_deferred: int
    skipped: bool
    skip_reason: Optional[str] = None

    @classmethod
    def from_result(cls, result: LearningPassResult) -> "LearningPassResponse":
        return cls(
            patterns_found=result.patterns_found,
            articles_created=result.articles_created,
            articles_published=result.articles_published,
            items_processed=result.items_processed,
            items_failed=result.items_failed,
            items_deferred=result.items_deferred,
            skipped=result.skipped,
            skip_reason=result.skip_reason
        )


class QueueItemDTO(BaseModel):
    ticket_id: str
    status: QueueStatus
    attempts: int
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, item: LearningQueueItem) -> "QueueItemDTO":
        return cls(
            ticket_id=item.ticket_id,
            status=item.status,
            attempts=item.attempts,
            last_error=item.last_error,
            created_at=item.created_at,
            updated_at=item.updated_at
        )


class QueueListResponse(BaseModel):
    items: List[QueueItemDTO]
    total: int


class ArticleDTO(BaseModel):
    """Knowledge article as returned by the API."""
    id: int
    title: str
    content: str
    category: str
    tags: List[str] = Field(default_factory=list)
    effectiveness_score: float
    usage_count: int
    feedback_count: int
    is_published: bool
    source: ArticleSource
    source_ticket_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, article: KnowledgeArticle) -> "ArticleDTO":
        return cls(
            id=article.id,
            title=article.title,
            content=article.content,
            category=article.category,
            tags=list(article.tags),
            effectiveness_score=round(article.effectiveness_score, 4),
            usage_count=article.usage_count,
            feedback_count=article.feedback_count,
            is_published=article.is_published,
            source=article.source,
            source_ticket_id=article.source_ticket_id,
            created_at=article.created_at,
            updated_at=article.updated_at
        )


class ArticleListResponse(BaseModel):
    articles: List[ArticleDTO]
    total: int


class ImproveArticleRequest(BaseModel):
    ticket_id: str = Field(..., min_length=1, max_length=100)
    success: bool = True


class ImproveArticleResponse(BaseModel):
    updated: bool
    article: ArticleDTO


class FeedbackRequest(BaseModel):
    """Helpfulness rating; 5 is helpful, 1 is not."""
    kind: FeedbackKind
    target_id: int = Field(..., ge=1)
    rating: int


class FeedbackResponse(BaseModel):
    kind: FeedbackKind
    target_id: int
    rating: int
    was_helpful: bool
    effectiveness_score: Optional[float] = None
    articles_updated: List[int] = Field(default_factory=list)
