"""
Learning Domain Entities
========================

Queue items, knowledge articles and the transient results of a learning
pass.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from helpdesk_intel.config import ArticleSource, QueueStatus
from helpdesk_intel.core import DomainException


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LearningQueueItem:
    """
    Resolved ticket waiting to be mined for knowledge.

    State machine: pending -> processing -> completed | failed.
    A failed item returns to processing on retry; completed is final.
    """
    ticket_id: str
    status: QueueStatus = QueueStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    id: Optional[int] = None

    def _require(self, *allowed: QueueStatus) -> None:
        if self.status not in allowed:
            raise DomainException(
                f"Learning item {self.ticket_id} cannot leave status '{self.status.value}' this way",
                {"ticket_id": self.ticket_id, "status": self.status.value}
            )

    def start(self, at: Optional[datetime] = None) -> None:
        """Claim the item for processing; counts as an attempt."""
        self._require(QueueStatus.PENDING, QueueStatus.FAILED)
        self.status = QueueStatus.PROCESSING
        self.attempts += 1
        self.updated_at = at or _utcnow()

    def complete(self, at: Optional[datetime] = None) -> None:
        self._require(QueueStatus.PROCESSING)
        self.status = QueueStatus.COMPLETED
        self.last_error = None
        self.updated_at = at or _utcnow()

    def fail(self, error: str, at: Optional[datetime] = None) -> None:
        self._require(QueueStatus.PROCESSING)
        self.status = QueueStatus.FAILED
        self.last_error = error[:1000]
        self.updated_at = at or _utcnow()

    def defer(self, at: Optional[datetime] = None) -> None:
        """Hand the item back untouched, refunding the attempt."""
        self._require(QueueStatus.PROCESSING)
        self.status = QueueStatus.PENDING
        self.attempts = max(0, self.attempts - 1)
        self.updated_at = at or _utcnow()

    def is_exhausted(self, max_attempts: int) -> bool:
        return self.status == QueueStatus.FAILED and self.attempts >= max_attempts

    def is_ready(self, max_attempts: int) -> bool:
        if self.status == QueueStatus.PENDING:
            return True
        return self.status == QueueStatus.FAILED and self.attempts < max_attempts


@dataclass
class KnowledgeArticle:
    """
    Reusable answer, written by an operator or learned from resolutions.

    effectiveness_score is the running mean of every rating received.
    """
    title: str
    content: str
    category: str = "support"
    tags: List[str] = field(default_factory=list)
    effectiveness_score: float = 0.0
    usage_count: int = 0
    feedback_count: int = 0
    is_published: bool = False
    source: ArticleSource = ArticleSource.MANUAL
    source_ticket_id: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    id: Optional[int] = None

    def record_rating(self, rating: int) -> None:
        self.feedback_count += 1
        self.effectiveness_score += (rating - self.effectiveness_score) / self.feedback_count

    def publish(self, at: Optional[datetime] = None) -> None:
        if self.is_published:
            raise DomainException(f"Article {self.id} is already published", {"article_id": self.id})
        self.is_published = True
        self.updated_at = at or _utcnow()

    def revise(self, content: str, at: Optional[datetime] = None) -> None:
        self.content = content
        self.updated_at = at or _utcnow()


@dataclass(frozen=True)
class ResolutionPattern:
    """Problem/solution pattern extracted from one resolved ticket."""
    problem_type: str
    common_solutions: Tuple[str, ...] = ()
    preventive_measures: Tuple[str, ...] = ()
    success_rate: int = 0

    def __post_init__(self):
        if not 0 <= self.success_rate <= 100:
            raise ValueError("Success rate must be between 0 and 100")


@dataclass
class LearningPassResult:
    """Counters for one learning pass."""
    patterns_found: int = 0
    articles_created: int = 0
    articles_published: int = 0
    items_processed: int = 0
    items_failed: int = 0
    items_deferred: int = 0
    skipped: bool = False
    skip_reason: Optional[str] = None
