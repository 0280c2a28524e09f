"""
Intelligence Domain Entities
============================

Domain entities for ticket analysis, auto-responses and escalation.

Pure Python business objects; no I/O.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Generic, List, Optional, Tuple, TypeVar

from helpdesk_intel.ai_settings.domain import EscalationRule
from helpdesk_intel.config import StageStatus, TicketCategory, TicketPriority
from helpdesk_intel.core import DomainException, ValidationException


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TicketInput:
    """Ticket fields the analyzer and responder work from."""
    title: str
    description: str
    category: str
    priority: str
    ticket_id: Optional[str] = None

    def validate(self) -> None:
        """
        Raises:
            ValidationException: If any field is empty after trimming
        """
        missing = [
            name for name in ("title", "description", "category", "priority")
            if not (getattr(self, name) or "").strip()
        ]
        if missing:
            raise ValidationException(
                f"Ticket fields must not be empty: {', '.join(missing)}",
                {"fields": missing}
            )

    @property
    def text(self) -> str:
        return f"{self.title.strip()}\n\n{self.description.strip()}"


@dataclass(frozen=True)
class TicketAnalysis:
    """
    Structured classification of a ticket.

    Produced once per analyzed ticket and never mutated.
    """
    complexity: int
    category: TicketCategory
    priority: TicketPriority
    confidence: float
    tags: Tuple[str, ...] = ()
    estimated_resolution_hours: float = 0.0
    reasoning: str = ""
    model_used: str = ""

    def __post_init__(self):
        if not 0 <= self.complexity <= 100:
            raise ValueError("Complexity must be between 0 and 100")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("Confidence must be between 0 and 1")


@dataclass
class ComplexityScore:
    """Complexity record for a ticket; the latest one is current."""
    ticket_id: str
    score: int
    factors: Dict[str, float] = field(default_factory=dict)
    note: str = ""
    created_at: datetime = field(default_factory=_utcnow)
    id: Optional[int] = None


@dataclass
class AutoResponse:
    """
    AI-generated reply to a ticket.

    At most one unapplied response exists per ticket. Applying is terminal.
    """
    ticket_id: str
    response_text: str
    confidence_score: float
    suggested_article_ids: List[int] = field(default_factory=list)
    was_applied: bool = False
    was_helpful: Optional[bool] = None
    created_at: datetime = field(default_factory=_utcnow)
    applied_at: Optional[datetime] = None
    id: Optional[int] = None

    def __post_init__(self):
        if not 0.0 <= self.confidence_score <= 1.0:
            raise ValueError("Confidence score must be between 0 and 1")

    def mark_applied(self, at: Optional[datetime] = None) -> None:
        """
        Raises:
            DomainException: If the response was already applied
        """
        if self.was_applied:
            raise DomainException(
                f"Auto-response for ticket {self.ticket_id} was already applied",
                {"response_id": self.id}
            )
        self.was_applied = True
        self.applied_at = at or _utcnow()

    def mark_helpful(self, helpful: bool) -> None:
        self.was_helpful = helpful


@dataclass(frozen=True)
class EscalationDecision:
    """Result of escalation evaluation."""
    should_escalate: bool
    team_id: Optional[int] = None
    rule_id: Optional[int] = None
    reason: str = ""


@dataclass(frozen=True)
class KnowledgeSnippet:
    """Knowledge article reference offered as response context."""
    id: int
    title: str
    content: str


T = TypeVar("T")


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """
    Tagged outcome of one pipeline stage.

    Expected failures (no backend, governor refusal, timeout, below the
    confidence gate) are values here, not exceptions.
    """
    status: StageStatus
    value: Optional[T] = None
    detail: str = ""

    @property
    def is_ok(self) -> bool:
        return self.status == StageStatus.OK

    @classmethod
    def ok(cls, value: T) -> "StageResult[T]":
        return cls(status=StageStatus.OK, value=value)

    @classmethod
    def failed(cls, status: StageStatus, detail: str = "") -> "StageResult[T]":
        return cls(status=status, detail=detail)


@dataclass
class PipelineReport:
    """What happened to one ticket in one pipeline run."""
    ticket_id: str
    event: str
    stages: Dict[str, StageStatus] = field(default_factory=dict)
    partial_failures: List[Dict[str, str]] = field(default_factory=list)
    response_id: Optional[int] = None
    response_applied: bool = False
    escalated_to: Optional[int] = None
    skipped_reason: Optional[str] = None

    def record(self, stage: str, status: StageStatus) -> None:
        self.stages[stage] = status

    def add_failure(self, stage: str, reason: str) -> None:
        self.partial_failures.append({"stage": stage, "reason": reason})


__all__ = [
    "TicketInput",
    "TicketAnalysis",
    "ComplexityScore",
    "AutoResponse",
    "EscalationDecision",
    "EscalationRule",
    "KnowledgeSnippet",
    "StageResult",
    "PipelineReport",
]
