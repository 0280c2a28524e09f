"""
Intelligence DTOs
=================

Request/response models for the intelligence API.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from helpdesk_intel.config import StageStatus, TicketCategory, TicketPriority
from helpdesk_intel.core import ValidationException
from helpdesk_intel.intelligence.domain import (
    AutoResponse,
    EscalationDecision,
    PipelineReport,
    TicketAnalysis,
    TicketInput,
)


class TicketPayload(BaseModel):
    """Ticket fields submitted for analysis."""
    title: str = Field(..., max_length=500)
    description: str = Field(..., max_length=20000)
    category: str = Field(..., max_length=50)
    priority: str = Field(..., max_length=50)
    ticket_id: Optional[str] = Field(default=None, max_length=100)

    def to_input(self) -> TicketInput:
        return TicketInput(
            title=self.title,
            description=self.description,
            category=self.category,
            priority=self.priority,
            ticket_id=self.ticket_id
        )


class AnalysisResponse(BaseModel):
    """Structured ticket analysis."""
    model_config = ConfigDict(protected_namespaces=())

    complexity: int
    category: str
    priority: str
    confidence: float
    tags: List[str] = Field(default_factory=list)
    estimated_resolution_hours: float = 0.0
    reasoning: str = ""
    model_used: str = ""

    def to_entity(self) -> TicketAnalysis:
        """
        Raises:
            ValidationException: If a field is out of range or not a known value
        """
        try:
            return TicketAnalysis(
                complexity=self.complexity,
                category=TicketCategory(self.category.strip().lower()),
                priority=TicketPriority(self.priority.strip().lower()),
                confidence=self.confidence,
                tags=tuple(self.tags),
                estimated_resolution_hours=self.estimated_resolution_hours,
                reasoning=self.reasoning,
                model_used=self.model_used
            )
        except ValueError as e:
            raise ValidationException(f"Invalid analysis: {e}")

    @classmethod
    def from_entity(cls, analysis: TicketAnalysis) -> "AnalysisResponse":
        return cls(
            complexity=analysis.complexity,
            category=analysis.category.value,
            priority=analysis.priority.value,
            confidence=analysis.confidence,
            tags=list(analysis.tags),
            estimated_resolution_hours=analysis.estimated_resolution_hours,
            reasoning=analysis.reasoning,
            model_used=analysis.model_used
        )


class RespondRequest(BaseModel):
    """Ticket plus an analysis to draft a response from."""
    ticket: TicketPayload
    analysis: Optional[AnalysisResponse] = Field(
        default=None,
        description="Analysis to use; the ticket is analyzed first when omitted"
    )


class AutoResponseDTO(BaseModel):
    id: Optional[int]
    ticket_id: str
    response_text: str
    confidence_score: float
    was_applied: bool
    was_helpful: Optional[bool]
    suggested_article_ids: List[int]
    created_at: datetime
    applied_at: Optional[datetime]

    @classmethod
    def from_entity(cls, response: AutoResponse) -> "AutoResponseDTO":
        return cls(
            id=response.id,
            ticket_id=response.ticket_id,
            response_text=response.response_text,
            confidence_score=response.confidence_score,
            was_applied=response.was_applied,
            was_helpful=response.was_helpful,
            suggested_article_ids=list(response.suggested_article_ids),
            created_at=response.created_at,
            applied_at=response.applied_at
        )


class RespondResponse(BaseModel):
    """Outcome of response generation; `response` is null unless status is ok."""
    status: StageStatus
    detail: str = ""
    response: Optional[AutoResponseDTO] = None


class EscalationRequest(BaseModel):
    complexity_score: int = Field(..., ge=0, le=100)


class EscalationResponse(BaseModel):
    should_escalate: bool
    team_id: Optional[int]
    rule_id: Optional[int]
    reason: str

    @classmethod
    def from_decision(cls, decision: EscalationDecision) -> "EscalationResponse":
        return cls(
            should_escalate=decision.should_escalate,
            team_id=decision.team_id,
            rule_id=decision.rule_id,
            reason=decision.reason
        )


class TicketEvent(BaseModel):
    """Ticket lifecycle notification from the helpdesk."""
    ticket_id: str = Field(..., min_length=1, max_length=100)


class EventAcceptedResponse(BaseModel):
    ticket_id: str
    accepted: bool
    detail: str = ""


class PipelineReportDTO(BaseModel):
    ticket_id: str
    event: str
    stages: Dict[str, StageStatus]
    partial_failures: List[Dict[str, str]]
    response_id: Optional[int]
    response_applied: bool
    escalated_to: Optional[int]
    skipped_reason: Optional[str]

    @classmethod
    def from_report(cls, report: PipelineReport) -> "PipelineReportDTO":
        return cls(
            ticket_id=report.ticket_id,
            event=report.event,
            stages=dict(report.stages),
            partial_failures=list(report.partial_failures),
            response_id=report.response_id,
            response_applied=report.response_applied,
            escalated_to=report.escalated_to,
            skipped_reason=report.skipped_reason
        )


class IntelligenceStatsResponse(BaseModel):
    total_responses: int
    applied_responses: int
    helpful: int
    not_helpful: int
    helpful_rate: Optional[float]
    average_confidence: float
