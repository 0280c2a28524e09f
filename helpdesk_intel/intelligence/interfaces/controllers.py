"""
Intelligence Controllers (API Routes)
=====================================

Ticket analysis, response drafting, escalation and ticket lifecycle events.

Lifecycle events return 202 immediately; the pipeline runs as a background
task so AI work never holds up the helpdesk's own request.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status

from helpdesk_intel.config import StageStatus
from helpdesk_intel.core import (
    CostLimitExceededException,
    RateLimitExceededException,
    ServiceUnavailableException,
    TimeoutException,
)
from helpdesk_intel.intelligence.application import (
    AnalysisResponse,
    AutoResponseDTO,
    EscalationRequest,
    EscalationResponse,
    EventAcceptedResponse,
    IntelligenceStatsResponse,
    PipelineReportDTO,
    RespondRequest,
    RespondResponse,
    TicketAnalyzer,
    TicketEvent,
    TicketIntelligencePipeline,
    TicketPayload,
)
from helpdesk_intel.intelligence.domain import StageResult
from helpdesk_intel.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/intelligence", tags=["Ticket Intelligence"])


# ========== Dependencies ==========

def get_analyzer(request: Request) -> TicketAnalyzer:
    return request.app.state.services.analyzer


def get_pipeline(request: Request) -> TicketIntelligencePipeline:
    return request.app.state.services.pipeline


def get_learning_queue(request: Request):
    return request.app.state.services.learning_queue


def _raise_for_stage(result: StageResult, operation: str, timeout_seconds: float = 0) -> None:
    """Turn a failed stage outcome into the exception the API maps to a status code."""
    if result.status == StageStatus.RATE_LIMITED:
        raise RateLimitExceededException(result.detail, limit="requests")
    if result.status == StageStatus.COST_LIMITED:
        raise CostLimitExceededException(result.detail, limit="cost")
    if result.status == StageStatus.TIMEOUT:
        raise TimeoutException(operation, timeout_seconds)
    if result.status == StageStatus.SERVICE_UNAVAILABLE:
        raise ServiceUnavailableException(result.detail or "inference capability unavailable")


# ========== Route Handlers ==========

@router.post(
    "/analyze",
    response_model=AnalysisResponse,
    summary="Analyze a ticket",
    responses={
        422: {"description": "Empty or invalid ticket fields"},
        429: {"description": "Rate or cost limit reached, try later"},
        503: {"description": "Inference capability not available"}
    }
)
async def analyze_ticket(
    request: Request,
    payload: TicketPayload,
    analyzer: TicketAnalyzer = Depends(get_analyzer)
):
    result = await analyzer.analyze(payload.to_input())
    _raise_for_stage(result, "analysis")

    logger.info(
        "Ticket analysis served",
        extra={
            "correlation_id": getattr(request.state, "correlation_id", "unknown"),
            "ticket_id": payload.ticket_id
        }
    )
    return AnalysisResponse.from_entity(result.value)


@router.post(
    "/respond",
    response_model=RespondResponse,
    summary="Draft an auto-response (no_response below the confidence gate)",
    responses={
        429: {"description": "Rate or cost limit reached, try later"},
        503: {"description": "Inference capability not available"},
        504: {"description": "Response generation exceeded response_timeout"}
    }
)
async def respond(
    request: Request,
    payload: RespondRequest,
    pipeline: TicketIntelligencePipeline = Depends(get_pipeline)
):
    ticket = payload.ticket.to_input()
    analysis = payload.analysis.to_entity() if payload.analysis else None

    result = await pipeline.respond(ticket, analysis)
    if result.status not in (StageStatus.OK, StageStatus.NO_RESPONSE):
        timeout = request.app.state.services.settings_provider.snapshot().response_timeout
        _raise_for_stage(result, "response generation", timeout)

    return RespondResponse(
        status=result.status,
        detail=result.detail,
        response=AutoResponseDTO.from_entity(result.value) if result.is_ok else None
    )


@router.post(
    "/escalation/evaluate",
    response_model=EscalationResponse,
    summary="Evaluate escalation for a complexity score"
)
async def evaluate_escalation(
    payload: EscalationRequest,
    pipeline: TicketIntelligencePipeline = Depends(get_pipeline)
):
    return EscalationResponse.from_decision(pipeline.evaluate_escalation(payload.complexity_score))


@router.post(
    "/events/ticket-created",
    response_model=EventAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Run the pipeline for a new ticket"
)
async def ticket_created(
    event: TicketEvent,
    background_tasks: BackgroundTasks,
    pipeline: TicketIntelligencePipeline = Depends(get_pipeline)
):
    background_tasks.add_task(pipeline.process_ticket, event.ticket_id, "created")
    return EventAcceptedResponse(ticket_id=event.ticket_id, accepted=True, detail="pipeline scheduled")


@router.post(
    "/events/ticket-updated",
    response_model=EventAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Re-run the pipeline for an updated ticket"
)
async def ticket_updated(
    event: TicketEvent,
    background_tasks: BackgroundTasks,
    pipeline: TicketIntelligencePipeline = Depends(get_pipeline)
):
    background_tasks.add_task(pipeline.process_ticket, event.ticket_id, "updated")
    return EventAcceptedResponse(ticket_id=event.ticket_id, accepted=True, detail="pipeline scheduled")


@router.post(
    "/events/ticket-resolved",
    response_model=EventAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a resolved ticket for knowledge learning"
)
async def ticket_resolved(event: TicketEvent, queue=Depends(get_learning_queue)):
    _, created = await queue.enqueue(event.ticket_id)
    return EventAcceptedResponse(
        ticket_id=event.ticket_id,
        accepted=created,
        detail="queued for learning" if created else "already queued"
    )


@router.post(
    "/tickets/{ticket_id}/process",
    response_model=PipelineReportDTO,
    summary="Run the pipeline synchronously and return the stage report"
)
async def process_ticket(
    ticket_id: str,
    event: str = "created",
    pipeline: TicketIntelligencePipeline = Depends(get_pipeline)
):
    report = await pipeline.process_ticket(ticket_id, "updated" if event == "updated" else "created")
    return PipelineReportDTO.from_report(report)


@router.post(
    "/responses/{ticket_id}/apply",
    response_model=AutoResponseDTO,
    summary="Apply the ticket's active response as a system comment",
    responses={404: {"description": "No unapplied response for the ticket"}}
)
async def apply_response(
    ticket_id: str,
    pipeline: TicketIntelligencePipeline = Depends(get_pipeline)
):
    return AutoResponseDTO.from_entity(await pipeline.apply_response(ticket_id))


@router.get(
    "/stats",
    response_model=IntelligenceStatsResponse,
    summary="Auto-response statistics"
)
async def get_stats(pipeline: TicketIntelligencePipeline = Depends(get_pipeline)):
    stats = await pipeline.stats()
    return IntelligenceStatsResponse(
        total_responses=stats.total,
        applied_responses=stats.applied,
        helpful=stats.helpful,
        not_helpful=stats.not_helpful,
        helpful_rate=stats.helpful_rate,
        average_confidence=stats.average_confidence
    )


intelligence_router = router
