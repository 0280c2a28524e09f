"""
Intelligence Application Services
=================================

Ticket analysis, auto-response generation and the pipeline that composes
them with escalation and notification.

Each stage returns a StageResult; expected AI-side failures are values, not
exceptions, so callers never block ticket handling on them.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from helpdesk_intel.ai_settings.application import ISettingsProvider
from helpdesk_intel.ai_settings.domain import AISettings
from helpdesk_intel.config import (
    ComplexityLevel,
    PipelineEventType,
    StageStatus,
    TicketCategory,
    TicketPriority,
)
from helpdesk_intel.core import (
    ApplicationException,
    GovernorRefusalException,
    LLMException,
    PartialFailureException,
    RateLimitExceededException,
    ResourceNotFoundException,
    ServiceUnavailableException,
)
from helpdesk_intel.faq.application import FaqCache
from helpdesk_intel.governance.application import Clock, GovernedInference, utc_now
from helpdesk_intel.infrastructure.llm import InferenceResult, extract_json
from helpdesk_intel.infrastructure.notifications import INotificationDispatcher, PipelineEvent
from helpdesk_intel.infrastructure.ticket_store import ITicketStore
from helpdesk_intel.intelligence.domain import (
    AnalysisPromptBuilder,
    AutoResponse,
    ComplexityCalculator,
    ComplexityScore,
    EscalationDecision,
    EscalationEvaluator,
    KnowledgeSnippet,
    PipelineReport,
    ResponsePromptBuilder,
    StageResult,
    TicketAnalysis,
    TicketInput,
)
from helpdesk_intel.shared.infrastructure.grafana import GrafanaOTLPExporter
from helpdesk_intel.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Repository Interfaces ==========

class IComplexityScoreRepository(ABC):
    """Interface for complexity score storage."""

    @abstractmethod
    async def save(self, score: ComplexityScore) -> ComplexityScore:
        """Append a score record."""

    @abstractmethod
    async def get_latest(self, ticket_id: str) -> Optional[ComplexityScore]:
        """Most recent score for a ticket."""


@dataclass(frozen=True)
class ResponseStats:
    """Aggregate auto-response statistics."""
    total: int
    applied: int
    helpful: int
    not_helpful: int
    average_confidence: float

    @property
    def helpful_rate(self) -> Optional[float]:
        rated = self.helpful + self.not_helpful
        return self.helpful / rated if rated else None


class IAutoResponseRepository(ABC):
    """Interface for auto-response storage."""

    @abstractmethod
    async def get_by_id(self, response_id: int) -> Optional[AutoResponse]:
        """Get a response by id."""

    @abstractmethod
    async def get_active(self, ticket_id: str) -> Optional[AutoResponse]:
        """The not-yet-applied response for a ticket, if any."""

    @abstractmethod
    async def get_applied(self, ticket_id: str) -> Optional[AutoResponse]:
        """The most recently applied response for a ticket, if any."""

    @abstractmethod
    async def add(self, response: AutoResponse) -> AutoResponse:
        """
        Insert a new response.

        Replaces any other unapplied response for the ticket; applied
        responses are never removed.
        """

    @abstractmethod
    async def mark_applied(self, response_id: int, at: datetime) -> AutoResponse:
        """
        Set was_applied/applied_at on the stored row only.

        Raises:
            ResourceNotFoundException: Unknown response
            DomainException: Already applied
        """

    @abstractmethod
    async def mark_helpful(self, response_id: int, helpful: bool) -> Optional[AutoResponse]:
        """Set was_helpful on the stored row only. Returns None if unknown."""

    @abstractmethod
    async def stats(self) -> ResponseStats:
        """Aggregate counts."""


class IKnowledgeSearch(ABC):
    """External knowledge-search capability."""

    @abstractmethod
    async def search(self, query: str, limit: int = 3) -> List[KnowledgeSnippet]:
        """Published articles relevant to a query."""


def _refusal_status(e: GovernorRefusalException) -> StageStatus:
    if isinstance(e, RateLimitExceededException):
        return StageStatus.RATE_LIMITED
    return StageStatus.COST_LIMITED


def _normalize_confidence(value) -> float:
    confidence = float(value)
    if confidence > 1:
        confidence = confidence / 100
    return max(0.0, min(1.0, confidence))


def _coerce_enum(enum_cls, value, fallback):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return fallback


# ========== Application Services ==========

class TicketAnalyzer:
    """
    Classifies tickets through governed inference.

    Persists one ComplexityScore per analyzed ticket.
    """

    def __init__(
        self,
        inference: GovernedInference,
        complexity_repository: IComplexityScoreRepository,
        settings_provider: ISettingsProvider
    ):
        self._inference = inference
        self._complexity = complexity_repository
        self._settings = settings_provider

    async def analyze(
        self,
        ticket: TicketInput,
        ai_settings: Optional[AISettings] = None
    ) -> StageResult[TicketAnalysis]:
        """
        Analyze a ticket.

        Raises:
            ValidationException: If a required field is empty (before any inference)

        Returns:
            StageResult: ok, service_unavailable, rate_limited or cost_limited
        """
        ticket.validate()
        ai_settings = ai_settings or self._settings.snapshot()

        try:
            result = await asyncio.wait_for(
                self._inference.complete(
                    AnalysisPromptBuilder.build_prompt(ticket),
                    system_prompt=AnalysisPromptBuilder.SYSTEM_PROMPT,
                    ai_settings=ai_settings,
                    operation="analysis",
                    max_tokens=min(ai_settings.max_tokens, 800)
                ),
                timeout=ai_settings.response_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Ticket analysis timed out",
                extra={"ticket_id": ticket.ticket_id, "timeout_seconds": ai_settings.response_timeout}
            )
            return StageResult.failed(StageStatus.SERVICE_UNAVAILABLE, "inference timed out")
        except ServiceUnavailableException as e:
            logger.warning("Ticket analysis unavailable", extra={"ticket_id": ticket.ticket_id, "error": e.message})
            return StageResult.failed(StageStatus.SERVICE_UNAVAILABLE, e.message)
        except GovernorRefusalException as e:
            return StageResult.failed(_refusal_status(e), e.message)

        try:
            analysis, factors = self._parse(ticket, result)
        except (LLMException, ValueError, TypeError) as e:
            logger.warning("Unparseable analysis response", extra={"ticket_id": ticket.ticket_id, "error": str(e)})
            return StageResult.failed(StageStatus.SERVICE_UNAVAILABLE, "unparseable analysis response")

        if ticket.ticket_id:
            await self._complexity.save(ComplexityScore(
                ticket_id=ticket.ticket_id,
                score=analysis.complexity,
                factors=factors,
                note=analysis.reasoning[:500]
            ))

        logger.info(
            "Ticket analyzed",
            extra={
                "ticket_id": ticket.ticket_id,
                "complexity": analysis.complexity,
                "category": analysis.category.value,
                "confidence": analysis.confidence,
                "latency_ms": result.latency_ms
            }
        )
        return StageResult.ok(analysis)

    @staticmethod
    def _parse(ticket: TicketInput, result: InferenceResult) -> Tuple[TicketAnalysis, Dict[str, float]]:
        data = extract_json(result.text)

        category = _coerce_enum(
            TicketCategory,
            data.get("category"),
            _coerce_enum(TicketCategory, ticket.category, TicketCategory.SUPPORT)
        )
        priority = _coerce_enum(
            TicketPriority,
            data.get("priority"),
            _coerce_enum(TicketPriority, ticket.priority, TicketPriority.MEDIUM)
        )
        confidence = _normalize_confidence(data.get("confidence", 0.5))
        hours = float(data.get("estimatedResolutionHours", data.get("estimated_resolution_hours", 0)) or 0)

        raw = data.get("complexity", ComplexityLevel.MEDIUM.value)
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            score = max(0, min(100, int(round(raw))))
            factors = {"reported": float(score)}
        else:
            level = _coerce_enum(ComplexityLevel, raw, ComplexityLevel.MEDIUM)
            score, factors = ComplexityCalculator.calculate(level, priority, hours, confidence)

        tags = tuple(str(t) for t in (data.get("tags") or []) if str(t).strip())[:10]

        analysis = TicketAnalysis(
            complexity=score,
            category=category,
            priority=priority,
            confidence=confidence,
            tags=tags,
            estimated_resolution_hours=hours,
            reasoning=str(data.get("reasoning", "")),
            model_used=result.model
        )
        return analysis, factors


class AutoResponseGenerator:
    """
    Drafts responses for tickets the analysis is confident about.

    Text is requested through the FAQ cache so identical tickets reuse one
    generation, and the whole step is bounded by response_timeout.
    """

    def __init__(
        self,
        inference: GovernedInference,
        settings_provider: ISettingsProvider,
        faq_cache: Optional[FaqCache] = None,
        knowledge_search: Optional[IKnowledgeSearch] = None,
        max_suggestions: int = 3
    ):
        self._inference = inference
        self._settings = settings_provider
        self._cache = faq_cache
        self._knowledge = knowledge_search
        self._max_suggestions = max_suggestions

    async def generate(
        self,
        ticket: TicketInput,
        analysis: TicketAnalysis,
        ai_settings: Optional[AISettings] = None
    ) -> StageResult[AutoResponse]:
        """
        Returns:
            StageResult: ok, no_response (below the confidence gate), timeout,
            service_unavailable, rate_limited or cost_limited
        """
        ticket.validate()
        ai_settings = ai_settings or self._settings.snapshot()

        if analysis.confidence < ai_settings.confidence_threshold:
            logger.info(
                "Confidence below threshold, leaving ticket for a human",
                extra={
                    "ticket_id": ticket.ticket_id,
                    "confidence": analysis.confidence,
                    "threshold": ai_settings.confidence_threshold
                }
            )
            return StageResult.failed(
                StageStatus.NO_RESPONSE,
                f"confidence {analysis.confidence:.2f} below threshold {ai_settings.confidence_threshold:.2f}"
            )

        try:
            response = await asyncio.wait_for(
                self._generate(ticket, analysis, ai_settings),
                timeout=ai_settings.response_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Auto-response generation timed out",
                extra={"ticket_id": ticket.ticket_id, "timeout_seconds": ai_settings.response_timeout}
            )
            return StageResult.failed(StageStatus.TIMEOUT, f"exceeded {ai_settings.response_timeout}s")
        except GovernorRefusalException as e:
            return StageResult.failed(_refusal_status(e), e.message)
        except (ServiceUnavailableException, LLMException) as e:
            logger.warning("Auto-response unavailable", extra={"ticket_id": ticket.ticket_id, "error": e.message})
            return StageResult.failed(StageStatus.SERVICE_UNAVAILABLE, e.message)

        return StageResult.ok(response)

    async def _generate(
        self,
        ticket: TicketInput,
        analysis: TicketAnalysis,
        ai_settings: AISettings
    ) -> AutoResponse:
        articles: List[KnowledgeSnippet] = []
        if self._knowledge is not None:
            articles = await self._knowledge.search(ticket.text, limit=self._max_suggestions)

        prompt = ResponsePromptBuilder.build_prompt(ticket, analysis, articles)

        async def produce() -> str:
            result = await self._inference.complete(
                prompt,
                system_prompt=ResponsePromptBuilder.SYSTEM_PROMPT,
                ai_settings=ai_settings,
                operation="auto_response"
            )
            text = str(extract_json(result.text).get("response", "")).strip()
            if not text:
                raise LLMException("Model returned an empty response")
            return text

        if self._cache is not None:
            text = (await self._cache.get_or_generate(ticket.text, produce)).answer
        else:
            text = await produce()

        return AutoResponse(
            ticket_id=ticket.ticket_id or "",
            response_text=text[:ai_settings.max_response_length],
            confidence_score=analysis.confidence,
            suggested_article_ids=[a.id for a in articles]
        )


class TicketIntelligencePipeline:
    """
    analyze -> respond -> apply -> escalate -> notify for one ticket.

    Runs as a side branch of ticket handling: every failure is caught,
    logged as a partial failure and exported, never propagated.
    """

    def __init__(
        self,
        analyzer: TicketAnalyzer,
        generator: AutoResponseGenerator,
        responses: IAutoResponseRepository,
        ticket_store: ITicketStore,
        notifier: INotificationDispatcher,
        settings_provider: ISettingsProvider,
        exporter: Optional[GrafanaOTLPExporter] = None,
        clock: Clock = utc_now
    ):
        self._analyzer = analyzer
        self._generator = generator
        self._responses = responses
        self._store = ticket_store
        self._notifier = notifier
        self._settings = settings_provider
        self._exporter = exporter
        self._clock = clock

    async def process_ticket(self, ticket_id: str, event: str = "created") -> PipelineReport:
        """Run the pipeline for a created or updated ticket."""
        report = PipelineReport(ticket_id=ticket_id, event=event)
        ai_settings = self._settings.snapshot()

        try:
            ticket = await self._store.get_ticket(ticket_id)
            if event != "updated" and await self._responses.get_applied(ticket_id) is not None:
                report.skipped_reason = "auto-response already applied"
                logger.info("Ticket already has an applied response, skipping", extra={"ticket_id": ticket_id})
                return report

            ticket_input = TicketInput(
                title=ticket.title,
                description=ticket.description,
                category=ticket.category,
                priority=ticket.priority,
                ticket_id=ticket.id
            )
            analysis_result = await self._analyzer.analyze(ticket_input, ai_settings)
        except Exception as e:
            await self._partial_failure(report, "analysis", e)
            return report

        report.record("analysis", analysis_result.status)
        if not analysis_result.is_ok:
            await self._partial_failure(report, "analysis", analysis_result.detail or analysis_result.status.value)
            return report
        analysis = analysis_result.value

        if ai_settings.auto_response_enabled:
            try:
                await self._respond(report, ticket_input, analysis, ai_settings)
            except Exception as e:
                await self._partial_failure(report, "response", e)

        try:
            await self._escalate(report, analysis, ai_settings)
        except Exception as e:
            await self._partial_failure(report, "escalation", e)

        return report

    async def _respond(
        self,
        report: PipelineReport,
        ticket: TicketInput,
        analysis: TicketAnalysis,
        ai_settings: AISettings
    ) -> None:
        result = await self._generator.generate(ticket, analysis, ai_settings)
        report.record("response", result.status)

        if result.status == StageStatus.NO_RESPONSE:
            return
        if not result.is_ok:
            await self._partial_failure(report, "response", result.detail or result.status.value)
            return

        # The draft is stored before the ticket is touched
        response = await self._responses.add(result.value)
        report.response_id = response.id
        if response.confidence_score >= ai_settings.auto_apply_threshold:
            await self._store.create_comment(report.ticket_id, response.response_text, is_system=True)
            response = await self._responses.mark_applied(response.id, self._clock())

        report.response_applied = response.was_applied

        await self._notify(report, PipelineEvent(
            type=PipelineEventType.RESPONSE_GENERATED,
            subject_id=report.ticket_id,
            summary=f"AI response {'applied to' if response.was_applied else 'drafted for'} ticket {report.ticket_id}",
            payload={"confidence": f"{response.confidence_score:.2f}", "applied": response.was_applied},
            occurred_at=self._clock()
        ))

    async def _escalate(self, report: PipelineReport, analysis: TicketAnalysis, ai_settings: AISettings) -> None:
        decision = EscalationEvaluator.evaluate_with_settings(analysis.complexity, ai_settings)
        report.record("escalation", StageStatus.OK)
        if not decision.should_escalate:
            return

        await self._store.update_ticket(report.ticket_id, {"assigned_team_id": decision.team_id})
        report.escalated_to = decision.team_id
        logger.info(
            "Ticket escalated",
            extra={"ticket_id": report.ticket_id, "team_id": decision.team_id, "rule_id": decision.rule_id}
        )

        await self._notify(report, PipelineEvent(
            type=PipelineEventType.TICKET_ESCALATED,
            subject_id=report.ticket_id,
            summary=f"Ticket {report.ticket_id} escalated to team {decision.team_id}",
            payload={"complexity": analysis.complexity, "team_id": decision.team_id},
            occurred_at=self._clock()
        ))

    async def _notify(self, report: PipelineReport, event: PipelineEvent) -> None:
        try:
            await self._notifier.emit(event)
        except Exception as e:
            await self._partial_failure(report, "notify", e)

    async def _partial_failure(self, report: PipelineReport, stage: str, error) -> None:
        if isinstance(error, ApplicationException):
            reason = error.message
        else:
            reason = str(error) or type(error).__name__

        failure = PartialFailureException(report.ticket_id, stage, reason)
        report.add_failure(stage, reason)
        logger.warning(failure.message, extra=failure.details)

        if self._exporter is not None and self._exporter.is_enabled():
            await self._exporter.export_partial_failure(stage, reason)

    async def respond(
        self,
        ticket: TicketInput,
        analysis: Optional[TicketAnalysis] = None
    ) -> StageResult[AutoResponse]:
        """
        Draft a response on demand, analyzing first when no analysis is given.

        The draft is stored as the ticket's active response but not applied.
        """
        ai_settings = self._settings.snapshot()
        if analysis is None:
            analysis_result = await self._analyzer.analyze(ticket, ai_settings)
            if not analysis_result.is_ok:
                return StageResult.failed(analysis_result.status, analysis_result.detail)
            analysis = analysis_result.value

        result = await self._generator.generate(ticket, analysis, ai_settings)
        if result.is_ok and ticket.ticket_id:
            return StageResult.ok(await self._responses.add(result.value))
        return result

    async def apply_response(self, ticket_id: str) -> AutoResponse:
        """
        Manually apply the active response as a system comment.

        Raises:
            ResourceNotFoundException: If the ticket has no unapplied response
        """
        response = await self._responses.get_active(ticket_id)
        if response is None:
            raise ResourceNotFoundException("AutoResponse", ticket_id)

        await self._store.create_comment(ticket_id, response.response_text, is_system=True)
        response = await self._responses.mark_applied(response.id, self._clock())
        logger.info("Auto-response applied manually", extra={"ticket_id": ticket_id, "response_id": response.id})
        return response

    def evaluate_escalation(self, score: int, ai_settings: Optional[AISettings] = None) -> EscalationDecision:
        return EscalationEvaluator.evaluate_with_settings(score, ai_settings or self._settings.snapshot())

    async def stats(self) -> ResponseStats:
        return await self._responses.stats()
