"""
Intelligence Domain Layer
=========================

Contains:
- Entities: TicketInput, TicketAnalysis, ComplexityScore, AutoResponse
- Results: StageResult, EscalationDecision, PipelineReport
- Value objects: prompt builders, ComplexityCalculator, EscalationEvaluator
"""

from helpdesk_intel.intelligence.domain.entities import (
    TicketInput,
    TicketAnalysis,
    ComplexityScore,
    AutoResponse,
    EscalationDecision,
    EscalationRule,
    KnowledgeSnippet,
    StageResult,
    PipelineReport,
)
from helpdesk_intel.intelligence.domain.value_objects import (
    AnalysisPromptBuilder,
    ResponsePromptBuilder,
    ComplexityCalculator,
    EscalationEvaluator,
)

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
    "AnalysisPromptBuilder",
    "ResponsePromptBuilder",
    "ComplexityCalculator",
    "EscalationEvaluator",
]
