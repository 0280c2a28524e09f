"""
Intelligence Application Layer
==============================

Contains:
- Services: TicketAnalyzer, AutoResponseGenerator, TicketIntelligencePipeline
- Interfaces: IComplexityScoreRepository, IAutoResponseRepository, IKnowledgeSearch
- DTOs: API request/response models
"""

from helpdesk_intel.intelligence.application.services import (
    TicketAnalyzer,
    AutoResponseGenerator,
    TicketIntelligencePipeline,
    IComplexityScoreRepository,
    IAutoResponseRepository,
    IKnowledgeSearch,
    ResponseStats,
)
from helpdesk_intel.intelligence.application.dto import (
    TicketPayload,
    AnalysisResponse,
    RespondRequest,
    RespondResponse,
    AutoResponseDTO,
    EscalationRequest,
    EscalationResponse,
    TicketEvent,
    EventAcceptedResponse,
    PipelineReportDTO,
    IntelligenceStatsResponse,
)

__all__ = [
    "TicketAnalyzer",
    "AutoResponseGenerator",
    "TicketIntelligencePipeline",
    "IComplexityScoreRepository",
    "IAutoResponseRepository",
    "IKnowledgeSearch",
    "ResponseStats",
    "TicketPayload",
    "AnalysisResponse",
    "RespondRequest",
    "RespondResponse",
    "AutoResponseDTO",
    "EscalationRequest",
    "EscalationResponse",
    "TicketEvent",
    "EventAcceptedResponse",
    "PipelineReportDTO",
    "IntelligenceStatsResponse",
]
