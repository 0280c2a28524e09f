"""
Governance Application Layer
============================

Contains:
- Services: CostRateGovernor, GovernedInference
- Interfaces: IUsageLedger
- DTOs: API request/response models
"""

from helpdesk_intel.governance.application.services import (
    CostRateGovernor,
    GovernedInference,
    IUsageLedger,
    Clock,
    utc_now,
)
from helpdesk_intel.governance.application.dto import (
    UsageStatsResponse,
    RateLimitResponse,
    RateLimitUpdateRequest,
    PricingResponse,
    UsageSummaryResponse,
    UsageRecordResponse,
    UsageExportResponse,
    ConnectionTestResponse,
)

__all__ = [
    "CostRateGovernor",
    "GovernedInference",
    "IUsageLedger",
    "Clock",
    "utc_now",
    "UsageStatsResponse",
    "RateLimitResponse",
    "RateLimitUpdateRequest",
    "PricingResponse",
    "UsageSummaryResponse",
    "UsageRecordResponse",
    "UsageExportResponse",
    "ConnectionTestResponse",
]
