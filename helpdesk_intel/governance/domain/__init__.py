"""
Governance Domain Layer
=======================

Contains:
- Entities: UsageRecord (append-only ledger row), Admission, UsageStats,
  UsageSummary, ConnectionCheck
- Value Objects: ModelPricing, MODEL_PRICING table, CostCalculator

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from helpdesk_intel.governance.domain.entities import (
    UsageRecord,
    Admission,
    UsageStats,
    UsageSummary,
    ConnectionCheck,
)
from helpdesk_intel.governance.domain.value_objects import (
    ModelPricing,
    MODEL_PRICING,
    CostCalculator,
    MINUTE,
    HOUR,
    DAY,
    start_of_day,
    start_of_month,
    start_of_next_month,
)

__all__ = [
    "UsageRecord",
    "Admission",
    "UsageStats",
    "UsageSummary",
    "ConnectionCheck",
    "ModelPricing",
    "MODEL_PRICING",
    "CostCalculator",
    "MINUTE",
    "HOUR",
    "DAY",
    "start_of_day",
    "start_of_month",
    "start_of_next_month",
]
