"""
Governance Domain Entities
==========================

Usage ledger records, admission reservations and usage snapshots.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, Optional
from uuid import uuid4


@dataclass(frozen=True)
class UsageRecord:
    """
    One completed inference call.

    Append-only: records are never mutated once written to the ledger.
    """
    model_id: str
    input_tokens: int
    output_tokens: int
    cost: Decimal
    created_at: datetime
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    operation: str = "inference"

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class Admission:
    """
    Reservation handed out by the governor for an admitted call.

    Until recorded or released, it counts against request windows and
    projected spend so concurrent callers cannot overshoot the limits.
    """
    model_id: str
    estimated_tokens: int
    projected_cost: Decimal
    admitted_at: datetime
    operation: str = "inference"
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid4()))


@dataclass(frozen=True)
class UsageStats:
    """Point-in-time view of window counters and spend."""
    requests_last_minute: int
    requests_last_hour: int
    requests_last_day: int
    spend_today: Decimal
    spend_this_month: Decimal
    in_flight: int
    computed_at: datetime
    today: Optional["UsageSummary"] = None
    this_month: Optional["UsageSummary"] = None


@dataclass(frozen=True)
class UsageSummary:
    """Ledger totals for one calendar period (a day or a month)."""
    period: str
    request_count: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost: Decimal = Decimal(0)
    operations: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_records(cls, period: str, records: Iterable[UsageRecord]) -> "UsageSummary":
        records = list(records)
        operations: Dict[str, int] = {}
        for record in records:
            operations[record.operation] = operations.get(record.operation, 0) + 1
        return cls(
            period=period,
            request_count=len(records),
            input_tokens=sum(r.input_tokens for r in records),
            output_tokens=sum(r.output_tokens for r in records),
            cost=sum((r.cost for r in records), Decimal(0)),
            operations=operations
        )


@dataclass(frozen=True)
class ConnectionCheck:
    """Outcome of a governed round trip to the inference backend."""
    success: bool
    model_id: str
    cost: Optional[Decimal] = None
    latency_ms: Optional[int] = None
    error: Optional[str] = None
