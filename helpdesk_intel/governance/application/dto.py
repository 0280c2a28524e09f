"""
Governance DTOs
===============

Request/response models for the governance API.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from helpdesk_intel.ai_settings.domain import RateLimitConfig
from helpdesk_intel.governance.domain import ConnectionCheck, UsageRecord, UsageStats, UsageSummary


class UsageSummaryResponse(BaseModel):
    """Ledger totals for one day (YYYY-MM-DD) or month (YYYY-MM)."""
    period: str
    request_count: int
    input_tokens: int
    output_tokens: int
    cost_usd: Decimal
    operations: Dict[str, int]

    @classmethod
    def from_summary(cls, summary: UsageSummary) -> "UsageSummaryResponse":
        return cls(
            period=summary.period,
            request_count=summary.request_count,
            input_tokens=summary.input_tokens,
            output_tokens=summary.output_tokens,
            cost_usd=summary.cost,
            operations=dict(summary.operations)
        )


class UsageStatsResponse(BaseModel):
    """Current window counters and spend."""
    requests_last_minute: int
    requests_last_hour: int
    requests_last_day: int
    spend_today_usd: Decimal
    spend_this_month_usd: Decimal
    in_flight: int
    daily_limit_usd: Decimal
    monthly_limit_usd: Decimal
    computed_at: datetime
    today: Optional[UsageSummaryResponse] = None
    this_month: Optional[UsageSummaryResponse] = None

    @classmethod
    def from_stats(cls, stats: UsageStats, limits: RateLimitConfig) -> "UsageStatsResponse":
        return cls(
            requests_last_minute=stats.requests_last_minute,
            requests_last_hour=stats.requests_last_hour,
            requests_last_day=stats.requests_last_day,
            spend_today_usd=stats.spend_today,
            spend_this_month_usd=stats.spend_this_month,
            in_flight=stats.in_flight,
            daily_limit_usd=limits.daily_limit_usd,
            monthly_limit_usd=limits.monthly_limit_usd,
            computed_at=stats.computed_at,
            today=UsageSummaryResponse.from_summary(stats.today) if stats.today else None,
            this_month=UsageSummaryResponse.from_summary(stats.this_month) if stats.this_month else None
        )


class RateLimitResponse(BaseModel):
    """Active limits with the derived preset label."""
    max_requests_per_minute: int
    max_requests_per_hour: int
    max_requests_per_day: int
    max_tokens_per_request: int
    daily_limit_usd: Decimal
    monthly_limit_usd: Decimal
    is_free_tier_account: bool
    active_preset: str
    available_presets: List[str]
    settings_version: int

    @classmethod
    def from_config(cls, config: RateLimitConfig, presets: List[str], version: int) -> "RateLimitResponse":
        return cls(
            **config.model_dump(exclude={"applied_preset"}),
            active_preset=config.active_preset,
            available_presets=presets,
            settings_version=version
        )


class RateLimitUpdateRequest(BaseModel):
    """Partial edit of individual limit fields."""
    max_requests_per_minute: Optional[int] = Field(default=None, ge=1)
    max_requests_per_hour: Optional[int] = Field(default=None, ge=0)
    max_requests_per_day: Optional[int] = Field(default=None, ge=1)
    max_tokens_per_request: Optional[int] = Field(default=None, ge=1)
    daily_limit_usd: Optional[Decimal] = Field(default=None, ge=0)
    monthly_limit_usd: Optional[Decimal] = Field(default=None, ge=0)
    is_free_tier_account: Optional[bool] = None


class PricingResponse(BaseModel):
    """Known model prices in USD per million tokens."""
    models: Dict[str, Dict[str, Decimal]]


class UsageRecordResponse(BaseModel):
    """One ledger row."""
    model_id: str
    operation: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    cost_usd: Decimal
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: UsageRecord) -> "UsageRecordResponse":
        return cls(
            model_id=record.model_id,
            operation=record.operation,
            input_tokens=record.input_tokens,
            output_tokens=record.output_tokens,
            total_tokens=record.total_tokens,
            cost_usd=record.cost,
            user_id=record.user_id,
            session_id=record.session_id,
            created_at=record.created_at
        )


class UsageExportResponse(BaseModel):
    """Ledger rows in a date range, oldest first."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    count: int
    records: List[UsageRecordResponse]


class ConnectionTestResponse(BaseModel):
    """Result of a governed round trip to the configured model."""
    success: bool
    model_id: str
    cost_usd: Optional[Decimal] = None
    latency_ms: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def from_check(cls, check: ConnectionCheck) -> "ConnectionTestResponse":
        return cls(
            success=check.success,
            model_id=check.model_id,
            cost_usd=check.cost,
            latency_ms=check.latency_ms,
            error=check.error
        )
