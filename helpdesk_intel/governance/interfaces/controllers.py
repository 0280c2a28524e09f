"""
Governance Controllers (API Routes)
===================================

Usage statistics and exports, pricing, rate/cost limit configuration and a
governed connection check.
"""

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from helpdesk_intel.ai_settings.application import ISettingsProvider
from helpdesk_intel.ai_settings.domain import PRESETS
from helpdesk_intel.governance.application import (
    ConnectionTestResponse,
    CostRateGovernor,
    GovernedInference,
    PricingResponse,
    RateLimitResponse,
    RateLimitUpdateRequest,
    UsageExportResponse,
    UsageRecordResponse,
    UsageStatsResponse,
    UsageSummaryResponse,
)
from helpdesk_intel.governance.domain import MODEL_PRICING
from helpdesk_intel.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/governance", tags=["Cost & Rate Governance"])


# ========== Dependencies ==========

def get_governor(request: Request) -> CostRateGovernor:
    return request.app.state.services.governor


def get_settings_provider(request: Request) -> ISettingsProvider:
    return request.app.state.services.settings_provider


def get_inference(request: Request) -> GovernedInference:
    return request.app.state.services.inference


def _limits_response(provider: ISettingsProvider) -> RateLimitResponse:
    snapshot = provider.snapshot()
    return RateLimitResponse.from_config(snapshot.rate_limits, list(PRESETS), snapshot.version)


# ========== Route Handlers ==========

@router.get(
    "/usage",
    response_model=UsageStatsResponse,
    summary="Current request windows and spend"
)
async def get_usage(
    governor: CostRateGovernor = Depends(get_governor),
    provider: ISettingsProvider = Depends(get_settings_provider)
):
    stats = await governor.usage_stats()
    return UsageStatsResponse.from_stats(stats, provider.snapshot().rate_limits)


@router.get(
    "/usage/daily",
    response_model=UsageSummaryResponse,
    summary="Ledger totals for one UTC day (default today)"
)
async def get_daily_usage(
    day: Optional[date] = Query(default=None, alias="date"),
    governor: CostRateGovernor = Depends(get_governor)
):
    return UsageSummaryResponse.from_summary(await governor.daily_usage(day))


@router.get(
    "/usage/monthly",
    response_model=UsageSummaryResponse,
    summary="Ledger totals for one UTC month"
)
async def get_monthly_usage(
    year: int = Query(..., ge=1970, le=9999),
    month: int = Query(..., ge=1, le=12),
    governor: CostRateGovernor = Depends(get_governor)
):
    return UsageSummaryResponse.from_summary(await governor.monthly_usage(year, month))


@router.get(
    "/usage/export",
    response_model=UsageExportResponse,
    summary="Ledger rows between two instants, oldest first",
    description="Both bounds are inclusive. Naive datetimes are read as UTC."
)
async def export_usage(
    request: Request,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    governor: CostRateGovernor = Depends(get_governor)
):
    records = await governor.export_usage(start, end)

    logger.info(
        "Usage exported",
        extra={
            "correlation_id": getattr(request.state, "correlation_id", "unknown"),
            "records": len(records)
        }
    )
    return UsageExportResponse(
        start=start,
        end=end,
        count=len(records),
        records=[UsageRecordResponse.from_record(r) for r in records]
    )


@router.get(
    "/pricing",
    response_model=PricingResponse,
    summary="Known model prices (USD per 1M tokens)"
)
async def get_pricing():
    return PricingResponse(models={
        model_id: {"input": p.input_per_million, "output": p.output_per_million}
        for model_id, p in MODEL_PRICING.items()
    })


@router.get(
    "/limits",
    response_model=RateLimitResponse,
    summary="Active rate and cost limits"
)
async def get_limits(provider: ISettingsProvider = Depends(get_settings_provider)):
    return _limits_response(provider)


@router.put(
    "/limits",
    response_model=RateLimitResponse,
    summary="Edit individual limits",
    description="Editing any preset-bundled field reports the active preset as `Custom`."
)
async def update_limits(
    request: Request,
    payload: RateLimitUpdateRequest,
    provider: ISettingsProvider = Depends(get_settings_provider)
):
    snapshot = provider.snapshot()
    changes = payload.model_dump(exclude_none=True)
    provider.save(snapshot.with_rate_limits(snapshot.rate_limits.with_changes(**changes)))

    logger.info(
        "Rate limits updated",
        extra={
            "correlation_id": getattr(request.state, "correlation_id", "unknown"),
            "fields": sorted(changes)
        }
    )
    return _limits_response(provider)


@router.post(
    "/limits/preset/{name}",
    response_model=RateLimitResponse,
    summary="Apply a named preset (Strict, Balanced, Generous)"
)
async def apply_preset(
    request: Request,
    name: str,
    provider: ISettingsProvider = Depends(get_settings_provider)
):
    snapshot = provider.snapshot()
    provider.save(snapshot.with_rate_limits(snapshot.rate_limits.apply_preset(name)))

    logger.info(
        "Rate limit preset applied",
        extra={
            "correlation_id": getattr(request.state, "correlation_id", "unknown"),
            "preset": name
        }
    )
    return _limits_response(provider)


@router.post(
    "/test-connection",
    response_model=ConnectionTestResponse,
    summary="Send a short governed request to the configured model",
    description="The call is rate-limited, cost-limited and billed like any other inference."
)
async def test_connection(
    request: Request,
    inference: GovernedInference = Depends(get_inference),
    provider: ISettingsProvider = Depends(get_settings_provider)
):
    check = await inference.test_connection(provider.snapshot())

    logger.info(
        "Connection test finished",
        extra={
            "correlation_id": getattr(request.state, "correlation_id", "unknown"),
            "success": check.success,
            "model_id": check.model_id
        }
    )
    return ConnectionTestResponse.from_check(check)

governance_router = router
