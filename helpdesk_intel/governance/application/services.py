"""
Governance Application Services
===============================

The cost/rate governor and the governed inference gateway.

Admission and recording are two phases: admit() reserves capacity before a
call, record_usage() writes the real token counts once they are known.
Window boundaries are computed from the injected clock on every check.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Set

from helpdesk_intel.ai_settings.application import ISettingsProvider
from helpdesk_intel.ai_settings.domain import AISettings
from helpdesk_intel.core import (
    CostLimitExceededException,
    GovernorRefusalException,
    LLMException,
    RateLimitExceededException,
    ServiceUnavailableException,
    ValidationException,
)
from helpdesk_intel.governance.domain import (
    DAY,
    HOUR,
    MINUTE,
    Admission,
    ConnectionCheck,
    CostCalculator,
    UsageRecord,
    UsageStats,
    UsageSummary,
    start_of_day,
    start_of_month,
    start_of_next_month,
)
from helpdesk_intel.infrastructure.llm import IInferenceClient, InferenceResult, estimate_tokens
from helpdesk_intel.shared.infrastructure.grafana import GrafanaOTLPExporter
from helpdesk_intel.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


# ========== Repository Interfaces ==========

class IUsageLedger(ABC):
    """Append-only store of UsageRecords."""

    @abstractmethod
    async def append(self, record: UsageRecord) -> None:
        """Append a record."""

    @abstractmethod
    async def count_since(self, since: datetime) -> int:
        """Count records created strictly after `since`."""

    @abstractmethod
    async def spend_since(self, since: datetime) -> Decimal:
        """Sum cost of records created at or after `since`."""

    @abstractmethod
    async def list_between(self, start: datetime, end: datetime) -> List[UsageRecord]:
        """Records with start <= created_at < end, oldest first."""


# ========== Application Services ==========

class CostRateGovernor:
    """
    Admits or rejects prospective inference calls.

    Request windows slide (the last 60s / 3600s / 86400s); spend windows
    are the current UTC calendar day and month. Checks run under one lock
    so concurrent admissions observe each other's reservations.
    """

    def __init__(
        self,
        ledger: IUsageLedger,
        settings_provider: ISettingsProvider,
        clock: Clock = utc_now,
        exporter: Optional[GrafanaOTLPExporter] = None
    ):
        self._ledger = ledger
        self._settings = settings_provider
        self._clock = clock
        self._exporter = exporter
        self._pending: Dict[str, Admission] = {}
        self._lock = asyncio.Lock()
        self._background: Set[asyncio.Task] = set()

    def _pending_since(self, since: datetime) -> int:
        return sum(1 for a in self._pending.values() if a.admitted_at > since)

    async def _window_count(self, now: datetime, span) -> int:
        since = now - span
        return await self._ledger.count_since(since) + self._pending_since(since)

    async def admit(
        self,
        estimated_tokens: int,
        model_id: Optional[str] = None,
        expected_output_tokens: int = 0,
        operation: str = "inference",
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        ai_settings: Optional[AISettings] = None
    ) -> Admission:
        """
        Reserve capacity for one call.

        Limits come from `ai_settings` when the caller already holds the
        request's snapshot, otherwise from the settings provider.

        Raises:
            RateLimitExceededException: A request window is at its ceiling
            CostLimitExceededException: Token or dollar budget exceeded, or unknown model
        """
        ai_settings = ai_settings or self._settings.snapshot()
        limits = ai_settings.rate_limits
        model_id = model_id or ai_settings.model_id

        async with self._lock:
            now = self._clock()

            windows = [
                ("max_requests_per_minute", MINUTE, limits.max_requests_per_minute),
                ("max_requests_per_hour", HOUR, limits.max_requests_per_hour),
                ("max_requests_per_day", DAY, limits.max_requests_per_day),
            ]
            for name, span, ceiling in windows:
                if ceiling == 0 and name == "max_requests_per_hour":
                    continue
                count = await self._window_count(now, span)
                if count >= ceiling:
                    logger.warning(
                        "Inference call rejected by rate limit",
                        extra={"limit": name, "count": count, "ceiling": ceiling, "operation": operation}
                    )
                    raise RateLimitExceededException(
                        f"Rate limit reached ({name}={ceiling})",
                        limit=name,
                        details={"count": count, "ceiling": ceiling}
                    )

            if estimated_tokens > limits.max_tokens_per_request:
                raise CostLimitExceededException(
                    f"Request of {estimated_tokens} tokens exceeds max_tokens_per_request="
                    f"{limits.max_tokens_per_request}",
                    limit="max_tokens_per_request",
                    details={"estimated_tokens": estimated_tokens}
                )

            projected = CostCalculator.calculate(model_id, estimated_tokens, expected_output_tokens)
            reserved = sum((a.projected_cost for a in self._pending.values()), Decimal(0))

            spend_checks = [
                ("daily_limit_usd", start_of_day(now), limits.daily_limit_usd),
                ("monthly_limit_usd", start_of_month(now), limits.monthly_limit_usd),
            ]
            for name, since, ceiling in spend_checks:
                spent = await self._ledger.spend_since(since)
                if spent + reserved + projected > ceiling:
                    logger.warning(
                        "Inference call rejected by cost limit",
                        extra={"limit": name, "spent": str(spent), "projected": str(projected)}
                    )
                    raise CostLimitExceededException(
                        f"Projected spend exceeds {name}={ceiling}",
                        limit=name,
                        details={"spent": str(spent), "projected": str(projected)}
                    )

            admission = Admission(
                model_id=model_id,
                estimated_tokens=estimated_tokens,
                projected_cost=projected,
                admitted_at=now,
                operation=operation,
                user_id=user_id,
                session_id=session_id
            )
            self._pending[admission.id] = admission
            return admission

    async def record_usage(
        self,
        admission: Admission,
        input_tokens: int,
        output_tokens: int,
        latency_ms: int = 0
    ) -> UsageRecord:
        """Write the actual usage of an admitted call and drop its reservation."""
        record = UsageRecord(
            model_id=admission.model_id,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=CostCalculator.calculate(admission.model_id, input_tokens, output_tokens),
            created_at=self._clock(),
            user_id=admission.user_id,
            session_id=admission.session_id,
            operation=admission.operation
        )

        async with self._lock:
            await self._ledger.append(record)
            self._pending.pop(admission.id, None)

        if self._exporter is not None and self._exporter.is_enabled():
            await self._exporter.export_inference_usage(
                model_id=record.model_id,
                operation=record.operation,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                cost=record.cost,
                latency_ms=latency_ms
            )
        return record

    def record_usage_later(self, admission: Admission, input_tokens: int, output_tokens: int) -> asyncio.Task:
        """
        Record usage from a task that outlives the caller (used when the
        caller is being cancelled). The governor keeps the task until it
        finishes.
        """
        task = asyncio.get_running_loop().create_task(
            self.record_usage(admission, input_tokens, output_tokens)
        )
        self._background.add(task)
        task.add_done_callback(self._background_done)
        return task

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            logger.warning("Background usage recording cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error("Background usage recording failed", extra={"error": str(error)})

    async def drain(self) -> None:
        """Wait for background recordings to finish."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def release(self, admission: Admission) -> None:
        """Drop a reservation whose call was never sent."""
        async with self._lock:
            self._pending.pop(admission.id, None)

    async def usage_stats(self) -> UsageStats:
        async with self._lock:
            now = self._clock()
            month = start_of_month(now)
            month_records = await self._ledger.list_between(month, start_of_next_month(now))
            today = start_of_day(now)
            return UsageStats(
                requests_last_minute=await self._window_count(now, MINUTE),
                requests_last_hour=await self._window_count(now, HOUR),
                requests_last_day=await self._window_count(now, DAY),
                spend_today=await self._ledger.spend_since(today),
                spend_this_month=await self._ledger.spend_since(month),
                in_flight=len(self._pending),
                computed_at=now,
                today=UsageSummary.from_records(
                    today.date().isoformat(), (r for r in month_records if r.created_at >= today)
                ),
                this_month=UsageSummary.from_records(month.strftime("%Y-%m"), month_records)
            )

    async def daily_usage(self, day: Optional[date] = None) -> UsageSummary:
        """Ledger totals for one UTC calendar day (default: today)."""
        day = day or self._clock().date()
        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        records = await self._ledger.list_between(start, start + DAY)
        return UsageSummary.from_records(day.isoformat(), records)

    async def monthly_usage(self, year: Optional[int] = None, month: Optional[int] = None) -> UsageSummary:
        """Ledger totals for one UTC calendar month (default: the current one)."""
        now = self._clock()
        try:
            start = datetime(year or now.year, month or now.month, 1, tzinfo=timezone.utc)
        except ValueError as e:
            raise ValidationException(f"Invalid month: {e}", {"year": year, "month": month})
        records = await self._ledger.list_between(start, start_of_next_month(start))
        return UsageSummary.from_records(start.strftime("%Y-%m"), records)

    async def export_usage(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[UsageRecord]:
        """
        Ledger records with start <= created_at <= end.

        Missing bounds default to the beginning of the ledger and now.

        Raises:
            ValidationException: start is after end
        """
        start = as_utc(start) if start else datetime(1970, 1, 1, tzinfo=timezone.utc)
        end = as_utc(end) if end else self._clock()
        if start > end:
            raise ValidationException(
                "Export start must not be after end",
                {"start": start.isoformat(), "end": end.isoformat()}
            )
        return await self._ledger.list_between(start, end + timedelta(microseconds=1))


class GovernedInference:
    """
    Inference gateway: every call is admitted by the governor first and
    its usage recorded afterwards.
    """

    CONNECTION_TEST_PROMPT = "Hello, this is a test. Please respond with 'Connection successful'."
    CONNECTION_TEST_SYSTEM_PROMPT = "You are a connectivity check. Reply with the exact phrase requested."

    def __init__(self, governor: CostRateGovernor, client: Optional[IInferenceClient]):
        self._governor = governor
        self._client = client

    @property
    def is_available(self) -> bool:
        return self._client is not None

    async def complete(
        self,
        prompt: str,
        system_prompt: str,
        ai_settings: AISettings,
        operation: str,
        max_tokens: Optional[int] = None,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> InferenceResult:
        """
        Run one governed inference call.

        Raises:
            ServiceUnavailableException: No backend configured, or the call failed
            RateLimitExceededException / CostLimitExceededException: Admission refused
        """
        if self._client is None:
            raise ServiceUnavailableException("inference capability not configured")

        max_tokens = max_tokens or ai_settings.max_tokens
        estimated = estimate_tokens(system_prompt + prompt)
        admission = await self._governor.admit(
            estimated,
            model_id=ai_settings.model_id,
            expected_output_tokens=max_tokens,
            operation=operation,
            user_id=user_id,
            session_id=session_id,
            ai_settings=ai_settings
        )

        try:
            result = await self._client.invoke(
                prompt,
                model_id=ai_settings.model_id,
                max_tokens=max_tokens,
                temperature=ai_settings.temperature,
                system_prompt=system_prompt
            )
        except asyncio.CancelledError:
            # The request may already have been billed; record the prompt estimate
            self._governor.record_usage_later(admission, estimated, 0)
            raise
        except LLMException as e:
            await self._governor.record_usage(admission, 0, 0)
            logger.error("Inference call failed", extra={"operation": operation, "error": e.message})
            raise ServiceUnavailableException(e.message)

        await self._governor.record_usage(
            admission, result.input_tokens, result.output_tokens, latency_ms=result.latency_ms
        )
        return result

    async def test_connection(self, ai_settings: AISettings) -> ConnectionCheck:
        """
        Send a tiny governed request to the configured model.

        Refusals and backend failures are reported in the result, not raised.
        """
        try:
            result = await self.complete(
                self.CONNECTION_TEST_PROMPT,
                system_prompt=self.CONNECTION_TEST_SYSTEM_PROMPT,
                ai_settings=ai_settings,
                operation="test_connection",
                max_tokens=50,
                user_id="system"
            )
        except (ServiceUnavailableException, GovernorRefusalException) as e:
            logger.warning(
                "Inference connection test failed",
                extra={"model_id": ai_settings.model_id, "error": e.message}
            )
            return ConnectionCheck(success=False, model_id=ai_settings.model_id, error=e.message)

        success = "successful" in result.text.lower()
        logger.info("Inference connection test", extra={"model_id": ai_settings.model_id, "success": success})
        return ConnectionCheck(
            success=success,
            model_id=ai_settings.model_id,
            cost=CostCalculator.calculate(ai_settings.model_id, result.input_tokens, result.output_tokens),
            latency_ms=result.latency_ms,
            error=None if success else "unexpected reply from model"
        )
