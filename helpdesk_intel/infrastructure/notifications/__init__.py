"""
Notification Dispatch
=====================

Pipeline events (response generated, ticket escalated, article awaiting
approval, learning item failed) are pushed to a Teams incoming webhook.

Delivery is best-effort: a failed notification never fails the operation
that emitted it.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from helpdesk_intel.config import PipelineEventType, settings
from helpdesk_intel.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PipelineEvent:
    """Something downstream humans should hear about."""
    type: PipelineEventType
    subject_id: str
    summary: str
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class INotificationDispatcher(ABC):
    """Interface for pipeline event delivery."""

    @abstractmethod
    async def emit(self, event: PipelineEvent) -> bool:
        """Deliver an event. Returns False when it was not delivered."""

    async def close(self) -> None:
        """Release transport resources."""


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for the webhook endpoint.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60.0):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if time.monotonic() - self._opened_at >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._opened_at = time.monotonic()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


_THEME_COLORS = {
    PipelineEventType.RESPONSE_GENERATED: "2EB886",
    PipelineEventType.TICKET_ESCALATED: "E81123",
    PipelineEventType.ARTICLE_PENDING_APPROVAL: "0078D7",
    PipelineEventType.LEARNING_ITEM_FAILED: "FFB900",
}

_TITLES = {
    PipelineEventType.RESPONSE_GENERATED: "AI response generated",
    PipelineEventType.TICKET_ESCALATED: "Ticket escalated",
    PipelineEventType.ARTICLE_PENDING_APPROVAL: "Knowledge article awaiting approval",
    PipelineEventType.LEARNING_ITEM_FAILED: "Learning item failed",
}


class WebhookNotificationDispatcher(INotificationDispatcher):
    """
    Teams webhook client with circuit breaker and retry logic.

    - Circuit breaker to prevent cascade failures
    - Exponential backoff retry
    - Timeout handling
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: int = 3,
        backoff_base: float = 1.0
    ):
        self._webhook_url = webhook_url or settings.notification_webhook_url
        self._timeout = timeout or settings.notification_timeout_seconds
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._circuit_breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    @staticmethod
    def build_card(event: PipelineEvent) -> Dict[str, Any]:
        """Build a Teams MessageCard for an event."""
        facts = [{"name": "Subject", "value": event.subject_id}]
        facts.extend(
            {"name": key.replace("_", " ").title(), "value": str(value)}
            for key, value in event.payload.items()
        )
        facts.append({"name": "Time", "value": event.occurred_at.isoformat()})

        return {
            "@type": "MessageCard",
            "@context": "https://schema.org/extensions",
            "summary": event.summary,
            "themeColor": _THEME_COLORS.get(event.type, "777777"),
            "title": _TITLES.get(event.type, event.type.value),
            "sections": [{"activityTitle": event.summary, "facts": facts}]
        }

    async def emit(self, event: PipelineEvent) -> bool:
        if not self._webhook_url:
            logger.debug("Notification webhook URL not configured, skipping notification")
            return False

        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping notification",
                extra={"event_type": event.type.value, "subject_id": event.subject_id}
            )
            return False

        card = self.build_card(event)

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=card)

                if 200 <= response.status_code < 300:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Notification sent",
                        extra={"event_type": event.type.value, "subject_id": event.subject_id}
                    )
                    return True

                logger.warning(
                    "Notification webhook returned non-2xx",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )

            except httpx.HTTPError as e:
                logger.error(
                    "Notification failed",
                    extra={
                        "error": str(e),
                        "attempt": attempt + 1,
                        "event_type": event.type.value
                    }
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._backoff_base * 2 ** attempt)

        self._circuit_breaker.record_failure()
        return False

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class LoggingNotificationDispatcher(INotificationDispatcher):
    """Writes events to the log instead of a webhook."""

    async def emit(self, event: PipelineEvent) -> bool:
        logger.info(
            "Pipeline event",
            extra={
                "event_type": event.type.value,
                "subject_id": event.subject_id,
                "summary": event.summary,
                **{f"payload_{k}": v for k, v in event.payload.items()}
            }
        )
        return True


def create_notification_dispatcher() -> INotificationDispatcher:
    """Webhook dispatcher when a URL is configured, log dispatcher otherwise."""
    if settings.notification_webhook_url:
        return WebhookNotificationDispatcher()
    return LoggingNotificationDispatcher()


__all__ = [
    "PipelineEvent",
    "INotificationDispatcher",
    "CircuitBreaker",
    "CircuitState",
    "WebhookNotificationDispatcher",
    "LoggingNotificationDispatcher",
    "create_notification_dispatcher",
]
