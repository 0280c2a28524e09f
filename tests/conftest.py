"""
Shared fixtures: a controllable clock, a scripted inference backend and an
in-memory service graph.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

import pytest

from helpdesk_intel.ai_settings.domain import AISettings, RateLimitConfig
from helpdesk_intel.ai_settings.infrastructure import StaticSettingsProvider
from helpdesk_intel.infrastructure.llm import (
    IInferenceClient,
    InferenceResult,
    MockInferenceClient,
    estimate_tokens,
)
from helpdesk_intel.infrastructure.notifications import INotificationDispatcher, PipelineEvent
from helpdesk_intel.infrastructure.ticket_store import InMemoryTicketStore, TicketComment, TicketRecord
from helpdesk_intel.main import build_services

START = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Injected clock; tests move time explicitly."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, moment: datetime) -> None:
        self.now = moment


class ScriptedInferenceClient(IInferenceClient):
    """
    Inference backend returning scripted text per task.

    A script is keyed on a phrase from the task's system prompt; tasks
    without a script fall back to the mock backend.
    """

    def __init__(self):
        self.scripts: Dict[str, str] = {}
        self.calls: List[Dict[str, str]] = []
        self.delay: float = 0.0
        self.error: Optional[Exception] = None
        self._fallback = MockInferenceClient()

    def script(self, task: str, payload) -> None:
        self.scripts[task] = payload if isinstance(payload, str) else json.dumps(payload)

    def calls_for(self, task: str) -> List[Dict[str, str]]:
        return [c for c in self.calls if task in c["system_prompt"].lower()]

    async def invoke(
        self,
        prompt: str,
        model_id: str,
        max_tokens: int,
        temperature: float,
        system_prompt: Optional[str] = None
    ) -> InferenceResult:
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt or ""})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

        task = (system_prompt or "").lower()
        for key, text in self.scripts.items():
            if key in task:
                return InferenceResult(
                    text=text,
                    input_tokens=estimate_tokens(prompt),
                    output_tokens=estimate_tokens(text),
                    model=model_id,
                    latency_ms=1
                )
        return await self._fallback.invoke(prompt, model_id, max_tokens, temperature, system_prompt)


class RecordingNotifier(INotificationDispatcher):
    def __init__(self):
        self.events: List[PipelineEvent] = []

    async def emit(self, event: PipelineEvent) -> bool:
        self.events.append(event)
        return True

    def of_type(self, event_type) -> List[PipelineEvent]:
        return [e for e in self.events if e.type == event_type]


def analysis_payload(confidence: float = 0.85, complexity="medium", priority: str = "medium", **extra) -> dict:
    payload = {
        "complexity": complexity,
        "category": "support",
        "priority": priority,
        "confidence": confidence,
        "tags": ["login", "password"],
        "estimatedResolutionHours": 2,
        "reasoning": "Password reset link expired; standard reset flow applies."
    }
    payload.update(extra)
    return payload


RESET_REPLY = (
    "Sorry about the expired link. Request a new password reset from the login page "
    "and use it within 30 minutes."
)


def make_ticket(ticket_id: str = "T-1", **fields) -> TicketRecord:
    values = {
        "id": ticket_id,
        "title": "Cannot login",
        "description": "Password reset link expired",
        "category": "support",
        "priority": "medium",
        "created_at": START - timedelta(hours=3),
    }
    values.update(fields)
    return TicketRecord(**values)


def resolved_ticket(ticket_id: str = "R-1", **fields) -> TicketRecord:
    values = {"status": "resolved", "resolved_at": START - timedelta(hours=1)}
    values.update(fields)
    return make_ticket(ticket_id, **values)


SOLUTION_COMMENT = TicketComment(
    content=(
        "The reset link had expired because the mail server delayed delivery by two hours. "
        "I reset the token lifetime for this account, sent a fresh link and the customer "
        "confirmed they could log in. Fixed."
    ),
    is_system=False,
    author_id="agent-7"
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ai_settings() -> AISettings:
    return AISettings(
        rate_limits=RateLimitConfig(
            max_requests_per_minute=100,
            max_requests_per_hour=0,
            max_requests_per_day=1000,
            max_tokens_per_request=2000,
            daily_limit_usd=Decimal("100"),
            monthly_limit_usd=Decimal("1000"),
        )
    )


@pytest.fixture
def settings_provider(ai_settings) -> StaticSettingsProvider:
    return StaticSettingsProvider(ai_settings)


@pytest.fixture
def inference_client() -> ScriptedInferenceClient:
    client = ScriptedInferenceClient()
    client.script("ticket analysis", analysis_payload())
    client.script("first support response", {"response": RESET_REPLY})
    return client


@pytest.fixture
def ticket_store() -> InMemoryTicketStore:
    store = InMemoryTicketStore()
    store.add_ticket(make_ticket())
    return store


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def services(settings_provider, inference_client, ticket_store, notifier, clock):
    return build_services(
        settings_provider,
        inference_client,
        ticket_store,
        notifier,
        storage_backend="memory",
        clock=clock
    )
