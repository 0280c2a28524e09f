"""
AI Settings Value Objects
=========================

Strongly typed, versioned snapshot of operator-configured AI thresholds.

A snapshot is immutable: consumers read it once per request or batch and
pass it down. Replacing the active configuration never alters usage that
was already recorded.
"""

from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from helpdesk_intel.core import ValidationException

CUSTOM_PRESET = "Custom"

# Fields overwritten together when a preset is selected
PRESET_FIELDS = (
    "max_requests_per_minute",
    "max_requests_per_hour",
    "max_requests_per_day",
    "daily_limit_usd",
    "monthly_limit_usd",
    "max_tokens_per_request",
)

PRESETS: Dict[str, Dict[str, object]] = {
    "Strict": {
        "max_requests_per_minute": 10,
        "max_requests_per_hour": 100,
        "max_requests_per_day": 500,
        "daily_limit_usd": Decimal("1"),
        "monthly_limit_usd": Decimal("10"),
        "max_tokens_per_request": 1000,
    },
    "Balanced": {
        "max_requests_per_minute": 20,
        "max_requests_per_hour": 0,
        "max_requests_per_day": 1000,
        "daily_limit_usd": Decimal("2"),
        "monthly_limit_usd": Decimal("15"),
        "max_tokens_per_request": 2000,
    },
    "Generous": {
        "max_requests_per_minute": 60,
        "max_requests_per_hour": 600,
        "max_requests_per_day": 5000,
        "daily_limit_usd": Decimal("3"),
        "monthly_limit_usd": Decimal("25"),
        "max_tokens_per_request": 3000,
    },
}


class RateLimitConfig(BaseModel):
    """
    Window ceilings and spend ceilings enforced by the governor.

    applied_preset remembers the last preset selected; active_preset is
    derived by comparing the bundled fields against it.
    """
    model_config = ConfigDict(frozen=True)

    max_requests_per_minute: int = Field(default=20, ge=1)
    max_requests_per_hour: int = Field(default=0, ge=0, description="0 disables the hourly cap")
    max_requests_per_day: int = Field(default=1000, ge=1)
    max_tokens_per_request: int = Field(default=1000, ge=1)
    daily_limit_usd: Decimal = Field(default=Decimal("5"), ge=0)
    monthly_limit_usd: Decimal = Field(default=Decimal("50"), ge=0)
    is_free_tier_account: bool = True
    applied_preset: Optional[str] = None

    @classmethod
    def for_account(cls, is_free_tier: bool) -> "RateLimitConfig":
        """Default ceilings for a free-tier or paid inference account."""
        if is_free_tier:
            return cls(
                max_requests_per_minute=10,
                max_requests_per_hour=10,
                max_requests_per_day=50,
                max_tokens_per_request=1000,
                daily_limit_usd=Decimal("5"),
                monthly_limit_usd=Decimal("50"),
                is_free_tier_account=True,
            )
        return cls(
            max_requests_per_minute=100,
            max_requests_per_hour=100,
            max_requests_per_day=1000,
            max_tokens_per_request=4000,
            daily_limit_usd=Decimal("100"),
            monthly_limit_usd=Decimal("1000"),
            is_free_tier_account=False,
        )

    def apply_preset(self, name: str) -> "RateLimitConfig":
        """Return a copy with every bundled field overwritten by the preset."""
        if name not in PRESETS:
            raise ValidationException(
                f"Unknown preset '{name}'",
                {"allowed": sorted(PRESETS)}
            )
        return self.model_validate({
            **self.model_dump(),
            **PRESETS[name],
            "applied_preset": name,
        })

    def with_changes(self, **changes: object) -> "RateLimitConfig":
        """Return a validated copy with individual fields edited."""
        return self.model_validate({**self.model_dump(), **changes})

    @property
    def active_preset(self) -> str:
        if self.applied_preset not in PRESETS:
            return CUSTOM_PRESET
        bundle = PRESETS[self.applied_preset]
        if all(getattr(self, field) == bundle[field] for field in PRESET_FIELDS):
            return self.applied_preset
        return CUSTOM_PRESET


class EscalationRule(BaseModel):
    """Route tickets at or above a complexity threshold to a team."""
    model_config = ConfigDict(frozen=True)

    id: int
    complexity_threshold: int = Field(ge=0, le=100)
    team_id: int
    priority: int = 0
    enabled: bool = True


# Implicit rule built from escalation_team_id; ranks below every configured rule
IMPLICIT_RULE_ID = 0
IMPLICIT_RULE_PRIORITY = -(2 ** 31)


class AISettings(BaseModel):
    """
    Operator AI settings snapshot.

    Out-of-range numeric limits are clamped rather than rejected, matching
    what the admin screen allows.
    """
    model_config = ConfigDict(
        frozen=True, populate_by_name=True, extra="ignore", protected_namespaces=()
    )

    version: int = Field(default=1, ge=1)

    # Auto-response
    auto_response_enabled: bool = True
    confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    auto_apply_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    max_response_length: int = 1000
    response_timeout: int = Field(default=30, description="Seconds")

    # Learning
    auto_learn_enabled: bool = True
    min_resolution_score: float = Field(default=0.8, ge=0.0, le=1.0)
    article_approval_required: bool = True

    # Escalation
    complexity_threshold: int = Field(default=70, ge=0, le=100)
    escalation_enabled: bool = True
    escalation_team_id: Optional[int] = None
    escalation_rules: List[EscalationRule] = Field(default_factory=list)

    # Model
    model_id: str = Field(
        default="anthropic.claude-3-sonnet-20240229-v1:0",
        validation_alias=AliasChoices("model_id", "bedrock_model", "bedrockModel"),
    )
    temperature: float = Field(default=0.3, ge=0.0, le=1.0)
    max_tokens: int = Field(default=2000, ge=1, le=8000)

    rate_limits: RateLimitConfig = Field(default_factory=RateLimitConfig)

    @field_validator("max_response_length")
    @classmethod
    def clamp_response_length(cls, v: int) -> int:
        return min(max(v, 100), 5000)

    @field_validator("response_timeout")
    @classmethod
    def clamp_response_timeout(cls, v: int) -> int:
        return min(max(v, 5), 120)

    def effective_escalation_rules(self) -> List[EscalationRule]:
        """Configured rules plus the fallback team rule, if one is set."""
        rules = list(self.escalation_rules)
        if self.escalation_team_id is not None:
            rules.append(EscalationRule(
                id=IMPLICIT_RULE_ID,
                complexity_threshold=self.complexity_threshold,
                team_id=self.escalation_team_id,
                priority=IMPLICIT_RULE_PRIORITY,
            ))
        return rules

    def with_rate_limits(self, rate_limits: RateLimitConfig) -> "AISettings":
        """New snapshot version with replaced rate limits."""
        return self.model_copy(update={"rate_limits": rate_limits, "version": self.version + 1})
