"""
AI Settings Domain Layer
========================

Value objects for operator-configured AI thresholds:
- AISettings: versioned snapshot consumed by every pipeline stage
- RateLimitConfig: governor ceilings with preset support
- EscalationRule: complexity-to-team routing rule
"""

from helpdesk_intel.ai_settings.domain.value_objects import (
    AISettings,
    RateLimitConfig,
    EscalationRule,
    PRESETS,
    PRESET_FIELDS,
    CUSTOM_PRESET,
)

__all__ = [
    "AISettings",
    "RateLimitConfig",
    "EscalationRule",
    "PRESETS",
    "PRESET_FIELDS",
    "CUSTOM_PRESET",
]
