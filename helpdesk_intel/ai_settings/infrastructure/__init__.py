"""
AI Settings Infrastructure Layer
================================

YAML-backed settings store with hot reload, and a static provider.
"""

from helpdesk_intel.ai_settings.infrastructure.external import (
    AISettingsManager,
    StaticSettingsProvider,
)

__all__ = ["AISettingsManager", "StaticSettingsProvider"]
