"""
AI Settings Application Services
================================
"""

from abc import ABC, abstractmethod

from helpdesk_intel.ai_settings.domain import AISettings


class ISettingsProvider(ABC):
    """Source of the current AI settings snapshot; pipeline code only reads."""

    @abstractmethod
    def snapshot(self) -> AISettings:
        """Return the current immutable settings snapshot."""

    @abstractmethod
    def save(self, settings: AISettings) -> AISettings:
        """Replace the active snapshot (operator surface only, never the pipeline)."""
