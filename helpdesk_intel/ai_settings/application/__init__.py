"""
AI Settings Application Layer
=============================

Provider interface through which the pipeline reads its settings snapshot.
"""

from helpdesk_intel.ai_settings.application.services import ISettingsProvider

__all__ = ["ISettingsProvider"]
