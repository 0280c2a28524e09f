"""
Intelligence Interfaces Layer
=============================

FastAPI routes for analysis, responses, escalation and ticket events.
"""

from helpdesk_intel.intelligence.interfaces.controllers import intelligence_router

__all__ = ["intelligence_router"]
