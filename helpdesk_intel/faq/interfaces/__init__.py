"""
FAQ Interfaces Layer
====================

FastAPI routes for the FAQ cache.
"""

from helpdesk_intel.faq.interfaces.controllers import faq_router

__all__ = ["faq_router"]
