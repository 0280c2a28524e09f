"""
Learning Interfaces Layer
=========================

FastAPI routes for learning passes, articles and feedback.
"""

from helpdesk_intel.learning.interfaces.controllers import learning_router

__all__ = ["learning_router"]
