"""
Governance Interfaces Layer
===========================

FastAPI routes for usage, pricing and limits.
"""

from helpdesk_intel.governance.interfaces.controllers import governance_router

__all__ = ["governance_router"]
