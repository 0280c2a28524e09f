"""
Governance Infrastructure Layer
===============================

Usage ledger persistence.
"""

from helpdesk_intel.governance.infrastructure.repositories import (
    SQLAlchemyUsageLedger,
    InMemoryUsageLedger,
)

__all__ = ["SQLAlchemyUsageLedger", "InMemoryUsageLedger"]
