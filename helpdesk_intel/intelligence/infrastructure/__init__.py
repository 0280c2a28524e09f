"""
Intelligence Infrastructure Layer
=================================

Complexity score and auto-response persistence.
"""

from helpdesk_intel.intelligence.infrastructure.repositories import (
    SQLAlchemyComplexityScoreRepository,
    SQLAlchemyAutoResponseRepository,
    InMemoryComplexityScoreRepository,
    InMemoryAutoResponseRepository,
)

__all__ = [
    "SQLAlchemyComplexityScoreRepository",
    "SQLAlchemyAutoResponseRepository",
    "InMemoryComplexityScoreRepository",
    "InMemoryAutoResponseRepository",
]
