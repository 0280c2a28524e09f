"""
FAQ Infrastructure Layer
========================

FAQ cache persistence.
"""

from helpdesk_intel.faq.infrastructure.repositories import (
    SQLAlchemyFaqCacheRepository,
    InMemoryFaqCacheRepository,
)

__all__ = ["SQLAlchemyFaqCacheRepository", "InMemoryFaqCacheRepository"]
