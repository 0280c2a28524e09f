"""
Learning Infrastructure Layer
=============================

Learning queue and knowledge article persistence, plus the scheduler that
drives the periodic learning pass.
"""

from helpdesk_intel.learning.infrastructure.repositories import (
    SQLAlchemyLearningQueueRepository,
    SQLAlchemyKnowledgeArticleRepository,
    InMemoryLearningQueueRepository,
    InMemoryKnowledgeArticleRepository,
)
from helpdesk_intel.learning.infrastructure.external import LearningScheduler

__all__ = [
    "SQLAlchemyLearningQueueRepository",
    "SQLAlchemyKnowledgeArticleRepository",
    "InMemoryLearningQueueRepository",
    "InMemoryKnowledgeArticleRepository",
    "LearningScheduler",
]
