"""
Learning Domain Layer
=====================

Contains:
- Entities: LearningQueueItem, KnowledgeArticle, ResolutionPattern, LearningPassResult
- Scoring: ResolutionQualityScorer, KnowledgeMatcher
- Prompt builders for pattern extraction, article drafting and improvement
"""

from helpdesk_intel.learning.domain.entities import (
    LearningQueueItem,
    KnowledgeArticle,
    ResolutionPattern,
    LearningPassResult,
)
from helpdesk_intel.learning.domain.value_objects import (
    resolution_text,
    resolution_hours,
    ResolutionQualityScorer,
    KnowledgeMatcher,
    PatternPromptBuilder,
    ArticlePromptBuilder,
    ImprovementPromptBuilder,
)

__all__ = [
    "LearningQueueItem",
    "KnowledgeArticle",
    "ResolutionPattern",
    "LearningPassResult",
    "resolution_text",
    "resolution_hours",
    "ResolutionQualityScorer",
    "KnowledgeMatcher",
    "PatternPromptBuilder",
    "ArticlePromptBuilder",
    "ImprovementPromptBuilder",
]
