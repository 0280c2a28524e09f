"""
Learning Application Layer
==========================

Contains:
- Services: LearningQueue, KnowledgeLearningJob, FeedbackTracker, ArticleKnowledgeSearch
- Interfaces: ILearningQueueRepository, IKnowledgeArticleRepository
- DTOs: API request/response models
"""

from helpdesk_intel.learning.application.services import (
    LearningQueue,
    KnowledgeLearningJob,
    FeedbackTracker,
    FeedbackAck,
    ArticleKnowledgeSearch,
    ILearningQueueRepository,
    IKnowledgeArticleRepository,
    MIN_PATTERN_SUCCESS_RATE,
    MIN_IMPROVEMENT_CONFIDENCE,
)
from helpdesk_intel.learning.application.dto import (
    LearningPassResponse,
    QueueItemDTO,
    QueueListResponse,
    ArticleDTO,
    ArticleListResponse,
    ImproveArticleRequest,
    ImproveArticleResponse,
    FeedbackRequest,
    FeedbackResponse,
)

__all__ = [
    "LearningQueue",
    "KnowledgeLearningJob",
    "FeedbackTracker",
    "FeedbackAck",
    "ArticleKnowledgeSearch",
    "ILearningQueueRepository",
    "IKnowledgeArticleRepository",
    "MIN_PATTERN_SUCCESS_RATE",
    "MIN_IMPROVEMENT_CONFIDENCE",
    "LearningPassResponse",
    "QueueItemDTO",
    "QueueListResponse",
    "ArticleDTO",
    "ArticleListResponse",
    "ImproveArticleRequest",
    "ImproveArticleResponse",
    "FeedbackRequest",
    "FeedbackResponse",
]
