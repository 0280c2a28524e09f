"""
Learning Controllers (API Routes)
=================================

Learning passes, the queue, knowledge articles and feedback.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from helpdesk_intel.config import QueueStatus
from helpdesk_intel.learning.application import (
    ArticleDTO,
    ArticleListResponse,
    FeedbackRequest,
    FeedbackResponse,
    FeedbackTracker,
    ImproveArticleRequest,
    ImproveArticleResponse,
    KnowledgeLearningJob,
    LearningPassResponse,
    LearningQueue,
    QueueItemDTO,
    QueueListResponse,
)
from helpdesk_intel.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)
router = APIRouter(prefix="/learning", tags=["Knowledge Learning"])


# ========== Dependencies ==========

def get_learning_job(request: Request) -> KnowledgeLearningJob:
    return request.app.state.services.learning_job


def get_learning_queue(request: Request) -> LearningQueue:
    return request.app.state.services.learning_queue


def get_feedback_tracker(request: Request) -> FeedbackTracker:
    return request.app.state.services.feedback_tracker


def get_article_repository(request: Request):
    return request.app.state.services.article_repository


# ========== Route Handlers ==========

@router.post(
    "/run",
    response_model=LearningPassResponse,
    summary="Run a learning pass now",
    description="Returns a skipped result when a pass is already running."
)
async def run_learning_pass(
    request: Request,
    job: KnowledgeLearningJob = Depends(get_learning_job)
):
    with log_latency(logger, "learning_pass", trigger="manual"):
        result = await job.run_pass()
    logger.info(
        "Manual learning pass finished",
        extra={
            "correlation_id": getattr(request.state, "correlation_id", "unknown"),
            "skipped": result.skipped
        }
    )
    return LearningPassResponse.from_result(result)


@router.get("/queue", response_model=QueueListResponse, summary="List learning queue items")
async def list_queue(
    status: Optional[QueueStatus] = None,
    limit: int = Query(default=100, ge=1, le=500),
    queue: LearningQueue = Depends(get_learning_queue)
):
    items = await queue.list_items(status, limit)
    return QueueListResponse(items=[QueueItemDTO.from_entity(i) for i in items], total=len(items))


@router.get("/articles", response_model=ArticleListResponse, summary="List knowledge articles")
async def list_articles(
    published: Optional[bool] = None,
    limit: int = Query(default=100, ge=1, le=500),
    articles=Depends(get_article_repository)
):
    found = await articles.list_articles(published, limit)
    return ArticleListResponse(articles=[ArticleDTO.from_entity(a) for a in found], total=len(found))


@router.post(
    "/articles/{article_id}/approve",
    response_model=ArticleDTO,
    summary="Publish a draft article",
    responses={
        404: {"description": "Article not found"},
        409: {"description": "Article already published"}
    }
)
async def approve_article(article_id: int, job: KnowledgeLearningJob = Depends(get_learning_job)):
    return ArticleDTO.from_entity(await job.approve_article(article_id))


@router.post(
    "/articles/{article_id}/improve",
    response_model=ImproveArticleResponse,
    summary="Revise an article with a newly resolved ticket",
    responses={
        404: {"description": "Article or ticket not found"},
        429: {"description": "Rate or cost limit reached, try later"},
        503: {"description": "Inference capability not available"}
    }
)
async def improve_article(
    article_id: int,
    payload: ImproveArticleRequest,
    job: KnowledgeLearningJob = Depends(get_learning_job)
):
    article, updated = await job.improve_article(article_id, payload.ticket_id, payload.success)
    return ImproveArticleResponse(updated=updated, article=ArticleDTO.from_entity(article))


@router.post(
    "/feedback",
    response_model=FeedbackResponse,
    summary="Rate an auto-response or article (5 helpful, 1 not helpful)",
    responses={
        404: {"description": "Unknown response or article"},
        422: {"description": "Rating outside {1, 5}"}
    }
)
async def record_feedback(
    payload: FeedbackRequest,
    tracker: FeedbackTracker = Depends(get_feedback_tracker)
):
    ack = await tracker.record_feedback(payload.kind, payload.target_id, payload.rating)
    return FeedbackResponse(
        kind=ack.kind,
        target_id=ack.target_id,
        rating=ack.rating,
        was_helpful=ack.was_helpful,
        effectiveness_score=ack.effectiveness_score,
        articles_updated=ack.articles_updated
    )


learning_router = router
