"""
FAQ Controllers (API Routes)
============================

Chat assistant questions answered through the FAQ cache, plus cache admin.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from helpdesk_intel.faq.application import (
    AskRequest,
    AskResponse,
    ClearCacheResponse,
    FaqAssistant,
    FaqCache,
    FaqEntryResponse,
    PopularFaqResponse,
)
from helpdesk_intel.faq.domain import FaqCacheEntry
from helpdesk_intel.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/faq", tags=["FAQ Cache"])


# ========== Dependencies ==========

def get_faq_cache(request: Request) -> FaqCache:
    return request.app.state.services.faq_cache


def get_faq_assistant(request: Request) -> FaqAssistant:
    return request.app.state.services.faq_assistant


def _entry_response(entry: FaqCacheEntry) -> FaqEntryResponse:
    return FaqEntryResponse(
        question_hash=entry.question_hash,
        original_question=entry.original_question,
        answer=entry.answer,
        hit_count=entry.hit_count,
        created_at=entry.created_at,
        last_hit_at=entry.last_hit_at
    )


# ========== Route Handlers ==========

@router.post(
    "/ask",
    response_model=AskResponse,
    summary="Answer a question (cache first)",
    responses={
        429: {"description": "Rate or cost limit reached, try later"},
        503: {"description": "Inference capability not available"}
    }
)
async def ask(
    request: Request,
    payload: AskRequest,
    assistant: FaqAssistant = Depends(get_faq_assistant)
):
    result = await assistant.ask(
        payload.question,
        document_context=payload.document_context,
        user_id=payload.user_id,
        session_id=payload.session_id
    )

    logger.info(
        "FAQ question answered",
        extra={
            "correlation_id": getattr(request.state, "correlation_id", "unknown"),
            "from_cache": result.from_cache,
            "coalesced": result.coalesced
        }
    )
    return AskResponse(
        answer=result.answer,
        from_cache=result.from_cache,
        coalesced=result.coalesced,
        question_hash=result.question_hash,
        hit_count=result.hit_count
    )


@router.get(
    "/lookup",
    response_model=FaqEntryResponse,
    summary="Cache-only lookup (counts as a hit)",
    responses={404: {"description": "Cache miss"}}
)
async def lookup(
    question: str = Query(..., min_length=1),
    cache: FaqCache = Depends(get_faq_cache)
):
    entry = await cache.cached_answer(question)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cache miss")
    return _entry_response(entry)


@router.get(
    "/popular",
    response_model=PopularFaqResponse,
    summary="Most frequently hit questions"
)
async def popular(
    limit: int = Query(10, ge=1, le=100),
    cache: FaqCache = Depends(get_faq_cache)
):
    entries = await cache.popular(limit)
    return PopularFaqResponse(entries=[_entry_response(e) for e in entries])


@router.delete(
    "",
    response_model=ClearCacheResponse,
    summary="Clear the FAQ cache"
)
async def clear(request: Request, cache: FaqCache = Depends(get_faq_cache)):
    cleared = await cache.clear()
    logger.info(
        "FAQ cache cleared via API",
        extra={"correlation_id": getattr(request.state, "correlation_id", "unknown"), "cleared": cleared}
    )
    return ClearCacheResponse(cleared=cleared)


faq_router = router
