"""
FAQ DTOs
========

Request/response models for the FAQ API.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class AskRequest(BaseModel):
    """Question from the chat assistant."""
    question: str = Field(..., min_length=1, max_length=2000)
    document_context: Optional[str] = Field(
        default=None,
        description="Per-session document text; answers using it are never cached"
    )
    user_id: Optional[str] = None
    session_id: Optional[str] = None


class AskResponse(BaseModel):
    answer: str
    from_cache: bool
    coalesced: bool
    question_hash: Optional[str]
    hit_count: int


class FaqEntryResponse(BaseModel):
    """Cached question/answer pair."""
    question_hash: str
    original_question: str
    answer: str
    hit_count: int
    created_at: datetime
    last_hit_at: Optional[datetime]


class PopularFaqResponse(BaseModel):
    entries: List[FaqEntryResponse]


class ClearCacheResponse(BaseModel):
    cleared: int
