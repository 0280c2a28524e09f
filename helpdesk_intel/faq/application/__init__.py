"""
FAQ Application Layer
=====================

Contains:
- Services: FaqCache (lookup, insert, request coalescing), FaqAssistant
- Interfaces: IFaqCacheRepository
- DTOs: API request/response models
"""

from helpdesk_intel.faq.application.services import (
    FaqCache,
    FaqAssistant,
    CachedAnswer,
    IFaqCacheRepository,
)
from helpdesk_intel.faq.application.dto import (
    AskRequest,
    AskResponse,
    FaqEntryResponse,
    PopularFaqResponse,
    ClearCacheResponse,
)

__all__ = [
    "FaqCache",
    "FaqAssistant",
    "CachedAnswer",
    "IFaqCacheRepository",
    "AskRequest",
    "AskResponse",
    "FaqEntryResponse",
    "PopularFaqResponse",
    "ClearCacheResponse",
]
