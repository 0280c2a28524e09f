"""
FAQ Domain Layer
================

Contains:
- Entities: FaqCacheEntry
- Functions: normalize_question, question_hash
- Eviction strategies: NoEviction, TTLEviction, LRUEviction
"""

from helpdesk_intel.faq.domain.entities import FaqCacheEntry, normalize_question, question_hash
from helpdesk_intel.faq.domain.value_objects import (
    EvictionPolicy,
    NoEviction,
    TTLEviction,
    LRUEviction,
    create_eviction_policy,
)

__all__ = [
    "FaqCacheEntry",
    "normalize_question",
    "question_hash",
    "EvictionPolicy",
    "NoEviction",
    "TTLEviction",
    "LRUEviction",
    "create_eviction_policy",
]
