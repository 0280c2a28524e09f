"""
FAQ Eviction Strategies
=======================

Pluggable policies deciding when cached answers stop being served.
The default keeps entries forever.
"""

from abc import ABC
from datetime import datetime, timedelta
from typing import List

from helpdesk_intel.faq.domain.entities import FaqCacheEntry


class EvictionPolicy(ABC):
    """Base policy: nothing expires, nothing is evicted."""

    name = "none"

    def is_expired(self, entry: FaqCacheEntry, now: datetime) -> bool:
        return False

    def select_victims(self, entries: List[FaqCacheEntry], now: datetime) -> List[str]:
        """Hashes of entries to remove after an insert."""
        return []


class NoEviction(EvictionPolicy):
    pass


class TTLEviction(EvictionPolicy):
    """Entries expire a fixed time after creation."""

    name = "ttl"

    def __init__(self, ttl: timedelta):
        self.ttl = ttl

    def is_expired(self, entry: FaqCacheEntry, now: datetime) -> bool:
        return now - entry.created_at >= self.ttl

    def select_victims(self, entries: List[FaqCacheEntry], now: datetime) -> List[str]:
        return [e.question_hash for e in entries if self.is_expired(e, now)]


class LRUEviction(EvictionPolicy):
    """Keep at most max_entries, dropping the least recently used first."""

    name = "lru"

    def __init__(self, max_entries: int):
        self.max_entries = max_entries

    def select_victims(self, entries: List[FaqCacheEntry], now: datetime) -> List[str]:
        overflow = len(entries) - self.max_entries
        if overflow <= 0:
            return []
        ranked = sorted(entries, key=lambda e: e.last_used_at)
        return [e.question_hash for e in ranked[:overflow]]


def create_eviction_policy(name: str, ttl_hours: float, max_entries: int) -> EvictionPolicy:
    if name == "ttl":
        return TTLEviction(timedelta(hours=ttl_hours))
    if name == "lru":
        return LRUEviction(max_entries)
    return NoEviction()
