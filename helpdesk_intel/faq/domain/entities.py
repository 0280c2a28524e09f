"""
FAQ Domain Entities
===================

Content-addressed cache entries and the question normalization that keys them.
"""

import hashlib
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_question(text: str) -> str:
    """
    Lowercase, drop everything outside [a-z0-9\\s], collapse whitespace, trim.

    Questions differing only in case, punctuation or spacing normalize equal.
    """
    lowered = text.lower()
    stripped = _NON_ALNUM.sub("", lowered)
    return _WHITESPACE.sub(" ", stripped).strip()


def question_hash(normalized: str) -> str:
    """SHA-256 hex digest of a normalized question."""
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


@dataclass
class FaqCacheEntry:
    """
    Cached answer for one normalized question.

    Keyed uniquely by question_hash. Only hit_count and last_hit_at change
    after insertion.
    """
    question_hash: str
    normalized_question: str
    original_question: str
    answer: str
    hit_count: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_hit_at: Optional[datetime] = None

    @property
    def last_used_at(self) -> datetime:
        return self.last_hit_at or self.created_at
