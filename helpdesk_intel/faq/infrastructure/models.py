"""
FAQ Infrastructure Models
=========================

SQLAlchemy ORM model for the FAQ cache.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk_intel.infrastructure.database import Base


class FaqCacheEntryModel(Base):
    """Database model for FaqCacheEntry, keyed by question hash."""
    __tablename__ = "faq_cache_entries"

    question_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    normalized_question: Mapped[str] = mapped_column(Text, nullable=False)
    original_question: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[str] = mapped_column(Text, nullable=False)

    hit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )
    last_hit_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
