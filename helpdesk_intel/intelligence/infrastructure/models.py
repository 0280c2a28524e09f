"""
Intelligence Infrastructure Models
==================================

SQLAlchemy ORM models for complexity scores and auto-responses.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk_intel.infrastructure.database import Base


class ComplexityScoreModel(Base):
    """
    Database model for ComplexityScore.

    Append-only; the newest row per ticket is current.
    """
    __tablename__ = "complexity_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    factors: Mapped[Dict[str, float]] = mapped_column(JSON, nullable=False, default=dict)
    note: Mapped[str] = mapped_column(Text, nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )


class AutoResponseModel(Base):
    """Database model for AutoResponse."""
    __tablename__ = "auto_responses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    response_text: Mapped[str] = mapped_column(Text, nullable=False)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False)
    suggested_article_ids: Mapped[List[int]] = mapped_column(JSON, nullable=False, default=list)

    was_applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    was_helpful: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
