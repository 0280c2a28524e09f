"""
FAQ Infrastructure Repositories
===============================

FAQ cache storage: SQLAlchemy (PostgreSQL) and in-memory.
"""

import dataclasses
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError

from helpdesk_intel.faq.application.services import IFaqCacheRepository
from helpdesk_intel.faq.domain import FaqCacheEntry
from helpdesk_intel.faq.infrastructure.models import FaqCacheEntryModel
from helpdesk_intel.infrastructure.database import SessionFactory, get_session_context


def _to_entity(model: FaqCacheEntryModel) -> FaqCacheEntry:
    return FaqCacheEntry(
        question_hash=model.question_hash,
        normalized_question=model.normalized_question,
        original_question=model.original_question,
        answer=model.answer,
        hit_count=model.hit_count,
        created_at=model.created_at,
        last_hit_at=model.last_hit_at
    )


class SQLAlchemyFaqCacheRepository(IFaqCacheRepository):
    """SQLAlchemy implementation of the FAQ cache store."""

    def __init__(self, session_factory: SessionFactory = get_session_context):
        self._session_factory = session_factory

    async def get(self, question_hash: str) -> Optional[FaqCacheEntry]:
        async with self._session_factory() as session:
            model = await session.get(FaqCacheEntryModel, question_hash)
            return _to_entity(model) if model else None

    async def increment_hit(self, question_hash: str, at: datetime) -> Optional[FaqCacheEntry]:
        # Single UPDATE so concurrent hits never lose an increment
        stmt = (
            update(FaqCacheEntryModel)
            .where(FaqCacheEntryModel.question_hash == question_hash)
            .values(hit_count=FaqCacheEntryModel.hit_count + 1, last_hit_at=at)
            .returning(FaqCacheEntryModel)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            return _to_entity(model) if model else None

    async def insert(self, entry: FaqCacheEntry) -> bool:
        try:
            async with self._session_factory() as session:
                session.add(FaqCacheEntryModel(**dataclasses.asdict(entry)))
        except IntegrityError:
            return False
        return True

    async def list_all(self) -> List[FaqCacheEntry]:
        async with self._session_factory() as session:
            result = await session.execute(select(FaqCacheEntryModel))
            return [_to_entity(m) for m in result.scalars().all()]

    async def delete(self, question_hashes: List[str]) -> int:
        if not question_hashes:
            return 0
        stmt = delete(FaqCacheEntryModel).where(FaqCacheEntryModel.question_hash.in_(question_hashes))
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.rowcount

    async def popular(self, limit: int) -> List[FaqCacheEntry]:
        stmt = (
            select(FaqCacheEntryModel)
            .order_by(FaqCacheEntryModel.hit_count.desc(), FaqCacheEntryModel.created_at)
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_entity(m) for m in result.scalars().all()]

    async def clear(self) -> int:
        async with self._session_factory() as session:
            count = (await session.execute(select(func.count()).select_from(FaqCacheEntryModel))).scalar_one()
            await session.execute(delete(FaqCacheEntryModel))
            return count


class InMemoryFaqCacheRepository(IFaqCacheRepository):
    """Process-local FAQ cache store."""

    def __init__(self):
        self._entries: Dict[str, FaqCacheEntry] = {}

    async def get(self, question_hash: str) -> Optional[FaqCacheEntry]:
        entry = self._entries.get(question_hash)
        return dataclasses.replace(entry) if entry else None

    async def increment_hit(self, question_hash: str, at: datetime) -> Optional[FaqCacheEntry]:
        entry = self._entries.get(question_hash)
        if entry is None:
            return None
        entry.hit_count += 1
        entry.last_hit_at = at
        return dataclasses.replace(entry)

    async def insert(self, entry: FaqCacheEntry) -> bool:
        if entry.question_hash in self._entries:
            return False
        self._entries[entry.question_hash] = dataclasses.replace(entry)
        return True

    async def list_all(self) -> List[FaqCacheEntry]:
        return [dataclasses.replace(e) for e in self._entries.values()]

    async def delete(self, question_hashes: List[str]) -> int:
        removed = 0
        for key in question_hashes:
            if self._entries.pop(key, None) is not None:
                removed += 1
        return removed

    async def popular(self, limit: int) -> List[FaqCacheEntry]:
        ranked = sorted(self._entries.values(), key=lambda e: (-e.hit_count, e.created_at))
        return [dataclasses.replace(e) for e in ranked[:limit]]

    async def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count
