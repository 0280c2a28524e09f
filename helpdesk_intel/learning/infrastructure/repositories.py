"""
Learning Infrastructure Repositories
====================================

Learning queue and knowledge article storage: SQLAlchemy (PostgreSQL) and
in-memory.
"""

import dataclasses
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import and_, func, or_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError

from helpdesk_intel.config import ArticleSource, QueueStatus
from helpdesk_intel.core import RepositoryException, ResourceNotFoundException
from helpdesk_intel.infrastructure.database import SessionFactory, get_session_context
from helpdesk_intel.learning.application.services import (
    IKnowledgeArticleRepository,
    ILearningQueueRepository,
)
from helpdesk_intel.learning.domain import KnowledgeArticle, KnowledgeMatcher, LearningQueueItem
from helpdesk_intel.learning.infrastructure.models import KnowledgeArticleModel, LearningQueueItemModel

# Upper bound on candidate rows pulled for keyword ranking
SEARCH_CANDIDATES = 50


def _item_entity(model: LearningQueueItemModel) -> LearningQueueItem:
    return LearningQueueItem(
        id=model.id,
        ticket_id=model.ticket_id,
        status=QueueStatus(model.status),
        attempts=model.attempts,
        last_error=model.last_error,
        created_at=model.created_at,
        updated_at=model.updated_at
    )


def _article_entity(model: KnowledgeArticleModel) -> KnowledgeArticle:
    return KnowledgeArticle(
        id=model.id,
        title=model.title,
        content=model.content,
        category=model.category,
        tags=list(model.tags or []),
        effectiveness_score=model.effectiveness_score,
        usage_count=model.usage_count,
        feedback_count=model.feedback_count,
        is_published=model.is_published,
        source=ArticleSource(model.source),
        source_ticket_id=model.source_ticket_id,
        created_at=model.created_at,
        updated_at=model.updated_at
    )


class SQLAlchemyLearningQueueRepository(ILearningQueueRepository):
    """SQLAlchemy implementation of the learning queue."""

    def __init__(self, session_factory: SessionFactory = get_session_context):
        self._session_factory = session_factory

    async def enqueue(self, item: LearningQueueItem) -> Tuple[LearningQueueItem, bool]:
        stmt = (
            insert(LearningQueueItemModel)
            .values(
                ticket_id=item.ticket_id,
                status=item.status.value,
                attempts=item.attempts,
                created_at=item.created_at,
                updated_at=item.updated_at
            )
            .on_conflict_do_nothing(index_elements=["ticket_id"])
            .returning(LearningQueueItemModel.id)
        )
        try:
            async with self._session_factory() as session:
                inserted = (await session.execute(stmt)).scalar_one_or_none()
                existing = (await session.execute(
                    select(LearningQueueItemModel).where(LearningQueueItemModel.ticket_id == item.ticket_id)
                )).scalar_one()
                return _item_entity(existing), inserted is not None
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to enqueue ticket {item.ticket_id}: {e}")

    async def get(self, ticket_id: str) -> Optional[LearningQueueItem]:
        async with self._session_factory() as session:
            model = (await session.execute(
                select(LearningQueueItemModel).where(LearningQueueItemModel.ticket_id == ticket_id)
            )).scalar_one_or_none()
            return _item_entity(model) if model else None

    async def select_ready(self, limit: int, max_attempts: int) -> List[LearningQueueItem]:
        stmt = (
            select(LearningQueueItemModel)
            .where(or_(
                LearningQueueItemModel.status == QueueStatus.PENDING.value,
                and_(
                    LearningQueueItemModel.status == QueueStatus.FAILED.value,
                    LearningQueueItemModel.attempts < max_attempts
                )
            ))
            .order_by(LearningQueueItemModel.created_at.asc(), LearningQueueItemModel.id.asc())
            .limit(limit)
        )
        async with self._session_factory() as session:
            return [_item_entity(m) for m in (await session.execute(stmt)).scalars().all()]

    async def list_stale(self, stale_before: datetime) -> List[LearningQueueItem]:
        stmt = select(LearningQueueItemModel).where(
            LearningQueueItemModel.status == QueueStatus.PROCESSING.value,
            LearningQueueItemModel.updated_at < stale_before
        )
        async with self._session_factory() as session:
            return [_item_entity(m) for m in (await session.execute(stmt)).scalars().all()]

    async def save(self, item: LearningQueueItem) -> LearningQueueItem:
        try:
            async with self._session_factory() as session:
                model = (await session.execute(
                    select(LearningQueueItemModel).where(LearningQueueItemModel.ticket_id == item.ticket_id)
                )).scalar_one_or_none()
                if model is None:
                    raise ResourceNotFoundException("LearningQueueItem", item.ticket_id)

                model.status = item.status.value
                model.attempts = item.attempts
                model.last_error = item.last_error
                model.updated_at = item.updated_at
                await session.flush()
                return _item_entity(model)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to save learning item {item.ticket_id}: {e}")

    async def list_items(self, status: Optional[QueueStatus] = None, limit: int = 100) -> List[LearningQueueItem]:
        stmt = select(LearningQueueItemModel)
        if status is not None:
            stmt = stmt.where(LearningQueueItemModel.status == status.value)
        stmt = stmt.order_by(LearningQueueItemModel.created_at.desc()).limit(limit)
        async with self._session_factory() as session:
            return [_item_entity(m) for m in (await session.execute(stmt)).scalars().all()]


class SQLAlchemyKnowledgeArticleRepository(IKnowledgeArticleRepository):
    """SQLAlchemy implementation of knowledge article storage."""

    def __init__(self, session_factory: SessionFactory = get_session_context):
        self._session_factory = session_factory

    async def get(self, article_id: int) -> Optional[KnowledgeArticle]:
        async with self._session_factory() as session:
            model = await session.get(KnowledgeArticleModel, article_id)
            return _article_entity(model) if model else None

    async def find_by_title(self, title: str) -> Optional[KnowledgeArticle]:
        stmt = (
            select(KnowledgeArticleModel)
            .where(func.lower(KnowledgeArticleModel.title) == title.strip().lower())
            .limit(1)
        )
        async with self._session_factory() as session:
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _article_entity(model) if model else None

    async def add(self, article: KnowledgeArticle) -> KnowledgeArticle:
        model = KnowledgeArticleModel(
            title=article.title,
            content=article.content,
            category=article.category,
            tags=list(article.tags),
            effectiveness_score=article.effectiveness_score,
            usage_count=article.usage_count,
            feedback_count=article.feedback_count,
            is_published=article.is_published,
            source=article.source.value,
            source_ticket_id=article.source_ticket_id,
            created_at=article.created_at,
            updated_at=article.updated_at
        )
        try:
            async with self._session_factory() as session:
                session.add(model)
                await session.flush()
                return _article_entity(model)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to save knowledge article: {e}")

    async def _locked_change(
        self,
        article_id: int,
        change: Callable[[KnowledgeArticle], None],
        columns: Tuple[str, ...]
    ) -> Optional[KnowledgeArticle]:
        stmt = select(KnowledgeArticleModel).where(KnowledgeArticleModel.id == article_id).with_for_update()
        try:
            async with self._session_factory() as session:
                model = (await session.execute(stmt)).scalar_one_or_none()
                if model is None:
                    return None

                article = _article_entity(model)
                change(article)
                for column in columns:
                    setattr(model, column, getattr(article, column))
                await session.flush()
                return article
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to update knowledge article {article_id}: {e}")

    async def publish(self, article_id: int, at: datetime) -> Optional[KnowledgeArticle]:
        return await self._locked_change(
            article_id, lambda a: a.publish(at), ("is_published", "updated_at")
        )

    async def revise(self, article_id: int, content: str, at: datetime) -> Optional[KnowledgeArticle]:
        return await self._locked_change(
            article_id, lambda a: a.revise(content, at), ("content", "updated_at")
        )

    async def list_articles(self, published: Optional[bool] = None, limit: int = 100) -> List[KnowledgeArticle]:
        stmt = select(KnowledgeArticleModel)
        if published is not None:
            stmt = stmt.where(KnowledgeArticleModel.is_published.is_(published))
        stmt = stmt.order_by(KnowledgeArticleModel.created_at.desc(), KnowledgeArticleModel.id.desc()).limit(limit)
        async with self._session_factory() as session:
            return [_article_entity(m) for m in (await session.execute(stmt)).scalars().all()]

    async def search(self, query: str, limit: int) -> List[KnowledgeArticle]:
        terms = KnowledgeMatcher.terms(query)
        if not terms:
            return []

        matches = [
            or_(KnowledgeArticleModel.title.ilike(f"%{t}%"), KnowledgeArticleModel.content.ilike(f"%{t}%"))
            for t in terms
        ]
        stmt = (
            select(KnowledgeArticleModel)
            .where(KnowledgeArticleModel.is_published.is_(True), or_(*matches))
            .limit(SEARCH_CANDIDATES)
        )
        try:
            async with self._session_factory() as session:
                models = {m.id: m for m in (await session.execute(stmt)).scalars().all()}
                ranked = KnowledgeMatcher.rank(query, [_article_entity(m) for m in models.values()], limit)
                for article in ranked:
                    models[article.id].usage_count = KnowledgeArticleModel.usage_count + 1
                    article.usage_count += 1
                await session.flush()
                return ranked
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to search knowledge articles: {e}")

    async def apply_rating(self, article_id: int, rating: int) -> Optional[KnowledgeArticle]:
        return await self._locked_change(
            article_id, lambda a: a.record_rating(rating), ("effectiveness_score", "feedback_count")
        )


class InMemoryLearningQueueRepository(ILearningQueueRepository):
    """Process-local learning queue."""

    def __init__(self):
        self._items: Dict[str, LearningQueueItem] = {}

    async def enqueue(self, item: LearningQueueItem) -> Tuple[LearningQueueItem, bool]:
        existing = self._items.get(item.ticket_id)
        if existing is not None:
            return dataclasses.replace(existing), False

        stored = dataclasses.replace(item, id=len(self._items) + 1)
        self._items[item.ticket_id] = stored
        return dataclasses.replace(stored), True

    async def get(self, ticket_id: str) -> Optional[LearningQueueItem]:
        item = self._items.get(ticket_id)
        return dataclasses.replace(item) if item else None

    async def select_ready(self, limit: int, max_attempts: int) -> List[LearningQueueItem]:
        ready = [i for i in self._items.values() if i.is_ready(max_attempts)]
        ready.sort(key=lambda i: (i.created_at, i.id))
        return [dataclasses.replace(i) for i in ready[:limit]]

    async def list_stale(self, stale_before: datetime) -> List[LearningQueueItem]:
        return [
            dataclasses.replace(i) for i in self._items.values()
            if i.status == QueueStatus.PROCESSING and i.updated_at < stale_before
        ]

    async def save(self, item: LearningQueueItem) -> LearningQueueItem:
        if item.ticket_id not in self._items:
            raise ResourceNotFoundException("LearningQueueItem", item.ticket_id)
        self._items[item.ticket_id] = dataclasses.replace(item)
        return dataclasses.replace(item)

    async def list_items(self, status: Optional[QueueStatus] = None, limit: int = 100) -> List[LearningQueueItem]:
        items = [i for i in self._items.values() if status is None or i.status == status]
        items.sort(key=lambda i: (i.created_at, i.id), reverse=True)
        return [dataclasses.replace(i) for i in items[:limit]]


class InMemoryKnowledgeArticleRepository(IKnowledgeArticleRepository):
    """Process-local knowledge article store."""

    def __init__(self):
        self._articles: Dict[int, KnowledgeArticle] = {}
        self._next_id = 1

    @staticmethod
    def _copy(article: KnowledgeArticle) -> KnowledgeArticle:
        return dataclasses.replace(article, tags=list(article.tags))

    async def get(self, article_id: int) -> Optional[KnowledgeArticle]:
        article = self._articles.get(article_id)
        return self._copy(article) if article else None

    async def find_by_title(self, title: str) -> Optional[KnowledgeArticle]:
        wanted = title.strip().lower()
        for article in self._articles.values():
            if article.title.strip().lower() == wanted:
                return self._copy(article)
        return None

    async def add(self, article: KnowledgeArticle) -> KnowledgeArticle:
        stored = dataclasses.replace(article, id=self._next_id, tags=list(article.tags))
        self._next_id += 1
        self._articles[stored.id] = stored
        return self._copy(stored)

    async def publish(self, article_id: int, at: datetime) -> Optional[KnowledgeArticle]:
        article = self._articles.get(article_id)
        if article is None:
            return None
        article.publish(at)
        return self._copy(article)

    async def revise(self, article_id: int, content: str, at: datetime) -> Optional[KnowledgeArticle]:
        article = self._articles.get(article_id)
        if article is None:
            return None
        article.revise(content, at)
        return self._copy(article)

    async def list_articles(self, published: Optional[bool] = None, limit: int = 100) -> List[KnowledgeArticle]:
        articles = [
            a for a in self._articles.values()
            if published is None or a.is_published is published
        ]
        articles.sort(key=lambda a: (a.created_at, a.id), reverse=True)
        return [self._copy(a) for a in articles[:limit]]

    async def search(self, query: str, limit: int) -> List[KnowledgeArticle]:
        published = [a for a in self._articles.values() if a.is_published]
        ranked = KnowledgeMatcher.rank(query, published, limit)
        for article in ranked:
            article.usage_count += 1
        return [self._copy(a) for a in ranked]

    async def apply_rating(self, article_id: int, rating: int) -> Optional[KnowledgeArticle]:
        article = self._articles.get(article_id)
        if article is None:
            return None
        article.record_rating(rating)
        return self._copy(article)
