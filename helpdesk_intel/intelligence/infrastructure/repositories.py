"""
Intelligence Infrastructure Repositories
========================================

Complexity score and auto-response storage: SQLAlchemy (PostgreSQL) and
in-memory.
"""

import dataclasses
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from helpdesk_intel.core import RepositoryException, ResourceNotFoundException
from helpdesk_intel.infrastructure.database import SessionFactory, get_session_context
from helpdesk_intel.intelligence.application.services import (
    IAutoResponseRepository,
    IComplexityScoreRepository,
    ResponseStats,
)
from helpdesk_intel.intelligence.domain import AutoResponse, ComplexityScore
from helpdesk_intel.intelligence.infrastructure.models import AutoResponseModel, ComplexityScoreModel


def _score_entity(model: ComplexityScoreModel) -> ComplexityScore:
    return ComplexityScore(
        id=model.id,
        ticket_id=model.ticket_id,
        score=model.score,
        factors=dict(model.factors or {}),
        note=model.note,
        created_at=model.created_at
    )


def _response_entity(model: AutoResponseModel) -> AutoResponse:
    return AutoResponse(
        id=model.id,
        ticket_id=model.ticket_id,
        response_text=model.response_text,
        confidence_score=model.confidence_score,
        suggested_article_ids=list(model.suggested_article_ids or []),
        was_applied=model.was_applied,
        was_helpful=model.was_helpful,
        created_at=model.created_at,
        applied_at=model.applied_at
    )


class SQLAlchemyComplexityScoreRepository(IComplexityScoreRepository):
    """SQLAlchemy implementation of complexity score storage."""

    def __init__(self, session_factory: SessionFactory = get_session_context):
        self._session_factory = session_factory

    async def save(self, score: ComplexityScore) -> ComplexityScore:
        try:
            async with self._session_factory() as session:
                model = ComplexityScoreModel(
                    ticket_id=score.ticket_id,
                    score=score.score,
                    factors=dict(score.factors),
                    note=score.note,
                    created_at=score.created_at
                )
                session.add(model)
                await session.flush()
                return _score_entity(model)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to save complexity score: {e}")

    async def get_latest(self, ticket_id: str) -> Optional[ComplexityScore]:
        stmt = (
            select(ComplexityScoreModel)
            .where(ComplexityScoreModel.ticket_id == ticket_id)
            .order_by(ComplexityScoreModel.created_at.desc(), ComplexityScoreModel.id.desc())
            .limit(1)
        )
        async with self._session_factory() as session:
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _score_entity(model) if model else None


class SQLAlchemyAutoResponseRepository(IAutoResponseRepository):
    """SQLAlchemy implementation of auto-response storage."""

    def __init__(self, session_factory: SessionFactory = get_session_context):
        self._session_factory = session_factory

    async def get_by_id(self, response_id: int) -> Optional[AutoResponse]:
        async with self._session_factory() as session:
            model = await session.get(AutoResponseModel, response_id)
            return _response_entity(model) if model else None

    async def _latest(self, ticket_id: str, applied: bool) -> Optional[AutoResponse]:
        stmt = (
            select(AutoResponseModel)
            .where(AutoResponseModel.ticket_id == ticket_id, AutoResponseModel.was_applied.is_(applied))
            .order_by(AutoResponseModel.id.desc())
            .limit(1)
        )
        async with self._session_factory() as session:
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _response_entity(model) if model else None

    async def get_active(self, ticket_id: str) -> Optional[AutoResponse]:
        return await self._latest(ticket_id, applied=False)

    async def get_applied(self, ticket_id: str) -> Optional[AutoResponse]:
        return await self._latest(ticket_id, applied=True)

    async def add(self, response: AutoResponse) -> AutoResponse:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(AutoResponseModel).where(
                        AutoResponseModel.ticket_id == response.ticket_id,
                        AutoResponseModel.was_applied.is_(False)
                    )
                )
                model = AutoResponseModel(
                    ticket_id=response.ticket_id,
                    response_text=response.response_text,
                    confidence_score=response.confidence_score,
                    suggested_article_ids=list(response.suggested_article_ids),
                    was_applied=response.was_applied,
                    was_helpful=response.was_helpful,
                    created_at=response.created_at,
                    applied_at=response.applied_at
                )
                session.add(model)
                await session.flush()
                return _response_entity(model)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to save auto-response: {e}")

    async def mark_applied(self, response_id: int, at: datetime) -> AutoResponse:
        stmt = select(AutoResponseModel).where(AutoResponseModel.id == response_id).with_for_update()
        try:
            async with self._session_factory() as session:
                model = (await session.execute(stmt)).scalar_one_or_none()
                if model is None:
                    raise ResourceNotFoundException("AutoResponse", str(response_id))

                response = _response_entity(model)
                response.mark_applied(at)
                model.was_applied = response.was_applied
                model.applied_at = response.applied_at
                await session.flush()
                return response
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to apply auto-response {response_id}: {e}")

    async def mark_helpful(self, response_id: int, helpful: bool) -> Optional[AutoResponse]:
        stmt = (
            update(AutoResponseModel)
            .where(AutoResponseModel.id == response_id)
            .values(was_helpful=helpful)
            .returning(AutoResponseModel)
        )
        try:
            async with self._session_factory() as session:
                model = (await session.execute(stmt)).scalar_one_or_none()
                return _response_entity(model) if model else None
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to record feedback on auto-response {response_id}: {e}")

    async def stats(self) -> ResponseStats:
        stmt = select(
            func.count(AutoResponseModel.id),
            func.coalesce(func.sum(case((AutoResponseModel.was_applied.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(case((AutoResponseModel.was_helpful.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(case((AutoResponseModel.was_helpful.is_(False), 1), else_=0)), 0),
            func.coalesce(func.avg(AutoResponseModel.confidence_score), 0.0),
        )
        async with self._session_factory() as session:
            total, applied, helpful, not_helpful, avg_conf = (await session.execute(stmt)).one()
            return ResponseStats(
                total=int(total),
                applied=int(applied),
                helpful=int(helpful),
                not_helpful=int(not_helpful),
                average_confidence=float(avg_conf)
            )


class InMemoryComplexityScoreRepository(IComplexityScoreRepository):
    """Process-local complexity score store."""

    def __init__(self):
        self._scores: List[ComplexityScore] = []

    async def save(self, score: ComplexityScore) -> ComplexityScore:
        stored = dataclasses.replace(score, id=len(self._scores) + 1, factors=dict(score.factors))
        self._scores.append(stored)
        return dataclasses.replace(stored)

    async def get_latest(self, ticket_id: str) -> Optional[ComplexityScore]:
        for score in reversed(self._scores):
            if score.ticket_id == ticket_id:
                return dataclasses.replace(score)
        return None

    @property
    def scores(self) -> List[ComplexityScore]:
        return list(self._scores)


class InMemoryAutoResponseRepository(IAutoResponseRepository):
    """Process-local auto-response store."""

    def __init__(self):
        self._responses: Dict[int, AutoResponse] = {}
        self._next_id = 1

    @staticmethod
    def _copy(response: AutoResponse) -> AutoResponse:
        return dataclasses.replace(response, suggested_article_ids=list(response.suggested_article_ids))

    async def get_by_id(self, response_id: int) -> Optional[AutoResponse]:
        response = self._responses.get(response_id)
        return self._copy(response) if response else None

    async def _latest(self, ticket_id: str, applied: bool) -> Optional[AutoResponse]:
        matches = [
            r for r in self._responses.values()
            if r.ticket_id == ticket_id and r.was_applied is applied
        ]
        return self._copy(max(matches, key=lambda r: r.id)) if matches else None

    async def get_active(self, ticket_id: str) -> Optional[AutoResponse]:
        return await self._latest(ticket_id, applied=False)

    async def get_applied(self, ticket_id: str) -> Optional[AutoResponse]:
        return await self._latest(ticket_id, applied=True)

    async def add(self, response: AutoResponse) -> AutoResponse:
        stale = [
            rid for rid, r in self._responses.items()
            if r.ticket_id == response.ticket_id and not r.was_applied
        ]
        for rid in stale:
            del self._responses[rid]

        stored = dataclasses.replace(response, id=self._next_id)
        self._next_id += 1
        self._responses[stored.id] = self._copy(stored)
        return self._copy(stored)

    async def mark_applied(self, response_id: int, at: datetime) -> AutoResponse:
        response = self._responses.get(response_id)
        if response is None:
            raise ResourceNotFoundException("AutoResponse", str(response_id))
        response.mark_applied(at)
        return self._copy(response)

    async def mark_helpful(self, response_id: int, helpful: bool) -> Optional[AutoResponse]:
        response = self._responses.get(response_id)
        if response is None:
            return None
        response.mark_helpful(helpful)
        return self._copy(response)

    async def stats(self) -> ResponseStats:
        responses = list(self._responses.values())
        total = len(responses)
        return ResponseStats(
            total=total,
            applied=sum(1 for r in responses if r.was_applied),
            helpful=sum(1 for r in responses if r.was_helpful is True),
            not_helpful=sum(1 for r in responses if r.was_helpful is False),
            average_confidence=(sum(r.confidence_score for r in responses) / total) if total else 0.0
        )
