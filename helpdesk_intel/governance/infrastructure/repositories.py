"""
Governance Infrastructure Repositories
======================================

Usage ledger implementations: SQLAlchemy (PostgreSQL) and in-memory.
"""

from datetime import datetime
from decimal import Decimal
from typing import List

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from helpdesk_intel.core import RepositoryException
from helpdesk_intel.governance.application import IUsageLedger
from helpdesk_intel.governance.domain import UsageRecord
from helpdesk_intel.governance.infrastructure.models import UsageRecordModel
from helpdesk_intel.infrastructure.database import SessionFactory, get_session_context


def _record_entity(model: UsageRecordModel) -> UsageRecord:
    return UsageRecord(
        model_id=model.model_id,
        input_tokens=model.input_tokens,
        output_tokens=model.output_tokens,
        cost=Decimal(model.cost),
        created_at=model.created_at,
        user_id=model.user_id,
        session_id=model.session_id,
        operation=model.operation
    )


class SQLAlchemyUsageLedger(IUsageLedger):
    """SQLAlchemy implementation of the usage ledger."""

    def __init__(self, session_factory: SessionFactory = get_session_context):
        self._session_factory = session_factory

    async def append(self, record: UsageRecord) -> None:
        try:
            async with self._session_factory() as session:
                session.add(UsageRecordModel(
                    user_id=record.user_id,
                    session_id=record.session_id,
                    operation=record.operation,
                    model_id=record.model_id,
                    input_tokens=record.input_tokens,
                    output_tokens=record.output_tokens,
                    total_tokens=record.total_tokens,
                    cost=record.cost,
                    created_at=record.created_at
                ))
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to append usage record: {e}")

    async def count_since(self, since: datetime) -> int:
        stmt = select(func.count(UsageRecordModel.id)).where(UsageRecordModel.created_at > since)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one()

    async def spend_since(self, since: datetime) -> Decimal:
        stmt = select(func.coalesce(func.sum(UsageRecordModel.cost), 0)).where(
            UsageRecordModel.created_at >= since
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return Decimal(result.scalar_one())

    async def list_between(self, start: datetime, end: datetime) -> List[UsageRecord]:
        stmt = (
            select(UsageRecordModel)
            .where(UsageRecordModel.created_at >= start, UsageRecordModel.created_at < end)
            .order_by(UsageRecordModel.created_at.asc(), UsageRecordModel.id.asc())
        )
        async with self._session_factory() as session:
            return [_record_entity(m) for m in (await session.execute(stmt)).scalars().all()]


class InMemoryUsageLedger(IUsageLedger):
    """Process-local ledger for development and single-process deployments."""

    def __init__(self):
        self._records: List[UsageRecord] = []

    async def append(self, record: UsageRecord) -> None:
        self._records.append(record)

    async def count_since(self, since: datetime) -> int:
        return sum(1 for r in self._records if r.created_at > since)

    async def spend_since(self, since: datetime) -> Decimal:
        return sum((r.cost for r in self._records if r.created_at >= since), Decimal(0))

    async def list_between(self, start: datetime, end: datetime) -> List[UsageRecord]:
        return sorted(
            (r for r in self._records if start <= r.created_at < end),
            key=lambda r: r.created_at
        )

    @property
    def records(self) -> List[UsageRecord]:
        return list(self._records)
