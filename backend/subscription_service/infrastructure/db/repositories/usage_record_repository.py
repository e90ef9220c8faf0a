"""
Usage Record Repository

Append-only access to the Usage Ledger.
"""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from subscription_service.domain.usage import UsageRecord
from subscription_service.infrastructure.db.models.usage_record import UsageRecordModel
from subscription_service.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)


class UsageRecordRepository(BaseRepository[UsageRecordModel]):
    """
    Repository for usage snapshots.

    Only inserts and ordered reads; rows are never updated or deleted.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(UsageRecordModel, session)

    async def append(self, record: UsageRecord) -> UsageRecord:
        """
        Append a usage snapshot.

        Args:
            record: Snapshot to store

        Returns:
            Stored snapshot with its id
        """
        model = await self._insert(
            UsageRecordModel(**record.model_dump(exclude={"id"}))
        )
        return UsageRecord.model_validate(model)

    async def get_latest(self, subscription_id: UUID, feature_code: str) -> Optional[UsageRecord]:
        """Most recent snapshot for a (subscription, feature) pair."""
        stmt = (
            select(UsageRecordModel)
            .where(
                UsageRecordModel.subscription_id == subscription_id,
                UsageRecordModel.feature_code == feature_code,
            )
            .order_by(UsageRecordModel.recorded_at.desc(), UsageRecordModel.created_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return UsageRecord.model_validate(model) if model else None

    async def get_history(
        self, subscription_id: UUID, feature_code: str, limit: int = 50
    ) -> List[UsageRecord]:
        """Most recent snapshots first."""
        stmt = (
            select(UsageRecordModel)
            .where(
                UsageRecordModel.subscription_id == subscription_id,
                UsageRecordModel.feature_code == feature_code,
            )
            .order_by(UsageRecordModel.recorded_at.desc(), UsageRecordModel.created_at.desc())
            .limit(limit)
        )
        return [UsageRecord.model_validate(model) for model in await self._list(stmt)]
