"""
Processed Webhook Event Repository

Idempotency ledger for provider webhooks.
"""

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from subscription_service.infrastructure.db.models.processed_webhook_event import (
    ProcessedWebhookEventModel,
)


class ProcessedWebhookEventRepository:
    """Tracks provider event ids that were already handled."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def is_processed(self, event_id: str) -> bool:
        return await self._session.get(ProcessedWebhookEventModel, event_id) is not None

    async def mark_processed(self, event_id: str, event_type: str) -> None:
        stmt = (
            pg_insert(ProcessedWebhookEventModel)
            .values(event_id=event_id, event_type=event_type)
            .on_conflict_do_nothing(index_elements=["event_id"])
        )
        await self._session.execute(stmt)
