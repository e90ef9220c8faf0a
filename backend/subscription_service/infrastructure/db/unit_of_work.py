"""
Unit of Work

One session and one transaction per lifecycle operation. Repositories
opened here share the transaction, so row locks taken with
`for_update=True` hold until the block exits.
"""

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from subscription_service.infrastructure.db.database import get_db_manager
from subscription_service.infrastructure.db.repositories import (
    PlanRepository,
    ProcessedWebhookEventRepository,
    SubscriptionRepository,
    UsageRecordRepository,
)


class SubscriptionUnitOfWork:
    """
    Async context manager committing on success and rolling back on error.

    Usage:
        async with SubscriptionUnitOfWork() as uow:
            subscription = await uow.subscriptions.get_by_organization_id(7, for_update=True)
            ...
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory
        self.session: Optional[AsyncSession] = None

    async def __aenter__(self) -> "SubscriptionUnitOfWork":
        factory = self._session_factory or get_db_manager().session_factory
        self.session = factory()
        await self.session.__aenter__()
        self.plans = PlanRepository(self.session)
        self.subscriptions = SubscriptionRepository(self.session)
        self.usage = UsageRecordRepository(self.session)
        self.webhook_events = ProcessedWebhookEventRepository(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc:
                await self.session.rollback()
            else:
                await self.session.commit()
        finally:
            await self.session.__aexit__(exc_type, exc, tb)
            self.session = None


UnitOfWorkFactory = Callable[[], SubscriptionUnitOfWork]


def get_unit_of_work() -> SubscriptionUnitOfWork:
    """Default factory bound to the process-wide database manager."""
    return SubscriptionUnitOfWork()
