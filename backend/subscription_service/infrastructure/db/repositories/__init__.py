"""
Repository Layer for the Subscription Service

Exports all repository classes for the unit of work.
"""

from subscription_service.infrastructure.db.repositories.base_repository import (
    BaseRepository,
    IReadRepository,
)
from subscription_service.infrastructure.db.repositories.plan_repository import (
    PlanRepository,
)
from subscription_service.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
)
from subscription_service.infrastructure.db.repositories.usage_record_repository import (
    UsageRecordRepository,
)
from subscription_service.infrastructure.db.repositories.processed_webhook_event_repository import (
    ProcessedWebhookEventRepository,
)


__all__ = [
    # Base
    "BaseRepository",
    "IReadRepository",
    # Repositories
    "PlanRepository",
    "SubscriptionRepository",
    "UsageRecordRepository",
    "ProcessedWebhookEventRepository",
]
