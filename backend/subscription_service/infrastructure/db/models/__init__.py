"""
SQLModel ORM Models for the Subscription Service

Exports all database models for Alembic autogenerate and application use.
Import models here to register them with SQLModel.metadata.
"""

from subscription_service.infrastructure.db.models.base import (
    BaseModel,
    TimestampMixin,
    UUIDMixin,
)
from subscription_service.infrastructure.db.models.plan import PlanModel
from subscription_service.infrastructure.db.models.subscription import SubscriptionModel
from subscription_service.infrastructure.db.models.usage_record import UsageRecordModel
from subscription_service.infrastructure.db.models.processed_webhook_event import (
    ProcessedWebhookEventModel,
)


__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    # Catalog
    "PlanModel",
    # Lifecycle
    "SubscriptionModel",
    # Ledger
    "UsageRecordModel",
    # Webhooks
    "ProcessedWebhookEventModel",
]
