"""
Processed Webhook Event Database Model

Idempotency ledger for payment provider webhooks.
"""

from datetime import datetime

from sqlalchemy import DateTime, func
from sqlmodel import Field, SQLModel

from subscription_service.infrastructure.db.models.base import utcnow


class ProcessedWebhookEventModel(SQLModel, table=True):
    """Provider event ids that were already handled."""

    __tablename__ = "processed_webhook_events"

    event_id: str = Field(primary_key=True, max_length=255)
    event_type: str = Field(max_length=100, nullable=False)
    processed_at: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"server_default": func.now()},
        nullable=False,
    )
