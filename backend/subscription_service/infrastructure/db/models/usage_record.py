"""
Usage Record Database Model

Append-only ledger of reported feature usage counts.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime, Index, Numeric
from sqlmodel import Field

from subscription_service.infrastructure.db.models.base import BaseModel, utcnow


class UsageRecordModel(BaseModel, table=True):
    """
    Usage snapshot for one (subscription, feature) at a point in time.

    Rows are inserted, never updated or deleted. The latest `recorded_at`
    wins when reading current usage.
    """

    __tablename__ = "usage_records"
    __table_args__ = (
        Index(
            "ix_usage_records_subscription_feature_recorded",
            "subscription_id",
            "feature_code",
            "recorded_at",
        ),
    )

    subscription_id: UUID = Field(foreign_key="subscriptions.id", nullable=False)
    feature_code: str = Field(max_length=50, nullable=False)
    usage_count: int = Field(default=0, nullable=False)
    plan_limit: Optional[int] = Field(default=None)
    usage_percentage: Decimal = Field(default=Decimal("0"), sa_type=Numeric(7, 2), nullable=False)
    recorded_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), nullable=False)
    limit_exceeded: bool = Field(default=False, nullable=False)
