"""
Subscription Database Model

SQLModel table for subscription data persistence. One row per organization.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, Numeric
from sqlmodel import Field

from subscription_service.infrastructure.db.models.base import BaseModel


class SubscriptionModel(BaseModel, table=True):
    """
    Subscription table for storing organization subscription state.

    Maps to the 'subscriptions' table in PostgreSQL.
    """

    __tablename__ = "subscriptions"

    organization_id: int = Field(sa_type=BigInteger, unique=True, index=True, nullable=False)
    plan_id: UUID = Field(foreign_key="plans.id", index=True, nullable=False)

    status: str = Field(max_length=30, index=True, nullable=False)
    billing_period: str = Field(default="MONTHLY", max_length=20)

    # Trial window
    trial_start_date: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    trial_end_date: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True), index=True)
    is_trial_used: bool = Field(default=False, nullable=False)

    # PayPal linkage
    paypal_subscription_id: Optional[str] = Field(default=None, max_length=100, index=True)
    paypal_payer_id: Optional[str] = Field(default=None, max_length=100)
    paypal_agreement_id: Optional[str] = Field(default=None, max_length=100)
    paypal_email: Optional[str] = Field(default=None, max_length=255)

    # Billing window
    current_period_start: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    current_period_end: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    next_billing_date: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    canceled_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    ended_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    status_changed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    amount: Optional[Decimal] = Field(default=None, sa_type=Numeric(12, 2))
    currency: str = Field(default="COP", max_length=3)
