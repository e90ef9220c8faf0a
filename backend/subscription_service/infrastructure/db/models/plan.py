"""
Plan Database Model

SQLModel table for the plan catalog. Rows are written by the seed script
and only read by the lifecycle.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import Numeric
from sqlmodel import Field

from subscription_service.infrastructure.db.models.base import BaseModel


class PlanModel(BaseModel, table=True):
    """
    Plan table. Limit columns are nullable; NULL means unlimited.

    Maps to the 'plans' table in PostgreSQL.
    """

    __tablename__ = "plans"

    code: str = Field(max_length=50, unique=True, index=True, nullable=False)
    name: str = Field(max_length=100, nullable=False)
    tier: str = Field(max_length=20, index=True, nullable=False)
    description: Optional[str] = Field(default=None)

    # Pricing
    price_monthly: Decimal = Field(default=Decimal("0"), sa_type=Numeric(12, 2), nullable=False)
    price_annual: Optional[Decimal] = Field(default=None, sa_type=Numeric(12, 2))
    currency: str = Field(default="COP", max_length=3)

    # Feature limits
    max_contacts: Optional[int] = Field(default=None)
    max_users: Optional[int] = Field(default=None)
    max_pipelines: Optional[int] = Field(default=None)
    max_deals: Optional[int] = Field(default=None)
    max_storage_gb: Optional[int] = Field(default=None)

    # Payment provider plan ids
    paypal_plan_id_monthly: Optional[str] = Field(default=None, max_length=100)
    paypal_plan_id_annual: Optional[str] = Field(default=None, max_length=100)

    # Display
    active: bool = Field(default=True)
    is_featured: bool = Field(default=False)
    sort_order: int = Field(default=0)
