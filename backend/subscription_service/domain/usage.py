"""
Usage Domain Models

Usage Ledger entries and the DTOs of the feature-limit API.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class UsageRecord(BaseModel):
    """Append-only snapshot of a feature count."""
    id: Optional[UUID] = None
    subscription_id: UUID
    feature_code: str
    usage_count: int
    plan_limit: Optional[int] = None
    usage_percentage: Decimal = Decimal("0.00")
    recorded_at: datetime
    limit_exceeded: bool = False

    class Config:
        from_attributes = True


# =============================================================================
# Request/Response DTOs
# =============================================================================

class RecordUsageRequest(BaseModel):
    """Resource count reported by the owning service."""
    organization_id: int = Field(..., gt=0)
    feature_code: str = Field(..., min_length=1, max_length=50)
    current_count: int = Field(..., ge=0, description="Units currently in use")


class ValidateFeatureLimitRequest(BaseModel):
    """Asked before creating new units of a feature."""
    organization_id: int = Field(..., gt=0)
    feature_code: str = Field(..., min_length=1, max_length=50)
    current_count: Optional[int] = Field(
        default=None,
        ge=0,
        description="Units in use; the latest ledger value is used when omitted",
    )
    increment_by: int = Field(default=1, ge=0, description="Units about to be created")


class FeatureLimitValidationResponse(BaseModel):
    """Allow/deny answer with upgrade guidance."""
    allowed: bool
    feature_code: str
    current_usage: Optional[int] = None
    max_limit: Optional[int] = None
    remaining: Optional[int] = None
    usage_percentage: Decimal = Decimal("0.00")
    soft_warning: bool = False
    reason: Optional[str] = None
    upgrade_message: Optional[str] = None
    recommended_plan: Optional[str] = None


class FeatureUsage(BaseModel):
    """Usage bar data for one feature."""
    feature_code: str
    max_limit: Optional[int] = Field(default=None, description="None means unlimited")
    current: int = 0
    remaining: Optional[int] = None
    can_create: bool = True


class UsageLimitsResponse(BaseModel):
    """Current limits of an organization across all limited features."""
    organization_id: int
    plan_code: str
    plan_name: str
    is_read_only: bool
    features: list[FeatureUsage]


class UsageRecordResponse(BaseModel):
    """Ledger entry as returned by the history endpoint."""
    feature_code: str
    usage_count: int
    plan_limit: Optional[int] = None
    usage_percentage: Decimal
    recorded_at: datetime
    limit_exceeded: bool
