"""
Feature Limit and Usage Routes

Called by product services before creating resources and whenever their
resource counts change.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from subscription_service.api.dependencies import (
    get_usage_service,
    verify_internal_api_key,
)
from subscription_service.domain.usage import (
    FeatureLimitValidationResponse,
    RecordUsageRequest,
    UsageLimitsResponse,
    UsageRecordResponse,
    ValidateFeatureLimitRequest,
)
from subscription_service.infrastructure.services.usage_service import UsageService


router = APIRouter(dependencies=[Depends(verify_internal_api_key)])


@router.post("/limits/validate", response_model=FeatureLimitValidationResponse)
async def validate_feature_limit(
    request: ValidateFeatureLimitRequest,
    enforce: bool = Query(default=False, description="Answer 403 instead of allowed=false"),
    locale: Optional[str] = Query(default=None, description="Message language (es, en)"),
    service: UsageService = Depends(get_usage_service),
):
    """Check whether `increment_by` more units of a feature may be created."""
    return await service.validate_feature_limit(request, enforce=enforce, locale=locale)


@router.get("/limits/{organization_id}", response_model=UsageLimitsResponse)
async def get_current_limits(
    organization_id: int,
    service: UsageService = Depends(get_usage_service),
):
    """Per-feature limits and latest usage for an organization."""
    return await service.get_current_limits(organization_id)


@router.post("/usage", response_model=UsageRecordResponse, status_code=status.HTTP_202_ACCEPTED)
async def record_usage(
    request: RecordUsageRequest,
    service: UsageService = Depends(get_usage_service),
):
    """Append the current count of a feature to the usage ledger."""
    record = await service.record_usage(
        request.organization_id, request.feature_code, request.current_count
    )
    return UsageRecordResponse.model_validate(record.model_dump())


@router.get("/usage/{organization_id}/{feature_code}", response_model=List[UsageRecordResponse])
async def get_usage_history(
    organization_id: int,
    feature_code: str,
    limit: int = Query(default=50, ge=1, le=500),
    service: UsageService = Depends(get_usage_service),
):
    """Most recent usage snapshots for one feature."""
    records = await service.get_usage_history(organization_id, feature_code, limit=limit)
    return [UsageRecordResponse.model_validate(record.model_dump()) for record in records]
