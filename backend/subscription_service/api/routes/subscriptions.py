"""
Subscription API Routes

REST API endpoints for the subscription lifecycle. Onboarding and payment
callbacks come from internal services (X-API-Key); plan changes and
cancellations come from the organization owner (JWT).
"""

import logging

from fastapi import APIRouter, Depends, status

from subscription_service.api.dependencies import (
    Principal,
    ensure_can_manage,
    ensure_can_view,
    get_current_principal,
    get_lifecycle_manager,
    verify_internal_api_key,
)
from subscription_service.domain.subscription import (
    ActivateSubscriptionRequest,
    CancelSubscriptionRequest,
    StartTrialRequest,
    SubscriptionResponse,
    UpgradePlanRequest,
)
from subscription_service.infrastructure.services.lifecycle_service import (
    SubscriptionLifecycleManager,
)


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Internal Endpoints
# =============================================================================

@router.post(
    "/subscriptions/start-trial",
    response_model=SubscriptionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_internal_api_key)],
)
async def start_trial(
    request: StartTrialRequest,
    manager: SubscriptionLifecycleManager = Depends(get_lifecycle_manager),
):
    """Provision the one-time trial when an organization onboards."""
    subscription = await manager.start_trial(request.organization_id, owner_email=request.owner_email)
    return SubscriptionResponse.from_subscription(subscription, manager.clock())


@router.post(
    "/subscriptions/activate",
    response_model=SubscriptionResponse,
    dependencies=[Depends(verify_internal_api_key)],
)
async def activate_subscription(
    request: ActivateSubscriptionRequest,
    manager: SubscriptionLifecycleManager = Depends(get_lifecycle_manager),
):
    """Payment success callback from the checkout flow."""
    subscription = await manager.activate(
        request.organization_id,
        request.plan_code,
        request.billing_period,
        paypal_subscription_id=request.paypal_subscription_id,
        paypal_payer_id=request.paypal_payer_id,
        paypal_agreement_id=request.paypal_agreement_id,
        paypal_email=request.paypal_email,
    )
    return SubscriptionResponse.from_subscription(subscription, manager.clock())


# =============================================================================
# Owner Endpoints
# =============================================================================

@router.get("/subscriptions/organization/{organization_id}", response_model=SubscriptionResponse)
async def get_subscription(
    organization_id: int,
    principal: Principal = Depends(get_current_principal),
    manager: SubscriptionLifecycleManager = Depends(get_lifecycle_manager),
):
    """Get an organization's subscription with its derived flags."""
    ensure_can_view(principal, organization_id)
    subscription = await manager.get_by_organization_id(organization_id)
    return SubscriptionResponse.from_subscription(subscription, manager.clock())


@router.post("/subscriptions/upgrade", response_model=SubscriptionResponse)
async def upgrade_plan(
    request: UpgradePlanRequest,
    principal: Principal = Depends(get_current_principal),
    manager: SubscriptionLifecycleManager = Depends(get_lifecycle_manager),
):
    """Move to an equal or higher plan. Downgrades are rejected with 409."""
    ensure_can_manage(principal, request.organization_id)
    subscription = await manager.upgrade_plan(
        request.organization_id, request.plan_code, request.billing_period
    )
    return SubscriptionResponse.from_subscription(subscription, manager.clock())


@router.post("/subscriptions/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    request: CancelSubscriptionRequest,
    principal: Principal = Depends(get_current_principal),
    manager: SubscriptionLifecycleManager = Depends(get_lifecycle_manager),
):
    """Cancel immediately or at the end of the current period."""
    ensure_can_manage(principal, request.organization_id)
    logger.info(f"Cancel requested by {principal.user_id} for organization {request.organization_id}")
    subscription = await manager.cancel(
        request.organization_id, immediate=request.immediate, reason=request.reason
    )
    return SubscriptionResponse.from_subscription(subscription, manager.clock())
