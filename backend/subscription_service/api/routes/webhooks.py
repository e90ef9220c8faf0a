"""
PayPal Webhook Handler

Dispatches PayPal subscription and payment events to the lifecycle manager.
Signature verification happens at the edge; here the shared webhook token
is checked and events are processed idempotently (DB-backed, survives restarts).

Handled Events:
- BILLING.SUBSCRIPTION.ACTIVATED: Confirmation only (activation comes from checkout)
- BILLING.SUBSCRIPTION.CANCELLED: Provider-side cancellation
- PAYMENT.SALE.COMPLETED: Payment recovered for a past-due subscription
- PAYMENT.SALE.DENIED: Payment failed, subscription becomes past due
"""

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from subscription_service.api.dependencies import get_lifecycle_manager, get_uow_factory
from subscription_service.config.settings import get_settings
from subscription_service.infrastructure.db.unit_of_work import UnitOfWorkFactory
from subscription_service.infrastructure.exceptions import PaymentProcessingError
from subscription_service.infrastructure.services.lifecycle_service import (
    SubscriptionLifecycleManager,
)


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Verification
# =============================================================================

async def verify_webhook_token(
    x_webhook_token: Optional[str] = Header(default=None, description="Shared PayPal webhook token"),
) -> None:
    expected = get_settings().paypal_webhook_token
    if not expected:
        logger.error("PAYPAL_WEBHOOK_TOKEN environment variable not set")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook verification not configured",
        )
    if not x_webhook_token or not secrets.compare_digest(x_webhook_token, expected):
        logger.warning("Webhook received with invalid token")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook token",
        )


# =============================================================================
# Webhook Endpoint
# =============================================================================

@router.post("/webhooks/paypal", dependencies=[Depends(verify_webhook_token)])
async def paypal_webhook(
    request: Request,
    manager: SubscriptionLifecycleManager = Depends(get_lifecycle_manager),
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
):
    """
    Handle PayPal webhook events.

    Returns 200 OK to acknowledge receipt (PayPal retries on failure).
    """
    try:
        event = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload")

    event_id = event.get("id")
    event_type = event.get("event_type")
    resource = event.get("resource") or {}

    if not event_id or not event_type:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing event id or type")

    # Idempotency check
    async with uow_factory() as uow:
        already_processed = await uow.webhook_events.is_processed(event_id)
    if already_processed:
        logger.info(f"Event {event_id} already processed, skipping")
        return {"status": "already_processed"}

    logger.info(f"Processing webhook event: {event_type} ({event_id})")

    # Route to appropriate handler
    if event_type == "BILLING.SUBSCRIPTION.ACTIVATED":
        await handle_subscription_activated(resource)

    elif event_type == "BILLING.SUBSCRIPTION.CANCELLED":
        await handle_subscription_cancelled(resource, manager)

    elif event_type == "PAYMENT.SALE.COMPLETED":
        await handle_payment_completed(resource, manager)

    elif event_type == "PAYMENT.SALE.DENIED":
        await handle_payment_denied(resource, manager)

    else:
        logger.debug(f"Unhandled event type: {event_type}")

    # Mark as processed (DB-backed)
    async with uow_factory() as uow:
        await uow.webhook_events.mark_processed(event_id, event_type)

    return {"status": "success"}


# =============================================================================
# Event Handlers
# =============================================================================

async def _resolve_organization(
    paypal_subscription_id: Optional[str], manager: SubscriptionLifecycleManager
) -> Optional[int]:
    if not paypal_subscription_id:
        raise PaymentProcessingError("Webhook resource has no PayPal subscription id")

    subscription = await manager.find_by_provider_subscription_id(paypal_subscription_id)
    if subscription is None:
        logger.warning(f"No subscription linked to PayPal subscription {paypal_subscription_id}")
        return None
    return subscription.organization_id


async def handle_subscription_activated(resource: dict) -> None:
    """Activation itself is driven by the checkout callback."""
    logger.info(f"PayPal confirmed activation of {resource.get('id')}")


async def handle_subscription_cancelled(resource: dict, manager: SubscriptionLifecycleManager) -> None:
    organization_id = await _resolve_organization(resource.get("id"), manager)
    if organization_id is not None:
        await manager.cancel_by_provider(organization_id)


async def handle_payment_completed(resource: dict, manager: SubscriptionLifecycleManager) -> None:
    organization_id = await _resolve_organization(resource.get("billing_agreement_id"), manager)
    if organization_id is not None:
        await manager.recover_payment(organization_id)


async def handle_payment_denied(resource: dict, manager: SubscriptionLifecycleManager) -> None:
    organization_id = await _resolve_organization(resource.get("billing_agreement_id"), manager)
    if organization_id is not None:
        reason = resource.get("reason_code") or resource.get("state") or "payment_denied"
        await manager.mark_past_due(organization_id, reason=reason)
