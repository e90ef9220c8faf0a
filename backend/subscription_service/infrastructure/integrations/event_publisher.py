"""
Lifecycle Event Publisher

Builds LifecycleEvent envelopes and hands them to a transport. The HTTP
transport posts to EVENTS_WEBHOOK_URL; without one, events are only logged.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

import httpx

from subscription_service.config.settings import Settings, get_settings
from subscription_service.domain.events import (
    EventPayload,
    LifecycleEvent,
    PaymentFailed,
    PaymentRecovered,
    PlanChanged,
    SubscriptionActivated,
    SubscriptionCanceled,
    SubscriptionEnded,
    SubscriptionSuspended,
    TrialExpired,
    TrialExpiring,
    TrialStarted,
    trial_reminder_key,
)
from subscription_service.domain.subscription import Subscription
from subscription_service.infrastructure.exceptions import EventPublishError

logger = logging.getLogger(__name__)


# =============================================================================
# Transports
# =============================================================================

class EventTransport(ABC):
    """Delivers a serialized event somewhere."""

    @abstractmethod
    async def send(self, event: LifecycleEvent) -> None:
        pass


class LoggingEventTransport(EventTransport):
    """Fallback transport used when no webhook is configured."""

    async def send(self, event: LifecycleEvent) -> None:
        logger.info(
            f"Lifecycle event {event.event_type} org={event.organization_id} "
            f"subscription={event.subscription_id} payload={event.payload.model_dump_json()}"
        )


class HttpEventTransport(EventTransport):
    """POSTs events as JSON to a webhook endpoint."""

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    async def send(self, event: LifecycleEvent) -> None:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        if event.idempotency_key:
            headers["Idempotency-Key"] = event.idempotency_key

        body = event.model_dump(mode="json")
        try:
            if self._client is not None:
                response = await self._client.post(self.url, json=body, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.url, json=body, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise EventPublishError(
                f"Failed to deliver {event.event_type}: {e}",
                service="events-webhook",
                operation="send",
                original_error=e,
            )


def build_transport(settings: Optional[Settings] = None) -> EventTransport:
    settings = settings or get_settings()
    if settings.events_webhook_url:
        return HttpEventTransport(
            settings.events_webhook_url,
            api_key=settings.events_webhook_api_key,
            timeout=settings.integration_timeout_seconds,
        )
    return LoggingEventTransport()


# =============================================================================
# Publisher
# =============================================================================

class SubscriptionEventPublisher:
    """One publish method per lifecycle event kind."""

    def __init__(self, transport: Optional[EventTransport] = None):
        self.transport = transport or build_transport()

    async def publish(
        self,
        subscription: Subscription,
        payload: EventPayload,
        idempotency_key: Optional[str] = None,
    ) -> LifecycleEvent:
        event = LifecycleEvent.wrap(
            organization_id=subscription.organization_id,
            subscription_id=subscription.id,
            payload=payload,
            idempotency_key=idempotency_key,
        )
        await self.transport.send(event)
        logger.debug(f"Published {event.event_type} for organization {subscription.organization_id}")
        return event

    async def publish_trial_started(self, subscription: Subscription, owner_email: Optional[str] = None):
        return await self.publish(
            subscription,
            TrialStarted(trial_end_date=subscription.trial_end_date, owner_email=owner_email),
        )

    async def publish_trial_expiring(self, subscription: Subscription, days_left: int):
        return await self.publish(
            subscription,
            TrialExpiring(days_left=days_left, trial_end_date=subscription.trial_end_date),
            idempotency_key=trial_reminder_key(subscription.id, days_left, subscription.trial_end_date),
        )

    async def publish_trial_expired(self, subscription: Subscription):
        return await self.publish(subscription, TrialExpired())

    async def publish_subscription_activated(self, subscription: Subscription):
        return await self.publish(
            subscription,
            SubscriptionActivated(
                plan_code=subscription.plan.code,
                billing_period=subscription.billing_period,
                amount=subscription.amount,
                currency=subscription.currency,
            ),
        )

    async def publish_plan_changed(self, subscription: Subscription, previous_plan_code: str):
        return await self.publish(
            subscription,
            PlanChanged(
                previous_plan_code=previous_plan_code,
                plan_code=subscription.plan.code,
                billing_period=subscription.billing_period,
            ),
        )

    async def publish_subscription_canceled(
        self, subscription: Subscription, reason: Optional[str] = None, immediate: bool = False
    ):
        return await self.publish(subscription, SubscriptionCanceled(reason=reason, immediate=immediate))

    async def publish_subscription_suspended(self, subscription: Subscription, reason: str):
        return await self.publish(subscription, SubscriptionSuspended(reason=reason))

    async def publish_subscription_ended(self, subscription: Subscription, ended_at: Optional[datetime] = None):
        return await self.publish(subscription, SubscriptionEnded(ended_at=ended_at or subscription.ended_at))

    async def publish_payment_failed(self, subscription: Subscription, reason: Optional[str] = None):
        return await self.publish(
            subscription,
            PaymentFailed(provider_subscription_id=subscription.paypal_subscription_id, reason=reason),
        )

    async def publish_payment_recovered(self, subscription: Subscription):
        return await self.publish(
            subscription,
            PaymentRecovered(provider_subscription_id=subscription.paypal_subscription_id),
        )
