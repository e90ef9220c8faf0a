"""
Unit tests for the outbound integrations.

HTTP calls go through httpx.MockTransport so request bodies and headers
can be asserted without a network.
"""

import json
from datetime import datetime, timedelta

import httpx
import pytest

from conftest import NOW, PROFESSIONAL, make_subscription
from subscription_service.domain.events import LifecycleEvent
from subscription_service.domain.subscription import SubscriptionStatus
from subscription_service.infrastructure.exceptions import EventPublishError, ExternalSyncError
from subscription_service.infrastructure.integrations import (
    HttpEventTransport,
    LoggingEventTransport,
    OrganizationSyncClient,
    SubscriptionEventPublisher,
    build_transport,
)


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestOrganizationSyncClient:

    async def test_pushes_status(self, test_settings):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["method"] = request.method
            captured["url"] = str(request.url)
            captured["api_key"] = request.headers.get("X-API-Key")
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        settings = test_settings.model_copy(update={
            "organization_service_url": "http://identity.local/",
            "organization_service_api_key": "sync-key",
        })
        client = OrganizationSyncClient(settings, client=mock_client(handler))
        trial_end = NOW + timedelta(days=21)

        await client.push_status(5, SubscriptionStatus.TRIALING, trial_end)

        assert captured["method"] == "PUT"
        assert captured["url"] == "http://identity.local/api/organizations/subscription-status"
        assert captured["api_key"] == "sync-key"
        assert captured["body"] == {
            "organizationId": 5,
            "subscriptionStatus": "TRIALING",
            "trialEndsAt": trial_end.isoformat(),
        }

    async def test_error_status_raises(self, test_settings):
        settings = test_settings.model_copy(update={"organization_service_url": "http://identity.local"})
        client = OrganizationSyncClient(
            settings, client=mock_client(lambda request: httpx.Response(503))
        )

        with pytest.raises(ExternalSyncError) as exc_info:
            await client.push_status(5, SubscriptionStatus.SUSPENDED, None)

        assert exc_info.value.details["service"] == "organization-service"

    async def test_disabled_without_url(self, test_settings):
        def handler(request):
            raise AssertionError("no request expected")

        client = OrganizationSyncClient(test_settings, client=mock_client(handler))

        assert client.enabled is False
        await client.push_status(5, SubscriptionStatus.ACTIVE, None)


class TestHttpEventTransport:

    async def test_posts_event_json(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["headers"] = request.headers
            captured["body"] = json.loads(request.content)
            return httpx.Response(202)

        transport = HttpEventTransport(
            "http://events.local/hook", api_key="events-key", client=mock_client(handler)
        )
        publisher = SubscriptionEventPublisher(transport)
        subscription = make_subscription(3, SubscriptionStatus.TRIALING)

        event = await publisher.publish_trial_expiring(subscription, 3)

        body = captured["body"]
        assert body["event_type"] == "TRIAL_EXPIRING"
        assert body["organization_id"] == 3
        assert body["payload"]["kind"] == "trial_expiring"
        assert body["payload"]["days_left"] == 3
        sent_end = datetime.fromisoformat(body["payload"]["trial_end_date"].replace("Z", "+00:00"))
        assert sent_end == subscription.trial_end_date
        assert captured["headers"]["X-API-Key"] == "events-key"
        assert captured["headers"]["Idempotency-Key"] == event.idempotency_key

    async def test_failure_raises_publish_error(self):
        transport = HttpEventTransport(
            "http://events.local/hook", client=mock_client(lambda request: httpx.Response(500))
        )
        publisher = SubscriptionEventPublisher(transport)

        with pytest.raises(EventPublishError):
            await publisher.publish_trial_expired(make_subscription())

    def test_build_transport(self, test_settings):
        assert isinstance(build_transport(test_settings), LoggingEventTransport)

        configured = test_settings.model_copy(update={"events_webhook_url": "http://events.local/hook"})
        assert isinstance(build_transport(configured), HttpEventTransport)


class TestLifecycleEvent:

    async def test_payload_round_trips_by_kind(self, transport):
        publisher = SubscriptionEventPublisher(transport)
        subscription = make_subscription(2, SubscriptionStatus.ACTIVE, plan=PROFESSIONAL)

        await publisher.publish_plan_changed(subscription, "STARTER")

        parsed = LifecycleEvent.model_validate_json(transport.events[0].model_dump_json())
        assert parsed.payload.kind == "plan_changed"
        assert parsed.payload.previous_plan_code == "STARTER"
        assert parsed.event_type == "PLAN_CHANGED"

    async def test_only_reminders_carry_idempotency_keys(self, transport):
        publisher = SubscriptionEventPublisher(transport)
        subscription = make_subscription()

        await publisher.publish_trial_started(subscription)
        await publisher.publish_trial_expiring(subscription, 7)

        assert transport.events[0].idempotency_key is None
        assert transport.events[1].idempotency_key.startswith("trial_expiring:")
