"""
Integration Tests for Webhooks (PayPal)

Verifies:
- Token verification failure (400/503)
- Event routing to lifecycle transitions
- Idempotency (prevent double processing)
"""

from unittest.mock import patch

import pytest

from conftest import NOW, WEBHOOK_TOKEN, make_subscription
from subscription_service.domain.subscription import SubscriptionStatus


HEADERS = {"X-Webhook-Token": WEBHOOK_TOKEN}


def paypal_event(event_id: str, event_type: str, **resource) -> dict:
    return {"id": event_id, "event_type": event_type, "resource": resource}


class TestPayPalWebhookVerification:

    def test_missing_token(self, client):
        response = client.post("/api/webhooks/paypal", json=paypal_event("WH-1", "PAYMENT.SALE.DENIED"))

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid webhook token"

    def test_wrong_token(self, client):
        response = client.post(
            "/api/webhooks/paypal",
            json=paypal_event("WH-1", "PAYMENT.SALE.DENIED"),
            headers={"X-Webhook-Token": "forged"},
        )

        assert response.status_code == 400

    def test_unconfigured_token(self, client, test_settings):
        unconfigured = test_settings.model_copy(update={"paypal_webhook_token": None})
        with patch("subscription_service.api.routes.webhooks.get_settings", return_value=unconfigured):
            response = client.post(
                "/api/webhooks/paypal",
                json=paypal_event("WH-1", "PAYMENT.SALE.DENIED"),
                headers=HEADERS,
            )

        assert response.status_code == 503

    def test_invalid_json(self, client):
        response = client.post(
            "/api/webhooks/paypal",
            content=b"not json",
            headers={**HEADERS, "Content-Type": "application/json"},
        )

        assert response.status_code == 400

    def test_missing_event_type(self, client):
        response = client.post("/api/webhooks/paypal", json={"id": "WH-1"}, headers=HEADERS)

        assert response.status_code == 400


class TestPayPalWebhookRouting:

    @pytest.fixture
    def active(self, store):
        return store.put(make_subscription(
            1, SubscriptionStatus.ACTIVE, paypal_subscription_id="I-SUB1", current_period_end=NOW,
        ))

    def test_payment_denied_marks_past_due(self, client, store, active, transport):
        response = client.post(
            "/api/webhooks/paypal",
            json=paypal_event(
                "WH-DENIED", "PAYMENT.SALE.DENIED",
                billing_agreement_id="I-SUB1", reason_code="INSUFFICIENT_FUNDS",
            ),
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json() == {"status": "success"}
        assert store.get(1).status == SubscriptionStatus.PAST_DUE
        assert transport.events[-1].payload.kind == "payment_failed"
        assert transport.events[-1].payload.reason == "INSUFFICIENT_FUNDS"
        assert "WH-DENIED" in store.webhook_events

    def test_payment_completed_recovers(self, client, store, active):
        store.get(1).status = SubscriptionStatus.PAST_DUE

        response = client.post(
            "/api/webhooks/paypal",
            json=paypal_event("WH-OK", "PAYMENT.SALE.COMPLETED", billing_agreement_id="I-SUB1"),
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert store.get(1).status == SubscriptionStatus.ACTIVE

    def test_subscription_cancelled(self, client, store, active, transport):
        response = client.post(
            "/api/webhooks/paypal",
            json=paypal_event("WH-CXL", "BILLING.SUBSCRIPTION.CANCELLED", id="I-SUB1"),
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert store.get(1).status == SubscriptionStatus.CANCELED
        assert store.get(1).ended_at is None
        assert transport.events[-1].payload.reason == "provider_cancelled"

    def test_activation_is_confirmation_only(self, client, store, active, transport):
        response = client.post(
            "/api/webhooks/paypal",
            json=paypal_event("WH-ACT", "BILLING.SUBSCRIPTION.ACTIVATED", id="I-SUB1"),
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert store.get(1).status == SubscriptionStatus.ACTIVE
        assert transport.events == []

    def test_unknown_provider_subscription_is_acknowledged(self, client, store):
        response = client.post(
            "/api/webhooks/paypal",
            json=paypal_event("WH-GHOST", "PAYMENT.SALE.DENIED", billing_agreement_id="I-NOPE"),
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert "WH-GHOST" in store.webhook_events

    def test_missing_provider_id_is_rejected(self, client, store):
        response = client.post(
            "/api/webhooks/paypal",
            json=paypal_event("WH-BAD", "PAYMENT.SALE.DENIED"),
            headers=HEADERS,
        )

        assert response.status_code == 402
        assert "WH-BAD" not in store.webhook_events

    def test_unhandled_event_type(self, client, store):
        response = client.post(
            "/api/webhooks/paypal",
            json=paypal_event("WH-OTHER", "CUSTOMER.DISPUTE.CREATED"),
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert store.webhook_events["WH-OTHER"] == "CUSTOMER.DISPUTE.CREATED"


class TestPayPalWebhookIdempotency:

    def test_replayed_event_is_skipped(self, client, store, transport):
        store.put(make_subscription(1, SubscriptionStatus.ACTIVE, paypal_subscription_id="I-SUB1"))
        event = paypal_event("WH-DUP", "BILLING.SUBSCRIPTION.CANCELLED", id="I-SUB1")

        first = client.post("/api/webhooks/paypal", json=event, headers=HEADERS)
        second = client.post("/api/webhooks/paypal", json=event, headers=HEADERS)

        assert first.json() == {"status": "success"}
        assert second.json() == {"status": "already_processed"}
        assert len(transport.events) == 1
