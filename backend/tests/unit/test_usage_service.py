"""
Unit tests for UsageService (Usage Ledger and limit validation).
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import ENTERPRISE, NOW, make_subscription
from subscription_service.domain.subscription import SubscriptionStatus
from subscription_service.domain.usage import ValidateFeatureLimitRequest
from subscription_service.infrastructure.exceptions import (
    FeatureLimitExceededError,
    SubscriptionNotFoundError,
    ValidationError,
)


@pytest.fixture
def trialing(store):
    return store.put(make_subscription(1, SubscriptionStatus.TRIALING))


class TestRecordUsage:

    async def test_appends_snapshot(self, usage_service, trialing, store):
        record = await usage_service.record_usage(1, "contacts", 450)

        assert record.id is not None
        assert record.subscription_id == trialing.id
        assert record.feature_code == "CONTACTS"
        assert record.plan_limit == 500
        assert record.usage_percentage == Decimal("90.00")
        assert record.limit_exceeded is False
        assert record.recorded_at == NOW
        assert len(store.usage) == 1

    async def test_over_limit_is_flagged_not_rejected(self, usage_service, trialing):
        record = await usage_service.record_usage(1, "CONTACTS", 520)

        assert record.limit_exceeded is True
        assert record.usage_percentage == Decimal("104.00")

    async def test_exactly_at_limit_is_not_exceeded(self, usage_service, trialing):
        record = await usage_service.record_usage(1, "CONTACTS", 500)

        assert record.limit_exceeded is False

    async def test_unlimited_feature(self, usage_service, store):
        store.put(make_subscription(1, SubscriptionStatus.ACTIVE, plan=ENTERPRISE))

        record = await usage_service.record_usage(1, "DEALS", 10_000)

        assert record.plan_limit is None
        assert record.usage_percentage == Decimal("0.00")
        assert record.limit_exceeded is False

    async def test_negative_count_rejected(self, usage_service, trialing, store):
        with pytest.raises(ValidationError):
            await usage_service.record_usage(1, "CONTACTS", -1)

        assert store.usage == []

    async def test_unknown_organization(self, usage_service):
        with pytest.raises(SubscriptionNotFoundError):
            await usage_service.record_usage(404, "CONTACTS", 1)

    async def test_latest_record_wins(self, usage_service, trialing, clock):
        await usage_service.record_usage(1, "CONTACTS", 10)
        clock.advance(minutes=5)
        await usage_service.record_usage(1, "CONTACTS", 7)

        assert await usage_service.get_current_usage(1, "CONTACTS") == 7

    async def test_current_usage_defaults_to_zero(self, usage_service, trialing):
        assert await usage_service.get_current_usage(1, "USERS") == 0

    async def test_history_is_newest_first(self, usage_service, trialing, clock):
        for count in (1, 2, 3):
            await usage_service.record_usage(1, "DEALS", count)
            clock.advance(hours=1)

        history = await usage_service.get_usage_history(1, "deals", limit=2)

        assert [r.usage_count for r in history] == [3, 2]


class TestValidateFeatureLimit:

    async def test_uses_request_count(self, usage_service, trialing):
        response = await usage_service.validate_feature_limit(
            ValidateFeatureLimitRequest(organization_id=1, feature_code="CONTACTS", current_count=450)
        )

        assert response.allowed is True
        assert response.remaining == 49
        assert response.usage_percentage == Decimal("90.20")

    async def test_falls_back_to_ledger(self, usage_service, trialing):
        await usage_service.record_usage(1, "CONTACTS", 550)

        response = await usage_service.validate_feature_limit(
            ValidateFeatureLimitRequest(organization_id=1, feature_code="CONTACTS")
        )

        assert response.allowed is False
        assert response.current_usage == 550

    async def test_enforce_raises(self, usage_service, trialing):
        with pytest.raises(FeatureLimitExceededError) as exc_info:
            await usage_service.validate_feature_limit(
                ValidateFeatureLimitRequest(organization_id=1, feature_code="USERS", current_count=3),
                enforce=True,
            )

        details = exc_info.value.details
        assert details["code"] == "FEATURE_LIMIT_EXCEEDED"
        assert details["feature_code"] == "USERS"
        assert details["max_limit"] == 3
        assert details["recommended_plan"] == "PROFESSIONAL"

    async def test_enforce_does_not_raise_when_allowed(self, usage_service, trialing):
        response = await usage_service.validate_feature_limit(
            ValidateFeatureLimitRequest(organization_id=1, feature_code="USERS", current_count=1),
            enforce=True,
        )

        assert response.allowed is True

    async def test_grace_period_is_read_only(self, usage_service, store):
        store.put(make_subscription(1, SubscriptionStatus.GRACE_PERIOD))

        response = await usage_service.validate_feature_limit(
            ValidateFeatureLimitRequest(organization_id=1, feature_code="CONTACTS", current_count=0),
            locale="en",
        )

        assert response.allowed is False
        assert response.upgrade_message.startswith("Your subscription has expired")

    async def test_configured_ratio_is_used(self, uow_factory, clock, test_settings, trialing):
        from subscription_service.infrastructure.services.usage_service import UsageService

        strict = test_settings.model_copy(update={"soft_limit_ratio": Decimal("1.00")})
        service = UsageService(uow_factory=uow_factory, clock=clock, settings=strict)

        response = await service.validate_feature_limit(
            ValidateFeatureLimitRequest(organization_id=1, feature_code="CONTACTS", current_count=500)
        )

        assert response.allowed is False


class TestCurrentLimits:

    async def test_summary_per_feature(self, usage_service, trialing, clock):
        await usage_service.record_usage(1, "CONTACTS", 560)
        clock.advance(seconds=1)
        await usage_service.record_usage(1, "USERS", 2)

        summary = await usage_service.get_current_limits(1)

        assert summary.plan_code == "STARTER"
        assert summary.is_read_only is False
        features = {f.feature_code: f for f in summary.features}
        assert list(features) == ["CONTACTS", "USERS", "PIPELINES", "DEALS"]
        assert features["CONTACTS"].remaining == 0
        assert features["CONTACTS"].can_create is False
        assert features["USERS"].current == 2
        assert features["USERS"].remaining == 1
        assert features["USERS"].can_create is True
        assert features["PIPELINES"].current == 0

    async def test_unlimited_plan(self, usage_service, store):
        store.put(make_subscription(1, SubscriptionStatus.ACTIVE, plan=ENTERPRISE))

        summary = await usage_service.get_current_limits(1)

        assert all(f.max_limit is None and f.can_create for f in summary.features)

    async def test_read_only_flag_in_grace(self, usage_service, store):
        store.put(make_subscription(
            1, SubscriptionStatus.GRACE_PERIOD, status_changed_at=NOW - timedelta(days=1)
        ))

        summary = await usage_service.get_current_limits(1)

        assert summary.is_read_only is True
