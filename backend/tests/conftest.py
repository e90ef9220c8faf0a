"""
Test configuration and fixtures for the Subscription Service.

Provides an in-memory unit of work, a controllable clock, recorded
lifecycle events and a FastAPI client wired to those fakes.
"""

import asyncio
import time
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Set
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID, uuid4

import jwt
import pytest
from fastapi.testclient import TestClient

from subscription_service.config.settings import Settings
from subscription_service.domain.events import LifecycleEvent
from subscription_service.domain.subscription import (
    BillingPeriod,
    Plan,
    PlanTier,
    Subscription,
    SubscriptionStatus,
)
from subscription_service.domain.usage import UsageRecord
from subscription_service.infrastructure.exceptions import (
    DatabaseError,
    DuplicateError,
    PlanNotFoundError,
    SubscriptionNotFoundError,
)
from subscription_service.infrastructure.integrations import (
    EventTransport,
    SubscriptionEventPublisher,
)
from subscription_service.infrastructure.services.lifecycle_scheduler import LifecycleScheduler
from subscription_service.infrastructure.services.lifecycle_service import (
    LifecycleDispatcher,
    SubscriptionLifecycleManager,
)
from subscription_service.infrastructure.services.usage_service import UsageService


NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"
INTERNAL_KEY = "internal-test-key"
ADMIN_KEY = "admin-test-key"
WEBHOOK_TOKEN = "paypal-test-token"


# =============================================================================
# Catalog
# =============================================================================

STARTER = Plan(
    id=UUID("00000000-0000-0000-0000-000000000001"),
    code="STARTER",
    name="Starter",
    tier=PlanTier.STARTER,
    price_monthly=Decimal("0"),
    price_annual=Decimal("0"),
    max_contacts=500,
    max_users=3,
    max_pipelines=1,
    max_deals=100,
    max_storage_gb=1,
    sort_order=1,
)

PROFESSIONAL = Plan(
    id=UUID("00000000-0000-0000-0000-000000000002"),
    code="PROFESSIONAL",
    name="Professional",
    tier=PlanTier.PROFESSIONAL,
    price_monthly=Decimal("49000"),
    price_annual=Decimal("490000"),
    max_contacts=5000,
    max_users=10,
    max_pipelines=5,
    max_deals=1000,
    max_storage_gb=10,
    is_featured=True,
    sort_order=2,
)

ENTERPRISE = Plan(
    id=UUID("00000000-0000-0000-0000-000000000003"),
    code="ENTERPRISE",
    name="Enterprise",
    tier=PlanTier.ENTERPRISE,
    price_monthly=Decimal("199000"),
    price_annual=Decimal("1990000"),
    max_storage_gb=100,
    sort_order=3,
)


def make_subscription(
    organization_id: int = 1,
    status: SubscriptionStatus = SubscriptionStatus.TRIALING,
    plan: Plan = STARTER,
    **fields,
) -> Subscription:
    """Build a subscription in any state without running transitions."""
    defaults = dict(
        id=uuid4(),
        organization_id=organization_id,
        plan=plan,
        status=status,
        billing_period=BillingPeriod.MONTHLY,
        trial_start_date=NOW - timedelta(days=10),
        trial_end_date=NOW + timedelta(days=11),
        is_trial_used=True,
        amount=Decimal("0"),
        status_changed_at=NOW - timedelta(days=10),
    )
    defaults.update(fields)
    return Subscription(**defaults)


# =============================================================================
# In-memory persistence
# =============================================================================

class InMemoryStore:
    """Committed state shared by every FakeUnitOfWork."""

    def __init__(self, plans: List[Plan]):
        self.plans: Dict[str, Plan] = {plan.code: plan for plan in plans}
        self.subscriptions: Dict[int, Subscription] = {}
        self.usage: List[UsageRecord] = []
        self.webhook_events: Dict[str, str] = {}
        self.locks = defaultdict(asyncio.Lock)
        self.fail_on_save: Set[int] = set()
        self.commits = 0
        self.rollbacks = 0

    def put(self, subscription: Subscription) -> Subscription:
        self.subscriptions[subscription.organization_id] = subscription
        return subscription

    def get(self, organization_id: int) -> Subscription:
        return self.subscriptions[organization_id]


class FakePlanRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def get_by_code(self, code: str) -> Optional[Plan]:
        return self.store.plans.get(code.strip().upper())

    async def get_by_tier(self, tier: PlanTier) -> Optional[Plan]:
        matches = [p for p in self.store.plans.values() if p.tier == tier and p.active]
        return min(matches, key=lambda p: p.sort_order) if matches else None

    async def require_by_code(self, code: str) -> Plan:
        plan = await self.get_by_code(code)
        if plan is None:
            raise PlanNotFoundError(f"Plan {code} not found")
        return plan

    async def require_by_tier(self, tier: PlanTier) -> Plan:
        plan = await self.get_by_tier(tier)
        if plan is None:
            raise PlanNotFoundError(f"No active plan for tier {tier.value}")
        return plan

    async def list_active(self) -> List[Plan]:
        return sorted(
            (p for p in self.store.plans.values() if p.active),
            key=lambda p: p.sort_order,
        )

    async def upsert(self, plan: Plan) -> Plan:
        self.store.plans[plan.code] = plan
        return plan


class FakeSubscriptionRepository:
    def __init__(self, uow: "FakeUnitOfWork"):
        self.uow = uow
        self.store = uow.store

    def _visible(self) -> Dict[int, Subscription]:
        merged = dict(self.store.subscriptions)
        merged.update(self.uow.pending_subscriptions)
        return merged

    def _matching(self, predicate) -> List[Subscription]:
        return [s.model_copy(deep=True) for s in self._visible().values() if predicate(s)]

    async def get_by_organization_id(
        self, organization_id: int, for_update: bool = False
    ) -> Optional[Subscription]:
        if for_update:
            lock = self.store.locks[organization_id]
            if lock not in self.uow.held_locks:
                await lock.acquire()
                self.uow.held_locks.append(lock)
        subscription = self._visible().get(organization_id)
        return subscription.model_copy(deep=True) if subscription else None

    async def require_by_organization_id(
        self, organization_id: int, for_update: bool = False
    ) -> Subscription:
        subscription = await self.get_by_organization_id(organization_id, for_update=for_update)
        if subscription is None:
            raise SubscriptionNotFoundError(
                f"Subscription not found for organization {organization_id}"
            )
        return subscription

    async def get_by_paypal_subscription_id(self, paypal_subscription_id: str) -> Optional[Subscription]:
        matches = self._matching(lambda s: s.paypal_subscription_id == paypal_subscription_id)
        return matches[0] if matches else None

    async def find_expired_trials(self, now: datetime) -> List[Subscription]:
        return self._matching(
            lambda s: s.status == SubscriptionStatus.TRIALING and s.trial_end_date < now
        )

    async def find_trials_ending_between(self, start: datetime, end: datetime) -> List[Subscription]:
        return self._matching(
            lambda s: s.status == SubscriptionStatus.TRIALING and start <= s.trial_end_date < end
        )

    async def find_in_status_since(self, status: SubscriptionStatus, cutoff: datetime) -> List[Subscription]:
        return self._matching(lambda s: s.status == status and s.status_changed_at < cutoff)

    async def find_canceled_due_to_end(self, now: datetime) -> List[Subscription]:
        def due(s: Subscription) -> bool:
            window_end = s.ended_at or s.current_period_end or s.trial_end_date
            return window_end is None or window_end <= now

        return self._matching(lambda s: s.status == SubscriptionStatus.CANCELED and due(s))

    async def add(self, subscription: Subscription) -> Subscription:
        if subscription.organization_id in self._visible():
            raise DuplicateError(
                f"Organization {subscription.organization_id} already has a subscription",
                operation="insert",
                table="subscriptions",
            )
        stored = subscription.model_copy(update={"id": subscription.id or uuid4()}, deep=True)
        self.uow.pending_subscriptions[stored.organization_id] = stored
        return stored.model_copy(deep=True)

    async def save(self, subscription: Subscription) -> Subscription:
        if subscription.organization_id in self.store.fail_on_save:
            raise DatabaseError("Simulated write failure", operation="update", table="subscriptions")
        stored = subscription.model_copy(deep=True)
        self.uow.pending_subscriptions[stored.organization_id] = stored
        return stored.model_copy(deep=True)


class FakeUsageRepository:
    def __init__(self, uow: "FakeUnitOfWork"):
        self.uow = uow
        self.store = uow.store

    def _records(self, subscription_id: UUID, feature_code: str) -> List[UsageRecord]:
        records = [
            r for r in self.store.usage + self.uow.pending_usage
            if r.subscription_id == subscription_id and r.feature_code == feature_code
        ]
        # Newest first, later appends win ties on recorded_at
        indexed = list(enumerate(records))
        indexed.sort(key=lambda pair: (pair[1].recorded_at, pair[0]), reverse=True)
        return [r for _, r in indexed]

    async def append(self, record: UsageRecord) -> UsageRecord:
        stored = record.model_copy(update={"id": uuid4()})
        self.uow.pending_usage.append(stored)
        return stored

    async def get_latest(self, subscription_id: UUID, feature_code: str) -> Optional[UsageRecord]:
        records = self._records(subscription_id, feature_code)
        return records[0] if records else None

    async def get_history(self, subscription_id: UUID, feature_code: str, limit: int = 50) -> List[UsageRecord]:
        return self._records(subscription_id, feature_code)[:limit]


class FakeWebhookEventRepository:
    def __init__(self, uow: "FakeUnitOfWork"):
        self.uow = uow
        self.store = uow.store

    async def is_processed(self, event_id: str) -> bool:
        return event_id in self.store.webhook_events or event_id in self.uow.pending_events

    async def mark_processed(self, event_id: str, event_type: str) -> None:
        self.uow.pending_events.setdefault(event_id, event_type)


class FakeUnitOfWork:
    """Commits pending writes on a clean exit, drops them on an exception."""

    def __init__(self, store: InMemoryStore):
        self.store = store

    async def __aenter__(self) -> "FakeUnitOfWork":
        self.pending_subscriptions: Dict[int, Subscription] = {}
        self.pending_usage: List[UsageRecord] = []
        self.pending_events: Dict[str, str] = {}
        self.held_locks: List[asyncio.Lock] = []
        self.plans = FakePlanRepository(self.store)
        self.subscriptions = FakeSubscriptionRepository(self)
        self.usage = FakeUsageRepository(self)
        self.webhook_events = FakeWebhookEventRepository(self)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is None:
                self.store.subscriptions.update(self.pending_subscriptions)
                self.store.usage.extend(self.pending_usage)
                for event_id, event_type in self.pending_events.items():
                    self.store.webhook_events.setdefault(event_id, event_type)
                self.store.commits += 1
            else:
                self.store.rollbacks += 1
        finally:
            for lock in self.held_locks:
                lock.release()
            self.held_locks = []


# =============================================================================
# Clock and events
# =============================================================================

class FakeClock:
    """Callable clock that tests move forward explicitly."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


class RecordingTransport(EventTransport):
    """Keeps every sent event for assertions."""

    def __init__(self):
        self.events: List[LifecycleEvent] = []

    async def send(self, event: LifecycleEvent) -> None:
        self.events.append(event)

    def kinds(self) -> List[str]:
        return [event.payload.kind for event in self.events]


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the developer's environment."""
    return Settings(
        _env_file=None,
        environment="testing",
        database_url=None,
        organization_service_url=None,
        events_webhook_url=None,
        internal_api_key=INTERNAL_KEY,
        admin_api_key=ADMIN_KEY,
        jwt_secret=JWT_SECRET,
        paypal_webhook_token=WEBHOOK_TOKEN,
        scheduler_enabled=False,
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore([STARTER, PROFESSIONAL, ENTERPRISE])


@pytest.fixture
def uow_factory(store):
    return lambda: FakeUnitOfWork(store)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sync_client():
    """Mock for OrganizationSyncClient."""
    mock = MagicMock()
    mock.push_status = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def dispatcher(sync_client, transport) -> LifecycleDispatcher:
    return LifecycleDispatcher(
        sync_client=sync_client,
        publisher=SubscriptionEventPublisher(transport),
        timeout=1.0,
    )


@pytest.fixture
def manager(uow_factory, dispatcher, clock, test_settings) -> SubscriptionLifecycleManager:
    return SubscriptionLifecycleManager(
        uow_factory=uow_factory,
        dispatcher=dispatcher,
        clock=clock,
        settings=test_settings,
    )


@pytest.fixture
def usage_service(uow_factory, clock, test_settings) -> UsageService:
    return UsageService(uow_factory=uow_factory, clock=clock, settings=test_settings)


@pytest.fixture
def scheduler(manager, uow_factory, clock, test_settings) -> LifecycleScheduler:
    return LifecycleScheduler(
        manager=manager,
        uow_factory=uow_factory,
        clock=clock,
        settings=test_settings,
    )


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app(manager, usage_service, scheduler, uow_factory, test_settings):
    """FastAPI application with services replaced by the in-memory fakes."""
    from subscription_service.api.dependencies import (
        get_lifecycle_manager,
        get_lifecycle_scheduler,
        get_uow_factory,
        get_usage_service,
    )
    from subscription_service.main import app

    app.dependency_overrides[get_lifecycle_manager] = lambda: manager
    app.dependency_overrides[get_usage_service] = lambda: usage_service
    app.dependency_overrides[get_lifecycle_scheduler] = lambda: scheduler
    app.dependency_overrides[get_uow_factory] = lambda: uow_factory

    with patch("subscription_service.api.dependencies.get_settings", return_value=test_settings), \
         patch("subscription_service.api.routes.webhooks.get_settings", return_value=test_settings):
        yield app

    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Get synchronous test client."""
    return TestClient(app)


def make_token(
    sub: str = "user-1",
    organization_id: Optional[int] = 1,
    role: Optional[str] = "OWNER",
    expires_in: int = 3600,
    secret: str = JWT_SECRET,
) -> str:
    payload = {"sub": sub, "exp": int(time.time()) + expires_in}
    if organization_id is not None:
        payload["org_id"] = organization_id
    if role is not None:
        payload["role"] = role
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def owner_headers():
    """Bearer headers of the OWNER of organization 1."""
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def internal_headers():
    return {"X-API-Key": INTERNAL_KEY}


@pytest.fixture
def admin_headers():
    return {"X-Admin-Key": ADMIN_KEY}
