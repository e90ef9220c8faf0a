"""
Outbound Integrations

Best-effort collaborators called after a lifecycle transition commits.
"""

from subscription_service.infrastructure.integrations.organization_sync import (
    OrganizationSyncClient,
)
from subscription_service.infrastructure.integrations.event_publisher import (
    EventTransport,
    HttpEventTransport,
    LoggingEventTransport,
    SubscriptionEventPublisher,
    build_transport,
)


__all__ = [
    "OrganizationSyncClient",
    "EventTransport",
    "HttpEventTransport",
    "LoggingEventTransport",
    "SubscriptionEventPublisher",
    "build_transport",
]
