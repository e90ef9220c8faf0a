"""
Organization Service Sync Client

One-way push of subscription status to the identity/organization service.
Failures are raised as ExternalSyncError; the caller decides to swallow them.
"""

import logging
from datetime import datetime
from typing import Optional

import httpx

from subscription_service.config.settings import Settings, get_settings
from subscription_service.domain.subscription import SubscriptionStatus
from subscription_service.infrastructure.exceptions import ExternalSyncError

logger = logging.getLogger(__name__)


class OrganizationSyncClient:
    """
    HTTP client for `PUT /api/organizations/subscription-status`.

    When ORGANIZATION_SERVICE_URL is not configured the push is skipped.
    """

    STATUS_PATH = "/api/organizations/subscription-status"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = settings or get_settings()
        self.base_url = settings.organization_service_url
        self.api_key = settings.organization_service_api_key
        self.timeout = settings.integration_timeout_seconds
        self._client = client
        if not self.base_url:
            logger.warning("ORGANIZATION_SERVICE_URL not configured, status sync disabled")

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    async def push_status(
        self,
        organization_id: int,
        status: SubscriptionStatus,
        trial_end_date: Optional[datetime],
    ) -> None:
        """
        Push the current status of an organization's subscription.

        Raises:
            ExternalSyncError: the organization service rejected or missed the call
        """
        if not self.enabled:
            return

        body = {
            "organizationId": organization_id,
            "subscriptionStatus": status.value,
            "trialEndsAt": trial_end_date.isoformat() if trial_end_date else None,
        }
        url = f"{self.base_url.rstrip('/')}{self.STATUS_PATH}"

        try:
            if self._client is not None:
                response = await self._client.put(url, json=body, headers=self._headers())
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.put(url, json=body, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ExternalSyncError(
                f"Failed to sync status for organization {organization_id}: {e}",
                service="organization-service",
                operation="push_status",
                original_error=e,
            )

        logger.info(f"Synced organization {organization_id} status={status.value}")
