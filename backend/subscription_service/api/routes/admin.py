"""
Admin Routes for Lifecycle Operations

On-demand runs of the daily lifecycle scans.
Protected by API key authentication.
"""

import logging

from fastapi import APIRouter, Depends

from subscription_service.api.dependencies import (
    get_lifecycle_scheduler,
    verify_admin_api_key,
)
from subscription_service.infrastructure.services.lifecycle_scheduler import LifecycleScheduler

logger = logging.getLogger(__name__)


router = APIRouter(
    prefix="/admin",
    dependencies=[Depends(verify_admin_api_key)]  # Protect ALL admin routes
)


@router.post("/scans/expiration")
async def run_expiration_scan(
    scheduler: LifecycleScheduler = Depends(get_lifecycle_scheduler),
):
    """Expire trials, suspend lapsed subscriptions and end canceled ones now."""
    logger.info("Expiration scan requested via admin API")
    report = await scheduler.run_expiration_scan()
    return report.to_dict()


@router.post("/scans/reminders")
async def run_reminder_scan(
    scheduler: LifecycleScheduler = Depends(get_lifecycle_scheduler),
):
    """Send trial-expiring reminders now. Re-running re-sends them."""
    logger.info("Reminder scan requested via admin API")
    report = await scheduler.run_reminder_scan()
    return report.to_dict()
