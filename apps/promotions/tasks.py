"""
Promotions background tasks.

Django-Q2 tasks that persist redemption expiry. Reads never depend on
these running: an overdue ACTIVE code already reads as expired.
"""

from __future__ import annotations

import logging
from typing import Any

from django_q.models import Schedule
from django_q.tasks import async_task, schedule

from .conf import get_setting
from .lifecycle import RedemptionLifecycle

logger = logging.getLogger(__name__)

EXPIRY_SCHEDULE_NAME = "promotions-expire-redemptions"
TASK_TIME_LIMIT = 300  # 5 minutes


def expire_overdue_redemptions() -> dict[str, Any]:
    """Mark every ACTIVE redemption past its expiry as EXPIRED."""
    expired = RedemptionLifecycle().expire_overdue()
    logger.info("Redemption expiry sweep finished", extra={"expired_count": expired})
    return {"success": True, "expired_count": expired}


def expire_overdue_redemptions_async() -> str:
    """Queue an expiry sweep on the cluster right away."""
    return async_task("apps.promotions.tasks.expire_overdue_redemptions", timeout=TASK_TIME_LIMIT)


def setup_promotion_scheduled_tasks() -> dict[str, str]:
    """Register the periodic expiry sweep, or bring its interval in line with settings. Safe to call repeatedly."""
    tasks_created = {}
    minutes = get_setting("EXPIRY_SWEEP_MINUTES")

    existing = Schedule.objects.filter(name=EXPIRY_SCHEDULE_NAME).first()
    if existing is None:
        schedule(
            "apps.promotions.tasks.expire_overdue_redemptions",
            schedule_type=Schedule.MINUTES,
            minutes=minutes,
            name=EXPIRY_SCHEDULE_NAME,
        )
        tasks_created["expire_redemptions"] = "created"
    elif existing.schedule_type != Schedule.MINUTES or existing.minutes != minutes:
        existing.schedule_type = Schedule.MINUTES
        existing.minutes = minutes
        existing.save(update_fields=["schedule_type", "minutes"])
        tasks_created["expire_redemptions"] = "updated"
    else:
        tasks_created["expire_redemptions"] = "already_exists"

    logger.info("Promotion scheduled tasks set up", extra={"tasks": tasks_created})
    return tasks_created
