"""
Signals for the Promotions app.

Services send these only after the surrounding transaction commits, so
receivers never see a usage or transition that was rolled back.
"""

from __future__ import annotations

import logging
from typing import Any

from django.db import transaction
from django.dispatch import Signal, receiver

logger = logging.getLogger(__name__)

# sender=RewardRedemption, redemption=..., previous_status=..., status=...
redemption_transitioned = Signal()

# sender=DiscountUsage, usage=..., action="recorded" | "reversed"
discount_usage_changed = Signal()


def send_on_commit(signal: Signal, sender: type, **kwargs: Any) -> None:
    """Dispatch ``signal`` once the current transaction commits."""
    transaction.on_commit(lambda: signal.send(sender=sender, **kwargs))


# ===============================================================================
# Logging receivers
# ===============================================================================


@receiver(redemption_transitioned)
def log_redemption_transition(sender: type, redemption: Any, previous_status: str, status: str, **kwargs: Any) -> None:
    logger.info(
        "Redemption %s: %s -> %s",
        redemption.code,
        previous_status,
        status,
        extra={
            "redemption_id": str(redemption.id),
            "member_id": str(redemption.member_id),
            "reward_id": str(redemption.reward_id),
            "previous_status": previous_status,
            "status": status,
        },
    )


@receiver(discount_usage_changed)
def log_discount_usage(sender: type, usage: Any, action: str, **kwargs: Any) -> None:
    logger.info(
        "Discount usage %s %s",
        usage.id,
        action,
        extra={
            "usage_id": str(usage.id),
            "discount_code_id": str(usage.discount_code_id),
            "member_id": str(usage.member_id),
            "action": action,
        },
    )
