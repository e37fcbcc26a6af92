"""
Status derivation for discount codes, rewards and redemption codes.

Status is never trusted from storage alone: it is recomputed from the
stored flags, the validity window and the usage counters at the moment of
the question. Both redeemable kinds are reduced to a ``Redeemable`` snapshot
so the same rules apply to each.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from .models import RewardRedemption


class EntityStatus(StrEnum):
    """Derived, display-facing status of a code, reward or redemption."""

    NOT_STARTED = "not-started"
    ACTIVE = "active"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    DISABLED = "disabled"
    USED = "used"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"
    PENDING = "pending"


class RedeemableKind(StrEnum):
    DISCOUNT_CODE = "discount_code"
    REWARD = "reward"


@dataclass(frozen=True)
class Redeemable:
    """
    Point-in-time view of a discount code or reward.

    Attributes:
        kind: Which variant this snapshot was taken from.
        usage_count: Live (non-reversed) usages or redemptions.
        caps: Every finite cap that bounds usage_count. ``None`` caps are
            dropped by the model before building the snapshot.
        points_cost: Rewards only.
        stock_quantity: Rewards only, None means unlimited.
    """

    kind: RedeemableKind
    entity_id: UUID | None
    is_active: bool
    valid_from: datetime | None
    valid_until: datetime | None
    usage_count: int = 0
    caps: tuple[int, ...] = ()
    minimum_amount_cents: int | None = None
    first_time_only: bool = False
    usage_limit_per_member: int | None = None
    applicable_plans: tuple[str, ...] = field(default_factory=tuple)
    points_cost: int | None = None
    stock_quantity: int | None = None

    @property
    def remaining(self) -> int | None:
        """Uses left before the tightest cap is hit, None when uncapped."""
        if not self.caps:
            return None
        return max(min(self.caps) - self.usage_count, 0)

    @property
    def is_exhausted(self) -> bool:
        return any(self.usage_count >= cap for cap in self.caps)


def derive_status(redeemable: Redeemable, now: datetime) -> EntityStatus:
    """
    Derive the status of a discount code or reward at ``now``.

    Precedence: disabled, not-started, expired, exhausted, active. The
    validity window is inclusive at both ends.
    """
    if not redeemable.is_active:
        return EntityStatus.DISABLED
    if redeemable.valid_from is not None and now < redeemable.valid_from:
        return EntityStatus.NOT_STARTED
    if redeemable.valid_until is not None and now > redeemable.valid_until:
        return EntityStatus.EXPIRED
    if redeemable.is_exhausted:
        return EntityStatus.EXHAUSTED
    return EntityStatus.ACTIVE


# Stored redemption status -> derived label
_REDEMPTION_LABELS: dict[str, EntityStatus] = {
    "PENDING": EntityStatus.PENDING,
    "ACTIVE": EntityStatus.ACTIVE,
    "USED": EntityStatus.USED,
    "EXPIRED": EntityStatus.EXPIRED,
    "CANCELLED": EntityStatus.CANCELLED,
    "REFUNDED": EntityStatus.REFUNDED,
}


def derive_redemption_status(redemption: RewardRedemption, now: datetime) -> EntityStatus:
    """
    Effective status of a redemption code.

    An ACTIVE redemption whose expiry has passed reads as expired even if the
    background sweep has not persisted the change yet.
    """
    if redemption.status == "ACTIVE" and redemption.expires_at is not None and now > redemption.expires_at:
        return EntityStatus.EXPIRED
    return _REDEMPTION_LABELS[redemption.status]
