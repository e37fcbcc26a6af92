"""
Discount effect calculation.

All money is integer minor units (cents). Percentages are applied with
integer basis-point arithmetic and rounded down, so an effect never
exceeds the purchase amount and never goes negative.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from typing import Any

from .exceptions import ValidationError

BASIS_POINTS = 10_000


class EffectKind(StrEnum):
    MONETARY = "monetary"  # Money off the purchase
    WAIVER = "waiver"  # Free period, no money changes hands
    NON_MONETARY = "non_monetary"  # Merchandise, class, feature access


@dataclass(frozen=True)
class DiscountEffect:
    """
    Result of applying a discount code or reward to a purchase.

    Attributes:
        kind: Monetary discount, period waiver or non-monetary benefit.
        discount_cents: Money taken off the purchase (0 for waivers).
        waived_days: Free period granted (waivers only).
        description: Human-readable summary, e.g. "20% off".
        breakdown: How the figure was reached (percent, cap, amount).
    """

    kind: EffectKind
    discount_cents: int = 0
    waived_days: int = 0
    description: str = ""
    breakdown: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "kind": str(self.kind),
            "discount_cents": self.discount_cents,
            "waived_days": self.waived_days,
            "description": self.description,
            "breakdown": self.breakdown,
        }


def percentage_of(amount_cents: int, percent: Decimal) -> int:
    """Percentage of an amount in cents, rounded down to the cent."""
    basis_points = int((Decimal(str(percent)) * 100).to_integral_value())
    return amount_cents * basis_points // BASIS_POINTS


def _check_amount(amount_cents: int | None) -> int:
    if amount_cents is None:
        raise ValidationError("A purchase amount is required to price this discount", "AMOUNT_REQUIRED")
    if amount_cents < 0:
        raise ValidationError("Purchase amount cannot be negative", "NEGATIVE_AMOUNT")
    return amount_cents


def percentage_effect(amount_cents: int, percent: Decimal, max_discount_cents: int | None = None) -> DiscountEffect:
    percent = Decimal(str(percent))
    raw = percentage_of(amount_cents, percent)
    discount = raw if max_discount_cents is None else min(raw, max_discount_cents)
    discount = min(discount, amount_cents)
    return DiscountEffect(
        kind=EffectKind.MONETARY,
        discount_cents=discount,
        description=f"{percent.normalize():f}% off",
        breakdown={
            "amount_cents": amount_cents,
            "percent": str(percent),
            "raw_discount_cents": raw,
            "max_discount_cents": max_discount_cents,
            "capped": discount < raw,
        },
    )


def fixed_effect(amount_cents: int, value_cents: int) -> DiscountEffect:
    discount = min(value_cents, amount_cents)
    return DiscountEffect(
        kind=EffectKind.MONETARY,
        discount_cents=discount,
        description=f"{value_cents} off",
        breakdown={"amount_cents": amount_cents, "value_cents": value_cents, "capped": discount < value_cents},
    )


def calculate_code_effect(code: Any, amount_cents: int | None, free_period_days: int) -> DiscountEffect:
    """
    Effect of a discount code on a purchase.

    PERCENTAGE and FIXED_AMOUNT reduce the amount; FREE_TRIAL and
    FIRST_MONTH_FREE grant ``free_period_days`` and leave the amount alone.
    """
    if code.discount_type in ("FREE_TRIAL", "FIRST_MONTH_FREE"):
        return DiscountEffect(
            kind=EffectKind.WAIVER,
            waived_days=free_period_days,
            description=f"{free_period_days} days free",
            breakdown={"discount_type": code.discount_type, "waived_days": free_period_days},
        )

    amount = _check_amount(amount_cents)
    if code.discount_type == "PERCENTAGE":
        return percentage_effect(amount, code.discount_percent, code.max_discount_cents)
    if code.discount_type == "FIXED_AMOUNT":
        return fixed_effect(amount, code.discount_amount_cents)
    raise ValidationError(f"Unknown discount type: {code.discount_type}", "UNKNOWN_DISCOUNT_TYPE")


def calculate_reward_effect(reward: Any, amount_cents: int | None = None) -> DiscountEffect:
    """
    Effect of a redeemed reward.

    Rewards carrying a percent or fixed amount price like discount codes;
    anything else is a non-monetary benefit described by its reward type.
    """
    if reward.discount_percent is not None:
        return percentage_effect(_check_amount(amount_cents), reward.discount_percent)
    if reward.discount_amount_cents is not None:
        return fixed_effect(_check_amount(amount_cents), reward.discount_amount_cents)
    return DiscountEffect(
        kind=EffectKind.NON_MONETARY,
        description=reward.title,
        breakdown={"reward_type": reward.reward_type, "category": reward.category},
    )
