"""
Eligibility checks for discount codes and rewards.

``check_eligibility`` runs the checks in a fixed order and stops at the
first failure, so callers always get a single, stable rejection reason.
It is pure: the caller supplies the member's history and balance.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from uuid import UUID

from .status import EntityStatus, Redeemable, RedeemableKind, derive_status


class RejectionReason(StrEnum):
    DISABLED = "disabled"
    NOT_STARTED = "not-started"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    BELOW_MINIMUM_AMOUNT = "below-minimum-amount"
    NOT_FIRST_TIME = "not-first-time"
    MEMBER_LIMIT_REACHED = "member-limit-reached"
    PLAN_NOT_APPLICABLE = "plan-not-applicable"
    INSUFFICIENT_POINTS = "insufficient-points"
    OUT_OF_STOCK = "out-of-stock"


_STATUS_REASONS: dict[EntityStatus, RejectionReason] = {
    EntityStatus.DISABLED: RejectionReason.DISABLED,
    EntityStatus.NOT_STARTED: RejectionReason.NOT_STARTED,
    EntityStatus.EXPIRED: RejectionReason.EXPIRED,
    EntityStatus.EXHAUSTED: RejectionReason.EXHAUSTED,
}

_STATUS_MESSAGES: dict[RejectionReason, str] = {
    RejectionReason.DISABLED: "This offer is no longer available",
    RejectionReason.NOT_STARTED: "This offer is not yet valid",
    RejectionReason.EXPIRED: "This offer has expired",
    RejectionReason.EXHAUSTED: "This offer has reached its usage limit",
}


@dataclass(frozen=True)
class EligibilityContext:
    """
    Everything about the member and the purchase the checks need.

    Attributes:
        member_id: Member asking to use the code or redeem the reward.
        amount_cents: Purchase amount, required when a minimum amount applies.
        plan_id: Target membership plan, if any.
        completed_subscriptions: Member's prior completed subscriptions.
        member_usage_count: Member's live usages of this specific code.
        points_balance: Member's points balance (rewards only).
    """

    member_id: UUID | None = None
    amount_cents: int | None = None
    plan_id: str | None = None
    completed_subscriptions: int = 0
    member_usage_count: int = 0
    points_balance: int | None = None


@dataclass
class ValidationResult:
    """
    Result of an eligibility check.

    Attributes:
        is_valid: Whether the code or reward can be used right now.
        status: Derived status of the entity at check time.
        error_code: RejectionReason when rejected, empty otherwise.
        error_message: Human-readable reason.
        details: Extra figures for the caller (required/current/shortfall points).
        warnings: Non-blocking notes, e.g. "Offer expires in 2 day(s)".
    """

    is_valid: bool
    status: EntityStatus
    error_code: RejectionReason | str = ""
    error_message: str = ""
    details: dict[str, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def reject(
        cls,
        status: EntityStatus,
        reason: RejectionReason,
        message: str,
        details: dict[str, int] | None = None,
    ) -> ValidationResult:
        return cls(is_valid=False, status=status, error_code=reason, error_message=message, details=details or {})


def check_eligibility(  # noqa: PLR0911
    redeemable: Redeemable, context: EligibilityContext, now: datetime
) -> ValidationResult:
    """
    Check whether ``redeemable`` may be used under ``context`` at ``now``.

    Order: status, minimum amount, first-time, per-member limit, plan
    applicability, then for rewards points balance and stock.
    """
    status = derive_status(redeemable, now)
    if status != EntityStatus.ACTIVE:
        return _status_rejection(redeemable, status)

    if redeemable.minimum_amount_cents is not None and (
        context.amount_cents is None or context.amount_cents < redeemable.minimum_amount_cents
    ):
        return ValidationResult.reject(
            status,
            RejectionReason.BELOW_MINIMUM_AMOUNT,
            f"Minimum purchase amount of {redeemable.minimum_amount_cents} required",
            {"minimum_amount_cents": redeemable.minimum_amount_cents},
        )

    if redeemable.first_time_only and context.completed_subscriptions > 0:
        return ValidationResult.reject(
            status, RejectionReason.NOT_FIRST_TIME, "This code is only valid for first-time members"
        )

    if redeemable.usage_limit_per_member is not None and context.member_usage_count >= redeemable.usage_limit_per_member:
        return ValidationResult.reject(
            status,
            RejectionReason.MEMBER_LIMIT_REACHED,
            "You have already used this code the maximum number of times",
            {"usage_limit_per_member": redeemable.usage_limit_per_member},
        )

    if redeemable.applicable_plans and context.plan_id not in redeemable.applicable_plans:
        return ValidationResult.reject(
            status, RejectionReason.PLAN_NOT_APPLICABLE, "This code is not valid for the selected plan"
        )

    if redeemable.kind == RedeemableKind.REWARD:
        rejection = _check_reward(redeemable, context, status)
        if rejection is not None:
            return rejection

    warnings = []
    if redeemable.valid_until is not None:
        days_left = (redeemable.valid_until - now).days
        if days_left <= 3:  # noqa: PLR2004
            warnings.append(f"Offer expires in {days_left} day(s)")

    return ValidationResult(is_valid=True, status=status, warnings=warnings)


def _check_reward(redeemable: Redeemable, context: EligibilityContext, status: EntityStatus) -> ValidationResult | None:
    points_cost = redeemable.points_cost or 0
    balance = context.points_balance or 0
    if balance < points_cost:
        return ValidationResult.reject(
            status,
            RejectionReason.INSUFFICIENT_POINTS,
            "Not enough points to redeem this reward",
            {"required": points_cost, "current": balance, "shortfall": points_cost - balance},
        )

    return None


def _status_rejection(redeemable: Redeemable, status: EntityStatus) -> ValidationResult:
    # A reward whose stock ran out is reported as out of stock rather than exhausted
    if (
        status == EntityStatus.EXHAUSTED
        and redeemable.kind == RedeemableKind.REWARD
        and redeemable.stock_quantity is not None
        and redeemable.usage_count >= redeemable.stock_quantity
    ):
        return ValidationResult.reject(status, RejectionReason.OUT_OF_STOCK, "This reward is out of stock")
    reason = _STATUS_REASONS[status]
    return ValidationResult.reject(status, reason, _STATUS_MESSAGES[reason])
