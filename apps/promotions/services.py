"""
Services for the Promotions app.
Discount code validation and application, reward catalog management and
redemption reporting.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Count, F, Q, QuerySet, Sum
from django.db.models.functions import TruncDay, TruncMonth, TruncWeek
from django.utils import timezone

from .codes import CodeCodec, normalize_code
from .conf import get_setting
from .effects import DiscountEffect, calculate_code_effect
from .exceptions import Conflict, ConstraintViolation, NotFound, ValidationError
from .ledger import DiscountUsageLedger
from .models import DiscountCode, DiscountUsage, Reward, RewardRedemption
from .points import PointsService
from .signals import discount_usage_changed, send_on_commit
from .validation import EligibilityContext, ValidationResult, check_eligibility

logger = logging.getLogger(__name__)

# Redemption states that still hold a unit of reward stock
OPEN_REDEMPTION_STATUSES = ("PENDING", "ACTIVE")


def filter_effective_status(
    queryset: QuerySet[RewardRedemption], status: str, now: datetime | None = None
) -> QuerySet[RewardRedemption]:
    """
    Filter redemptions by the status they read as, not the stored one.

    An ACTIVE row past ``expires_at`` matches EXPIRED and not ACTIVE, the
    same rule ``derive_redemption_status`` applies when rendering.
    """
    now = now or timezone.now()
    status = str(status).strip().upper()
    overdue = Q(status="ACTIVE", expires_at__lt=now)
    if status == "ACTIVE":
        return queryset.filter(status="ACTIVE").exclude(overdue)
    if status == "EXPIRED":
        return queryset.filter(Q(status="EXPIRED") | overdue)
    return queryset.filter(status=status)


# ===============================================================================
# Data Classes for Results
# ===============================================================================


@dataclass
class CodeValidation:
    """
    Result of validating a discount code for a member and purchase.

    Attributes:
        discount_code: The matched code.
        result: Eligibility outcome with the rejection reason, if any.
        effect: Priced effect, present only when the code is valid.
    """

    discount_code: DiscountCode
    result: ValidationResult
    effect: DiscountEffect | None = None

    @property
    def is_valid(self) -> bool:
        return self.result.is_valid


def _full_clean(instance: Any) -> None:
    try:
        instance.full_clean()
    except DjangoValidationError as exc:
        raise ValidationError(
            "; ".join(exc.messages), "INVALID_DATA", getattr(exc, "message_dict", {})
        ) from exc


def _apply_fields(instance: Any, data: dict[str, Any], allowed: tuple[str, ...]) -> None:
    unknown = set(data) - set(allowed)
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}", "UNKNOWN_FIELDS")
    for name, value in data.items():
        setattr(instance, name, value)


# ===============================================================================
# Discount Code Service
# ===============================================================================


class DiscountCodeService:
    """
    Discount code administration, validation and application.
    Usage caps are enforced by the usage ledger, not by the checks here.
    """

    EDITABLE_FIELDS = (
        "code",
        "name",
        "description",
        "discount_type",
        "discount_percent",
        "discount_amount_cents",
        "max_discount_cents",
        "minimum_amount_cents",
        "usage_limit",
        "usage_limit_per_member",
        "valid_from",
        "valid_until",
        "is_active",
        "first_time_only",
        "applicable_plans",
        "bonus_days",
        "referrer_member_id",
        "referral_reward_points",
    )

    ledger = DiscountUsageLedger()

    @staticmethod
    def normalize_code(code: str | None) -> str:
        return normalize_code(code)

    @classmethod
    def generate_code(cls, prefix: str = "") -> str:
        """Generate an unused code, e.g. ``GYM-7KQ2-M9XD``."""
        codec: CodeCodec[DiscountCode] = CodeCodec(
            exists=lambda code: DiscountCode.objects.filter(code=code).exists(),
            prefix=normalize_code(prefix),
            max_attempts=get_setting("CODE_GENERATION_ATTEMPTS"),
        )
        return codec.generate()

    @classmethod
    def get_by_code(cls, code: str | None) -> DiscountCode:
        normalized = cls.normalize_code(code)
        if not normalized:
            raise ValidationError("Discount code is required", "CODE_REQUIRED")
        try:
            return DiscountCode.objects.get(code=normalized)
        except DiscountCode.DoesNotExist as exc:
            raise NotFound("Invalid discount code", "INVALID_CODE") from exc

    @staticmethod
    def get(code_id: UUID) -> DiscountCode:
        try:
            return DiscountCode.objects.get(pk=code_id)
        except DiscountCode.DoesNotExist as exc:
            raise NotFound(f"Discount code {code_id} not found") from exc

    # ===============================================================================
    # Administration
    # ===============================================================================

    @classmethod
    def create_code(cls, data: dict[str, Any]) -> DiscountCode:
        data = dict(data)
        data["code"] = cls.normalize_code(data.get("code")) or cls.generate_code()
        if DiscountCode.objects.filter(code=data["code"]).exists():
            raise Conflict(f"Discount code {data['code']} already exists", "DUPLICATE_CODE")

        discount_code = DiscountCode()
        _apply_fields(discount_code, data, cls.EDITABLE_FIELDS)
        _full_clean(discount_code)
        discount_code.save()
        logger.info(
            "Discount code created: %s",
            discount_code.code,
            extra={"discount_code_id": str(discount_code.id), "discount_type": discount_code.discount_type},
        )
        return discount_code

    @classmethod
    def update_code(cls, discount_code: DiscountCode, data: dict[str, Any]) -> DiscountCode:
        data = dict(data)
        if "code" in data:
            data["code"] = cls.normalize_code(data["code"])
            if DiscountCode.objects.filter(code=data["code"]).exclude(pk=discount_code.pk).exists():
                raise Conflict(f"Discount code {data['code']} already exists", "DUPLICATE_CODE")
        _apply_fields(discount_code, data, cls.EDITABLE_FIELDS)
        _full_clean(discount_code)
        discount_code.save()
        return discount_code

    @staticmethod
    def list_codes(is_active: str | bool | None = None, discount_type: str | None = None) -> QuerySet[DiscountCode]:
        queryset = DiscountCode.objects.all()
        if is_active is not None:
            flag = is_active if isinstance(is_active, bool) else str(is_active).lower() in ("1", "true", "yes")
            queryset = queryset.filter(is_active=flag)
        if discount_type:
            queryset = queryset.filter(discount_type=discount_type.upper())
        return queryset.order_by("-created_at")

    @staticmethod
    def delete_code(discount_code: DiscountCode) -> None:
        """Delete a code that was never used; used codes can only be disabled."""
        if discount_code.usages.exists():
            raise Conflict("Discount code has usage history; disable it instead", "CODE_IN_USE")
        discount_code.delete()

    # ===============================================================================
    # Validation & Application
    # ===============================================================================

    @staticmethod
    def free_period_days(discount_code: DiscountCode) -> int:
        """Days waived by FREE_TRIAL / FIRST_MONTH_FREE; ``bonus_days`` overrides the default."""
        return discount_code.bonus_days or get_setting("FREE_PERIOD_DAYS")

    @classmethod
    def _check(  # noqa: PLR0913
        cls,
        discount_code: DiscountCode,
        member_id: UUID,
        amount_cents: int | None,
        plan_id: str | None,
        completed_subscriptions: int,
        now: datetime,
    ) -> CodeValidation:
        if amount_cents is not None and amount_cents < 0:
            raise ValidationError("Purchase amount cannot be negative", "NEGATIVE_AMOUNT")

        context = EligibilityContext(
            member_id=member_id,
            amount_cents=amount_cents,
            plan_id=plan_id,
            completed_subscriptions=completed_subscriptions,
            member_usage_count=cls.ledger.count_for_member(discount_code.id, member_id),
        )
        result = check_eligibility(discount_code.as_redeemable(), context, now)
        if not result.is_valid:
            return CodeValidation(discount_code=discount_code, result=result)

        effect = None
        if amount_cents is not None or discount_code.discount_type in ("FREE_TRIAL", "FIRST_MONTH_FREE"):
            effect = calculate_code_effect(discount_code, amount_cents, cls.free_period_days(discount_code))
        return CodeValidation(discount_code=discount_code, result=result, effect=effect)

    @classmethod
    def validate_code(  # noqa: PLR0913
        cls,
        code: str | None,
        member_id: UUID,
        amount_cents: int | None = None,
        plan_id: str | None = None,
        completed_subscriptions: int = 0,
        now: datetime | None = None,
    ) -> CodeValidation:
        """
        Check a code for a member without using it.

        Raises NotFound for unknown codes; every other rejection comes back
        in ``CodeValidation.result``.
        """
        discount_code = cls.get_by_code(code)
        return cls._check(discount_code, member_id, amount_cents, plan_id, completed_subscriptions, now or timezone.now())

    @classmethod
    def apply_code(  # noqa: PLR0913
        cls,
        code: str | None,
        member_id: UUID,
        amount_cents: int | None = None,
        plan_id: str | None = None,
        subscription_id: str = "",
        completed_subscriptions: int = 0,
    ) -> tuple[DiscountUsage, DiscountEffect]:
        """
        Validate and record one usage of a code.

        The code row is locked for the duration so per-member checks and the
        cap claim see a consistent state.

        Raises:
            NotFound: unknown code.
            ConstraintViolation: the code is not valid for this member/purchase.
            Conflict: the last use was taken concurrently.
        """
        normalized = cls.normalize_code(code)
        cls.get_by_code(normalized)

        with transaction.atomic():
            discount_code = DiscountCode.objects.select_for_update().get(code=normalized)
            now = timezone.now()
            validation = cls._check(discount_code, member_id, amount_cents, plan_id, completed_subscriptions, now)
            if not validation.is_valid:
                logger.info(
                    "Discount code rejected: %s - %s",
                    normalized,
                    validation.result.error_code,
                    extra={
                        "discount_code": normalized,
                        "member_id": str(member_id),
                        "reason": str(validation.result.error_code),
                    },
                )
                raise ConstraintViolation(
                    validation.result.error_code, validation.result.error_message, validation.result.details
                )

            effect = validation.effect or calculate_code_effect(
                discount_code, amount_cents, cls.free_period_days(discount_code)
            )
            usage = DiscountUsage(
                discount_code=discount_code,
                member_id=member_id,
                subscription_id=subscription_id or "",
                plan_id=plan_id or "",
                amount_cents=amount_cents or 0,
                amount_discounted_cents=effect.discount_cents,
                bonus_days_added=effect.waived_days or discount_code.bonus_days or 0,
                referral_reward_points=discount_code.referral_reward_points or 0,
                used_at=now,
            )
            cls.ledger.record_usage(usage)

            if discount_code.referrer_member_id and discount_code.referral_reward_points:
                PointsService.credit(
                    discount_code.referrer_member_id,
                    discount_code.referral_reward_points,
                    transaction_type="earn",
                    reference=str(usage.id),
                    description=f"Referral reward for {discount_code.code}",
                )
            send_on_commit(discount_usage_changed, DiscountUsage, usage=usage, action="recorded")

        logger.info(
            "Discount code applied: %s for member %s",
            normalized,
            member_id,
            extra={
                "discount_code": normalized,
                "member_id": str(member_id),
                "usage_id": str(usage.id),
                "discount_cents": effect.discount_cents,
            },
        )
        return usage, effect

    @classmethod
    def reverse_usage(cls, usage_id: UUID, reason: str = "") -> bool:
        """Reverse a usage and free its slot. Returns False if already reversed."""
        with transaction.atomic():
            reversed_now = cls.ledger.reverse(usage_id, reason)
            if reversed_now:
                usage = DiscountUsage.objects.get(pk=usage_id)
                send_on_commit(discount_usage_changed, DiscountUsage, usage=usage, action="reversed")
        return reversed_now

    @staticmethod
    def usage_history(
        code_id: UUID, member_id: UUID | None = None, limit: int = 50, offset: int = 0
    ) -> tuple[list[DiscountUsage], int]:
        queryset = DiscountUsage.objects.filter(discount_code_id=code_id)
        if member_id is not None:
            queryset = queryset.filter(member_id=member_id)
        total = queryset.count()
        return list(queryset.order_by("-used_at")[offset : offset + limit]), total


# ===============================================================================
# Reward Service
# ===============================================================================


class RewardService:
    """Reward catalog administration and redemption reporting."""

    EDITABLE_FIELDS = (
        "title",
        "description",
        "category",
        "reward_type",
        "points_cost",
        "discount_percent",
        "discount_amount_cents",
        "stock_quantity",
        "redemption_limit",
        "redemption_validity_days",
        "valid_from",
        "valid_until",
        "is_active",
        "terms_conditions",
    )

    @staticmethod
    def get(reward_id: UUID) -> Reward:
        try:
            return Reward.objects.get(pk=reward_id)
        except (Reward.DoesNotExist, DjangoValidationError) as exc:
            raise NotFound(f"Reward {reward_id} not found") from exc

    # ===============================================================================
    # Administration
    # ===============================================================================

    @classmethod
    def create_reward(cls, data: dict[str, Any], created_by: Any = None) -> Reward:
        if data.get("discount_percent") is not None and data.get("discount_amount_cents") is not None:
            raise ValidationError(
                "Provide either discount_percent or discount_amount_cents, not both", "DISCOUNT_SHAPE"
            )
        reward = Reward(created_by=created_by)
        _apply_fields(reward, data, cls.EDITABLE_FIELDS)
        _full_clean(reward)
        reward.save()
        logger.info("Reward created: %s", reward.title, extra={"reward_id": str(reward.id)})
        return reward

    @classmethod
    def update_reward(cls, reward: Reward, data: dict[str, Any]) -> Reward:
        """
        Update a reward. Setting one discount shape clears the other;
        setting both in one update is rejected.
        """
        data = dict(data)
        has_percent = data.get("discount_percent") is not None
        has_amount = data.get("discount_amount_cents") is not None
        if has_percent and has_amount:
            raise ValidationError(
                "Provide either discount_percent or discount_amount_cents, not both", "DISCOUNT_SHAPE"
            )
        if has_percent:
            data["discount_amount_cents"] = None
        elif has_amount:
            data["discount_percent"] = None

        _apply_fields(reward, data, cls.EDITABLE_FIELDS)
        _full_clean(reward)
        reward.save()
        return reward

    @staticmethod
    def delete_reward(reward: Reward) -> str:
        """
        Remove a reward from the catalog.

        Returns "deleted" when no redemption ever referenced it, "archived"
        when only closed redemptions do.

        Raises:
            Conflict: open (PENDING/ACTIVE) redemptions still reference it.
        """
        with transaction.atomic():
            reward = Reward.objects.select_for_update().get(pk=reward.pk)
            if reward.redemptions.filter(status__in=OPEN_REDEMPTION_STATUSES).exists():
                raise Conflict("Reward has open redemptions", "REWARD_IN_USE")
            if reward.redemptions.exists():
                Reward.objects.filter(pk=reward.pk).update(is_active=False, archived_at=timezone.now())
                logger.info("Reward archived: %s", reward.title, extra={"reward_id": str(reward.id)})
                return "archived"
            reward.delete()
        logger.info("Reward deleted: %s", reward.title, extra={"reward_id": str(reward.pk)})
        return "deleted"

    # ===============================================================================
    # Catalog
    # ===============================================================================

    @staticmethod
    def available_rewards(now: datetime | None = None) -> QuerySet[Reward]:
        """Rewards a member could redeem right now, stock and caps permitting."""
        now = now or timezone.now()
        return Reward.objects.filter(
            Q(is_active=True),
            Q(archived_at__isnull=True),
            Q(valid_from__isnull=True) | Q(valid_from__lte=now),
            Q(valid_until__isnull=True) | Q(valid_until__gte=now),
            Q(stock_quantity__isnull=True) | Q(redemption_count__lt=F("stock_quantity")),
            Q(redemption_limit__isnull=True) | Q(redemption_count__lt=F("redemption_limit")),
        )

    @classmethod
    def list_rewards(  # noqa: PLR0913
        cls,
        category: str | None = None,
        min_points: int | None = None,
        max_points: int | None = None,
        limit: int = 50,
        offset: int = 0,
        now: datetime | None = None,
    ) -> tuple[list[Reward], int]:
        queryset = cls.available_rewards(now)
        if category:
            queryset = queryset.filter(category=category)
        if min_points is not None:
            queryset = queryset.filter(points_cost__gte=min_points)
        if max_points is not None:
            queryset = queryset.filter(points_cost__lte=max_points)
        limit = max(1, min(limit, get_setting("REWARD_LIST_MAX_LIMIT")))
        offset = max(offset, 0)
        total = queryset.count()
        return list(queryset.order_by("points_cost", "-created_at")[offset : offset + limit]), total

    # ===============================================================================
    # Reporting
    # ===============================================================================

    @staticmethod
    def redemptions(filters: dict[str, Any] | None = None) -> QuerySet[RewardRedemption]:
        """Admin listing: member_id, reward_id, status, start_date, end_date, search."""
        filters = filters or {}
        queryset = RewardRedemption.objects.select_related("reward")
        if filters.get("member_id"):
            queryset = queryset.filter(member_id=filters["member_id"])
        if filters.get("reward_id"):
            queryset = queryset.filter(reward_id=filters["reward_id"])
        if filters.get("status"):
            queryset = filter_effective_status(queryset, filters["status"])
        if filters.get("start_date"):
            queryset = queryset.filter(created_at__gte=filters["start_date"])
        if filters.get("end_date"):
            queryset = queryset.filter(created_at__lte=filters["end_date"])
        if filters.get("search"):
            term = str(filters["search"]).strip()
            queryset = queryset.filter(Q(code__icontains=term) | Q(reward__title__icontains=term))
        return queryset.order_by("-created_at")

    @staticmethod
    def stats(reward_id: UUID | None = None) -> dict[str, Any]:
        """Redemption counts per status and points spent, per reward or overall."""
        if reward_id is not None:
            reward = RewardService.get(reward_id)
            queryset = reward.redemptions.all()
            by_status = dict(queryset.order_by().values_list("status").annotate(total=Count("id")))
            return {
                "reward_id": str(reward.id),
                "total_redemptions": queryset.count(),
                "by_status": {status: by_status.get(status, 0) for status, _ in RewardRedemption.STATUS_CHOICES},
                "total_points_spent": queryset.exclude(status="REFUNDED").aggregate(
                    total=Sum("points_spent")
                )["total"]
                or 0,
                "available_stock": reward.available_stock,
            }

        queryset = RewardRedemption.objects.all()
        by_status = dict(queryset.order_by().values_list("status").annotate(total=Count("id")))
        popular = (
            Reward.objects.annotate(total=Count("redemptions"))
            .filter(total__gt=0)
            .order_by("-total", "title")
            .values("id", "title", "total")[:10]
        )
        return {
            "total_rewards": Reward.objects.filter(archived_at__isnull=True).count(),
            "active_rewards": Reward.objects.filter(is_active=True, archived_at__isnull=True).count(),
            "total_redemptions": queryset.count(),
            "by_status": {status: by_status.get(status, 0) for status, _ in RewardRedemption.STATUS_CHOICES},
            "total_points_spent": queryset.exclude(status="REFUNDED").aggregate(total=Sum("points_spent"))[
                "total"
            ]
            or 0,
            "popular_rewards": [
                {"reward_id": str(row["id"]), "title": row["title"], "redemptions": row["total"]} for row in popular
            ],
        }

    TREND_PERIODS = {"daily": TruncDay, "weekly": TruncWeek, "monthly": TruncMonth}

    @classmethod
    def trend(
        cls, period: str = "daily", start: datetime | None = None, end: datetime | None = None
    ) -> list[dict[str, Any]]:
        """Redemption counts and points spent bucketed by day, week or month."""
        trunc = cls.TREND_PERIODS.get(period)
        if trunc is None:
            raise ValidationError(f"Unknown trend period: {period}", "INVALID_PERIOD")

        queryset = RewardRedemption.objects.all()
        if start is not None:
            queryset = queryset.filter(created_at__gte=start)
        if end is not None:
            queryset = queryset.filter(created_at__lte=end)
        rows = (
            queryset.annotate(bucket=trunc("created_at"))
            .values("bucket")
            .annotate(redemptions=Count("id"), points=Sum("points_spent"))
            .order_by("bucket")
        )
        return [
            {"period": row["bucket"].date().isoformat(), "redemptions": row["redemptions"], "points": row["points"] or 0}
            for row in rows
        ]
