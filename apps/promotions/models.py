"""
Promotions models for the gym platform.

Supports:
- Discount codes (percentage, fixed amount, free trial, first month free)
- Per-code usage ledger with reversal
- Points-priced rewards catalog with stock and global redemption caps
- Reward redemption codes with a PENDING -> ACTIVE -> USED/EXPIRED lifecycle
- Member points accounts with an append-only transaction history
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .status import EntityStatus, Redeemable, RedeemableKind, derive_redemption_status, derive_status

logger = logging.getLogger(__name__)

# ===============================================================================
# Constants
# ===============================================================================

MAX_DISCOUNT_PERCENT = Decimal("100.00")


def _caps(*values: int | None) -> tuple[int, ...]:
    return tuple(value for value in values if value is not None)


# ===============================================================================
# Discount Code Model
# ===============================================================================


class DiscountCode(models.Model):
    """
    Admin-created code that grants a discount or a free period on a
    membership purchase. ``usage_count`` always equals the number of
    non-reversed DiscountUsage rows.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    code = models.CharField(max_length=50, unique=True, help_text=_("Uppercase, unique code"))
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)

    DISCOUNT_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("PERCENTAGE", _("Percentage")),
        ("FIXED_AMOUNT", _("Fixed Amount")),
        ("FREE_TRIAL", _("Free Trial")),
        ("FIRST_MONTH_FREE", _("First Month Free")),
    )
    discount_type = models.CharField(max_length=20, choices=DISCOUNT_TYPES)
    discount_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(MAX_DISCOUNT_PERCENT)],
    )
    discount_amount_cents = models.BigIntegerField(null=True, blank=True, validators=[MinValueValidator(0)])
    max_discount_cents = models.BigIntegerField(
        null=True, blank=True, validators=[MinValueValidator(0)], help_text=_("Cap for percentage discounts")
    )
    minimum_amount_cents = models.BigIntegerField(null=True, blank=True, validators=[MinValueValidator(0)])

    # Usage caps
    usage_limit = models.PositiveIntegerField(null=True, blank=True, help_text=_("Empty = unlimited"))
    usage_limit_per_member = models.PositiveIntegerField(null=True, blank=True)
    usage_count = models.PositiveIntegerField(default=0, editable=False)

    # Validity window (inclusive, open-ended when empty)
    valid_from = models.DateTimeField(null=True, blank=True, default=timezone.now)
    valid_until = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)

    # Eligibility
    first_time_only = models.BooleanField(default=False)
    applicable_plans = models.JSONField(default=list, blank=True, help_text=_("Plan IDs; empty = all plans"))

    # Referral
    bonus_days = models.PositiveIntegerField(null=True, blank=True)
    referrer_member_id = models.UUIDField(null=True, blank=True, db_index=True)
    referral_reward_points = models.PositiveIntegerField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "promotion_discount_codes"
        verbose_name = _("Discount Code")
        verbose_name_plural = _("Discount Codes")
        ordering: ClassVar[tuple[str, ...]] = ("-created_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["is_active", "valid_from", "valid_until"], name="promo_code_window_idx"),
            models.Index(fields=["discount_type"], name="promo_code_type_idx"),
        )
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.CheckConstraint(
                condition=Q(usage_limit__isnull=True) | Q(usage_count__lte=F("usage_limit")),
                name="discount_code_usage_within_limit",
            ),
            models.CheckConstraint(
                condition=Q(valid_from__isnull=True) | Q(valid_until__isnull=True) | Q(valid_until__gt=F("valid_from")),
                name="discount_code_valid_window",
            ),
        )

    def __str__(self) -> str:
        return f"{self.code} - {self.name}"

    def save(self, *args: Any, **kwargs: Any) -> None:
        self.code = self.code.strip().upper()
        super().save(*args, **kwargs)

    def clean(self) -> None:
        super().clean()
        if self.discount_type == "PERCENTAGE" and self.discount_percent is None:
            raise ValidationError({"discount_percent": _("Percentage codes require a discount percent")})
        if self.discount_type == "FIXED_AMOUNT" and self.discount_amount_cents is None:
            raise ValidationError({"discount_amount_cents": _("Fixed amount codes require an amount")})
        if self.valid_from and self.valid_until and self.valid_until <= self.valid_from:
            raise ValidationError({"valid_until": _("End must be after start")})

    @property
    def value(self) -> Decimal | int | None:
        """Discount magnitude: percent for PERCENTAGE, cents for FIXED_AMOUNT."""
        if self.discount_type == "PERCENTAGE":
            return self.discount_percent
        if self.discount_type == "FIXED_AMOUNT":
            return self.discount_amount_cents
        return None

    def as_redeemable(self) -> Redeemable:
        return Redeemable(
            kind=RedeemableKind.DISCOUNT_CODE,
            entity_id=self.id,
            is_active=self.is_active,
            valid_from=self.valid_from,
            valid_until=self.valid_until,
            usage_count=self.usage_count,
            caps=_caps(self.usage_limit),
            minimum_amount_cents=self.minimum_amount_cents,
            first_time_only=self.first_time_only,
            usage_limit_per_member=self.usage_limit_per_member,
            applicable_plans=tuple(self.applicable_plans or ()),
        )

    def status_at(self, now: datetime | None = None) -> EntityStatus:
        return derive_status(self.as_redeemable(), now or timezone.now())

    @property
    def status(self) -> EntityStatus:
        return self.status_at()


class DiscountUsage(models.Model):
    """
    One application of a discount code. Rows are never edited; a reversal
    stamps ``reversed_at`` through the usage ledger and frees the slot.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    discount_code = models.ForeignKey(DiscountCode, on_delete=models.PROTECT, related_name="usages")
    member_id = models.UUIDField(db_index=True)
    subscription_id = models.CharField(max_length=100, blank=True)
    plan_id = models.CharField(max_length=100, blank=True)

    amount_cents = models.BigIntegerField(default=0, help_text=_("Purchase amount before discount"))
    amount_discounted_cents = models.BigIntegerField(default=0)
    bonus_days_added = models.PositiveIntegerField(default=0)
    referral_reward_points = models.PositiveIntegerField(default=0)

    used_at = models.DateTimeField(default=timezone.now)
    reversed_at = models.DateTimeField(null=True, blank=True)
    reversal_reason = models.TextField(blank=True)

    class Meta:
        db_table = "promotion_discount_usages"
        verbose_name = _("Discount Usage")
        verbose_name_plural = _("Discount Usages")
        ordering: ClassVar[tuple[str, ...]] = ("-used_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["discount_code", "member_id"], name="promo_usage_member_idx"),
            models.Index(fields=["used_at"], name="promo_usage_used_at_idx"),
        )

    def __str__(self) -> str:
        return f"{self.discount_code_id} used by {self.member_id}"

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise ValidationError(_("Discount usages are immutable; reverse them through the ledger"))
        super().save(*args, **kwargs)

    @property
    def is_reversed(self) -> bool:
        return self.reversed_at is not None


# ===============================================================================
# Reward Models
# ===============================================================================


class Reward(models.Model):
    """
    Catalog item members buy with loyalty points.

    A reward may carry a percent or a fixed amount, never both.
    ``redemption_count`` counts non-reversed redemptions and is bounded by
    both ``stock_quantity`` and ``redemption_limit``.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)

    CATEGORIES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("DISCOUNT", _("Discount")),
        ("FREE_CLASS", _("Free Class")),
        ("MERCHANDISE", _("Merchandise")),
        ("MEMBERSHIP_EXTENSION", _("Membership Extension")),
        ("PREMIUM_FEATURE", _("Premium Feature")),
        ("OTHER", _("Other")),
    )
    category = models.CharField(max_length=30, choices=CATEGORIES, default="OTHER")

    REWARD_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("PERCENTAGE_DISCOUNT", _("Percentage Discount")),
        ("FIXED_AMOUNT_DISCOUNT", _("Fixed Amount Discount")),
        ("FREE_ITEM", _("Free Item")),
        ("MEMBERSHIP_UPGRADE", _("Membership Upgrade")),
        ("PREMIUM_FEATURE_ACCESS", _("Premium Feature Access")),
        ("CASHBACK", _("Cashback")),
        ("OTHER", _("Other")),
    )
    reward_type = models.CharField(max_length=30, choices=REWARD_TYPES, default="OTHER")

    points_cost = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    discount_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(MAX_DISCOUNT_PERCENT)],
    )
    discount_amount_cents = models.BigIntegerField(null=True, blank=True, validators=[MinValueValidator(0)])

    stock_quantity = models.PositiveIntegerField(null=True, blank=True, help_text=_("Empty = unlimited"))
    redemption_limit = models.PositiveIntegerField(
        null=True, blank=True, help_text=_("Total redemptions allowed across all members")
    )
    redemption_count = models.PositiveIntegerField(default=0, editable=False)
    redemption_validity_days = models.PositiveIntegerField(
        null=True, blank=True, help_text=_("Days an issued code stays active; empty = platform default")
    )

    valid_from = models.DateTimeField(null=True, blank=True)
    valid_until = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    archived_at = models.DateTimeField(null=True, blank=True)

    terms_conditions = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "promotion_rewards"
        verbose_name = _("Reward")
        verbose_name_plural = _("Rewards")
        ordering: ClassVar[tuple[str, ...]] = ("points_cost", "-created_at")
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["is_active", "category"], name="promo_reward_category_idx"),
            models.Index(fields=["points_cost"], name="promo_reward_cost_idx"),
        )
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.CheckConstraint(
                condition=Q(discount_percent__isnull=True) | Q(discount_amount_cents__isnull=True),
                name="reward_single_discount_shape",
            ),
            models.CheckConstraint(
                condition=Q(stock_quantity__isnull=True) | Q(redemption_count__lte=F("stock_quantity")),
                name="reward_redemptions_within_stock",
            ),
            models.CheckConstraint(
                condition=Q(redemption_limit__isnull=True) | Q(redemption_count__lte=F("redemption_limit")),
                name="reward_redemptions_within_limit",
            ),
            models.CheckConstraint(
                condition=Q(valid_from__isnull=True) | Q(valid_until__isnull=True) | Q(valid_until__gt=F("valid_from")),
                name="reward_valid_window",
            ),
        )

    def __str__(self) -> str:
        return f"{self.title} ({self.points_cost} pts)"

    def clean(self) -> None:
        super().clean()
        if self.discount_percent is not None and self.discount_amount_cents is not None:
            raise ValidationError(_("A reward can carry a discount percent or a discount amount, not both"))
        if self.valid_from and self.valid_until and self.valid_until <= self.valid_from:
            raise ValidationError({"valid_until": _("End must be after start")})

    @property
    def available_stock(self) -> int | None:
        if self.stock_quantity is None:
            return None
        return max(self.stock_quantity - self.redemption_count, 0)

    def as_redeemable(self) -> Redeemable:
        return Redeemable(
            kind=RedeemableKind.REWARD,
            entity_id=self.id,
            is_active=self.is_active,
            valid_from=self.valid_from,
            valid_until=self.valid_until,
            usage_count=self.redemption_count,
            caps=_caps(self.stock_quantity, self.redemption_limit),
            points_cost=self.points_cost,
            stock_quantity=self.stock_quantity,
        )

    def status_at(self, now: datetime | None = None) -> EntityStatus:
        return derive_status(self.as_redeemable(), now or timezone.now())

    @property
    def status(self) -> EntityStatus:
        return self.status_at()

    @property
    def is_available(self) -> bool:
        return self.status == EntityStatus.ACTIVE


class RewardRedemption(models.Model):
    """
    A member's redemption of a reward: points spent and a one-time code issued.

    Lifecycle:
        PENDING -> ACTIVE -> USED
                          -> EXPIRED
                          -> REFUNDED
        PENDING/ACTIVE -> CANCELLED
    USED, EXPIRED, CANCELLED and REFUNDED are terminal.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    member_id = models.UUIDField(db_index=True)
    reward = models.ForeignKey(Reward, on_delete=models.PROTECT, related_name="redemptions")
    points_spent = models.PositiveIntegerField(help_text=_("Reward cost at redemption time"))
    code = models.CharField(max_length=30, unique=True)

    STATUS_CHOICES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("PENDING", _("Pending")),
        ("ACTIVE", _("Active")),
        ("USED", _("Used")),
        ("EXPIRED", _("Expired")),
        ("CANCELLED", _("Cancelled")),
        ("REFUNDED", _("Refunded")),
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="PENDING")

    redeemed_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    used_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    # Set when the ledger releases this redemption's stock slot
    reversed_at = models.DateTimeField(null=True, blank=True)
    reversal_reason = models.TextField(blank=True)
    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "promotion_reward_redemptions"
        verbose_name = _("Reward Redemption")
        verbose_name_plural = _("Reward Redemptions")
        ordering: ClassVar[tuple[str, ...]] = ("-created_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["member_id", "status"], name="promo_redemption_member_idx"),
            models.Index(fields=["reward", "status"], name="promo_redemption_reward_idx"),
            models.Index(fields=["status", "expires_at"], name="promo_redemption_expiry_idx"),
        )
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.CheckConstraint(
                condition=(Q(status="USED") & Q(used_at__isnull=False)) | (~Q(status="USED") & Q(used_at__isnull=True)),
                name="redemption_used_at_matches_status",
            ),
        )

    def __str__(self) -> str:
        return f"{self.code} ({self.status})"

    def effective_status(self, now: datetime | None = None) -> EntityStatus:
        return derive_redemption_status(self, now or timezone.now())

    @property
    def is_reversed(self) -> bool:
        return self.reversed_at is not None


# ===============================================================================
# Points Models
# ===============================================================================


class PointsAccount(models.Model):
    """Loyalty points balance for one member. Balance never goes negative."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    member_id = models.UUIDField(unique=True)
    balance = models.BigIntegerField(default=0)
    lifetime_earned = models.BigIntegerField(default=0)
    lifetime_redeemed = models.BigIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "promotion_points_accounts"
        verbose_name = _("Points Account")
        verbose_name_plural = _("Points Accounts")
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.CheckConstraint(condition=Q(balance__gte=0), name="points_balance_non_negative"),
        )

    def __str__(self) -> str:
        return f"{self.member_id}: {self.balance} pts"


class PointsTransaction(models.Model):
    """Append-only record of every points movement."""

    TRANSACTION_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("earn", _("Earned")),
        ("redeem", _("Redeemed")),
        ("refund", _("Refunded")),
        ("adjust", _("Adjustment")),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    account = models.ForeignKey(PointsAccount, on_delete=models.CASCADE, related_name="transactions")
    transaction_type = models.CharField(max_length=10, choices=TRANSACTION_TYPES)
    points = models.BigIntegerField(help_text=_("Signed: positive credits, negative debits"))
    balance_after = models.BigIntegerField()
    reference = models.CharField(max_length=100, blank=True, help_text=_("Redemption or usage ID"))
    description = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "promotion_points_transactions"
        ordering: ClassVar[tuple[str, ...]] = ("-created_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["account", "-created_at"], name="promo_points_tx_account_idx"),
        )

    def __str__(self) -> str:
        return f"{self.transaction_type} {self.points:+d}"


# ===============================================================================
# Member Identity
# ===============================================================================


class MemberProfile(models.Model):
    """
    Links a platform login to the member identity that owns points and
    redemptions. The API resolves the acting member from this row, never
    from the request body.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="member_profile")
    member_id = models.UUIDField(unique=True, default=uuid.uuid4)
    completed_subscriptions = models.PositiveIntegerField(
        default=0, help_text=_("Paid subscriptions completed; drives first-time-only codes")
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "promotion_member_profiles"
        verbose_name = _("Member Profile")
        verbose_name_plural = _("Member Profiles")

    def __str__(self) -> str:
        return f"{self.user} ({self.member_id})"
