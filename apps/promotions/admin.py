"""
Django Admin configuration for the Promotions app.

Counters are read-only here: they only move through the usage ledger.
"""

from django.contrib import admin
from django.http import HttpRequest

from .models import (
    DiscountCode,
    DiscountUsage,
    MemberProfile,
    PointsAccount,
    PointsTransaction,
    Reward,
    RewardRedemption,
)

# ===============================================================================
# Inline Admin Classes
# ===============================================================================


class DiscountUsageInline(admin.TabularInline):
    model = DiscountUsage
    extra = 0
    can_delete = False
    readonly_fields = ("member_id", "amount_discounted_cents", "used_at", "reversed_at", "reversal_reason")
    fields = readonly_fields


class PointsTransactionInline(admin.TabularInline):
    model = PointsTransaction
    extra = 0
    can_delete = False
    readonly_fields = ("transaction_type", "points", "balance_after", "reference", "created_at")
    fields = readonly_fields


# ===============================================================================
# Model Admin Classes
# ===============================================================================


@admin.register(DiscountCode)
class DiscountCodeAdmin(admin.ModelAdmin):
    """Admin for discount codes."""

    list_display = ("code", "name", "discount_type", "value", "usage_display", "status", "valid_until")
    list_filter = ("discount_type", "is_active", "first_time_only")
    search_fields = ("code", "name")
    readonly_fields = ("usage_count", "created_at", "updated_at")
    inlines = [DiscountUsageInline]

    fieldsets = (
        (None, {"fields": ("code", "name", "description", "is_active")}),
        (
            "Discount",
            {"fields": ("discount_type", "discount_percent", "discount_amount_cents", "max_discount_cents")},
        ),
        ("Validity", {"fields": ("valid_from", "valid_until")}),
        (
            "Eligibility",
            {"fields": ("minimum_amount_cents", "first_time_only", "applicable_plans", "usage_limit_per_member")},
        ),
        ("Usage", {"fields": ("usage_limit", "usage_count")}),
        ("Referral", {"fields": ("bonus_days", "referrer_member_id", "referral_reward_points")}),
        ("Timestamps", {"fields": ("created_at", "updated_at"), "classes": ("collapse",)}),
    )

    @admin.display(description="Usage")
    def usage_display(self, obj: DiscountCode) -> str:
        return f"{obj.usage_count}/{obj.usage_limit if obj.usage_limit is not None else '∞'}"


@admin.register(Reward)
class RewardAdmin(admin.ModelAdmin):
    """Admin for the rewards catalog."""

    list_display = ("title", "category", "reward_type", "points_cost", "stock_display", "status", "is_active")
    list_filter = ("category", "reward_type", "is_active")
    search_fields = ("title", "description")
    readonly_fields = ("redemption_count", "archived_at", "created_by", "created_at", "updated_at")

    @admin.display(description="Stock")
    def stock_display(self, obj: Reward) -> str:
        if obj.stock_quantity is None:
            return "∞"
        return f"{obj.available_stock}/{obj.stock_quantity}"


@admin.register(RewardRedemption)
class RewardRedemptionAdmin(admin.ModelAdmin):
    """Redemptions change state through the lifecycle service, never here."""

    list_display = ("code", "reward", "member_id", "status", "points_spent", "expires_at", "created_at")
    list_filter = ("status", "reward__category")
    search_fields = ("code", "member_id", "reward__title")
    readonly_fields = tuple(field.name for field in RewardRedemption._meta.fields)

    def has_add_permission(self, request: HttpRequest) -> bool:
        return False


@admin.register(PointsAccount)
class PointsAccountAdmin(admin.ModelAdmin):
    list_display = ("member_id", "balance", "lifetime_earned", "lifetime_redeemed", "updated_at")
    search_fields = ("member_id",)
    readonly_fields = ("balance", "lifetime_earned", "lifetime_redeemed", "created_at", "updated_at")
    inlines = [PointsTransactionInline]


@admin.register(MemberProfile)
class MemberProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "member_id", "completed_subscriptions", "updated_at")
    search_fields = ("user__username", "user__email", "member_id")
    raw_id_fields = ("user",)
