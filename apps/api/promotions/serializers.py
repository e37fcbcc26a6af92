"""
Promotions API Serializers
Input validation for code/reward/redemption endpoints and output shapes
for the response envelope.
"""

from typing import Any, ClassVar

from rest_framework import serializers

from apps.promotions.models import DiscountCode, DiscountUsage, PointsTransaction, Reward, RewardRedemption
from apps.promotions.services import DiscountCodeService, RewardService

# ===============================================================================
# DISCOUNT CODES
# ===============================================================================


class DiscountCodeSerializer(serializers.ModelSerializer):
    """Discount code with its derived status"""

    status = serializers.SerializerMethodField()
    value = serializers.SerializerMethodField()

    class Meta:
        model = DiscountCode
        fields: ClassVar = [
            "id",
            "code",
            "name",
            "description",
            "discount_type",
            "value",
            "discount_percent",
            "discount_amount_cents",
            "max_discount_cents",
            "minimum_amount_cents",
            "usage_limit",
            "usage_limit_per_member",
            "usage_count",
            "valid_from",
            "valid_until",
            "is_active",
            "first_time_only",
            "applicable_plans",
            "bonus_days",
            "referrer_member_id",
            "referral_reward_points",
            "status",
            "created_at",
            "updated_at",
        ]

    def get_status(self, obj: DiscountCode) -> str:
        return str(obj.status)

    def get_value(self, obj: DiscountCode) -> Any:
        value = obj.value
        return str(value) if value is not None and obj.discount_type == "PERCENTAGE" else value


class DiscountCodeWriteSerializer(serializers.ModelSerializer):
    """Create/update payload; uniqueness and cross-field rules are checked by the service"""

    code = serializers.CharField(max_length=50, required=False, allow_blank=True)

    class Meta:
        model = DiscountCode
        fields: ClassVar = list(DiscountCodeService.EDITABLE_FIELDS)


class DiscountUsageSerializer(serializers.ModelSerializer):
    code = serializers.CharField(source="discount_code.code", read_only=True)

    class Meta:
        model = DiscountUsage
        fields: ClassVar = [
            "id",
            "discount_code",
            "code",
            "member_id",
            "subscription_id",
            "plan_id",
            "amount_cents",
            "amount_discounted_cents",
            "bonus_days_added",
            "referral_reward_points",
            "used_at",
            "reversed_at",
            "reversal_reason",
        ]


class ValidateCodeInputSerializer(serializers.Serializer):
    """
    Input for checking or applying a code against a purchase.
    The member comes from the session; staff may name one with member_id.
    """

    code = serializers.CharField(max_length=50)
    member_id = serializers.UUIDField(required=False)
    amount_cents = serializers.IntegerField(required=False, allow_null=True, min_value=0)
    plan_id = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True)
    completed_subscriptions = serializers.IntegerField(required=False, default=0, min_value=0)


class ApplyCodeInputSerializer(ValidateCodeInputSerializer):
    subscription_id = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")


class ReasonInputSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


# ===============================================================================
# REWARDS
# ===============================================================================


class RewardSerializer(serializers.ModelSerializer):
    """Catalog entry with stock and derived status"""

    status = serializers.SerializerMethodField()
    available_stock = serializers.IntegerField(read_only=True)
    is_available = serializers.BooleanField(read_only=True)

    class Meta:
        model = Reward
        fields: ClassVar = [
            "id",
            "title",
            "description",
            "category",
            "reward_type",
            "points_cost",
            "discount_percent",
            "discount_amount_cents",
            "stock_quantity",
            "available_stock",
            "redemption_limit",
            "redemption_count",
            "redemption_validity_days",
            "valid_from",
            "valid_until",
            "is_active",
            "archived_at",
            "terms_conditions",
            "status",
            "is_available",
            "created_at",
            "updated_at",
        ]

    def get_status(self, obj: Reward) -> str:
        return str(obj.status)


class RewardWriteSerializer(serializers.ModelSerializer):
    class Meta:
        model = Reward
        fields: ClassVar = list(RewardService.EDITABLE_FIELDS)


class VerifyCodeInputSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=30)


class StatsQuerySerializer(serializers.Serializer):
    reward_id = serializers.UUIDField(required=False)


class TrendQuerySerializer(serializers.Serializer):
    period = serializers.ChoiceField(choices=list(RewardService.TREND_PERIODS), required=False, default="daily")
    start_date = serializers.DateTimeField(required=False)
    end_date = serializers.DateTimeField(required=False)


class RewardListQuerySerializer(serializers.Serializer):
    category = serializers.ChoiceField(choices=[value for value, _ in Reward.CATEGORIES], required=False)
    min_points = serializers.IntegerField(required=False, min_value=0)
    max_points = serializers.IntegerField(required=False, min_value=0)
    limit = serializers.IntegerField(required=False, default=50, min_value=1)
    offset = serializers.IntegerField(required=False, default=0, min_value=0)


# ===============================================================================
# REDEMPTIONS & POINTS
# ===============================================================================


class RewardRedemptionSerializer(serializers.ModelSerializer):
    """Redemption as members and staff see it; status reflects expiry even before the sweep runs"""

    reward_title = serializers.CharField(source="reward.title", read_only=True)
    status = serializers.SerializerMethodField()

    class Meta:
        model = RewardRedemption
        fields: ClassVar = [
            "id",
            "member_id",
            "reward",
            "reward_title",
            "points_spent",
            "code",
            "status",
            "redeemed_at",
            "expires_at",
            "used_at",
            "cancelled_at",
            "refunded_at",
            "notes",
            "created_at",
        ]

    def get_status(self, obj: RewardRedemption) -> str:
        return str(obj.effective_status()).upper()


class PointsTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = PointsTransaction
        fields: ClassVar = ["id", "transaction_type", "points", "balance_after", "reference", "description", "created_at"]
