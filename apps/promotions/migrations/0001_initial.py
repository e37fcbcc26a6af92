import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="DiscountCode",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("code", models.CharField(help_text="Uppercase, unique code", max_length=50, unique=True)),
                ("name", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True)),
                (
                    "discount_type",
                    models.CharField(
                        choices=[
                            ("PERCENTAGE", "Percentage"),
                            ("FIXED_AMOUNT", "Fixed Amount"),
                            ("FREE_TRIAL", "Free Trial"),
                            ("FIRST_MONTH_FREE", "First Month Free"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "discount_percent",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        max_digits=5,
                        null=True,
                        validators=[
                            django.core.validators.MinValueValidator(Decimal("0")),
                            django.core.validators.MaxValueValidator(Decimal("100.00")),
                        ],
                    ),
                ),
                (
                    "discount_amount_cents",
                    models.BigIntegerField(
                        blank=True, null=True, validators=[django.core.validators.MinValueValidator(0)]
                    ),
                ),
                (
                    "max_discount_cents",
                    models.BigIntegerField(
                        blank=True,
                        help_text="Cap for percentage discounts",
                        null=True,
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                (
                    "minimum_amount_cents",
                    models.BigIntegerField(
                        blank=True, null=True, validators=[django.core.validators.MinValueValidator(0)]
                    ),
                ),
                ("usage_limit", models.PositiveIntegerField(blank=True, help_text="Empty = unlimited", null=True)),
                ("usage_limit_per_member", models.PositiveIntegerField(blank=True, null=True)),
                ("usage_count", models.PositiveIntegerField(default=0, editable=False)),
                ("valid_from", models.DateTimeField(blank=True, default=django.utils.timezone.now, null=True)),
                ("valid_until", models.DateTimeField(blank=True, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("first_time_only", models.BooleanField(default=False)),
                (
                    "applicable_plans",
                    models.JSONField(blank=True, default=list, help_text="Plan IDs; empty = all plans"),
                ),
                ("bonus_days", models.PositiveIntegerField(blank=True, null=True)),
                ("referrer_member_id", models.UUIDField(blank=True, db_index=True, null=True)),
                ("referral_reward_points", models.PositiveIntegerField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Discount Code",
                "verbose_name_plural": "Discount Codes",
                "db_table": "promotion_discount_codes",
                "ordering": ("-created_at",),
                "indexes": [
                    models.Index(fields=["is_active", "valid_from", "valid_until"], name="promo_code_window_idx"),
                    models.Index(fields=["discount_type"], name="promo_code_type_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("usage_limit__isnull", True))
                        | models.Q(("usage_count__lte", models.F("usage_limit"))),
                        name="discount_code_usage_within_limit",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("valid_from__isnull", True))
                        | models.Q(("valid_until__isnull", True))
                        | models.Q(("valid_until__gte", models.F("valid_from"))),
                        name="discount_code_valid_window",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="DiscountUsage",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("member_id", models.UUIDField(db_index=True)),
                ("subscription_id", models.CharField(blank=True, max_length=100)),
                ("plan_id", models.CharField(blank=True, max_length=100)),
                ("amount_cents", models.BigIntegerField(default=0, help_text="Purchase amount before discount")),
                ("amount_discounted_cents", models.BigIntegerField(default=0)),
                ("bonus_days_added", models.PositiveIntegerField(default=0)),
                ("referral_reward_points", models.PositiveIntegerField(default=0)),
                ("used_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("reversed_at", models.DateTimeField(blank=True, null=True)),
                ("reversal_reason", models.TextField(blank=True)),
                (
                    "discount_code",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="usages",
                        to="promotions.discountcode",
                    ),
                ),
            ],
            options={
                "verbose_name": "Discount Usage",
                "verbose_name_plural": "Discount Usages",
                "db_table": "promotion_discount_usages",
                "ordering": ("-used_at",),
                "indexes": [
                    models.Index(fields=["discount_code", "member_id"], name="promo_usage_member_idx"),
                    models.Index(fields=["used_at"], name="promo_usage_used_at_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Reward",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True)),
                (
                    "category",
                    models.CharField(
                        choices=[
                            ("DISCOUNT", "Discount"),
                            ("FREE_CLASS", "Free Class"),
                            ("MERCHANDISE", "Merchandise"),
                            ("MEMBERSHIP_EXTENSION", "Membership Extension"),
                            ("PREMIUM_FEATURE", "Premium Feature"),
                            ("OTHER", "Other"),
                        ],
                        default="OTHER",
                        max_length=30,
                    ),
                ),
                (
                    "reward_type",
                    models.CharField(
                        choices=[
                            ("PERCENTAGE_DISCOUNT", "Percentage Discount"),
                            ("FIXED_AMOUNT_DISCOUNT", "Fixed Amount Discount"),
                            ("FREE_ITEM", "Free Item"),
                            ("MEMBERSHIP_UPGRADE", "Membership Upgrade"),
                            ("PREMIUM_FEATURE_ACCESS", "Premium Feature Access"),
                            ("CASHBACK", "Cashback"),
                            ("OTHER", "Other"),
                        ],
                        default="OTHER",
                        max_length=30,
                    ),
                ),
                (
                    "points_cost",
                    models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)]),
                ),
                (
                    "discount_percent",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        max_digits=5,
                        null=True,
                        validators=[
                            django.core.validators.MinValueValidator(Decimal("0")),
                            django.core.validators.MaxValueValidator(Decimal("100.00")),
                        ],
                    ),
                ),
                (
                    "discount_amount_cents",
                    models.BigIntegerField(
                        blank=True, null=True, validators=[django.core.validators.MinValueValidator(0)]
                    ),
                ),
                ("stock_quantity", models.PositiveIntegerField(blank=True, help_text="Empty = unlimited", null=True)),
                (
                    "redemption_limit",
                    models.PositiveIntegerField(
                        blank=True, help_text="Total redemptions allowed across all members", null=True
                    ),
                ),
                ("redemption_count", models.PositiveIntegerField(default=0, editable=False)),
                (
                    "redemption_validity_days",
                    models.PositiveIntegerField(
                        blank=True, help_text="Days an issued code stays active; empty = platform default", null=True
                    ),
                ),
                ("valid_from", models.DateTimeField(blank=True, null=True)),
                ("valid_until", models.DateTimeField(blank=True, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("archived_at", models.DateTimeField(blank=True, null=True)),
                ("terms_conditions", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Reward",
                "verbose_name_plural": "Rewards",
                "db_table": "promotion_rewards",
                "ordering": ("points_cost", "-created_at"),
                "indexes": [
                    models.Index(fields=["is_active", "category"], name="promo_reward_category_idx"),
                    models.Index(fields=["points_cost"], name="promo_reward_cost_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("discount_percent__isnull", True))
                        | models.Q(("discount_amount_cents__isnull", True)),
                        name="reward_single_discount_shape",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("stock_quantity__isnull", True))
                        | models.Q(("redemption_count__lte", models.F("stock_quantity"))),
                        name="reward_redemptions_within_stock",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("redemption_limit__isnull", True))
                        | models.Q(("redemption_count__lte", models.F("redemption_limit"))),
                        name="reward_redemptions_within_limit",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="RewardRedemption",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("member_id", models.UUIDField(db_index=True)),
                ("points_spent", models.PositiveIntegerField(help_text="Reward cost at redemption time")),
                ("code", models.CharField(max_length=30, unique=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("ACTIVE", "Active"),
                            ("USED", "Used"),
                            ("EXPIRED", "Expired"),
                            ("CANCELLED", "Cancelled"),
                            ("REFUNDED", "Refunded"),
                        ],
                        default="PENDING",
                        max_length=20,
                    ),
                ),
                ("redeemed_at", models.DateTimeField(blank=True, null=True)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                ("used_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("reversed_at", models.DateTimeField(blank=True, null=True)),
                ("reversal_reason", models.TextField(blank=True)),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "reward",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="redemptions",
                        to="promotions.reward",
                    ),
                ),
            ],
            options={
                "verbose_name": "Reward Redemption",
                "verbose_name_plural": "Reward Redemptions",
                "db_table": "promotion_reward_redemptions",
                "ordering": ("-created_at",),
                "indexes": [
                    models.Index(fields=["member_id", "status"], name="promo_redemption_member_idx"),
                    models.Index(fields=["reward", "status"], name="promo_redemption_reward_idx"),
                    models.Index(fields=["status", "expires_at"], name="promo_redemption_expiry_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=(models.Q(("status", "USED")) & models.Q(("used_at__isnull", False)))
                        | (~models.Q(("status", "USED")) & models.Q(("used_at__isnull", True))),
                        name="redemption_used_at_matches_status",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PointsAccount",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("member_id", models.UUIDField(unique=True)),
                ("balance", models.BigIntegerField(default=0)),
                ("lifetime_earned", models.BigIntegerField(default=0)),
                ("lifetime_redeemed", models.BigIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Points Account",
                "verbose_name_plural": "Points Accounts",
                "db_table": "promotion_points_accounts",
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("balance__gte", 0)), name="points_balance_non_negative"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PointsTransaction",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "transaction_type",
                    models.CharField(
                        choices=[
                            ("earn", "Earned"),
                            ("redeem", "Redeemed"),
                            ("refund", "Refunded"),
                            ("adjust", "Adjustment"),
                        ],
                        max_length=10,
                    ),
                ),
                ("points", models.BigIntegerField(help_text="Signed: positive credits, negative debits")),
                ("balance_after", models.BigIntegerField()),
                ("reference", models.CharField(blank=True, help_text="Redemption or usage ID", max_length=100)),
                ("description", models.CharField(blank=True, max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="transactions",
                        to="promotions.pointsaccount",
                    ),
                ),
            ],
            options={
                "db_table": "promotion_points_transactions",
                "ordering": ("-created_at",),
                "indexes": [
                    models.Index(fields=["account", "-created_at"], name="promo_points_tx_account_idx"),
                ],
            },
        ),
    ]
