# ===============================================================================
# ELIGIBILITY CHECK TESTS
# ===============================================================================

import uuid
from datetime import datetime, timedelta
from datetime import timezone as dt_timezone

from django.test import SimpleTestCase

from apps.promotions.status import EntityStatus, Redeemable, RedeemableKind
from apps.promotions.validation import EligibilityContext, RejectionReason, check_eligibility

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=dt_timezone.utc)
MEMBER = uuid.uuid4()


def code(**overrides):
    fields = {
        'kind': RedeemableKind.DISCOUNT_CODE,
        'entity_id': uuid.uuid4(),
        'is_active': True,
        'valid_from': NOW - timedelta(days=30),
        'valid_until': NOW + timedelta(days=30),
    }
    fields.update(overrides)
    return Redeemable(**fields)


def reward(**overrides):
    fields = {'kind': RedeemableKind.REWARD, 'points_cost': 100}
    fields.update(overrides)
    return code(**fields)


class CodeEligibilityTestCase(SimpleTestCase):
    """Each rejection reason and the order they are checked in"""

    def test_valid_code(self):
        result = check_eligibility(code(), EligibilityContext(member_id=MEMBER, amount_cents=5000), NOW)
        self.assertTrue(result.is_valid)
        self.assertEqual(result.status, EntityStatus.ACTIVE)
        self.assertEqual(result.error_code, '')
        self.assertEqual(result.warnings, [])

    def test_status_rejections(self):
        """Non-active statuses reject with the matching reason"""
        cases = (
            (code(is_active=False), RejectionReason.DISABLED),
            (code(valid_from=NOW + timedelta(days=1)), RejectionReason.NOT_STARTED),
            (code(valid_until=NOW - timedelta(days=1)), RejectionReason.EXPIRED),
            (code(usage_count=10, caps=(10,)), RejectionReason.EXHAUSTED),
        )
        for redeemable, reason in cases:
            with self.subTest(reason=reason):
                result = check_eligibility(redeemable, EligibilityContext(member_id=MEMBER), NOW)
                self.assertFalse(result.is_valid)
                self.assertEqual(result.error_code, reason)

    def test_below_minimum_amount(self):
        result = check_eligibility(
            code(minimum_amount_cents=10000), EligibilityContext(member_id=MEMBER, amount_cents=9999), NOW
        )
        self.assertEqual(result.error_code, RejectionReason.BELOW_MINIMUM_AMOUNT)
        self.assertEqual(result.details, {'minimum_amount_cents': 10000})

    def test_minimum_amount_met_exactly(self):
        result = check_eligibility(
            code(minimum_amount_cents=10000), EligibilityContext(member_id=MEMBER, amount_cents=10000), NOW
        )
        self.assertTrue(result.is_valid)

    def test_missing_amount_fails_minimum(self):
        """Without a purchase amount a minimum cannot be satisfied"""
        result = check_eligibility(code(minimum_amount_cents=1), EligibilityContext(member_id=MEMBER), NOW)
        self.assertEqual(result.error_code, RejectionReason.BELOW_MINIMUM_AMOUNT)

    def test_not_first_time(self):
        result = check_eligibility(
            code(first_time_only=True), EligibilityContext(member_id=MEMBER, completed_subscriptions=1), NOW
        )
        self.assertEqual(result.error_code, RejectionReason.NOT_FIRST_TIME)

    def test_first_time_member_accepted(self):
        result = check_eligibility(
            code(first_time_only=True), EligibilityContext(member_id=MEMBER, completed_subscriptions=0), NOW
        )
        self.assertTrue(result.is_valid)

    def test_member_limit_reached(self):
        result = check_eligibility(
            code(usage_limit_per_member=1), EligibilityContext(member_id=MEMBER, member_usage_count=1), NOW
        )
        self.assertEqual(result.error_code, RejectionReason.MEMBER_LIMIT_REACHED)

    def test_plan_not_applicable(self):
        redeemable = code(applicable_plans=('plan-gold',))
        rejected = check_eligibility(redeemable, EligibilityContext(member_id=MEMBER, plan_id='plan-basic'), NOW)
        accepted = check_eligibility(redeemable, EligibilityContext(member_id=MEMBER, plan_id='plan-gold'), NOW)
        self.assertEqual(rejected.error_code, RejectionReason.PLAN_NOT_APPLICABLE)
        self.assertTrue(accepted.is_valid)

    def test_empty_plan_list_allows_any_plan(self):
        result = check_eligibility(code(), EligibilityContext(member_id=MEMBER, plan_id='anything'), NOW)
        self.assertTrue(result.is_valid)

    def test_check_order_is_stable(self):
        """Status is checked before amount, amount before first-time, first-time before member limit"""
        redeemable = code(
            valid_until=NOW - timedelta(days=1),
            minimum_amount_cents=10000,
            first_time_only=True,
            usage_limit_per_member=1,
        )
        context = EligibilityContext(member_id=MEMBER, amount_cents=1, completed_subscriptions=2, member_usage_count=5)
        self.assertEqual(check_eligibility(redeemable, context, NOW).error_code, RejectionReason.EXPIRED)

        redeemable = code(minimum_amount_cents=10000, first_time_only=True, usage_limit_per_member=1)
        self.assertEqual(check_eligibility(redeemable, context, NOW).error_code, RejectionReason.BELOW_MINIMUM_AMOUNT)

        redeemable = code(first_time_only=True, usage_limit_per_member=1)
        self.assertEqual(check_eligibility(redeemable, context, NOW).error_code, RejectionReason.NOT_FIRST_TIME)

    def test_expiry_warning_within_three_days(self):
        result = check_eligibility(
            code(valid_until=NOW + timedelta(days=2, hours=1)), EligibilityContext(member_id=MEMBER), NOW
        )
        self.assertTrue(result.is_valid)
        self.assertEqual(result.warnings, ['Offer expires in 2 day(s)'])


class RewardEligibilityTestCase(SimpleTestCase):
    """Points and stock checks for rewards"""

    def test_sufficient_points(self):
        result = check_eligibility(reward(), EligibilityContext(member_id=MEMBER, points_balance=100), NOW)
        self.assertTrue(result.is_valid)

    def test_insufficient_points_reports_shortfall(self):
        result = check_eligibility(reward(), EligibilityContext(member_id=MEMBER, points_balance=40), NOW)
        self.assertEqual(result.error_code, RejectionReason.INSUFFICIENT_POINTS)
        self.assertEqual(result.details, {'required': 100, 'current': 40, 'shortfall': 60})

    def test_missing_balance_counts_as_zero(self):
        result = check_eligibility(reward(), EligibilityContext(member_id=MEMBER), NOW)
        self.assertEqual(result.details['shortfall'], 100)

    def test_out_of_stock(self):
        """Stock as the binding cap reports out-of-stock, ahead of the points check"""
        redeemable = reward(stock_quantity=5, usage_count=5, caps=(5,))
        result = check_eligibility(redeemable, EligibilityContext(member_id=MEMBER, points_balance=0), NOW)
        self.assertEqual(result.error_code, RejectionReason.OUT_OF_STOCK)

    def test_global_limit_reports_exhausted(self):
        """A reward with stock left but its redemption limit reached is exhausted"""
        redeemable = reward(stock_quantity=50, usage_count=3, caps=(50, 3))
        result = check_eligibility(redeemable, EligibilityContext(member_id=MEMBER, points_balance=500), NOW)
        self.assertEqual(result.error_code, RejectionReason.EXHAUSTED)
