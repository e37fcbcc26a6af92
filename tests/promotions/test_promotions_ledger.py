# ===============================================================================
# USAGE LEDGER TESTS
# ===============================================================================

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from unittest import skipUnless

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import connection
from django.test import TestCase, TransactionTestCase
from django.utils import timezone

from apps.promotions.exceptions import Conflict, NotFound
from apps.promotions.ledger import DiscountUsageLedger, RedemptionLedger
from apps.promotions.models import DiscountCode, DiscountUsage, Reward, RewardRedemption
from tests.factories.promotions import create_discount_code, create_reward


class DiscountUsageLedgerTestCase(TestCase):
    """Atomic slot claims and reversals on discount codes"""

    def setUp(self):
        self.ledger = DiscountUsageLedger()
        self.code = create_discount_code('CAP3', usage_limit=3)

    def usage(self, member_id=None):
        return DiscountUsage(discount_code=self.code, member_id=member_id or uuid.uuid4(), amount_cents=10000)

    def test_at_most_k_winners_for_cap_k(self):
        """Five claims against a cap of three: exactly three win"""
        winners, losers = 0, 0
        for _ in range(5):
            try:
                self.ledger.record_usage(self.usage())
                winners += 1
            except Conflict as exc:
                self.assertEqual(exc.error_code, 'USAGE_LIMIT_REACHED')
                losers += 1

        self.assertEqual((winners, losers), (3, 2))
        self.code.refresh_from_db()
        self.assertEqual(self.code.usage_count, 3)
        self.assertEqual(DiscountUsage.objects.filter(discount_code=self.code).count(), 3)

    def test_failed_claim_writes_nothing(self):
        code = create_discount_code('ONEUSE', usage_limit=1)
        self.ledger.record_usage(DiscountUsage(discount_code=code, member_id=uuid.uuid4()))
        with self.assertRaises(Conflict):
            self.ledger.record_usage(DiscountUsage(discount_code=code, member_id=uuid.uuid4()))
        self.assertEqual(DiscountUsage.objects.filter(discount_code=code).count(), 1)

    def test_uncapped_code_never_conflicts(self):
        code = create_discount_code('OPEN')
        for _ in range(10):
            self.ledger.record_usage(DiscountUsage(discount_code=code, member_id=uuid.uuid4()))
        code.refresh_from_db()
        self.assertEqual(code.usage_count, 10)

    def test_reversal_frees_a_slot(self):
        entries = [self.ledger.record_usage(self.usage()) for _ in range(3)]
        self.assertTrue(self.ledger.reverse(entries[0].id, 'chargeback'))

        self.code.refresh_from_db()
        self.assertEqual(self.code.usage_count, 2)
        self.ledger.record_usage(self.usage())
        self.code.refresh_from_db()
        self.assertEqual(self.code.usage_count, 3)

    def test_double_reversal_is_a_noop(self):
        """Reversing twice never decrements the counter twice"""
        entry = self.ledger.record_usage(self.usage())
        self.assertTrue(self.ledger.reverse(entry.id))
        self.assertFalse(self.ledger.reverse(entry.id))
        self.code.refresh_from_db()
        self.assertEqual(self.code.usage_count, 0)

        entry.refresh_from_db()
        self.assertIsNotNone(entry.reversed_at)

    def test_reversal_stamped_with_given_time(self):
        moment = timezone.now() - timedelta(days=3)
        entry = self.ledger.record_usage(self.usage())
        self.ledger.reverse(entry.id, 'backdated', now=moment)
        entry.refresh_from_db()
        self.assertEqual(entry.reversed_at, moment)

    def test_reverse_unknown_entry(self):
        with self.assertRaises(NotFound):
            self.ledger.reverse(uuid.uuid4())

    def test_record_against_missing_parent(self):
        code = create_discount_code('GONE')
        usage = DiscountUsage(discount_code=code, member_id=uuid.uuid4())
        DiscountCode.objects.filter(pk=code.pk).delete()
        with self.assertRaises(NotFound):
            self.ledger.record_usage(usage)

    def test_counts_exclude_reversed_entries(self):
        member = uuid.uuid4()
        first = self.ledger.record_usage(self.usage(member))
        self.ledger.record_usage(self.usage(member))
        self.ledger.record_usage(self.usage())
        self.ledger.reverse(first.id)

        self.assertEqual(self.ledger.count_for_member(self.code.id, member), 1)
        self.assertEqual(self.ledger.live_count(self.code.id), 2)

    def test_usages_are_immutable(self):
        entry = self.ledger.record_usage(self.usage())
        entry.amount_cents = 1
        with self.assertRaises(DjangoValidationError):
            entry.save()


class RedemptionLedgerTestCase(TestCase):
    """Rewards are bounded by both stock and the global redemption limit"""

    def setUp(self):
        self.ledger = RedemptionLedger()

    def redemption(self, reward):
        return RewardRedemption(
            member_id=uuid.uuid4(),
            reward=reward,
            points_spent=reward.points_cost,
            code=f'REWARD-{uuid.uuid4().hex[:4].upper()}-TEST',
            status='PENDING',
        )

    def test_stock_one_has_one_winner(self):
        """Two redemptions that both passed validation: only one claims the unit"""
        reward = create_reward(stock_quantity=1)
        first, second = self.redemption(reward), self.redemption(reward)

        self.ledger.record_usage(first)
        with self.assertRaises(Conflict):
            self.ledger.record_usage(second)

        reward.refresh_from_db()
        self.assertEqual(reward.redemption_count, 1)
        self.assertEqual(reward.available_stock, 0)
        self.assertFalse(RewardRedemption.objects.filter(pk=second.pk).exists())

    def test_redemption_limit_binds_before_stock(self):
        reward = create_reward(stock_quantity=10, redemption_limit=2)
        self.ledger.record_usage(self.redemption(reward))
        self.ledger.record_usage(self.redemption(reward))
        with self.assertRaises(Conflict):
            self.ledger.record_usage(self.redemption(reward))
        self.assertEqual(Reward.objects.get(pk=reward.pk).redemption_count, 2)

    def test_counter_matches_live_rows_after_mixed_sequence(self):
        reward = create_reward(stock_quantity=5)
        entries = [self.ledger.record_usage(self.redemption(reward)) for _ in range(4)]
        self.ledger.reverse(entries[1].id, 'refund')
        self.ledger.reverse(entries[3].id, 'cancelled')
        self.ledger.reverse(entries[3].id, 'cancelled')
        self.ledger.record_usage(self.redemption(reward))

        reward.refresh_from_db()
        self.assertEqual(reward.redemption_count, self.ledger.live_count(reward.id))
        self.assertEqual(reward.redemption_count, 3)


@skipUnless(connection.vendor == 'postgresql', 'Row-level concurrency needs PostgreSQL')
class ConcurrentClaimTestCase(TransactionTestCase):
    """Parallel claims from separate connections never push a counter past its cap"""

    num_threads = 8

    def claim_concurrently(self, claim):
        barrier = threading.Barrier(self.num_threads)

        def worker():
            try:
                barrier.wait()
                claim()
                return True
            except Conflict:
                return False
            finally:
                connection.close()

        with ThreadPoolExecutor(max_workers=self.num_threads) as executor:
            futures = [executor.submit(worker) for _ in range(self.num_threads)]
            return [future.result() for future in futures]

    def test_discount_code_cap_has_exactly_k_winners(self):
        code = create_discount_code('RUSH3', usage_limit=3)
        ledger = DiscountUsageLedger()

        outcomes = self.claim_concurrently(
            lambda: ledger.record_usage(
                DiscountUsage(discount_code_id=code.pk, member_id=uuid.uuid4(), amount_cents=5000)
            )
        )

        self.assertEqual(outcomes.count(True), 3)
        code.refresh_from_db()
        self.assertEqual(code.usage_count, 3)
        self.assertEqual(DiscountUsage.objects.filter(discount_code=code).count(), 3)

    def test_last_stock_unit_has_one_winner(self):
        reward = create_reward('Last Towel', points_cost=10, stock_quantity=1)
        ledger = RedemptionLedger()

        outcomes = self.claim_concurrently(
            lambda: ledger.record_usage(
                RewardRedemption(
                    reward_id=reward.pk,
                    member_id=uuid.uuid4(),
                    points_spent=10,
                    code=f'REWARD-{uuid.uuid4().hex[:4].upper()}-{uuid.uuid4().hex[:4].upper()}',
                    status='PENDING',
                )
            )
        )

        self.assertEqual(outcomes.count(True), 1)
        reward.refresh_from_db()
        self.assertEqual(reward.redemption_count, 1)
        self.assertEqual(RewardRedemption.objects.filter(reward=reward).count(), 1)
