# ===============================================================================
# PROMOTIONS API TESTS - envelopes, status codes, permissions
# ===============================================================================

import uuid
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from apps.promotions.models import DiscountCode, MemberProfile, Reward, RewardRedemption
from apps.promotions.points import PointsService
from tests.factories.promotions import create_discount_code, create_redemption, create_reward, fund_member

User = get_user_model()

BASE = '/api/promotions'


class PromotionsAPITestCase(TestCase):
    """Base test case with a member-desk user and a staff user"""

    def setUp(self):
        self.user = User.objects.create_user(username='desk', email='desk@gym.test', password='testpass123')
        self.admin = User.objects.create_user(
            username='admin', email='admin@gym.test', password='testpass123', is_staff=True
        )
        self.client = APIClient()
        self.client.force_authenticate(self.user)
        self.admin_client = APIClient()
        self.admin_client.force_authenticate(self.admin)
        self.member_id = uuid.uuid4()
        MemberProfile.objects.create(user=self.user, member_id=self.member_id)


class AuthenticationTestCase(PromotionsAPITestCase):
    def test_anonymous_rejected(self):
        response = APIClient().get(f'{BASE}/rewards/')
        self.assertIn(response.status_code, (401, 403))
        self.assertFalse(response.json()['success'])

    def test_member_cannot_create_codes(self):
        response = self.client.post(f'{BASE}/discount-codes/', {'name': 'X', 'discount_type': 'FREE_TRIAL'})
        self.assertEqual(response.status_code, 403)


class DiscountCodeAPITestCase(PromotionsAPITestCase):
    def test_create_and_list(self):
        response = self.admin_client.post(
            f'{BASE}/discount-codes/',
            {'code': 'spring15', 'name': 'Spring', 'discount_type': 'PERCENTAGE', 'discount_percent': '15.00'},
            format='json',
        )
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['data']['code'], 'SPRING15')
        self.assertEqual(body['data']['status'], 'active')

        listing = self.admin_client.get(f'{BASE}/discount-codes/').json()
        self.assertEqual(listing['pagination']['total'], 1)
        self.assertFalse(listing['pagination']['hasMore'])

    def test_create_invalid_shape(self):
        response = self.admin_client.post(
            f'{BASE}/discount-codes/', {'code': 'BAD', 'name': 'Bad', 'discount_type': 'PERCENTAGE'}, format='json'
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error_code'], 'INVALID_DATA')

    def test_duplicate_code_conflict(self):
        create_discount_code('DUP')
        response = self.admin_client.post(
            f'{BASE}/discount-codes/', {'code': 'dup', 'name': 'Dup', 'discount_type': 'FREE_TRIAL'}, format='json'
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error_code'], 'DUPLICATE_CODE')

    def test_update_and_delete(self):
        code = create_discount_code('CHANGE')
        response = self.admin_client.put(f'{BASE}/discount-codes/{code.id}/', {'usage_limit': 5}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['usage_limit'], 5)

        response = self.admin_client.delete(f'{BASE}/discount-codes/{code.id}/')
        self.assertEqual(response.status_code, 200)
        self.assertFalse(DiscountCode.objects.filter(pk=code.id).exists())

    def test_unknown_code_id(self):
        response = self.admin_client.get(f'{BASE}/discount-codes/{uuid.uuid4()}/')
        self.assertEqual(response.status_code, 404)
        self.assertIsNone(response.json()['data'])

    def test_validate_success(self):
        create_discount_code('SAVE20', max_discount_cents=3000)
        response = self.client.post(
            f'{BASE}/discount-codes/validate/',
            {'code': 'save20', 'member_id': str(self.member_id), 'amount_cents': 10000},
            format='json',
        )
        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(data['code'], 'SAVE20')
        self.assertEqual(data['type'], 'PERCENTAGE')
        self.assertEqual(data['value'], '20.00')
        self.assertEqual(data['max_discount'], 3000)
        self.assertEqual(data['effect']['discount_cents'], 2000)

    def test_validate_rejection_reason(self):
        create_discount_code('GOLDONLY', applicable_plans=['plan-gold'])
        response = self.client.post(
            f'{BASE}/discount-codes/validate/',
            {'code': 'GOLDONLY', 'member_id': str(self.member_id), 'plan_id': 'plan-basic'},
            format='json',
        )
        self.assertEqual(response.status_code, 422)
        body = response.json()
        self.assertFalse(body['success'])
        self.assertEqual(body['error_code'], 'PLAN_NOT_APPLICABLE')

    def test_validate_unknown_code(self):
        response = self.client.post(
            f'{BASE}/discount-codes/validate/', {'code': 'NOPE', 'member_id': str(self.member_id)}, format='json'
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error_code'], 'INVALID_CODE')

    def test_validate_missing_code(self):
        response = self.client.post(f'{BASE}/discount-codes/validate/', {}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error_code'], 'VALIDATION_ERROR')

    def test_validate_acts_for_session_member(self):
        create_discount_code('SELF')
        response = self.client.post(f'{BASE}/discount-codes/validate/', {'code': 'SELF'}, format='json')
        self.assertEqual(response.status_code, 200)

    def test_staff_must_name_member(self):
        create_discount_code('STAFF')
        response = self.admin_client.post(f'{BASE}/discount-codes/validate/', {'code': 'STAFF'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error_code'], 'MEMBER_REQUIRED')

    def test_apply_then_reverse(self):
        code = create_discount_code('APPLYME', usage_limit=1)
        response = self.client.post(
            f'{BASE}/discount-codes/apply/',
            {'code': 'APPLYME', 'member_id': str(self.member_id), 'amount_cents': 5000},
            format='json',
        )
        self.assertEqual(response.status_code, 201)
        usage_id = response.json()['data']['usage']['id']

        response = self.admin_client.post(
            f'{BASE}/discount-codes/apply/',
            {'code': 'APPLYME', 'member_id': str(uuid.uuid4()), 'amount_cents': 5000},
            format='json',
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()['error_code'], 'EXHAUSTED')

        response = self.admin_client.post(f'{BASE}/discount-usages/{usage_id}/reverse/', {'reason': 'refund'})
        self.assertTrue(response.json()['data']['reversed'])
        code.refresh_from_db()
        self.assertEqual(code.usage_count, 0)

        response = self.admin_client.post(f'{BASE}/discount-usages/{usage_id}/reverse/')
        self.assertFalse(response.json()['data']['reversed'])

    def test_usage_history(self):
        code = create_discount_code('HISTORY')
        self.client.post(
            f'{BASE}/discount-codes/apply/',
            {'code': 'HISTORY', 'member_id': str(self.member_id), 'amount_cents': 1000},
            format='json',
        )
        body = self.admin_client.get(f'{BASE}/discount-codes/{code.id}/usage-history/').json()
        self.assertEqual(body['pagination']['total'], 1)
        self.assertEqual(body['data'][0]['code'], 'HISTORY')


class RewardAPITestCase(PromotionsAPITestCase):
    def setUp(self):
        super().setUp()
        self.reward = create_reward('Smoothie', points_cost=100, stock_quantity=2)

    def test_list_rewards(self):
        create_reward('Hidden', is_active=False)
        body = self.client.get(f'{BASE}/rewards/', {'limit': 10}).json()
        self.assertTrue(body['success'])
        self.assertEqual([item['title'] for item in body['data']], ['Smoothie'])
        self.assertEqual(body['pagination'], {'total': 1, 'limit': 10, 'offset': 0, 'hasMore': False})

    def test_admin_creates_reward(self):
        response = self.admin_client.post(
            f'{BASE}/rewards/',
            {'title': 'Towel', 'category': 'MERCHANDISE', 'reward_type': 'FREE_ITEM', 'points_cost': 50},
            format='json',
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Reward.objects.get(title='Towel').created_by, self.admin)

    def test_member_cannot_create_reward(self):
        response = self.client.post(
            f'{BASE}/rewards/', {'title': 'Towel', 'points_cost': 50}, format='json'
        )
        self.assertEqual(response.status_code, 403)

    def test_redeem_flow(self):
        fund_member(self.member_id, 150)
        response = self.client.post(
            f'{BASE}/rewards/{self.reward.id}/redeem/', {'member_id': str(self.member_id)}, format='json'
        )
        self.assertEqual(response.status_code, 201)
        data = response.json()['data']
        self.assertEqual(data['status'], 'ACTIVE')
        self.assertEqual(PointsService.balance(self.member_id), 50)

        response = self.client.post(
            f'{BASE}/rewards/{self.reward.id}/redeem/', {'member_id': str(self.member_id)}, format='json'
        )
        self.assertEqual(response.status_code, 422)
        body = response.json()
        self.assertEqual(body['error_code'], 'INSUFFICIENT_POINTS')
        self.assertEqual(body['details']['shortfall'], 50)

    def test_verify_code(self):
        redemption = create_redemption(self.reward, self.member_id)
        response = self.client.post(f'{BASE}/rewards/verify-code/', {'code': redemption.code.lower()}, format='json')
        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertTrue(data['is_usable'])
        self.assertEqual(data['redemption']['id'], str(redemption.id))
        self.assertEqual(data['reward']['title'], 'Smoothie')

    def test_verify_expired_code_returns_record(self):
        redemption = create_redemption(self.reward, self.member_id, expires_at=timezone.now() - timedelta(days=1))
        data = self.client.post(f'{BASE}/rewards/verify-code/', {'code': redemption.code}, format='json').json()
        self.assertEqual(data['data']['status'], 'EXPIRED')
        self.assertFalse(data['data']['is_usable'])

    def test_verify_unknown_code(self):
        response = self.client.post(f'{BASE}/rewards/verify-code/', {'code': 'REWARD-ZZZZ-ZZZZ'}, format='json')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error_code'], 'CODE_NOT_FOUND')

    def test_delete_archives_redeemed_reward(self):
        create_redemption(self.reward, self.member_id, status='USED')
        response = self.admin_client.delete(f'{BASE}/rewards/{self.reward.id}/')
        self.assertEqual(response.json()['data'], {'outcome': 'archived'})

    def test_stats_and_trend(self):
        create_redemption(self.reward, self.member_id)
        stats = self.admin_client.get(f'{BASE}/rewards/stats/').json()['data']
        self.assertEqual(stats['total_redemptions'], 1)

        per_reward = self.admin_client.get(f'{BASE}/rewards/stats/', {'reward_id': str(self.reward.id)}).json()
        self.assertEqual(per_reward['data']['reward_id'], str(self.reward.id))

        trend = self.admin_client.get(f'{BASE}/rewards/trend/', {'period': 'monthly'}).json()
        self.assertEqual(trend['data'][0]['redemptions'], 1)

        response = self.admin_client.get(f'{BASE}/rewards/trend/', {'period': 'hourly'})
        self.assertEqual(response.status_code, 400)

    def test_stats_rejects_malformed_reward_id(self):
        response = self.admin_client.get(f'{BASE}/rewards/stats/', {'reward_id': 'not-a-uuid'})
        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertFalse(body['success'])
        self.assertEqual(body['error_code'], 'VALIDATION_ERROR')

    def test_stats_for_unknown_reward(self):
        response = self.admin_client.get(f'{BASE}/rewards/stats/', {'reward_id': str(uuid.uuid4())})
        self.assertEqual(response.status_code, 404)


class RedemptionAPITestCase(PromotionsAPITestCase):
    def setUp(self):
        super().setUp()
        self.reward = create_reward('Protein Shake', points_cost=100, stock_quantity=5)
        fund_member(self.member_id, 500)
        response = self.client.post(
            f'{BASE}/rewards/{self.reward.id}/redeem/', {'member_id': str(self.member_id)}, format='json'
        )
        self.redemption_id = response.json()['data']['id']

    def test_mark_used(self):
        response = self.admin_client.put(f'{BASE}/redemptions/{self.redemption_id}/mark-used/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['status'], 'USED')

    def test_refund(self):
        response = self.admin_client.post(f'{BASE}/redemptions/{self.redemption_id}/refund/', {'reason': 'Closed'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['refunded_points'], 100)
        self.assertEqual(PointsService.balance(self.member_id), 500)

        response = self.admin_client.post(f'{BASE}/redemptions/{self.redemption_id}/refund/')
        self.assertEqual(response.status_code, 409)
        body = response.json()
        self.assertEqual(body['error_code'], 'ILLEGAL_TRANSITION')
        self.assertEqual(body['details']['current_status'], 'REFUNDED')

    def test_cancel(self):
        response = self.admin_client.post(f'{BASE}/redemptions/{self.redemption_id}/cancel/')
        self.assertEqual(response.json()['data']['status'], 'CANCELLED')
        self.assertEqual(RewardRedemption.objects.get(pk=self.redemption_id).status, 'CANCELLED')

    def test_member_cannot_refund(self):
        response = self.client.post(f'{BASE}/redemptions/{self.redemption_id}/refund/')
        self.assertEqual(response.status_code, 403)

    def test_admin_listing_filters(self):
        other_member = uuid.uuid4()
        create_redemption(self.reward, other_member, status='USED')

        body = self.admin_client.get(f'{BASE}/redemptions/').json()
        self.assertEqual(body['pagination']['total'], 2)

        body = self.admin_client.get(f'{BASE}/redemptions/', {'member_id': str(other_member)}).json()
        self.assertEqual(body['pagination']['total'], 1)

        body = self.admin_client.get(f'{BASE}/redemptions/', {'status': 'active'}).json()
        self.assertEqual(body['data'][0]['id'], self.redemption_id)

        body = self.admin_client.get(f'{BASE}/redemptions/', {'search': 'protein'}).json()
        self.assertEqual(body['pagination']['total'], 2)

    def test_member_redemptions(self):
        body = self.client.get(f'{BASE}/members/{self.member_id}/redemptions/').json()
        self.assertEqual(body['pagination']['total'], 1)
        body = self.client.get(f'{BASE}/members/{self.member_id}/redemptions/', {'status': 'USED'}).json()
        self.assertEqual(body['pagination']['total'], 0)

    def test_member_points(self):
        body = self.client.get(f'{BASE}/members/{self.member_id}/points/').json()
        self.assertEqual(body['data']['account']['balance'], 400)
        self.assertEqual(len(body['data']['transactions']), 2)

    def test_status_filter_matches_displayed_status(self):
        overdue = create_redemption(self.reward, self.member_id, expires_at=timezone.now() - timedelta(hours=1))

        body = self.admin_client.get(f'{BASE}/redemptions/', {'status': 'EXPIRED'}).json()
        self.assertEqual(body['pagination']['total'], 1)
        self.assertEqual(body['data'][0]['id'], str(overdue.id))
        self.assertEqual(body['data'][0]['status'], 'EXPIRED')

        body = self.admin_client.get(f'{BASE}/redemptions/', {'status': 'ACTIVE'}).json()
        self.assertEqual([item['id'] for item in body['data']], [self.redemption_id])
        self.assertEqual(body['data'][0]['status'], 'ACTIVE')

        body = self.client.get(f'{BASE}/members/{self.member_id}/redemptions/', {'status': 'expired'}).json()
        self.assertEqual(body['pagination']['total'], 1)


class MemberScopeAPITestCase(PromotionsAPITestCase):
    """The acting member comes from the session, never from the request body"""

    def setUp(self):
        super().setUp()
        self.reward = create_reward('Massage', points_cost=100, stock_quantity=3)
        self.stranger = User.objects.create_user(username='stranger', email='stranger@gym.test', password='testpass123')
        self.stranger_member_id = uuid.uuid4()
        MemberProfile.objects.create(user=self.stranger, member_id=self.stranger_member_id)
        self.stranger_client = APIClient()
        self.stranger_client.force_authenticate(self.stranger)
        fund_member(self.member_id, 100)

    def test_cannot_redeem_with_someone_elses_points(self):
        response = self.stranger_client.post(
            f'{BASE}/rewards/{self.reward.id}/redeem/', {'member_id': str(self.member_id)}, format='json'
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['error_code'], 'MEMBER_MISMATCH')
        self.assertEqual(PointsService.balance(self.member_id), 100)
        self.assertFalse(RewardRedemption.objects.exists())

    def test_redeem_without_member_id_uses_own_account(self):
        fund_member(self.stranger_member_id, 100)
        response = self.stranger_client.post(f'{BASE}/rewards/{self.reward.id}/redeem/', {}, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['data']['member_id'], str(self.stranger_member_id))
        self.assertEqual(PointsService.balance(self.member_id), 100)

    def test_cannot_read_other_members_history(self):
        response = self.stranger_client.get(f'{BASE}/members/{self.member_id}/points/')
        self.assertEqual(response.status_code, 403)
        response = self.stranger_client.get(f'{BASE}/members/{self.member_id}/redemptions/')
        self.assertEqual(response.status_code, 403)

    def test_user_without_profile_is_refused(self):
        loner = User.objects.create_user(username='loner', email='loner@gym.test', password='testpass123')
        client = APIClient()
        client.force_authenticate(loner)
        response = client.post(f'{BASE}/rewards/{self.reward.id}/redeem/', {}, format='json')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['error_code'], 'MEMBER_PROFILE_REQUIRED')

    def test_staff_can_redeem_for_member(self):
        response = self.admin_client.post(
            f'{BASE}/rewards/{self.reward.id}/redeem/', {'member_id': str(self.member_id)}, format='json'
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(PointsService.balance(self.member_id), 0)

        body = self.admin_client.get(f'{BASE}/members/{self.member_id}/redemptions/').json()
        self.assertEqual(body['pagination']['total'], 1)

    def test_declared_subscriptions_ignored_for_members(self):
        MemberProfile.objects.filter(user=self.user).update(completed_subscriptions=2)
        create_discount_code('NEWBIE', first_time_only=True)

        response = self.client.post(
            f'{BASE}/discount-codes/validate/', {'code': 'NEWBIE', 'completed_subscriptions': 0}, format='json'
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()['error_code'], 'NOT_FIRST_TIME')

    def test_staff_declared_subscriptions_count_for_unlinked_member(self):
        create_discount_code('NEWBIE', first_time_only=True)
        payload = {'code': 'NEWBIE', 'member_id': str(uuid.uuid4()), 'completed_subscriptions': 1}

        response = self.admin_client.post(f'{BASE}/discount-codes/validate/', payload, format='json')
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()['error_code'], 'NOT_FIRST_TIME')

        payload['completed_subscriptions'] = 0
        response = self.admin_client.post(f'{BASE}/discount-codes/validate/', payload, format='json')
        self.assertEqual(response.status_code, 200)
