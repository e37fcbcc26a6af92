# ===============================================================================
# STATUS DERIVATION TESTS
# ===============================================================================

from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from types import SimpleNamespace

from django.test import SimpleTestCase

from apps.promotions.status import (
    EntityStatus,
    Redeemable,
    RedeemableKind,
    derive_redemption_status,
    derive_status,
)

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=dt_timezone.utc)


def make_redeemable(**overrides):
    fields = {
        'kind': RedeemableKind.DISCOUNT_CODE,
        'entity_id': None,
        'is_active': True,
        'valid_from': NOW - timedelta(days=1),
        'valid_until': NOW + timedelta(days=10),
    }
    fields.update(overrides)
    return Redeemable(**fields)


class DeriveStatusTestCase(SimpleTestCase):
    """Status precedence: disabled, not-started, expired, exhausted, active"""

    def test_active_inside_window(self):
        """Active flag set, inside window, below caps reads active"""
        self.assertEqual(derive_status(make_redeemable(), NOW), EntityStatus.ACTIVE)

    def test_disabled_wins_over_everything(self):
        """A disabled code reads disabled even if expired and exhausted"""
        redeemable = make_redeemable(
            is_active=False, valid_until=NOW - timedelta(days=1), usage_count=5, caps=(5,)
        )
        self.assertEqual(derive_status(redeemable, NOW), EntityStatus.DISABLED)

    def test_not_started_before_window(self):
        """Before valid_from the code is not-started"""
        redeemable = make_redeemable(valid_from=NOW + timedelta(seconds=1))
        self.assertEqual(derive_status(redeemable, NOW), EntityStatus.NOT_STARTED)

    def test_expired_after_window(self):
        """After valid_until the code is expired"""
        redeemable = make_redeemable(valid_until=NOW - timedelta(seconds=1))
        self.assertEqual(derive_status(redeemable, NOW), EntityStatus.EXPIRED)

    def test_expired_beats_exhausted(self):
        """Expiry takes precedence over exhausted caps"""
        redeemable = make_redeemable(valid_until=NOW - timedelta(days=1), usage_count=3, caps=(3,))
        self.assertEqual(derive_status(redeemable, NOW), EntityStatus.EXPIRED)

    def test_window_inclusive_at_both_ends(self):
        """valid_from and valid_until themselves are inside the window"""
        self.assertEqual(derive_status(make_redeemable(valid_from=NOW), NOW), EntityStatus.ACTIVE)
        self.assertEqual(derive_status(make_redeemable(valid_until=NOW), NOW), EntityStatus.ACTIVE)

    def test_open_ended_window(self):
        """Missing bounds never restrict"""
        redeemable = make_redeemable(valid_from=None, valid_until=None)
        self.assertEqual(derive_status(redeemable, NOW), EntityStatus.ACTIVE)

    def test_exhausted_when_count_reaches_cap(self):
        """usage_count == cap reads exhausted"""
        self.assertEqual(derive_status(make_redeemable(usage_count=2, caps=(2,)), NOW), EntityStatus.EXHAUSTED)
        self.assertEqual(derive_status(make_redeemable(usage_count=1, caps=(2,)), NOW), EntityStatus.ACTIVE)

    def test_tightest_cap_binds(self):
        """With stock and a global limit, the smaller one decides"""
        redeemable = make_redeemable(kind=RedeemableKind.REWARD, usage_count=3, caps=(10, 3))
        self.assertEqual(derive_status(redeemable, NOW), EntityStatus.EXHAUSTED)
        self.assertEqual(redeemable.remaining, 0)

    def test_remaining_is_none_when_uncapped(self):
        self.assertIsNone(make_redeemable(usage_count=99).remaining)
        self.assertEqual(make_redeemable(usage_count=1, caps=(5, 4)).remaining, 3)


class DeriveRedemptionStatusTestCase(SimpleTestCase):
    """Effective redemption status reflects expiry before the sweep persists it"""

    def test_active_past_expiry_reads_expired(self):
        redemption = SimpleNamespace(status='ACTIVE', expires_at=NOW - timedelta(minutes=1))
        self.assertEqual(derive_redemption_status(redemption, NOW), EntityStatus.EXPIRED)

    def test_active_at_expiry_is_still_active(self):
        redemption = SimpleNamespace(status='ACTIVE', expires_at=NOW)
        self.assertEqual(derive_redemption_status(redemption, NOW), EntityStatus.ACTIVE)

    def test_terminal_states_map_directly(self):
        """Stored terminal states are reported as-is, whatever the expiry"""
        for stored, expected in (
            ('USED', EntityStatus.USED),
            ('REFUNDED', EntityStatus.REFUNDED),
            ('CANCELLED', EntityStatus.CANCELLED),
            ('EXPIRED', EntityStatus.EXPIRED),
            ('PENDING', EntityStatus.PENDING),
        ):
            redemption = SimpleNamespace(status=stored, expires_at=NOW - timedelta(days=1))
            self.assertEqual(derive_redemption_status(redemption, NOW), expected)


class StatusMonotonicityTestCase(SimpleTestCase):
    def test_expired_never_reverts_as_time_moves_forward(self):
        """For a fixed record, once expired the status stays expired at every later instant"""
        redeemable = make_redeemable(valid_until=NOW)
        statuses = [derive_status(redeemable, NOW + timedelta(hours=hours)) for hours in range(-2, 48)]
        first_expired = statuses.index(EntityStatus.EXPIRED)
        self.assertTrue(all(status == EntityStatus.EXPIRED for status in statuses[first_expired:]))
        self.assertTrue(all(status == EntityStatus.ACTIVE for status in statuses[:first_expired]))
