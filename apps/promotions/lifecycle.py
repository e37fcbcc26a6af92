"""
Reward redemption lifecycle.

Every transition is a conditional UPDATE on the stored status, so two
requests racing on the same redemption cannot both succeed. Points, stock
and status always move together inside one transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, ClassVar
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from apps.common.types import Result

from .codes import REDEMPTION_CODE_PREFIX, CodeCodec, VerifiedCode
from .conf import get_setting
from .exceptions import Conflict, ConstraintViolation, IllegalTransition, NotFound
from .ledger import RedemptionLedger
from .models import Reward, RewardRedemption
from .points import PointsService
from .signals import redemption_transitioned, send_on_commit
from .status import EntityStatus
from .validation import EligibilityContext, check_eligibility

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefundResult:
    redemption: RewardRedemption
    refunded_points: int


class RedemptionLifecycle:
    """
    Drives a RewardRedemption through its states.

        PENDING -> ACTIVE | CANCELLED
        ACTIVE  -> USED | EXPIRED | CANCELLED | REFUNDED

    EXPIRED, CANCELLED and REFUNDED release the stock unit; USED keeps it.
    """

    TRANSITIONS: ClassVar[dict[str, frozenset[str]]] = {
        "PENDING": frozenset({"ACTIVE", "CANCELLED"}),
        "ACTIVE": frozenset({"USED", "EXPIRED", "CANCELLED", "REFUNDED"}),
        "USED": frozenset(),
        "EXPIRED": frozenset(),
        "CANCELLED": frozenset(),
        "REFUNDED": frozenset(),
    }

    def __init__(
        self,
        ledger: RedemptionLedger | None = None,
        points: type[PointsService] = PointsService,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self.ledger = ledger or RedemptionLedger()
        self.points = points
        self.clock = clock
        self.codec: CodeCodec[RewardRedemption] = CodeCodec(
            exists=lambda code: RewardRedemption.objects.filter(code=code).exists(),
            lookup=lambda code: RewardRedemption.objects.select_related("reward").filter(code=code).first(),
            describe=lambda redemption: redemption.effective_status(self.clock()),
            prefix=REDEMPTION_CODE_PREFIX,
            max_attempts=get_setting("CODE_GENERATION_ATTEMPTS"),
        )

    @classmethod
    def can_transition(cls, current: str, target: str) -> bool:
        return target in cls.TRANSITIONS.get(current, frozenset())

    # ===============================================================================
    # Redeem
    # ===============================================================================

    def redeem(self, reward_id: UUID, member_id: UUID) -> RewardRedemption:
        """
        Spend points on a reward and issue an ACTIVE redemption code.

        Raises:
            NotFound: unknown reward.
            ConstraintViolation: reward unavailable, out of stock or points short.
            Conflict: the last unit was taken by a concurrent redemption.
        """
        with transaction.atomic():
            try:
                reward = Reward.objects.select_for_update().get(pk=reward_id)
            except Reward.DoesNotExist as exc:
                raise NotFound(f"Reward {reward_id} not found") from exc

            now = self.clock()
            # Overdue codes of this reward give their stock back before the check
            overdue = self._overdue_ids(now, reward_id=reward.pk)
            if sum(self._expire(overdue_id, now) for overdue_id in overdue):
                reward.refresh_from_db(fields=["redemption_count"])

            context = EligibilityContext(member_id=member_id, points_balance=self.points.balance(member_id))
            result = check_eligibility(reward.as_redeemable(), context, now)
            if not result.is_valid:
                raise ConstraintViolation(result.error_code, result.error_message, result.details)

            redemption = RewardRedemption(
                member_id=member_id,
                reward=reward,
                points_spent=reward.points_cost,
                code=self.codec.generate(),
                status="PENDING",
                created_at=now,
            )
            self.ledger.record_usage(redemption)

            try:
                self.points.debit(
                    member_id,
                    reward.points_cost,
                    reference=str(redemption.id),
                    description=f"Redeemed {reward.title}",
                )
            except ConstraintViolation as exc:
                # Balance drained by a concurrent spend after the check above
                raise Conflict(exc.message, "INSUFFICIENT_POINTS", exc.details) from exc

            validity_days = reward.redemption_validity_days or get_setting("REDEMPTION_VALIDITY_DAYS")
            self._transition(redemption, "ACTIVE", redeemed_at=now, expires_at=now + timedelta(days=validity_days))

        logger.info(
            "Reward %s redeemed by member %s",
            reward.title,
            member_id,
            extra={
                "reward_id": str(reward.id),
                "member_id": str(member_id),
                "redemption_id": str(redemption.id),
                "points_spent": redemption.points_spent,
            },
        )
        return redemption

    # ===============================================================================
    # Transitions
    # ===============================================================================

    def mark_used(self, redemption_id: UUID) -> RewardRedemption:
        """Consume an ACTIVE code. Marking an already USED code again is a no-op."""
        with transaction.atomic():
            redemption = self._lock(redemption_id)
            if redemption.status == "USED":
                return redemption
            now = self.clock()
            self._require(redemption, "USED", now)
            self._transition(redemption, "USED", used_at=now)
        return redemption

    def refund(self, redemption_id: UUID, reason: str = "") -> RefundResult:
        """Return the points spent, release the stock unit and close the code."""
        with transaction.atomic():
            redemption = self._lock(redemption_id)
            now = self.clock()
            self._require(redemption, "REFUNDED", now)
            self._transition(redemption, "REFUNDED", refunded_at=now, notes=_append_note(redemption.notes, reason))
            self.ledger.reverse(redemption.id, reason or "refund", now=now)
            self.points.credit(
                redemption.member_id,
                redemption.points_spent,
                transaction_type="refund",
                reference=str(redemption.id),
                description=f"Refund for {redemption.code}",
            )
        return RefundResult(redemption=redemption, refunded_points=redemption.points_spent)

    def cancel(self, redemption_id: UUID, reason: str = "") -> RewardRedemption:
        """Void an unused code and release its stock unit. Points are kept."""
        with transaction.atomic():
            redemption = self._lock(redemption_id)
            now = self.clock()
            self._require(redemption, "CANCELLED", now)
            self._transition(
                redemption, "CANCELLED", cancelled_at=now, notes=_append_note(redemption.notes, reason)
            )
            self.ledger.reverse(redemption.id, reason or "cancelled", now=now)
        return redemption

    def expire_overdue(self) -> int:
        """Persist EXPIRED for every ACTIVE redemption past its expiry and free its stock unit."""
        now = self.clock()
        expired = sum(self._expire(redemption_id, now) for redemption_id in self._overdue_ids(now))
        if expired:
            logger.info("Expired %d overdue redemptions", expired, extra={"expired_count": expired})
        return expired

    # ===============================================================================
    # Verification
    # ===============================================================================

    def verify_code(self, raw_code: str | None) -> Result[VerifiedCode[RewardRedemption], str]:
        """Resolve a presented code; found-but-unusable codes still return Ok."""
        return self.codec.verify(raw_code)

    # ===============================================================================
    # Internals
    # ===============================================================================

    @staticmethod
    def _overdue_ids(now: datetime, reward_id: UUID | None = None) -> list[UUID]:
        queryset = RewardRedemption.objects.filter(status="ACTIVE", expires_at__lt=now)
        if reward_id is not None:
            queryset = queryset.filter(reward_id=reward_id)
        return list(queryset.values_list("id", flat=True))

    def _expire(self, redemption_id: UUID, now: datetime) -> bool:
        with transaction.atomic():
            # Reward row first, the same order redeem() takes its locks in
            reward_id = RewardRedemption.objects.values_list("reward_id", flat=True).get(pk=redemption_id)
            list(Reward.objects.select_for_update().filter(pk=reward_id).values_list("pk", flat=True))
            redemption = self._lock(redemption_id)
            if redemption.status != "ACTIVE":
                return False
            self._transition(redemption, "EXPIRED")
            self.ledger.reverse(redemption.id, "expired", now=now)
        return True

    def _lock(self, redemption_id: UUID) -> RewardRedemption:
        try:
            return RewardRedemption.objects.select_for_update().select_related("reward").get(pk=redemption_id)
        except RewardRedemption.DoesNotExist as exc:
            raise NotFound(f"Redemption {redemption_id} not found") from exc

    def _require(self, redemption: RewardRedemption, target: str, now: datetime) -> None:
        effective = redemption.effective_status(now)
        if effective == EntityStatus.EXPIRED or not self.can_transition(redemption.status, target):
            raise IllegalTransition(str(effective).upper(), target)

    def _transition(self, redemption: RewardRedemption, target: str, **fields: Any) -> None:
        previous = redemption.status
        if not self.can_transition(previous, target):
            raise IllegalTransition(previous, target)

        updated = RewardRedemption.objects.filter(pk=redemption.pk, status=previous).update(
            status=target, updated_at=self.clock(), **fields
        )
        if not updated:
            current = RewardRedemption.objects.values_list("status", flat=True).get(pk=redemption.pk)
            raise IllegalTransition(current, target)

        redemption.status = target
        for name, value in fields.items():
            setattr(redemption, name, value)
        send_on_commit(
            redemption_transitioned,
            RewardRedemption,
            redemption=redemption,
            previous_status=previous,
            status=target,
        )


def _append_note(notes: str, reason: str) -> str:
    if not reason:
        return notes
    return f"{notes}\n{reason}".strip()

