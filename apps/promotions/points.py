"""
Member points balances.

Balances only move through conditional F() updates so two concurrent
debits can never overdraw an account.
"""

from __future__ import annotations

import logging
from uuid import UUID

from django.db import transaction
from django.db.models import F

from .exceptions import ConstraintViolation, ValidationError
from .models import PointsAccount, PointsTransaction
from .validation import RejectionReason

logger = logging.getLogger(__name__)


class PointsService:
    """Earn, spend and refund loyalty points."""

    @staticmethod
    def get_account(member_id: UUID) -> PointsAccount:
        account, _ = PointsAccount.objects.get_or_create(member_id=member_id)
        return account

    @staticmethod
    def balance(member_id: UUID) -> int:
        return PointsAccount.objects.filter(member_id=member_id).values_list("balance", flat=True).first() or 0

    @staticmethod
    def summary(member_id: UUID) -> dict[str, int | str]:
        """Balance and lifetime totals; members without an account read as zero."""
        account = PointsAccount.objects.filter(member_id=member_id).first()
        return {
            "member_id": str(member_id),
            "balance": account.balance if account else 0,
            "lifetime_earned": account.lifetime_earned if account else 0,
            "lifetime_redeemed": account.lifetime_redeemed if account else 0,
        }

    @classmethod
    @transaction.atomic
    def credit(
        cls,
        member_id: UUID,
        points: int,
        transaction_type: str = "earn",
        reference: str = "",
        description: str = "",
    ) -> PointsTransaction:
        """Add points to a member's balance, opening the account if needed."""
        if points <= 0:
            raise ValidationError("Points to credit must be positive", "INVALID_POINTS")

        account = cls.get_account(member_id)
        updates = {"balance": F("balance") + points}
        if transaction_type == "earn":
            updates["lifetime_earned"] = F("lifetime_earned") + points
        elif transaction_type == "refund":
            updates["lifetime_redeemed"] = F("lifetime_redeemed") - points
        PointsAccount.objects.filter(pk=account.pk).update(**updates)
        account.refresh_from_db()

        entry = PointsTransaction.objects.create(
            account=account,
            transaction_type=transaction_type,
            points=points,
            balance_after=account.balance,
            reference=reference,
            description=description,
        )
        logger.info(
            "Credited %d points to member %s",
            points,
            member_id,
            extra={"member_id": str(member_id), "points": points, "transaction_type": transaction_type},
        )
        return entry

    @classmethod
    @transaction.atomic
    def debit(cls, member_id: UUID, points: int, reference: str = "", description: str = "") -> PointsTransaction:
        """
        Spend points. Fails without side effects if the balance is short.

        Raises:
            ConstraintViolation: INSUFFICIENT_POINTS with required/current/shortfall.
        """
        if points <= 0:
            raise ValidationError("Points to debit must be positive", "INVALID_POINTS")

        updated = PointsAccount.objects.filter(member_id=member_id, balance__gte=points).update(
            balance=F("balance") - points,
            lifetime_redeemed=F("lifetime_redeemed") + points,
        )
        if not updated:
            current = cls.balance(member_id)
            raise ConstraintViolation(
                RejectionReason.INSUFFICIENT_POINTS,
                "Not enough points",
                {"required": points, "current": current, "shortfall": points - current},
            )

        account = PointsAccount.objects.get(member_id=member_id)
        return PointsTransaction.objects.create(
            account=account,
            transaction_type="redeem",
            points=-points,
            balance_after=account.balance,
            reference=reference,
            description=description,
        )

    @staticmethod
    def history(member_id: UUID, limit: int = 50, offset: int = 0) -> list[PointsTransaction]:
        return list(
            PointsTransaction.objects.filter(account__member_id=member_id).order_by("-created_at", "-id")[
                offset : offset + limit
            ]
        )
