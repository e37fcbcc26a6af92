"""
Usage ledger shared by discount codes and rewards.

The ledger owns the usage counter on the parent row. A slot is claimed with
a single conditional UPDATE (``counter < cap``) inside the same transaction
that inserts the usage row, so concurrent claims can never push the counter
past its cap and a failed claim leaves no trace.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, ClassVar, Generic, TypeVar

from django.db import models, transaction
from django.db.models import F, Q
from django.utils import timezone

from .exceptions import Conflict, NotFound
from .models import DiscountCode, DiscountUsage, Reward, RewardRedemption

logger = logging.getLogger(__name__)

EntryT = TypeVar("EntryT", bound=models.Model)


class UsageLedger(Generic[EntryT]):
    """
    Append-only usage records plus the denormalized counter on the parent.

    Subclasses name the models and fields; the claim and reversal logic is
    the same for every redeemable kind.
    """

    parent_model: ClassVar[type[models.Model]]
    entry_model: ClassVar[type[models.Model]]
    parent_field: ClassVar[str]
    counter_field: ClassVar[str]
    cap_fields: ClassVar[tuple[str, ...]]

    # ===============================================================================
    # Writes
    # ===============================================================================

    def record_usage(self, entry: EntryT) -> EntryT:
        """
        Claim a slot on the parent and insert ``entry``.

        Raises:
            NotFound: the parent row does not exist.
            Conflict: every slot is taken; nothing was written.
        """
        parent_id = getattr(entry, f"{self.parent_field}_id")
        with transaction.atomic():
            if not self._claim_slot(parent_id):
                if not self.parent_model.objects.filter(pk=parent_id).exists():
                    raise NotFound(f"{self.parent_model.__name__} {parent_id} not found")
                logger.warning(
                    "Usage cap reached for %s %s",
                    self.parent_model.__name__,
                    parent_id,
                    extra={"entity_id": str(parent_id), "counter": self.counter_field},
                )
                raise Conflict("Usage limit reached", "USAGE_LIMIT_REACHED", {"entity_id": str(parent_id)})
            entry.save(force_insert=True)
        return entry

    def reverse(self, entry_id: Any, reason: str = "", now: datetime | None = None) -> bool:
        """
        Reverse a usage and release its slot.

        Returns False when the entry was already reversed; reversing twice
        never decrements the counter twice.
        """
        with transaction.atomic():
            stamped = self.entry_model.objects.filter(pk=entry_id, reversed_at__isnull=True).update(
                reversed_at=now or timezone.now(), reversal_reason=reason
            )
            if not stamped:
                if not self.entry_model.objects.filter(pk=entry_id).exists():
                    raise NotFound(f"{self.entry_model.__name__} {entry_id} not found")
                return False

            parent_id = self.entry_model.objects.values_list(f"{self.parent_field}_id", flat=True).get(pk=entry_id)
            self.parent_model.objects.filter(pk=parent_id, **{f"{self.counter_field}__gt": 0}).update(
                **{self.counter_field: F(self.counter_field) - 1}
            )

        logger.info(
            "Usage %s reversed",
            entry_id,
            extra={"entry_id": str(entry_id), "entity_id": str(parent_id), "reason": reason},
        )
        return True

    def _claim_slot(self, parent_id: Any) -> bool:
        queryset = self.parent_model.objects.filter(pk=parent_id)
        for cap in self.cap_fields:
            queryset = queryset.filter(Q(**{f"{cap}__isnull": True}) | Q(**{f"{self.counter_field}__lt": F(cap)}))
        return queryset.update(**{self.counter_field: F(self.counter_field) + 1}) == 1

    # ===============================================================================
    # Reads
    # ===============================================================================

    def live_entries(self, parent_id: Any) -> models.QuerySet:
        return self.entry_model.objects.filter(**{f"{self.parent_field}_id": parent_id, "reversed_at__isnull": True})

    def count_for_member(self, parent_id: Any, member_id: Any) -> int:
        return self.live_entries(parent_id).filter(member_id=member_id).count()

    def live_count(self, parent_id: Any) -> int:
        """Count recomputed from the ledger rows, for reconciling the counter."""
        return self.live_entries(parent_id).count()


class DiscountUsageLedger(UsageLedger[DiscountUsage]):
    parent_model = DiscountCode
    entry_model = DiscountUsage
    parent_field = "discount_code"
    counter_field = "usage_count"
    cap_fields = ("usage_limit",)


class RedemptionLedger(UsageLedger[RewardRedemption]):
    parent_model = Reward
    entry_model = RewardRedemption
    parent_field = "reward"
    counter_field = "redemption_count"
    cap_fields = ("stock_quantity", "redemption_limit")
