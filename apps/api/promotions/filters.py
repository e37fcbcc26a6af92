"""
FilterSets for the promotions API (django-filter).
"""

from typing import ClassVar

import django_filters
from django.db.models import Q, QuerySet

from apps.promotions.models import RewardRedemption
from apps.promotions.services import filter_effective_status


class RewardRedemptionFilter(django_filters.FilterSet):
    """Admin redemption listing: member, reward, status, date range and free-text search."""

    member_id = django_filters.UUIDFilter()
    reward_id = django_filters.UUIDFilter(field_name="reward_id")
    status = django_filters.CharFilter(method="filter_status")
    start_date = django_filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    end_date = django_filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")
    search = django_filters.CharFilter(method="filter_search")

    class Meta:
        model = RewardRedemption
        fields: ClassVar = ["member_id", "status"]

    def filter_status(self, queryset: QuerySet, name: str, value: str) -> QuerySet:
        return filter_effective_status(queryset, value)

    def filter_search(self, queryset: QuerySet, name: str, value: str) -> QuerySet:
        term = value.strip()
        if not term:
            return queryset
        return queryset.filter(Q(code__icontains=term) | Q(reward__title__icontains=term))
