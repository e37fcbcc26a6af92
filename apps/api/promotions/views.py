"""
Promotions API Views
Discount code validation and application, reward catalog, redemptions and
member points. Engine errors are rendered by the API exception handler.
"""

import logging
from typing import Any

from django_ratelimit.decorators import ratelimit
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response

from apps.api.core.exceptions import error_response
from apps.api.core.members import ActingMember, require_member
from apps.api.core.pagination import StandardResultsSetPagination
from apps.api.core.permissions import IsAdminOrReadOnly
from apps.api.core.responses import list_response, success_response
from apps.api.core.throttling import RedeemThrottle
from apps.common.types import Err
from apps.promotions.codes import CODE_NOT_FOUND
from apps.promotions.conf import get_setting
from apps.promotions.exceptions import ConstraintViolation, ValidationError
from apps.promotions.lifecycle import RedemptionLifecycle
from apps.promotions.points import PointsService
from apps.promotions.services import DiscountCodeService, RewardService

from .filters import RewardRedemptionFilter
from .serializers import (
    ApplyCodeInputSerializer,
    DiscountCodeSerializer,
    DiscountCodeWriteSerializer,
    DiscountUsageSerializer,
    PointsTransactionSerializer,
    ReasonInputSerializer,
    RewardListQuerySerializer,
    RewardRedemptionSerializer,
    RewardSerializer,
    RewardWriteSerializer,
    StatsQuerySerializer,
    TrendQuerySerializer,
    ValidateCodeInputSerializer,
    VerifyCodeInputSerializer,
)

logger = logging.getLogger(__name__)

RATE_LIMIT_KEY = "apps.api.core.throttling.user_or_ip"


def _validated(serializer_class: Any, data: Any, **kwargs: Any) -> dict[str, Any]:
    serializer = serializer_class(data=data, **kwargs)
    serializer.is_valid(raise_exception=True)
    return dict(serializer.validated_data)


def _rate_limited(request: Request) -> Response | None:
    if getattr(request, "limited", False):
        logger.warning("Rate limit hit on %s", request.path, extra={"path": request.path})
        return error_response("Too many requests, slow down", "RATE_LIMITED", status.HTTP_429_TOO_MANY_REQUESTS)
    return None


def _paginate(request: Request, queryset: Any, serializer_class: Any) -> Response:
    paginator = StandardResultsSetPagination()
    page = paginator.paginate_queryset(queryset, request)
    return paginator.get_paginated_response(serializer_class(page, many=True).data)


# ===============================================================================
# DISCOUNT CODES
# ===============================================================================


@api_view(["GET", "POST"])
@permission_classes([IsAdminUser])
def discount_code_list(request: Request) -> Response:
    """List discount codes or create one (code auto-generated when omitted)."""
    if request.method == "POST":
        data = _validated(DiscountCodeWriteSerializer, request.data)
        discount_code = DiscountCodeService.create_code(data)
        return success_response(
            DiscountCodeSerializer(discount_code).data, "Discount code created", status.HTTP_201_CREATED
        )

    queryset = DiscountCodeService.list_codes(
        is_active=request.query_params.get("is_active"),
        discount_type=request.query_params.get("discount_type"),
    )
    return _paginate(request, queryset, DiscountCodeSerializer)


@api_view(["GET", "PUT", "DELETE"])
@permission_classes([IsAdminUser])
def discount_code_detail(request: Request, code_id: Any) -> Response:
    discount_code = DiscountCodeService.get(code_id)

    if request.method == "PUT":
        data = _validated(DiscountCodeWriteSerializer, request.data, instance=discount_code, partial=True)
        discount_code = DiscountCodeService.update_code(discount_code, data)
        return success_response(DiscountCodeSerializer(discount_code).data, "Discount code updated")

    if request.method == "DELETE":
        DiscountCodeService.delete_code(discount_code)
        return success_response(None, "Discount code deleted")

    return success_response(DiscountCodeSerializer(discount_code).data)


@api_view(["GET"])
@permission_classes([IsAdminUser])
def discount_code_usage_history(request: Request, code_id: Any) -> Response:
    DiscountCodeService.get(code_id)
    paginator = StandardResultsSetPagination()
    limit = paginator.get_limit(request)
    offset = paginator.get_offset(request)
    usages, total = DiscountCodeService.usage_history(
        code_id, member_id=request.query_params.get("member_id") or None, limit=limit, offset=offset
    )
    return list_response(DiscountUsageSerializer(usages, many=True).data, total, limit, offset)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
@throttle_classes([RedeemThrottle])
@ratelimit(key=RATE_LIMIT_KEY, rate="30/m", method="POST", block=False)
@require_member
def validate_discount_code(request: Request, member: ActingMember) -> Response:
    """
    Check a code for a member and purchase without using it.
    Rejections come back as 422 with the reason as error_code.
    """
    if limited := _rate_limited(request):
        return limited

    data = _validated(ValidateCodeInputSerializer, request.data)
    validation = DiscountCodeService.validate_code(
        data["code"],
        member.member_id,
        amount_cents=data.get("amount_cents"),
        plan_id=data.get("plan_id") or None,
        completed_subscriptions=member.subscriptions(data.get("completed_subscriptions", 0)),
    )
    result = validation.result
    if not validation.is_valid:
        raise ConstraintViolation(result.error_code, result.error_message, result.details)

    discount_code = validation.discount_code
    payload = {
        "code": discount_code.code,
        "type": discount_code.discount_type,
        "value": DiscountCodeSerializer(discount_code).data["value"],
        "max_discount": discount_code.max_discount_cents,
        "bonus_days": validation.effect.waived_days if validation.effect else (discount_code.bonus_days or 0),
        "effect": validation.effect.as_dict() if validation.effect else None,
        "warnings": result.warnings,
    }
    return success_response(payload, "Discount code is valid")


@api_view(["POST"])
@permission_classes([IsAuthenticated])
@throttle_classes([RedeemThrottle])
@require_member
def apply_discount_code(request: Request, member: ActingMember) -> Response:
    """Record one use of a code against a purchase."""
    data = _validated(ApplyCodeInputSerializer, request.data)
    usage, effect = DiscountCodeService.apply_code(
        data["code"],
        member.member_id,
        amount_cents=data.get("amount_cents"),
        plan_id=data.get("plan_id") or None,
        subscription_id=data.get("subscription_id", ""),
        completed_subscriptions=member.subscriptions(data.get("completed_subscriptions", 0)),
    )
    return success_response(
        {"usage": DiscountUsageSerializer(usage).data, "effect": effect.as_dict()},
        "Discount code applied",
        status.HTTP_201_CREATED,
    )


@api_view(["POST"])
@permission_classes([IsAdminUser])
def reverse_discount_usage(request: Request, usage_id: Any) -> Response:
    data = _validated(ReasonInputSerializer, request.data)
    reversed_now = DiscountCodeService.reverse_usage(usage_id, data["reason"])
    message = "Usage reversed" if reversed_now else "Usage was already reversed"
    return success_response({"reversed": reversed_now}, message)


# ===============================================================================
# REWARDS
# ===============================================================================


@api_view(["GET", "POST"])
@permission_classes([IsAdminOrReadOnly])
def reward_list(request: Request) -> Response:
    """Available rewards for members; staff may add catalog entries."""
    if request.method == "POST":
        data = _validated(RewardWriteSerializer, request.data)
        reward = RewardService.create_reward(data, created_by=request.user)
        return success_response(RewardSerializer(reward).data, "Reward created", status.HTTP_201_CREATED)

    query = _validated(RewardListQuerySerializer, request.query_params)
    limit = min(query["limit"], get_setting("REWARD_LIST_MAX_LIMIT"))
    rewards, total = RewardService.list_rewards(
        category=query.get("category"),
        min_points=query.get("min_points"),
        max_points=query.get("max_points"),
        limit=limit,
        offset=query["offset"],
    )
    return list_response(RewardSerializer(rewards, many=True).data, total, limit, query["offset"])


@api_view(["GET", "PUT", "DELETE"])
@permission_classes([IsAdminOrReadOnly])
def reward_detail(request: Request, reward_id: Any) -> Response:
    reward = RewardService.get(reward_id)

    if request.method == "PUT":
        data = _validated(RewardWriteSerializer, request.data, instance=reward, partial=True)
        reward = RewardService.update_reward(reward, data)
        return success_response(RewardSerializer(reward).data, "Reward updated")

    if request.method == "DELETE":
        outcome = RewardService.delete_reward(reward)
        return success_response({"outcome": outcome}, f"Reward {outcome}")

    return success_response(RewardSerializer(reward).data)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
@throttle_classes([RedeemThrottle])
@require_member
def redeem_reward(request: Request, member: ActingMember, reward_id: Any) -> Response:
    """Spend the member's points on a reward and issue a redemption code."""
    redemption = RedemptionLifecycle().redeem(reward_id, member.member_id)
    return success_response(
        RewardRedemptionSerializer(redemption).data, "Reward redeemed successfully", status.HTTP_201_CREATED
    )


@api_view(["POST"])
@permission_classes([IsAuthenticated])
@throttle_classes([RedeemThrottle])
@ratelimit(key=RATE_LIMIT_KEY, rate="30/m", method="POST", block=False)
def verify_redemption_code(request: Request) -> Response:
    """
    Look up a presented redemption code.
    Found-but-unusable codes still return the record with is_usable false.
    """
    if limited := _rate_limited(request):
        return limited

    data = _validated(VerifyCodeInputSerializer, request.data)
    result = RedemptionLifecycle().verify_code(data["code"])
    if isinstance(result, Err):
        return error_response("Redemption code not found", CODE_NOT_FOUND, status.HTTP_404_NOT_FOUND)

    verified = result.unwrap()
    payload = {
        "redemption": RewardRedemptionSerializer(verified.record).data,
        "reward": RewardSerializer(verified.record.reward).data,
        "status": str(verified.status).upper(),
        "is_usable": verified.is_usable,
    }
    return success_response(payload)


@api_view(["GET"])
@permission_classes([IsAdminUser])
def reward_stats(request: Request) -> Response:
    query = _validated(StatsQuerySerializer, request.query_params)
    return success_response(RewardService.stats(query.get("reward_id")))


@api_view(["GET"])
@permission_classes([IsAdminUser])
def reward_trend(request: Request) -> Response:
    query = _validated(TrendQuerySerializer, request.query_params)
    rows = RewardService.trend(query["period"], query.get("start_date"), query.get("end_date"))
    return success_response(rows)


# ===============================================================================
# REDEMPTIONS
# ===============================================================================


@api_view(["GET"])
@permission_classes([IsAdminUser])
def redemption_list(request: Request) -> Response:
    """All redemptions, filterable by member, reward, status, date range and search."""
    filterset = RewardRedemptionFilter(request.query_params, queryset=RewardService.redemptions())
    if not filterset.is_valid():
        raise ValidationError("Invalid filters", "INVALID_FILTERS", dict(filterset.errors))
    return _paginate(request, filterset.qs, RewardRedemptionSerializer)


@api_view(["PUT"])
@permission_classes([IsAdminUser])
def mark_redemption_used(request: Request, redemption_id: Any) -> Response:
    redemption = RedemptionLifecycle().mark_used(redemption_id)
    return success_response(RewardRedemptionSerializer(redemption).data, "Redemption marked as used")


@api_view(["POST"])
@permission_classes([IsAdminUser])
def refund_redemption(request: Request, redemption_id: Any) -> Response:
    data = _validated(ReasonInputSerializer, request.data)
    outcome = RedemptionLifecycle().refund(redemption_id, data["reason"])
    return success_response(
        {
            "redemption": RewardRedemptionSerializer(outcome.redemption).data,
            "refunded_points": outcome.refunded_points,
        },
        "Redemption refunded",
    )


@api_view(["POST"])
@permission_classes([IsAdminUser])
def cancel_redemption(request: Request, redemption_id: Any) -> Response:
    data = _validated(ReasonInputSerializer, request.data)
    redemption = RedemptionLifecycle().cancel(redemption_id, data["reason"])
    return success_response(RewardRedemptionSerializer(redemption).data, "Redemption cancelled")


# ===============================================================================
# MEMBERS
# ===============================================================================


@api_view(["GET"])
@permission_classes([IsAuthenticated])
@require_member
def member_redemptions(request: Request, member: ActingMember) -> Response:
    """A member's redemption history, optionally filtered by status."""
    queryset = RewardService.redemptions(
        {"member_id": member.member_id, "status": request.query_params.get("status")}
    )
    return _paginate(request, queryset, RewardRedemptionSerializer)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
@require_member
def member_points(request: Request, member: ActingMember) -> Response:
    """Points balance with the most recent transactions."""
    paginator = StandardResultsSetPagination()
    limit = paginator.get_limit(request)
    offset = paginator.get_offset(request)
    history = PointsService.history(member.member_id, limit=limit, offset=offset)
    return success_response(
        {
            "account": PointsService.summary(member.member_id),
            "transactions": PointsTransactionSerializer(history, many=True).data,
        }
    )
