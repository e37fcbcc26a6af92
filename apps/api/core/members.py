# ===============================================================================
# ACTING MEMBER RESOLUTION 🔒
# ===============================================================================
"""
Server-side resolution of the member a request acts for.

Members act as themselves: any member_id in the URL or body must be their
own. Staff may name any member and otherwise act as their own profile.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any
from uuid import UUID

from rest_framework import status
from rest_framework.permissions import SAFE_METHODS
from rest_framework.request import Request
from rest_framework.response import Response

from apps.promotions.exceptions import ValidationError
from apps.promotions.models import MemberProfile

from .exceptions import error_response

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActingMember:
    """
    The member a request is served for.

    Attributes:
        member_id: Owner of the points and redemptions touched.
        completed_subscriptions: Stored count, None when staff name a member with no profile.
        on_behalf: True when staff act for someone else.
    """

    member_id: UUID
    completed_subscriptions: int | None
    on_behalf: bool = False

    def subscriptions(self, declared: int = 0) -> int:
        """Stored count when known; only staff acting for an unlinked member can declare one."""
        return declared if self.completed_subscriptions is None else self.completed_subscriptions


def _requested_member_id(request: Request, kwargs: dict[str, Any]) -> UUID | None:
    raw = kwargs.pop("member_id", None)
    if raw is None and request.method not in SAFE_METHODS and hasattr(request.data, "get"):
        raw = request.data.get("member_id")
    if raw in (None, ""):
        return None
    if isinstance(raw, UUID):
        return raw
    try:
        return UUID(str(raw))
    except ValueError as exc:
        raise ValidationError("member_id must be a UUID", "INVALID_MEMBER_ID") from exc


def require_member(view_func: Callable[..., Response]) -> Callable[..., Response]:
    """
    Decorator for API views acting on a member's points or redemptions.

    Usage:
        @require_member
        def my_api_view(request, member):
            # member.member_id is never taken on trust from the client
    """

    @wraps(view_func)
    def wrapper(request: Request, *args: Any, **kwargs: Any) -> Response:
        requested = _requested_member_id(request, kwargs)
        profile = MemberProfile.objects.filter(user=request.user).first()

        if request.user.is_staff and requested is not None:
            target = MemberProfile.objects.filter(member_id=requested).first()
            on_behalf = profile is None or profile.member_id != requested
            if on_behalf:
                logger.info(
                    "Staff user %s acting for member %s",
                    request.user.pk,
                    requested,
                    extra={"user_id": request.user.pk, "member_id": str(requested), "path": request.path},
                )
            member = ActingMember(requested, target.completed_subscriptions if target else None, on_behalf)
            return view_func(request, member, *args, **kwargs)

        if profile is None:
            if request.user.is_staff:
                raise ValidationError("member_id is required", "MEMBER_REQUIRED")
            logger.warning(
                "No member profile for user %s on %s",
                request.user.pk,
                request.path,
                extra={"user_id": request.user.pk, "path": request.path},
            )
            return error_response(
                "No member profile is linked to this account", "MEMBER_PROFILE_REQUIRED", status.HTTP_403_FORBIDDEN
            )

        if requested is not None and requested != profile.member_id:
            logger.warning(
                "User %s tried to act for member %s",
                request.user.pk,
                requested,
                extra={"user_id": request.user.pk, "member_id": str(requested), "path": request.path},
            )
            return error_response(
                "You can only act on your own member account", "MEMBER_MISMATCH", status.HTTP_403_FORBIDDEN
            )

        return view_func(request, ActingMember(profile.member_id, profile.completed_subscriptions), *args, **kwargs)

    return wrapper
