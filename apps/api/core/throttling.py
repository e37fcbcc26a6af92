# ===============================================================================
# API THROTTLING CLASSES 🚦
# ===============================================================================

from typing import Any

from django.conf import settings
from rest_framework.throttling import UserRateThrottle


class StandardAPIThrottle(UserRateThrottle):
    """Standard rate limiting for promotions API endpoints"""

    rate = "1000/hour"

    def allow_request(self, request: Any, view: Any) -> bool:
        # Explicit test flag softens rate limits
        if getattr(settings, "TESTING", False):
            return True
        return super().allow_request(request, view)


class RedeemThrottle(StandardAPIThrottle):
    """Points-spending and code-checking endpoints"""

    scope = "redeem"
    rate = None

    def get_rate(self) -> str | None:
        return self.THROTTLE_RATES.get(self.scope, "20/min")


def user_or_ip(group: str, request: Any) -> str:
    """django-ratelimit key: user ID when signed in, client IP otherwise."""
    if request.user.is_authenticated:
        return f"user:{request.user.pk}"
    return f"ip:{request.META.get('REMOTE_ADDR', '')}"
