"""
Middleware for the promotions platform.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable

from django.http import HttpRequest, HttpResponse

from apps.common.logging import clear_request_id, set_request_context, set_request_id

REQUEST_ID_HEADER = "HTTP_X_REQUEST_ID"
MAX_REQUEST_ID_LENGTH = 64


class RequestIDMiddleware:
    """Add unique request ID for tracing and log correlation"""

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]):
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        # Reuse an upstream ID (load balancer, API gateway) when present
        request_id = request.META.get(REQUEST_ID_HEADER, "").strip()[:MAX_REQUEST_ID_LENGTH] or str(uuid.uuid4())
        request.META["REQUEST_ID"] = request_id
        set_request_id(request_id)

        user = getattr(request, "user", None)
        if user is not None and user.is_authenticated:
            set_request_context(user_id=user.pk)

        try:
            response = self.get_response(request)
        finally:
            clear_request_id()

        response["X-Request-ID"] = request_id
        return response
