# ===============================================================================
# API EXCEPTION HANDLING ⚠️
# ===============================================================================

import logging
from typing import Any

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from apps.promotions.exceptions import Conflict, PromotionError

logger = logging.getLogger(__name__)


def error_response(
    message: str, error_code: str, http_status: int, details: dict[str, Any] | None = None
) -> Response:
    body: dict[str, Any] = {"success": False, "data": None, "message": message, "error_code": error_code}
    if details:
        body["details"] = details
    return Response(body, status=http_status)


def promotion_exception_handler(exc: Exception, context: dict[str, Any]) -> Response | None:
    """
    Render engine errors and DRF errors in the standard envelope.
    Anything else propagates to Django as a 500.
    """
    if isinstance(exc, PromotionError):
        log = logger.warning if isinstance(exc, Conflict) else logger.info
        log(
            "Request rejected: %s",
            exc.error_code,
            extra={"error_code": exc.error_code, "http_status": exc.http_status},
        )
        return error_response(exc.message, exc.error_code, exc.http_status, exc.details)

    response = exception_handler(exc, context)
    if response is None:
        return None

    detail = response.data
    if isinstance(detail, dict) and "detail" in detail:
        message = str(detail["detail"])
        details = None
    else:
        message = "Invalid request"
        details = detail if isinstance(detail, dict) else {"errors": detail}
    error_code = getattr(exc, "default_code", "error")
    if response.status_code == status.HTTP_400_BAD_REQUEST:
        error_code = "VALIDATION_ERROR"
    return error_response(message, str(error_code).upper(), response.status_code, details)
