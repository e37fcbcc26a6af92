# ===============================================================================
# API RESPONSE ENVELOPE 📦
# ===============================================================================

from typing import Any

from rest_framework import status
from rest_framework.response import Response

from .pagination import pagination_meta


def success_response(data: Any = None, message: str | None = None, http_status: int = status.HTTP_200_OK) -> Response:
    """{"success": true, "data": ..., "message"?: ...}"""
    body: dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    return Response(body, status=http_status)


def list_response(data: list[Any], total: int, limit: int, offset: int) -> Response:
    return Response({"success": True, "data": data, "pagination": pagination_meta(total, limit, offset)})
