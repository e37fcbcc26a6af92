# ===============================================================================
# API PAGINATION CLASSES 📄
# ===============================================================================

from typing import Any

from rest_framework.pagination import LimitOffsetPagination
from rest_framework.response import Response


class StandardResultsSetPagination(LimitOffsetPagination):
    """
    Limit/offset pagination wrapped in the standard response envelope:
    {"success": true, "data": [...], "pagination": {total, limit, offset, hasMore}}
    """

    default_limit = 50
    max_limit = 200

    def get_paginated_response(self, data: Any) -> Response:
        return Response(
            {
                "success": True,
                "data": data,
                "pagination": pagination_meta(self.count, self.limit, self.offset),
            }
        )


def pagination_meta(total: int, limit: int, offset: int) -> dict[str, Any]:
    return {"total": total, "limit": limit, "offset": offset, "hasMore": offset + limit < total}
