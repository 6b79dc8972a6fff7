"""
Standard success envelope helpers
"""
import math
from typing import Any, Dict, Optional

from farmhub.utils.date import utc_now


def success_response(
    data: Any = None,
    message: str = "Request successful",
    pagination: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build {success, data, message, timestamp[, pagination]}"""
    body: Dict[str, Any] = {
        "success": True,
        "data": data,
        "message": message,
        "timestamp": utc_now().isoformat(),
    }
    if pagination is not None:
        body["pagination"] = pagination
    return body


def pagination_meta(page: int, limit: int, total: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": total_pages,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
    }
