"""Standardized API response helpers.

Paginated list endpoints return a consistent envelope:
    {"items": [...], "total": <int>, "skip": <int>, "limit": <int>, "has_more": <bool>}

Single-item endpoints return the object directly (no wrapper).
"""


def paginated_response(
    items: list,
    total: int,
    skip: int = 0,
    limit: int = 50,
) -> dict:
    """Wrap a page of items; has_more tells whether another page follows."""
    return {
        "items": items,
        "total": total,
        "skip": skip,
        "limit": limit,
        "has_more": (skip + len(items)) < total,
    }
