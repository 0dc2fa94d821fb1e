from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union
from zoneinfo import ZoneInfo

from .recurrence import parse_calendar_date


# PUBLIC_INTERFACE
def pagination_envelope(
    items: Union[Sequence[Any], Iterable[Any]],
    total: int,
    limit: int,
    offset: int,
) -> Dict[str, Any]:
    """
    Build a standard pagination envelope for list endpoints.

    Args:
        items: The list/iterable of items for the current page.
        total: Total number of items that match the query (ignoring pagination).
        limit: The limit used for pagination.
        offset: The offset used for pagination.

    Returns:
        Dict with keys: items, total, limit, offset.
    """
    materialized: List[Any] = list(items) if not isinstance(items, list) else items
    return {
        "items": materialized,
        "total": int(total),
        "limit": int(max(limit, 0)),
        "offset": int(max(offset, 0)),
    }


# PUBLIC_INTERFACE
def resolve_today(today: Optional[str], timezone_name: str) -> date:
    """
    Return the calendar day to evaluate dates against.

    An explicit 'YYYY-MM-DD' value wins (raises InvalidDateFormat when bad);
    otherwise it is the current date on the wall clock of timezone_name.
    """
    if today is not None:
        return parse_calendar_date(today)
    return datetime.now(ZoneInfo(timezone_name)).date()
