"""
Shared helpers for date ranges, pagination and simple statistics.
"""

import math
import re
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

# GitHub was founded in 2008; "all_time" ranges start here
GITHUB_EPOCH = datetime(2008, 1, 1)

DEFAULT_PERIOD = "30d"

_PERIOD_PATTERN = re.compile(r"^(\d+)([dwmy])$")

_NAMED_PERIODS = {
    "daily": timedelta(days=1),
    "weekly": timedelta(weeks=1),
    "monthly": timedelta(days=30),
    "yearly": timedelta(days=365),
}

_UNIT_DAYS = {"d": 1, "w": 7, "m": 30, "y": 365}

GITHUB_USERNAME_PATTERN = re.compile(r"^[a-z\d](?:[a-z\d]|-(?=[a-z\d])){0,38}$", re.IGNORECASE)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.utcnow()


def get_date_range(period: Optional[str], end: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    Resolve a period string to a (start, end) pair.

    Accepts "7d", "30d", "12w", "6m", "1y", the named periods daily, weekly,
    monthly and yearly, and "all_time". Anything else falls back to 30 days.
    """
    end = end or utcnow()
    period = (period or DEFAULT_PERIOD).strip().lower()

    if period == "all_time":
        return GITHUB_EPOCH, end

    if period in _NAMED_PERIODS:
        return end - _NAMED_PERIODS[period], end

    match = _PERIOD_PATTERN.match(period)
    if match:
        amount, unit = int(match.group(1)), match.group(2)
        return end - timedelta(days=amount * _UNIT_DAYS[unit]), end

    return end - timedelta(days=30), end


def is_valid_github_username(username: Optional[str]) -> bool:
    return bool(username) and GITHUB_USERNAME_PATTERN.match(username) is not None


def pagination_meta(page: int, limit: int, total_items: int) -> Dict[str, Any]:
    total_pages = math.ceil(total_items / limit) if limit else 0
    has_next = page < total_pages
    has_prev = page > 1
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total_items": total_items,
        "items_per_page": limit,
        "has_next_page": has_next,
        "has_prev_page": has_prev,
        "next_page": page + 1 if has_next else None,
        "prev_page": page - 1 if has_prev else None,
    }


def percentage(value: float, total: float, precision: int = 2) -> float:
    if not total:
        return 0.0
    return round(value / total * 100, precision)


def percentile(rank: int, total: int) -> int:
    """Share of users at or below a 1-based rank, as a whole percent."""
    if total <= 0:
        return 0
    return round((1 - (rank - 1) / total) * 100)


def median(values: Iterable[float]) -> float:
    ordered = sorted(values)
    if not ordered:
        return 0
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def standard_deviation(values: Iterable[float]) -> float:
    """Population standard deviation."""
    values = list(values)
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


def trend_direction(values: List[float], threshold: float = 5.0) -> Dict[str, Any]:
    """Compare the mean of the second half of a series against the first half."""
    if len(values) < 2:
        return {"direction": "stable", "percentage": 0}

    half = len(values) // 2
    first_avg = sum(values[:half]) / half
    second_avg = sum(values[half:]) / (len(values) - half)
    change = (second_avg - first_avg) / first_avg * 100 if first_avg > 0 else 0

    direction = "stable"
    if change > threshold:
        direction = "increasing"
    elif change < -threshold:
        direction = "decreasing"

    return {"direction": direction, "percentage": round(change)}


def color_from_string(value: str) -> str:
    """Deterministic hex color for names without a known color."""
    h = 0
    for ch in value:
        # 32-bit wraparound
        h = (ord(ch) + ((h << 5) - h)) & 0xFFFFFFFF
    return "#" + format(h & 0x00FFFFFF, "06X")
