"""Utility modules for the GitHub analytics service."""

from .config import Settings, get_settings
from .helpers import (
    get_date_range,
    pagination_meta,
    percentage,
    percentile,
    median,
    standard_deviation,
    utcnow,
)

__all__ = [
    "Settings",
    "get_settings",
    # Helpers
    "get_date_range",
    "pagination_meta",
    "percentage",
    "percentile",
    "median",
    "standard_deviation",
    "utcnow",
]
