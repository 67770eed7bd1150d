"""
Helper functions for common infrastructure operations.

This module provides domain-agnostic utility functions for:
- Calendar arithmetic (month offsets with end-of-month clamping)
- HTTP request helpers (client IP extraction)

These utilities are pure infrastructure - they have no knowledge
of domain concepts like users, subscriptions, or business logic.

Usage:
    from core.helpers import add_months, get_client_ip

    renews_at = add_months(timezone.now(), 1)
    ip = get_client_ip(request)
"""

from __future__ import annotations

import calendar
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from django.http import HttpRequest


def add_months(value: datetime, months: int) -> datetime:
    """
    Shift a datetime by a whole number of calendar months.

    The day of month is preserved where possible and clamped to the last
    day of the target month otherwise (Jan 31 + 1 month -> Feb 28/29).
    Time of day and tzinfo are kept as-is.

    Args:
        value: The datetime to shift
        months: Number of months (negative values shift backwards)

    Returns:
        The shifted datetime

    Example:
        add_months(datetime(2025, 1, 15), 1)   # 2025-02-15
        add_months(datetime(2025, 1, 15), 12)  # 2026-01-15
        add_months(datetime(2024, 1, 31), 1)   # 2024-02-29
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def get_client_ip(request: HttpRequest) -> str:
    """
    Extract client IP from request, handling proxies.

    Checks X-Forwarded-For header for proxy chains.

    Args:
        request: Django HTTP request

    Returns:
        Client IP address string
    """
    x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    if x_forwarded_for:
        # First entry is the original client
        return x_forwarded_for.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR", "")
