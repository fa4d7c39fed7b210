"""Shared validation utilities"""

from datetime import date
from typing import Optional

VALID_FREQUENCIES = ("weekly", "biweekly", "monthly")
VALID_TIME_WINDOWS = ("anytime", "10-3", "11-4", "12-2")


def validate_frequency(frequency: Optional[str]) -> str:
    """
    Validate a recurrence frequency.

    Raises:
        ValueError: If frequency is not weekly, biweekly or monthly
    """
    if frequency not in VALID_FREQUENCIES:
        raise ValueError("Invalid frequency. Must be weekly, biweekly, or monthly")
    return frequency


def validate_day_of_week(day_of_week: Optional[int]) -> int:
    """Validate a day of week (0=Sunday through 6=Saturday)"""
    if day_of_week is None or isinstance(day_of_week, bool) or not 0 <= day_of_week <= 6:
        raise ValueError("Invalid day of week. Must be 0-6 (Sunday-Saturday)")
    return day_of_week


def validate_time_window(time_window: Optional[str]) -> str:
    if not time_window:
        return "anytime"
    if time_window not in VALID_TIME_WINDOWS:
        raise ValueError(f"Invalid time window. Must be one of: {', '.join(VALID_TIME_WINDOWS)}")
    return time_window


def validate_date_range(start: Optional[date], end: Optional[date]) -> None:
    if start and end and end < start:
        raise ValueError("End date cannot be before start date")
