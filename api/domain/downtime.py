# SPDX-License-Identifier: Apache-2.0

"""
Downtime computation for streetlights.

A streetlight is only expected to be lit between 18:00 and 06:00 the next
morning, so an outage only costs the hours of that window that elapse
between the report and the fix. Everything here is pure and safe to call
from any thread.
"""

from datetime import datetime
from typing import Tuple

LIT_WINDOW_START = 18
LIT_WINDOW_END = 6
NIGHT_HOURS = 12

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M:%S"


class InvalidTimestampError(ValueError):
    """Raised when a date or time string cannot be parsed."""


def parse_instant(date_str: str, time_str: str) -> datetime:
    """
    Combine a ``YYYY-MM-DD`` date and an ``HH:MM:SS`` time into a naive
    local datetime.

    Raises:
        InvalidTimestampError: If either part is malformed
    """
    try:
        return datetime.strptime(f"{date_str} {time_str}", f"{DATE_FORMAT} {TIME_FORMAT}")
    except (TypeError, ValueError) as e:
        raise InvalidTimestampError(f"Invalid timestamp {date_str!r} {time_str!r}: {e}") from e


def fractional_hour(instant: datetime) -> float:
    """Hour of day plus minutes as a fraction; seconds are dropped."""
    return instant.hour + instant.minute / 60


def _first_night_hours(report_hour: float) -> float:
    """Remaining lit hours of the night in progress at report time."""
    if report_hour >= LIT_WINDOW_START:
        return NIGHT_HOURS - (report_hour - LIT_WINDOW_START)
    if report_hour < LIT_WINDOW_END:
        return LIT_WINDOW_END - report_hour
    return 0.0


def _last_night_hours(fix_hour: float) -> float:
    """Lit hours elapsed on the fix day up to the fix instant."""
    if fix_hour <= LIT_WINDOW_END:
        return fix_hour
    if fix_hour < LIT_WINDOW_START:
        return float(LIT_WINDOW_END)
    return LIT_WINDOW_END + (fix_hour - LIT_WINDOW_START)


def _same_day_hours(report_hour: float, fix_hour: float) -> float:
    if report_hour >= LIT_WINDOW_START:
        # The fix is later the same evening; the remainder of the night is charged.
        return NIGHT_HOURS - (report_hour - LIT_WINDOW_START)
    if report_hour < LIT_WINDOW_END and fix_hour <= LIT_WINDOW_END:
        return fix_hour - report_hour
    return 0.0


def downtime_between(report_at: datetime, fix_at: datetime) -> float:
    """
    Lit-window downtime in hours between two local instants.

    Args:
        report_at: Instant the problem was reported
        fix_at: Instant the problem was fixed

    Returns:
        Non-negative number of hours
    """
    if fix_at < report_at:
        return 0.0

    diff_days = (fix_at.date() - report_at.date()).days
    report_hour = fractional_hour(report_at)
    fix_hour = fractional_hour(fix_at)

    if diff_days == 0:
        hours = _same_day_hours(report_hour, fix_hour)
    else:
        hours = _first_night_hours(report_hour) + _last_night_hours(fix_hour)
        hours += (diff_days - 1) * NIGHT_HOURS

    return max(0.0, float(hours))


def compute_downtime_hours(report_date: str, report_time: str, fix_date: str, fix_time: str) -> float:
    """
    Compute how many lit-window hours a streetlight was out.

    Args:
        report_date: Report date (YYYY-MM-DD)
        report_time: Report time (HH:MM:SS)
        fix_date: Fix date (YYYY-MM-DD)
        fix_time: Fix time (HH:MM:SS)

    Returns:
        Downtime in hours, never negative

    Raises:
        InvalidTimestampError: If any input is malformed
    """
    report_at = parse_instant(report_date, report_time)
    fix_at = parse_instant(fix_date, fix_time)
    return downtime_between(report_at, fix_at)


def split_instant(instant: datetime) -> Tuple[str, str]:
    """Format an instant as the (date, time) string pair stored on records."""
    return instant.strftime(DATE_FORMAT), instant.strftime(TIME_FORMAT)
