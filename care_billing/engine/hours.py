"""Billable hours from shift timing.

Business rules:
- An explicit billable-hours value on the timing (zero included) is used
  verbatim; the shift duration is then unknown.
- Otherwise duration = end - start. An end time-of-day before the start
  means the shift crosses midnight and 24 hours are added.
- Break hours (default 0) are subtracted and the result is clamped at 0.
  The un-clamped duration is kept for the summary's total hours.
"""

from __future__ import annotations

import logging
from datetime import time
from decimal import Decimal
from typing import Optional, Sequence, Union

from care_billing.models import HoursResult, ShiftPattern, Timing, ZERO

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 3600
SECONDS_PER_HOUR = Decimal("3600")

TimeLike = Union[time, str]


def parse_time(value: TimeLike) -> time:
    """Accept a time object or an "HH:MM" / "HH:MM:SS" string."""
    if isinstance(value, time):
        return value
    return time.fromisoformat(str(value).strip())


def _seconds(value: time) -> int:
    return value.hour * 3600 + value.minute * 60 + value.second


def shift_duration(start: TimeLike, end: TimeLike) -> Decimal:
    """Hours from start to end, wrapping past midnight when end < start."""
    start_s = _seconds(parse_time(start))
    end_s = _seconds(parse_time(end))
    if end_s < start_s:
        end_s += SECONDS_PER_DAY
    return Decimal(end_s - start_s) / SECONDS_PER_HOUR


def calculate_hours(timing: Timing) -> HoursResult:
    break_hours = timing.break_hours if timing.break_hours is not None else ZERO

    if timing.billable_hours is not None:
        return HoursResult(
            billable_hours=timing.billable_hours,
            total_hours=None,
            break_hours=break_hours,
        )

    total = shift_duration(timing.start_time, timing.end_time)
    billable = max(ZERO, total - break_hours)
    logger.debug(
        "Calculated billable hours: total=%s break=%s billable=%s", total, break_hours, billable,
    )
    return HoursResult(billable_hours=billable, total_hours=total, break_hours=break_hours)


def find_timing(pattern: ShiftPattern, candidate_ids: Sequence[str]) -> Optional[Timing]:
    """First timing on the pattern whose facility matches a candidate, in candidate order."""
    for facility_id in candidate_ids:
        for timing in pattern.timings:
            if timing.facility_id == facility_id:
                return timing
    return None
