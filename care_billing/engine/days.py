"""Day classification: weekend by ISO weekday, holiday by caller-supplied dates."""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, Union

from care_billing.models import DayClassification

DateLike = Union[date, datetime, str]


def normalize_day(value: DateLike) -> date:
    """Reduce a date, datetime or ISO string to calendar-day granularity."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        raise ValueError("empty date")
    return date.fromisoformat(text[:10])


def normalize_holidays(holidays: Iterable[DateLike]) -> frozenset[date]:
    return frozenset(normalize_day(h) for h in holidays)


def is_weekend(day: date) -> bool:
    # ISO: Monday=1 .. Sunday=7
    return day.isoweekday() > 5


def classify_day(shift_date: DateLike, holidays: frozenset[date]) -> DayClassification:
    day = normalize_day(shift_date)
    return DayClassification(is_weekend=is_weekend(day), is_holiday=day in holidays)
