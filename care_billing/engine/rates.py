"""Hourly rate resolution.

A rate entry is looked up through an ordered chain of resolvers, first
match wins:

1. facility-scoped rates matching a candidate facility id and the role
   (candidates tried in order);
2. facility-less user-type rates matching the role.

The entry's field is then picked by day type and emergency flag. A record
with no entry at all is unresolved and is left out of the invoice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable, Optional, Sequence

from care_billing.models import (
    DayClassification,
    RateEntry,
    RateSource,
    RateType,
    ResolvedRate,
    ShiftPattern,
)

logger = logging.getLogger(__name__)

_ROLE_ALIASES = {
    "senior_carer": "senior carer",
}


def normalize_role(role: Optional[str]) -> str:
    normalized = (role or "").strip().lower()
    return _ROLE_ALIASES.get(normalized, normalized)


def candidate_facility_ids(
    facility_id: str,
    is_temporary: bool,
    shift_facility_id: Optional[str] = None,
    shift_temporary_facility_id: Optional[str] = None,
) -> list[str]:
    """Facility ids to try for rate and timing lookup, in priority order."""
    if not is_temporary:
        return [facility_id]
    ids: list[str] = []
    for candidate in (facility_id, shift_facility_id, shift_temporary_facility_id):
        if candidate and candidate not in ids:
            ids.append(candidate)
    return ids


@dataclass(frozen=True)
class RateQuery:
    role: str
    candidate_ids: Sequence[str]


RateResolver = Callable[[ShiftPattern, RateQuery], Optional[RateEntry]]


def facility_rate(pattern: ShiftPattern, query: RateQuery) -> Optional[RateEntry]:
    for facility_id in query.candidate_ids:
        for entry in pattern.rates:
            if entry.facility_id == facility_id and normalize_role(entry.role) == query.role:
                return entry
    return None


def user_type_rate(pattern: ShiftPattern, query: RateQuery) -> Optional[RateEntry]:
    if not query.role:
        return None
    for entry in pattern.user_type_rates:
        if normalize_role(entry.role) == query.role:
            return entry
    return None


RATE_RESOLVERS: tuple[tuple[RateSource, RateResolver], ...] = (
    (RateSource.FACILITY, facility_rate),
    (RateSource.USER_TYPE, user_type_rate),
)


def find_rate_entry(
    pattern: ShiftPattern,
    query: RateQuery,
    resolvers: Iterable[tuple[RateSource, RateResolver]] = RATE_RESOLVERS,
) -> Optional[tuple[RateSource, RateEntry]]:
    for source, resolver in resolvers:
        entry = resolver(pattern, query)
        if entry is not None:
            return source, entry
    return None


def select_hourly_rate(
    entry: RateEntry,
    day: DayClassification,
    is_emergency: bool,
) -> tuple[Decimal, RateType]:
    """Pick one of the entry's six fields; holiday wins when the entry defines it."""
    if day.is_holiday and entry.holiday_rate is not None:
        if is_emergency and entry.emergency_holiday_rate is not None:
            return entry.emergency_holiday_rate, RateType.EMERGENCY_HOLIDAY
        return entry.holiday_rate, RateType.HOLIDAY

    if is_emergency:
        if day.is_weekend:
            return entry.emergency_weekend_rate, RateType.EMERGENCY_WEEKEND
        return entry.emergency_weekday_rate, RateType.EMERGENCY_WEEKDAY

    if day.is_weekend:
        return entry.weekend_rate, RateType.WEEKEND
    return entry.weekday_rate, RateType.WEEKDAY


def resolve_rate(
    pattern: ShiftPattern,
    role: str,
    candidate_ids: Sequence[str],
    day: DayClassification,
    is_emergency: bool,
    resolvers: Iterable[tuple[RateSource, RateResolver]] = RATE_RESOLVERS,
) -> Optional[ResolvedRate]:
    query = RateQuery(role=normalize_role(role), candidate_ids=tuple(candidate_ids))
    found = find_rate_entry(pattern, query, resolvers)
    if found is None:
        logger.warning(
            "No rate found: pattern=%s role=%r normalized=%r facilities=%s",
            pattern.name, role, query.role, list(query.candidate_ids),
        )
        return None

    source, entry = found
    hourly_rate, rate_type = select_hourly_rate(entry, day, is_emergency)
    return ResolvedRate(hourly_rate=hourly_rate, rate_type=rate_type, source=source, entry=entry)
