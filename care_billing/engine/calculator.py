"""Invoice calculation over a fetched set of work records.

Runs rate resolution, hours and day classification for every record and
folds the results into the shift summary. Everything is done in memory with
Decimal precision; records that cannot be priced are skipped and reported,
never fatal for the whole calculation.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable

from care_billing.engine.days import classify_day
from care_billing.engine.hours import calculate_hours, find_timing
from care_billing.engine.rates import candidate_facility_ids, resolve_rate
from care_billing.engine.summary import add_to_summary
from care_billing.models import (
    CalculationResult,
    FacilityRef,
    ProcessedRecord,
    SkippedRecord,
    SkipReason,
    WorkRecordView,
)

logger = logging.getLogger(__name__)


def calculate_invoice(
    records: Iterable[WorkRecordView],
    facility: FacilityRef,
    holidays: frozenset[date],
) -> CalculationResult:
    """Build the calculation preview for records already filtered and sorted by shift date."""
    result = CalculationResult(facility=facility)

    for record in records:
        pattern = record.pattern
        if pattern is None:
            logger.warning(
                "No shift pattern found for work record %s (shift %s)", record.id, record.shift_id,
            )
            result.skipped.append(SkippedRecord(record.id, SkipReason.NO_SHIFT_PATTERN))
            continue

        candidates = candidate_facility_ids(
            facility.id,
            facility.is_temporary,
            record.shift_facility_id,
            record.shift_temporary_facility_id,
        )
        day = classify_day(record.shift_date, holidays)

        resolved = resolve_rate(pattern, record.worker_role, candidates, day, record.is_emergency)
        if resolved is None:
            logger.warning(
                "Skipping work record %s: no rate for role %r at facility %s",
                record.id, record.worker_role, facility.id,
            )
            result.skipped.append(SkippedRecord(record.id, SkipReason.NO_RATE))
            continue

        timing = find_timing(pattern, candidates)
        if timing is None:
            logger.warning("Skipping work record %s: no timing for facility %s", record.id, facility.id)
            result.skipped.append(SkippedRecord(record.id, SkipReason.NO_TIMING))
            continue

        hours = calculate_hours(timing)
        amount: Decimal = resolved.hourly_rate * hours.billable_hours

        processed = ProcessedRecord(
            work_record_id=record.id,
            shift_date=record.shift_date,
            shift_type=pattern.name,
            worker_name=record.worker_name,
            worker_role=record.worker_role,
            hourly_rate=resolved.hourly_rate,
            hours=hours.billable_hours,
            total_hours=hours.total_hours,
            break_hours=hours.break_hours,
            amount=amount,
            is_emergency=record.is_emergency,
            is_holiday=day.is_holiday,
            is_weekend=day.is_weekend,
            rate_type=resolved.rate_type,
            timing=timing,
        )
        result.records.append(processed)
        add_to_summary(result.shift_summary, processed, resolved.entry)

    logger.debug(
        "Calculated %d record(s), skipped %d, total=%s",
        len(result.records), len(result.skipped), result.total_amount,
    )
    return result
