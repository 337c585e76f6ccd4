"""Per-shift-type summary aggregation.

Each record lands in exactly one hour bucket, by priority
holiday > emergency > weekend > weekday. Bucket rates are taken from the
first record that populates the bucket.
"""

from __future__ import annotations

from typing import Mapping, Optional

from care_billing.models import (
    ProcessedRecord,
    RateEntry,
    ShiftSummaryBucket,
    ZERO,
)


def hour_bucket(is_holiday: bool, is_emergency: bool, is_weekend: bool) -> str:
    if is_holiday:
        return "holiday_hours"
    if is_emergency:
        return "emergency_hours"
    if is_weekend:
        return "weekend_hours"
    return "weekday_hours"


def new_bucket(entry: RateEntry) -> ShiftSummaryBucket:
    return ShiftSummaryBucket(
        weekday_rate=entry.weekday_rate,
        weekend_rate=entry.weekend_rate,
        holiday_rate=entry.holiday_rate if entry.holiday_rate is not None else ZERO,
        emergency_rate=entry.emergency_weekday_rate if entry.emergency_weekday_rate is not None else ZERO,
    )


def accumulate(
    bucket: Optional[ShiftSummaryBucket],
    record: ProcessedRecord,
    entry: RateEntry,
) -> ShiftSummaryBucket:
    """Return a new bucket with the record added."""
    if bucket is None:
        bucket = new_bucket(entry)

    hours = record.hours
    total_hours = record.total_hours if record.total_hours is not None else hours
    slot = hour_bucket(record.is_holiday, record.is_emergency, record.is_weekend)

    return bucket.with_changes(
        count=bucket.count + 1,
        total_hours=bucket.total_hours + total_hours,
        billable_hours=bucket.billable_hours + hours,
        break_hours=bucket.break_hours + record.break_hours,
        total_amount=bucket.total_amount + record.amount,
        **{slot: getattr(bucket, slot) + hours},
    )


def add_to_summary(
    summary: dict[str, ShiftSummaryBucket],
    record: ProcessedRecord,
    entry: RateEntry,
) -> None:
    summary[record.shift_type] = accumulate(summary.get(record.shift_type), record, entry)


def freeze_summary(raw: Mapping[str, object]) -> dict[str, ShiftSummaryBucket]:
    """Copy a caller-supplied summary into immutable buckets."""
    frozen: dict[str, ShiftSummaryBucket] = {}
    for shift_type, data in raw.items():
        if isinstance(data, ShiftSummaryBucket):
            frozen[str(shift_type)] = data
        elif isinstance(data, Mapping):
            frozen[str(shift_type)] = ShiftSummaryBucket.from_dict(data)
        else:
            raise ValueError(f"Summary entry for {shift_type!r} must be a mapping")
    return frozen


def summary_to_json(summary: Mapping[str, ShiftSummaryBucket]) -> dict[str, dict]:
    return {name: bucket.to_dict() for name, bucket in summary.items()}
