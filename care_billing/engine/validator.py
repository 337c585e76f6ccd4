"""Request validation.

Collects every field problem first and raises once, so callers get the full
list before any state changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

from care_billing.engine.days import DateLike, normalize_day, normalize_holidays
from care_billing.engine.summary import freeze_summary
from care_billing.models import (
    InvoiceValidationError,
    ShiftSummaryBucket,
    summary_total,
    to_cents,
)


@dataclass(frozen=True)
class PreviewRequest:
    agency_id: str
    facility_id: str
    start_date: date
    end_date: date
    holidays: frozenset[date]


@dataclass(frozen=True)
class CreateRequest:
    agency_id: str
    facility_id: str
    start_date: date
    end_date: date
    work_record_ids: tuple[str, ...]
    total_amount: Decimal
    shift_summary: dict[str, ShiftSummaryBucket]
    holidays: frozenset[date]
    due_date: Optional[date]


def _require_id(errors: dict[str, str], name: str, value: Any) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        errors[name] = "is required"
    return text


def _parse_day(errors: dict[str, str], name: str, value: Any) -> Optional[date]:
    if value is None or value == "":
        errors[name] = "is required"
        return None
    try:
        return normalize_day(value)
    except (TypeError, ValueError):
        errors[name] = f"invalid date: {value!r}"
        return None


def _parse_holidays(errors: dict[str, str], holidays: Optional[Iterable[DateLike]]) -> frozenset[date]:
    try:
        return normalize_holidays(holidays or ())
    except (TypeError, ValueError) as e:
        errors["holidays"] = f"invalid holiday date: {e}"
        return frozenset()


def _check_range(errors: dict[str, str], start: Optional[date], end: Optional[date]) -> None:
    if start is not None and end is not None and start > end:
        errors["end_date"] = f"end date {end} is before start date {start}"


def validate_preview_request(
    agency_id: Any,
    facility_id: Any,
    start_date: Any,
    end_date: Any,
    holidays: Optional[Iterable[DateLike]] = None,
) -> PreviewRequest:
    errors: dict[str, str] = {}

    agency = _require_id(errors, "agency_id", agency_id)
    facility = _require_id(errors, "facility_id", facility_id)
    start = _parse_day(errors, "start_date", start_date)
    end = _parse_day(errors, "end_date", end_date)
    _check_range(errors, start, end)
    holiday_set = _parse_holidays(errors, holidays)

    if errors:
        raise InvoiceValidationError(errors)

    return PreviewRequest(agency, facility, start, end, holiday_set)


def validate_create_request(
    agency_id: Any,
    facility_id: Any,
    start_date: Any,
    end_date: Any,
    work_record_ids: Optional[Iterable[Any]],
    total_amount: Any,
    shift_summary: Optional[Mapping[str, Any]],
    holidays: Optional[Iterable[DateLike]] = None,
    due_date: Any = None,
) -> CreateRequest:
    errors: dict[str, str] = {}

    agency = _require_id(errors, "agency_id", agency_id)
    facility = _require_id(errors, "facility_id", facility_id)
    start = _parse_day(errors, "start_date", start_date)
    end = _parse_day(errors, "end_date", end_date)
    _check_range(errors, start, end)
    holiday_set = _parse_holidays(errors, holidays)

    due: Optional[date] = None
    if due_date not in (None, ""):
        due = _parse_day(errors, "due_date", due_date)

    # --- Work records ---
    ids = [str(i).strip() for i in (work_record_ids or [])]
    if not ids:
        errors["work_record_ids"] = "at least one work record is required"
    elif any(not i for i in ids):
        errors["work_record_ids"] = "work record ids must not be blank"
    elif len(set(ids)) != len(ids):
        errors["work_record_ids"] = "work record ids must be unique"

    # --- Total ---
    total: Optional[Decimal] = None
    try:
        total = Decimal(str(total_amount))
        if not total.is_finite():
            errors["total_amount"] = "must be a finite number"
            total = None
        elif total < 0:
            errors["total_amount"] = f"must not be negative, got {total}"
            total = None
    except (InvalidOperation, TypeError, ValueError):
        errors["total_amount"] = f"not a number: {total_amount!r}"

    # --- Shift summary ---
    summary: dict[str, ShiftSummaryBucket] = {}
    if not shift_summary:
        errors["shift_summary"] = "is required"
    else:
        try:
            summary = freeze_summary(shift_summary)
        except (ArithmeticError, TypeError, ValueError) as e:
            errors["shift_summary"] = f"malformed summary: {e}"

    if summary and total is not None:
        bucket_sum = summary_total(summary)
        if to_cents(bucket_sum) != to_cents(total):
            errors["total_amount"] = (
                f"total {total} does not match the sum of shift summary totals {bucket_sum}"
            )

    if errors:
        raise InvoiceValidationError(errors)

    return CreateRequest(
        agency_id=agency,
        facility_id=facility,
        start_date=start,
        end_date=end,
        work_record_ids=tuple(ids),
        # The stored total is the frozen bucket sum, not the client figure.
        total_amount=summary_total(summary),
        shift_summary=summary,
        holidays=holiday_set,
        due_date=due,
    )
