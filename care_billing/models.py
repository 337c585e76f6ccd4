"""Canonical data model for the care staffing invoice engine."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, time
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Mapping, Optional

ZERO = Decimal("0")
CENT = Decimal("0.01")


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    CANCELLED = "cancelled"
    INVALIDATED = "invalidated"


class WorkRecordInvoiceStatus(str, Enum):
    """Billing state of a work record, independent of its approval status."""
    DRAFT = "draft"
    APPROVED = "approved"
    PENDING_INVOICE = "pending_invoice"
    INVOICED = "invoiced"
    PAID = "paid"


# Work records in these states are already on an invoice and never previewed again.
LOCKED_INVOICE_STATUSES = frozenset({
    WorkRecordInvoiceStatus.PENDING_INVOICE,
    WorkRecordInvoiceStatus.INVOICED,
    WorkRecordInvoiceStatus.PAID,
})


class DayType(str, Enum):
    WEEKDAY = "weekday"
    WEEKEND = "weekend"
    HOLIDAY = "holiday"


class RateType(str, Enum):
    WEEKDAY = "weekday"
    WEEKEND = "weekend"
    HOLIDAY = "holiday"
    EMERGENCY_WEEKDAY = "emergency_weekday"
    EMERGENCY_WEEKEND = "emergency_weekend"
    EMERGENCY_HOLIDAY = "emergency_holiday"


class RateSource(str, Enum):
    FACILITY = "facility"
    USER_TYPE = "user_type"


class SkipReason(str, Enum):
    NO_SHIFT_PATTERN = "no_shift_pattern"
    NO_RATE = "no_rate"
    NO_TIMING = "no_timing"
    ALREADY_INVOICED = "already_invoiced"


class DeletionOutcome(str, Enum):
    DELETED = "deleted"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Timing:
    """Shift timing for one facility on a shift pattern."""
    facility_id: str
    start_time: time
    end_time: time
    billable_hours: Optional[Decimal] = None
    break_hours: Optional[Decimal] = None


@dataclass(frozen=True)
class RateEntry:
    """Hourly rates for one role, scoped to a facility or (facility_id=None) to any facility."""
    role: str
    weekday_rate: Decimal
    weekend_rate: Decimal
    emergency_weekday_rate: Decimal
    emergency_weekend_rate: Decimal
    holiday_rate: Optional[Decimal] = None
    emergency_holiday_rate: Optional[Decimal] = None
    facility_id: Optional[str] = None

    def __post_init__(self) -> None:
        for name in (
            "weekday_rate",
            "weekend_rate",
            "emergency_weekday_rate",
            "emergency_weekend_rate",
            "holiday_rate",
            "emergency_holiday_rate",
        ):
            val = getattr(self, name)
            if val is not None and val < 0:
                raise ValueError(f"Rate '{name}' must not be negative, got {val}")


@dataclass(frozen=True)
class ShiftPattern:
    """Named shift template with per-facility timings and role rates."""
    id: str
    name: str
    timings: tuple[Timing, ...] = ()
    rates: tuple[RateEntry, ...] = ()
    user_type_rates: tuple[RateEntry, ...] = ()


@dataclass(frozen=True)
class WorkRecordView:
    """One approved work record joined with its shift, pattern and worker."""
    id: str
    shift_id: str
    shift_date: date
    is_emergency: bool
    facility_id: Optional[str]
    shift_facility_id: Optional[str]
    shift_temporary_facility_id: Optional[str]
    worker_first_name: str
    worker_last_name: str
    worker_role: str
    pattern: Optional[ShiftPattern]

    @property
    def worker_name(self) -> str:
        return f"{self.worker_first_name} {self.worker_last_name}".strip()


@dataclass(frozen=True)
class DayClassification:
    is_weekend: bool
    is_holiday: bool

    @property
    def day_type(self) -> DayType:
        if self.is_holiday:
            return DayType.HOLIDAY
        return DayType.WEEKEND if self.is_weekend else DayType.WEEKDAY


@dataclass(frozen=True)
class ResolvedRate:
    hourly_rate: Decimal
    rate_type: RateType
    source: RateSource
    entry: RateEntry


@dataclass(frozen=True)
class HoursResult:
    """Billable hours plus the un-clamped duration (None when billable hours were explicit)."""
    billable_hours: Decimal
    total_hours: Optional[Decimal]
    break_hours: Decimal


_BUCKET_FIELDS = (
    "count",
    "total_hours",
    "billable_hours",
    "break_hours",
    "weekday_hours",
    "weekend_hours",
    "holiday_hours",
    "emergency_hours",
    "weekday_rate",
    "weekend_rate",
    "holiday_rate",
    "emergency_rate",
    "total_amount",
)


@dataclass(frozen=True)
class ShiftSummaryBucket:
    """Aggregated hours and amount for one shift type. Immutable snapshot."""
    count: int = 0
    total_hours: Decimal = ZERO
    billable_hours: Decimal = ZERO
    break_hours: Decimal = ZERO
    weekday_hours: Decimal = ZERO
    weekend_hours: Decimal = ZERO
    holiday_hours: Decimal = ZERO
    emergency_hours: Decimal = ZERO
    weekday_rate: Decimal = ZERO
    weekend_rate: Decimal = ZERO
    holiday_rate: Decimal = ZERO
    emergency_rate: Decimal = ZERO
    total_amount: Decimal = ZERO

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for name in _BUCKET_FIELDS:
            val = getattr(self, name)
            data[name] = val if name == "count" else str(val)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ShiftSummaryBucket":
        """Build a bucket from a loose mapping; missing numeric fields default to 0."""
        values: dict[str, Any] = {}
        for name in _BUCKET_FIELDS:
            raw = data.get(name)
            if name == "count":
                values[name] = int(raw or 0)
            else:
                values[name] = Decimal(str(raw)) if raw not in (None, "") else ZERO
        return cls(**values)

    def with_changes(self, **changes: Any) -> "ShiftSummaryBucket":
        return replace(self, **changes)


@dataclass(frozen=True)
class ProcessedRecord:
    """Per-record line of a calculation or a replayed invoice detail."""
    work_record_id: str
    shift_date: date
    shift_type: str
    worker_name: str
    worker_role: str
    hourly_rate: Decimal
    hours: Decimal
    total_hours: Optional[Decimal]
    break_hours: Decimal
    amount: Decimal
    is_emergency: bool
    is_holiday: bool
    is_weekend: bool
    rate_type: Optional[RateType] = None
    timing: Optional[Timing] = None

    def to_line(self) -> dict[str, Any]:
        """JSON-safe snapshot of the priced line."""
        return {
            "shift_date": self.shift_date.isoformat(),
            "shift_type": self.shift_type,
            "worker_name": self.worker_name,
            "worker_role": self.worker_role,
            "hourly_rate": str(self.hourly_rate),
            "hours": str(self.hours),
            "total_hours": str(self.total_hours) if self.total_hours is not None else None,
            "break_hours": str(self.break_hours),
            "amount": str(self.amount),
            "is_emergency": self.is_emergency,
            "is_holiday": self.is_holiday,
            "is_weekend": self.is_weekend,
            "rate_type": self.rate_type.value if self.rate_type else None,
        }

    @classmethod
    def from_line(cls, work_record_id: str, data: Mapping[str, Any]) -> "ProcessedRecord":
        total_hours = data.get("total_hours")
        rate_type = data.get("rate_type")
        return cls(
            work_record_id=work_record_id,
            shift_date=date.fromisoformat(data["shift_date"]),
            shift_type=data.get("shift_type", ""),
            worker_name=data.get("worker_name", ""),
            worker_role=data.get("worker_role", ""),
            hourly_rate=Decimal(data["hourly_rate"]),
            hours=Decimal(data["hours"]),
            total_hours=Decimal(total_hours) if total_hours is not None else None,
            break_hours=Decimal(data.get("break_hours") or "0"),
            amount=Decimal(data["amount"]),
            is_emergency=bool(data.get("is_emergency")),
            is_holiday=bool(data.get("is_holiday")),
            is_weekend=bool(data.get("is_weekend")),
            rate_type=RateType(rate_type) if rate_type else None,
        )


@dataclass(frozen=True)
class SkippedRecord:
    work_record_id: str
    reason: SkipReason


@dataclass(frozen=True)
class FacilityRef:
    """Facility as resolved by the identity provider."""
    id: str
    name: str
    is_temporary: bool
    email: str = ""
    phone: str = ""
    address: dict = field(default_factory=dict)
    is_claimed: bool = False

    def details(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": dict(self.address),
        }


@dataclass
class CalculationResult:
    """Invoice preview: nothing here is persisted."""
    facility: FacilityRef
    records: list[ProcessedRecord] = field(default_factory=list)
    shift_summary: dict[str, ShiftSummaryBucket] = field(default_factory=dict)
    skipped: list[SkippedRecord] = field(default_factory=list)

    @property
    def total_amount(self) -> Decimal:
        return sum((b.total_amount for b in self.shift_summary.values()), ZERO)

    @property
    def total_records(self) -> int:
        return len(self.records)

    @property
    def first_shift(self) -> Optional[ProcessedRecord]:
        return self.records[0] if self.records else None

    @property
    def last_shift(self) -> Optional[ProcessedRecord]:
        return self.records[-1] if self.records else None

    @property
    def skipped_ids(self) -> list[str]:
        return [s.work_record_id for s in self.skipped]


def summary_total(summary: Mapping[str, ShiftSummaryBucket]) -> Decimal:
    return sum((b.total_amount for b in summary.values()), ZERO)


def to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, ROUND_HALF_UP)


# --- Errors ---


class BillingError(Exception):
    """Base class for every error raised by the billing engine."""
    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvoiceValidationError(BillingError):
    """Raised when request input fails validation. No state has changed."""
    def __init__(self, errors: dict[str, str]):
        self.errors = errors
        super().__init__(
            f"Validation failed with {len(errors)} error(s):\n"
            + "\n".join(f"  - {name}: {msg}" for name, msg in errors.items()),
            details={"errors": dict(errors)},
        )


class NotFoundError(BillingError):
    pass


class FacilityNotFound(NotFoundError):
    def __init__(self, facility_id: str):
        self.facility_id = facility_id
        super().__init__(f"Facility not found with ID: {facility_id}", {"facility_id": facility_id})


class InvoiceNotFound(NotFoundError):
    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found with ID: {invoice_id}", {"invoice_id": invoice_id})


class WorkRecordNotFound(NotFoundError):
    def __init__(self, work_record_ids: list[str]):
        self.work_record_ids = list(work_record_ids)
        super().__init__(
            f"Work record(s) not found: {', '.join(self.work_record_ids)}",
            {"work_record_ids": self.work_record_ids},
        )


class ConflictError(BillingError):
    pass


class DuplicateInvoiceReference(ConflictError):
    def __init__(self, work_record_ids: list[str]):
        self.work_record_ids = sorted(work_record_ids)
        super().__init__(
            "An invoice already exists for work record(s): " + ", ".join(self.work_record_ids),
            {"work_record_ids": self.work_record_ids},
        )


class InvalidTransition(ConflictError):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Invalid status transition from {current} to {requested}",
            {"current": current, "requested": requested},
        )


class InvoiceNotDeletable(ConflictError):
    def __init__(self, status: str):
        self.status = status
        super().__init__(
            f"Invoice cannot be deleted in its current status: {status}",
            {"status": status},
        )
