"""Queries over the backing store: facilities, work records and invoices."""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, Optional, Sequence

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session, selectinload

from care_billing.models import (
    LOCKED_INVOICE_STATUSES,
    FacilityRef,
    RateEntry,
    ShiftPattern,
    Timing,
    WorkRecordView,
)
from care_billing.store.tables import (
    Invoice,
    InvoiceWorkRecord,
    Organization,
    Shift,
    ShiftPatternModel,
    TemporaryFacility,
    WorkRecord,
)

APPROVED = "approved"


# --- Identity / organizations ---


def find_organization(db: Session, org_id: str) -> Optional[Organization]:
    return db.get(Organization, org_id)


def find_facility(db: Session, facility_id: str) -> Optional[FacilityRef]:
    """Permanent facilities first, then temporary/unclaimed ones."""
    org = db.execute(
        select(Organization).where(Organization.id == facility_id, Organization.kind == "facility")
    ).scalar_one_or_none()
    if org is not None:
        return FacilityRef(
            id=org.id,
            name=org.name,
            is_temporary=False,
            email=org.email or "",
            phone=org.phone or "",
            address=dict(org.address or {}),
        )

    temp = db.get(TemporaryFacility, facility_id)
    if temp is not None:
        return FacilityRef(
            id=temp.id,
            name=temp.name,
            is_temporary=True,
            email=temp.email or "",
            phone=temp.phone or "",
            address=dict(temp.address or {}),
            is_claimed=bool(temp.is_claimed),
        )
    return None


# --- Shift patterns ---


def to_pattern(model: ShiftPatternModel) -> ShiftPattern:
    timings = tuple(
        Timing(
            facility_id=t.facility_id,
            start_time=t.start_time,
            end_time=t.end_time,
            billable_hours=t.billable_hours,
            break_hours=t.break_hours,
        )
        for t in model.timings
    )
    rates: list[RateEntry] = []
    user_type_rates: list[RateEntry] = []
    for r in model.rates:
        entry = RateEntry(
            role=r.role,
            weekday_rate=r.weekday_rate,
            weekend_rate=r.weekend_rate,
            emergency_weekday_rate=r.emergency_weekday_rate,
            emergency_weekend_rate=r.emergency_weekend_rate,
            holiday_rate=r.holiday_rate,
            emergency_holiday_rate=r.emergency_holiday_rate,
            facility_id=r.facility_id,
        )
        (rates if r.facility_id is not None else user_type_rates).append(entry)
    return ShiftPattern(
        id=model.id,
        name=model.name,
        timings=timings,
        rates=tuple(rates),
        user_type_rates=tuple(user_type_rates),
    )


# --- Work records ---


def _work_record_query():
    return (
        select(WorkRecord)
        .join(Shift, WorkRecord.shift_id == Shift.id)
        .options(
            selectinload(WorkRecord.worker),
            selectinload(WorkRecord.shift)
            .selectinload(Shift.pattern)
            .options(selectinload(ShiftPatternModel.timings), selectinload(ShiftPatternModel.rates)),
        )
    )


def _to_view(record: WorkRecord) -> WorkRecordView:
    shift, worker = record.shift, record.worker
    return WorkRecordView(
        id=record.id,
        shift_id=shift.id,
        shift_date=shift.shift_date,
        is_emergency=bool(shift.is_emergency),
        facility_id=record.facility_id,
        shift_facility_id=shift.facility_id,
        shift_temporary_facility_id=shift.temporary_facility_id,
        worker_first_name=worker.first_name or "",
        worker_last_name=worker.last_name or "",
        worker_role=worker.role or "",
        pattern=to_pattern(shift.pattern) if shift.pattern is not None else None,
    )


def fetch_billable_work_records(
    db: Session,
    agency_id: str,
    facility: FacilityRef,
    start_date: date,
    end_date: date,
) -> list[WorkRecordView]:
    """Approved, not-yet-invoiced work records in range, ordered by shift date."""
    if facility.is_temporary:
        facility_match = or_(
            WorkRecord.facility_id == facility.id,
            Shift.temporary_facility_id == facility.id,
            Shift.facility_id == facility.id,
        )
    else:
        facility_match = WorkRecord.facility_id == facility.id

    stmt = (
        _work_record_query()
        .where(
            Shift.shift_date >= start_date,
            Shift.shift_date <= end_date,
            WorkRecord.agency_id == agency_id,
            WorkRecord.status == APPROVED,
            WorkRecord.invoice_status.not_in([s.value for s in LOCKED_INVOICE_STATUSES]),
            facility_match,
        )
        .order_by(Shift.shift_date, WorkRecord.id)
    )
    return [_to_view(r) for r in db.execute(stmt).scalars()]


def load_work_record_views(db: Session, work_record_ids: Sequence[str]) -> list[WorkRecordView]:
    if not work_record_ids:
        return []
    stmt = (
        _work_record_query()
        .where(WorkRecord.id.in_(list(work_record_ids)))
        .order_by(Shift.shift_date, WorkRecord.id)
    )
    return [_to_view(r) for r in db.execute(stmt).scalars()]


def find_existing_work_record_ids(db: Session, work_record_ids: Iterable[str]) -> set[str]:
    ids = list(work_record_ids)
    if not ids:
        return set()
    return set(db.execute(select(WorkRecord.id).where(WorkRecord.id.in_(ids))).scalars())


def find_linked_work_record_ids(db: Session, work_record_ids: Iterable[str]) -> list[str]:
    """Ids among the given ones already referenced by a non-deleted invoice."""
    ids = list(work_record_ids)
    if not ids:
        return []
    stmt = select(InvoiceWorkRecord.work_record_id).where(InvoiceWorkRecord.work_record_id.in_(ids))
    return sorted(db.execute(stmt).scalars())


def update_work_records_invoice_status(
    db: Session,
    work_record_ids: Sequence[str],
    invoice_status: str,
    invoice_id: Optional[str] = None,
    invoice_number: Optional[str] = None,
) -> None:
    """Bulk-set invoice_status; a missing invoice_id clears the invoice stamp."""
    if not work_record_ids:
        return
    db.execute(
        update(WorkRecord)
        .where(WorkRecord.id.in_(list(work_record_ids)))
        .values(
            invoice_status=invoice_status,
            invoice_id=invoice_id,
            invoice_number=invoice_number if invoice_id is not None else None,
        )
    )


# --- Invoices ---


def get_invoice(db: Session, invoice_id: str) -> Optional[Invoice]:
    stmt = select(Invoice).where(Invoice.id == invoice_id).options(selectinload(Invoice.links))
    return db.execute(stmt).scalar_one_or_none()


def invoice_number_exists(db: Session, invoice_number: str) -> bool:
    stmt = select(func.count()).select_from(Invoice).where(Invoice.invoice_number == invoice_number)
    return db.execute(stmt).scalar_one() > 0


def list_invoices(
    db: Session,
    organization_id: str,
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
    created_from: Optional[datetime] = None,
    created_to: Optional[datetime] = None,
) -> tuple[list[Invoice], int]:
    conditions = [or_(Invoice.agency_id == organization_id, Invoice.facility_id == organization_id)]
    if status and status != "all":
        conditions.append(Invoice.status == status)
    if created_from is not None and created_to is not None:
        conditions.append(Invoice.created_at >= created_from)
        conditions.append(Invoice.created_at <= created_to)

    total = db.execute(select(func.count()).select_from(Invoice).where(*conditions)).scalar_one()
    stmt = (
        select(Invoice)
        .where(*conditions)
        .options(selectinload(Invoice.links))
        .order_by(Invoice.created_at.desc(), Invoice.id)
        .offset(max(page - 1, 0) * limit)
        .limit(limit)
    )
    return list(db.execute(stmt).scalars()), total
