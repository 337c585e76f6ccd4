"""
Invoice orchestration: preview, create, delete, detail and listing.

Every write runs in a single session transaction. A failure rolls the
whole operation back and re-raises; callers never see a partial invoice.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from care_billing import notifications
from care_billing.config import config
from care_billing.engine import calculate_invoice
from care_billing.engine.days import DateLike
from care_billing.engine.summary import freeze_summary, summary_to_json
from care_billing.engine.validator import validate_create_request, validate_preview_request
from care_billing.lifecycle import apply_transition
from care_billing.models import (
    CalculationResult,
    ConflictError,
    DeletionOutcome,
    DuplicateInvoiceReference,
    FacilityNotFound,
    InvoiceNotDeletable,
    InvoiceNotFound,
    InvoiceStatus,
    InvoiceValidationError,
    ProcessedRecord,
    ShiftSummaryBucket,
    SkippedRecord,
    SkipReason,
    WorkRecordInvoiceStatus,
    WorkRecordNotFound,
    summary_total,
    to_cents,
)
from care_billing.store import repository
from care_billing.store.tables import Invoice, InvoiceWorkRecord, OutboxEvent, new_id, utc_now

logger = logging.getLogger(__name__)

DELETABLE_STATUSES = frozenset({
    InvoiceStatus.CANCELLED,
    InvoiceStatus.PENDING,
    InvoiceStatus.REJECTED,
    InvoiceStatus.INVALIDATED,
})
# Not deletable once money is involved; these are cancelled instead.
CANCEL_ON_DELETE_STATUSES = frozenset({InvoiceStatus.PAID, InvoiceStatus.ACCEPTED})


# --- Invoice numbers ---


def format_invoice_number(today: date, suffix: int) -> str:
    return f"INV-{today:%y%m}-{suffix:04d}"


def generate_invoice_number(
    db: Session,
    today: Optional[date] = None,
    attempts: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> str:
    """INV-YYMM-#### with a random suffix not already in use."""
    today = today or date.today()
    attempts = attempts or config.INVOICE_NUMBER_ATTEMPTS
    rng = rng or random.SystemRandom()

    for _ in range(attempts):
        number = format_invoice_number(today, rng.randint(0, 9999))
        if not repository.invoice_number_exists(db, number):
            return number
        logger.debug("Invoice number %s already taken, retrying", number)
    raise ConflictError(
        f"Could not allocate a unique invoice number after {attempts} attempt(s)",
        {"attempts": attempts},
    )


# --- Preview ---


def preview_invoice(
    db: Session,
    agency_id: str,
    facility_id: str,
    start_date: DateLike,
    end_date: DateLike,
    holidays: Optional[Iterable[DateLike]] = None,
) -> CalculationResult:
    """Calculate what an invoice would contain. Nothing is persisted."""
    req = validate_preview_request(agency_id, facility_id, start_date, end_date, holidays)

    facility = repository.find_facility(db, req.facility_id)
    if facility is None:
        raise FacilityNotFound(req.facility_id)

    records = repository.fetch_billable_work_records(
        db, req.agency_id, facility, req.start_date, req.end_date,
    )
    logger.info(
        "Previewing invoice for agency %s, facility %s (%s to %s): %d work record(s)",
        req.agency_id, facility.id, req.start_date, req.end_date, len(records),
    )

    # A rejected invoice keeps its links until it is deleted or resubmitted.
    linked = set(repository.find_linked_work_record_ids(db, [r.id for r in records]))
    result = calculate_invoice([r for r in records if r.id not in linked], facility, req.holidays)
    for record in records:
        if record.id in linked:
            logger.info("Skipping work record %s: still linked to an invoice", record.id)
            result.skipped.append(SkippedRecord(record.id, SkipReason.ALREADY_INVOICED))
    return result


calculate_invoice_summary = preview_invoice


# --- Create ---


def _integrity_error(exc: IntegrityError, work_record_ids: Iterable[str]) -> Exception:
    text = str(exc.orig)
    if "work_record_id" in text:
        return DuplicateInvoiceReference(list(work_record_ids))
    if "invoice_number" in text:
        return ConflictError("Invoice number already in use, retry the request")
    return exc


def create_invoice(
    db: Session,
    agency_id: str,
    facility_id: str,
    start_date: DateLike,
    end_date: DateLike,
    work_record_ids: Iterable[str],
    total_amount: Union[Decimal, str, int, float],
    shift_summary: Mapping[str, Any],
    holidays: Optional[Iterable[DateLike]] = (),
    due_date: Optional[DateLike] = None,
) -> Invoice:
    """
    Persist a pending invoice over the given work records.

    Raises:
        InvoiceValidationError: bad input; nothing was written.
        FacilityNotFound, WorkRecordNotFound: unknown ids.
        DuplicateInvoiceReference: a work record is already on an invoice.
    """
    req = validate_create_request(
        agency_id, facility_id, start_date, end_date,
        work_record_ids, total_amount, shift_summary, holidays, due_date,
    )

    facility = repository.find_facility(db, req.facility_id)
    if facility is None:
        raise FacilityNotFound(req.facility_id)

    ids = list(req.work_record_ids)
    existing = repository.find_existing_work_record_ids(db, ids)
    missing = [i for i in ids if i not in existing]
    if missing:
        raise WorkRecordNotFound(missing)

    linked = repository.find_linked_work_record_ids(db, ids)
    if linked:
        raise DuplicateInvoiceReference(linked)

    calc = calculate_invoice(repository.load_work_record_views(db, ids), facility, req.holidays)
    if calc.skipped:
        raise InvoiceValidationError({
            "work_record_ids": "cannot be priced: " + ", ".join(
                f"{s.work_record_id} ({s.reason.value})" for s in calc.skipped
            ),
        })
    if to_cents(calc.total_amount) != to_cents(req.total_amount):
        raise InvoiceValidationError({
            "shift_summary": (
                f"total {req.total_amount} does not match the current calculation {calc.total_amount}"
            ),
        })

    try:
        number = generate_invoice_number(db)
        invoice = Invoice(
            id=new_id(),
            invoice_number=number,
            agency_id=req.agency_id,
            facility_id=facility.id,
            start_date=req.start_date,
            end_date=req.end_date,
            # Summary, total and lines all come from the same calculation.
            total_amount=calc.total_amount,
            shift_summary=summary_to_json(calc.shift_summary),
            holidays=sorted(d.isoformat() for d in req.holidays),
            status=InvoiceStatus.PENDING.value,
            due_date=req.due_date,
            links=[
                InvoiceWorkRecord(work_record_id=rec.work_record_id, line=rec.to_line())
                for rec in calc.records
            ],
        )
        if facility.is_temporary:
            invoice.is_temporary_facility = True
            invoice.temporary_facility_id = facility.id
            invoice.facility_details = facility.details()
        db.add(invoice)
        db.flush()

        repository.update_work_records_invoice_status(
            db, ids, WorkRecordInvoiceStatus.PENDING_INVOICE.value, invoice.id, number,
        )
        notifications.enqueue_notification(
            db,
            notification_type="INVOICE_GENERATED",
            title="New Invoice Created",
            message="A new invoice has been created for the care facility",
            recipient_id=facility.id,
            entity_id=invoice.id,
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        error = _integrity_error(exc, ids)
        if error is exc:
            raise
        raise error from exc
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Created invoice %s for facility %s: %d work record(s), total %s",
        invoice.invoice_number, facility.id, len(ids), invoice.total_amount,
    )
    return invoice


# --- Delete ---


def delete_invoice(db: Session, invoice_id: str) -> DeletionOutcome:
    """Hard-delete an open invoice, or cancel one that was accepted or paid."""
    invoice = repository.get_invoice(db, invoice_id)
    if invoice is None:
        raise InvoiceNotFound(invoice_id)

    status = InvoiceStatus(invoice.status)
    if status in DELETABLE_STATUSES:
        try:
            repository.update_work_records_invoice_status(
                db, invoice.work_record_ids, WorkRecordInvoiceStatus.DRAFT.value,
            )
            db.delete(invoice)
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info("Deleted invoice %s", invoice.invoice_number)
        return DeletionOutcome.DELETED

    if status in CANCEL_ON_DELETE_STATUSES:
        try:
            apply_transition(db, invoice, InvoiceStatus.CANCELLED)
            db.commit()
        except Exception:
            db.rollback()
            raise
        return DeletionOutcome.CANCELLED

    raise InvoiceNotDeletable(status.value)


# --- Detail ---


@dataclass
class InvoiceDetail:
    invoice: Invoice
    agency: dict[str, Any]
    facility: dict[str, Any]
    shift_summary: dict[str, ShiftSummaryBucket]
    records: list[ProcessedRecord] = field(default_factory=list)

    @property
    def total_amount(self) -> Decimal:
        return Decimal(str(self.invoice.total_amount))

    @property
    def summary_total(self) -> Decimal:
        return summary_total(self.shift_summary)


def _org_details(org) -> dict[str, Any]:
    return {
        "id": org.id,
        "name": org.name,
        "email": org.email or "",
        "phone": org.phone or "",
        "address": dict(org.address or {}),
    }


def _facility_details(db: Session, invoice: Invoice) -> dict[str, Any]:
    if not invoice.is_temporary_facility:
        org = repository.find_organization(db, invoice.facility_id)
        return _org_details(org) if org is not None else {"id": invoice.facility_id}

    if invoice.facility_details:
        return {"id": invoice.facility_id, **invoice.facility_details}

    facility = repository.find_facility(db, invoice.facility_id)
    if facility is None:
        logger.warning("Temporary facility %s not found for invoice %s", invoice.facility_id, invoice.id)
        return {"id": invoice.facility_id, "name": "Unknown Temporary Facility", "email": "", "phone": "", "address": {}}
    suffix = "(Migrated)" if facility.is_claimed else "(Temporary)"
    return {"id": facility.id, **facility.details(), "name": f"{facility.name} {suffix}"}


def get_invoice_detail(db: Session, invoice_id: str) -> InvoiceDetail:
    """
    Load an invoice with a per-record breakdown.

    Lines are the ones priced when the invoice was created. Later edits to
    rates, timings or shifts do not change them.
    """
    invoice = repository.get_invoice(db, invoice_id)
    if invoice is None:
        raise InvoiceNotFound(invoice_id)

    records: list[ProcessedRecord] = []
    for link in invoice.links:
        if not link.line:
            logger.warning(
                "Invoice %s has no priced line for work record %s", invoice.id, link.work_record_id,
            )
            continue
        records.append(ProcessedRecord.from_line(link.work_record_id, link.line))
    records.sort(key=lambda r: (r.shift_date, r.work_record_id))

    agency = repository.find_organization(db, invoice.agency_id)
    return InvoiceDetail(
        invoice=invoice,
        agency=_org_details(agency) if agency is not None else {"id": invoice.agency_id},
        facility=_facility_details(db, invoice),
        shift_summary=freeze_summary(invoice.shift_summary or {}),
        records=records,
    )


# --- Listing ---


def list_invoices(
    db: Session,
    organization_id: str,
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
    created_from: Optional[datetime] = None,
    created_to: Optional[datetime] = None,
) -> tuple[list[Invoice], int]:
    """Invoices where the organization is the agency or the facility, newest first."""
    errors: dict[str, str] = {}
    if not organization_id:
        errors["organization_id"] = "is required"
    if page < 1:
        errors["page"] = "must be at least 1"
    if limit < 1:
        errors["limit"] = "must be at least 1"
    if status and status != "all" and status not in {s.value for s in InvoiceStatus}:
        errors["status"] = f"Unknown invoice status: {status!r}"
    if errors:
        raise InvoiceValidationError(errors)

    return repository.list_invoices(
        db, organization_id, page=page, limit=limit,
        status=status, created_from=created_from, created_to=created_to,
    )


# --- PDF ---


def request_invoice_pdf(
    db: Session,
    invoice_id: str,
    include_detailed: bool = False,
    requested_by: str = "",
) -> OutboxEvent:
    """Queue PDF generation for an invoice; the renderer picks it up from the outbox."""
    invoice = repository.get_invoice(db, invoice_id)
    if invoice is None:
        raise InvoiceNotFound(invoice_id)

    event = notifications.enqueue(
        db,
        notifications.PDF_REQUEST_TOPIC,
        {
            "invoice_id": invoice.id,
            "include_detailed": include_detailed,
            "requested_by": requested_by,
            "timestamp": utc_now().isoformat(),
        },
        key=f"invoice_{invoice.id}",
    )
    db.commit()
    logger.info("Queued PDF generation for invoice %s", invoice.invoice_number)
    return event
