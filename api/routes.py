"""API routes for the care billing engine."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from care_billing.engine.summary import freeze_summary
from care_billing.invoices import (
    create_invoice,
    delete_invoice,
    get_invoice_detail,
    list_invoices,
    preview_invoice,
    request_invoice_pdf,
)
from care_billing.lifecycle import transition_invoice_status
from care_billing.models import DeletionOutcome, ProcessedRecord, ShiftSummaryBucket
from care_billing.notifications import NotificationDispatcher
from care_billing.store.database import get_db
from care_billing.store.tables import Invoice

from api.schemas import (
    CreateInvoiceRequest,
    DeleteResponse,
    DispatchResponse,
    ErrorResponse,
    FacilityInfo,
    InvoiceDetailResponse,
    InvoiceListResponse,
    InvoiceResponse,
    InvoiceSchema,
    PdfRequest,
    PdfResponse,
    PreviewResponse,
    ProcessedRecordSchema,
    ShiftSummaryBucketSchema,
    SkippedRecordSchema,
    StatusUpdateRequest,
)

router = APIRouter(
    prefix="/api/v1",
    responses={code: {"model": ErrorResponse} for code in (400, 404, 422, 500)},
)


def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher()


def _record(rec: ProcessedRecord) -> ProcessedRecordSchema:
    return ProcessedRecordSchema(
        work_record_id=rec.work_record_id,
        shift_date=rec.shift_date.isoformat(),
        shift_type=rec.shift_type,
        worker_name=rec.worker_name,
        worker_role=rec.worker_role,
        hourly_rate=float(rec.hourly_rate),
        hours=float(rec.hours),
        total_hours=float(rec.total_hours) if rec.total_hours is not None else None,
        break_hours=float(rec.break_hours),
        amount=float(rec.amount),
        is_emergency=rec.is_emergency,
        is_holiday=rec.is_holiday,
        is_weekend=rec.is_weekend,
        rate_type=rec.rate_type.value if rec.rate_type else None,
    )


def _bucket(bucket: ShiftSummaryBucket) -> ShiftSummaryBucketSchema:
    return ShiftSummaryBucketSchema(**{
        name: (value if name == "count" else float(value))
        for name, value in bucket.to_dict().items()
    })


def _invoice(invoice: Invoice) -> InvoiceSchema:
    summary = freeze_summary(invoice.shift_summary or {})
    return InvoiceSchema(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        agency_id=invoice.agency_id,
        facility_id=invoice.facility_id,
        is_temporary_facility=bool(invoice.is_temporary_facility),
        temporary_facility_id=invoice.temporary_facility_id,
        facility_details=invoice.facility_details,
        start_date=invoice.start_date.isoformat(),
        end_date=invoice.end_date.isoformat(),
        due_date=invoice.due_date.isoformat() if invoice.due_date else None,
        total_amount=float(invoice.total_amount),
        status=invoice.status,
        holidays=list(invoice.holidays or []),
        work_record_ids=invoice.work_record_ids,
        shift_summary={name: _bucket(b) for name, b in summary.items()},
        created_at=invoice.created_at.isoformat() if invoice.created_at else None,
    )


@router.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/invoices/calculate", response_model=PreviewResponse)
def calculate(
    agency_id: str = Query(..., description="Agency id"),
    facility_id: str = Query(..., description="Facility id (permanent or temporary)"),
    start_date: str = Query(..., description="YYYY-MM-DD"),
    end_date: str = Query(..., description="YYYY-MM-DD"),
    holidays: list[str] = Query(default=[], description="Holiday dates, repeatable"),
    db: Session = Depends(get_db),
):
    """Preview an invoice for the approved, uninvoiced work records in range."""
    result = preview_invoice(db, agency_id, facility_id, start_date, end_date, holidays)
    facility = result.facility
    return PreviewResponse(
        success=True,
        facility=FacilityInfo(id=facility.id, **facility.details()),
        is_temporary_facility=facility.is_temporary,
        records=[_record(r) for r in result.records],
        shift_summary={name: _bucket(b) for name, b in result.shift_summary.items()},
        total_amount=float(result.total_amount),
        total_records=result.total_records,
        first_shift=_record(result.first_shift) if result.first_shift else None,
        last_shift=_record(result.last_shift) if result.last_shift else None,
        skipped=[
            SkippedRecordSchema(work_record_id=s.work_record_id, reason=s.reason.value)
            for s in result.skipped
        ],
    )


@router.post("/invoices", response_model=InvoiceResponse, status_code=201)
def create(body: CreateInvoiceRequest, db: Session = Depends(get_db)):
    invoice = create_invoice(
        db,
        agency_id=body.agency_id,
        facility_id=body.facility_id,
        start_date=body.start_date,
        end_date=body.end_date,
        work_record_ids=body.work_record_ids,
        total_amount=body.total_amount,
        shift_summary=body.shift_summary,
        holidays=body.holidays,
        due_date=body.due_date,
    )
    return InvoiceResponse(success=True, invoice=_invoice(invoice))


@router.get("/invoices", response_model=InvoiceListResponse)
def list_(
    organization_id: str = Query(..., description="Agency or facility id"),
    page: int = Query(1),
    limit: int = Query(10),
    status: Optional[str] = Query(None),
    created_from: Optional[datetime] = Query(None),
    created_to: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
):
    invoices, total = list_invoices(
        db, organization_id, page=page, limit=limit,
        status=status, created_from=created_from, created_to=created_to,
    )
    return InvoiceListResponse(
        success=True,
        invoices=[_invoice(i) for i in invoices],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/invoices/{invoice_id}", response_model=InvoiceDetailResponse)
def detail(invoice_id: str, db: Session = Depends(get_db)):
    result = get_invoice_detail(db, invoice_id)
    return InvoiceDetailResponse(
        success=True,
        invoice=_invoice(result.invoice),
        agency=result.agency,
        facility=result.facility,
        records=[_record(r) for r in result.records],
    )


@router.patch("/invoices/{invoice_id}/status", response_model=InvoiceResponse)
def update_status(invoice_id: str, body: StatusUpdateRequest, db: Session = Depends(get_db)):
    """Change an invoice's status. Notifications stay queued for the dispatch endpoint."""
    invoice = transition_invoice_status(db, invoice_id, body.status)
    return InvoiceResponse(success=True, invoice=_invoice(invoice))


@router.delete("/invoices/{invoice_id}", response_model=DeleteResponse)
def delete(invoice_id: str, db: Session = Depends(get_db)):
    outcome = delete_invoice(db, invoice_id)
    message = (
        "Invoice deleted successfully"
        if outcome == DeletionOutcome.DELETED
        else "Invoice cancelled successfully"
    )
    return DeleteResponse(success=True, outcome=outcome.value, message=message)


@router.post("/invoices/{invoice_id}/pdf", response_model=PdfResponse, status_code=202)
def request_pdf(invoice_id: str, body: PdfRequest, db: Session = Depends(get_db)):
    event = request_invoice_pdf(
        db, invoice_id, include_detailed=body.include_detailed, requested_by=body.requested_by,
    )
    return PdfResponse(success=True, event_id=event.id, message="PDF generation has been initiated")


@router.post("/notifications/dispatch", response_model=DispatchResponse)
def dispatch(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    report = dispatcher.dispatch_pending(db)
    return DispatchResponse(success=True, sent=report.sent, failed=report.failed)
