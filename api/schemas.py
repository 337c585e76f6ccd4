"""Pydantic request/response models for the Invoice API."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    success: bool = False
    error_type: str
    errors: list[str]


# --- Preview ---


class ProcessedRecordSchema(BaseModel):
    work_record_id: str
    shift_date: str
    shift_type: str
    worker_name: str
    worker_role: str
    hourly_rate: float
    hours: float
    total_hours: float | None = None
    break_hours: float
    amount: float
    is_emergency: bool
    is_holiday: bool
    is_weekend: bool
    rate_type: str | None = None


class SkippedRecordSchema(BaseModel):
    work_record_id: str
    reason: str


class ShiftSummaryBucketSchema(BaseModel):
    count: int
    total_hours: float
    billable_hours: float
    break_hours: float
    weekday_hours: float
    weekend_hours: float
    holiday_hours: float
    emergency_hours: float
    weekday_rate: float
    weekend_rate: float
    holiday_rate: float
    emergency_rate: float
    total_amount: float


class FacilityInfo(BaseModel):
    id: str
    name: str = ""
    email: str = ""
    phone: str = ""
    address: dict[str, Any] = Field(default_factory=dict)


class PreviewResponse(BaseModel):
    success: bool
    facility: FacilityInfo
    is_temporary_facility: bool
    records: list[ProcessedRecordSchema]
    shift_summary: dict[str, ShiftSummaryBucketSchema]
    total_amount: float
    total_records: int
    first_shift: ProcessedRecordSchema | None = None
    last_shift: ProcessedRecordSchema | None = None
    skipped: list[SkippedRecordSchema]


# --- Invoices ---


class CreateInvoiceRequest(BaseModel):
    agency_id: str
    facility_id: str
    start_date: str
    end_date: str
    work_record_ids: list[str]
    total_amount: Decimal
    # Summary buckets as returned by the preview endpoint.
    shift_summary: dict[str, dict[str, Any]]
    holidays: list[str] = Field(default_factory=list)
    due_date: str | None = None


class InvoiceSchema(BaseModel):
    id: str
    invoice_number: str
    agency_id: str
    facility_id: str
    is_temporary_facility: bool
    temporary_facility_id: str | None = None
    facility_details: dict[str, Any] | None = None
    start_date: str
    end_date: str
    due_date: str | None = None
    total_amount: float
    status: str
    holidays: list[str]
    work_record_ids: list[str]
    shift_summary: dict[str, ShiftSummaryBucketSchema]
    created_at: str | None = None


class InvoiceResponse(BaseModel):
    success: bool
    invoice: InvoiceSchema


class InvoiceDetailResponse(BaseModel):
    success: bool
    invoice: InvoiceSchema
    agency: dict[str, Any]
    facility: dict[str, Any]
    records: list[ProcessedRecordSchema]


class InvoiceListResponse(BaseModel):
    success: bool
    invoices: list[InvoiceSchema]
    total: int
    page: int
    limit: int


class StatusUpdateRequest(BaseModel):
    status: str


class DeleteResponse(BaseModel):
    success: bool
    outcome: str
    message: str


class PdfRequest(BaseModel):
    include_detailed: bool = False
    requested_by: str = ""


class PdfResponse(BaseModel):
    success: bool
    event_id: int
    message: str


class DispatchResponse(BaseModel):
    success: bool
    sent: int
    failed: int
