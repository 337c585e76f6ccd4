"""Excel invoice report.

Writes a fresh workbook for a stored invoice: a header block, the
per-record detail grid and the frozen shift summary. Excel formulas are
NOT relied upon; all values are pre-computed in Python.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING

import openpyxl
from openpyxl.styles import Alignment, Border, Font, Side
from openpyxl.utils import get_column_letter

from care_billing.models import ShiftSummaryBucket

if TYPE_CHECKING:
    from care_billing.invoices import InvoiceDetail

# Layout
TITLE_ROW = 1
HEADER_START_ROW = 3
DETAIL_HEADER_ROW = 10
DETAIL_START_ROW = DETAIL_HEADER_ROW + 1

DETAIL_COLUMNS = (
    'Date', 'Worker', 'Role', 'Shift Type', 'Day',
    'Hours', 'Hourly Rate', 'Amount',
)
SUMMARY_COLUMNS = (
    'Shift Type', 'Count', 'Weekday Hours', 'Weekend Hours',
    'Holiday Hours', 'Emergency Hours', 'Billable Hours', 'Total',
)
LAST_COL = len(DETAIL_COLUMNS)

# Formatting constants
THIN_BORDER = Border(
    left=Side(style='thin'),
    right=Side(style='thin'),
    top=Side(style='thin'),
    bottom=Side(style='thin'),
)

HEADER_FONT = Font(name='Calibri', size=11, bold=True)
DATA_FONT = Font(name='Calibri', size=11)
TITLE_FONT = Font(name='Calibri', size=12, bold=True)
CENTER_ALIGN = Alignment(horizontal='center', vertical='center')
MONEY_FORMAT = '_("£"* #,##0.00_);_("£"* \\(#,##0.00\\);_("£"* "-"??_);_(@_)'
NUMBER_FORMAT = '#,##0.00'
DATE_FORMAT = '[$-F800]dddd, mmmm dd, yyyy'


def _day_label(is_holiday: bool, is_emergency: bool, is_weekend: bool) -> str:
    label = 'Holiday' if is_holiday else 'Weekend' if is_weekend else 'Weekday'
    return f"{label} (Emergency)" if is_emergency else label


def _write_cell(ws, row: int, col: int, value, font=DATA_FONT, number_format=None, border=True):
    cell = ws.cell(row=row, column=col)
    cell.value = value
    cell.font = font
    cell.alignment = CENTER_ALIGN
    if number_format:
        cell.number_format = number_format
    if border:
        cell.border = THIN_BORDER
    return cell


def _as_excel_date(value: date) -> datetime:
    return datetime(value.year, value.month, value.day)


def generate_invoice_workbook(detail: "InvoiceDetail", output_path: str | Path) -> Path:
    """Generate the Excel report for a stored invoice."""
    output_path = Path(output_path)
    invoice = detail.invoice

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = 'Invoice'

    # --- Title ---
    ws.merge_cells(start_row=TITLE_ROW, start_column=1, end_row=TITLE_ROW, end_column=LAST_COL)
    title = ws.cell(row=TITLE_ROW, column=1)
    title.value = f"Invoice {invoice.invoice_number}"
    title.font = TITLE_FONT
    title.alignment = CENTER_ALIGN

    # --- Header block ---
    header = [
        ('Agency', detail.agency.get('name', invoice.agency_id)),
        ('Facility', detail.facility.get('name', invoice.facility_id)),
        ('Period', f"{invoice.start_date:%d %b %Y} - {invoice.end_date:%d %b %Y}"),
        ('Status', invoice.status),
        ('Due Date', invoice.due_date.isoformat() if invoice.due_date else ''),
    ]
    for offset, (label, value) in enumerate(header):
        row = HEADER_START_ROW + offset
        ws.cell(row=row, column=1).value = label
        ws.cell(row=row, column=1).font = HEADER_FONT
        ws.cell(row=row, column=2).value = value
        ws.cell(row=row, column=2).font = DATA_FONT

    # --- Detail grid ---
    for col, label in enumerate(DETAIL_COLUMNS, start=1):
        _write_cell(ws, DETAIL_HEADER_ROW, col, label, font=HEADER_FONT)

    row = DETAIL_START_ROW
    for rec in detail.records:
        _write_cell(ws, row, 1, _as_excel_date(rec.shift_date), number_format=DATE_FORMAT)
        _write_cell(ws, row, 2, rec.worker_name)
        _write_cell(ws, row, 3, rec.worker_role)
        _write_cell(ws, row, 4, rec.shift_type)
        _write_cell(ws, row, 5, _day_label(rec.is_holiday, rec.is_emergency, rec.is_weekend))
        _write_cell(ws, row, 6, float(rec.hours), number_format=NUMBER_FORMAT)
        _write_cell(ws, row, 7, float(rec.hourly_rate), number_format=NUMBER_FORMAT)
        _write_cell(ws, row, 8, float(rec.amount), number_format=MONEY_FORMAT)
        row += 1

    # --- Total Hours / Amount row ---
    ws.merge_cells(start_row=row, start_column=1, end_row=row, end_column=5)
    _write_cell(ws, row, 1, 'Total', font=HEADER_FONT)
    total_hours = sum((r.hours for r in detail.records), Decimal("0"))
    total_amount = sum((r.amount for r in detail.records), Decimal("0"))
    _write_cell(ws, row, 6, float(total_hours), font=HEADER_FONT, number_format=NUMBER_FORMAT)
    _write_cell(ws, row, 8, float(total_amount), font=HEADER_FONT, number_format=MONEY_FORMAT)

    # --- SHIFT SUMMARY section ---
    _write_summary_section(ws, row + 2, detail.shift_summary, detail.total_amount)

    # --- Set column widths ---
    ws.column_dimensions['A'].width = 33
    for col in range(2, LAST_COL + 1):
        ws.column_dimensions[get_column_letter(col)].width = 16

    wb.save(str(output_path))
    return output_path


def _write_summary_section(
    ws,
    start_row: int,
    summary: dict[str, ShiftSummaryBucket],
    invoice_total: Decimal,
) -> None:
    """Write the frozen shift summary below the detail grid."""
    row = start_row
    ws.merge_cells(start_row=row, start_column=1, end_row=row, end_column=LAST_COL)
    ws.cell(row=row, column=1).value = 'SHIFT SUMMARY'
    ws.cell(row=row, column=1).font = HEADER_FONT
    ws.cell(row=row, column=1).alignment = CENTER_ALIGN

    row += 1
    for col, label in enumerate(SUMMARY_COLUMNS, start=1):
        _write_cell(ws, row, col, label, font=HEADER_FONT)

    row += 1
    for name, bucket in summary.items():
        _write_cell(ws, row, 1, name)
        _write_cell(ws, row, 2, bucket.count)
        hours = (
            bucket.weekday_hours, bucket.weekend_hours, bucket.holiday_hours,
            bucket.emergency_hours, bucket.billable_hours,
        )
        for offset, value in enumerate(hours):
            _write_cell(ws, row, 3 + offset, float(value), number_format=NUMBER_FORMAT)
        _write_cell(ws, row, 8, float(bucket.total_amount), number_format=MONEY_FORMAT)
        row += 1

    # TOTAL INVOICE VALUE
    row += 1
    ws.merge_cells(start_row=row, start_column=1, end_row=row + 1, end_column=3)
    cell = ws.cell(row=row, column=1)
    cell.value = 'TOTAL INVOICE VALUE'
    cell.font = HEADER_FONT
    cell.alignment = CENTER_ALIGN

    ws.merge_cells(start_row=row, start_column=8, end_row=row + 1, end_column=8)
    total_cell = ws.cell(row=row, column=8)
    total_cell.value = float(invoice_total)
    total_cell.font = HEADER_FONT
    total_cell.number_format = MONEY_FORMAT
    total_cell.alignment = CENTER_ALIGN
