"""Tests for the Excel invoice report."""

from datetime import datetime

import openpyxl
import pytest

from care_billing.engine.summary import summary_to_json
from care_billing.excel import generate_invoice_workbook
from care_billing.excel.generator import DETAIL_HEADER_ROW, DETAIL_START_ROW
from care_billing.invoices import create_invoice, get_invoice_detail, preview_invoice

from conftest import MONDAY, TUESDAY


@pytest.fixture
def tmp_output(tmp_path):
    return tmp_path / "invoice.xlsx"


@pytest.fixture
def detail(db, seed):
    agency = seed.agency()
    facility = seed.facility()
    pattern = seed.pattern(facility.id)
    seed.work_record(agency, facility.id, pattern, shift_date=MONDAY, first_name="Ada")
    seed.work_record(agency, facility.id, pattern, shift_date=TUESDAY, first_name="Grace",
                     last_name="Hopper", is_emergency=True)
    result = preview_invoice(db, agency.id, facility.id, "2024-01-01", "2024-01-31")
    invoice = create_invoice(
        db, agency.id, facility.id, "2024-01-01", "2024-01-31",
        [r.work_record_id for r in result.records], result.total_amount,
        summary_to_json(result.shift_summary), due_date="2024-02-15",
    )
    return get_invoice_detail(db, invoice.id)


def _sheet(path):
    return openpyxl.load_workbook(str(path))["Invoice"]


class TestInvoiceWorkbook:
    def test_output_file_created(self, detail, tmp_output):
        out = generate_invoice_workbook(detail, tmp_output)
        assert out == tmp_output
        assert out.exists()

    def test_title_and_header(self, detail, tmp_output):
        ws = _sheet(generate_invoice_workbook(detail, tmp_output))
        assert ws.cell(row=1, column=1).value == f"Invoice {detail.invoice.invoice_number}"
        assert ws.cell(row=3, column=2).value == "Bright Staffing"
        assert ws.cell(row=4, column=2).value == "Oak House"
        assert ws.cell(row=5, column=2).value == "01 Jan 2024 - 31 Jan 2024"
        assert ws.cell(row=6, column=2).value == "pending"
        assert ws.cell(row=7, column=2).value == "2024-02-15"

    def test_detail_rows(self, detail, tmp_output):
        ws = _sheet(generate_invoice_workbook(detail, tmp_output))
        assert ws.cell(row=DETAIL_HEADER_ROW, column=8).value == "Amount"

        first = [ws.cell(row=DETAIL_START_ROW, column=c).value for c in range(1, 9)]
        assert first == [datetime(2024, 1, 1), "Ada Lovelace", "carer", "Day", "Weekday", 11, 15, 165]

        second = [ws.cell(row=DETAIL_START_ROW + 1, column=c).value for c in range(2, 9)]
        assert second == ["Grace Hopper", "carer", "Day", "Weekday (Emergency)", 11, 20, 220]

    def test_total_row(self, detail, tmp_output):
        ws = _sheet(generate_invoice_workbook(detail, tmp_output))
        row = DETAIL_START_ROW + 2
        assert ws.cell(row=row, column=1).value == "Total"
        assert ws.cell(row=row, column=6).value == 22
        assert ws.cell(row=row, column=8).value == 385

    def test_summary_section(self, detail, tmp_output):
        ws = _sheet(generate_invoice_workbook(detail, tmp_output))
        start = DETAIL_START_ROW + 4
        assert ws.cell(row=start, column=1).value == "SHIFT SUMMARY"
        assert ws.cell(row=start + 1, column=3).value == "Weekday Hours"

        bucket = [ws.cell(row=start + 2, column=c).value for c in range(1, 9)]
        assert bucket == ["Day", 2, 11, 0, 0, 11, 22, 385]

        assert ws.cell(row=start + 4, column=1).value == "TOTAL INVOICE VALUE"
        assert ws.cell(row=start + 4, column=8).value == 385
