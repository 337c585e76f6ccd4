"""Excel export of stored invoices."""
from care_billing.excel.generator import generate_invoice_workbook

__all__ = ["generate_invoice_workbook"]
