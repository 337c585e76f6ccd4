"""CLI entry point.

Usage:
    python -m care_billing init-db
    python -m care_billing preview --agency AGENCY_ID --facility FACILITY_ID \
        --start 2024-01-01 --end 2024-01-31 --holiday 2024-01-01 --audit-out Audit.json
    python -m care_billing create --agency AGENCY_ID --facility FACILITY_ID \
        --start 2024-01-01 --end 2024-01-31
    python -m care_billing status INVOICE_ID accepted
    python -m care_billing delete INVOICE_ID
    python -m care_billing export INVOICE_ID --out Invoice_Report.xlsx
    python -m care_billing dispatch
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer

from care_billing.logging_utils import configure_logging
from care_billing.models import BillingError, InvoiceValidationError

app = typer.Typer(help="Care staffing invoice engine.", no_args_is_help=True)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
) -> None:
    configure_logging(level=log_level)


def _session():
    from care_billing.store.database import get_session_factory
    return get_session_factory()()


def _fail(e: BillingError) -> None:
    if isinstance(e, InvoiceValidationError):
        typer.echo("\nVALIDATION FAILED:", err=True)
        for name, message in e.errors.items():
            typer.echo(f"  ERROR: {name}: {message}", err=True)
    else:
        typer.echo(f"\nERROR: {e.message}", err=True)
    raise typer.Exit(1)


@app.command("init-db")
def init_db_command() -> None:
    """Create all tables in DATABASE_URL."""
    from care_billing.config import config
    from care_billing.store.database import init_db, make_engine

    init_db(make_engine())
    typer.echo(f"Database initialised: {config.DATABASE_URL}")


@app.command()
def preview(
    agency: str = typer.Option(..., "--agency", help="Agency id"),
    facility: str = typer.Option(..., "--facility", help="Facility id (permanent or temporary)"),
    start: str = typer.Option(..., "--start", help="Start date YYYY-MM-DD"),
    end: str = typer.Option(..., "--end", help="End date YYYY-MM-DD"),
    holiday: List[str] = typer.Option([], "--holiday", help="Holiday date, repeatable"),
    audit_out: Optional[str] = typer.Option(None, "--audit-out", help="Output audit JSON file path"),
) -> None:
    """Calculate what an invoice would contain without saving it."""
    from care_billing.audit import generate_audit
    from care_billing.invoices import preview_invoice

    with _session() as db:
        try:
            result = preview_invoice(db, agency, facility, start, end, holiday)
        except BillingError as e:
            _fail(e)

    typer.echo(f"Facility: {result.facility.name}{' (temporary)' if result.facility.is_temporary else ''}")
    typer.echo(f"Records: {result.total_records}, skipped: {len(result.skipped)}")
    for name, bucket in result.shift_summary.items():
        typer.echo(f"  {name}: {bucket.count} shift(s), {bucket.billable_hours}h = {bucket.total_amount}")
    for skipped in result.skipped:
        typer.echo(f"  SKIPPED {skipped.work_record_id}: {skipped.reason.value}")
    typer.echo(f"\n  TOTAL: {result.total_amount}")

    if audit_out:
        generate_audit(result, Path(audit_out))
        typer.echo(f"  Audit file saved to: {audit_out}")


@app.command()
def create(
    agency: str = typer.Option(..., "--agency", help="Agency id"),
    facility: str = typer.Option(..., "--facility", help="Facility id (permanent or temporary)"),
    start: str = typer.Option(..., "--start", help="Start date YYYY-MM-DD"),
    end: str = typer.Option(..., "--end", help="End date YYYY-MM-DD"),
    holiday: List[str] = typer.Option([], "--holiday", help="Holiday date, repeatable"),
    due: Optional[str] = typer.Option(None, "--due", help="Due date YYYY-MM-DD"),
) -> None:
    """Preview, then create an invoice over every billable record in range."""
    from care_billing.engine.summary import summary_to_json
    from care_billing.invoices import create_invoice, preview_invoice

    with _session() as db:
        try:
            result = preview_invoice(db, agency, facility, start, end, holiday)
            if not result.records:
                typer.echo("No billable work records in range.", err=True)
                raise typer.Exit(1)
            invoice = create_invoice(
                db, agency, facility, start, end,
                work_record_ids=[r.work_record_id for r in result.records],
                total_amount=result.total_amount,
                shift_summary=summary_to_json(result.shift_summary),
                holidays=holiday,
                due_date=due,
            )
        except BillingError as e:
            _fail(e)

    typer.echo(f"Created invoice {invoice.invoice_number} ({invoice.id}) total {invoice.total_amount}")


@app.command()
def status(
    invoice_id: str = typer.Argument(..., help="Invoice id"),
    new_status: str = typer.Argument(..., help="Target status"),
    dispatch: bool = typer.Option(False, "--dispatch/--no-dispatch", help="Deliver notifications now"),
) -> None:
    """Move an invoice to a new status."""
    from care_billing.lifecycle import transition_invoice_status
    from care_billing.notifications import NotificationDispatcher

    with _session() as db:
        try:
            invoice = transition_invoice_status(
                db, invoice_id, new_status,
                dispatcher=NotificationDispatcher() if dispatch else None,
            )
        except BillingError as e:
            _fail(e)

    typer.echo(f"Invoice {invoice.invoice_number} is now {invoice.status}")


@app.command()
def delete(invoice_id: str = typer.Argument(..., help="Invoice id")) -> None:
    """Delete an open invoice, or cancel an accepted/paid one."""
    from care_billing.invoices import delete_invoice

    with _session() as db:
        try:
            outcome = delete_invoice(db, invoice_id)
        except BillingError as e:
            _fail(e)

    typer.echo(f"Invoice {invoice_id} {outcome.value}")


@app.command()
def export(
    invoice_id: str = typer.Argument(..., help="Invoice id"),
    out: str = typer.Option("Invoice_Report.xlsx", "--out", help="Output Excel file path"),
) -> None:
    """Write a stored invoice to an Excel workbook."""
    from care_billing.excel import generate_invoice_workbook
    from care_billing.invoices import get_invoice_detail

    with _session() as db:
        try:
            detail = get_invoice_detail(db, invoice_id)
        except BillingError as e:
            _fail(e)
        generate_invoice_workbook(detail, Path(out))

    typer.echo(f"Excel report saved to: {out}")


@app.command()
def dispatch(limit: int = typer.Option(100, "--limit", help="Maximum events to deliver")) -> None:
    """Deliver pending and previously failed notifications."""
    from care_billing.notifications import NotificationDispatcher

    with _session() as db:
        report = NotificationDispatcher().dispatch_pending(db, limit=limit)

    typer.echo(f"Notifications sent: {report.sent}, failed: {report.failed}")
    if report.failed:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
