"""
Invoice status state machine.

TRANSITIONS lists the statuses reachable from each status. SIDE_EFFECTS
describes what entering a status does to the invoice's work records and
who is notified. A transition writes the status, the work records and
the outbox row in one transaction.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy.orm import Session

from care_billing import notifications
from care_billing.models import (
    InvalidTransition,
    InvoiceNotFound,
    InvoiceStatus,
    InvoiceValidationError,
    WorkRecordInvoiceStatus,
)
from care_billing.store import repository
from care_billing.store.tables import Invoice

logger = logging.getLogger(__name__)

S = InvoiceStatus

TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    S.DRAFT: frozenset({S.SENT, S.INVALIDATED}),
    S.SENT: frozenset({S.PENDING, S.INVALIDATED}),
    S.PENDING: frozenset({S.ACCEPTED, S.REJECTED, S.CANCELLED}),
    S.ACCEPTED: frozenset({S.PAID, S.INVALIDATED, S.CANCELLED}),
    S.REJECTED: frozenset({S.PENDING, S.CANCELLED}),
    S.PAID: frozenset({S.INVALIDATED, S.CANCELLED}),
    S.PARTIALLY_PAID: frozenset({S.PAID, S.INVALIDATED, S.CANCELLED}),
    S.CANCELLED: frozenset(),
    S.INVALIDATED: frozenset(),
}

AGENCY = "agency"
FACILITY = "facility"


@dataclass(frozen=True)
class SideEffect:
    work_record_status: Optional[WorkRecordInvoiceStatus] = None
    notification_type: Optional[str] = None
    notification_title: Optional[str] = None
    recipient: str = FACILITY


SIDE_EFFECTS: dict[InvoiceStatus, SideEffect] = {
    S.DRAFT: SideEffect(),
    S.PENDING: SideEffect(work_record_status=WorkRecordInvoiceStatus.PENDING_INVOICE),
    S.SENT: SideEffect(notification_type="INVOICE_SENT", notification_title="Invoice Sent"),
    S.ACCEPTED: SideEffect(
        work_record_status=WorkRecordInvoiceStatus.INVOICED,
        notification_type="INVOICE_ACCEPTED",
        notification_title="Invoice Accepted",
        recipient=AGENCY,
    ),
    S.REJECTED: SideEffect(
        work_record_status=WorkRecordInvoiceStatus.APPROVED,
        notification_type="INVOICE_REJECTED",
        notification_title="Invoice Rejected",
        recipient=AGENCY,
    ),
    S.PAID: SideEffect(notification_type="INVOICE_PAID", notification_title="Invoice Paid"),
    S.PARTIALLY_PAID: SideEffect(),
    S.CANCELLED: SideEffect(notification_type="INVOICE_CANCELLED", notification_title="Invoice Cancelled"),
    S.INVALIDATED: SideEffect(notification_type="INVOICE_INVALIDATED", notification_title="Invoice Invalidated"),
}


def parse_status(value: Union[str, InvoiceStatus]) -> InvoiceStatus:
    try:
        return InvoiceStatus(value)
    except ValueError:
        raise InvoiceValidationError({"status": f"Unknown invoice status: {value!r}"}) from None


def validate_transition(current: Union[str, InvoiceStatus], requested: Union[str, InvoiceStatus]) -> None:
    current, requested = InvoiceStatus(current), InvoiceStatus(requested)
    if requested not in TRANSITIONS[current]:
        raise InvalidTransition(current.value, requested.value)


def _apply_side_effects(db: Session, invoice: Invoice, status: InvoiceStatus) -> None:
    effect = SIDE_EFFECTS[status]

    ids = invoice.work_record_ids
    if effect.work_record_status is not None and ids:
        repository.update_work_records_invoice_status(
            db, ids, effect.work_record_status.value, invoice.id, invoice.invoice_number,
        )

    if effect.notification_type:
        recipient_id = invoice.agency_id if effect.recipient == AGENCY else invoice.facility_id
        notifications.enqueue_notification(
            db,
            notification_type=effect.notification_type,
            title=effect.notification_title or effect.notification_type,
            message=f"Invoice {invoice.invoice_number} has been {status.value}",
            recipient_id=recipient_id,
            entity_id=invoice.id,
        )


def apply_transition(db: Session, invoice: Invoice, new_status: Union[str, InvoiceStatus]) -> Invoice:
    """Validate and stage a transition on an already loaded invoice. The caller commits."""
    requested = parse_status(new_status)
    validate_transition(invoice.status, requested)
    previous = invoice.status
    invoice.status = requested.value
    _apply_side_effects(db, invoice, requested)
    logger.info("Invoice %s: %s -> %s", invoice.invoice_number, previous, requested.value)
    return invoice


def transition_invoice_status(
    db: Session,
    invoice_id: str,
    new_status: Union[str, InvoiceStatus],
    dispatcher: Optional["notifications.NotificationDispatcher"] = None,
) -> Invoice:
    """
    Move an invoice to new_status.

    Raises InvoiceValidationError for an unknown status, InvoiceNotFound and
    InvalidTransition. When a dispatcher is given, pending notifications
    are delivered after the commit; delivery failures never propagate.
    """
    parse_status(new_status)
    invoice = repository.get_invoice(db, invoice_id)
    if invoice is None:
        raise InvoiceNotFound(invoice_id)

    try:
        apply_transition(db, invoice, new_status)
        db.commit()
    except Exception:
        db.rollback()
        raise

    if dispatcher is not None:
        try:
            dispatcher.dispatch_pending(db)
        except Exception as e:
            db.rollback()
            logger.error(
                "Notification dispatch after invoice %s transition failed: %s",
                invoice.invoice_number, e, exc_info=True,
            )
    return invoice
