"""Tests for the invoice status state machine."""

import itertools
import logging

import pytest
from sqlalchemy import select

from care_billing.lifecycle import (
    SIDE_EFFECTS,
    TRANSITIONS,
    transition_invoice_status,
    validate_transition,
)
from care_billing.models import (
    InvalidTransition,
    InvoiceNotFound,
    InvoiceStatus,
    InvoiceValidationError,
)
from care_billing.notifications import NOTIFICATION_TOPIC
from care_billing.store.tables import OutboxEvent

from conftest import FailingSender, invoice_statuses

S = InvoiceStatus

EXPECTED_TRANSITIONS = {
    S.DRAFT: {S.SENT, S.INVALIDATED},
    S.SENT: {S.PENDING, S.INVALIDATED},
    S.PENDING: {S.ACCEPTED, S.REJECTED, S.CANCELLED},
    S.ACCEPTED: {S.PAID, S.INVALIDATED, S.CANCELLED},
    S.REJECTED: {S.PENDING, S.CANCELLED},
    S.PAID: {S.INVALIDATED, S.CANCELLED},
    S.PARTIALLY_PAID: {S.PAID, S.INVALIDATED, S.CANCELLED},
    S.CANCELLED: set(),
    S.INVALIDATED: set(),
}


def _outbox(db) -> list[OutboxEvent]:
    return list(db.execute(select(OutboxEvent).order_by(OutboxEvent.id)).scalars())


@pytest.fixture
def setup(seed):
    agency = seed.agency()
    facility = seed.facility()
    pattern = seed.pattern(facility.id)
    records = [
        seed.work_record(agency, facility.id, pattern, invoice_status="pending_invoice"),
        seed.work_record(agency, facility.id, pattern, invoice_status="pending_invoice"),
    ]
    return agency, facility, records


def _make_invoice(seed, setup, status):
    agency, facility, records = setup
    return seed.invoice(agency, facility.id, records, status=status.value)


class TestTransitionTable:
    def test_table_matches_expected(self):
        assert {k: set(v) for k, v in TRANSITIONS.items()} == EXPECTED_TRANSITIONS

    def test_every_status_has_a_side_effect_row(self):
        assert set(SIDE_EFFECTS) == set(InvoiceStatus)

    @pytest.mark.parametrize("current,requested", list(itertools.product(InvoiceStatus, InvoiceStatus)))
    def test_validate_every_pair(self, current, requested):
        if requested in EXPECTED_TRANSITIONS[current]:
            validate_transition(current, requested)
        else:
            with pytest.raises(InvalidTransition):
                validate_transition(current, requested)

    def test_terminal_states(self):
        assert TRANSITIONS[S.CANCELLED] == frozenset()
        assert TRANSITIONS[S.INVALIDATED] == frozenset()


class TestTransitionInvoiceStatus:
    def test_pending_to_paid_rejected(self, db, seed, setup):
        invoice = _make_invoice(seed, setup, S.PENDING)
        with pytest.raises(InvalidTransition, match="from pending to paid"):
            transition_invoice_status(db, invoice.id, "paid")
        db.refresh(invoice)
        assert invoice.status == "pending"
        assert _outbox(db) == []

    def test_accept_marks_records_invoiced_and_notifies_agency(self, db, seed, setup):
        agency, _, records = setup
        invoice = _make_invoice(seed, setup, S.PENDING)

        transition_invoice_status(db, invoice.id, S.ACCEPTED)

        assert set(invoice_statuses(db, [r.id for r in records]).values()) == {"invoiced"}
        [event] = _outbox(db)
        assert event.topic == NOTIFICATION_TOPIC
        assert event.recipient_id == agency.id
        assert event.payload["type"] == "INVOICE_ACCEPTED"
        assert event.payload["message"] == f"Invoice {invoice.invoice_number} has been accepted"

    def test_paid_keeps_records_invoiced_and_notifies_facility(self, db, seed, setup, dispatcher, sender):
        _, facility, records = setup
        for r in records:
            r.invoice_status = "invoiced"
        db.commit()
        invoice = _make_invoice(seed, setup, S.ACCEPTED)

        transition_invoice_status(db, invoice.id, "paid", dispatcher=dispatcher)

        assert invoice.status == "paid"
        assert set(invoice_statuses(db, [r.id for r in records]).values()) == {"invoiced"}
        [notification] = sender.sent
        assert notification.type == "INVOICE_PAID"
        assert notification.recipient_id == facility.id
        assert notification.recipient_email == "office@oak.example"

    def test_reject_returns_records_to_approved(self, db, seed, setup):
        agency, _, records = setup
        invoice = _make_invoice(seed, setup, S.PENDING)

        transition_invoice_status(db, invoice.id, "rejected")

        assert set(invoice_statuses(db, [r.id for r in records]).values()) == {"approved"}
        [event] = _outbox(db)
        assert event.payload["type"] == "INVOICE_REJECTED"
        assert event.recipient_id == agency.id

    def test_resubmit_after_rejection(self, db, seed, setup):
        _, _, records = setup
        invoice = _make_invoice(seed, setup, S.REJECTED)

        transition_invoice_status(db, invoice.id, "pending")

        assert set(invoice_statuses(db, [r.id for r in records]).values()) == {"pending_invoice"}
        assert _outbox(db) == []

    @pytest.mark.parametrize("current,requested,notification", [
        (S.DRAFT, S.SENT, "INVOICE_SENT"),
        (S.PENDING, S.CANCELLED, "INVOICE_CANCELLED"),
        (S.ACCEPTED, S.INVALIDATED, "INVOICE_INVALIDATED"),
    ])
    def test_facility_notifications(self, db, seed, setup, current, requested, notification):
        _, facility, records = setup
        before = invoice_statuses(db, [r.id for r in records])
        invoice = _make_invoice(seed, setup, current)

        transition_invoice_status(db, invoice.id, requested)

        [event] = _outbox(db)
        assert event.payload["type"] == notification
        assert event.recipient_id == facility.id
        assert invoice_statuses(db, [r.id for r in records]) == before

    def test_delivery_failure_does_not_fail_transition(self, db, seed, setup):
        from care_billing.notifications import NotificationDispatcher

        invoice = _make_invoice(seed, setup, S.PENDING)
        transition_invoice_status(
            db, invoice.id, "accepted", dispatcher=NotificationDispatcher(sender=FailingSender()),
        )

        assert invoice.status == "accepted"
        [event] = _outbox(db)
        assert event.status == "failed"
        assert event.attempts == 1
        assert "smtp down" in event.last_error

    def test_dispatcher_crash_does_not_fail_transition(self, db, seed, setup, caplog):
        _, _, records = setup
        invoice = _make_invoice(seed, setup, S.PENDING)

        class BrokenDispatcher:
            def dispatch_pending(self, db):
                raise RuntimeError("outbox table locked")

        with caplog.at_level(logging.ERROR, logger="care_billing.lifecycle"):
            result = transition_invoice_status(db, invoice.id, "accepted", dispatcher=BrokenDispatcher())

        assert result.status == "accepted"
        assert set(invoice_statuses(db, [r.id for r in records]).values()) == {"invoiced"}
        [event] = _outbox(db)
        assert event.status == "pending"
        assert "dispatch after invoice" in caplog.text

    def test_unknown_status_is_validation_error(self, db, seed, setup):
        invoice = _make_invoice(seed, setup, S.PENDING)
        with pytest.raises(InvoiceValidationError):
            transition_invoice_status(db, invoice.id, "archived")

    def test_missing_invoice(self, db):
        with pytest.raises(InvoiceNotFound):
            transition_invoice_status(db, "nope", "accepted")

    def test_failed_write_rolls_back_everything(self, db, seed, setup, monkeypatch):
        from care_billing.store import repository

        _, _, records = setup
        invoice = _make_invoice(seed, setup, S.PENDING)

        def boom(*args, **kwargs):
            raise RuntimeError("database went away")

        monkeypatch.setattr(repository, "update_work_records_invoice_status", boom)
        with pytest.raises(RuntimeError):
            transition_invoice_status(db, invoice.id, "accepted")

        db.refresh(invoice)
        assert invoice.status == "pending"
        assert _outbox(db) == []
        assert set(invoice_statuses(db, [r.id for r in records]).values()) == {"pending_invoice"}
