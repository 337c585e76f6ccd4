"""Shared fixtures: in-memory database session and a seeding helper."""

from datetime import date, time
from decimal import Decimal
from typing import Optional

import pytest
from sqlalchemy import select
from sqlalchemy.pool import StaticPool

from care_billing.notifications import Notification, NotificationDispatcher
from care_billing.store.database import init_db, make_engine, make_session_factory
from care_billing.store.tables import (
    Invoice,
    InvoiceWorkRecord,
    Organization,
    PatternRate,
    PatternTiming,
    Shift,
    ShiftPatternModel,
    TemporaryFacility,
    WorkRecord,
    Worker,
)

DEFAULT_RATES = dict(
    weekday_rate=Decimal("15.00"),
    weekend_rate=Decimal("18.00"),
    emergency_weekday_rate=Decimal("20.00"),
    emergency_weekend_rate=Decimal("24.00"),
    holiday_rate=Decimal("30.00"),
    emergency_holiday_rate=Decimal("35.00"),
)

# 2024-01-01 is a Monday
MONDAY = date(2024, 1, 1)
TUESDAY = date(2024, 1, 2)
SATURDAY = date(2024, 1, 6)


class Seeder:
    """Builds rows for tests and commits after each one."""

    def __init__(self, db):
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        return obj

    def agency(self, name="Bright Staffing", email="billing@bright.example") -> Organization:
        return self._save(Organization(kind="agency", name=name, email=email))

    def facility(self, name="Oak House", email="office@oak.example") -> Organization:
        return self._save(Organization(
            kind="facility", name=name, email=email, phone="01234 567890",
            address={"line1": "1 Oak Lane", "city": "Leeds"},
        ))

    def temporary_facility(self, name="Pop-up Ward", is_claimed=False) -> TemporaryFacility:
        return self._save(TemporaryFacility(
            name=name, email="popup@ward.example", phone="", address={"city": "York"},
            is_claimed=is_claimed,
        ))

    def pattern(
        self,
        facility_id: Optional[str],
        name: str = "Day",
        role: str = "carer",
        start: time = time(8, 0),
        end: time = time(20, 0),
        billable_hours: Optional[Decimal] = None,
        break_hours: Optional[Decimal] = Decimal("1"),
        rates: Optional[dict] = None,
        with_facility_rate: bool = True,
        user_type_rates: Optional[dict] = None,
    ) -> ShiftPatternModel:
        pattern = ShiftPatternModel(name=name)
        if facility_id is not None:
            pattern.timings.append(PatternTiming(
                facility_id=facility_id, start_time=start, end_time=end,
                billable_hours=billable_hours, break_hours=break_hours,
            ))
            if with_facility_rate:
                pattern.rates.append(PatternRate(facility_id=facility_id, role=role, **(rates or DEFAULT_RATES)))
        if user_type_rates:
            pattern.rates.append(PatternRate(facility_id=None, role=role, **user_type_rates))
        return self._save(pattern)

    def work_record(
        self,
        agency: Organization,
        facility_id: str,
        pattern: Optional[ShiftPatternModel],
        shift_date: date = MONDAY,
        role: str = "carer",
        is_emergency: bool = False,
        status: str = "approved",
        invoice_status: str = "draft",
        shift_facility_id: Optional[str] = None,
        shift_temporary_facility_id: Optional[str] = None,
        record_facility_id: Optional[str] = "same",
        first_name: str = "Ada",
        last_name: str = "Lovelace",
    ) -> WorkRecord:
        worker = Worker(first_name=first_name, last_name=last_name, role=role)
        shift = Shift(
            shift_date=shift_date,
            is_emergency=is_emergency,
            pattern_id=pattern.id if pattern is not None else None,
            facility_id=shift_facility_id if shift_facility_id is not None else facility_id,
            temporary_facility_id=shift_temporary_facility_id,
        )
        self.db.add_all([worker, shift])
        self.db.flush()
        return self._save(WorkRecord(
            shift_id=shift.id,
            worker_id=worker.id,
            agency_id=agency.id,
            facility_id=facility_id if record_facility_id == "same" else record_facility_id,
            status=status,
            invoice_status=invoice_status,
        ))

    def invoice(
        self,
        agency: Organization,
        facility_id: str,
        work_records: list[WorkRecord],
        status: str = "pending",
        invoice_number: str = "INV-2401-0001",
        total_amount: Decimal = Decimal("165.00"),
        shift_summary: Optional[dict] = None,
    ) -> Invoice:
        invoice = Invoice(
            invoice_number=invoice_number,
            agency_id=agency.id,
            facility_id=facility_id,
            start_date=MONDAY,
            end_date=date(2024, 1, 31),
            total_amount=total_amount,
            shift_summary=shift_summary or {},
            holidays=[],
            status=status,
            links=[InvoiceWorkRecord(work_record_id=wr.id) for wr in work_records],
        )
        self._save(invoice)
        for wr in work_records:
            wr.invoice_id = invoice.id
            wr.invoice_number = invoice_number
        self.db.commit()
        return invoice


def invoice_statuses(db, ids) -> dict[str, str]:
    rows = db.execute(select(WorkRecord.id, WorkRecord.invoice_status).where(WorkRecord.id.in_(list(ids))))
    return {row.id: row.invoice_status for row in rows}


class RecordingSender:
    def __init__(self):
        self.sent: list[Notification] = []

    def send(self, notification: Notification) -> None:
        self.sent.append(notification)


class FailingSender:
    def send(self, notification: Notification) -> None:
        raise ConnectionError("smtp down")


@pytest.fixture
def engine():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = make_session_factory(engine)()
    yield session
    session.close()


@pytest.fixture
def seed(db):
    return Seeder(db)


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def dispatcher(sender):
    return NotificationDispatcher(sender=sender)
