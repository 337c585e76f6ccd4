"""SQLAlchemy tables backing the billing engine."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

RATE = Numeric(12, 4)
HOURS = Numeric(8, 4)
MONEY = Numeric(14, 4)


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Organization(Base):
    """Agency or permanent care facility."""

    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(200), default="")
    phone: Mapped[str] = mapped_column(String(50), default="")
    address: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    __table_args__ = (
        CheckConstraint("kind IN ('agency', 'facility')", name="organizations_kind_check"),
    )


class TemporaryFacility(Base):
    """Facility not yet linked to a verified organization account."""

    __tablename__ = "temporary_facilities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(200), default="")
    phone: Mapped[str] = mapped_column(String(50), default="")
    address: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    is_claimed: Mapped[bool] = mapped_column(Boolean, default=False)


class Worker(Base):
    __tablename__ = "workers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    first_name: Mapped[str] = mapped_column(String(100), default="")
    last_name: Mapped[str] = mapped_column(String(100), default="")
    role: Mapped[str] = mapped_column(String(100), default="")


class ShiftPatternModel(Base):
    __tablename__ = "shift_patterns"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    timings: Mapped[list["PatternTiming"]] = relationship(
        back_populates="pattern", cascade="all, delete-orphan", order_by="PatternTiming.id",
    )
    rates: Mapped[list["PatternRate"]] = relationship(
        back_populates="pattern", cascade="all, delete-orphan", order_by="PatternRate.id",
    )


class PatternTiming(Base):
    __tablename__ = "pattern_timings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pattern_id: Mapped[str] = mapped_column(
        ForeignKey("shift_patterns.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    facility_id: Mapped[str] = mapped_column(String(36), nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    billable_hours: Mapped[Optional[Decimal]] = mapped_column(HOURS, nullable=True)
    break_hours: Mapped[Optional[Decimal]] = mapped_column(HOURS, nullable=True)

    pattern: Mapped[ShiftPatternModel] = relationship(back_populates="timings")


class PatternRate(Base):
    """Role rate on a pattern; facility_id NULL marks a user-type fallback rate."""

    __tablename__ = "pattern_rates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pattern_id: Mapped[str] = mapped_column(
        ForeignKey("shift_patterns.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    facility_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    role: Mapped[str] = mapped_column(String(100), nullable=False)
    weekday_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    weekend_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    emergency_weekday_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    emergency_weekend_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    holiday_rate: Mapped[Optional[Decimal]] = mapped_column(RATE, nullable=True)
    emergency_holiday_rate: Mapped[Optional[Decimal]] = mapped_column(RATE, nullable=True)

    pattern: Mapped[ShiftPatternModel] = relationship(back_populates="rates")


class Shift(Base):
    __tablename__ = "shifts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    shift_date: Mapped[date] = mapped_column("date", Date, nullable=False, index=True)
    is_emergency: Mapped[bool] = mapped_column(Boolean, default=False)
    pattern_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("shift_patterns.id", ondelete="SET NULL"), nullable=True,
    )
    facility_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    temporary_facility_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    pattern: Mapped[Optional[ShiftPatternModel]] = relationship()


class WorkRecord(Base):
    """Timesheet: hours worked by a worker against a shift."""

    __tablename__ = "work_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    shift_id: Mapped[str] = mapped_column(ForeignKey("shifts.id"), nullable=False)
    worker_id: Mapped[str] = mapped_column(ForeignKey("workers.id"), nullable=False)
    agency_id: Mapped[str] = mapped_column(String(36), nullable=False)
    facility_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    status: Mapped[str] = mapped_column(String(30), default="submitted")
    invoice_status: Mapped[str] = mapped_column(String(30), default="draft")
    invoice_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    invoice_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    shift: Mapped[Shift] = relationship()
    worker: Mapped[Worker] = relationship()

    __table_args__ = (
        Index("ix_work_records_agency_status", "agency_id", "status", "invoice_status"),
    )


class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    invoice_number: Mapped[str] = mapped_column(String(20), nullable=False)
    agency_id: Mapped[str] = mapped_column(String(36), nullable=False)
    facility_id: Mapped[str] = mapped_column(String(36), nullable=False)
    is_temporary_facility: Mapped[bool] = mapped_column(Boolean, default=False)
    temporary_facility_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    facility_details: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    shift_summary: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    holidays: Mapped[list[str]] = mapped_column(JSON, default=list)
    status: Mapped[str] = mapped_column(String(20), default="draft")
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    links: Mapped[list["InvoiceWorkRecord"]] = relationship(
        back_populates="invoice", cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def work_record_ids(self) -> list[str]:
        return [link.work_record_id for link in self.links]

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        Index("ix_invoices_facility_status", "facility_id", "status"),
        Index("ix_invoices_agency_status", "agency_id", "status"),
    )


class InvoiceWorkRecord(Base):
    """Link row; the unique work_record_id keeps a record on at most one live invoice."""

    __tablename__ = "invoice_work_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_id: Mapped[str] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    work_record_id: Mapped[str] = mapped_column(ForeignKey("work_records.id"), nullable=False)
    # Priced line frozen at creation; Decimals stored as strings.
    line: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    invoice: Mapped[Invoice] = relationship(back_populates="links")

    __table_args__ = (
        UniqueConstraint("work_record_id", name="uq_invoice_work_records_work_record_id"),
    )


class OutboxEvent(Base):
    """Outbound message written in the same transaction as the change that caused it."""

    __tablename__ = "outbox_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    topic: Mapped[str] = mapped_column(String(100), nullable=False)
    key: Mapped[str] = mapped_column(String(100), default="")
    recipient_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_outbox_events_status", "status", "id"),
    )
