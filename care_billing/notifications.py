"""
Notification outbox.

Status changes write OutboxEvent rows in their own transaction; delivery
happens afterwards through a NotificationSender. Delivery is best effort:
a failing send is logged and recorded on the row, never raised to the
caller of the status change.
"""
from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass, field
from email.mime.text import MIMEText
from typing import Any, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from care_billing.config import config
from care_billing.store import repository
from care_billing.store.tables import OutboxEvent, utc_now

logger = logging.getLogger(__name__)

NOTIFICATION_TOPIC = "notification.send"
PDF_REQUEST_TOPIC = "invoice.pdf_requested"

PENDING = "pending"
SENT = "sent"
FAILED = "failed"

MAX_ATTEMPTS = 5


@dataclass(frozen=True)
class Notification:
    type: str
    title: str
    message: str
    recipient_id: Optional[str]
    recipient_email: str = ""
    payload: dict[str, Any] = field(default_factory=dict)


class NotificationSender(Protocol):
    def send(self, notification: Notification) -> None:
        ...


class LoggingNotificationSender:
    """Default sender: records the notification in the log only."""

    def send(self, notification: Notification) -> None:
        logger.info(
            "Notification %s to %s <%s>: %s",
            notification.type,
            notification.recipient_id,
            notification.recipient_email or "-",
            notification.message,
        )


class SmtpNotificationSender:
    """Sends notifications as plain-text email."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        user: str = "",
        password: str = "",
        use_ssl: bool = False,
        from_email: str = "billing@localhost",
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_ssl = use_ssl
        self.from_email = from_email

    def send(self, notification: Notification) -> None:
        if not notification.recipient_email:
            raise ValueError(f"No email address for recipient {notification.recipient_id}")

        msg = MIMEText(notification.message, "plain", "utf-8")
        msg["Subject"] = notification.title
        msg["From"] = self.from_email
        msg["To"] = notification.recipient_email

        # use_ssl: implicit TLS (465); otherwise STARTTLS
        if self.use_ssl:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=30)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=30)
        try:
            if not self.use_ssl:
                server.starttls()
            if self.user:
                server.login(self.user, self.password)
            server.sendmail(self.from_email, [notification.recipient_email], msg.as_string())
        finally:
            server.quit()


def default_sender() -> NotificationSender:
    if config.smtp_enabled():
        return SmtpNotificationSender(
            host=config.SMTP_HOST,
            port=config.SMTP_PORT,
            user=config.SMTP_USER,
            password=config.SMTP_PASSWORD,
            use_ssl=config.SMTP_USE_SSL,
            from_email=config.NOTIFY_FROM_EMAIL,
        )
    return LoggingNotificationSender()


def enqueue(
    db: Session,
    topic: str,
    payload: dict[str, Any],
    recipient_id: Optional[str] = None,
    key: str = "",
) -> OutboxEvent:
    """Add an outbox row to the current transaction (caller commits)."""
    event = OutboxEvent(topic=topic, key=key, recipient_id=recipient_id, payload=payload, status=PENDING)
    db.add(event)
    return event


def enqueue_notification(
    db: Session,
    notification_type: str,
    title: str,
    message: str,
    recipient_id: Optional[str],
    entity_id: str,
) -> OutboxEvent:
    return enqueue(
        db,
        NOTIFICATION_TOPIC,
        {
            "type": notification_type,
            "title": title,
            "message": message,
            "entity_id": entity_id,
            "entity_type": "INVOICE",
        },
        recipient_id=recipient_id,
        key=f"invoice_{entity_id}",
    )


def _recipient_email(db: Session, recipient_id: Optional[str]) -> str:
    if not recipient_id:
        return ""
    org = repository.find_organization(db, recipient_id)
    if org is not None:
        return org.email or ""
    facility = repository.find_facility(db, recipient_id)
    return facility.email if facility is not None else ""


@dataclass
class DispatchReport:
    sent: int = 0
    failed: int = 0


class NotificationDispatcher:
    """Delivers pending notification rows through a sender."""

    def __init__(self, sender: Optional[NotificationSender] = None, max_attempts: int = MAX_ATTEMPTS):
        self.sender = sender or default_sender()
        self.max_attempts = max_attempts

    def dispatch_pending(self, db: Session, limit: int = 100) -> DispatchReport:
        report = DispatchReport()
        stmt = (
            select(OutboxEvent)
            .where(
                OutboxEvent.topic == NOTIFICATION_TOPIC,
                OutboxEvent.status.in_([PENDING, FAILED]),
                OutboxEvent.attempts < self.max_attempts,
            )
            .order_by(OutboxEvent.id)
            .limit(limit)
        )
        for event in db.execute(stmt).scalars().all():
            payload = event.payload or {}
            notification = Notification(
                type=payload.get("type", ""),
                title=payload.get("title", ""),
                message=payload.get("message", ""),
                recipient_id=event.recipient_id,
                recipient_email=_recipient_email(db, event.recipient_id),
                payload=payload,
            )
            event.attempts += 1
            try:
                self.sender.send(notification)
            except Exception as e:
                logger.error(
                    "Error sending notification %s (event %s) to %s: %s",
                    notification.type, event.id, event.recipient_id, e,
                )
                event.status = FAILED
                event.last_error = str(e)
                report.failed += 1
            else:
                event.status = SENT
                event.sent_at = utc_now()
                event.last_error = None
                report.sent += 1
        db.commit()
        return report
