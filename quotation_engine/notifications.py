from __future__ import annotations

import logging
from typing import List

from flask import current_app, has_app_context
from flask_mail import Mail, Message

from quotation_engine.core.event_bus import (
    ApprovalDecided,
    ApprovalsAssigned,
    CommentAdded,
    DomainEvent,
    EventBus,
    QuotationStatusChanged,
    QuotationSubmitted,
    RevisionCreated,
    RevisionRequested,
)
from quotation_engine.db import get_db
from quotation_engine.infrastructure.repositories import ApprovalRepository, UserDirectoryRepository
from quotation_engine.observability import observe_notification
from quotation_engine.ui_strings import status_label


log = logging.getLogger("quotation_engine.notifications")

mail = Mail()

# Status changes worth an email to the vendor; the rest are logged only.
_VENDOR_NOTIFIED_STATUSES = {"approved", "rejected", "revision_requested"}


def send_email(*, to, subject: str, body: str) -> bool:
    try:
        if not to:
            log.warning("send_email: missing recipient")
            return False
        recipients = [to] if isinstance(to, str) else list(to)
        sender = current_app.config.get("MAIL_DEFAULT_SENDER") or current_app.config.get("MAIL_USERNAME")
        if not sender:
            log.error("send_email: no sender configured")
            return False

        msg = Message(subject=subject, recipients=recipients, sender=sender, body=body)
        if current_app.config.get("MAIL_SUPPRESS_SEND"):
            log.info("notification_suppressed", extra={"recipients": recipients, "subject": subject})
            observe_notification("email", "suppressed")
            return True

        mail.send(msg)
        log.info("notification_sent", extra={"recipients": recipients, "subject": subject})
        observe_notification("email", "sent")
        return True
    except Exception:  # noqa: BLE001
        log.exception("send_email failed", extra={"subject": subject})
        observe_notification("email", "failed")
        return False


class NotificationSink:
    """Turns workflow events into vendor/approver notices.

    Runs after commit; failures are logged and never reach the workflow.
    """

    def __init__(
        self,
        users: UserDirectoryRepository | None = None,
        approvals: ApprovalRepository | None = None,
    ) -> None:
        self.users = users or UserDirectoryRepository()
        self.approvals = approvals or ApprovalRepository()

    def register(self, bus: EventBus) -> None:
        for event_type in (
            QuotationSubmitted,
            ApprovalsAssigned,
            ApprovalDecided,
            QuotationStatusChanged,
            RevisionCreated,
            RevisionRequested,
            CommentAdded,
        ):
            bus.subscribe(event_type, self.handle)

    def handle(self, event: DomainEvent) -> None:
        notice = self.describe(event)
        if notice is None:
            return
        recipient_ids, subject, body = notice
        log.info(
            "notification_event",
            extra={"event_type": type(event).__name__, "recipient_ids": recipient_ids, "subject": subject},
        )
        if not has_app_context() or not bool(current_app.config.get("MAIL_ENABLED", False)):
            observe_notification("log", "sent")
            return
        if not recipient_ids:
            return
        recipients = self.users.emails_for(get_db(), recipient_ids)
        send_email(to=recipients, subject=subject, body=body)

    def describe(self, event: DomainEvent) -> tuple[List[int], str, str] | None:
        if isinstance(event, QuotationSubmitted):
            return (
                [event.vendor_id],
                f"Cotacao {event.quote_number} enviada",
                f"A cotacao {event.quote_number} foi enviada para aprovacao.",
            )
        if isinstance(event, ApprovalsAssigned):
            return (
                list(event.approver_ids),
                f"Cotacao {event.quote_number} aguardando aprovacao",
                f"Voce foi designado para aprovar a cotacao {event.quote_number}.",
            )
        if isinstance(event, QuotationStatusChanged):
            if event.to_status not in _VENDOR_NOTIFIED_STATUSES:
                return None
            label = status_label("quotation", event.to_status)
            return (
                [event.vendor_id],
                f"Cotacao {event.quote_number}: {label}",
                f"O status da cotacao {event.quote_number} mudou para {label}.",
            )
        if isinstance(event, RevisionCreated):
            approver_ids = [
                int(record["approver_id"])
                for record in self.approvals.list_for_quotation(get_db(), event.quotation_id)
                if record["status"] == "pending"
            ] if has_app_context() else []
            return (
                approver_ids,
                f"Nova versao {event.version} da cotacao #{event.quotation_id}",
                f"O fornecedor publicou a versao {event.version} com total {event.total_amount}.",
            )
        if isinstance(event, RevisionRequested):
            return (
                [event.vendor_id],
                f"Revisao solicitada na cotacao #{event.quotation_id}",
                f"Motivo: {event.reason}",
            )
        if isinstance(event, (ApprovalDecided, CommentAdded)):
            return ([], type(event).__name__, "")
        return None


_SINK = NotificationSink()


def register_notifications(app, bus: EventBus) -> NotificationSink:
    mail.init_app(app)
    _SINK.register(bus)
    return _SINK
