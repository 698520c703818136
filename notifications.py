"""
Customer and admin notifications.

State changes are persisted first and only then handed to the outbox (the
``notification`` collection). A worker drains the outbox and sends mail; a
failed enqueue or a failed send is logged and never undoes the state change
that triggered it.
"""
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Any, Dict, List, Optional, Protocol

import structlog
from pymongo import ASCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import Settings
from errors import NotificationError
from schemas import Notification

logger = structlog.get_logger(__name__)

CONTACT_FOOTER = """
If you have any questions, please contact us at:
Email: Contact@zuree.in
Phone: +91 97114 11526

Best regards,
The Zuree Global Team
"""

# Per-status copy for bulk and custom requests; a status without an entry sends nothing.
REQUEST_STATUS_MESSAGES: Dict[str, Dict[str, Dict[str, str]]] = {
    "bulk": {
        "contacted": {
            "subject": "Your Bulk Order Request - We'll Contact You Soon!",
            "title": "Request Acknowledged",
            "message": "Our team has reviewed your requirements and will contact you within 24 hours to discuss the details.",
        },
        "processing": {
            "subject": "Your Bulk Order is Being Processed!",
            "title": "Order Processing",
            "message": "Your bulk order has been accepted and is now being processed. We'll keep you updated on the progress.",
        },
        "confirmed": {
            "subject": "Your Bulk Order is Confirmed!",
            "title": "Order Confirmed",
            "message": "Your bulk order has been confirmed. Production will begin shortly, and delivery is expected within 10-15 days.",
        },
        "completed": {
            "subject": "Your Bulk Order is Ready!",
            "title": "Order Completed",
            "message": "Your bulk order has been completed and is ready for delivery. We'll contact you shortly to arrange the shipment.",
        },
        "cancelled": {
            "subject": "Bulk Order Request Cancelled",
            "title": "Request Cancelled",
            "message": "Your bulk order request has been cancelled as requested.",
        },
    },
    "custom": {
        "contacted": {
            "subject": "Your Custom Design Request - We'll Contact You Soon!",
            "title": "Request Acknowledged",
            "message": "Our team has reviewed your requirements and will contact you within 24 hours to discuss the details.",
        },
        "in_progress": {
            "subject": "Your Custom Design is Now In Progress!",
            "title": "Design Process Started",
            "message": "We've started working on your custom design. Our tailors are crafting your piece.",
        },
        "completed": {
            "subject": "Your Custom Design is Ready!",
            "title": "Design Completed",
            "message": "Your custom design has been completed and is ready for pickup or delivery.",
        },
        "cancelled": {
            "subject": "Custom Design Request Cancelled",
            "title": "Request Cancelled",
            "message": "Your custom design request has been cancelled as requested.",
        },
    },
}


def render_order_status(payload: Dict[str, Any]) -> Dict[str, str]:
    status = payload["status"]
    lines = [
        f"Dear {payload['customer_name'] or 'Customer'},",
        "",
        f"Your order {payload['order_number']} is now {status.upper()}.",
    ]
    if payload.get("tracking_number"):
        lines.append(f"Tracking number: {payload['tracking_number']}")
    if status != "cancelled":
        lines.append(f"Estimated delivery: {payload['estimated_delivery']}")
    return {
        "subject": f"Order {payload['order_number']} - {status.capitalize()}",
        "body": "\n".join(lines) + "\n" + CONTACT_FOOTER,
    }


def render_request_status(request_type: str, payload: Dict[str, Any]) -> Optional[Dict[str, str]]:
    info = REQUEST_STATUS_MESSAGES[request_type].get(payload["status"])
    if info is None:
        return None
    lines = [
        info["title"],
        "",
        f"Dear {payload.get('customer_name') or 'Valued Customer'},",
        "",
        info["message"],
        "",
        f"Request ID: {payload['request_id']}",
        f"Status: {payload['status'].upper().replace('_', ' ')}",
    ]
    if payload.get("estimated_price"):
        lines.append(f"Estimated Price: Rs. {payload['estimated_price']}")
    if payload.get("admin_notes"):
        lines += ["", "ADDITIONAL NOTES:", payload["admin_notes"]]
    return {"subject": info["subject"], "body": "\n".join(lines) + "\n" + CONTACT_FOOTER}


class Mailer(Protocol):
    def send(self, message: EmailMessage) -> None: ...


class LogMailer:
    """Used when no SMTP host is configured: messages are only logged."""

    def __init__(self):
        self.sent: List[EmailMessage] = []

    def send(self, message: EmailMessage) -> None:
        self.sent.append(message)
        logger.info("mail_logged", to=message["To"], subject=message["Subject"])


class SmtpMailer:
    def __init__(self, settings: Settings):
        self.settings = settings

    def send(self, message: EmailMessage) -> None:
        try:
            with smtplib.SMTP(self.settings.mail_host, self.settings.mail_port, timeout=30) as smtp:
                smtp.starttls()
                if self.settings.mail_user:
                    smtp.login(self.settings.mail_user, self.settings.mail_password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError("Mail delivery failed", str(e)) from e


def build_mailer(settings: Settings) -> Mailer:
    return SmtpMailer(settings) if settings.mail_host else LogMailer()


class NotificationOutbox:
    def __init__(self, database: Database):
        self.collection = database["notification"]

    def enqueue(self, kind: str, recipient: Optional[str], subject: str, body: str,
                payload: Optional[Dict[str, Any]] = None) -> Optional[str]:
        """Queue a message; returns its id, or None when it could not be queued."""
        if not recipient:
            logger.info("notification_skipped_no_recipient", kind=kind)
            return None
        note = Notification(kind=kind, recipient=recipient, subject=subject, body=body, payload=payload or {})
        data = note.model_dump(exclude={"id"})
        data["created_at"] = datetime.now(timezone.utc)
        try:
            result = self.collection.insert_one(data)
        except PyMongoError as e:
            logger.error("notification_enqueue_failed", kind=kind, recipient=recipient, error=str(e))
            return None
        logger.info("notification_enqueued", kind=kind, recipient=recipient)
        return str(result.inserted_id)

    def pending(self, limit: int = 50) -> List[Dict[str, Any]]:
        return list(self.collection.find({"state": "queued"}).sort("created_at", ASCENDING).limit(limit))

    def claim(self) -> Optional[Dict[str, Any]]:
        """Move the oldest queued message to ``sending`` and return it, or None.

        The state check and the write are one operation, so concurrent
        workers never pick up the same message.
        """
        return self.collection.find_one_and_update(
            {"state": "queued"},
            {"$set": {"state": "sending"}, "$inc": {"attempts": 1}},
            sort=[("created_at", ASCENDING)],
            return_document=ReturnDocument.AFTER,
        )


class NotificationWorker:
    def __init__(self, database: Database, mailer: Mailer, sender: str = "Contact@zuree.in"):
        self.outbox = NotificationOutbox(database)
        self.mailer = mailer
        self.sender = sender

    def _message(self, doc: Dict[str, Any]) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = doc["recipient"]
        message["Subject"] = doc["subject"]
        message.set_content(doc["body"])
        return message

    def drain(self, limit: int = 50) -> Dict[str, int]:
        """Send up to ``limit`` queued messages once each; returns counts of sent and failed."""
        counts = {"sent": 0, "failed": 0}
        for _ in range(limit):
            doc = self.outbox.claim()
            if doc is None:
                break
            try:
                self.mailer.send(self._message(doc))
            except NotificationError as e:
                update = {"state": "failed", "error": f"{e.error}: {e.details}" if e.details else e.error}
                counts["failed"] += 1
                logger.warning("notification_failed", kind=doc["kind"], recipient=doc["recipient"], error=update["error"])
            else:
                update = {"state": "sent", "error": None}
                counts["sent"] += 1
                logger.info("notification_sent", kind=doc["kind"], recipient=doc["recipient"])
            self.outbox.collection.update_one({"_id": doc["_id"]}, {"$set": update})
        return counts
