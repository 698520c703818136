"""
Bulk order and custom design requests.

Both are plain form submissions reviewed by a human: no cart, no stock and no
pricing. They share one shape: a status that walks pending -> contacted ->
working -> done/cancelled, an orthogonal admin-set priority, an admin-entered
estimated price, and status emails that are opt-in per update.
"""
import math
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

import structlog
from pydantic import BaseModel
from pymongo import DESCENDING
from pymongo.database import Database

from config import Settings
from database import create_document, serialize_document, to_object_id
from errors import NotFoundError, ValidationError
from notifications import NotificationOutbox, render_request_status
from orders import generate_reference, utcnow
from schemas import (
    PRIORITIES,
    BulkOrderCreate,
    BulkOrderRequest,
    CustomDesignCreate,
    CustomDesignRequest,
    RequestUpdate,
)

logger = structlog.get_logger(__name__)


class RequestIntake:
    request_type = ""
    collection_name = ""
    prefix = ""
    reference_length = 9
    statuses: Tuple[str, ...] = ()
    model: Type[BaseModel] = BaseModel

    def __init__(self, database: Database, outbox: NotificationOutbox, settings: Settings,
                 clock: Callable[[], datetime] = utcnow):
        self.database = database
        self.collection = database[self.collection_name]
        self.outbox = outbox
        self.settings = settings
        self.clock = clock

    # Hooks for the concrete request types
    def validate(self, payload: BaseModel) -> None:
        raise NotImplementedError

    def contact(self, record: BaseModel) -> Tuple[Optional[str], Optional[str]]:
        raise NotImplementedError

    def summary(self, record: BaseModel) -> List[str]:
        raise NotImplementedError

    def extra_fields(self, payload: BaseModel) -> Dict[str, Any]:
        return {}

    @staticmethod
    def _blank(payload: BaseModel, fields: Tuple[str, ...]) -> List[str]:
        return [f for f in fields if not str(getattr(payload, f) or "").strip()]

    def create(self, payload: BaseModel):
        self.validate(payload)
        record = self.model(
            **payload.model_dump(),
            **self.extra_fields(payload),
            request_id=generate_reference(self.prefix, self.reference_length, now=self.clock()),
        )
        record_id = create_document(self.collection_name, record, database=self.database)
        logger.info("request_created", request_type=self.request_type, request_id=record.request_id)
        record = self.get(record_id)
        self._notify_received(record)
        return record

    def get(self, record_id: str):
        oid = to_object_id(record_id)
        doc = self.collection.find_one({"_id": oid}) if oid else None
        if not doc:
            raise NotFoundError("Request not found", {"id": record_id})
        return self.model.model_validate(serialize_document(doc))

    def list_requests(self, status: Optional[str] = None, priority: Optional[str] = None,
                      page: int = 1, limit: int = 10) -> Dict[str, Any]:
        page, limit = max(page, 1), max(min(limit, 100), 1)
        query: Dict[str, Any] = {}
        if status and status != "all":
            query["status"] = status
        if priority and priority != "all":
            query["priority"] = priority
        total = self.collection.count_documents(query)
        cursor = self.collection.find(query).sort("created_at", DESCENDING).skip((page - 1) * limit).limit(limit)
        return {
            "requests": [self.model.model_validate(serialize_document(d)).model_dump() for d in cursor],
            "pagination": {"page": page, "limit": limit, "total": total, "total_pages": math.ceil(total / limit)},
        }

    def update(self, record_id: str, update: RequestUpdate):
        current = self.get(record_id)
        if update.status is not None and update.status not in self.statuses:
            raise ValidationError("Invalid status", {"status": update.status, "allowed": list(self.statuses)})
        if update.priority is not None and update.priority not in PRIORITIES:
            raise ValidationError("Invalid priority", {"priority": update.priority, "allowed": list(PRIORITIES)})

        changes = update.model_dump(exclude={"send_status_email"}, exclude_none=True)
        changes["updated_at"] = self.clock()
        self.collection.update_one({"_id": to_object_id(record_id)}, {"$set": changes})
        record = self.get(record_id)
        logger.info("request_updated", request_type=self.request_type, request_id=record.request_id,
                    status=record.status, priority=record.priority)

        if update.send_status_email and update.status is not None:
            self._notify_status(record)
        elif update.send_status_email:
            logger.info("request_status_email_skipped", request_id=current.request_id, reason="no status change")
        return record

    def _notify_status(self, record) -> Optional[str]:
        email, name = self.contact(record)
        payload = {
            "request_id": record.request_id,
            "status": record.status,
            "customer_name": name,
            "estimated_price": str(record.estimated_price) if record.estimated_price is not None else None,
            "admin_notes": record.admin_notes,
        }
        rendered = render_request_status(self.request_type, payload)
        if rendered is None:
            return None
        return self.outbox.enqueue("request_status", email, rendered["subject"], rendered["body"], payload)

    def _notify_received(self, record) -> None:
        email, name = self.contact(record)
        details = "\n".join(self.summary(record))
        payload = {"request_id": record.request_id, "request_type": self.request_type}
        self.outbox.enqueue(
            "request_received", email,
            f"Request Received - {record.request_id}",
            f"Dear {name or 'Valued Customer'},\n\nThank you! We've received your request and our team "
            f"will review it within 24 hours.\n\n{details}\n",
            payload,
        )
        self.outbox.enqueue(
            "admin_alert", self.settings.admin_email,
            f"New {self.request_type} request - {record.request_id}",
            details + "\n",
            payload,
        )


class BulkOrderIntake(RequestIntake):
    request_type = "bulk"
    collection_name = "bulkorderrequest"
    prefix = "BULK"
    statuses = ("pending", "contacted", "processing", "confirmed", "completed", "cancelled")
    model = BulkOrderRequest

    def validate(self, payload: BulkOrderCreate) -> None:
        missing = self._blank(payload, ("company_name", "contact_person", "phone", "product_type"))
        if missing:
            raise ValidationError("All required fields must be provided", {"missing_fields": missing})
        if payload.quantity < self.settings.min_bulk_quantity:
            raise ValidationError(
                f"Minimum bulk order quantity is {self.settings.min_bulk_quantity} pieces",
                {"quantity": payload.quantity},
            )

    def contact(self, record: BulkOrderRequest):
        return record.email, record.contact_person

    def summary(self, record: BulkOrderRequest) -> List[str]:
        lines = [
            f"Request ID: {record.request_id}",
            f"Company: {record.company_name}",
            f"Contact: {record.contact_person} ({record.phone})",
            f"Product Type: {record.product_type}",
            f"Quantity: {record.quantity} pieces",
        ]
        if record.delivery_date:
            lines.append(f"Expected Delivery: {record.delivery_date.date().isoformat()}")
        return lines


class CustomDesignIntake(RequestIntake):
    request_type = "custom"
    collection_name = "customdesignrequest"
    prefix = "CDR"
    reference_length = 6
    statuses = ("pending", "contacted", "in_progress", "completed", "cancelled")
    model = CustomDesignRequest

    def validate(self, payload: CustomDesignCreate) -> None:
        missing = self._blank(payload, ("phone_number", "design_description"))
        if missing:
            raise ValidationError("Phone number and design description are required", {"missing_fields": missing})

    def extra_fields(self, payload: CustomDesignCreate) -> Dict[str, Any]:
        return {"notes": f"Fabric Pattern: {payload.fabric_pattern}" if payload.fabric_pattern else None}

    def contact(self, record: CustomDesignRequest):
        return record.customer_email, record.customer_name

    def summary(self, record: CustomDesignRequest) -> List[str]:
        lines = [
            f"Request ID: {record.request_id}",
            f"Phone: {record.phone_number}",
            f"Design: {record.design_description}",
            f"Colors: {record.color_description or 'Not specified'}",
            f"Fabric: {record.fabric_preference or 'Not specified'}",
        ]
        if record.measurements:
            lines.append("Measurements: " + ", ".join(f"{k}={v}" for k, v in record.measurements.items()))
        return lines
