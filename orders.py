"""
Order lifecycle.

An order is created from a cart snapshot, shipping details and a payment
method, then moves along two independent axes: fulfilment ``status`` and
``payment_status``. Line items and the shipping snapshot are written once, at
creation; later updates only ever touch status, payment status, tracking
number, notes and the gateway transaction id.
"""
import math
import secrets
import string
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Sequence

import structlog
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

from catalog import Catalog
from database import create_document, serialize_document, to_object_id
from errors import NotFoundError, ValidationError
from notifications import NotificationOutbox, render_order_status
from pricing import compute_totals
from schemas import (
    ORDER_STATUSES,
    PAYMENT_STATUSES,
    CartLineItem,
    Order,
    OrderItem,
    OrderStatusUpdate,
    PricingOptions,
    ShippingInfo,
    StatusNotification,
)

logger = structlog.get_logger(__name__)

PAYMENT_METHODS = ("cod", "gateway")

# Moving into one of these statuses emails the customer
NOTIFY_STATUSES = ("processing", "shipped", "delivered", "cancelled")

# Moving into one of these gives the order's stock back to its variants
RESTOCK_STATUSES = ("cancelled", "returned")

FINAL_STATUSES = ("cancelled", "returned")

PAYMENT_MOVES = {
    "pending": ("paid", "failed"),
    "failed": ("pending", "paid"),
    "paid": ("refunded",),
    "refunded": (),
}

DELIVERY_OFFSETS = {"processing": 3, "shipped": 2}
DEFAULT_DELIVERY_OFFSET = 5

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_reference(prefix: str, length: int = 9, now: Optional[datetime] = None) -> str:
    """Human-quotable id such as ``ORD-1760745600000-K3J9Q2ZXA``."""
    millis = int((now or utcnow()).timestamp() * 1000)
    suffix = "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(length))
    return f"{prefix}-{millis}-{suffix}"


def format_day(day: date) -> str:
    return f"{day.day} {day.strftime('%B %Y')}"


def estimated_delivery(status: str, today: date) -> str:
    """Display-only delivery estimate sent with status emails."""
    if status == "delivered":
        return "Delivered"
    return format_day(today + timedelta(days=DELIVERY_OFFSETS.get(status, DEFAULT_DELIVERY_OFFSET)))


def order_response(order: Order) -> Dict[str, Any]:
    data = order.model_dump()
    data["item_count"] = len(order.items)
    data["customer"] = {"name": order.shipping_address.full_name, "email": order.shipping_address.email}
    return data


class OrderLifecycleManager:
    def __init__(self, database: Database, catalog: Catalog, outbox: NotificationOutbox,
                 pricing: Optional[PricingOptions] = None, clock: Callable[[], datetime] = utcnow):
        self.collection = database["order"]
        self.database = database
        self.catalog = catalog
        self.outbox = outbox
        self.pricing = pricing or PricingOptions()
        self.clock = clock

    # ------------------------- Reads -------------------------
    def _load(self, query: Dict[str, Any], missing: Dict[str, Any]) -> Order:
        doc = self.collection.find_one(query)
        if not doc:
            raise NotFoundError("Order not found", missing)
        return Order.model_validate(serialize_document(doc))

    def get_order(self, order_id: str) -> Order:
        oid = to_object_id(order_id)
        if oid is None:
            raise NotFoundError("Order not found", {"order_id": order_id})
        return self._load({"_id": oid}, {"order_id": order_id})

    def get_by_number(self, order_number: str) -> Order:
        return self._load({"order_number": order_number}, {"order_number": order_number})

    def track(self, order_number: str, email: str) -> Order:
        order = self.get_by_number(order_number)
        if order.shipping_address.email.strip().lower() != email.strip().lower():
            raise NotFoundError("Order not found", {"order_number": order_number})
        return order

    def list_orders(self, status: Optional[str] = None, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        page, limit = max(page, 1), max(min(limit, 100), 1)
        query: Dict[str, Any] = {}
        if status and status != "all":
            query["status"] = status
        total = self.collection.count_documents(query)
        cursor = self.collection.find(query).sort("created_at", DESCENDING).skip((page - 1) * limit).limit(limit)
        orders = [order_response(Order.model_validate(serialize_document(d))) for d in cursor]
        return {
            "orders": orders,
            "pagination": {"page": page, "limit": limit, "total": total, "total_pages": math.ceil(total / limit)},
        }

    # ------------------------- Creation -------------------------
    def create_order(self, items: Sequence[CartLineItem], shipping: ShippingInfo, payment_method: str) -> Order:
        """Validate, take stock and persist an immutable order snapshot.

        Fails fast with ValidationError (empty cart, blank shipping field,
        unknown payment method) or StockConflictError; nothing is persisted
        in either case.
        """
        if not items:
            raise ValidationError("Order must contain at least one item")
        missing = shipping.missing_fields()
        if missing:
            raise ValidationError("Shipping details are incomplete", {"missing_fields": missing})
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError("Invalid payment method", {"allowed": list(PAYMENT_METHODS)})

        order_items = [OrderItem.model_validate(line.model_dump(exclude={"stock"})) for line in items]
        totals = compute_totals(order_items, self.pricing)
        now = self.clock()
        order = Order(
            order_number=generate_reference("ORD", now=now),
            items=order_items,
            shipping_address=shipping,
            subtotal=totals.subtotal,
            shipping=totals.shipping,
            tax=totals.tax,
            total_amount=totals.total,
            payment_method=payment_method,
            order_date=now,
        )

        self.catalog.reserve(order_items)
        try:
            order_id = create_document("order", order, database=self.database)
        except PyMongoError:
            self.catalog.release(order_items)
            logger.exception("order_persist_failed", order_number=order.order_number)
            raise

        logger.info("order_created", order_number=order.order_number, payment_method=payment_method,
                    total=str(order.total_amount), items=len(order_items))
        return self.get_order(order_id)

    # ------------------------- Payment -------------------------
    def record_payment_success(self, order_number: str, transaction_id: str) -> Order:
        order = self.get_by_number(order_number)
        if order.payment_method != "gateway":
            raise ValidationError("Order is not a gateway payment", {"order_number": order_number})
        if order.payment_status == "paid":
            return order
        self._check_payment_move(order.payment_status, "paid")
        if order.status in FINAL_STATUSES:
            logger.warning("payment_after_final_status", order_number=order_number, status=order.status,
                           transaction_id=transaction_id, action="refund required")
        self.collection.update_one(
            {"order_number": order_number, "payment_status": order.payment_status},
            {"$set": {"payment_status": "paid", "transaction_id": transaction_id, "updated_at": self.clock()}},
        )
        logger.info("payment_succeeded", order_number=order_number, transaction_id=transaction_id)
        return self.get_by_number(order_number)

    def record_payment_failure(self, order_number: str, reason: Optional[str] = None) -> Order:
        order = self.get_by_number(order_number)
        if order.payment_status == "pending":
            self.collection.update_one(
                {"order_number": order_number, "payment_status": "pending"},
                {"$set": {"payment_status": "failed", "updated_at": self.clock()}},
            )
        logger.warning("payment_failed", order_number=order_number, reason=reason)
        return self.get_by_number(order_number)

    # ------------------------- Admin updates -------------------------
    def _check_status_move(self, current: str, new: str) -> None:
        if new not in ORDER_STATUSES:
            raise ValidationError("Invalid order status", {"status": new, "allowed": list(ORDER_STATUSES)})
        if new == current:
            return
        if current in FINAL_STATUSES or (current == "delivered" and new != "returned"):
            raise ValidationError("Order status cannot change", {"from": current, "to": new})

    def _check_payment_move(self, current: str, new: str) -> None:
        if new not in PAYMENT_STATUSES:
            raise ValidationError("Invalid payment status", {"payment_status": new, "allowed": list(PAYMENT_STATUSES)})
        if new != current and new not in PAYMENT_MOVES.get(current, ()):
            raise ValidationError("Payment status cannot change", {"from": current, "to": new})

    def update_status(self, order_id: str, update: OrderStatusUpdate) -> Order:
        order = self.get_order(order_id)
        if update.status is not None:
            self._check_status_move(order.status, update.status)
        if update.payment_status is not None:
            self._check_payment_move(order.payment_status, update.payment_status)

        changes: Dict[str, Any] = {
            k: v for k, v in update.model_dump().items() if v is not None
        }
        changes["updated_at"] = self.clock()
        restock = (
            update.status in RESTOCK_STATUSES and not order.stock_restored
            and update.status != order.status
        )
        # The write only lands on the state the moves were checked against
        query: Dict[str, Any] = {
            "_id": to_object_id(order_id),
            "status": order.status,
            "payment_status": order.payment_status,
        }
        if restock:
            changes["stock_restored"] = True
            query["stock_restored"] = False

        result = self.collection.update_one(query, {"$set": changes})
        if result.matched_count != 1:
            logger.info("order_update_retried", order_number=order.order_number)
            return self.update_status(order_id, update)
        if restock:
            self.catalog.release(order.items)
            logger.info("order_restocked", order_number=order.order_number, status=update.status)

        updated = self.get_order(order_id)
        logger.info("order_status_updated", order_number=order.order_number,
                    status=updated.status, payment_status=updated.payment_status)

        if update.status is not None and update.status != order.status and update.status in NOTIFY_STATUSES:
            self._notify_status(updated)
        return updated

    def status_notification(self, order: Order) -> StatusNotification:
        return StatusNotification(
            customer_email=order.shipping_address.email,
            customer_name=order.shipping_address.full_name,
            order_number=order.order_number,
            status=order.status,
            tracking_number=order.tracking_number,
            estimated_delivery=estimated_delivery(order.status, self.clock().date()),
        )

    def _notify_status(self, order: Order) -> Optional[str]:
        payload = self.status_notification(order).model_dump()
        rendered = render_order_status(payload)
        return self.outbox.enqueue("order_status", payload["customer_email"], rendered["subject"],
                                   rendered["body"], payload)
