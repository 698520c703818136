"""
Checkout driver.

``CheckoutFlow`` is built per session from that session's cart and the order
manager. Cash-on-delivery orders finish at placement; gateway orders are
persisted as ``pending`` first and only clear the cart once the gateway
reports success.
"""
from decimal import Decimal
from typing import Optional, Protocol
from urllib.parse import urlencode

import structlog
from pydantic import BaseModel

from cart import CartStore
from errors import PaymentCancelled, PaymentError
from orders import OrderLifecycleManager
from schemas import Money, ShippingInfo

logger = structlog.get_logger(__name__)

SUCCESS_PATH = "/order-success"


class PaymentGateway(Protocol):
    def initiate_payment(self, amount: Decimal, reference: str) -> str:
        """Collect ``amount``; return the gateway transaction id.

        Raises PaymentCancelled when the shopper dismisses the gateway and
        PaymentError when it declines or cannot be reached.
        """
        ...


class CheckoutResult(BaseModel):
    order_number: str
    payment_method: str
    amount: Money
    payment_required: bool = False
    cart_cleared: bool = False
    transaction_id: Optional[str] = None
    redirect: Optional[str] = None


def success_redirect(order_number: str, payment_method: str, transaction_id: Optional[str] = None) -> str:
    params = {"orderNumber": order_number, "payment": payment_method}
    if transaction_id:
        params["transactionId"] = transaction_id
    return f"{SUCCESS_PATH}?{urlencode(params)}"


class CheckoutFlow:
    def __init__(self, cart: CartStore, orders: OrderLifecycleManager):
        self.cart = cart
        self.orders = orders

    def place_order(self, shipping: ShippingInfo, payment_method: str) -> CheckoutResult:
        order = self.orders.create_order(self.cart.items, shipping, payment_method)
        if order.payment_method == "cod":
            self.cart.clear()
            return CheckoutResult(
                order_number=order.order_number,
                payment_method="cod",
                amount=order.total_amount,
                cart_cleared=True,
                redirect=success_redirect(order.order_number, "cod"),
            )
        return CheckoutResult(
            order_number=order.order_number,
            payment_method="gateway",
            amount=order.total_amount,
            payment_required=True,
        )

    def payment_succeeded(self, order_number: str, transaction_id: str) -> CheckoutResult:
        order = self.orders.record_payment_success(order_number, transaction_id)
        self.cart.clear()
        return CheckoutResult(
            order_number=order.order_number,
            payment_method=order.payment_method,
            amount=order.total_amount,
            cart_cleared=True,
            transaction_id=transaction_id,
            redirect=success_redirect(order.order_number, order.payment_method, transaction_id),
        )

    def payment_failed(self, order_number: str, reason: Optional[str] = None) -> None:
        """Record the failure and raise PaymentError; the cart is kept for a retry."""
        self.orders.record_payment_failure(order_number, reason)
        raise PaymentError("Payment failed", {"order_number": order_number, "reason": reason})

    def payment_cancelled(self, order_number: str) -> CheckoutResult:
        order = self.orders.get_by_number(order_number)
        logger.info("payment_cancelled", order_number=order_number)
        return CheckoutResult(
            order_number=order.order_number,
            payment_method=order.payment_method,
            amount=order.total_amount,
            payment_required=True,
        )

    def pay(self, order_number: str, gateway: PaymentGateway) -> CheckoutResult:
        order = self.orders.get_by_number(order_number)
        try:
            transaction_id = gateway.initiate_payment(order.total_amount, order.order_number)
        except PaymentCancelled:
            return self.payment_cancelled(order_number)
        except PaymentError as e:
            # payment_failed records the failure and raises
            self.payment_failed(order_number, e.details if isinstance(e.details, str) else e.error)
        return self.payment_succeeded(order_number, transaction_id)
