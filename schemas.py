"""
Database Schemas for the Zuree store

Each top-level Pydantic model corresponds to a MongoDB collection (lowercased
class name): Product -> "product", Variant -> "variant", Cart -> "cart",
Order -> "order", BulkOrderRequest -> "bulkorderrequest",
CustomDesignRequest -> "customdesignrequest", Notification -> "notification".
The remaining models are embedded records or request/response bodies.

Money is a Decimal serialized as a string so stored and returned amounts keep
their full precision.
"""
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, NamedTuple, Optional

from pydantic import BaseModel, EmailStr, Field, PlainSerializer

Money = Annotated[Decimal, PlainSerializer(str, return_type=str)]

PaymentMethod = Literal["cod", "gateway"]
Priority = Literal["low", "normal", "high", "urgent"]

ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled", "returned")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")
PRIORITIES = ("low", "normal", "high", "urgent")


# ------------------------- Catalog -------------------------
class Variant(BaseModel):
    id: Optional[str] = None
    product_id: Optional[str] = None
    size: str = Field(..., description="Size label, e.g. S, M, L, XL")
    color: str
    sleeve_type: Optional[str] = Field(None, description="e.g. Short Sleeve, Full Sleeve")
    fit: Optional[str] = Field(None, description="e.g. Regular Fit, Slim Fit")
    stock: int = Field(0, ge=0)
    sku: Optional[str] = None


class Product(BaseModel):
    id: Optional[str] = None
    name: str = Field(..., description="Product name")
    slug: str = Field(..., description="URL-safe identifier")
    description: str = ""
    price: Money = Field(..., ge=0)
    original_price: Optional[Money] = Field(None, ge=0, description="Pre-discount price")
    in_stock: bool = True
    category: str = Field(..., description="Category slug")
    subcategory: Optional[str] = None
    images: List[str] = Field(default_factory=list, description="Image URLs, primary first")
    featured: bool = False
    variants: List[Variant] = Field(default_factory=list)


# ------------------------- Cart -------------------------
class LineKey(NamedTuple):
    product_id: str
    size: str
    color: str
    sleeve_type: Optional[str]
    fit: Optional[str]


class CartLineItem(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    name: str
    slug: str = ""
    unit_price: Money = Field(..., ge=0, description="Price snapshot taken when added")
    image: Optional[str] = None
    size: str
    color: str
    sleeve_type: Optional[str] = None
    fit: Optional[str] = None
    quantity: int = Field(1, ge=1)
    stock: int = Field(..., ge=0, description="Variant stock snapshot, the quantity ceiling")

    @property
    def key(self) -> LineKey:
        return LineKey(self.product_id, self.size, self.color, self.sleeve_type, self.fit)

    @property
    def line_id(self) -> str:
        return line_id(self.key)


def line_id(key: LineKey) -> str:
    return "-".join(part or "" for part in key)


class Cart(BaseModel):
    session_id: str
    items: List[CartLineItem] = Field(default_factory=list)


class AddToCart(BaseModel):
    product_slug: str
    size: str
    color: str
    sleeve_type: Optional[str] = None
    fit: Optional[str] = None
    quantity: int = Field(1, ge=1)


class QuantityUpdate(BaseModel):
    quantity: int


# ------------------------- Pricing -------------------------
class PricingOptions(BaseModel):
    free_shipping_threshold: Decimal = Decimal("999")
    flat_shipping_fee: Decimal = Decimal("99")
    tax_rate: Decimal = Decimal("0.18")


class Totals(BaseModel):
    subtotal: Money
    shipping: Money
    tax: Money
    total: Money


# ------------------------- Orders -------------------------
class ShippingInfo(BaseModel):
    full_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""
    country: str = "India"

    def missing_fields(self) -> List[str]:
        return [name for name, value in self.model_dump().items() if not value.strip()]


class OrderItem(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    name: str
    slug: str = ""
    unit_price: Money
    image: Optional[str] = None
    size: str
    color: str
    sleeve_type: Optional[str] = None
    fit: Optional[str] = None
    quantity: int = Field(..., ge=1)


class Order(BaseModel):
    id: Optional[str] = None
    order_number: str
    items: List[OrderItem]
    shipping_address: ShippingInfo
    subtotal: Money
    shipping: Money
    tax: Money
    total_amount: Money
    payment_method: PaymentMethod
    status: str = "pending"
    payment_status: str = "pending"
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    transaction_id: Optional[str] = None
    stock_restored: bool = False
    order_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderStatusUpdate(BaseModel):
    status: Optional[str] = None
    payment_status: Optional[str] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None


class CheckoutRequest(BaseModel):
    shipping_address: ShippingInfo
    payment_method: str = "cod"


class PaymentSuccess(BaseModel):
    transaction_id: str = Field(..., min_length=1)


class PaymentFailure(BaseModel):
    reason: Optional[str] = None


class TrackOrderRequest(BaseModel):
    order_number: str
    email: str


class StatusNotification(BaseModel):
    customer_email: str
    customer_name: str
    order_number: str
    status: str
    tracking_number: Optional[str] = None
    estimated_delivery: str


# ------------------------- Bulk / custom requests -------------------------
class BulkOrderCreate(BaseModel):
    company_name: str
    contact_person: str
    email: EmailStr
    phone: str
    product_type: str
    quantity: int
    description: Optional[str] = None
    delivery_date: Optional[datetime] = None


class BulkOrderRequest(BulkOrderCreate):
    id: Optional[str] = None
    request_id: str
    status: str = "pending"
    priority: Priority = "normal"
    estimated_price: Optional[Money] = None
    admin_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CustomDesignCreate(BaseModel):
    customer_name: Optional[str] = None
    customer_email: Optional[EmailStr] = None
    phone_number: str
    design_description: str
    color_description: Optional[str] = None
    fabric_preference: Optional[str] = None
    fabric_pattern: Optional[str] = None
    measurements: Optional[Dict[str, Any]] = Field(None, description="Opaque measurement fields from the estimator")
    image_url: Optional[str] = None


class CustomDesignRequest(CustomDesignCreate):
    id: Optional[str] = None
    request_id: str
    status: str = "pending"
    priority: Priority = "normal"
    estimated_price: Optional[Money] = None
    admin_notes: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RequestUpdate(BaseModel):
    status: Optional[str] = None
    priority: Optional[str] = None
    estimated_price: Optional[Money] = Field(None, ge=0)
    admin_notes: Optional[str] = None
    send_status_email: bool = False


# ------------------------- Notifications -------------------------
class Notification(BaseModel):
    id: Optional[str] = None
    kind: str = Field(..., description="order_status | request_status | request_received | admin_alert")
    recipient: str
    subject: str
    body: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    state: Literal["queued", "sending", "sent", "failed"] = "queued"
    attempts: int = 0
    error: Optional[str] = None
    created_at: Optional[datetime] = None
