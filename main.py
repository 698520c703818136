from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pymongo.database import Database

import database
from cart import CartRepository, CartStore
from catalog import Catalog, ensure_indexes, seed_catalog
from checkout import CheckoutFlow, CheckoutResult
from config import Settings, configure_logging, runtime_settings
from errors import DatabaseUnavailable, StoreError, ValidationError
from intake import BulkOrderIntake, CustomDesignIntake
from notifications import Mailer, NotificationOutbox, NotificationWorker, build_mailer
from orders import OrderLifecycleManager, order_response, utcnow
from pricing import compute_totals, display_totals
from schemas import (
    AddToCart,
    BulkOrderCreate,
    CartLineItem,
    CheckoutRequest,
    CustomDesignCreate,
    OrderStatusUpdate,
    PaymentFailure,
    PaymentSuccess,
    PricingOptions,
    QuantityUpdate,
    RequestUpdate,
    TrackOrderRequest,
)
from variants import DIMENSIONS, SelectionState, SelectValue, SetQuantity, describe, initial_state, reduce, resolve_variant

settings = runtime_settings()
configure_logging(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        ensure_indexes(database.db)
    yield


app = FastAPI(title="Zuree Store API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content=jsonable_encoder({"error": "Invalid request", "details": exc.errors()}),
    )


# ------------------------- Dependencies -------------------------
def get_db() -> Database:
    if database.db is None:
        raise DatabaseUnavailable("Check DATABASE_URL and DATABASE_NAME")
    return database.db


def get_settings() -> Settings:
    return settings


def get_clock() -> Callable[[], datetime]:
    return utcnow


def get_mailer(settings: Settings = Depends(get_settings)) -> Mailer:
    return build_mailer(settings)


def get_pricing(settings: Settings = Depends(get_settings)) -> PricingOptions:
    return PricingOptions(
        free_shipping_threshold=settings.free_shipping_threshold,
        flat_shipping_fee=settings.flat_shipping_fee,
        tax_rate=settings.tax_rate,
    )


def get_catalog(db: Database = Depends(get_db)) -> Catalog:
    return Catalog(db)


def get_outbox(db: Database = Depends(get_db)) -> NotificationOutbox:
    return NotificationOutbox(db)


def get_worker(db: Database = Depends(get_db), mailer: Mailer = Depends(get_mailer),
               settings: Settings = Depends(get_settings)) -> NotificationWorker:
    return NotificationWorker(db, mailer, settings.mail_from)


def get_orders(db: Database = Depends(get_db), catalog: Catalog = Depends(get_catalog),
               outbox: NotificationOutbox = Depends(get_outbox), pricing: PricingOptions = Depends(get_pricing),
               clock: Callable[[], datetime] = Depends(get_clock)) -> OrderLifecycleManager:
    return OrderLifecycleManager(db, catalog, outbox, pricing, clock)


def get_carts(db: Database = Depends(get_db)) -> CartRepository:
    return CartRepository(db)


def get_session_cart(x_session_id: str = Header(...), carts: CartRepository = Depends(get_carts)) -> CartStore:
    return carts.load(x_session_id)


def get_bulk_intake(db: Database = Depends(get_db), outbox: NotificationOutbox = Depends(get_outbox),
                    settings: Settings = Depends(get_settings),
                    clock: Callable[[], datetime] = Depends(get_clock)) -> BulkOrderIntake:
    return BulkOrderIntake(db, outbox, settings, clock)


def get_custom_intake(db: Database = Depends(get_db), outbox: NotificationOutbox = Depends(get_outbox),
                      settings: Settings = Depends(get_settings),
                      clock: Callable[[], datetime] = Depends(get_clock)) -> CustomDesignIntake:
    return CustomDesignIntake(db, outbox, settings, clock)


def cart_view(cart: CartStore, pricing: PricingOptions) -> Dict[str, Any]:
    totals = compute_totals(cart.items, pricing)
    return {
        "session_id": cart.session_id,
        "items": [{**item.model_dump(), "line_id": item.line_id} for item in cart.items],
        "item_count": cart.item_count,
        "totals": totals.model_dump(),
        "display": display_totals(totals),
    }


@app.get("/")
def read_root():
    return {"brand": "Zuree", "status": "running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }

    db = database.db
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_name"] = db.name if hasattr(db, 'name') else "✅ Connected"
            response["connection_status"] = "Connected"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
        else:
            response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"

    response["database_url"] = "✅ Set" if settings.database_url else "❌ Not Set"
    response["database_name"] = "✅ Set" if settings.database_name else "❌ Not Set"

    return response


# ------------------------- Products -------------------------
@app.get("/api/products")
def list_products(category: Optional[str] = None, q: Optional[str] = None,
                  catalog: Catalog = Depends(get_catalog)) -> List[Dict[str, Any]]:
    return [p.model_dump() for p in catalog.list_products(category, q)]


@app.get("/api/products/{slug}")
def get_product(slug: str, catalog: Catalog = Depends(get_catalog)) -> Dict[str, Any]:
    return catalog.get_product_by_slug(slug).model_dump()


@app.get("/api/products/{slug}/options")
def product_options(
    slug: str,
    color: Optional[str] = None,
    sleeve_type: Optional[str] = None,
    size: Optional[str] = None,
    fit: Optional[str] = None,
    quantity: int = 1,
    reset: str = Query("first", pattern="^(first|unset)$"),
    catalog: Catalog = Depends(get_catalog),
):
    variants = catalog.get_product_by_slug(slug).variants
    requested = {"color": color, "sleeve_type": sleeve_type, "size": size, "fit": fit}
    if any(requested.values()):
        state = SelectionState()
        for dim in DIMENSIONS:
            if requested[dim] is not None:
                state = reduce(variants, state, SelectValue(dimension=dim, value=requested[dim]), reset=reset)
    else:
        state = initial_state(variants)
    state = reduce(variants, state, SetQuantity(quantity=quantity))
    return describe(variants, state)


class SeedRequest(BaseModel):
    force: bool = False


@app.post("/api/seed")
def seed_products(payload: SeedRequest, db: Database = Depends(get_db)):
    return seed_catalog(db, payload.force)


# ------------------------- Cart -------------------------
@app.post("/api/cart", status_code=201)
def open_cart(carts: CartRepository = Depends(get_carts), pricing: PricingOptions = Depends(get_pricing)):
    return cart_view(carts.open_session(), pricing)


@app.get("/api/cart")
def read_cart(cart: CartStore = Depends(get_session_cart), pricing: PricingOptions = Depends(get_pricing)):
    return cart_view(cart, pricing)


@app.post("/api/cart/items")
def add_to_cart(payload: AddToCart, cart: CartStore = Depends(get_session_cart),
                carts: CartRepository = Depends(get_carts), catalog: Catalog = Depends(get_catalog),
                pricing: PricingOptions = Depends(get_pricing)):
    product = catalog.get_product_by_slug(payload.product_slug)
    selection = {"color": payload.color, "sleeve_type": payload.sleeve_type, "size": payload.size, "fit": payload.fit}
    variant = resolve_variant(product.variants, selection)
    if variant is None:
        raise ValidationError("Selected combination is not available", selection)
    if variant.stock < 1:
        raise ValidationError("Selected combination is out of stock", selection)
    cart.add_item(CartLineItem(
        product_id=product.id,
        variant_id=variant.id,
        name=product.name,
        slug=product.slug,
        unit_price=product.price,
        image=product.images[0] if product.images else None,
        size=payload.size,
        color=payload.color,
        sleeve_type=payload.sleeve_type,
        fit=payload.fit,
        quantity=payload.quantity,
        stock=variant.stock,
    ))
    carts.save(cart)
    return cart_view(cart, pricing)


@app.patch("/api/cart/items/{line_id}")
def update_cart_item(line_id: str, payload: QuantityUpdate, cart: CartStore = Depends(get_session_cart),
                     carts: CartRepository = Depends(get_carts), pricing: PricingOptions = Depends(get_pricing)):
    cart.update_quantity(line_id, payload.quantity)
    carts.save(cart)
    return cart_view(cart, pricing)


@app.delete("/api/cart/items/{line_id}")
def remove_cart_item(line_id: str, cart: CartStore = Depends(get_session_cart),
                     carts: CartRepository = Depends(get_carts), pricing: PricingOptions = Depends(get_pricing)):
    cart.remove_item(line_id)
    carts.save(cart)
    return cart_view(cart, pricing)


@app.delete("/api/cart")
def clear_cart(cart: CartStore = Depends(get_session_cart), carts: CartRepository = Depends(get_carts),
               pricing: PricingOptions = Depends(get_pricing)):
    cart.clear()
    carts.save(cart)
    return cart_view(cart, pricing)


# ------------------------- Checkout -------------------------
@app.post("/api/checkout", response_model=CheckoutResult)
def checkout(payload: CheckoutRequest, cart: CartStore = Depends(get_session_cart),
             carts: CartRepository = Depends(get_carts), orders: OrderLifecycleManager = Depends(get_orders)):
    result = CheckoutFlow(cart, orders).place_order(payload.shipping_address, payload.payment_method)
    carts.save(cart)
    return result


@app.post("/api/checkout/{order_number}/payment-success", response_model=CheckoutResult)
def payment_success(order_number: str, payload: PaymentSuccess, cart: CartStore = Depends(get_session_cart),
                    carts: CartRepository = Depends(get_carts), orders: OrderLifecycleManager = Depends(get_orders)):
    result = CheckoutFlow(cart, orders).payment_succeeded(order_number, payload.transaction_id)
    carts.save(cart)
    return result


@app.post("/api/checkout/{order_number}/payment-failure")
def payment_failure(order_number: str, payload: PaymentFailure, cart: CartStore = Depends(get_session_cart),
                    orders: OrderLifecycleManager = Depends(get_orders)):
    CheckoutFlow(cart, orders).payment_failed(order_number, payload.reason)


@app.post("/api/checkout/{order_number}/payment-cancel", response_model=CheckoutResult)
def payment_cancel(order_number: str, cart: CartStore = Depends(get_session_cart),
                   orders: OrderLifecycleManager = Depends(get_orders)):
    return CheckoutFlow(cart, orders).payment_cancelled(order_number)


# ------------------------- Orders -------------------------
@app.post("/api/orders/track")
def track_order(payload: TrackOrderRequest, orders: OrderLifecycleManager = Depends(get_orders)):
    order = orders.track(payload.order_number, payload.email)
    return {"success": True, "order": order_response(order)}


@app.get("/api/admin/orders")
def admin_list_orders(status: Optional[str] = None, page: int = 1, limit: int = 10,
                      orders: OrderLifecycleManager = Depends(get_orders)):
    return {"success": True, **orders.list_orders(status, page, limit)}


@app.get("/api/admin/orders/{order_id}")
def admin_get_order(order_id: str, orders: OrderLifecycleManager = Depends(get_orders)):
    return {"success": True, "order": order_response(orders.get_order(order_id))}


@app.patch("/api/admin/orders/{order_id}/status")
def admin_update_order_status(order_id: str, payload: OrderStatusUpdate, background_tasks: BackgroundTasks,
                              orders: OrderLifecycleManager = Depends(get_orders),
                              worker: NotificationWorker = Depends(get_worker)):
    order = orders.update_status(order_id, payload)
    background_tasks.add_task(worker.drain)
    return {"success": True, "order": order_response(order), "message": "Order status updated successfully"}


# ------------------------- Bulk orders -------------------------
@app.post("/api/bulk-order", status_code=201)
def create_bulk_order(payload: BulkOrderCreate, background_tasks: BackgroundTasks,
                      intake: BulkOrderIntake = Depends(get_bulk_intake),
                      worker: NotificationWorker = Depends(get_worker)):
    record = intake.create(payload)
    background_tasks.add_task(worker.drain)
    return {"success": True, "request": record.model_dump()}


@app.get("/api/admin/bulk-orders")
def admin_list_bulk_orders(status: Optional[str] = None, priority: Optional[str] = None, page: int = 1,
                           limit: int = 10, intake: BulkOrderIntake = Depends(get_bulk_intake)):
    return {"success": True, **intake.list_requests(status, priority, page, limit)}


@app.get("/api/admin/bulk-orders/{request_id}")
def admin_get_bulk_order(request_id: str, intake: BulkOrderIntake = Depends(get_bulk_intake)):
    return {"success": True, "request": intake.get(request_id).model_dump()}


@app.patch("/api/admin/bulk-orders/{request_id}")
def admin_update_bulk_order(request_id: str, payload: RequestUpdate, background_tasks: BackgroundTasks,
                            intake: BulkOrderIntake = Depends(get_bulk_intake),
                            worker: NotificationWorker = Depends(get_worker)):
    record = intake.update(request_id, payload)
    background_tasks.add_task(worker.drain)
    return {"success": True, "request": record.model_dump()}


# ------------------------- Custom designs -------------------------
@app.post("/api/custom-design", status_code=201)
def create_custom_design(payload: CustomDesignCreate, background_tasks: BackgroundTasks,
                         intake: CustomDesignIntake = Depends(get_custom_intake),
                         worker: NotificationWorker = Depends(get_worker)):
    record = intake.create(payload)
    background_tasks.add_task(worker.drain)
    return {"success": True, "request": record.model_dump()}


@app.get("/api/admin/custom-designs")
def admin_list_custom_designs(status: Optional[str] = None, priority: Optional[str] = None, page: int = 1,
                              limit: int = 10, intake: CustomDesignIntake = Depends(get_custom_intake)):
    return {"success": True, **intake.list_requests(status, priority, page, limit)}


@app.get("/api/admin/custom-designs/{request_id}")
def admin_get_custom_design(request_id: str, intake: CustomDesignIntake = Depends(get_custom_intake)):
    return {"success": True, "request": intake.get(request_id).model_dump()}


@app.patch("/api/admin/custom-designs/{request_id}")
def admin_update_custom_design(request_id: str, payload: RequestUpdate, background_tasks: BackgroundTasks,
                               intake: CustomDesignIntake = Depends(get_custom_intake),
                               worker: NotificationWorker = Depends(get_worker)):
    record = intake.update(request_id, payload)
    background_tasks.add_task(worker.drain)
    return {"success": True, "request": record.model_dump()}


if __name__ == "__main__":
    import uvicorn
    port = settings.port
    uvicorn.run(app, host="0.0.0.0", port=port)
