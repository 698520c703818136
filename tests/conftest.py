from datetime import datetime, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

import main
from catalog import Catalog, ensure_indexes, seed_catalog
from config import Settings
from errors import NotificationError
from notifications import LogMailer, NotificationOutbox
from orders import OrderLifecycleManager
from schemas import CartLineItem, ShippingInfo
from variants import resolve_variant

FIXED_NOW = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def db():
    database = mongomock.MongoClient().zuree_test
    ensure_indexes(database)
    return database


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def settings():
    return Settings(admin_email="admin@zuree.in")


@pytest.fixture
def catalog(db):
    seed_catalog(db)
    return Catalog(db)


@pytest.fixture
def outbox(db):
    return NotificationOutbox(db)


@pytest.fixture
def orders(db, catalog, outbox, clock):
    return OrderLifecycleManager(db, catalog, outbox, clock=clock)


@pytest.fixture
def shipping():
    return ShippingInfo(
        full_name="Asha Verma",
        email="asha@example.com",
        phone="9876543210",
        address="12 MG Road",
        city="Jaipur",
        state="Rajasthan",
        pincode="302001",
    )


@pytest.fixture
def line_for(catalog):
    """Build a cart line for a seeded product from a variant selection."""
    def build(slug, quantity=1, **selection):
        product = catalog.get_product_by_slug(slug)
        variant = resolve_variant(product.variants, selection)
        return CartLineItem(
            product_id=product.id,
            variant_id=variant.id,
            name=product.name,
            slug=product.slug,
            unit_price=product.price,
            size=variant.size,
            color=variant.color,
            sleeve_type=variant.sleeve_type,
            fit=variant.fit,
            quantity=quantity,
            stock=variant.stock,
        )
    return build


class FailingMailer:
    def send(self, message):
        raise NotificationError("Mail delivery failed", "SMTP down")


@pytest.fixture
def mailer():
    return LogMailer()


@pytest.fixture
def failing_mailer():
    return FailingMailer()


@pytest.fixture
def client(db, clock, settings, mailer):
    main.app.dependency_overrides[main.get_db] = lambda: db
    main.app.dependency_overrides[main.get_clock] = lambda: clock
    main.app.dependency_overrides[main.get_settings] = lambda: settings
    main.app.dependency_overrides[main.get_mailer] = lambda: mailer
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()
