"""
Catalog boundary: products, their variants and variant stock.

Documents from the ``product`` and ``variant`` collections are parsed into
``Product`` / ``Variant`` records here, so the rest of the core never handles
raw documents. Stock is only written through ``reserve`` and ``release``.
"""
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog
from pymongo import ASCENDING
from pymongo.database import Database

from database import create_document, get_documents, serialize_document, to_object_id
from errors import NotFoundError, StockConflictError
from schemas import OrderItem, Product, Variant, line_id

logger = structlog.get_logger(__name__)


def ensure_indexes(database: Database) -> None:
    database["product"].create_index("slug", unique=True)
    database["variant"].create_index(
        [("product_id", ASCENDING), ("size", ASCENDING), ("color", ASCENDING),
         ("sleeve_type", ASCENDING), ("fit", ASCENDING)],
        unique=True,
    )
    database["order"].create_index("order_number", unique=True)
    database["cart"].create_index("session_id", unique=True)


class Catalog:
    def __init__(self, database: Database):
        self.database = database

    def _variants_for(self, product_id: str) -> List[Variant]:
        docs = get_documents("variant", {"product_id": product_id}, database=self.database)
        return [Variant.model_validate(serialize_document(d)) for d in docs]

    def _product(self, doc: Optional[Dict[str, Any]]) -> Optional[Product]:
        if not doc:
            return None
        data = serialize_document(doc)
        data["variants"] = self._variants_for(data["id"])
        return Product.model_validate(data)

    def get_product(self, product_id: str) -> Product:
        oid = to_object_id(product_id)
        product = self._product(self.database["product"].find_one({"_id": oid})) if oid else None
        if product is None:
            raise NotFoundError("Product not found", {"product_id": product_id})
        return product

    def get_product_by_slug(self, slug: str) -> Product:
        product = self._product(self.database["product"].find_one({"slug": slug}))
        if product is None:
            raise NotFoundError("Product not found", {"slug": slug})
        return product

    def list_products(self, category: Optional[str] = None, q: Optional[str] = None) -> List[Product]:
        query: Dict[str, Any] = {}
        if category:
            query["category"] = category
        if q:
            query["name"] = {"$regex": re.escape(q), "$options": "i"}
        return [self._product(d) for d in get_documents("product", query, database=self.database)]

    def get_variant(self, variant_id: str) -> Optional[Variant]:
        oid = to_object_id(variant_id)
        doc = self.database["variant"].find_one({"_id": oid}) if oid else None
        return Variant.model_validate(serialize_document(doc)) if doc else None

    def _conflict(self, item: OrderItem, available: int) -> Dict[str, Any]:
        return {
            "line_id": line_id((item.product_id, item.size, item.color, item.sleeve_type, item.fit)),
            "name": item.name,
            "requested": item.quantity,
            "available": available,
        }

    def reserve(self, items: Iterable[OrderItem]) -> None:
        """Take stock for every item or for none of them.

        Raises StockConflictError listing each item whose variant cannot cover
        the requested quantity. Quantities are never truncated here.
        """
        items = list(items)
        conflicts = []
        for item in items:
            variant = self.get_variant(item.variant_id) if item.variant_id else None
            available = variant.stock if variant else 0
            if available < item.quantity:
                conflicts.append(self._conflict(item, available))
        if conflicts:
            logger.info("stock_conflict", items=conflicts)
            raise StockConflictError("Insufficient stock", conflicts)

        taken: List[Tuple[OrderItem, Any]] = []
        for item in items:
            oid = to_object_id(item.variant_id)
            result = self.database["variant"].update_one(
                {"_id": oid, "stock": {"$gte": item.quantity}},
                {"$inc": {"stock": -item.quantity}},
            )
            if result.modified_count != 1:
                # Lost a race with another checkout: give back what was taken
                self._give_back(taken)
                variant = self.get_variant(item.variant_id)
                conflict = self._conflict(item, variant.stock if variant else 0)
                logger.info("stock_conflict", items=[conflict])
                raise StockConflictError("Insufficient stock", [conflict])
            taken.append((item, oid))

    def _give_back(self, taken: Iterable[Tuple[OrderItem, Any]]) -> None:
        for item, oid in taken:
            self.database["variant"].update_one({"_id": oid}, {"$inc": {"stock": item.quantity}})

    def release(self, items: Iterable[OrderItem]) -> None:
        self._give_back(
            (item, to_object_id(item.variant_id)) for item in items if item.variant_id and to_object_id(item.variant_id)
        )


def _demo_products() -> List[Tuple[Product, List[Variant]]]:
    def images(slug: str) -> List[str]:
        return [f"https://images.placeholder.zuree.in/{slug}-{view}.jpg" for view in ("front", "back", "detail")]

    shirt = Product(
        name="Classic White Shirt",
        slug="classic-white-shirt",
        description="Crisp cotton shirt in short and full sleeve cuts.",
        price="1499",
        original_price="1999",
        category="men",
        subcategory="shirts",
        images=images("classic-white-shirt"),
        featured=True,
    )
    shirt_variants = [
        Variant(size=size, color="White", sleeve_type=sleeve, stock=stock)
        for sleeve, stocks in (("Short Sleeve", (10, 15, 12, 8)), ("Full Sleeve", (8, 12, 10, 0)))
        for size, stock in zip(["S", "M", "L", "XL"], stocks)
    ]

    kurta = Product(
        name="Handblock Cotton Kurta",
        slug="handblock-cotton-kurta",
        description="Hand block printed kurta in breathable cotton.",
        price="1299",
        category="women",
        subcategory="kurtas",
        images=images("handblock-cotton-kurta"),
    )
    kurta_variants = [
        Variant(size="S", color="Indigo", stock=6),
        Variant(size="M", color="Indigo", stock=4),
        Variant(size="L", color="Maroon", stock=5),
        Variant(size="XL", color="Maroon", stock=0),
    ]

    tee = Product(
        name="Everyday Cotton Tee",
        slug="everyday-cotton-tee",
        description="Soft and comfortable premium cotton t-shirt for everyday wear.",
        price="499",
        category="men",
        subcategory="t-shirts",
        images=images("everyday-cotton-tee"),
    )
    tee_variants = [
        Variant(size=size, color=color, stock=20)
        for color in ("Black", "Navy")
        for size in ("M", "L", "XL")
    ]
    return [(shirt, shirt_variants), (kurta, kurta_variants), (tee, tee_variants)]


def seed_catalog(database: Database, force: bool = False) -> Dict[str, Any]:
    existing = get_documents("product", {}, limit=1, database=database)
    if existing and not force:
        return {"seeded": False, "message": "Products already exist"}

    if force:
        database["product"].delete_many({})
        database["variant"].delete_many({})

    inserted = []
    for product, variants in _demo_products():
        product_id = create_document("product", product.model_dump(exclude={"id", "variants"}), database=database)
        for variant in variants:
            create_document("variant", variant.model_copy(update={"product_id": product_id}), database=database)
        inserted.append(product_id)

    logger.info("catalog_seeded", products=len(inserted))
    return {"seeded": True, "inserted": inserted}
