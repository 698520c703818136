"""
Session cart.

A ``CartStore`` is created when a browsing session starts and handed to
whatever drives checkout; it is never a module-level singleton. Line items
keep the price and stock seen when they were added: the cart is a
price-frozen quote that checkout re-validates against live stock.
"""
import uuid
from decimal import Decimal
from typing import List, Optional, Union

import structlog
from pymongo.database import Database

from errors import NotFoundError
from schemas import Cart, CartLineItem, LineKey, line_id

logger = structlog.get_logger(__name__)

KeyLike = Union[LineKey, str]


class CartStore:
    def __init__(self, session_id: str, items: Optional[List[CartLineItem]] = None):
        self.session_id = session_id
        self._items: List[CartLineItem] = list(items or [])

    @property
    def items(self) -> List[CartLineItem]:
        return list(self._items)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self._items)

    @property
    def subtotal(self) -> Decimal:
        return sum((item.unit_price * item.quantity for item in self._items), Decimal("0"))

    def is_empty(self) -> bool:
        return not self._items

    def _index(self, key: KeyLike) -> Optional[int]:
        wanted = key if isinstance(key, str) else line_id(key)
        for i, item in enumerate(self._items):
            if item.line_id == wanted:
                return i
        return None

    def get(self, key: KeyLike) -> Optional[CartLineItem]:
        i = self._index(key)
        return self._items[i] if i is not None else None

    def add_item(self, item: CartLineItem) -> Optional[CartLineItem]:
        """Add ``item`` or grow the matching line; quantity is clamped to stock, never rejected."""
        i = self._index(item.key)
        if i is None:
            quantity = min(item.quantity, item.stock)
            if quantity < 1:
                logger.info("cart_add_skipped_no_stock", session_id=self.session_id, line_id=item.line_id)
                return None
            line = item.model_copy(update={"quantity": quantity})
            self._items.append(line)
        else:
            existing = self._items[i]
            # The newer stock snapshot wins
            ceiling = item.stock
            quantity = min(existing.quantity + item.quantity, ceiling)
            if quantity < 1:
                del self._items[i]
                return None
            line = existing.model_copy(update={"quantity": quantity, "stock": ceiling})
            self._items[i] = line
        return line

    def update_quantity(self, key: KeyLike, quantity: int) -> Optional[CartLineItem]:
        if quantity <= 0:
            self.remove_item(key)
            return None
        i = self._index(key)
        if i is None:
            return None
        line = self._items[i]
        if line.stock < 1:
            del self._items[i]
            return None
        line = line.model_copy(update={"quantity": min(quantity, line.stock)})
        self._items[i] = line
        return line

    def remove_item(self, key: KeyLike) -> None:
        i = self._index(key)
        if i is not None:
            del self._items[i]

    def clear(self) -> None:
        self._items = []

    def to_model(self) -> Cart:
        return Cart(session_id=self.session_id, items=self._items)


class CartRepository:
    """One cart document per session id in the ``cart`` collection."""

    def __init__(self, database: Database):
        self.collection = database["cart"]

    def open_session(self) -> CartStore:
        cart = CartStore(uuid.uuid4().hex)
        self.save(cart)
        return cart

    def load(self, session_id: str) -> CartStore:
        doc = self.collection.find_one({"session_id": session_id})
        if not doc:
            raise NotFoundError("Cart session not found", {"session_id": session_id})
        model = Cart.model_validate(doc)
        return CartStore(model.session_id, model.items)

    def save(self, cart: CartStore) -> None:
        data = cart.to_model().model_dump()
        self.collection.update_one({"session_id": cart.session_id}, {"$set": data}, upsert=True)

    def discard(self, session_id: str) -> None:
        self.collection.delete_one({"session_id": session_id})
