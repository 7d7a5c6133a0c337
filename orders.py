"""
Orders: checkout from the cart, owner/admin reads and status transitions.

Checkout validates each cart line against the product's current stock but
does not decrement stock_quantity.
"""

import logging
import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pymongo import ASCENDING, DESCENDING

from cart import CENTS, cart_lines, clear_cart, has_stock, to_decimal
from catalog import is_active
from database import parse_object_id
from errors import BadRequestError, ForbiddenError, InsufficientStockError, NotFoundError, ValidationError
from schemas import Order, OrderItem, OrderStatus, Principal

logger = logging.getLogger(__name__)

COLLECTION = "order"

TRANSITIONS = {
    "confirm": Order.confirm_order,
    "ship": Order.ship_order,
    "deliver": Order.deliver_order,
}


def order_out(order: Order) -> dict:
    return order.model_dump(by_alias=True)


def place_order(db, user_id: str, shipping_address: str) -> Order:
    lines = cart_lines(db, user_id)
    if not lines:
        raise ValidationError("Cart is empty")

    items: List[OrderItem] = []
    total = Decimal("0.00")
    for line in lines:
        product = line["product"]
        if not is_active(product):
            raise NotFoundError(f"Product not found: {line['product_id']}")
        if not has_stock(product, line["quantity"]):
            raise InsufficientStockError(f"Insufficient stock for {product['name']}")
        price = to_decimal(product["price"])
        total += price * line["quantity"]
        items.append(OrderItem(
            product_id=line["product_id"],
            product_name=product["name"],
            quantity=line["quantity"],
            price=float(price),
        ))

    order = Order(
        user_id=user_id,
        total_amount=float(total.quantize(CENTS)),
        shipping_address=shipping_address,
        items=items,
    )
    order.id = str(db[COLLECTION].insert_one(order.to_document()).inserted_id)
    clear_cart(db, user_id)
    logger.info("order %s placed by %s: %d lines, total %s", order.id, user_id, len(items), order.total_amount)
    return order


def find_order(db, order_id: str) -> Order:
    oid = parse_object_id(order_id)
    doc = db[COLLECTION].find_one({"_id": oid}) if oid is not None else None
    if doc is None:
        raise NotFoundError("Order not found")
    return Order.from_document(doc)


def get_order(db, principal: Principal, order_id: str) -> Order:
    order = find_order(db, order_id)
    if order.user_id != principal.id and not principal.is_admin:
        raise ForbiddenError("Unauthorized")
    return order


def save_order(db, order: Order):
    db[COLLECTION].update_one(
        {"_id": parse_object_id(order.id)},
        {"$set": {
            "status": order.status.value,
            "shipped_date": order.shipped_date,
            "delivered_date": order.delivered_date,
        }},
    )


def transition_order(db, order_id: str, action: str) -> Order:
    mutator = TRANSITIONS.get(action)
    if mutator is None:
        raise BadRequestError(f"Unknown order action: {action}")
    order = find_order(db, order_id)
    previous = order.status
    mutator(order)
    save_order(db, order)
    logger.info("order %s: %s -> %s", order.id, previous.value, order.status.value)
    return order


def cancel_order(db, principal: Principal, order_id: str) -> Order:
    order = get_order(db, principal, order_id)
    if not order.can_be_cancelled():
        logger.warning("order %s: cancel refused in status %s", order.id, order.status.value)
        raise ValidationError("Order cannot be cancelled")
    order.cancel_order()
    save_order(db, order)
    logger.info("order %s cancelled by %s", order.id, principal.id)
    return order


NEWEST_FIRST = [("order_date", DESCENDING), ("_id", DESCENDING)]


def list_user_orders(db, user_id: str) -> List[Order]:
    cursor = db[COLLECTION].find({"user_id": user_id}).sort(NEWEST_FIRST)
    return [Order.from_document(doc) for doc in cursor]


def page_user_orders(db, user_id: str, page: int = 0, size: int = 10) -> dict:
    """One page of the user's orders, newest first, with paging totals."""
    if page < 0 or size < 1:
        raise BadRequestError("Invalid page request")
    query = {"user_id": user_id}
    total = db[COLLECTION].count_documents(query)
    cursor = db[COLLECTION].find(query).sort(NEWEST_FIRST).skip(page * size).limit(size)
    return {
        "orders": [Order.from_document(doc) for doc in cursor],
        "currentPage": page,
        "totalItems": total,
        "totalPages": math.ceil(total / size),
    }


def _as_naive_utc(value: datetime) -> datetime:
    # stored dates are naive UTC
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def search_orders(
    db,
    status: Optional[OrderStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[Order]:
    query = {}
    if status is not None:
        query["status"] = status.value
    date_range = {}
    if start is not None:
        date_range["$gte"] = _as_naive_utc(start)
    if end is not None:
        date_range["$lte"] = _as_naive_utc(end)
    if date_range:
        query["order_date"] = date_range
    cursor = db[COLLECTION].find(query).sort([("order_date", ASCENDING), ("_id", ASCENDING)])
    return [Order.from_document(doc) for doc in cursor]


def count_user_orders(db, user_id: str) -> int:
    return db[COLLECTION].count_documents({"user_id": user_id})


def total_spent(db, user_id: str) -> Decimal:
    cursor = db[COLLECTION].find(
        {"user_id": user_id, "status": {"$ne": OrderStatus.CANCELLED.value}},
        {"total_amount": 1},
    )
    total = sum((to_decimal(doc["total_amount"]) for doc in cursor), Decimal("0.00"))
    return total.quantize(CENTS)
