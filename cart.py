"""
Shopping cart with stock checks.

Quantities are only checked against the product's current stock_quantity;
nothing is reserved, and concurrent writes to the same row are last-write-wins.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List

from catalog import find_active_product, find_product, product_out
from database import create_document, parse_object_id
from errors import ForbiddenError, InsufficientStockError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

COLLECTION = "cart_item"
CENTS = Decimal("0.01")


def to_decimal(value) -> Decimal:
    return Decimal(str(value))


def has_stock(product: dict, quantity: int) -> bool:
    return quantity <= product.get("stock_quantity", 0)


def _owned_item(db, user_id: str, item_id: str) -> dict:
    oid = parse_object_id(item_id)
    item = db[COLLECTION].find_one({"_id": oid}) if oid is not None else None
    if item is None:
        raise NotFoundError("Cart item not found")
    if item["user_id"] != user_id:
        logger.warning("user %s tried to touch cart item %s of %s", user_id, item_id, item["user_id"])
        raise ForbiddenError("Unauthorized")
    return item


def add_item(db, user_id: str, product_id: str, quantity: int) -> str:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    product = find_active_product(db, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    if not has_stock(product, quantity):
        raise InsufficientStockError("Insufficient stock")

    product_id = str(product["_id"])
    existing = db[COLLECTION].find_one({"user_id": user_id, "product_id": product_id})
    if existing is not None:
        new_quantity = existing["quantity"] + quantity
        if not has_stock(product, new_quantity):
            raise InsufficientStockError("Insufficient stock for requested quantity")
        db[COLLECTION].update_one(
            {"_id": existing["_id"]},
            {"$set": {"quantity": new_quantity, "updated_at": datetime.utcnow()}},
        )
        logger.info("cart %s: product %s quantity %d -> %d", user_id, product_id, existing["quantity"], new_quantity)
        return str(existing["_id"])

    item_id = create_document(db, COLLECTION, {"user_id": user_id, "product_id": product_id, "quantity": quantity})
    logger.info("cart %s: added product %s x%d", user_id, product_id, quantity)
    return item_id


def update_item(db, user_id: str, item_id: str, quantity: int) -> str:
    """Overwrite the quantity of a cart row; a quantity of zero or less removes it."""
    item = _owned_item(db, user_id, item_id)
    if quantity <= 0:
        db[COLLECTION].delete_one({"_id": item["_id"]})
        logger.info("cart %s: removed item %s via zero quantity", user_id, item_id)
        return "Item removed from cart"

    product = find_product(db, item["product_id"])
    if product is None:
        raise NotFoundError("Product not found")
    if not has_stock(product, quantity):
        raise InsufficientStockError("Insufficient stock")
    db[COLLECTION].update_one(
        {"_id": item["_id"]},
        {"$set": {"quantity": quantity, "updated_at": datetime.utcnow()}},
    )
    logger.info("cart %s: item %s quantity set to %d", user_id, item_id, quantity)
    return "Cart updated successfully"


def remove_item(db, user_id: str, item_id: str):
    item = _owned_item(db, user_id, item_id)
    db[COLLECTION].delete_one({"_id": item["_id"]})
    logger.info("cart %s: removed item %s", user_id, item_id)


def clear_cart(db, user_id: str) -> int:
    result = db[COLLECTION].delete_many({"user_id": user_id})
    logger.info("cart %s: cleared %d items", user_id, result.deleted_count)
    return result.deleted_count


def cart_lines(db, user_id: str) -> List[dict]:
    """The user's cart rows, each joined with its product document (or None)."""
    items = list(db[COLLECTION].find({"user_id": user_id}).sort("created_at", 1))
    ids = [parse_object_id(i["product_id"]) for i in items]
    products = {
        str(p["_id"]): p
        for p in db["product"].find({"_id": {"$in": [oid for oid in ids if oid is not None]}})
    }
    return [dict(item, product=products.get(item["product_id"])) for item in items]


def line_subtotal(line: dict) -> Decimal:
    if line["product"] is None:
        return Decimal("0.00")
    return (to_decimal(line["product"]["price"]) * line["quantity"]).quantize(CENTS)


def cart_total(db, user_id: str) -> Decimal:
    total = sum((line_subtotal(line) for line in cart_lines(db, user_id)), Decimal("0.00"))
    return total.quantize(CENTS)


def item_count(db, user_id: str) -> int:
    return db[COLLECTION].count_documents({"user_id": user_id})


def get_cart(db, user_id: str) -> dict:
    lines = cart_lines(db, user_id)
    items = []
    total = Decimal("0.00")
    for line in lines:
        subtotal = line_subtotal(line)
        total += subtotal
        items.append({
            "id": str(line["_id"]),
            "productId": line["product_id"],
            "quantity": line["quantity"],
            "product": product_out(line["product"]) if line["product"] else None,
            "subtotal": float(subtotal),
        })
    return {"items": items, "total": float(total.quantize(CENTS)), "itemCount": len(items)}
