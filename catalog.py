"""Product catalog: filtered/paged reads over active products and admin writes."""

import logging
import math
import re
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pymongo import ASCENDING, DESCENDING, ReturnDocument

from database import create_document, parse_object_id
from errors import BadRequestError, NotFoundError
from schemas import Product, ProductOut

logger = logging.getLogger(__name__)

COLLECTION = "product"

# public sort keys -> document fields
SORT_FIELDS = {
    "id": "_id",
    "name": "name",
    "price": "price",
    "stockQuantity": "stock_quantity",
    "stock_quantity": "stock_quantity",
    "category": "category",
    "createdAt": "created_at",
    "created_at": "created_at",
}


def product_out(doc: dict) -> dict:
    data = dict(doc)
    data["id"] = str(data.pop("_id"))
    return ProductOut.model_validate(data).model_dump(by_alias=True)


def build_product_filter(
    name: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
) -> dict:
    """Mongo filter over active products; a missing argument adds no constraint."""
    query = {"active": True}
    if name:
        query["name"] = {"$regex": re.escape(name), "$options": "i"}
    if category is not None:
        query["category"] = category
    price = {}
    if min_price is not None:
        price["$gte"] = float(min_price)
    if max_price is not None:
        price["$lte"] = float(max_price)
    if price:
        query["price"] = price
    return query


def resolve_sort(sort_by: str, sort_dir: str):
    field = SORT_FIELDS.get(sort_by)
    if field is None:
        raise BadRequestError(f"Invalid sort field: {sort_by}")
    direction = DESCENDING if sort_dir.lower() == "desc" else ASCENDING
    return field, direction


def list_products(
    db,
    page: int = 0,
    size: int = 10,
    sort_by: str = "id",
    sort_dir: str = "asc",
    name: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
) -> dict:
    if page < 0:
        raise BadRequestError("Page index must not be less than zero")
    if size < 1:
        raise BadRequestError("Page size must not be less than one")
    field, direction = resolve_sort(sort_by, sort_dir)
    query = build_product_filter(name, category, min_price, max_price)

    sort = [(field, direction)]
    if field != "_id":
        sort.append(("_id", ASCENDING))

    total = db[COLLECTION].count_documents(query)
    cursor = db[COLLECTION].find(query).sort(sort).skip(page * size).limit(size)
    return {
        "products": [product_out(doc) for doc in cursor],
        "currentPage": page,
        "totalItems": total,
        "totalPages": math.ceil(total / size),
    }


def find_product(db, product_id: str) -> Optional[dict]:
    oid = parse_object_id(product_id)
    if oid is None:
        return None
    return db[COLLECTION].find_one({"_id": oid})


def is_active(doc: Optional[dict]) -> bool:
    # same rule as the {"active": True} list filter: the flag must be present and true
    return doc is not None and doc.get("active") is True


def find_active_product(db, product_id: str) -> Optional[dict]:
    doc = find_product(db, product_id)
    if not is_active(doc):
        return None
    return doc


def get_product(db, product_id: str) -> dict:
    doc = find_active_product(db, product_id)
    if doc is None:
        raise NotFoundError("Product not found")
    return product_out(doc)


def list_categories(db) -> List[str]:
    categories = db[COLLECTION].distinct("category", {"active": True})
    return sorted(c for c in categories if c)


def create_product(db, product: Product) -> dict:
    product_id = create_document(db, COLLECTION, product)
    logger.info("created product %s (%s)", product_id, product.name)
    return product_out(db[COLLECTION].find_one({"_id": parse_object_id(product_id)}))


def update_product(db, product_id: str, product: Product) -> dict:
    oid = parse_object_id(product_id)
    doc = None
    if oid is not None:
        data = product.model_dump()
        data["updated_at"] = datetime.utcnow()
        doc = db[COLLECTION].find_one_and_update(
            {"_id": oid}, {"$set": data}, return_document=ReturnDocument.AFTER
        )
    if doc is None:
        raise NotFoundError("Product not found")
    logger.info("updated product %s", product_id)
    return product_out(doc)


def delete_product(db, product_id: str):
    """Soft delete: the row stays so cart and order references remain valid."""
    oid = parse_object_id(product_id)
    result = None
    if oid is not None:
        result = db[COLLECTION].update_one(
            {"_id": oid}, {"$set": {"active": False, "updated_at": datetime.utcnow()}}
        )
    if result is None or result.matched_count == 0:
        raise NotFoundError("Product not found")
    logger.info("soft-deleted product %s", product_id)


def low_stock_products(db, threshold: int = 10) -> List[dict]:
    cursor = db[COLLECTION].find({"stock_quantity": {"$lt": threshold}}).sort(
        [("stock_quantity", ASCENDING), ("_id", ASCENDING)]
    )
    return [product_out(doc) for doc in cursor]
