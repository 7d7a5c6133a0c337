import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import cart
import catalog
import database
import orders
from database import ensure_indexes, get_db
from errors import BadRequestError, NotFoundError, ServiceError
from schemas import (
    AddToCartRequest,
    OrderStatus,
    PlaceOrderRequest,
    Principal,
    Product,
    SignInRequest,
    SignUpRequest,
    UpdateCartRequest,
)
from security import authenticate, get_current_admin, get_current_user, register_user, seed_admin

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")
ADMIN_NAME = os.getenv("ADMIN_NAME", "Admin")

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger("storefront")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        ensure_indexes(database.db)
        if seed_admin(database.db, ADMIN_EMAIL, ADMIN_PASSWORD, ADMIN_NAME):
            logger.info("seeded admin account %s", ADMIN_EMAIL)
    else:
        logger.warning("DATABASE_URL/DATABASE_NAME not set, running without a database")
    yield


app = FastAPI(title="Storefront API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----- Error bodies are always {"message": ...} -----
@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", message)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": message})


@app.get("/")
def read_root():
    return {"name": "Storefront API", "status": "ok"}


@app.get("/test")
def test_database():
    info = {"backend": "running", "database": "disconnected"}
    if database.db is None:
        info["database"] = "not configured"
        return info
    try:
        database.db.list_collection_names()
        info["database"] = "connected"
    except Exception as e:
        info["error"] = str(e)
    return info


# ----- Auth -----
@app.post("/api/auth/signin")
def signin(payload: SignInRequest, db=Depends(get_db)):
    return authenticate(db, payload.email, payload.password)


@app.post("/api/auth/signup")
def signup(payload: SignUpRequest, db=Depends(get_db)):
    register_user(db, payload.name, payload.email, payload.password)
    return {"message": "User registered successfully!"}


@app.get("/api/auth/me")
def me(current: Principal = Depends(get_current_user)):
    return current.model_dump(mode="json")


# ----- Cart -----
@app.get("/api/cart")
def get_cart(current: Principal = Depends(get_current_user), db=Depends(get_db)):
    return cart.get_cart(db, current.id)


@app.post("/api/cart/add")
def add_to_cart(payload: AddToCartRequest, current: Principal = Depends(get_current_user), db=Depends(get_db)):
    try:
        cart.add_item(db, current.id, payload.product_id, payload.quantity)
    except NotFoundError as exc:
        raise BadRequestError(exc.message)
    return {"message": "Product added to cart successfully"}


@app.put("/api/cart/update/{item_id}")
def update_cart_item(
    item_id: str,
    payload: UpdateCartRequest,
    current: Principal = Depends(get_current_user),
    db=Depends(get_db),
):
    message = cart.update_item(db, current.id, item_id, payload.quantity)
    return {"message": message}


@app.delete("/api/cart/remove/{item_id}")
def remove_from_cart(item_id: str, current: Principal = Depends(get_current_user), db=Depends(get_db)):
    cart.remove_item(db, current.id, item_id)
    return {"message": "Item removed from cart successfully"}


@app.delete("/api/cart/clear")
def clear_cart(current: Principal = Depends(get_current_user), db=Depends(get_db)):
    cart.clear_cart(db, current.id)
    return {"message": "Cart cleared successfully"}


# ----- Products -----
@app.get("/api/products")
def list_products(
    page: int = 0,
    size: int = 10,
    sort_by: str = Query("id", alias="sortBy"),
    sort_dir: str = Query("asc", alias="sortDir"),
    name: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[Decimal] = Query(None, alias="minPrice"),
    max_price: Optional[Decimal] = Query(None, alias="maxPrice"),
    db=Depends(get_db),
):
    return catalog.list_products(
        db,
        page=page,
        size=size,
        sort_by=sort_by,
        sort_dir=sort_dir,
        name=name,
        category=category,
        min_price=min_price,
        max_price=max_price,
    )


@app.get("/api/products/categories")
def get_categories(db=Depends(get_db)):
    return catalog.list_categories(db)


@app.get("/api/products/low-stock")
def get_low_stock_products(threshold: int = 10, _: Principal = Depends(get_current_admin), db=Depends(get_db)):
    return catalog.low_stock_products(db, threshold)


@app.get("/api/products/{product_id}")
def get_product(product_id: str, db=Depends(get_db)):
    return catalog.get_product(db, product_id)


# Admin-secured product management
@app.post("/api/products")
def create_product(product: Product, _: Principal = Depends(get_current_admin), db=Depends(get_db)):
    return catalog.create_product(db, product)


@app.put("/api/products/{product_id}")
def update_product(product_id: str, product: Product, _: Principal = Depends(get_current_admin), db=Depends(get_db)):
    return catalog.update_product(db, product_id, product)


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, _: Principal = Depends(get_current_admin), db=Depends(get_db)):
    catalog.delete_product(db, product_id)
    return {"message": "Product deleted successfully"}


# ----- Orders -----
@app.post("/api/orders", status_code=status.HTTP_201_CREATED)
def place_order(payload: PlaceOrderRequest, current: Principal = Depends(get_current_user), db=Depends(get_db)):
    order = orders.place_order(db, current.id, payload.shipping_address)
    return orders.order_out(order)


@app.get("/api/orders")
def list_my_orders(
    page: Optional[int] = None,
    size: int = 10,
    current: Principal = Depends(get_current_user),
    db=Depends(get_db),
):
    if page is None:
        return [orders.order_out(o) for o in orders.list_user_orders(db, current.id)]
    result = orders.page_user_orders(db, current.id, page=page, size=size)
    result["orders"] = [orders.order_out(o) for o in result["orders"]]
    return result


@app.get("/api/orders/summary")
def order_summary(current: Principal = Depends(get_current_user), db=Depends(get_db)):
    return {
        "orderCount": orders.count_user_orders(db, current.id),
        "totalSpent": float(orders.total_spent(db, current.id)),
    }


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, current: Principal = Depends(get_current_user), db=Depends(get_db)):
    return orders.order_out(orders.get_order(db, current, order_id))


@app.post("/api/orders/{order_id}/cancel")
def cancel_order(order_id: str, current: Principal = Depends(get_current_user), db=Depends(get_db)):
    return orders.order_out(orders.cancel_order(db, current, order_id))


@app.post("/api/orders/{order_id}/{action}")
def transition_order(order_id: str, action: str, _: Principal = Depends(get_current_admin), db=Depends(get_db)):
    return orders.order_out(orders.transition_order(db, order_id, action))


@app.get("/api/admin/orders")
def search_orders(
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    _: Principal = Depends(get_current_admin),
    db=Depends(get_db),
):
    return [orders.order_out(o) for o in orders.search_orders(db, order_status, start, end)]


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
