"""
Schemas for the Storefront API

Collections:
- user: customers and admins
- product: catalog rows (soft-deleted through `active`)
- cart_item: per-user line items
- order: order headers with embedded order lines

Documents are stored with snake_case keys; the HTTP surface uses camelCase
through the aliases of CamelModel.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class User(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address")
    password_hash: str = Field(..., description="Hashed password")
    role: Role = Field(Role.USER, description="USER or ADMIN")
    created_at: Optional[datetime] = None


class Principal(CamelModel):
    """The authenticated user attached to a request."""
    id: str
    name: str
    email: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class Product(CamelModel):
    name: str = Field(..., min_length=1, max_length=100, description="Product name")
    description: Optional[str] = Field(None, max_length=1000)
    price: float = Field(..., ge=0, description="Unit price")
    stock_quantity: int = Field(..., ge=0, description="Units on hand")
    category: str = Field(..., min_length=1, description="Catalog category")
    image_url: Optional[str] = None
    active: bool = Field(True, description="False once soft-deleted")


class ProductOut(Product):
    id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderItem(CamelModel):
    product_id: str
    product_name: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price at order time")


class Order(CamelModel):
    """
    Order header with its lines.

    The transition methods are plain setters and do not look at the current
    status; `can_be_cancelled` is the only guard and callers check it before
    calling `cancel_order`.
    """
    id: Optional[str] = None
    user_id: str
    total_amount: float = Field(..., ge=0)
    status: OrderStatus = OrderStatus.PENDING
    shipping_address: Optional[str] = None
    order_date: datetime = Field(default_factory=datetime.utcnow)
    shipped_date: Optional[datetime] = None
    delivered_date: Optional[datetime] = None
    items: List[OrderItem] = Field(default_factory=list)

    def confirm_order(self):
        self.status = OrderStatus.CONFIRMED

    def ship_order(self):
        self.status = OrderStatus.SHIPPED
        self.shipped_date = datetime.utcnow()

    def deliver_order(self):
        self.status = OrderStatus.DELIVERED
        self.delivered_date = datetime.utcnow()

    def cancel_order(self):
        self.status = OrderStatus.CANCELLED

    def can_be_cancelled(self) -> bool:
        return self.status in (OrderStatus.PENDING, OrderStatus.CONFIRMED)

    @classmethod
    def from_document(cls, doc: dict) -> "Order":
        data = dict(doc)
        data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)

    def to_document(self) -> dict:
        data = self.model_dump(exclude={"id"})
        data["status"] = self.status.value
        return data


# ----- Requests -----
class SignInRequest(BaseModel):
    email: EmailStr
    password: str


class SignUpRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)


class AddToCartRequest(CamelModel):
    product_id: str
    quantity: int


class UpdateCartRequest(CamelModel):
    quantity: int


class PlaceOrderRequest(CamelModel):
    shipping_address: str = Field(..., min_length=1)
