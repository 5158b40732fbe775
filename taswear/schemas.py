"""
Database Schemas

Each Pydantic model maps one document of a MongoDB collection onto an
immutable entity:
- User -> "users" collection (document _id is the identity provider uid)
- Product -> "products" collection
- Order -> "orders" collection (items are embedded CartItem snapshots)

CartItem is never stored on its own; carts live in view-model memory until
checkout turns them into an Order.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.networks import validate_email

from .errors import ParseError

USERS_COLLECTION = "users"
PRODUCTS_COLLECTION = "products"
ORDERS_COLLECTION = "orders"

E = TypeVar("E", bound="Entity")


class UserRole(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class Entity(BaseModel):
    """Shared document mapping for stored entities."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    id: str = ""

    @classmethod
    def from_document(cls: Type[E], doc: Dict[str, Any], collection: str) -> E:
        data = dict(doc)
        _id = data.pop("_id", None)
        doc_id = str(_id) if _id is not None else str(data.get("id", ""))
        data["id"] = doc_id
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ParseError(collection, doc_id, str(e.errors()[0].get("msg", e))) from e

    def to_document(self, exclude: Iterable[str] = ()) -> Dict[str, Any]:
        """Document body without the id, which the store owns."""
        skip: Set[str] = {"id", *exclude}
        return self.model_dump(exclude=skip)


class Product(Entity):
    name: str = ""
    description: str = ""
    brand: str = ""
    price: float = Field(0.0, ge=0, description="Unit price in dollars")
    image_urls: List[str] = Field(default_factory=list)
    category: str = ""
    sizes: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    stock: int = Field(0, ge=0, description="Units available in inventory")
    featured: bool = False
    created_at: Optional[datetime] = None

    def matches(self, term: str) -> bool:
        """Case-insensitive substring match over name, description and brand."""
        needle = term.lower()
        return any(needle in field.lower() for field in (self.name, self.description, self.brand))


class User(Entity):
    email: str = ""
    name: str = Field("", description="Display name")
    role: UserRole = UserRole.CUSTOMER
    created_at: Optional[datetime] = None

    @field_validator("email")
    @classmethod
    def _check_email(cls, v: str) -> str:
        if v:
            validate_email(v)
        return v

    @field_validator("role", mode="before")
    @classmethod
    def _known_role(cls, v: Any) -> UserRole:
        # unknown or missing roles never fail the read
        if isinstance(v, UserRole):
            return v
        try:
            return UserRole(str(v).lower())
        except ValueError:
            return UserRole.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class CartItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: str = ""
    product_name: str = ""
    product_image: str = ""
    price: float = Field(0.0, ge=0, description="Unit price snapshot at add time")
    quantity: int = Field(1, ge=1)
    selected_size: str = ""
    selected_color: str = ""

    @classmethod
    def from_product(cls, product: Product, quantity: int = 1, size: str = "", color: str = "") -> "CartItem":
        return cls(
            product_id=product.id,
            product_name=product.name,
            product_image=product.image_urls[0] if product.image_urls else "",
            price=product.price,
            quantity=quantity,
            selected_size=size,
            selected_color=color,
        )

    @property
    def subtotal(self) -> float:
        return self.price * self.quantity


def cart_total(items: Iterable[CartItem]) -> float:
    return sum((item.subtotal for item in items), 0.0)


class Order(Entity):
    user_id: str = ""
    items: List[CartItem] = Field(default_factory=list)
    total_amount: float = Field(0.0, ge=0)
    status: str = Field(OrderStatus.PENDING.value, description="PENDING|PROCESSING|SHIPPED|DELIVERED|CANCELLED")
    shipping_address: str = ""
    created_at: Optional[datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def _status_value(cls, v: Any) -> Any:
        # status is owned by the store; any string is kept as is
        if isinstance(v, OrderStatus):
            return v.value
        return v

    @classmethod
    def from_cart(cls, user_id: str, items: Iterable[CartItem], shipping_address: str) -> "Order":
        items = list(items)
        return cls(
            user_id=user_id,
            items=items,
            total_amount=cart_total(items),
            shipping_address=shipping_address,
        )
