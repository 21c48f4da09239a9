from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, StrictInt, field_validator
from pydantic.alias_generators import to_camel

from models import Category, DiningMode, OrderStatus, PaymentMethod, Role


class CamelModel(BaseModel):
    """Accepts and renders camelCase keys (productId, diningMode, ...)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# Upper bounds keep values inside 32-bit INTEGER columns
MAX_ID = 2 ** 31 - 1
MAX_PRICE = 1_000_000_000
MAX_STOCK = 1_000_000
MAX_QUANTITY = 1000


def _check_max_length(v: Optional[str], limit: int, label: str) -> Optional[str]:
    if v is not None and len(v) > limit:
        raise ValueError(f"{label} cannot exceed {limit} characters")
    return v


def _check_price(v: int) -> int:
    if v < 0:
        raise ValueError("Price cannot be negative")
    if v > MAX_PRICE:
        raise ValueError("Price is too high")
    return v


def _check_stock(v: int) -> int:
    if v < 0:
        raise ValueError("Stock cannot be negative")
    if v > MAX_STOCK:
        raise ValueError(f"Stock cannot exceed {MAX_STOCK}")
    return v


def _clean_username(v: str) -> str:
    if not v or len(v.strip()) == 0:
        raise ValueError("Username cannot be empty")
    v = v.strip()
    if len(v) < 3:
        raise ValueError("Username must be at least 3 characters")
    if len(v) > 50:
        raise ValueError("Username cannot exceed 50 characters")
    return v


def _check_password(v: str) -> str:
    if not v or len(v) == 0:
        raise ValueError("Password cannot be empty")
    if len(v) < 4:
        raise ValueError("Password must be at least 4 characters")
    return v


class UserRegister(CamelModel):
    username: str
    email: EmailStr
    password: str

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        return _clean_username(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password(v)


class UserLogin(CamelModel):
    username: str
    password: str

    @field_validator("username", "password")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("username and password are required")
        return v


class UserSummary(CamelModel):
    id: int
    username: str
    role: str


class UserResponse(CamelModel):
    id: int
    email: str
    username: str
    role: str
    profile_image: Optional[str] = None
    theme: Optional[str] = None
    font_size: Optional[str] = None
    created_at: Optional[datetime] = None


class ProfileUpdate(CamelModel):
    username: Optional[str] = None
    profile_image: Optional[str] = None
    theme: Optional[str] = None
    font_size: Optional[str] = None
    role: Optional[Role] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _clean_username(v)

    @field_validator("profile_image")
    @classmethod
    def validate_profile_image(cls, v: Optional[str]) -> Optional[str]:
        return _check_max_length(v, 500, "Profile image")

    @field_validator("theme", "font_size")
    @classmethod
    def validate_display_settings(cls, v: Optional[str]) -> Optional[str]:
        return _check_max_length(v, 20, "Theme and font size")


class PasswordChange(CamelModel):
    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        return _check_password(v)


class RoleUpdate(CamelModel):
    role: Role


class ProductCreate(CamelModel):
    name: str
    price: int
    description: Optional[str] = None
    stock: int = 0
    category: Category = Category.FOOD
    image_url: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or len(v.strip()) == 0:
            raise ValueError("Product name cannot be empty")
        if len(v) > 100:
            raise ValueError("Product name cannot exceed 100 characters")
        return v.strip()

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: int) -> int:
        return _check_price(v)

    @field_validator("stock", mode="before")
    @classmethod
    def default_stock(cls, v):
        return 0 if v is None else v

    @field_validator("stock")
    @classmethod
    def validate_stock(cls, v: int) -> int:
        return _check_stock(v)

    @field_validator("image_url")
    @classmethod
    def validate_image_url(cls, v: Optional[str]) -> Optional[str]:
        return _check_max_length(v, 500, "Image URL")

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v):
        return Category.FOOD if not v else v


class ProductUpdate(CamelModel):
    name: Optional[str] = None
    price: Optional[int] = None
    description: Optional[str] = None
    stock: Optional[int] = None
    category: Optional[Category] = None
    image_url: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if len(v.strip()) == 0:
            raise ValueError("Product name cannot be empty")
        if len(v) > 100:
            raise ValueError("Product name cannot exceed 100 characters")
        return v.strip()

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: Optional[int]) -> Optional[int]:
        return v if v is None else _check_price(v)

    @field_validator("stock")
    @classmethod
    def validate_stock(cls, v: Optional[int]) -> Optional[int]:
        return v if v is None else _check_stock(v)

    @field_validator("image_url")
    @classmethod
    def validate_image_url(cls, v: Optional[str]) -> Optional[str]:
        return _check_max_length(v, 500, "Image URL")


class ProductResponse(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    price: int
    stock: int
    category: str
    image_url: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderItemCreate(CamelModel):
    product_id: StrictInt
    quantity: StrictInt
    # Client-side price snapshot; the server prices from the catalog
    price: Optional[float] = None

    @field_validator("product_id")
    @classmethod
    def validate_product_id(cls, v: int) -> int:
        if v <= 0 or v > MAX_ID:
            raise ValueError(f"Invalid productId: {v}")
        return v

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be a positive integer")
        if v > MAX_QUANTITY:
            raise ValueError(f"Quantity cannot exceed {MAX_QUANTITY}")
        return v


class OrderCreate(CamelModel):
    items: List[OrderItemCreate]
    dining_mode: DiningMode = DiningMode.DINE_IN
    customer_name: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    order_notes: Optional[str] = None
    table_no: Optional[Union[str, int]] = None

    @field_validator("items")
    @classmethod
    def validate_items(cls, v: List[OrderItemCreate]) -> List[OrderItemCreate]:
        if not v:
            raise ValueError("items are required")
        return v

    @field_validator("customer_name")
    @classmethod
    def validate_customer_name(cls, v: Optional[str]) -> Optional[str]:
        return _check_max_length(v, 100, "Customer name")

    @field_validator("table_no")
    @classmethod
    def normalize_table_no(cls, v):
        if v is None or v == "":
            return None
        return _check_max_length(str(v), 10, "Table number")


class OrderItemResponse(CamelModel):
    id: int
    product_id: int
    product_name: str
    quantity: int
    price: int
    line_total: int


class OrderResponse(CamelModel):
    id: int
    user_id: int
    username: str
    status: str
    subtotal: int
    tax: int
    packaging: int
    total: int
    dining_mode: str
    customer_name: Optional[str] = None
    payment_method: Optional[str] = None
    order_notes: Optional[str] = None
    table_no: Optional[str] = None
    created_at: Optional[datetime] = None
    items: List[OrderItemResponse]


class OrderStatusUpdate(CamelModel):
    status: OrderStatus


class TopProduct(CamelModel):
    product_id: int
    name: str
    quantity: int
    revenue: int


class DailySales(CamelModel):
    date: str
    total: int


class DashboardStats(CamelModel):
    total_orders: int
    total_revenue: int
    total_products: int
    latest_orders: List[OrderResponse]
    top_products: List[TopProduct]
    sales_last_7_days: List[DailySales]
    low_stock: List[ProductResponse]
