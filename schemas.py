"""
Database Schemas for the commerce API

Each Pydantic model describes one stored entity. The same shape is kept in
the MongoDB collection and the PostgreSQL table of the same name.

Collections / tables:
- users
- orders
- payments
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class User(BaseModel):
    """
    Users collection schema
    Collection name: "users"
    """
    email: EmailStr = Field(..., description="Email address, unique")
    name: str = Field(..., description="Display name")
    phone: Optional[str] = Field(None, description="Phone number the one-time code is sent to")
    password_hash: str = Field(..., description="BCrypt password hash")
    role: UserRole = Field(UserRole.USER, description="admin | user")
    is_verified: bool = Field(False, description="Set once the one-time code is confirmed")


class OrderItem(BaseModel):
    name: str
    quantity: int = Field(1, ge=1)
    price: float = Field(..., ge=0)


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "orders"
    """
    customer_id: str
    customer_name: str
    customer_email: EmailStr
    items: List[OrderItem]
    total: float = Field(..., ge=0)
    status: OrderStatus = Field(OrderStatus.PENDING, description="pending | processing | shipped | delivered | cancelled")
    shipping_address: str
    tracking_number: Optional[str] = None


class Payment(BaseModel):
    """
    Payments collection schema
    Collection name: "payments"
    """
    order_id: str
    customer_id: Optional[str] = None
    customer_email: EmailStr
    amount: float = Field(..., ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    method: PaymentMethod
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = None
