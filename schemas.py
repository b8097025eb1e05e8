"""
Database Schemas for the Study Store

Each Pydantic model represents a collection in MongoDB.
Class name lowercased = collection name (e.g., Product -> "product",
CartLine -> "cartline", OrderStatusHistory -> "orderstatushistory").
"""
from pydantic import BaseModel, Field, EmailStr
from typing import Optional, List, Literal
from datetime import datetime

ORDER_STATUSES = ("placed", "confirmed", "processing", "shipped", "delivered", "cancelled")
TRACKING_STEPS = ("placed", "confirmed", "processing", "shipped", "delivered")
PAYMENT_STATUSES = ("pending", "success", "failed")
PAYMENT_METHODS = ("COD", "UPI")

OrderStatus = Literal["placed", "confirmed", "processing", "shipped", "delivered", "cancelled"]
PaymentStatus = Literal["pending", "success", "failed"]


class Product(BaseModel):
    id: Optional[str] = None
    title: str
    description: Optional[str] = None
    category: Literal["book", "notes", "stationary"]
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0, description="Shown struck through when above price")
    image_url: Optional[str] = None
    stock_quantity: int = Field(0, ge=0)
    is_available: bool = True
    approval_status: Literal["pending", "approved", "rejected"] = "pending"
    created_at: Optional[datetime] = None


class CartLine(BaseModel):
    """One (user, product) row; the pair is unique."""
    id: Optional[str] = None
    user_id: str
    product_id: str
    quantity: int = Field(1, ge=1)
    added_at: Optional[datetime] = None
    product: Optional[Product] = None


class Coupon(BaseModel):
    id: Optional[str] = None
    code: str
    discount_type: Literal["percentage", "flat"]
    discount_value: float = Field(..., ge=0)
    min_purchase_amount: float = 0
    max_discount_amount: Optional[float] = None
    usage_limit: Optional[int] = None
    used_count: int = 0
    is_active: bool = True
    expires_at: Optional[datetime] = None


class CouponValidation(BaseModel):
    valid: bool
    error: Optional[str] = None
    code: Optional[str] = None
    discount_type: Optional[Literal["percentage", "flat"]] = None
    discount_value: Optional[float] = None
    discount_amount: Optional[float] = None
    final_total: Optional[float] = None
    original_total: Optional[float] = None


class ShippingAddress(BaseModel):
    full_name: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""


class OrderItem(BaseModel):
    id: Optional[str] = None
    order_id: str
    product_id: str
    quantity: int = Field(..., ge=1)
    price_at_purchase: float = Field(..., ge=0)
    product: Optional[Product] = None


class Order(BaseModel):
    id: Optional[str] = None
    user_id: str
    order_number: str
    total_amount: float
    status: OrderStatus = "placed"
    payment_status: PaymentStatus = "pending"
    payment_method: Optional[str] = None
    shipping_address: ShippingAddress
    coupon_code: Optional[str] = None
    discount_amount: float = 0
    created_at: Optional[datetime] = None
    items: List[OrderItem] = []


class OrderStatusHistory(BaseModel):
    """Append-only; rows are never updated or deleted."""
    id: Optional[str] = None
    order_id: str
    status: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class UserProfile(BaseModel):
    id: Optional[str] = None
    user_id: str = Field(..., description="Identity issued by the auth provider")
    username: str
    email: Optional[EmailStr] = None
    total_xp: int = Field(0, ge=0)
    selected_institute_id: Optional[str] = None
    selected_batch_id: Optional[str] = None
    last_active_at: Optional[datetime] = None


class LeaderboardEntry(BaseModel):
    user_id: str
    username: str
    email: Optional[str] = None
    total_xp: int
    rank: int
