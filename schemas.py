"""
Database Schemas for ShopKart

Each Pydantic model corresponds to a MongoDB collection.
Collection name is the lowercase of the class name.

- User -> "user"
- Product -> "product" (embeds Review)
- Order -> "order" (embeds OrderItem, ShippingAddress, PaymentResult)
- Wishlist -> "wishlist" (embeds WishlistItem)

References to other documents are stored as the string form of their ObjectId.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field


Role = Literal["user", "admin"]
PaymentMethod = Literal["PayPal", "Stripe", "Cash on Delivery", "Bank Transfer"]


class User(BaseModel):
    """Users collection schema"""
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Lowercased, unique email address")
    password_hash: str = Field(..., description="BCrypt password hash")
    role: Role = Field("user", description="Role: user or admin")
    is_approved: bool = Field(True, description="Admins need super-admin approval")
    is_super_admin: bool = Field(False, description="Set on the first admin ever created")


class Review(BaseModel):
    user_id: str
    name: str = Field(..., description="Reviewer name at review time")
    rating: int = Field(..., ge=1, le=5)
    comment: str
    created_at: Optional[datetime] = None


class Product(BaseModel):
    """Products collection schema"""
    user_id: str = Field(..., description="Admin who created the product")
    name: str = Field(..., description="Product name")
    description: str = Field(..., description="Product description")
    price: float = Field(..., ge=0, description="Price in dollars")
    image: str = Field("/images/sample.jpg", description="Image path or URL")
    category: str = Field(..., description="Product category")
    subcategory: Optional[str] = None
    brand: Optional[str] = None
    count_in_stock: int = Field(0, ge=0, description="Available inventory")
    rating: float = Field(0, ge=0, le=5, description="Mean of review ratings")
    num_reviews: int = Field(0, ge=0)
    num_purchases: int = Field(0, ge=0, description="Units sold through orders")
    reviews: List[Review] = Field(default_factory=list)


class OrderItem(BaseModel):
    product_id: str
    name: str
    image: str
    price: float = Field(..., ge=0)
    qty: int = Field(..., ge=1)


class ShippingAddress(BaseModel):
    address: str
    city: str
    postal_code: str
    country: str


class PaymentResult(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None
    update_time: Optional[str] = None
    email_address: Optional[str] = None


class Order(BaseModel):
    """Orders collection schema"""
    user_id: str
    order_items: List[OrderItem]
    shipping_address: ShippingAddress
    payment_method: PaymentMethod = "PayPal"
    payment_result: Optional[PaymentResult] = None
    items_price: float = Field(0, ge=0)
    tax_price: float = Field(0, ge=0)
    shipping_price: float = Field(0, ge=0)
    total_price: float = Field(0, ge=0)
    is_paid: bool = False
    paid_at: Optional[datetime] = None
    is_delivered: bool = False
    delivered_at: Optional[datetime] = None


class WishlistItem(BaseModel):
    product_id: str
    name: str
    image: str
    price: float = Field(..., ge=0)
    count_in_stock: int = Field(..., ge=0, description="Stock when the item was added")
    added_at: Optional[datetime] = None


class Wishlist(BaseModel):
    """Wishlists collection schema, one per user"""
    user_id: str
    items: List[WishlistItem] = Field(default_factory=list)
