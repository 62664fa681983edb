"""
Database Schemas

MongoDB collection schemas as Pydantic models, used to validate documents
before they are written.

Each Pydantic model represents a collection in your database.
Model name is converted to lowercase for the collection name:
- User -> "user" collection
- Product -> "product" collection
- Order -> "order" collection

Product references are stored as ObjectIds; on the wire they are strings.
"""

from pydantic import BaseModel, Field, EmailStr
from typing import Any, Optional, List


class CartLine(BaseModel):
    product: Any = Field(..., description="Product ObjectId")
    quantity: int = Field(..., ge=1)


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address")
    password_hash: str = Field(..., description="Password hash (server-side)")
    img: Optional[str] = Field(None, description="Avatar image URL")
    cart: List[CartLine] = Field(default_factory=list, description="One line per product")
    favourites: List[Any] = Field(default_factory=list, description="Product ObjectIds, no duplicates")
    version: int = Field(0, ge=0, description="Bumped on every cart/favourites write")


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"

    Owned by the catalog; this API only reads it.
    """
    title: str = Field(..., description="Product title")
    description: Optional[str] = Field(None, description="Product description")
    price: float = Field(..., ge=0, description="Price in dollars")
    category: str = Field(..., description="Product category")
    images: List[str] = Field(default_factory=list, description="Image URLs")
    stock: int = Field(0, ge=0, description="Units in stock")
    rating: float = Field(0, ge=0, le=5, description="Average rating 0-5")


class OrderLine(BaseModel):
    product: Any = Field(..., description="Product ObjectId")
    quantity: int = Field(..., ge=1)


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "order"
    """
    products: List[OrderLine]
    user: Any = Field(..., description="User ObjectId")
    total_amount: float = Field(..., ge=0)
    address: str = Field(..., description="Shipping address")
