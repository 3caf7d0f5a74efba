"""
Database Schemas for the Storefront

Each Pydantic model represents a MongoDB collection. The collection name is the
lowercase class name. Example: class Product -> "product" collection.

Use these models in your API for validation before writing to MongoDB.
"""

import os
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD")

OptionType = Literal["none", "drop_down", "color", "json"]
OrderStatus = Literal["Pending", "Processing", "Shipped", "Delivered", "Cancelled", "Refunded"]
PaymentMethod = Literal["Credit Card", "PayPal", "Bank Transfer", "Cash"]

# -----------------
# Catalog
# -----------------

class Category(BaseModel):
    name: str = Field(..., min_length=1, description="Category display name, e.g., 'T-Shirts'")
    slug: Optional[str] = Field(None, description="URL-friendly identifier, derived from name")
    products: List[str] = Field(default_factory=list, description="Product ids in this category")

class Tag(BaseModel):
    name: str = Field(..., min_length=1, description="Tag name")
    slug: Optional[str] = Field(None, description="URL-friendly identifier, derived from name")
    products: List[str] = Field(default_factory=list, description="Tagged product ids")

class OptionGroup(BaseModel):
    name: str = Field(..., description="Axis of variation, e.g., 'Color'")
    option_type: OptionType = Field("none", description="none, drop_down, color or json")
    # color: {"Red": "#FF0000"}; drop_down: ["S", "M"]; json: anything
    choices: Any = Field(default_factory=dict)
    include_wildcard: bool = Field(False, description="Append the 'Depends on Your Luck' choice to a dropdown")

class Variant(BaseModel):
    sku: str = Field(..., description="Globally unique SKU, derived from base SKU and options")
    options: Dict[str, str] = Field(default_factory=dict, description="Option group name -> selected value")
    price_adjustment: float = Field(0, description="Adjustment relative to the product price")
    stock: int = Field(0, ge=0)

class PriceData(BaseModel):
    currency: str = Field(DEFAULT_CURRENCY, description="ISO currency code")
    price: float = Field(..., ge=0, description="Base unit price")
    discounted_price: Optional[float] = Field(None, ge=0, description="Overrides price when > 0")
    price_per_unit: Optional[float] = Field(None, ge=0)

class DescriptionBlock(BaseModel):
    title: str
    body: str = Field(..., description="HTML content")

class Product(BaseModel):
    name: str = Field(..., min_length=1, description="Product name")
    slug: Optional[str] = Field(None, description="Derived from name")
    short_description: Optional[str] = None
    description: List[DescriptionBlock] = Field(default_factory=list)
    sku: str = Field(..., min_length=1, description="Base SKU")
    stock: int = Field(..., ge=0, description="Base stock, copied to new variants")
    media_urls: List[str] = Field(default_factory=list)
    published: bool = True
    categories: List[str] = Field(default_factory=list, description="Category ids")
    tags: List[str] = Field(default_factory=list, description="Tag ids")
    type: Literal["Digital", "Physical"] = "Physical"
    instant_delivery: bool = False
    price_data: PriceData
    product_options: List[OptionGroup] = Field(default_factory=list)
    variants: List[Variant] = Field(default_factory=list, description="Generated from product_options")
    is_featured: bool = False

class VariantUpdate(BaseModel):
    stock: Optional[int] = Field(None, ge=0)
    price_adjustment: Optional[float] = None

# ------------
# Cart Models
# ------------

class CartItem(BaseModel):
    product_id: str = Field(..., description="Referenced product _id (string)")
    product_name: str
    sku: str
    unit_price: float = Field(..., ge=0, description="Effective price at last resolution")
    quantity: int = Field(..., ge=1)
    line_total: float = Field(..., ge=0)
    variant_options: Dict[str, str] = Field(default_factory=dict)

class Cart(BaseModel):
    user_identifier: str = Field(..., description="Identity provider user or session id")
    items: Dict[str, CartItem] = Field(default_factory=dict, description="Lines keyed by SKU")
    products: List[str] = Field(default_factory=list)
    total_amount: float = Field(0, ge=0)
    version: int = Field(0, ge=0, description="Bumped on every write")

class CartLineRequest(BaseModel):
    sku: str
    quantity: int = Field(..., description="<= 0 removes the line")

# ------------
# Order Models
# ------------

class OrderLineRequest(BaseModel):
    sku: str
    # strict positivity is checked by the pricing core so every bad line is reported
    quantity: int
    product_id: Optional[str] = Field(None, description="Owning product, when known from the cart")

class Address(BaseModel):
    full_name: str
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    postal_code: str
    country: str = "US"

class OrderItem(BaseModel):
    product_id: str = Field(..., description="Referenced product _id (string)")
    product_name: str = Field(..., description="Product name snapshot")
    sku: str
    unit_price: float = Field(..., ge=0, description="Unit price at time of order")
    quantity: int = Field(..., ge=1, description="Quantity ordered")
    line_total: float = Field(..., ge=0)
    variant_options: Dict[str, str] = Field(default_factory=dict)

class OrderRequest(BaseModel):
    items: List[OrderLineRequest]
    shipping_address: Address
    billing_address: Address
    payment_method: PaymentMethod

class Order(BaseModel):
    items: Dict[str, OrderItem]
    products: List[str]
    total_amount: float = Field(..., ge=0)
    shipping_address: Address
    billing_address: Address
    payment_method: PaymentMethod
    order_status: OrderStatus = Field("Pending")

class OrderStatusUpdate(BaseModel):
    order_status: OrderStatus
