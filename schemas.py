"""
Database Schemas for the Clothing Storefront

Each Pydantic model corresponds to a MongoDB collection (lowercased name).
Indices should be added by the admin process on frequently queried fields
(product.category, product.isActive, order.user, cart.user).
"""
from __future__ import annotations
from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from typing import List, Optional, Literal
from datetime import datetime

from config import DEFAULT_FREE_SHIPPING_THRESHOLD, DEFAULT_SHIPPING_FEE, DEFAULT_TAX_RATE
from pricing import PROCESSING, derive_price

Role = Literal['user', 'admin']
OrderStatus = Literal['Processing', 'Shipped', 'Delivered', 'Cancelled', 'Returned']

class User(BaseModel):
    name: str
    email: EmailStr
    password_hash: str
    role: Role = 'user'
    phone: Optional[str] = None
    address: Optional[str] = None
    createdAt: Optional[datetime] = None

class ProductSize(BaseModel):
    size: str
    stock: int = Field(0, ge=0)

class ProductColor(BaseModel):
    name: str
    hex: Optional[str] = None

class ProductImage(BaseModel):
    url: str
    public_id: Optional[str] = None  # id on the image host

class Review(BaseModel):
    user: str
    name: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None

class Product(BaseModel):
    name: str
    description: Optional[str] = None
    price: float = Field(0, ge=0)
    originalPrice: Optional[float] = Field(None, ge=0)
    discount: float = Field(0, ge=0, le=100, description='Percent off originalPrice')
    category: str
    subcategory: Optional[str] = None
    brand: Optional[str] = None
    stock: int = Field(0, ge=0)
    sizes: List[ProductSize] = []
    colors: List[ProductColor] = []
    images: List[ProductImage] = []
    ratings: float = Field(0, ge=0, le=5)
    numOfReviews: int = 0
    reviews: List[Review] = []
    isActive: bool = True
    isFeatured: bool = False
    createdAt: Optional[datetime] = None

    @model_validator(mode='after')
    def derive_price_and_stock(self):
        # originalPrice + discount is the source of truth when present
        if self.originalPrice is not None:
            self.price = derive_price(self.originalPrice, self.discount)
        else:
            self.discount = 0
        if self.sizes:
            self.stock = sum(s.stock for s in self.sizes)
        return self

class CartItem(BaseModel):
    itemId: str
    product: str
    name: str
    image: Optional[str] = None
    quantity: int = Field(1, ge=1)
    size: Optional[str] = None
    color: Optional[str] = None
    price: float = Field(..., ge=0, description='Unit price when added')

class Cart(BaseModel):
    user: str
    items: List[CartItem] = []

class OrderItem(BaseModel):
    product: str
    name: str
    price: float
    quantity: int = Field(..., ge=1)
    size: Optional[str] = None
    color: Optional[str] = None
    image: Optional[str] = None

class ShippingInfo(BaseModel):
    address: str
    city: str
    state: Optional[str] = None
    postalCode: str
    country: str = 'India'
    phone: str

class PaymentInfo(BaseModel):
    method: str = 'razorpay'
    id: Optional[str] = None
    status: str = 'pending'
    razorpayOrderId: Optional[str] = None

class Order(BaseModel):
    user: str
    orderItems: List[OrderItem]
    shippingInfo: ShippingInfo
    paymentInfo: PaymentInfo = Field(default_factory=PaymentInfo)
    itemsPrice: float
    taxPrice: float
    shippingPrice: float
    totalPrice: float
    orderStatus: OrderStatus = PROCESSING
    deliveredAt: Optional[datetime] = None
    paidAt: Optional[datetime] = None

class Settings(BaseModel):
    model_config = ConfigDict(extra='ignore')

    siteName: str = 'Goodluck Fashion'
    siteDescription: str = 'Premium clothing and accessories'
    contactEmail: Optional[EmailStr] = None
    phoneNumber: Optional[str] = None
    address: Optional[str] = None
    currency: str = 'INR'
    taxRate: float = Field(DEFAULT_TAX_RATE, ge=0, le=100, description='Percent')
    shippingFee: float = Field(DEFAULT_SHIPPING_FEE, ge=0)
    freeShippingThreshold: float = Field(DEFAULT_FREE_SHIPPING_THRESHOLD, ge=0)
    enableNotifications: bool = True
    maintenanceMode: bool = False
    version: int = 0
    updatedAt: Optional[datetime] = None
