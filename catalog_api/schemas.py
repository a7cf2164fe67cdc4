# catalog_api/schemas.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


# 🔗 Short references to related rows
class CategoryRef(BaseModel):
    id: int
    name: str
    class Config:
        from_attributes = True


class ProductRef(BaseModel):
    id: int
    name: str
    class Config:
        from_attributes = True


class CustomerRef(BaseModel):
    id: int
    name: str
    email: str
    class Config:
        from_attributes = True


# 🛍️ Product
class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    category_id: int
    image_url: Optional[str] = Field(None, max_length=255)
    brand: Optional[str] = Field(None, max_length=50)
    rating: Optional[float] = Field(None, ge=0, le=5)

class ProductCreate(ProductBase):
    pass

class ProductUpdate(ProductBase):
    # full replace: the body repeats the id from the path
    id: int
    is_active: bool = True

class ProductOut(ProductBase):
    id: int
    is_active: bool
    created_at: datetime
    updated_at: datetime
    category: Optional[CategoryRef] = None
    class Config:
        from_attributes = True


# 🗂️ Category
class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: str = Field("", max_length=200)

class CategoryCreate(CategoryBase):
    pass

class CategoryUpdate(CategoryBase):
    id: int
    is_active: bool = True

class CategoryOut(CategoryBase):
    id: int
    is_active: bool
    created_at: datetime
    product_count: int = 0
    class Config:
        from_attributes = True

class CategoryDetail(CategoryOut):
    products: List[ProductOut] = []


# 👤 Customer
class CustomerBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr = Field(..., max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=50)
    postal_code: Optional[str] = Field(None, max_length=10)

class CustomerCreate(CustomerBase):
    pass

class CustomerUpdate(CustomerBase):
    id: int
    is_active: bool = True

class CustomerOut(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    is_active: bool
    created_at: datetime
    class Config:
        from_attributes = True


# 🧾 Order
class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)

class OrderCreate(BaseModel):
    customer_id: int
    notes: Optional[str] = Field(None, max_length=200)
    items: List[OrderItemCreate] = Field(..., min_length=1)

class OrderItemOut(BaseModel):
    id: int
    product_id: int
    product: Optional[ProductRef] = None
    quantity: int
    unit_price: float
    line_total: float
    class Config:
        from_attributes = True

class OrderOut(BaseModel):
    id: int
    customer_id: int
    customer: Optional[CustomerRef] = None
    order_date: datetime
    total_amount: float
    status: str
    notes: Optional[str] = None
    items: List[OrderItemOut] = []
    class Config:
        from_attributes = True
