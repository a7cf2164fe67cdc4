import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey, Index,
    Integer, Numeric, String, Text,
)
from sqlalchemy.orm import relationship

from .database import Base


def utcnow() -> datetime:
    """Current time as naive UTC, the form every timestamp column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Client datetimes may carry an offset; stored ones never do."""
    if moment is None or moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


class OrderStatus(str, enum.Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"

    @classmethod
    def values(cls) -> list[str]:
        return [s.value for s in cls]


# Relationships point one way only and refuse to lazy-load: every query that
# needs related rows says so with joinedload/selectinload or an explicit join.

# 🗂️ Category
class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    description = Column(String(200), nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    is_active = Column(Boolean, nullable=False, default=True)


# 🛍️ Product
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False)
    image_url = Column(String(255), nullable=True)
    brand = Column(String(50), nullable=True)
    rating = Column(Float, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    # bumped on every UPDATE; a concurrent writer fails with StaleDataError
    version = Column(Integer, nullable=False, default=1)

    category = relationship("Category", lazy="raise")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_nonneg"),
        CheckConstraint("stock >= 0", name="ck_products_stock_nonneg"),
        CheckConstraint("rating IS NULL OR (rating >= 0 AND rating <= 5)", name="ck_products_rating_range"),
        Index("ix_products_category_active", "category_id", "is_active"),
    )


# 👤 Customer
class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(100), nullable=False, index=True)  # unique among active customers, checked in handlers
    phone = Column(String(20), nullable=True)
    address = Column(String(200), nullable=True)
    city = Column(String(50), nullable=True)
    postal_code = Column(String(10), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    is_active = Column(Boolean, nullable=False, default=True)


# 🧾 Order
class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False)
    order_date = Column(DateTime, nullable=False, default=utcnow)
    total_amount = Column(Numeric(18, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    notes = Column(String(200), nullable=True)

    customer = relationship("Customer", lazy="raise")
    items = relationship(
        "OrderItem",
        lazy="raise",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderItem.id",
    )

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_orders_total_nonneg"),
        Index("ix_orders_customer_date", "customer_id", "order_date"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(18, 2), nullable=False)  # 💰 price at the moment of purchase
    line_total = Column(Numeric(18, 2), nullable=False)  # quantity * unit_price

    product = relationship("Product", lazy="raise")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_orderitem_quantity_pos"),
        CheckConstraint("unit_price >= 0", name="ck_orderitem_price_nonneg"),
        Index("ix_order_items_order", "order_id"),
    )
