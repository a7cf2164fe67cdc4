# catalog_api/analytics.py
import calendar
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query
from sqlalchemy import case, distinct, extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings, get_settings
from .database import get_session
from .models import Category, Customer, Order, OrderItem, OrderStatus, Product, utcnow
from .queries import PRICE_RANGES, average, money, price_range_label

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


def months_ago(moment: datetime, months: int) -> datetime:
    """Same day-of-month ``months`` back, clamped to the end of shorter months."""
    index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(index, 12)
    day = min(moment.day, calendar.monthrange(year, month + 1)[1])
    return moment.replace(year=year, month=month + 1, day=day)


async def _scalar(session: AsyncSession, stmt) -> Any:
    return (await session.execute(stmt)).scalar_one()


# 📊 Главная панель
@router.get("/dashboard", response_model=dict)
async def dashboard(
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    total_products = await _scalar(session, select(func.count(Product.id)).where(Product.is_active.is_(True)))
    total_categories = await _scalar(session, select(func.count(Category.id)).where(Category.is_active.is_(True)))
    total_customers = await _scalar(session, select(func.count(Customer.id)).where(Customer.is_active.is_(True)))
    total_orders = await _scalar(session, select(func.count(Order.id)))
    total_revenue = await _scalar(session, select(func.coalesce(func.sum(Order.total_amount), 0)))
    low_stock = await _scalar(
        session,
        select(func.count(Product.id)).where(
            Product.is_active.is_(True), Product.stock <= settings.low_stock_threshold
        ),
    )
    pending = await _scalar(
        session, select(func.count(Order.id)).where(Order.status == OrderStatus.PENDING.value)
    )

    recent_orders = await session.execute(
        select(Order.id, Customer.name, Order.total_amount, Order.order_date, Order.status)
        .join(Customer, Customer.id == Order.customer_id)
        .order_by(Order.order_date.desc(), Order.id.desc())
        .limit(5)
    )
    new_customers = await session.execute(
        select(Customer.id, Customer.name, Customer.email, Customer.created_at)
        .where(Customer.is_active.is_(True))
        .order_by(Customer.created_at.desc(), Customer.id.desc())
        .limit(5)
    )

    return {
        "summary": {
            "total_products": total_products,
            "total_categories": total_categories,
            "total_customers": total_customers,
            "total_orders": total_orders,
            "total_revenue": money(total_revenue),
            "average_order_value": average(total_revenue, total_orders),
            "low_stock_products": low_stock,
            "pending_orders": pending,
        },
        "recent_activity": {
            "recent_orders": [
                {"id": oid, "customer_name": name, "total_amount": money(total), "order_date": date, "status": st}
                for oid, name, total, date, st in recent_orders.all()
            ],
            "new_customers": [
                {"id": cid, "name": name, "email": email, "created_at": created}
                for cid, name, email, created in new_customers.all()
            ],
        },
    }


@router.get("/top-selling-products", response_model=list)
async def top_selling_products(
    top: int = Query(10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
):
    quantity = func.sum(OrderItem.quantity)
    res = await session.execute(
        select(
            Product.id, Product.name, Category.name,
            quantity, func.sum(OrderItem.line_total), func.count(OrderItem.id),
        )
        .select_from(OrderItem)
        .join(Product, Product.id == OrderItem.product_id)
        .join(Category, Category.id == Product.category_id)
        .where(Product.is_active.is_(True))
        .group_by(Product.id, Product.name, Category.name)
        .order_by(quantity.desc(), Product.id)
        .limit(top)
    )
    return [
        {
            "product_id": pid,
            "product_name": name,
            "category_name": category,
            "total_quantity_sold": int(qty),
            "total_revenue": money(revenue),
            "order_count": count,
        }
        for pid, name, category, qty, revenue, count in res.all()
    ]


@router.get("/sales-by-category", response_model=list)
async def sales_by_category(session: AsyncSession = Depends(get_session)):
    revenue = func.sum(OrderItem.line_total)
    res = await session.execute(
        select(
            Category.name,
            func.sum(OrderItem.quantity), revenue,
            func.count(distinct(OrderItem.product_id)), func.avg(OrderItem.unit_price),
        )
        .select_from(OrderItem)
        .join(Product, Product.id == OrderItem.product_id)
        .join(Category, Category.id == Product.category_id)
        .where(Product.is_active.is_(True))
        .group_by(Category.id, Category.name)
        .order_by(revenue.desc(), Category.name)
    )
    return [
        {
            "category_name": name,
            "total_quantity_sold": int(qty),
            "total_revenue": money(rev),
            "product_count": products,
            "average_price": money(avg_price),
        }
        for name, qty, rev, products, avg_price in res.all()
    ]


@router.get("/top-customers", response_model=list)
async def top_customers(
    top: int = Query(10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
):
    spent = func.sum(Order.total_amount)
    res = await session.execute(
        select(
            Customer.id, Customer.name, Customer.email,
            func.count(Order.id), spent, func.max(Order.order_date),
        )
        .select_from(Order)
        .join(Customer, Customer.id == Order.customer_id)
        .where(Customer.is_active.is_(True))
        .group_by(Customer.id, Customer.name, Customer.email)
        .order_by(spent.desc(), Customer.id)
        .limit(top)
    )
    return [
        {
            "customer_id": cid,
            "customer_name": name,
            "customer_email": email,
            "total_orders": orders,
            "total_spent": money(total),
            "average_order_value": average(total, orders),
            "last_order_date": last,
        }
        for cid, name, email, orders, total, last in res.all()
    ]


# 📅 Продажи по месяцам
@router.get("/monthly-sales", response_model=list)
async def monthly_sales(
    months: int = Query(12, ge=1, le=120),
    session: AsyncSession = Depends(get_session),
):
    start = months_ago(utcnow(), months)
    year = extract("year", Order.order_date)
    month = extract("month", Order.order_date)
    revenue = func.sum(Order.total_amount)
    res = await session.execute(
        select(year, month, func.count(Order.id), revenue)
        .where(Order.order_date >= start)
        .group_by(year, month)
        .order_by(year, month)
    )
    out = []
    for y, m, orders, total in res.all():
        y, m = int(y), int(m)
        out.append({
            "year": y,
            "month": m,
            "month_name": f"{calendar.month_name[m]} {y}",
            "total_orders": orders,
            "total_revenue": money(total),
            "average_order_value": average(total, orders),
        })
    return out


# 💲 Товары по ценовым диапазонам
@router.get("/products-by-price-range", response_model=list)
async def products_by_price_range(session: AsyncSession = Depends(get_session)):
    res = await session.execute(
        select(Product.price, Product.stock).where(Product.is_active.is_(True))
    )
    buckets: Dict[str, Dict[str, Any]] = {}
    for price, stock in res.all():
        bucket = buckets.setdefault(
            price_range_label(price), {"count": 0, "total": Decimal("0"), "stock": 0}
        )
        bucket["count"] += 1
        bucket["total"] += Decimal(str(price))
        bucket["stock"] += stock

    # cheapest range first; empty ranges are left out
    return [
        {
            "price_range": label,
            "product_count": buckets[label]["count"],
            "average_price": average(buckets[label]["total"], buckets[label]["count"]),
            "total_stock": buckets[label]["stock"],
        }
        for label, _ in PRICE_RANGES
        if label in buckets
    ]


@router.get("/stock-by-category", response_model=list)
async def stock_by_category(
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    value = func.sum(Product.price * Product.stock)
    res = await session.execute(
        select(
            Category.name,
            func.count(Product.id),
            func.sum(Product.stock),
            func.avg(Product.stock),
            func.sum(case((Product.stock <= settings.low_stock_threshold, 1), else_=0)),
            func.sum(case((Product.stock == 0, 1), else_=0)),
            value,
        )
        .select_from(Product)
        .join(Category, Category.id == Product.category_id)
        .where(Product.is_active.is_(True))
        .group_by(Category.id, Category.name)
        .order_by(value.desc(), Category.name)
    )
    return [
        {
            "category_name": name,
            "total_products": count,
            "total_stock": int(stock or 0),
            "average_stock": round(float(avg_stock or 0), 2),
            "low_stock_products": int(low or 0),
            "out_of_stock_products": int(out or 0),
            "total_value": money(total_value),
        }
        for name, count, stock, avg_stock, low, out, total_value in res.all()
    ]


# 📈 Тренды продаж по дням
@router.get("/sales-trends", response_model=dict)
async def sales_trends(
    days: int = Query(30, ge=1, le=3650),
    session: AsyncSession = Depends(get_session),
):
    end = utcnow()
    start = end - timedelta(days=days)
    res = await session.execute(
        select(Order.order_date, Order.total_amount, Order.customer_id).where(Order.order_date >= start)
    )

    # grouped here so the day boundary is the same on every database
    by_day: Dict[Any, Dict[str, Any]] = defaultdict(lambda: {"orders": 0, "revenue": Decimal("0"), "customers": set()})
    for order_date, total, customer_id in res.all():
        day = by_day[order_date.date()]
        day["orders"] += 1
        day["revenue"] += Decimal(str(total))
        day["customers"].add(customer_id)

    daily = [
        {
            "date": day.isoformat(),
            "total_orders": data["orders"],
            "total_revenue": money(data["revenue"]),
            "unique_customers": len(data["customers"]),
        }
        for day, data in sorted(by_day.items())
    ]
    total_revenue = sum((d["total_revenue"] for d in daily), 0.0)
    total_orders = sum(d["total_orders"] for d in daily)

    return {
        "period": {"start_date": start, "end_date": end, "days": days},
        "daily_sales": daily,
        "summary": {
            "total_revenue": round(total_revenue, 2),
            "total_orders": total_orders,
            "average_daily_revenue": round(total_revenue / len(daily), 2) if daily else 0.0,
            "average_daily_orders": round(total_orders / len(daily), 2) if daily else 0.0,
            "best_day": max(daily, key=lambda d: d["total_revenue"], default=None),
            "worst_day": min(daily, key=lambda d: d["total_revenue"], default=None),
        },
    }


@router.get("/top-rated-products", response_model=list)
async def top_rated_products(
    top: int = Query(10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
):
    res = await session.execute(
        select(
            Product.id, Product.name, Product.description, Product.price,
            Product.rating, Product.brand, Category.name, Product.stock,
        )
        .join(Category, Category.id == Product.category_id)
        .where(Product.is_active.is_(True), Product.rating.isnot(None))
        .order_by(Product.rating.desc(), Product.created_at.desc(), Product.id)
        .limit(top)
    )
    return [
        {
            "id": pid,
            "name": name,
            "description": description,
            "price": money(price),
            "rating": rating,
            "brand": brand,
            "category_name": category,
            "stock": stock,
        }
        for pid, name, description, price, rating, brand, category, stock in res.all()
    ]


@router.get("/brand-performance", response_model=list)
async def brand_performance(session: AsyncSession = Depends(get_session)):
    count = func.count(Product.id)
    res = await session.execute(
        select(
            Product.brand, count,
            func.avg(Product.price), func.avg(Product.rating), func.sum(Product.stock),
            func.min(Product.price), func.max(Product.price),
        )
        .where(Product.is_active.is_(True), Product.brand.isnot(None), Product.brand != "")
        .group_by(Product.brand)
        .order_by(count.desc(), Product.brand)
    )
    return [
        {
            "brand": brand,
            "product_count": products,
            "average_price": money(avg_price),
            # AVG skips NULL ratings; a brand with none rated reports 0
            "average_rating": round(float(avg_rating), 2) if avg_rating is not None else 0.0,
            "total_stock": int(stock or 0),
            "price_range": {"min": money(low), "max": money(high)},
        }
        for brand, products, avg_price, avg_rating, stock, low, high in res.all()
    ]
