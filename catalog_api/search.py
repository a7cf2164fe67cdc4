# catalog_api/search.py
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from . import queries
from .database import get_session
from .models import Category, Order, OrderItem, Product, as_naive_utc, utcnow

router = APIRouter(prefix="/api/search", tags=["search"])

PURCHASE_PATTERN_WINDOW = timedelta(days=183)


def _product_summary(p: Product) -> Dict[str, Any]:
    return {
        "id": p.id,
        "name": p.name,
        "description": p.description,
        "price": queries.money(p.price),
        "stock": p.stock,
        "brand": p.brand,
        "rating": p.rating,
        "image_url": p.image_url,
        "created_at": p.created_at,
        "category": {"id": p.category.id, "name": p.category.name},
    }


# 🔎 Расширенный поиск товаров
@router.get("/products/advanced", response_model=dict)
async def advanced_product_search(
    name: Optional[str] = None,
    description: Optional[str] = None,
    brand: Optional[str] = None,
    category_id: Optional[int] = Query(None, alias="categoryId"),
    min_price: Optional[float] = Query(None, alias="minPrice"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    min_stock: Optional[int] = Query(None, alias="minStock"),
    min_rating: Optional[float] = Query(None, alias="minRating"),
    in_stock: Optional[bool] = Query(None, alias="inStock"),
    created_after: Optional[datetime] = Query(None, alias="createdAfter"),
    created_before: Optional[datetime] = Query(None, alias="createdBefore"),
    sort_by: str = Query("name", alias="sortBy"),
    sort_order: str = Query("asc", alias="sortOrder"),
    page: int = 1,
    page_size: int = Query(queries.DEFAULT_PAGE_SIZE, alias="pageSize"),
    session: AsyncSession = Depends(get_session),
):
    params = queries.ProductSearch(
        name=name,
        description=description,
        brand=brand,
        category_id=category_id,
        min_price=min_price,
        max_price=max_price,
        min_stock=min_stock,
        min_rating=min_rating,
        in_stock=in_stock,
        created_after=as_naive_utc(created_after),
        created_before=as_naive_utc(created_before),
        sort_by=sort_by,
        sort_order=sort_order,
    )
    pagination = queries.clamp_pagination(page, page_size)
    key, direction = params.effective_sort()

    stmt = queries.build_product_search(params)
    total_count = (await session.execute(queries.count_of(stmt))).scalar_one()

    page_stmt = queries.paginate(queries.order_product_search(stmt, key, direction), pagination)
    res = await session.execute(page_stmt.options(joinedload(Product.category)))
    products = res.scalars().all()

    filters = params.echo()
    filters.update(page=pagination.page, page_size=pagination.page_size)
    return {
        "products": [_product_summary(p) for p in products],
        "pagination": pagination.meta(total_count),
        "filters": filters,
    }


# 🧲 Похожие товары
@router.get("/products/{product_id}/similar", response_model=dict)
async def similar_products(
    product_id: int,
    limit: int = 5,
    session: AsyncSession = Depends(get_session),
):
    res = await session.execute(
        select(Product)
        .options(joinedload(Product.category))
        .where(Product.id == product_id, Product.is_active.is_(True))
    )
    source = res.scalar_one_or_none()
    if not source:
        raise HTTPException(status_code=404, detail="Product not found")

    stmt = queries.build_similar_products(source).limit(queries.clamp_limit(limit))
    res = await session.execute(stmt.options(joinedload(Product.category)))
    candidates = res.scalars().all()

    return {
        "original_product": {
            "id": source.id,
            "name": source.name,
            "price": queries.money(source.price),
            "brand": source.brand,
            "category": {"id": source.category.id, "name": source.category.name},
        },
        "similar_products": [
            {
                "id": p.id,
                "name": p.name,
                "price": queries.money(p.price),
                "brand": p.brand,
                "rating": p.rating,
                "image_url": p.image_url,
                "category": {"id": p.category.id, "name": p.category.name},
                "similarity_reasons": queries.similarity_reasons(source, p),
            }
            for p in candidates
        ],
    }


# 👥 Поведение покупателей
@router.get("/customers/behavior", response_model=dict)
async def customer_behavior(
    city: Optional[str] = None,
    min_spent: Optional[float] = Query(None, alias="minSpent"),
    min_orders: Optional[int] = Query(None, alias="minOrders"),
    registered_after: Optional[datetime] = Query(None, alias="registeredAfter"),
    page: int = 1,
    page_size: int = Query(queries.DEFAULT_PAGE_SIZE, alias="pageSize"),
    session: AsyncSession = Depends(get_session),
):
    pagination = queries.clamp_pagination(page, page_size)
    stmt = queries.build_customer_behavior(
        city=city,
        registered_after=as_naive_utc(registered_after),
        min_spent=min_spent,
        min_orders=min_orders,
    )
    total_count = (await session.execute(queries.count_of(stmt))).scalar_one()

    res = await session.execute(queries.paginate(queries.order_customer_behavior(stmt), pagination))
    rows = res.all()

    ids = [customer.id for customer, *_ in rows]
    categories: Dict[int, List[Dict[str, Any]]] = defaultdict(list)
    products: Dict[int, List[Dict[str, Any]]] = defaultdict(list)
    if ids:
        for customer_id, name, qty in (await session.execute(
            queries.customer_category_quantities(ids).order_by(Category.name)
        )).all():
            categories[customer_id].append({"category": name, "quantity": int(qty)})
        for customer_id, pid, name, qty in (await session.execute(
            queries.customer_product_quantities(ids).order_by(Product.id)
        )).all():
            products[customer_id].append({"product_id": pid, "product_name": name, "quantity": int(qty)})

    now = utcnow()
    analysis = []
    for customer, total_orders, total_spent, last_order_date in rows:
        analysis.append({
            "customer": {
                "id": customer.id,
                "name": customer.name,
                "email": customer.email,
                "city": customer.city,
                "created_at": customer.created_at,
            },
            "behavior": {
                "total_orders": total_orders,
                "total_spent": queries.money(total_spent),
                "average_order_value": queries.average(total_spent, total_orders),
                "last_order_date": last_order_date,
                "favorite_categories": queries.top_by_quantity(categories[customer.id]),
                "most_bought_products": queries.top_by_quantity(products[customer.id]),
                "customer_segment": queries.customer_segment(total_spent),
                "days_since_last_order": queries.days_since(last_order_date or customer.created_at, now),
            },
        })

    return {"customer_analysis": analysis, "pagination": pagination.meta(total_count)}


# 📅 Паттерны покупок по времени
@router.get("/purchase-patterns", response_model=dict)
async def purchase_patterns(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    session: AsyncSession = Depends(get_session),
):
    end = as_naive_utc(end_date) or utcnow()
    start = as_naive_utc(start_date) or end - PURCHASE_PATTERN_WINDOW
    in_range = (Order.order_date >= start, Order.order_date <= end)

    res = await session.execute(
        select(Order.id, Order.customer_id, Order.order_date, Order.total_amount).where(*in_range)
    )
    facts = [queries.OrderFact(*row) for row in res.all()]

    category_quantities: Dict[int, Dict[str, int]] = defaultdict(dict)
    if facts:
        res = await session.execute(
            select(OrderItem.order_id, Category.name, OrderItem.quantity)
            .join(Order, Order.id == OrderItem.order_id)
            .join(Product, Product.id == OrderItem.product_id)
            .join(Category, Category.id == Product.category_id)
            .where(*in_range)
        )
        for order_id, name, qty in res.all():
            per_order = category_quantities[order_id]
            per_order[name] = per_order.get(name, 0) + qty

    patterns = queries.group_purchase_patterns(facts, category_quantities)
    by_month = queries.roll_up(patterns, "month")
    by_weekday = queries.roll_up(patterns, "weekday")
    by_hour = queries.roll_up(patterns, "hour")

    return {
        "period": {"start_date": start, "end_date": end},
        "detailed_patterns": patterns,
        "seasonal_analysis": by_month,
        "weekday_analysis": by_weekday,
        "hourly_analysis": by_hour,
        "summary": {
            "best_month": queries.best_by_revenue(by_month),
            "best_day_of_week": queries.best_by_revenue(by_weekday),
            "best_hour": queries.best_by_revenue(by_hour),
        },
    }
