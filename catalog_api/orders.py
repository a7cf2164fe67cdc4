# catalog_api/orders.py
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from .database import commit_or_conflict, get_session
from .models import Category, Customer, Order, OrderItem, OrderStatus, Product, as_naive_utc
from .queries import average, money
from .schemas import OrderCreate, OrderOut

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])

CENT = Decimal("0.01")


def _orders():
    """Orders with customer, items and item products loaded up front."""
    return select(Order).options(
        joinedload(Order.customer),
        selectinload(Order.items).joinedload(OrderItem.product),
    )


def _newest_first(stmt):
    return stmt.order_by(Order.order_date.desc(), Order.id.desc())


async def _load_order(session: AsyncSession, order_id: int) -> Optional[Order]:
    res = await session.execute(
        _orders().where(Order.id == order_id).execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


# 🧾 Все заказы, новые сверху
@router.get("", response_model=List[OrderOut])
async def list_orders(session: AsyncSession = Depends(get_session)):
    res = await session.execute(_newest_first(_orders()))
    return res.scalars().all()


@router.get("/customer/{customer_id}", response_model=List[OrderOut])
async def orders_by_customer(customer_id: int, session: AsyncSession = Depends(get_session)):
    res = await session.execute(_newest_first(_orders().where(Order.customer_id == customer_id)))
    return res.scalars().all()


@router.get("/status/{order_status}", response_model=List[OrderOut])
async def orders_by_status(order_status: str, session: AsyncSession = Depends(get_session)):
    res = await session.execute(
        _newest_first(_orders().where(func.lower(Order.status) == order_status.lower()))
    )
    return res.scalars().all()


@router.get("/period", response_model=List[OrderOut])
async def orders_by_period(
    start_date: datetime = Query(..., alias="startDate"),
    end_date: datetime = Query(..., alias="endDate"),
    session: AsyncSession = Depends(get_session),
):
    res = await session.execute(
        _newest_first(
            _orders().where(
                Order.order_date >= as_naive_utc(start_date),
                Order.order_date <= as_naive_utc(end_date),
            )
        )
    )
    return res.scalars().all()


# 📊 Отчёт по продажам
@router.get("/sales-report", response_model=dict)
async def sales_report(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    session: AsyncSession = Depends(get_session),
):
    start, end = as_naive_utc(start_date), as_naive_utc(end_date)
    in_range = []
    if start is not None:
        in_range.append(Order.order_date >= start)
    if end is not None:
        in_range.append(Order.order_date <= end)

    totals = await session.execute(
        select(func.count(Order.id), func.coalesce(func.sum(Order.total_amount), 0)).where(*in_range)
    )
    total_orders, total_revenue = totals.one()

    by_status = await session.execute(
        select(Order.status, func.count(Order.id), func.coalesce(func.sum(Order.total_amount), 0))
        .where(*in_range)
        .group_by(Order.status)
        .order_by(Order.status)
    )

    revenue = func.sum(OrderItem.line_total)
    top_products = await session.execute(
        select(Product.id, Product.name, func.sum(OrderItem.quantity), revenue)
        .join(OrderItem, OrderItem.product_id == Product.id)
        .join(Order, Order.id == OrderItem.order_id)
        .where(*in_range)
        .group_by(Product.id, Product.name)
        .order_by(revenue.desc(), Product.id)
        .limit(10)
    )
    top_categories = await session.execute(
        select(Category.id, Category.name, func.sum(OrderItem.quantity), revenue)
        .join(Product, Product.category_id == Category.id)
        .join(OrderItem, OrderItem.product_id == Product.id)
        .join(Order, Order.id == OrderItem.order_id)
        .where(*in_range)
        .group_by(Category.id, Category.name)
        .order_by(revenue.desc(), Category.id)
        .limit(5)
    )

    return {
        "period": {"start_date": start, "end_date": end},
        "total_orders": total_orders,
        "total_revenue": money(total_revenue),
        "average_order_value": average(total_revenue, total_orders),
        "orders_by_status": [
            {"status": s, "count": count, "revenue": money(rev)} for s, count, rev in by_status.all()
        ],
        "top_products": [
            {"product_id": pid, "product_name": name, "quantity": int(qty), "revenue": money(rev)}
            for pid, name, qty, rev in top_products.all()
        ],
        "top_categories": [
            {"category_id": cid, "category_name": name, "quantity": int(qty), "revenue": money(rev)}
            for cid, name, qty, rev in top_categories.all()
        ],
    }


@router.get("/{order_id}", response_model=OrderOut)
async def get_order(order_id: int, session: AsyncSession = Depends(get_session)):
    order = await _load_order(session, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


# ✅ Оформление заказа: проверка остатков, снимок цены, списание со склада, один commit
@router.post("", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    # 1) Покупатель
    res = await session.execute(select(Customer).where(Customer.id == payload.customer_id))
    customer = res.scalar_one_or_none()
    if not customer or not customer.is_active:
        raise HTTPException(status_code=400, detail=f"Customer {payload.customer_id} not found")

    # 2) Проверяем все позиции до любых изменений;
    # один товар в нескольких строках суммируется
    requested: Dict[int, int] = {}
    for item in payload.items:
        requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity

    prod_res = await session.execute(select(Product).where(Product.id.in_(list(requested))))
    products = {p.id: p for p in prod_res.scalars().all()}

    for product_id, quantity in requested.items():
        product = products.get(product_id)
        if not product or not product.is_active:
            raise HTTPException(status_code=400, detail=f"Product {product_id} not found")
        if product.stock < quantity:
            raise HTTPException(
                status_code=400,
                detail=f"Insufficient stock for product {product.name}. Available: {product.stock}",
            )

    # 3) Заголовок заказа
    order = Order(
        customer_id=customer.id,
        status=OrderStatus.PENDING.value,
        notes=payload.notes,
        total_amount=Decimal("0.00"),
    )
    session.add(order)
    await session.flush()  # получим order.id

    # 4) Позиции со снимком цены и списание остатков
    total = Decimal("0.00")
    for item in payload.items:
        p = products[item.product_id]
        unit_price = Decimal(str(p.price)).quantize(CENT)
        line_total = (unit_price * item.quantity).quantize(CENT)
        session.add(OrderItem(
            order_id=order.id,
            product_id=p.id,
            quantity=item.quantity,
            unit_price=unit_price,  # фиксируем цену на момент покупки
            line_total=line_total,
        ))
        p.stock = p.stock - item.quantity
        total += line_total

    order.total_amount = total
    await commit_or_conflict(session)

    logger.info(
        "order_placed",
        order_id=order.id,
        customer_id=customer.id,
        items=len(payload.items),
        total_amount=str(total),
    )
    response.headers["Location"] = f"/api/orders/{order.id}"
    return await _load_order(session, order.id)


# 🔁 Смена статуса: тело запроса это строка, например "Shipped"
@router.patch("/{order_id}/status", response_model=OrderOut)
async def update_order_status(
    order_id: int,
    new_status: str = Body(...),
    session: AsyncSession = Depends(get_session),
):
    res = await session.execute(select(Order).where(Order.id == order_id))
    order = res.scalar_one_or_none()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    valid = OrderStatus.values()
    if new_status not in valid:
        raise HTTPException(
            status_code=400,
            detail="Invalid status. Valid values: " + ", ".join(valid),
        )

    previous = order.status
    order.status = new_status
    await commit_or_conflict(session, Order, order_id)
    logger.info("order_status_changed", order_id=order_id, previous=previous, status=new_status)
    return await _load_order(session, order_id)


# ❌ Отмена заказа с возвратом остатков на склад
@router.post("/{order_id}/cancel", response_model=OrderOut)
async def cancel_order(order_id: int, session: AsyncSession = Depends(get_session)):
    order = await _load_order(session, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    if order.status in (OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value):
        raise HTTPException(
            status_code=400,
            detail=f"Cannot cancel an order that is already {order.status}",
        )

    for item in order.items:
        item.product.stock = item.product.stock + item.quantity

    order.status = OrderStatus.CANCELLED.value
    await commit_or_conflict(session, Order, order_id)

    logger.info("order_cancelled", order_id=order_id, items=len(order.items))
    return await _load_order(session, order_id)
