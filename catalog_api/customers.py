# catalog_api/customers.py
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .database import commit_or_conflict, get_session
from .models import Customer, Order, OrderItem, Product
from .queries import average, money
from .schemas import CustomerCreate, CustomerOut, CustomerUpdate

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/customers", tags=["customers"])


def _active_customers():
    return select(Customer).where(Customer.is_active.is_(True))


async def _email_taken(session: AsyncSession, email: str, exclude_id: Optional[int] = None) -> bool:
    """Emails are unique among active customers only."""
    stmt = select(Customer.id).where(
        func.lower(Customer.email) == email.lower(),
        Customer.is_active.is_(True),
    )
    if exclude_id is not None:
        stmt = stmt.where(Customer.id != exclude_id)
    res = await session.execute(stmt.limit(1))
    return res.scalar_one_or_none() is not None


@router.get("", response_model=List[CustomerOut])
async def list_customers(session: AsyncSession = Depends(get_session)):
    res = await session.execute(_active_customers().order_by(Customer.id))
    return res.scalars().all()


@router.get("/search", response_model=List[CustomerOut])
async def search_customers(query: Optional[str] = None, session: AsyncSession = Depends(get_session)):
    stmt = _active_customers()
    if query:
        stmt = stmt.where(
            Customer.name.icontains(query, autoescape=True)
            | Customer.email.icontains(query, autoescape=True)
        )
    res = await session.execute(stmt.order_by(Customer.id))
    return res.scalars().all()


@router.get("/by-city/{city}", response_model=List[CustomerOut])
async def customers_by_city(city: str, session: AsyncSession = Depends(get_session)):
    res = await session.execute(
        _active_customers().where(Customer.city.icontains(city, autoescape=True)).order_by(Customer.id)
    )
    return res.scalars().all()


@router.get("/{customer_id}", response_model=CustomerOut)
async def get_customer(customer_id: int, session: AsyncSession = Depends(get_session)):
    res = await session.execute(_active_customers().where(Customer.id == customer_id))
    customer = res.scalar_one_or_none()
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer


# 📊 Статистика покупателя
@router.get("/{customer_id}/stats", response_model=dict)
async def customer_stats(customer_id: int, session: AsyncSession = Depends(get_session)):
    res = await session.execute(_active_customers().where(Customer.id == customer_id))
    customer = res.scalar_one_or_none()
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")

    totals = await session.execute(
        select(
            func.count(Order.id),
            func.coalesce(func.sum(Order.total_amount), 0),
            func.max(Order.order_date),
        ).where(Order.customer_id == customer_id)
    )
    total_orders, total_spent, last_order_date = totals.one()

    favorites = await session.execute(
        select(Product.id, Product.name, func.sum(OrderItem.quantity).label("quantity"))
        .join(OrderItem, OrderItem.product_id == Product.id)
        .join(Order, Order.id == OrderItem.order_id)
        .where(Order.customer_id == customer_id)
        .group_by(Product.id, Product.name)
        .order_by(func.sum(OrderItem.quantity).desc(), Product.id)
        .limit(5)
    )

    return {
        "customer_id": customer.id,
        "customer_name": customer.name,
        "total_orders": total_orders,
        "total_spent": money(total_spent),
        "average_order_value": average(total_spent, total_orders),
        "last_order_date": last_order_date,
        "favorite_products": [
            {"product_id": pid, "product_name": name, "quantity": int(qty)}
            for pid, name, qty in favorites.all()
        ],
    }


@router.post("", response_model=CustomerOut, status_code=status.HTTP_201_CREATED)
async def create_customer(
    payload: CustomerCreate,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    if await _email_taken(session, payload.email):
        raise HTTPException(status_code=400, detail="A customer with this email already exists")

    customer = Customer(
        name=payload.name,
        email=payload.email,
        phone=payload.phone,
        address=payload.address,
        city=payload.city,
        postal_code=payload.postal_code,
    )
    session.add(customer)
    await session.commit()

    logger.info("customer_created", customer_id=customer.id)
    response.headers["Location"] = f"/api/customers/{customer.id}"
    return customer


@router.put("/{customer_id}", response_model=CustomerOut)
async def update_customer(
    customer_id: int,
    payload: CustomerUpdate,
    session: AsyncSession = Depends(get_session),
):
    if payload.id != customer_id:
        raise HTTPException(status_code=400, detail="Customer id in the body does not match the URL")

    res = await session.execute(select(Customer).where(Customer.id == customer_id))
    customer = res.scalar_one_or_none()
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")

    if payload.is_active and await _email_taken(session, payload.email, exclude_id=customer_id):
        raise HTTPException(status_code=400, detail="This email is already used by another customer")

    customer.name = payload.name
    customer.email = payload.email
    customer.phone = payload.phone
    customer.address = payload.address
    customer.city = payload.city
    customer.postal_code = payload.postal_code
    customer.is_active = payload.is_active

    await commit_or_conflict(session, Customer, customer_id)
    return customer


@router.delete("/{customer_id}", status_code=204)
async def delete_customer(customer_id: int, session: AsyncSession = Depends(get_session)):
    res = await session.execute(select(Customer).where(Customer.id == customer_id))
    customer = res.scalar_one_or_none()
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")

    customer.is_active = False
    await commit_or_conflict(session, Customer, customer_id)
    logger.info("customer_deactivated", customer_id=customer_id)
    return
