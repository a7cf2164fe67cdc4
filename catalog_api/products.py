# catalog_api/products.py
from decimal import Decimal
from typing import List, Optional

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from .database import commit_or_conflict, get_session
from .models import Category, Product
from .schemas import ProductCreate, ProductOut, ProductUpdate

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])


def _products():
    return select(Product).options(joinedload(Product.category))


def _active_products():
    return _products().where(Product.is_active.is_(True))


async def _load_product(session: AsyncSession, product_id: int) -> Product:
    # populate_existing refreshes an instance already in the identity map
    res = await session.execute(
        _products().where(Product.id == product_id).execution_options(populate_existing=True)
    )
    return res.scalar_one()


async def _ensure_category(session: AsyncSession, category_id: int) -> None:
    res = await session.execute(
        select(Category.id).where(Category.id == category_id, Category.is_active.is_(True))
    )
    if res.scalar_one_or_none() is None:
        raise HTTPException(status_code=400, detail=f"Category {category_id} not found or inactive")


# 📋 Список активных товаров
@router.get("", response_model=List[ProductOut])
async def list_products(session: AsyncSession = Depends(get_session)):
    result = await session.execute(_active_products().order_by(Product.id))
    return result.scalars().all()


# 🔎 Простой поиск (подробный поиск живёт в /api/search)
@router.get("/search", response_model=List[ProductOut])
async def search_products(
    query: Optional[str] = None,
    category_id: Optional[int] = Query(None, alias="categoryId"),
    min_price: Optional[float] = Query(None, alias="minPrice"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    brand: Optional[str] = None,
    min_rating: Optional[float] = Query(None, alias="minRating"),
    session: AsyncSession = Depends(get_session),
):
    stmt = _active_products()
    if query:
        stmt = stmt.where(
            Product.name.icontains(query, autoescape=True)
            | Product.description.icontains(query, autoescape=True)
        )
    if category_id is not None:
        stmt = stmt.where(Product.category_id == category_id)
    if min_price is not None:
        stmt = stmt.where(Product.price >= min_price)
    if max_price is not None:
        stmt = stmt.where(Product.price <= max_price)
    if brand:
        stmt = stmt.where(Product.brand.icontains(brand, autoescape=True))
    if min_rating is not None:
        stmt = stmt.where(Product.rating >= min_rating)

    result = await session.execute(stmt.order_by(Product.id))
    return result.scalars().all()


@router.get("/category/{category_id}", response_model=List[ProductOut])
async def products_by_category(category_id: int, session: AsyncSession = Depends(get_session)):
    result = await session.execute(
        _active_products().where(Product.category_id == category_id).order_by(Product.id)
    )
    return result.scalars().all()


@router.get("/low-stock", response_model=List[ProductOut])
async def low_stock_products(threshold: int = 10, session: AsyncSession = Depends(get_session)):
    result = await session.execute(
        _active_products().where(Product.stock <= threshold).order_by(Product.stock, Product.id)
    )
    return result.scalars().all()


@router.get("/top-rated", response_model=List[ProductOut])
async def top_rated_products(
    count: int = Query(10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
):
    result = await session.execute(
        _active_products()
        .where(Product.rating.isnot(None))
        .order_by(Product.rating.desc(), Product.id)
        .limit(count)
    )
    return result.scalars().all()


@router.get("/{product_id}", response_model=ProductOut)
async def get_product(product_id: int, session: AsyncSession = Depends(get_session)):
    result = await session.execute(_active_products().where(Product.id == product_id))
    product = result.scalar_one_or_none()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.post("", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    await _ensure_category(session, payload.category_id)

    product = Product(
        name=payload.name,
        description=payload.description,
        price=Decimal(str(payload.price)),
        stock=payload.stock,
        category_id=payload.category_id,
        image_url=payload.image_url,
        brand=payload.brand,
        rating=payload.rating,
    )
    session.add(product)
    await session.commit()

    logger.info("product_created", product_id=product.id, category_id=product.category_id)
    response.headers["Location"] = f"/api/products/{product.id}"
    return await _load_product(session, product.id)


@router.put("/{product_id}", response_model=ProductOut)
async def update_product(
    product_id: int,
    payload: ProductUpdate,
    session: AsyncSession = Depends(get_session),
):
    if payload.id != product_id:
        raise HTTPException(status_code=400, detail="Product id in the body does not match the URL")

    result = await session.execute(select(Product).where(Product.id == product_id))
    product = result.scalar_one_or_none()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    await _ensure_category(session, payload.category_id)

    product.name = payload.name
    product.description = payload.description
    product.price = Decimal(str(payload.price))
    product.stock = payload.stock
    product.category_id = payload.category_id
    product.image_url = payload.image_url
    product.brand = payload.brand
    product.rating = payload.rating
    product.is_active = payload.is_active

    await commit_or_conflict(session, Product, product_id)
    return await _load_product(session, product_id)


@router.delete("/{product_id}", status_code=204)
async def delete_product(product_id: int, session: AsyncSession = Depends(get_session)):
    result = await session.execute(select(Product).where(Product.id == product_id))
    product = result.scalar_one_or_none()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    # soft delete: order history keeps pointing at the row
    product.is_active = False
    await commit_or_conflict(session, Product, product_id)
    logger.info("product_deactivated", product_id=product_id)
    return


# 📦 Остаток: тело запроса это просто число, например 42
@router.patch("/{product_id}/stock", response_model=ProductOut)
async def update_stock(
    product_id: int,
    new_stock: int = Body(..., ge=0),
    session: AsyncSession = Depends(get_session),
):
    result = await session.execute(select(Product).where(Product.id == product_id))
    product = result.scalar_one_or_none()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    product.stock = new_stock
    await commit_or_conflict(session, Product, product_id)
    logger.info("stock_updated", product_id=product_id, stock=new_stock)
    return await _load_product(session, product_id)
