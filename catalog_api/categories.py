# catalog_api/categories.py
from typing import List

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from .database import commit_or_conflict, get_session
from .models import Category, Product
from .queries import money
from .schemas import CategoryCreate, CategoryDetail, CategoryOut, CategoryUpdate, ProductOut

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/categories", tags=["categories"])


def _active_product_counts():
    return (
        select(Product.category_id, func.count(Product.id).label("product_count"))
        .where(Product.is_active.is_(True))
        .group_by(Product.category_id)
        .subquery("active_products")
    )


def _category_out(category: Category, product_count: int) -> CategoryOut:
    out = CategoryOut.model_validate(category)
    out.product_count = product_count
    return out


async def _get_active_category(session: AsyncSession, category_id: int) -> Category:
    res = await session.execute(
        select(Category).where(Category.id == category_id, Category.is_active.is_(True))
    )
    category = res.scalar_one_or_none()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


async def _count_active_products(session: AsyncSession, category_id: int) -> int:
    res = await session.execute(
        select(func.count(Product.id)).where(Product.category_id == category_id, Product.is_active.is_(True))
    )
    return res.scalar_one()


@router.get("", response_model=List[CategoryOut])
async def list_categories(session: AsyncSession = Depends(get_session)):
    counts = _active_product_counts()
    res = await session.execute(
        select(Category, func.coalesce(counts.c.product_count, 0))
        .outerjoin(counts, counts.c.category_id == Category.id)
        .where(Category.is_active.is_(True))
        .order_by(Category.id)
    )
    return [_category_out(category, count) for category, count in res.all()]


@router.get("/{category_id}", response_model=CategoryDetail)
async def get_category(category_id: int, session: AsyncSession = Depends(get_session)):
    category = await _get_active_category(session, category_id)
    res = await session.execute(
        select(Product)
        .options(joinedload(Product.category))
        .where(Product.category_id == category_id, Product.is_active.is_(True))
        .order_by(Product.id)
    )
    products = res.scalars().all()

    detail = CategoryDetail.model_validate(category)
    detail.product_count = len(products)
    detail.products = [ProductOut.model_validate(p) for p in products]
    return detail


# 📊 Статистика по категории
@router.get("/{category_id}/stats", response_model=dict)
async def category_stats(category_id: int, session: AsyncSession = Depends(get_session)):
    category = await _get_active_category(session, category_id)
    active = (Product.category_id == category_id, Product.is_active.is_(True))

    res = await session.execute(
        select(
            func.count(Product.id),
            func.avg(Product.price),
            func.coalesce(func.sum(Product.stock), 0),
            func.avg(Product.rating),
        ).where(*active)
    )
    total_products, avg_price, total_stock, avg_rating = res.one()

    brands = await session.execute(
        select(Product.brand, func.count(Product.id).label("count"))
        .where(*active, Product.brand.isnot(None), Product.brand != "")
        .group_by(Product.brand)
        .order_by(func.count(Product.id).desc(), Product.brand)
        .limit(5)
    )

    return {
        "category_id": category.id,
        "category_name": category.name,
        "total_products": total_products,
        "average_price": money(avg_price),
        "total_stock": int(total_stock),
        # AVG ignores NULL ratings
        "average_rating": round(float(avg_rating), 2) if avg_rating is not None else 0.0,
        "top_brands": [{"brand": brand, "count": count} for brand, count in brands.all()],
    }


@router.post("", response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryCreate,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    category = Category(name=payload.name, description=payload.description)
    session.add(category)
    await session.commit()

    logger.info("category_created", category_id=category.id)
    response.headers["Location"] = f"/api/categories/{category.id}"
    return _category_out(category, 0)


@router.put("/{category_id}", response_model=CategoryOut)
async def update_category(
    category_id: int,
    payload: CategoryUpdate,
    session: AsyncSession = Depends(get_session),
):
    if payload.id != category_id:
        raise HTTPException(status_code=400, detail="Category id in the body does not match the URL")

    res = await session.execute(select(Category).where(Category.id == category_id))
    category = res.scalar_one_or_none()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")

    if category.is_active and not payload.is_active:
        in_use = await _count_active_products(session, category_id)
        if in_use:
            logger.warning("category_deactivate_rejected", category_id=category_id, active_products=in_use)
            raise HTTPException(
                status_code=400,
                detail="Cannot deactivate a category that still has active products",
            )

    category.name = payload.name
    category.description = payload.description
    category.is_active = payload.is_active

    await commit_or_conflict(session, Category, category_id)
    return _category_out(category, await _count_active_products(session, category_id))


@router.delete("/{category_id}", status_code=204)
async def delete_category(category_id: int, session: AsyncSession = Depends(get_session)):
    res = await session.execute(select(Category).where(Category.id == category_id))
    category = res.scalar_one_or_none()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")

    in_use = await _count_active_products(session, category_id)
    if in_use:
        logger.warning("category_delete_rejected", category_id=category_id, active_products=in_use)
        raise HTTPException(
            status_code=400,
            detail="Cannot delete a category that still has active products",
        )

    category.is_active = False
    await commit_or_conflict(session, Category, category_id)
    logger.info("category_deactivated", category_id=category_id)
    return
