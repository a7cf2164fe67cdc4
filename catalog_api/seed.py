# catalog_api/seed.py
"""Fixed demo catalog, inserted once into an empty database."""
from decimal import Decimal

import structlog
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Category, Customer, Product

logger = structlog.get_logger(__name__)

CATEGORIES = [
    {"id": 1, "name": "Electronics", "description": "Electronic products and gadgets"},
    {"id": 2, "name": "Clothing", "description": "Clothing and accessories"},
    {"id": 3, "name": "Home & Garden", "description": "Products for home and garden"},
    {"id": 4, "name": "Books", "description": "Books and educational material"},
    {"id": 5, "name": "Sports", "description": "Sports equipment"},
]

PRODUCTS = [
    {"id": 1, "name": "Samsung Galaxy Smartphone", "description": "Smartphone with 128GB",
     "price": Decimal("1299.99"), "stock": 50, "category_id": 1, "brand": "Samsung", "rating": 4.5},
    {"id": 2, "name": "Dell Inspiron Notebook", "description": "15.6 inch notebook",
     "price": Decimal("2499.99"), "stock": 25, "category_id": 1, "brand": "Dell", "rating": 4.2},
    {"id": 3, "name": "Polo Shirt", "description": "Men's polo shirt",
     "price": Decimal("89.99"), "stock": 100, "category_id": 2, "brand": "Lacoste", "rating": 4.0},
    {"id": 4, "name": "Nike Air Max", "description": "Nike running shoes",
     "price": Decimal("399.99"), "stock": 75, "category_id": 5, "brand": "Nike", "rating": 4.7},
    {"id": 5, "name": "Clean Code", "description": "A book about clean code",
     "price": Decimal("79.99"), "stock": 30, "category_id": 4, "brand": "Pearson", "rating": 4.8},
]

CUSTOMERS = [
    {"id": 1, "name": "João Silva", "email": "joao@email.com", "phone": "11999999999", "city": "São Paulo"},
    {"id": 2, "name": "Maria Santos", "email": "maria@email.com", "phone": "11888888888", "city": "Rio de Janeiro"},
    {"id": 3, "name": "Pedro Oliveira", "email": "pedro@email.com", "phone": "11777777777", "city": "Belo Horizonte"},
]


async def seed_catalog(session: AsyncSession) -> bool:
    """Insert the demo rows unless categories already exist. Returns True when seeded."""
    res = await session.execute(select(func.count(Category.id)))
    if res.scalar_one():
        return False

    session.add_all(Category(**row) for row in CATEGORIES)
    await session.flush()
    session.add_all(Product(**row) for row in PRODUCTS)
    session.add_all(Customer(**row) for row in CUSTOMERS)
    await session.flush()

    # explicit ids do not move Postgres sequences; next insert would collide
    if session.get_bind().dialect.name == "postgresql":
        for table in ("categories", "products", "customers"):
            await session.execute(
                text(f"SELECT setval(pg_get_serial_sequence('{table}', 'id'), (SELECT MAX(id) FROM {table}))")
            )

    await session.commit()
    logger.info(
        "catalog_seeded",
        categories=len(CATEGORIES),
        products=len(PRODUCTS),
        customers=len(CUSTOMERS),
    )
    return True
