# catalog_api/main.py
import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import analytics, categories, customers, external, orders, products, search
from .config import get_settings
from .database import Base, async_session_maker, engine
from .observability import configure_logging
from .seed import seed_catalog

logger = structlog.get_logger(__name__)

settings = get_settings()

app = FastAPI(
    title="Product Catalog API",
    description="🛍️ Catalog of products, categories, customers and orders, with search, analytics and external API lookups",
    version="1.0.0",
    # Swagger UI на корне, кроме production
    docs_url=None if settings.is_production else "/",
)

# ✅ CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ✅ Роутеры
app.include_router(products.router)
app.include_router(categories.router)
app.include_router(customers.router)
app.include_router(orders.router)
app.include_router(search.router)
app.include_router(analytics.router)
app.include_router(external.router)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.on_event("startup")
async def on_startup():
    configure_logging(log_level=settings.log_level, json_format=settings.log_json)

    if settings.create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    if settings.seed_data:
        async with async_session_maker() as session:
            await seed_catalog(session)

    logger.info("app_started", environment=settings.environment, database=engine.url.render_as_string())


@app.on_event("shutdown")
async def on_shutdown():
    await engine.dispose()


if __name__ == "__main__":
    uvicorn.run("catalog_api.main:app", host="0.0.0.0", port=8000, reload=not settings.is_production)
