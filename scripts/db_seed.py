"""Create the catalog tables (if missing) and seed the demo catalog.

Idempotent: rows are only inserted into an empty catalog.

Usage:
    python scripts/db_seed.py

The database comes from CATALOG_DATABASE_URL.
"""
import asyncio
import sys
from pathlib import Path

# Ensure project root is on sys.path so the script runs from a plain checkout
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from catalog_api import models  # noqa: E402,F401  registers the tables on Base
from catalog_api.config import get_settings  # noqa: E402
from catalog_api.database import Base, async_session_maker, engine  # noqa: E402
from catalog_api.observability import configure_logging  # noqa: E402
from catalog_api.seed import seed_catalog  # noqa: E402


async def main() -> int:
    settings = get_settings()
    configure_logging(log_level=settings.log_level, json_format=settings.log_json)
    print("DB seed starting, database =", engine.url.render_as_string())

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with async_session_maker() as session:
            seeded = await seed_catalog(session)
    finally:
        await engine.dispose()

    print("DB seed complete" if seeded else "Catalog already has data, nothing to seed")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
