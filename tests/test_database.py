import asyncio
from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from catalog_api.database import Base, commit_or_conflict
from catalog_api.models import Category, Product
from catalog_api.seed import seed_catalog


class _Result:
    def __init__(self, value):
        self.value = value

    def scalar_one_or_none(self):
        return self.value


class StaleSession:
    """Session whose commit loses an optimistic-concurrency race."""

    def __init__(self, row_still_exists):
        self.row_still_exists = row_still_exists
        self.rolled_back = False

    async def commit(self):
        raise StaleDataError("UPDATE statement on table 'products' expected to update 1 row(s); 0 were matched.")

    async def rollback(self):
        self.rolled_back = True

    async def execute(self, stmt):
        return _Result(1 if self.row_still_exists else None)


class OkSession:
    committed = False

    async def commit(self):
        self.committed = True


def test_commit_passes_through():
    session = OkSession()
    asyncio.run(commit_or_conflict(session, Product, 1))
    assert session.committed


def test_stale_write_on_existing_row_is_conflict():
    session = StaleSession(row_still_exists=True)
    with pytest.raises(HTTPException) as exc:
        asyncio.run(commit_or_conflict(session, Product, 1))
    assert exc.value.status_code == 409
    assert session.rolled_back


def test_stale_write_on_vanished_row_is_not_found():
    session = StaleSession(row_still_exists=False)
    with pytest.raises(HTTPException) as exc:
        asyncio.run(commit_or_conflict(session, Product, 1))
    assert exc.value.status_code == 404


def test_stale_write_without_target_is_conflict():
    with pytest.raises(HTTPException) as exc:
        asyncio.run(commit_or_conflict(StaleSession(row_still_exists=False)))
    assert exc.value.status_code == 409


def test_seed_only_fills_an_empty_catalog():
    async def scenario():
        engine = create_async_engine("sqlite+aiosqlite:///:memory:")
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            maker = sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
            async with maker() as session:
                first = await seed_catalog(session)
            async with maker() as session:
                second = await seed_catalog(session)
                count = (await session.execute(select(func.count(Category.id)))).scalar_one()
            return first, second, count
        finally:
            await engine.dispose()

    assert asyncio.run(scenario()) == (True, False, 5)


def test_concurrent_product_writes_conflict(tmp_path):
    async def scenario():
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            maker = sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
            async with maker() as session:
                await seed_catalog(session)

            async with maker() as first, maker() as second:
                mine = await first.get(Product, 1)
                theirs = await second.get(Product, 1)
                assert mine.version == theirs.version == 1

                mine.price = Decimal("1799.99")
                await commit_or_conflict(first, Product, 1)
                assert mine.version == 2

                theirs.stock = 1
                with pytest.raises(HTTPException) as exc:
                    await commit_or_conflict(second, Product, 1)

            async with maker() as session:
                stored = await session.get(Product, 1)
            return exc.value.status_code, stored.price, stored.stock, stored.version
        finally:
            await engine.dispose()

    status_code, price, stock, version = asyncio.run(scenario())
    assert status_code == 409
    assert price == Decimal("1799.99")
    assert stock != 1
    assert version == 2
