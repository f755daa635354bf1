"""Integration-test fixtures.

Requires a running PostgreSQL at settings.DATABASE_URL. The session fixture
applies the Alembic revisions (001..005) and creates minimal versions of the
collaborator tables (products, users, carts) that other services own in
production. Every test gets its own NullPool engine so no connection outlives
the event loop it was opened on.

When the database is unreachable the whole suite is skipped.
"""

import asyncio
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from alembic import command
from alembic.config import Config
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from config.settings import settings

ROOT = Path(__file__).resolve().parents[2]

_COLLABORATOR_TABLES = [
    """
    CREATE TABLE IF NOT EXISTS products (
        id              UUID            PRIMARY KEY,
        seller_org_id   UUID,
        name            VARCHAR(255),
        sku             VARCHAR(100),
        base_price      NUMERIC(12,2)   NOT NULL DEFAULT 0,
        sale_price      NUMERIC(12,2),
        currency        VARCHAR(3)      NOT NULL DEFAULT 'USD',
        stock_quantity  INTEGER         NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        id          UUID            PRIMARY KEY,
        email       VARCHAR(255),
        fullname    VARCHAR(255)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS organization_users (
        organization_id UUID NOT NULL,
        user_id         UUID NOT NULL,
        PRIMARY KEY (organization_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS shopping_carts (
        id              UUID    PRIMARY KEY,
        buyer_org_id    UUID    NOT NULL,
        buyer_user_id   UUID    NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS cart_items (
        id          UUID            PRIMARY KEY DEFAULT gen_random_uuid(),
        cart_id     UUID            NOT NULL,
        product_id  UUID            NOT NULL,
        quantity    INTEGER         NOT NULL,
        added_at    TIMESTAMPTZ     NOT NULL DEFAULT NOW()
    )
    """,
]


async def _ping() -> None:
    engine = create_async_engine(settings.DATABASE_URL, poolclass=NullPool)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    finally:
        await engine.dispose()


async def _create_collaborator_tables() -> None:
    engine = create_async_engine(settings.DATABASE_URL, poolclass=NullPool)
    try:
        async with engine.begin() as conn:
            for ddl in _COLLABORATOR_TABLES:
                await conn.execute(text(ddl))
    finally:
        await engine.dispose()


@pytest.fixture(scope="session")
def migrated_database() -> None:
    """Apply migrations once per run; skip the suite without a database."""
    try:
        asyncio.run(asyncio.wait_for(_ping(), timeout=5))
    except (OSError, SQLAlchemyError, asyncio.TimeoutError) as exc:
        pytest.skip(f"PostgreSQL not reachable at DATABASE_URL: {exc}")

    # No config file: alembic's fileConfig would replace the test logging setup
    config = Config()
    config.set_main_option("script_location", str(ROOT / "alembic"))
    command.upgrade(config, "head")
    asyncio.run(_create_collaborator_tables())


@pytest_asyncio.fixture
async def sessions(migrated_database: None) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(settings.DATABASE_URL, poolclass=NullPool)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
