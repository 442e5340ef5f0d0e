"""
Database layer — shared declarative base and engine setup.

Tables register on `Base` from their own modules (carts in
tender.cart, orders/payments/events in tender.finalize); `create_database`
imports them so `create_all` sees every table.
"""

from typing import Any

from sqlalchemy import Table
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


# ═══════════════════════════════════════════════════════════════════════════════
# Base
# ═══════════════════════════════════════════════════════════════════════════════

class Base(DeclarativeBase):
    pass


# ═══════════════════════════════════════════════════════════════════════════════
# INSERT ... ON CONFLICT DO NOTHING — the unique-constraint lock
# ═══════════════════════════════════════════════════════════════════════════════

def insert_ignoring_conflict(
    dialect: str,
    table: type[Base] | Table,
    values: dict[str, Any],
    index_elements: list[str],
) -> Any:
    """
    Build `INSERT ... ON CONFLICT (index_elements) DO NOTHING`.

    The caller reads `rowcount`: 1 means this statement created the row,
    0 means a concurrent writer got there first.
    """
    match dialect:
        case "sqlite":
            stmt = sqlite_insert(table)
        case "postgresql":
            stmt = pg_insert(table)
        case _:
            raise NotImplementedError(f"ON CONFLICT not supported for dialect {dialect!r}")
    return stmt.values(**values).on_conflict_do_nothing(index_elements=index_elements)


def dialect_of(session: AsyncSession) -> str:
    bind = session.bind
    if bind is None:
        raise RuntimeError("Session is not bound to an engine")
    return bind.dialect.name


# ═══════════════════════════════════════════════════════════════════════════════
# Database Setup
# ═══════════════════════════════════════════════════════════════════════════════

async def create_database(
    url: str = "sqlite+aiosqlite:///:memory:",
    **engine_kwargs: Any,
) -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Create tables and return (session_factory, engine)."""
    # Table modules must be imported before create_all
    import tender.cart._sqlalchemy  # noqa: F401
    import tender.finalize._db  # noqa: F401

    engine = create_async_engine(url, echo=False, **engine_kwargs)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, expire_on_commit=False), engine


__all__ = (
    "Base",
    "insert_ignoring_conflict",
    "dialect_of",
    "create_database",
)
