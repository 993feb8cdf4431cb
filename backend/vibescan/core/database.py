from typing import Any, Iterable

from sqlalchemy import Insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from vibescan.core.config import settings

engine = create_async_engine(settings.database_url, echo=settings.DEBUG)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def upsert(
    dialect_name: str,
    table: Any,
    rows: list[dict[str, Any]],
    index_elements: Iterable[str],
    update_columns: Iterable[str] = (),
) -> Insert:
    """
    Build an INSERT ... ON CONFLICT statement for PostgreSQL or SQLite.

    With no update_columns the conflicting rows are left untouched.
    """
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise ValueError(f"Upsert not supported for dialect {dialect_name!r}")

    stmt = insert(table).values(rows)
    index_elements = list(index_elements)
    update_columns = list(update_columns)
    if not update_columns:
        return stmt.on_conflict_do_nothing(index_elements=index_elements)
    return stmt.on_conflict_do_update(
        index_elements=index_elements,
        set_={col: stmt.excluded[col] for col in update_columns},
    )
