from collections.abc import AsyncGenerator, Sequence
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import settings

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
    **({} if _is_sqlite else {"pool_size": 5, "max_overflow": 10}),
)


# Enable WAL mode + busy timeout for SQLite to allow concurrent reads/writes
if _is_sqlite:
    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        yield session


async def check_db_connection() -> bool:
    """Test database connectivity. Returns True if OK."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    return True


def upsert_statement(
    session: AsyncSession,
    model,
    values: dict[str, Any],
    conflict_columns: Sequence[str],
    update_columns: Sequence[str],
):
    """Build a dialect-native INSERT ... ON CONFLICT / ON DUPLICATE KEY UPDATE.

    The unique index over ``conflict_columns`` is what makes the write safe
    under concurrent requests; no application-level locking is involved.
    """
    dialect = session.bind.dialect.name
    update_values = {col: values[col] for col in update_columns}

    if dialect == "mysql":
        from sqlalchemy.dialects.mysql import insert as mysql_insert
        return mysql_insert(model).values(**values).on_duplicate_key_update(**update_values)

    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as dialect_insert
    else:
        from sqlalchemy.dialects.sqlite import insert as dialect_insert
    return dialect_insert(model).values(**values).on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_=update_values,
    )
