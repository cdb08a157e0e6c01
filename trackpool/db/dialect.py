from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def get_insert(db: AsyncSession):
    """
    Return the dialect-specific ``insert`` construct for the session's bind.

    Both PostgreSQL and SQLite support ``ON CONFLICT`` clauses, which the
    generic ``sqlalchemy.insert`` does not expose.
    """
    dialect_name = db.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert
    if dialect_name == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"ON CONFLICT inserts are not supported on {dialect_name}")
