import sqlalchemy.event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine


def _set_sqlite_pragmas(dbapi_conn, _connection_record):
    """Enable WAL mode and busy timeout for SQLite concurrency."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def create_session_factory(database_url: str) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    engine = create_async_engine(database_url, echo=False)
    if engine.dialect.name == "sqlite":
        sqlalchemy.event.listen(engine.sync_engine, "connect", _set_sqlite_pragmas)
    return engine, async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
