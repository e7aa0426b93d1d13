"""
DATA-SOURCE ADAPTER - Talk to a user's bound database

Every call opens a short-lived async SQLAlchemy engine for the source and
disposes it afterwards. Results come back in the canonical
{"columns", "rows", "rowCount"} shape with JSON-safe values.
"""

import logging
import math
import time
from datetime import date, datetime, time as dt_time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Protocol
from uuid import UUID

from sqlalchemy import inspect, text
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine

from datachat.core import models

logger = logging.getLogger(__name__)


class DatabaseType(str, Enum):
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    SQLSERVER = "sqlserver"
    SQLITE = "sqlite"


DRIVERS = {
    DatabaseType.POSTGRESQL: "postgresql+asyncpg",
    DatabaseType.MYSQL: "mysql+aiomysql",
    DatabaseType.SQLSERVER: "mssql+aioodbc",
    DatabaseType.SQLITE: "sqlite+aiosqlite",
}


class DataSourceAdapter(Protocol):
    async def get_schema(self, source: models.DataSource) -> str: ...

    async def execute(self, source: models.DataSource, statement: str) -> Dict[str, Any]: ...

    async def test_connection(self, source: models.DataSource) -> bool: ...


def build_url(source: models.DataSource) -> URL:
    database_type = DatabaseType(source.database_type)

    if database_type == DatabaseType.SQLITE:
        return URL.create(DRIVERS[database_type], database=source.database_name)

    query = {}
    if database_type == DatabaseType.SQLSERVER:
        query = {"driver": "ODBC Driver 18 for SQL Server", "TrustServerCertificate": "yes"}

    return URL.create(
        DRIVERS[database_type],
        username=source.username or None,
        password=source.password or None,
        host=source.host or None,
        port=source.port or None,
        database=source.database_name,
        query=query,
    )


def json_safe(value: Any) -> Any:
    """Make a driver value storable in a JSON column."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Decimal):
        return json_safe(float(value)) if value.is_finite() else None
    if isinstance(value, (datetime, date, dt_time)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [json_safe(item) for item in value]
    if isinstance(value, dict):
        return {str(key): json_safe(item) for key, item in value.items()}
    return str(value)


def describe_schema(sync_conn) -> str:
    """Render tables and columns the way the prompt expects them."""
    inspector = inspect(sync_conn)
    lines = [f"-- {sync_conn.dialect.name} database schema", ""]

    for table_name in sorted(inspector.get_table_names()):
        columns = [
            f"    {column['name']} {column['type']} "
            f"{'NULL' if column.get('nullable', True) else 'NOT NULL'}"
            for column in inspector.get_columns(table_name)
        ]
        lines.append(f"-- Table: {table_name}")
        lines.append(f"CREATE TABLE {table_name} (")
        lines.append(",\n".join(columns))
        lines.append(");")
        lines.append("")

    return "\n".join(lines)


class SqlAlchemyAdapter:
    def _engine(self, source: models.DataSource) -> AsyncEngine:
        return create_async_engine(build_url(source))

    async def get_schema(self, source: models.DataSource) -> str:
        engine = self._engine(source)
        try:
            async with engine.connect() as conn:
                return await conn.run_sync(describe_schema)
        finally:
            await engine.dispose()

    async def execute(self, source: models.DataSource, statement: str) -> Dict[str, Any]:
        engine = self._engine(source)
        started = time.perf_counter()
        try:
            async with engine.connect() as conn:
                result = await conn.execute(text(statement))
                columns = list(result.keys())
                rows = [
                    {column: json_safe(value) for column, value in zip(columns, row)}
                    for row in result.fetchall()
                ]
        finally:
            await engine.dispose()

        return {
            "columns": columns,
            "rows": rows,
            "rowCount": len(rows),
            "executionTimeMs": int((time.perf_counter() - started) * 1000),
        }

    async def test_connection(self, source: models.DataSource) -> bool:
        engine = self._engine(source)
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as error:
            logger.warning(f"Connection test failed for data source {source.id}: {error}")
            return False
        finally:
            await engine.dispose()


def get_adapter() -> DataSourceAdapter:
    """FastAPI dependency; overridden in tests."""
    return SqlAlchemyAdapter()


async def schema_for(
    db: AsyncSession,
    source: models.DataSource,
    adapter: DataSourceAdapter,
    refresh: bool = False,
) -> str:
    """
    Read-through schema cache stored on the data source row.

    Two requests that both find the cache empty will both fetch and write it;
    the second write just replaces the first with the same text.
    An unreachable database leaves the cache empty and returns "".
    """
    if source.schema_cache and not refresh:
        return source.schema_cache

    try:
        schema_text = await adapter.get_schema(source)
    except Exception as error:
        logger.warning(f"Could not read schema for data source {source.id}: {error}")
        return source.schema_cache or ""

    source.schema_cache = schema_text
    db.add(source)
    await db.commit()
    return schema_text
