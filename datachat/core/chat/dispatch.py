"""
EXECUTION DISPATCHER - Run extracted statements against the bound source

    0 statements -> None
    1 statement  -> adapter result as-is
    N statements -> {"tables": [...]}, run concurrently, one failure per slot
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from datachat.core.chat.adapters import DataSourceAdapter

logger = logging.getLogger(__name__)

STATEMENT_SEPARATOR = "\n\n-- Next Query --\n\n"


def join_statements(statements: List[str]) -> Optional[str]:
    """Text stored as the turn's sql_query."""
    if not statements:
        return None
    return STATEMENT_SEPARATOR.join(statements)


def error_entry(error: BaseException, statement: str) -> Dict[str, Any]:
    return {"error": str(error) or error.__class__.__name__, "query": statement}


async def _run_isolated(adapter: DataSourceAdapter, source: Any, statement: str) -> Dict[str, Any]:
    try:
        return await adapter.execute(source, statement)
    except Exception as error:
        logger.warning(f"Statement failed on data source {getattr(source, 'id', None)}: {error}")
        return error_entry(error, statement)


async def execute(
    adapter: DataSourceAdapter, source: Any, statements: List[str]
) -> Optional[Dict[str, Any]]:
    """
    Execute validated statements.

    A single statement's failure propagates to the caller; in a batch each
    failure only replaces that statement's slot with {"error", "query"}.
    """
    if not statements:
        return None

    if len(statements) == 1:
        return await adapter.execute(source, statements[0])

    tables = await asyncio.gather(
        *(_run_isolated(adapter, source, statement) for statement in statements)
    )
    return {"tables": list(tables)}
