"""
CONTEXT ASSEMBLER - Prior turns -> model-ready history

Assistant turns that produced a result carry a compact [DATA_CONTEXT ...]
annotation so the model can answer follow-ups ("what about the second one?")
without the raw result ever being part of the visible reply.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

MARKER_TAG = "DATA_CONTEXT"
INLINE_ROW_LIMIT = 5

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _render_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def render_rows(rows: List[dict]) -> str:
    """key=value pairs joined by ', ', rows joined by ' | '."""
    lines = []
    for row in rows:
        pairs = [f"{key}={_render_value(value)}" for key, value in row.items()]
        lines.append(", ".join(pairs))
    return " | ".join(lines)


def annotate(payload: Any) -> Optional[str]:
    """
    Build the context marker for a stored result payload.

    Returns None when there is nothing to say about it (no rows, error entry,
    multi-table wrapper). Raises on malformed payloads; assemble() catches that.
    """
    if payload is None:
        return None
    if isinstance(payload, str):
        payload = json.loads(payload)

    rows = payload.get("rows")
    if not rows:
        return None

    row_count = len(rows)
    if row_count <= INLINE_ROW_LIMIT:
        return f"[{MARKER_TAG}: {row_count} row(s): {render_rows(rows)}]"
    return f"[{MARKER_TAG}: Query returned {row_count} rows]"


def _sort_key(message: Any):
    created_at = message.created_at or _EPOCH
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return (created_at, message.id or 0)


def assemble(messages: Iterable[Any]) -> List[Tuple[str, str]]:
    """
    Turn stored messages into an ordered (role, text) history.

    Never raises because of a stored payload: a turn whose result cannot be
    read is passed on without its annotation.
    """
    history = []
    for message in sorted(messages, key=_sort_key):
        content = message.content or ""

        if message.role == "assistant" and message.query_result:
            try:
                marker = annotate(message.query_result)
            except (ValueError, TypeError, AttributeError) as error:
                logger.debug(f"Skipping result context for message {message.id}: {error}")
                marker = None
            if marker:
                content += f"\n{marker}"

        history.append((message.role, content))

    return history
