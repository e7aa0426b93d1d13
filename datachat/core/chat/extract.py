"""
STRUCTURED EXTRACTOR - Pull statements or tables out of a model reply

Query mode:
    reply -> [fenced_sql_blocks, bare_statement_lines] -> is_safe() -> statements

Tabular mode:
    reply -> ```json blocks with columns + rows -> payload (or multi-table wrapper)

Both modes fall back to parse_context_marker() when the model quoted a
[DATA_CONTEXT ...] annotation back instead of answering properly.
"""

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional

from datachat.core.chat.safety import is_safe

logger = logging.getLogger(__name__)

# ```tag\n ... ``` ; the tag is optional
FENCED_BLOCK = re.compile(r"```[ \t]*([^\s`]*)[^\n`]*\n(.*?)```", re.DOTALL)

CONTEXT_MARKER = re.compile(
    r"\[DATA_CONTEXT:\s*(\d+)\s*row\(s\):\s*(.+?)\]", re.IGNORECASE | re.DOTALL
)

def reject_constant(name: str):
    raise ValueError(f"Non-standard JSON value: {name}")


NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")

STATEMENT_STARTS = ("SELECT", "WITH")
BARE_STATEMENT_STARTS = ("SELECT ", "WITH ")
PROSE_STARTS = ("This ", "The ", "I ", "Here")

Strategy = Callable[[str], List[str]]


def fenced_blocks(text: str) -> List[tuple]:
    """Every complete fenced block as (lower-cased tag, interior), in order."""
    return [(m.group(1).lower(), m.group(2)) for m in FENCED_BLOCK.finditer(text)]


# =========================
# Statement strategies
# =========================
def fenced_sql_blocks(text: str) -> List[str]:
    """Blocks tagged sql, or untagged blocks that open with SELECT / WITH."""
    candidates = []
    for tag, body in fenced_blocks(text):
        body = body.strip()
        if not body:
            continue
        if tag == "sql":
            candidates.append(body)
        elif tag == "" and body.splitlines()[0].strip().upper().startswith(STATEMENT_STARTS):
            candidates.append(body)
    return candidates


def bare_statement_lines(text: str) -> List[str]:
    """
    Unfenced statement written straight into the prose.

    Capture starts at the first line beginning with SELECT/WITH and stops at a
    blank line or a line that reads like a sentence.
    """
    captured = []
    capturing = False

    for line in text.split("\n"):
        stripped = line.strip()

        if not capturing and stripped.upper().startswith(BARE_STATEMENT_STARTS):
            capturing = True

        if capturing:
            if not stripped or stripped.startswith(PROSE_STARTS):
                break
            captured.append(stripped)

    return ["\n".join(captured)] if captured else []


# Tried in order; later strategies only run while nothing has been found
STATEMENT_STRATEGIES: List[Strategy] = [fenced_sql_blocks, bare_statement_lines]


def extract_candidates(text: str) -> List[str]:
    for strategy in STATEMENT_STRATEGIES:
        candidates = strategy(text)
        if candidates:
            return candidates
    return []


def extract_statements(text: str) -> List[str]:
    """Validated statements in order of appearance. An empty list is a normal outcome."""
    statements = []
    for candidate in extract_candidates(text or ""):
        if is_safe(candidate):
            statements.append(candidate)
        else:
            logger.info(f"Discarded unsafe statement candidate: {candidate[:80]!r}")
    return statements


# =========================
# Tables (file conversations)
# =========================
def is_table(value: Any) -> bool:
    return isinstance(value, dict) and "columns" in value and "rows" in value


def extract_tables(text: str) -> Optional[Dict[str, Any]]:
    """
    Parse every ```json block into a table.

    Returns the single table as-is, several as {"tables": [...]}, or None.
    Blocks that don't parse (NaN and Infinity included) or lack columns/rows
    are skipped.
    """
    tables = []
    for tag, body in fenced_blocks(text or ""):
        if tag != "json":
            continue
        try:
            value = json.loads(body.strip(), parse_constant=reject_constant)
        except ValueError:
            logger.debug("Skipping unparseable json block")
            continue
        if is_table(value):
            tables.append(value)

    if not tables:
        return None
    if len(tables) == 1:
        return tables[0]
    return {"tables": tables}


# =========================
# Synthetic-context fallback
# =========================
def coerce_scalar(value: str) -> Any:
    if NUMBER.match(value):
        if re.fullmatch(r"[+-]?\d+", value):
            return int(value)
        return float(value)
    return value


def parse_context_marker(text: str) -> Optional[Dict[str, Any]]:
    """
    Rebuild a table from a [DATA_CONTEXT: N row(s): k=v, ... | ...] marker
    echoed by the model. None when there is no marker or no row in it.
    """
    match = CONTEXT_MARKER.search(text or "")
    if not match:
        return None

    columns: List[str] = []
    rows: List[Dict[str, Any]] = []

    for row_text in match.group(2).split("|"):
        row = {}
        for pair in row_text.split(","):
            if "=" not in pair:
                continue
            key, value = pair.split("=", 1)
            key = key.strip()
            if not key:
                continue
            if key not in columns:
                columns.append(key)
            row[key] = coerce_scalar(value.strip())
        if row:
            rows.append(row)

    if not rows:
        return None

    return {"columns": columns, "rows": rows, "rowCount": len(rows)}
