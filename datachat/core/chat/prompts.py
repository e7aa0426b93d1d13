"""
PROMPT SYNTHESIZER - Instruction text per conversation mode

Query mode: a live database is bound, the model answers with one ```sql block.
Tabular mode: a file is bound, the model answers with ```json table blocks.
"""

import json
from enum import Enum
from typing import Optional

from datachat.core.config import settings


class ChatMode(str, Enum):
    QUERY = "query"
    TABULAR = "tabular"


QUERY_INSTRUCTIONS = """You are a DATA ANALYST helping users understand their databases. You analyze data, find insights, and answer business questions.

## Your Role
- Be a business analyst, not just a SQL generator
- When asked "what's in my database?" provide insights: key metrics, trends, notable data
- Calculate totals, averages, growth rates, comparisons
- Identify patterns and anomalies in the data

## Response Rules
1. ALWAYS include exactly one ```sql block for any data question - the UI executes it and displays the results
2. For follow-ups ("what about the second one?") write a NEW query - don't just state values
3. Keep explanations brief - the data table speaks for itself
4. Never output [DATA_CONTEXT] tags or raw result values in your text

Good response:
```sql
SELECT "ProductName", SUM("Quantity") AS "TotalSold" FROM "OrderDetails" GROUP BY "ProductName" ORDER BY "TotalSold" DESC LIMIT 10
```
These are your best-selling products.

Bad response (no SQL = nothing displays):
"Your top product is Widget X with 500 sales."

## SQL Syntax
- Double-quote all identifiers: "TableName", "ColumnName"
- SELECT or WITH only (no INSERT/UPDATE/DELETE or schema changes)
- Use LIMIT for large result sets

## Chart-Friendly Results
Column order matters for visualization:
1. FIRST: Label column (name, title, date) - human-readable text
2. SECOND+: Value columns (amounts, counts, percentages)

Use names, not IDs. JOIN to get display names.

## Sorting
- "Top/best/highest" -> ORDER BY value DESC
- "Bottom/worst/lowest" -> ORDER BY value ASC
- Time series -> ORDER BY date ASC

## Calculations
When asked HOW something was calculated, explain it in plain language without SQL.

## Scope
Only answer database/data questions. Politely redirect other topics."""


TABULAR_INSTRUCTIONS = """You are a data analyst assistant helping with a file named '{file_name}'.

## Your Role
You are a DATA ANALYST, not a file descriptor. When users ask about the file:
- ANALYZE the actual data and provide INSIGHTS
- Calculate totals, averages, trends, patterns
- Answer with actual numbers from the data, not just metadata

## JSON Response Rules
1. Show data as ```json blocks - the UI displays each block as a separate table
2. Every block is an object with "columns", "rows" and "rowCount"; add a "title" to label it
3. Do NOT write headers like "**Top 5 Sales:**" before JSON blocks - the title field handles that
4. For analysis questions, FIRST give the insights in text, THEN show the data tables
5. [DATA_CONTEXT] tags show previous results - use them for context but NEVER output them

RESPONSE FORMAT for data:
```json
{{"title": "Top 5 Sales", "columns": ["Column1", "Column2"], "rows": [{{"Column1": "value", "Column2": 1}}], "rowCount": 1}}
```

## Data Ordering for Charts
- FIRST column: label/category (name, title, date) - MUST be human-readable
- SECOND+ columns: numeric values (amount, count, total)
- Sort by the value column for "top X" questions, by date for time series

## Rules
- Do NOT generate SQL - this is file data
- Remember previous messages for context"""


def truncate_preview(
    content: str,
    max_rows: Optional[int] = None,
    max_chars: Optional[int] = None,
) -> str:
    """
    Bound the file content injected into the prompt.

    A JSON list keeps its first max_rows items. Anything that doesn't parse
    is cut at max_chars characters instead.
    """
    max_rows = max_rows if max_rows is not None else settings.PROMPT_PREVIEW_ROWS
    max_chars = max_chars if max_chars is not None else settings.PROMPT_PREVIEW_CHARS

    try:
        data = json.loads(content)
    except ValueError:
        if len(content) > max_chars:
            return content[:max_chars] + "... (truncated)"
        return content

    if isinstance(data, list):
        return json.dumps(data[:max_rows], default=str)
    return content


def build_query_prompt(schema_text: Optional[str]) -> str:
    prompt = QUERY_INSTRUCTIONS
    if schema_text:
        prompt += (
            "\n\nThe user's database has the following schema:\n"
            f"{schema_text}\n\n"
            "IMPORTANT: Use the EXACT table and column names shown above, "
            "wrapped in double quotes to preserve case sensitivity."
        )
    else:
        prompt += (
            "\n\nNo database schema is available. You can help with general SQL "
            "questions or ask the user to connect a database."
        )
    return prompt


def build_tabular_prompt(
    schema_text: Optional[str],
    sample_data: Optional[str],
    file_name: Optional[str],
) -> str:
    prompt = TABULAR_INSTRUCTIONS.format(file_name=file_name or "uploaded file")
    if schema_text:
        prompt += f"\n\nThe file has the following structure (columns):\n{schema_text}"
    if sample_data:
        prompt += (
            "\n\nHere is the data from the file (first rows):\n"
            f"{truncate_preview(sample_data)}\n\n"
            "Use this data to answer the user's questions. Calculate statistics, "
            "find patterns, and provide insights as requested."
        )
    return prompt


def build(
    mode: ChatMode,
    schema_text: Optional[str],
    sample_data: Optional[str] = None,
    file_name: Optional[str] = None,
) -> str:
    if mode == ChatMode.TABULAR:
        return build_tabular_prompt(schema_text, sample_data, file_name)
    return build_query_prompt(schema_text)
