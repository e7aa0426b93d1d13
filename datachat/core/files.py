# datachat/core/files.py
"""
FILES MODULE - Turn an uploaded file into rows a conversation can be bound to

Purpose:
    1. Read CSV / JSON / plain text uploads
    2. Convert them to a JSON array of row objects (parsed_content)
    3. Describe the columns for the prompt (schema_info)

Data Flow:
    upload bytes -> read_*() -> rows -> parse_upload() -> FileDocument fields
"""

import csv
import io
import json
from typing import Any, Dict, List

SUPPORTED_TYPES = {
    "csv": "csv",
    "tsv": "csv",
    "json": "json",
    "txt": "text",
    "md": "text",
}


class UnsupportedFile(ValueError):
    pass


def reject_constant(name: str):
    # json.loads would otherwise accept NaN / Infinity, which no JSON column stores
    raise ValueError(f"Non-standard JSON value: {name}")


def decode(file_content: bytes) -> str:
    # Try UTF-8 first (most common)
    try:
        return file_content.decode("utf-8-sig")
    except UnicodeDecodeError:
        pass

    # Fallback for old Windows exports
    try:
        return file_content.decode("windows-1251")
    except UnicodeDecodeError as error:
        raise UnsupportedFile("File is not UTF-8 or Windows-1251 text") from error


def read_csv_file(file_content: bytes) -> List[Dict[str, str]]:
    """
    Read CSV file and return list of dictionaries.

    Handles:
        - UTF-8 / Windows-1251 encoding
        - Comma, semicolon or tab separated exports
        - Empty rows
        - Rows with more fields than the header (extra fields dropped)

    Example:
        Input CSV:
            month,revenue
            2025-01,50000
            2025-02,64000

        Output:
            [
                {"month": "2025-01", "revenue": "50000"},
                {"month": "2025-02", "revenue": "64000"}
            ]
    """
    text = decode(file_content)

    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=",;\t")
    except csv.Error:
        dialect = csv.excel

    reader = csv.DictReader(io.StringIO(text), dialect=dialect)

    rows = []
    try:
        for row in reader:
            # DictReader files surplus fields under the key None
            row.pop(None, None)
            # Filter out empty rows
            if any(row.values()):
                rows.append(row)
    except csv.Error as error:
        raise UnsupportedFile(f"Invalid CSV file: {error}") from error
    return rows


def read_json_file(file_content: bytes) -> List[Dict[str, Any]]:
    """A JSON array of objects, or a single object treated as one row."""
    try:
        data = json.loads(decode(file_content), parse_constant=reject_constant)
    except ValueError as error:
        raise UnsupportedFile(f"Invalid JSON file: {error}") from error

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise UnsupportedFile("JSON file must contain an object or a list of objects")
    return data


def read_text_file(file_content: bytes) -> List[Dict[str, str]]:
    return [{"line": line} for line in decode(file_content).splitlines() if line.strip()]


def collect_columns(rows: List[Dict[str, Any]]) -> List[str]:
    columns: List[str] = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)
    return columns


def file_type_for(filename: str) -> str:
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if extension not in SUPPORTED_TYPES:
        raise UnsupportedFile(f"Unsupported file type: .{extension or '?'}")
    return SUPPORTED_TYPES[extension]


def parse_upload(filename: str, file_content: bytes) -> Dict[str, Any]:
    """
    Parse an upload into the FileDocument fields.

    Returns:
        file_type, parsed_content (JSON string), schema_info, row_count
    """
    file_type = file_type_for(filename)

    if file_type == "csv":
        rows = read_csv_file(file_content)
    elif file_type == "json":
        rows = read_json_file(file_content)
    else:
        rows = read_text_file(file_content)

    columns = collect_columns(rows)
    schema_info = f"Columns: {', '.join(columns)}\nRows: {len(rows)}"

    return {
        "file_type": file_type,
        "parsed_content": json.dumps(rows, default=str),
        "schema_info": schema_info,
        "row_count": len(rows),
    }


# =========================
# Reading a stored file back
# =========================
MAX_PAGE_SIZE = 1000
SAMPLE_ROWS = 5


def load_rows(parsed_content: str) -> List[Dict[str, Any]]:
    """Rows stored on a FileDocument; empty when nothing was parsed."""
    if not parsed_content:
        return []
    data = json.loads(parsed_content)
    return data if isinstance(data, list) else []


def describe_file(parsed_content: str) -> Dict[str, Any]:
    rows = load_rows(parsed_content)
    return {
        "columns": collect_columns(rows),
        "total_rows": len(rows),
        "sample_data": json.dumps(rows[:SAMPLE_ROWS], default=str) if rows else None,
    }


def page_rows(parsed_content: str, page: int = 1, page_size: int = 100) -> Dict[str, Any]:
    """
    One page of stored rows.

    Out-of-range paging is clamped: page below 1 -> 1, page_size below 1 -> 10,
    above MAX_PAGE_SIZE -> MAX_PAGE_SIZE.
    """
    page = max(page, 1)
    if page_size < 1:
        page_size = 10
    page_size = min(page_size, MAX_PAGE_SIZE)

    rows = load_rows(parsed_content)
    start = (page - 1) * page_size

    return {
        "columns": collect_columns(rows),
        "rows": rows[start : start + page_size],
        "total_rows": len(rows),
        "page": page,
        "page_size": page_size,
    }
