"""
Read-only gate for model-written statements.

A coarse keyword check, not a parser: anything mentioning a mutation keyword is
rejected, even inside an identifier ("created_at" contains CREATE), and an
obfuscated mutation could still get through. Statements must start with
SELECT or WITH.
"""

BLOCKED_KEYWORDS = (
    "DROP",
    "DELETE",
    "TRUNCATE",
    "ALTER",
    "CREATE",
    "INSERT",
    "UPDATE",
    "EXEC",
    "EXECUTE",
)

ALLOWED_PREFIXES = ("SELECT", "WITH")


def is_safe(candidate: str) -> bool:
    upper = candidate.upper()

    if any(keyword in upper for keyword in BLOCKED_KEYWORDS):
        return False

    return upper.strip().startswith(ALLOWED_PREFIXES)
