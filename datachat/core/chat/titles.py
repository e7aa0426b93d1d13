DEFAULT_TITLE = "New Chat"
MAX_TITLE_LENGTH = 50

# Checked in this order; only the first match is removed
FILLER_PREFIXES = (
    "can you ",
    "please ",
    "i want to ",
    "show me ",
    "get me ",
    "find ",
    "what is ",
    "what are ",
)


def needs_title(title, message_count: int) -> bool:
    """Only the very first message of an untitled conversation names it."""
    return (not title or title == DEFAULT_TITLE) and message_count == 0


def generate_title(message: str) -> str:
    cleaned = (message or "").strip()

    for prefix in FILLER_PREFIXES:
        if cleaned.lower().startswith(prefix):
            cleaned = cleaned[len(prefix):].lstrip()
            break

    if cleaned:
        cleaned = cleaned[0].upper() + cleaned[1:]

    if len(cleaned) > MAX_TITLE_LENGTH:
        cleaned = cleaned[: MAX_TITLE_LENGTH - 3] + "..."

    return cleaned or DEFAULT_TITLE
