"""
RESPONSE SANITIZER - Model reply -> text shown to the user

Extracted blocks are rendered from the stored result, so the reply loses every
fenced block and every [DATA_CONTEXT] marker (including a cut-off one at the
end of the text).
"""

import re

FENCED_BLOCK = re.compile(r"```[\s\S]*?```")
UNTERMINATED_FENCE = re.compile(r"```[\s\S]*$")

CONTEXT_MARKER = re.compile(r"\[DATA_CONTEXT[^\]]*\]", re.IGNORECASE)
UNTERMINATED_MARKER = re.compile(r"\[DATA_CONTEXT[^\]]*$", re.IGNORECASE)

# "**Top 5 Sales:**" left behind with nothing under it
DANGLING_HEADER = re.compile(r"\*\*[^*\n]+:\*\*[ \t]*\n(?=[ \t]*\n|\s*$)")

BLANK_RUN = re.compile(r"\n[ \t]*\n(?:[ \t]*\n)+")


def _clean(text: str) -> str:
    text = FENCED_BLOCK.sub("", text)
    text = UNTERMINATED_FENCE.sub("", text)
    text = CONTEXT_MARKER.sub("", text)
    text = UNTERMINATED_MARKER.sub("", text)
    text = DANGLING_HEADER.sub("", text)
    text = BLANK_RUN.sub("\n\n", text)
    return text.strip()


def sanitize(text: str) -> str:
    """
    Strip blocks and markers, collapse blank runs, trim.

    Repeats until nothing changes so that sanitize(sanitize(t)) == sanitize(t)
    even when removing one header exposes another.
    """
    current = text or ""
    while True:
        cleaned = _clean(current)
        if cleaned == current:
            return cleaned
        current = cleaned
