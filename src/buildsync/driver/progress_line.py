"""
Build progress line parsing.

Bazel reports progress on standard error as lines such as::

    [12,345 / 99,999] Compiling foo.cc; 3s linux-sandbox

i.e. optional leading whitespace, a bracketed ``current / total`` pair whose
integers may carry thousands separators, and a free-text message.
"""

from dataclasses import dataclass
from typing import Optional

THOUSANDS_SEPARATOR = ","


@dataclass(frozen=True)
class ProgressLine:
    current: int
    total: int
    message: str


def _parse_count(text: str) -> Optional[int]:
    text = text.strip()
    digits = text.replace(THOUSANDS_SEPARATOR, "")
    if not digits or not digits.isascii() or not digits.isdigit():
        return None
    # Separators only between digits: "1,234" yes, ",1", "1," and "1,,234" no.
    if text.startswith(THOUSANDS_SEPARATOR) or text.endswith(THOUSANDS_SEPARATOR):
        return None
    if THOUSANDS_SEPARATOR * 2 in text:
        return None
    return int(digits)


def parse_progress_line(line: str) -> Optional[ProgressLine]:
    """
    Parse a build progress line.

    Returns:
        The parsed counters and trimmed message, or None if ``line`` is not
        a progress line
    """
    text = line.lstrip()
    if not text.startswith("["):
        return None

    closing = text.find("]")
    if closing < 0:
        return None

    counters = text[1:closing]
    current_text, slash, total_text = counters.partition("/")
    if not slash:
        return None

    current = _parse_count(current_text)
    total = _parse_count(total_text)
    if current is None or total is None:
        return None

    return ProgressLine(current=current, total=total, message=text[closing + 1:].strip())
