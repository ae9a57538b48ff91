"""
Field extractors for free-form model replies.

Prompts ask for replies like ``TOPICS: a | b`` one label per line. Models do
not always comply, so every extractor works on its own label and returns
None (or the caller's default) when that label is absent or malformed.
"""

import re
from typing import List, Optional

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _label_pattern(label: str, multiline_value: bool = False) -> re.Pattern:
    value = r"(.*)\Z" if multiline_value else r"(.*)$"
    flags = re.IGNORECASE | re.MULTILINE
    if multiline_value:
        flags |= re.DOTALL
    # Tolerates markdown emphasis and list bullets around the label.
    return re.compile(
        rf"^[ \t*_-]*{re.escape(label)}[ \t*_]*:[ \t*_]*{value}", flags
    )


def field(text: str, label: str) -> Optional[str]:
    """Returns the stripped value on the first ``LABEL:`` line, or None."""
    match = _label_pattern(label).search(text or "")
    if match is None:
        return None
    return match.group(1).strip()


def block_field(text: str, label: str) -> Optional[str]:
    """Like ``field`` but the value runs to the end of the text."""
    match = _label_pattern(label, multiline_value=True).search(text or "")
    if match is None:
        return None
    return match.group(1).strip()


def list_field(text: str, label: str, limit: int = 3, sep: str = "|") -> List[str]:
    """Splits a delimited field into at most ``limit`` non-empty items."""
    value = field(text, label)
    if not value:
        return []
    items = [item.strip() for item in value.split(sep)]
    return [item for item in items if item][:limit]


def leading_int(value: Optional[str]) -> Optional[int]:
    """Parses the integer at the start of ``value`` ("85%" -> 85)."""
    if not value:
        return None
    match = _LEADING_INT.match(value)
    if match is None:
        return None
    return int(match.group(1))


def int_field(text: str, label: str, default: int = 0) -> int:
    number = leading_int(field(text, label))
    return default if number is None else number


def split_fields(text: str, count: int, sep: str = "|") -> List[Optional[str]]:
    """Splits a one-line delimited reply into exactly ``count`` slots.

    Missing or blank slots are None; extra separators are folded into the
    last slot so a reason containing ``|`` survives.
    """
    parts = [part.strip() for part in (text or "").split(sep, count - 1)]
    parts += [""] * (count - len(parts))
    return [part or None for part in parts]


def clamp(value: int, low: int = 0, high: int = 100) -> int:
    return max(low, min(high, value))
