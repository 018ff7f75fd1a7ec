"""
Utility helper functions for safe handling of spreadsheet cell values.
"""
import re
import unicodedata
from typing import Any, Optional

_WHITESPACE = re.compile(r"\s+")


def safe_str(value: Any, default: str = "") -> str:
    """
    Safely convert value to string, handling None.

    Args:
        value: Any value to convert
        default: Default string if value is None

    Returns:
        String representation or default
    """
    if value is None:
        return default
    return str(value)


def safe_lower(value: Any) -> str:
    """Safely lowercase a value, handling None."""
    if value is None:
        return ""
    return str(value).lower()


def sanitize_text(value: Any, max_length: int = 120) -> str:
    """
    Clean a free-text cell before it reaches any record or payload.

    Strips control characters, collapses runs of whitespace and caps
    the length. None becomes an empty string.
    """
    if value is None:
        return ""
    text = unicodedata.normalize("NFKC", str(value))
    text = "".join(
        ch for ch in text
        if ch in (" ", "\t", "\n") or unicodedata.category(ch)[0] != "C"
    )
    text = _WHITESPACE.sub(" ", text).strip()
    return text[:max_length]


def normalize_label(value: Any) -> str:
    """Case-fold and collapse whitespace for label comparisons."""
    return _WHITESPACE.sub(" ", safe_lower(value)).strip()


def split_names(value: Any, max_length: int = 120) -> list[str]:
    """
    Split a comma or semicolon separated list of player names.

    Empty entries are dropped; order is preserved.
    """
    text = sanitize_text(value, max_length=max_length * 20)
    names = []
    for part in re.split(r"[,;]", text):
        name = sanitize_text(part, max_length=max_length)
        if name and name not in names:
            names.append(name)
    return names


def parse_non_negative_int(value: Any) -> Optional[int]:
    """
    Parse a cell as a non-negative integer.

    Returns None for blank cells, raises ValueError for anything else
    that is not a whole number >= 0 (e.g. "2.5", "-1", "abc").
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"not an integer: {value!r}")
    if isinstance(value, int):
        number = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"not an integer: {value!r}")
        number = int(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        if not text.isdigit():
            raise ValueError(f"not an integer: {value!r}")
        number = int(text)
    if number < 0:
        raise ValueError(f"negative value: {value!r}")
    return number
