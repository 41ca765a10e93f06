"""Utility functions for the realtime_agent package."""

import re
import unicodedata
from datetime import datetime, timezone

NUMBER_PATTERN = re.compile(r"(\d+(?:\.\d+)?)")


def fold_text(text: str) -> str:
    """Lowercase text and strip accents so "Dólar" matches "dolar"."""
    decomposed = unicodedata.normalize("NFKD", text.lower())
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def contains_any(text: str, keywords) -> bool:
    """Check whether any keyword occurs in text (both folded)."""
    folded = fold_text(text)
    return any(fold_text(keyword) in folded for keyword in keywords)


def first_number(text: str):
    """Return the first decimal literal in text as a float, or None."""
    match = NUMBER_PATTERN.search(text)
    return float(match.group(1)) if match else None


def format_number(value: float) -> str:
    """Format a number without a trailing .0 for integral values."""
    if value == int(value):
        return str(int(value))
    return repr(round(value, 10))


def iso_timestamp() -> str:
    """Current UTC time in ISO 8601 with a Z suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
