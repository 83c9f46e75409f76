"""Text processing heuristics for listing pages."""

from __future__ import annotations

import logging
import re
from typing import Optional

_LOGGER = logging.getLogger(__name__)

_AMOUNT_JUNK_PATTERN = re.compile(r"[^\d,.]")
_RECENCY_PATTERN = re.compile(r"\b(?:hour|hours|day|days)\b", flags=re.IGNORECASE)
_TRUNCATED_TAIL_PATTERN = re.compile(r"(?:\.\s)?[^.]*\s\.\.\.$")


def normalise_text(text: Optional[str]) -> str:
    if not text:
        return ""
    return re.sub(r"\s+", " ", text.replace("\xa0", " ")).strip()


def parse_amount(text: Optional[str]) -> Optional[float]:
    """Extract a number such as ``1,250`` from *text* (``€ 1,250`` -> ``1250.0``).

    Commas are treated as thousands separators. Returns ``None`` for strings
    without digits.
    """

    if not text:
        return None
    cleaned = _AMOUNT_JUNK_PATTERN.sub("", text).replace(",", "")
    if not cleaned or not any(ch.isdigit() for ch in cleaned):
        return None
    try:
        return float(cleaned)
    except ValueError:
        _LOGGER.debug("Unable to parse amount from %r", text)
        return None


def is_recent(signal: Optional[str]) -> bool:
    """True when *signal* reads like "3 hours ago" or "2 days ago"."""

    return bool(signal) and bool(_RECENCY_PATTERN.search(signal))


def trim_truncated_description(text: str) -> str:
    """Drop the trailing, cut-off sentence of a description ending in ``...``."""

    return _TRUNCATED_TAIL_PATTERN.sub("", text.strip()).strip()


__all__ = ["normalise_text", "parse_amount", "is_recent", "trim_truncated_description"]
