"""
Parsing utilities for normalizing fields pulled out of source payloads.

Date parsing here is strict: a value that cannot be read as a calendar
date raises ``ParseError`` instead of coming back empty, so format drift
at a source stops the run rather than silently dropping tenders.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Sequence

import dateparser

from tenderwatch.core.errors import ParseError


ISO_DATE_LENGTH = len("2006-01-02")


# =============================================================================
# Date Parsing
# =============================================================================


def parse_date(
    value: str | date | None,
    formats: Sequence[str] | None = None,
    *,
    field: str = "date",
    source: str | None = None,
) -> date:
    """Parse a calendar date.

    Tries the explicit ``formats`` when given; otherwise the common
    patterns and finally dateparser with strict settings.

    Raises:
        ParseError: If the value is empty or not a valid date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    original = "" if value is None else str(value)
    text = _clean_date_string(original)

    if not text:
        raise ParseError(f"Empty {field}", value=original, source=source)

    if formats:
        for fmt in formats:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue
        raise ParseError(
            f"Bad {field} {original!r} (expected one of {', '.join(formats)})",
            value=original,
            source=source,
        )

    try:
        result = _try_common_patterns(text)
    except ValueError as e:
        raise ParseError(f"Bad {field} {original!r}", value=original, source=source, cause=e) from e
    if result is not None:
        return result

    parsed = dateparser.parse(
        text,
        settings={
            "STRICT_PARSING": True,
            "RETURN_AS_TIMEZONE_AWARE": False,
            "DATE_ORDER": "YMD",
        },
    )
    if parsed is None:
        raise ParseError(f"Bad {field} {original!r}", value=original, source=source)
    return parsed.date()


def parse_date_prefix(
    value: str | None,
    *,
    field: str = "date",
    source: str | None = None,
) -> date:
    """Parse the leading ``YYYY-MM-DD`` of a longer timestamp string."""
    text = (value or "").strip()
    if len(text) < ISO_DATE_LENGTH:
        raise ParseError(f"Bad {field} {value!r}", value=value, source=source)
    return parse_date(text[:ISO_DATE_LENGTH], ["%Y-%m-%d"], field=field, source=source)


def _clean_date_string(text: str) -> str:
    """Clean and normalize a date string for parsing."""
    prefixes = [
        r"^closes?:\s*",
        r"^closing\s+date:\s*",
        r"^issued?:\s*",
        r"^posted:\s*",
        r"^published:\s*",
        r"^date:\s*",
    ]
    for prefix in prefixes:
        text = re.sub(prefix, "", text, flags=re.IGNORECASE)

    text = " ".join(text.split())

    # Trailing timezone abbreviations confuse strptime
    text = re.sub(r"\s+(AT|AST|ADT|ET|EST|EDT|PT|PST|PDT)\s*$", "", text, flags=re.IGNORECASE)

    return text.strip()


def _try_common_patterns(text: str) -> date | None:
    """Try the unambiguous numeric layouts (fast path)."""
    patterns = [
        (r"^(\d{4})-(\d{2})-(\d{2})(?:[T ]|$)", "iso"),
        (r"^(\d{4})/(\d{2})/(\d{2})$", "iso"),
        (r"^(\d{1,2})/(\d{1,2})/(\d{4})$", "us"),
    ]

    for pattern, layout in patterns:
        match = re.match(pattern, text)
        if not match:
            continue
        groups = [int(g) for g in match.groups()]
        if layout == "iso":
            year, month, day = groups
        else:
            month, day, year = groups
        # Raises ValueError when the layout matches but the date does not exist
        return date(year, month, day)

    return None


# =============================================================================
# Text Cleanup
# =============================================================================


def clean_text(value: Any) -> str:
    """Collapse whitespace in an extracted field."""
    if value is None:
        return ""
    return " ".join(str(value).split())


def get_path(data: Any, path: str) -> Any:
    """Resolve a dotted key path (``a.b.0.c``) inside decoded JSON."""
    current = data
    if not path:
        return current
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return None
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return None
            current = current[index]
        else:
            return None
    return current
