"""Normalization of fields extracted from source payloads."""

from .parsing import (
    clean_text,
    get_path,
    parse_date,
    parse_date_prefix,
)

__all__ = [
    "clean_text",
    "get_path",
    "parse_date",
    "parse_date_prefix",
]
