from __future__ import annotations

import re
from collections.abc import Iterable

_WS_PATTERN = re.compile(r'\s+')


def normalize_sort_text(value: str | None) -> str:
    return _WS_PATTERN.sub(' ', (value or '').strip().lower())


def is_blank_query(query: str | None) -> bool:
    return not normalize_sort_text(query)


def matches_query(query: str | None, fields: Iterable[str | None]) -> bool:
    needle = normalize_sort_text(query)
    if not needle:
        return True
    return any(needle in normalize_sort_text(value) for value in fields)
