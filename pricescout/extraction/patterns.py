"""Price token and keyword matching helpers."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, List, NamedTuple, Pattern, Sequence, Tuple


class PriceMatch(NamedTuple):
    value: float
    start: int
    end: int


class PricedSegment(NamedTuple):
    text: str
    price: float


@lru_cache(maxsize=16)
def build_price_pattern(currency_symbols: Tuple[str, ...]) -> Pattern[str]:
    """Currency-prefixed two-to-three digit amount with optional cents."""
    symbols = "|".join(re.escape(symbol) for symbol in currency_symbols)
    return re.compile(rf"(?:{symbols})\s?(\d{{2,3}}(?:\.\d{{1,2}})?)(?!\d|,\d)")


@lru_cache(maxsize=256)
def _keyword_regex(keyword: str) -> Pattern[str]:
    return re.compile(rf"(?<![a-z0-9]){re.escape(keyword.lower())}(?![a-z0-9])")


def contains_keyword(text: str, keyword: str) -> bool:
    """Whole-word, case-insensitive keyword test."""
    return _keyword_regex(keyword).search(text.lower()) is not None


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(contains_keyword(text, keyword) for keyword in keywords)


def contains_substring(text: str, keywords: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(keyword.lower() in lowered for keyword in keywords)


def find_prices(text: str, pattern: Pattern[str]) -> List[PriceMatch]:
    matches = []
    for match in pattern.finditer(text):
        try:
            value = float(match.group(1))
        except ValueError:
            continue
        matches.append(PriceMatch(value, match.start(), match.end()))
    return matches


def split_priced_segments(text: str, pattern: Pattern[str]) -> List[PricedSegment]:
    """Split text so each price owns the words written since the previous price.

    "Gel Manicure - $45, Fill $15" -> [("Gel Manicure - $45", 45.0), ("Fill $15", 15.0)]
    """
    segments = []
    cursor = 0
    for price in find_prices(text, pattern):
        segment = text[cursor:price.end].strip(" \t\r\n,;|/-–—·")
        cursor = price.end
        if segment:
            segments.append(PricedSegment(normalize_whitespace(segment), price.value))
    return segments


def normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def split_lines(text: str, min_length: int, max_length: int) -> List[str]:
    lines = []
    for raw_line in text.splitlines():
        line = normalize_whitespace(raw_line)
        if min_length <= len(line) <= max_length:
            lines.append(line)
    return lines


def unique_preserving_order(items: Sequence[str]) -> List[str]:
    seen = set()
    ordered = []
    for item in items:
        if item not in seen:
            seen.add(item)
            ordered.append(item)
    return ordered
