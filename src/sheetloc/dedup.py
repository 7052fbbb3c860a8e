# -*- coding: utf-8 -*-
"""
dedup.py - Unique content extraction

The translation map is keyed by trimmed cleaned text, not by position: two
cells with the same text always receive the same translation.
"""

import re
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from .models import Grid

NUMERAL_RE = re.compile(r"^[+-]?\d+([.,]\d+)*%?$")
BOOLEAN_LITERALS = {"true", "false", "yes", "no"}
SHORT_TOKEN_MAX = 2

Position = Tuple[int, int]


def collect_unique_content(grid: Grid) -> List[str]:
    """
    Distinct non-empty trimmed cleaned values, in first-occurrence row-major
    order. Deterministic for a given grid.
    """
    seen: Dict[str, None] = {}
    for cell in grid.iter_cells():
        if cell.is_empty:
            continue
        key = cell.fingerprint
        if key and key not in seen:
            seen[key] = None
    return list(seen)


@dataclass
class ContentIndex:
    """Content -> positions where it occurs, in first-occurrence order."""
    positions: "OrderedDict[str, List[Position]]" = field(default_factory=OrderedDict)

    @property
    def contents(self) -> List[str]:
        return list(self.positions.keys())

    def occurrences(self, content: str) -> List[Position]:
        return self.positions.get(content, [])

    def duplicates(self) -> Dict[str, List[Position]]:
        """Content appearing in more than one cell."""
        return {k: v for k, v in self.positions.items() if len(v) > 1}

    def __len__(self) -> int:
        return len(self.positions)


def build_content_index(grid: Grid) -> ContentIndex:
    index = ContentIndex()
    for cell in grid.iter_cells():
        if cell.is_empty:
            continue
        index.positions.setdefault(cell.fingerprint, []).append((cell.row, cell.col))
    return index


def is_trivial(content: str) -> bool:
    """Numerals, 1-2 letter tokens and boolean literals need no translation."""
    text = content.strip()
    if not text:
        return True
    if NUMERAL_RE.match(text):
        return True
    if len(text) <= SHORT_TOKEN_MAX and text.isalpha():
        return True
    return text.lower() in BOOLEAN_LITERALS


class ContentFilter:
    """Splits unique content into text to translate and tokens to pass through."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def split(self, contents: Iterable[str]) -> Tuple[List[str], List[str]]:
        """Returns (to_translate, passthrough), each in input order."""
        to_translate: List[str] = []
        passthrough: List[str] = []
        for content in contents:
            if self.enabled and is_trivial(content):
                passthrough.append(content)
            else:
                to_translate.append(content)
        return to_translate, passthrough
