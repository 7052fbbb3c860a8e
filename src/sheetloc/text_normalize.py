# -*- coding: utf-8 -*-
"""
text_normalize.py - Entity/HTML normalizer for spreadsheet cell text

Cleaning runs in a fixed order:
  1. numeric character references (&#NNN; / &#xHHH;) -> code point
  2. named entities (&lt; &gt; &amp; &quot; &nbsp; &apos;)
  3. strip tag-like substrings <...>
  4. collapse whitespace runs to one space and trim

Steps 1-3 repeat until the text stops changing, so entities that decode into
new entities or tags are fully resolved and cleaning is idempotent.
Malformed numeric references are left in place and logged as DecodeAnomaly.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, List, Optional

from .cache_manager import LRUCache, content_prefix_key
from .errors import DecodeAnomaly

logger = logging.getLogger(__name__)

NUMERIC_REF_RE = re.compile(r"&#([^;&\s<>]{1,16});")
NAMED_ENTITIES = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
    ("&quot;", '"'),
    ("&nbsp;", " "),
    ("&apos;", "'"),
)
TAG_RE = re.compile(r"<[^>]*>")
ENTITY_SHAPE_RE = re.compile(r"&[a-zA-Z0-9#]+;")
WHITESPACE_RE = re.compile(r"\s+")

MAX_CODE_POINT = 0x10FFFF


@dataclass(frozen=True)
class NormalizedText:
    cleaned: str
    has_html: bool
    has_entities: bool

    @property
    def is_empty(self) -> bool:
        return not self.cleaned.strip()


def _decode_numeric(payload: str) -> Optional[str]:
    """Code point for a reference payload, or None if it is malformed."""
    try:
        if payload[0] in "xX":
            code = int(payload[1:], 16)
        else:
            if not payload.isdigit():
                return None
            code = int(payload, 10)
    except ValueError:
        return None
    if code <= 0 or code > MAX_CODE_POINT or 0xD800 <= code <= 0xDFFF:
        return None
    return chr(code)


def decode_numeric_refs(text: str, anomalies: Optional[List[DecodeAnomaly]] = None) -> str:
    def repl(match: "re.Match") -> str:
        decoded = _decode_numeric(match.group(1))
        if decoded is None:
            if anomalies is not None:
                anomalies.append(DecodeAnomaly(match.group(0), "not a valid code point"))
            return match.group(0)
        return decoded

    return NUMERIC_REF_RE.sub(repl, text)


def decode_named_entities(text: str) -> str:
    for entity, char in NAMED_ENTITIES:
        text = text.replace(entity, char)
    return text


def strip_tags(text: str) -> str:
    return TAG_RE.sub("", text)


def collapse_whitespace(text: str) -> str:
    return WHITESPACE_RE.sub(" ", text).strip()


def has_html(text: str) -> bool:
    return bool(TAG_RE.search(text))


def has_entities(text: str) -> bool:
    return bool(ENTITY_SHAPE_RE.search(text))


def clean_text(text: str) -> str:
    """Decode entities, strip tags and collapse whitespace."""
    anomalies: List[DecodeAnomaly] = []
    current = text
    # every productive pass shortens the text, so this terminates
    while True:
        step = decode_numeric_refs(current, anomalies)
        step = decode_named_entities(step)
        step = strip_tags(step)
        if step == current:
            break
        current = step

    for anomaly in dict.fromkeys(anomalies):
        logger.warning(f"DecodeAnomaly: {anomaly}")
    return collapse_whitespace(current)


def normalize(raw: Any) -> NormalizedText:
    """
    Normalize raw cell text into display text plus detection flags.

    Flags are computed on the raw string, so a cell whose markup decodes to
    plain text still reports ``has_html``. Non-string input yields an empty
    result with both flags false.
    """
    if not isinstance(raw, str) or not raw:
        return NormalizedText(cleaned="", has_html=False, has_entities=False)
    return NormalizedText(
        cleaned=clean_text(raw),
        has_html=has_html(raw),
        has_entities=has_entities(raw),
    )


def display_text(value: Any) -> str:
    """String form of a spreadsheet value before normalization."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float):
        if value != value:  # NaN from pandas blanks
            return ""
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class CellNormalizer:
    """
    ``normalize`` memoized in a per-session LRU cache.

    Large sheets repeat the same strings many times; the cache key is the
    content length and prefix plus a digest of the full text.
    """

    def __init__(self, cache: Optional[LRUCache] = None, max_size: int = 1000):
        self.cache = cache if cache is not None else LRUCache(max_size)

    def __call__(self, raw: Any) -> NormalizedText:
        text = display_text(raw)
        if not text:
            return normalize(text)
        key = content_prefix_key(text, "clean")
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        result = normalize(text)
        self.cache.set(key, result)
        return result
