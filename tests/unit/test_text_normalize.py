#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
test_text_normalize.py - Entity decoding, tag stripping and idempotence.
"""

import logging
from datetime import date

import pytest

from sheetloc.cache_manager import LRUCache
from sheetloc.text_normalize import (
    CellNormalizer,
    clean_text,
    decode_numeric_refs,
    display_text,
    normalize,
)


SAMPLES = [
    "&#1057;&#1077;&#1090;&#1082;&#1072;",
    "Hi &amp; bye",
    "<p>Hello <b>World</b></p>",
    "a &amp;amp; b",
    "&lt;script&gt;alert(1)&lt;/script&gt;",
    "  line one\n\n line\ttwo  ",
    "broken &#xZZ; ref",
    "&#99999999; too big",
    "&#x41;&#66;&apos;&quot;",
    "",
    "plain text",
]


class TestNormalize:
    """normalize(): decode order, flags and edge inputs."""

    def test_cyrillic_numeric_refs(self):
        result = normalize("&#1057;&#1077;&#1090;&#1082;&#1072;")
        assert result.cleaned == "Сетка"
        assert result.has_entities is True
        assert result.has_html is False

    def test_ampersand_entity(self):
        assert normalize("Hi &amp; bye").cleaned == "Hi & bye"

    def test_tags_stripped_and_flagged(self):
        result = normalize("<p>Hello <b>World</b></p>")
        assert result.cleaned == "Hello World"
        assert result.has_html is True

    def test_whitespace_collapsed(self):
        assert normalize("  line one\n\n line\ttwo  ").cleaned == "line one line two"

    def test_hex_and_named_entities(self):
        assert normalize("&#x41;&#66;&apos;&quot;").cleaned == "AB'\""

    def test_nbsp_becomes_space(self):
        assert normalize("a&nbsp;&nbsp;b").cleaned == "a b"

    def test_encoded_markup_is_removed(self):
        assert normalize("&lt;script&gt;alert(1)&lt;/script&gt;").cleaned == "alert(1)"

    def test_none_and_non_string(self):
        for value in (None, 42, 1.5):
            result = normalize(value)
            assert result.cleaned == ""
            assert not result.has_html and not result.has_entities
            assert result.is_empty

    def test_empty_string_is_valid(self):
        result = normalize("")
        assert result.cleaned == ""
        assert result.is_empty

    @pytest.mark.parametrize("raw", SAMPLES)
    def test_idempotent(self, raw):
        once = normalize(raw).cleaned
        assert normalize(once).cleaned == once


class TestDecodeAnomalies:
    """Malformed numeric references stay in place and are logged."""

    def test_malformed_ref_left_untouched(self, caplog):
        with caplog.at_level(logging.WARNING, logger="sheetloc.text_normalize"):
            assert clean_text("broken &#xZZ; ref") == "broken &#xZZ; ref"
        assert any("DecodeAnomaly" in r.message for r in caplog.records)

    def test_out_of_range_and_surrogate(self):
        anomalies = []
        text = decode_numeric_refs("&#99999999; &#xD800;", anomalies)
        assert text == "&#99999999; &#xD800;"
        assert [a.reference for a in anomalies] == ["&#99999999;", "&#xD800;"]

    def test_anomaly_logged_once_per_reference(self, caplog):
        with caplog.at_level(logging.WARNING, logger="sheetloc.text_normalize"):
            clean_text("&#xZZ; and &#xZZ;")
        assert len([r for r in caplog.records if "DecodeAnomaly" in r.message]) == 1


class TestDisplayText:
    def test_spreadsheet_values(self):
        assert display_text(None) == ""
        assert display_text(True) == "TRUE"
        assert display_text(1.0) == "1"
        assert display_text(2.5) == "2.5"
        assert display_text(float("nan")) == ""
        assert display_text(7) == "7"
        assert display_text(date(2024, 1, 31)) == "2024-01-31"


class TestCellNormalizer:
    """Memoized normalization through a session-owned LRU cache."""

    def test_repeated_text_hits_cache(self):
        cache = LRUCache(10)
        normalizer = CellNormalizer(cache=cache)
        first = normalizer("Hi &amp; bye")
        second = normalizer("Hi &amp; bye")
        assert first == second
        assert cache.stats.hits == 1
        assert cache.stats.misses == 1

    def test_numbers_normalized_as_display_text(self):
        normalizer = CellNormalizer()
        assert normalizer(1.0).cleaned == "1"
        assert normalizer(None).is_empty

    def test_instances_do_not_share_cache(self):
        a, b = CellNormalizer(), CellNormalizer()
        a("shared text")
        assert len(a.cache) == 1
        assert len(b.cache) == 0
