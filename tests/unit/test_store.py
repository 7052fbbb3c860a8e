#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
test_store.py - JSON-file grid store.
"""

import json

import pytest

from sheetloc.store import GridStore

from conftest import make_grid


@pytest.fixture
def store(tmp_path):
    return GridStore(str(tmp_path / "data" / "saved-data.json"))


class TestGridStore:
    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        assert await store.get("nothing") is None

    @pytest.mark.asyncio
    async def test_put_get_delete(self, store):
        await store.put("settings", {"lang": "ru"})
        assert await store.get("settings") == {"lang": "ru"}
        assert await store.delete("settings") is True
        assert await store.get("settings") is None
        assert await store.delete("settings") is False

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, store):
        await store.put("a", 1)
        await store.put("b", 2)
        await store.delete("a")
        assert await store.get("b") == 2

    @pytest.mark.asyncio
    async def test_grid_round_trip(self, store):
        grid = make_grid([["Hi &amp; bye", "<b>x</b>"], ["", "Сетка"]])
        await store.save_grid(grid)
        loaded = await store.load_grid()
        assert loaded.shape == grid.shape
        assert loaded.cell(0, 0).cleaned == "Hi & bye"
        assert loaded.cell(0, 1).has_html
        assert loaded.cell(1, 1).cleaned == "Сетка"
        assert loaded.metadata.sheet_name == "test"

    @pytest.mark.asyncio
    async def test_file_is_plain_json(self, store):
        await store.put("k", "значение")
        data = json.loads(store.path.read_text(encoding="utf-8"))
        assert data == {"k": "значение"}
        assert not store.path.with_suffix(".json.tmp").exists()

    @pytest.mark.asyncio
    async def test_clear_grid(self, store):
        await store.save_grid(make_grid([["a"]]))
        assert await store.clear_grid() is True
        assert await store.load_grid() is None
