#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
test_models.py - Cell and Grid records.
"""

import dataclasses

import pytest

from sheetloc.models import Grid, GridMetadata

from conftest import make_grid


class TestEditCell:
    """Manual edits swap the whole cell record; the grid keeps its shape."""

    def setup_method(self):
        self.grid = make_grid([
            ["1", "<b>Hi &amp; bye</b>", ""],
            ["2", "Сетка", "x"],
        ])

    def test_record_swapped(self):
        before = self.grid.cell(0, 1)
        updated = self.grid.edit_cell(0, 1, "Привет")

        assert self.grid.cell(0, 1) is updated
        assert updated is not before
        assert before.cleaned == "Hi & bye"
        assert updated.original == updated.cleaned == "Привет"

    def test_position_and_flags_kept(self):
        updated = self.grid.edit_cell(0, 1, "Привет")
        assert (updated.row, updated.col) == (0, 1)
        assert updated.has_html and updated.has_entities

    def test_shape_unchanged(self):
        shape = self.grid.shape
        self.grid.edit_cell(1, 2, "")
        self.grid.edit_cell(0, 2, "filled")
        assert self.grid.shape == shape
        assert self.grid.cell(1, 2).is_empty
        assert not self.grid.cell(0, 2).is_empty

    def test_cells_are_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            self.grid.cell(0, 0).cleaned = "changed"

    def test_out_of_range(self):
        with pytest.raises(IndexError):
            self.grid.edit_cell(5, 0, "x")


class TestGrid:
    def test_ragged_rows_rejected(self):
        grid = make_grid([["a", "b"]])
        with pytest.raises(ValueError):
            Grid(rows=[grid.rows[0], grid.rows[0][:1]])

    def test_dict_round_trip_keeps_metadata(self):
        grid = make_grid([["a", "b"], ["c", ""]])
        grid.metadata = GridMetadata(sheet_name="Questions", source_columns=20,
                                     effective_columns=2, dropped_rows=3)
        loaded = Grid.from_dict(grid.to_dict())
        assert loaded.metadata == grid.metadata
        assert loaded.to_values() == [["a", "b"], ["c", ""]]
