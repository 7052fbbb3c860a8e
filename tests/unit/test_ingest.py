#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
test_ingest.py - Spreadsheet ingestion (two-phase trim) and export.
"""

import io
from unittest.mock import AsyncMock, patch

import pytest
from openpyxl import Workbook, load_workbook

from sheetloc.errors import ParseError
from sheetloc.ingest import (
    column_widths,
    export_grid,
    ingest,
    ingest_file,
    read_raw_rows,
    trim_rows,
)

from conftest import make_grid


def xlsx_bytes(rows, title="Questions"):
    wb = Workbook()
    ws = wb.active
    ws.title = title
    for row in rows:
        ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


class TestTrimRows:
    """Phase 2: blank rows dropped, effective column count computed."""

    def test_twenty_declared_columns_trimmed_to_eleven(self):
        raw = [[f"r{r}c{c}" if c <= 10 else "" for c in range(20)] for r in range(3)]
        rect, dropped = trim_rows(raw)
        assert dropped == 0
        assert all(len(row) == 11 for row in rect)

    def test_jagged_rows_padded(self):
        rect, _ = trim_rows([["a"], ["b", "c", "d"], ["e", ""]])
        assert rect == [["a", "", ""], ["b", "c", "d"], ["e", "", ""]]

    def test_blank_rows_dropped(self):
        rect, dropped = trim_rows([["a", "b"], ["", "  "], [], ["c", ""]])
        assert rect == [["a", "b"], ["c", ""]]
        assert dropped == 2

    def test_all_blank(self):
        assert trim_rows([["", None], []]) == ([], 2)


class TestReadRawRows:
    def test_csv_text(self):
        name, rows = read_raw_rows("a,b\nc,d\n".encode("utf-8"))
        assert name == "csv"
        assert rows == [["a", "b"], ["c", "d"]]

    def test_xlsx_first_sheet(self):
        name, rows = read_raw_rows(xlsx_bytes([["x", 1], ["y", None]]))
        assert name == "Questions"
        assert rows[0][0] == "x"
        assert rows[1][1] == ""

    @pytest.mark.parametrize("data", [
        b"",
        b"\x00\x01\x02\x03",
        b"\xff\xfe\xfa\x80garbage",
        b"PK\x03\x04not really a zip",
    ])
    def test_unrecognized_input_raises(self, data):
        with pytest.raises(ParseError):
            read_raw_rows(data)

    def test_legacy_xls_rejected(self):
        ole = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1" + b"\x00" * 504
        with pytest.raises(ParseError, match=r"\.xls"):
            read_raw_rows(ole)


class TestIngest:
    """ingest(): bytes to annotated Grid."""

    @pytest.mark.asyncio
    async def test_xlsx_with_empty_trailing_columns(self):
        rows = [[f"v{r}-{c}" for c in range(11)] + ["  "] * 9 for r in range(4)]
        grid = await ingest(xlsx_bytes(rows))
        assert grid.shape == (4, 11)
        assert grid.metadata.source_columns == 20
        assert grid.metadata.effective_columns == 11

    @pytest.mark.asyncio
    async def test_cells_are_normalized_and_positioned(self):
        data = "id,text\n1,Hi &amp; bye\n,,\n2,<b>&#1057;&#1077;&#1090;&#1082;&#1072;</b>\n"
        grid = await ingest(data.encode("utf-8"))
        assert grid.shape == (3, 2)
        assert grid.metadata.dropped_rows == 1
        cell = grid.cell(1, 1)
        assert cell.cleaned == "Hi & bye"
        assert cell.original == "Hi &amp; bye"
        assert cell.has_entities
        last = grid.cell(2, 1)
        assert last.cleaned == "Сетка"
        assert last.has_html
        assert (last.row, last.col) == (2, 1)

    @pytest.mark.asyncio
    async def test_numeric_cells_keep_original(self):
        grid = await ingest(xlsx_bytes([["q", 1, 2.5]]))
        assert grid.cell(0, 1).cleaned == "1"
        assert grid.cell(0, 2).cleaned == "2.5"

    @pytest.mark.asyncio
    async def test_yields_between_chunks(self):
        data = "\n".join(f"row{i},x" for i in range(250)).encode("utf-8")
        with patch("sheetloc.ingest.asyncio.sleep", new_callable=AsyncMock) as sleep:
            grid = await ingest(data, chunk_rows=100)
        assert grid.n_rows == 250
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_parse_error_propagates(self):
        with pytest.raises(ParseError):
            await ingest(b"\x00\x00\x00")

    @pytest.mark.asyncio
    async def test_ingest_file(self, tmp_path):
        path = tmp_path / "sheet.csv"
        path.write_text("a,b\n", encoding="utf-8")
        grid = await ingest_file(path)
        assert grid.shape == (1, 2)


class TestExport:
    def test_xlsx_values_and_widths(self):
        grid = make_grid([["Hi &amp; bye", "x" * 80], ["short", "<i>y</i>"]])
        data = export_grid(grid)
        ws = load_workbook(io.BytesIO(data)).active
        assert ws.cell(row=1, column=1).value == "Hi & bye"
        assert ws.cell(row=2, column=2).value == "y"
        assert ws.column_dimensions["A"].width == 10
        assert ws.column_dimensions["B"].width == 50

    def test_column_widths_clamped(self):
        grid = make_grid([["abcdefghijklmnop", ""]])
        assert column_widths(grid) == [16, 10]

    def test_csv_export(self):
        grid = make_grid([["a", "b &amp; c"]])
        assert export_grid(grid, "csv").decode("utf-8-sig").strip() == "a,b & c"

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            export_grid(make_grid([["a"]]), "ods")
