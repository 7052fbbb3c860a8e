# -*- coding: utf-8 -*-
"""
ingest.py - Spreadsheet ingestion and export

Purpose:
  Turn uploaded spreadsheet bytes into an annotated Grid and back.

Phases:
  1. read_raw_rows: first sheet -> jagged list of rows, blanks as ""
  2. trim_rows:     drop all-blank rows, cut to the effective column count
  3. build cells:   every value through the normalizer, chunked with a
                    cooperative yield so a large sheet does not block the loop

Formats: xlsx/xlsm (openpyxl via pandas) and UTF-8 CSV for text input.
Legacy binary .xls workbooks and anything else raise ParseError.
"""

import asyncio
import csv
import io
import logging
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

import aiofiles
import pandas as pd
from openpyxl.utils import get_column_letter

from .errors import ParseError
from .models import Cell, Grid, GridMetadata
from .text_normalize import CellNormalizer, display_text

logger = logging.getLogger(__name__)

ZIP_MAGIC = b"PK\x03\x04"
OLE_MAGIC = b"\xd0\xcf\x11\xe0"

DEFAULT_CHUNK_ROWS = 100
EXPORT_SHEET_NAME = "Data"
MIN_COL_WIDTH = 10
MAX_COL_WIDTH = 50
WIDTH_SAMPLE_ROWS = 100

RawRows = List[List[Any]]


def _is_blank(value: Any) -> bool:
    return display_text(value).strip() == ""


def _read_excel(data: bytes) -> Tuple[str, RawRows]:
    try:
        book = pd.ExcelFile(io.BytesIO(data))
        sheet_name = book.sheet_names[0]
        df = book.parse(sheet_name, header=None, dtype=object)
    except Exception as e:
        raise ParseError(f"Failed to read workbook: {e}") from e

    rows: RawRows = []
    for record in df.itertuples(index=False, name=None):
        rows.append(["" if pd.isna(v) else v for v in record])
    return str(sheet_name), rows


def _read_csv(data: bytes) -> Tuple[str, RawRows]:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ParseError("Input is neither a workbook nor UTF-8 text") from e
    if "\x00" in text:
        raise ParseError("Input contains binary data")
    try:
        rows = [list(r) for r in csv.reader(io.StringIO(text))]
    except csv.Error as e:
        raise ParseError(f"Failed to read CSV: {e}") from e
    return "csv", rows


def read_raw_rows(data: bytes) -> Tuple[str, RawRows]:
    """
    Phase 1: decode bytes into the first sheet's jagged rows.

    Returns:
        (sheet_name, rows) with blank cells as ""

    Raises:
        ParseError: if the bytes are not a recognizable tabular format
    """
    if not data:
        raise ParseError("Empty input")
    if data.startswith(OLE_MAGIC):
        raise ParseError("Legacy .xls workbooks are not supported; save the file as .xlsx")
    if data.startswith(ZIP_MAGIC):
        return _read_excel(data)
    return _read_csv(data)


def trim_rows(raw: RawRows) -> Tuple[RawRows, int]:
    """
    Phase 2: drop all-blank rows and trailing all-blank columns.

    The effective column count is the maximum over rows of (index of the
    last non-blank cell + 1). Every kept row is cut or padded to that width.

    Returns:
        (rectangular rows, number of dropped rows)
    """
    kept: RawRows = []
    width = 0
    for row in raw:
        last = -1
        for idx, value in enumerate(row):
            if not _is_blank(value):
                last = idx
        if last < 0:
            continue
        width = max(width, last + 1)
        kept.append(row)

    rect = [list(row[:width]) + [""] * (width - len(row[:width])) for row in kept]
    return rect, len(raw) - len(kept)


def build_cell(value: Any, row: int, col: int, normalizer: CellNormalizer) -> Cell:
    result = normalizer(value)
    return Cell(
        original=value,
        cleaned=result.cleaned,
        has_html=result.has_html,
        has_entities=result.has_entities,
        is_empty=result.is_empty,
        row=row,
        col=col,
    )


async def ingest(data: bytes,
                 normalizer: Optional[CellNormalizer] = None,
                 chunk_rows: int = DEFAULT_CHUNK_ROWS) -> Grid:
    """
    Read spreadsheet bytes into an annotated Grid.

    Raises:
        ParseError: input is not a recognizable tabular file; no partial grid
    """
    normalizer = normalizer or CellNormalizer()
    sheet_name, raw = read_raw_rows(data)
    source_columns = max((len(r) for r in raw), default=0)
    rect, dropped = trim_rows(raw)

    rows: List[List[Cell]] = []
    for start in range(0, len(rect), chunk_rows):
        chunk = rect[start:start + chunk_rows]
        for offset, values in enumerate(chunk):
            r = start + offset
            rows.append([build_cell(v, r, c, normalizer) for c, v in enumerate(values)])
        if start + chunk_rows < len(rect):
            await asyncio.sleep(0)

    grid = Grid(rows=rows, metadata=GridMetadata(
        sheet_name=sheet_name,
        source_columns=source_columns,
        effective_columns=len(rect[0]) if rect else 0,
        dropped_rows=dropped,
    ))
    logger.info(
        f"Ingested sheet '{sheet_name}': {grid.n_rows} rows x {grid.n_cols} columns "
        f"(source columns {source_columns}, dropped blank rows {dropped})"
    )
    return grid


async def ingest_file(path: Union[str, Path], **kwargs) -> Grid:
    """Read a spreadsheet from disk and ingest it."""
    async with aiofiles.open(path, "rb") as f:
        data = await f.read()
    return await ingest(data, **kwargs)


def column_widths(grid: Grid) -> List[int]:
    """Display width per column from the first rows, clamped to [10, 50]."""
    widths = []
    sample = grid.rows[:WIDTH_SAMPLE_ROWS]
    for col in range(grid.n_cols):
        longest = max((len(row[col].cleaned) for row in sample), default=0)
        widths.append(min(max(longest, MIN_COL_WIDTH), MAX_COL_WIDTH))
    return widths


def export_grid(grid: Grid, fmt: str = "xlsx") -> bytes:
    """
    Serialize a grid to spreadsheet bytes, one value per cell.

    Uses each cell's ``cleaned`` text, or ``original`` when cleaned is empty.
    """
    values = grid.to_values()
    if fmt == "csv":
        out = io.StringIO()
        csv.writer(out).writerows(values)
        return out.getvalue().encode("utf-8-sig")
    if fmt != "xlsx":
        raise ValueError(f"Unsupported export format: {fmt}")

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        pd.DataFrame(values).to_excel(writer, sheet_name=EXPORT_SHEET_NAME,
                                      header=False, index=False)
        ws = writer.sheets[EXPORT_SHEET_NAME]
        for idx, width in enumerate(column_widths(grid), start=1):
            ws.column_dimensions[get_column_letter(idx)].width = width
    return buffer.getvalue()
