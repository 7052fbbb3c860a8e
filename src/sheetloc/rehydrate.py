# -*- coding: utf-8 -*-
"""
rehydrate.py - Write translations back into the grid

Every cell whose trimmed cleaned text is a key of the translation map gets a
new record with that translation as both ``original`` and ``cleaned``. Empty
cells and unmapped content are kept as they are. Shape never changes.
"""

import logging
from typing import Dict

from .models import Cell, Grid

logger = logging.getLogger(__name__)


def rehydrate(grid: Grid, translation_map: Dict[str, str]) -> Grid:
    """Return a new grid with mapped content replaced."""
    replaced = 0

    def apply(cell: Cell) -> Cell:
        nonlocal replaced
        if cell.is_empty:
            return cell
        translated = translation_map.get(cell.fingerprint)
        if translated is None:
            return cell
        replaced += 1
        return cell.replace_content(translated)

    result = grid.map_cells(apply)
    logger.info(f"Rehydrated {replaced} cells across {grid.n_rows} rows")
    return result
