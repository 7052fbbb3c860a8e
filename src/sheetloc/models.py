# -*- coding: utf-8 -*-
"""Grid and cell records shared by every pipeline stage."""

from dataclasses import dataclass, field, asdict, replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Tuple


@dataclass(frozen=True)
class Cell:
    """One grid position: raw value, display text and content-type flags.

    Cells are immutable; edits and translations build a new record.
    """
    original: Any
    cleaned: str
    has_html: bool = False
    has_entities: bool = False
    is_empty: bool = True
    row: int = 0
    col: int = 0

    @property
    def fingerprint(self) -> str:
        """Dedup and cache key: the trimmed display text."""
        return self.cleaned.strip()

    def replace_content(self, value: str) -> "Cell":
        """New record with both ``original`` and ``cleaned`` set to ``value``.

        Content-type flags describe what was ingested and are kept.
        """
        return replace(self, original=value, cleaned=value,
                       is_empty=not value.strip())

    def export_value(self) -> Any:
        if self.cleaned:
            return self.cleaned
        if self.original is None:
            return ""
        return self.original

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Cell":
        return cls(**data)


@dataclass
class GridMetadata:
    sheet_name: str = ""
    source_columns: int = 0
    effective_columns: int = 0
    dropped_rows: int = 0
    processed_at: str = field(default_factory=lambda: datetime.now().isoformat())


@dataclass
class Grid:
    """Rectangular rows of cells. Shape is fixed after ingestion."""
    rows: List[List[Cell]] = field(default_factory=list)
    metadata: GridMetadata = field(default_factory=GridMetadata)

    def __post_init__(self):
        widths = {len(r) for r in self.rows}
        if len(widths) > 1:
            raise ValueError(f"Grid rows must have equal length, got widths {sorted(widths)}")

    @property
    def n_rows(self) -> int:
        return len(self.rows)

    @property
    def n_cols(self) -> int:
        return len(self.rows[0]) if self.rows else 0

    @property
    def shape(self) -> Tuple[int, int]:
        return self.n_rows, self.n_cols

    def cell(self, row: int, col: int) -> Cell:
        return self.rows[row][col]

    def iter_cells(self) -> Iterator[Cell]:
        """Cells in row-major order."""
        for row in self.rows:
            yield from row

    def map_cells(self, fn: Callable[[Cell], Cell]) -> "Grid":
        """New grid of the same shape with ``fn`` applied to every cell."""
        return Grid(rows=[[fn(c) for c in row] for row in self.rows],
                    metadata=replace(self.metadata))

    def edit_cell(self, row: int, col: int, value: str) -> Cell:
        """Replace one cell's content in place (whole-record swap)."""
        updated = self.rows[row][col].replace_content(value)
        self.rows[row][col] = updated
        return updated

    def to_values(self) -> List[List[Any]]:
        return [[c.export_value() for c in row] for row in self.rows]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata": asdict(self.metadata),
            "rows": [[c.to_dict() for c in row] for row in self.rows],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Grid":
        meta = GridMetadata(**(data.get("metadata") or {}))
        rows = [[Cell.from_dict(c) for c in row] for row in data.get("rows", [])]
        return cls(rows=rows, metadata=meta)
