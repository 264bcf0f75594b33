"""
sheet_grid.py — Grid model and merged-cell resolution
======================================================
A decoded sheet is a list of rows of nullable scalar cells plus the merged
rectangles reported by the spreadsheet reader. Rows may be ragged; every
accessor treats a missing cell as ``None``.

Design principles
-----------------
  1. NEVER mutate a Grid — ``resolve_merges`` builds a new one.
  2. NEVER trust data types — a cell can be str | int | float | datetime | NaN.
  3. Blank means None, NaN or whitespace-only text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator, List, Optional, Sequence, Tuple

import pandas as pd

Cell = Any
Row = Tuple[Cell, ...]


# ══════════════════════════════════════════════════════════════════════════════
# Primitive helpers
# ══════════════════════════════════════════════════════════════════════════════

def clean(v: Any) -> str:
    """Return stripped string; '' when None/NaN."""
    if v is None:
        return ""
    if isinstance(v, float) and (v != v):          # NaN fast-path
        return ""
    return str(v).strip()


def is_blank(v: Any) -> bool:
    return v is None or (isinstance(v, float) and (v != v)) or clean(v) == ""


def _normalise_cell(v: Any) -> Cell:
    if isinstance(v, float) and v != v:
        return None
    if v is pd.NaT:
        return None
    return v


# ══════════════════════════════════════════════════════════════════════════════
# Model
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MergedRegion:
    """Inclusive, zero-based rectangle of cells sharing one logical value."""

    start_row: int
    end_row: int
    start_col: int
    end_col: int

    def cells(self) -> Iterator[Tuple[int, int]]:
        for r in range(self.start_row, self.end_row + 1):
            for c in range(self.start_col, self.end_col + 1):
                yield r, c

    @classmethod
    def from_ref(cls, ref: str) -> "MergedRegion":
        """Build from an A1 range such as ``"A3:C4"``."""
        from openpyxl.utils.cell import range_boundaries

        min_col, min_row, max_col, max_row = range_boundaries(ref)
        return cls(min_row - 1, max_row - 1, min_col - 1, max_col - 1)


class Grid:
    """Immutable rows × columns view of a sheet."""

    __slots__ = ("_rows", "_width")

    def __init__(self, rows: Iterable[Sequence[Cell]] = ()):
        self._rows: Tuple[Row, ...] = tuple(
            tuple(_normalise_cell(v) for v in (row or ())) for row in rows
        )
        self._width = max((len(r) for r in self._rows), default=0)

    # ── shape ────────────────────────────────────────────────────────────────
    @property
    def n_rows(self) -> int:
        return len(self._rows)

    @property
    def n_cols(self) -> int:
        return self._width

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[Row]:
        return iter(self._rows)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Grid):
            return NotImplemented
        return self._rows == other._rows

    def __hash__(self) -> int:
        return hash(self._rows)

    def __repr__(self) -> str:
        return f"Grid(rows={self.n_rows}, cols={self.n_cols})"

    # ── access ───────────────────────────────────────────────────────────────
    def cell(self, row: int, col: int) -> Cell:
        if row < 0 or col < 0 or row >= len(self._rows):
            return None
        r = self._rows[row]
        if col >= len(r):
            return None
        return r[col]

    def row(self, row: int) -> Row:
        if row < 0 or row >= len(self._rows):
            return ()
        return self._rows[row]

    def row_values(self, row: int, width: Optional[int] = None) -> List[Cell]:
        """Row padded (or cut) to ``width`` cells; full grid width by default."""
        width = self._width if width is None else width
        return [self.cell(row, c) for c in range(width)]

    def column(self, col: int) -> List[Cell]:
        return [self.cell(r, col) for r in range(len(self._rows))]

    def is_blank_row(self, row: int) -> bool:
        return all(is_blank(v) for v in self.row(row))

    def slice_rows(self, start: int, stop: Optional[int] = None) -> "Grid":
        return Grid(self._rows[start:stop])

    def to_lists(self) -> List[List[Cell]]:
        return [list(r) for r in self._rows]

    # ── construction ─────────────────────────────────────────────────────────
    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "Grid":
        """Build from a header-less DataFrame (``header=None``), NaN → None."""
        return cls(df.astype(object).where(pd.notna(df), None).values.tolist())


# ══════════════════════════════════════════════════════════════════════════════
# Merge resolver
# ══════════════════════════════════════════════════════════════════════════════

def _region_value(rows: Sequence[Sequence[Cell]], region: MergedRegion) -> Cell:
    value = None
    for r, c in region.cells():
        if r < len(rows) and c < len(rows[r]) and not is_blank(rows[r][c]):
            value = rows[r][c]
    return value


def resolve_merges(grid: Grid, regions: Optional[Iterable[MergedRegion]] = None) -> Grid:
    """
    Return a new Grid where every cell of each merged region holds the
    region's value (the last non-blank cell in row-major order).

    All-blank regions stay blank; cells outside any region pass through.
    Regions past the last row are clipped, ragged rows are padded.
    """
    regions = list(regions or [])
    if not regions:
        return grid

    rows: List[List[Cell]] = grid.to_lists()
    for region in regions:
        value = _region_value(rows, region)
        if value is None:
            continue
        for r, c in region.cells():
            if r >= len(rows) or c < 0 or r < 0:
                continue
            row = rows[r]
            if c >= len(row):
                row.extend([None] * (c + 1 - len(row)))
            row[c] = value
    return Grid(rows)
