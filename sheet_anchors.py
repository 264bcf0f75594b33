"""
sheet_anchors.py — keyword anchors and table boundaries
========================================================
Nothing here hard-codes a row or column position: the header row, the end
of the table and the metadata cells are all found by case-insensitive
keyword matches. "Not found" is ``None``, never an exception.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Pattern, Sequence

from diagnostics import END_NOT_FOUND, START_NOT_FOUND, DiagnosticLog
from sheet_grid import Grid, clean, is_blank

logger = logging.getLogger(__name__)

ROLE_START = "start"
ROLE_END = "end"
ROLE_METADATA = "metadataKey"


@dataclass(frozen=True)
class Anchor:
    row: int
    col: int
    keyword: str
    role: str = ROLE_START


@dataclass(frozen=True)
class TableBounds:
    header_row: int
    body_start: int
    end_row: int                      # exclusive
    end_reason: str                   # "keyword" | "blank_run" | "end_of_grid"
    start_anchor: Anchor
    end_anchor: Optional[Anchor] = None

    @property
    def body_rows(self) -> range:
        return range(self.body_start, self.end_row)


# ══════════════════════════════════════════════════════════════════════════════
# Keyword matching
# ══════════════════════════════════════════════════════════════════════════════

def match_kw(value: Any, kw: str) -> bool:
    """Case-insensitive substring match on the stripped cell text."""
    if is_blank(value):
        return False
    return kw.strip().lower() in clean(value).lower()


def match_strict(value: Any, kw: str) -> bool:
    if is_blank(value):
        return False
    return clean(value).lower() == kw.strip().lower()


def find_row_anchor(
    grid: Grid,
    keyword: str,
    column: Optional[int] = None,
    start: int = 0,
    stop: Optional[int] = None,
) -> Optional[int]:
    """First row (top to bottom) where ``column``, or any column when None, contains ``keyword``."""
    stop = grid.n_rows if stop is None else min(stop, grid.n_rows)
    for r in range(max(start, 0), stop):
        cells = [grid.cell(r, column)] if column is not None else grid.row(r)
        if any(match_kw(v, keyword) for v in cells):
            return r
    return None


def find_column_anchor(grid: Grid, row: int, keyword: str, start: int = 0) -> Optional[int]:
    """First column of ``row`` containing ``keyword``."""
    for c, v in enumerate(grid.row(row)):
        if c >= start and match_kw(v, keyword):
            return c
    return None


def find_last_column_anchor(grid: Grid, row: int, keyword: str, after: int = -1) -> Optional[int]:
    """Like ``find_column_anchor`` but scanning right to left, stopping at ``after``."""
    for c in range(len(grid.row(row)) - 1, after, -1):
        if match_kw(grid.cell(row, c), keyword):
            return c
    return None


def find_header_row(
    grid: Grid,
    keywords: Sequence[str],
    column: Optional[int] = None,
    start: int = 0,
) -> Optional[Anchor]:
    """
    First row holding every keyword (each in some cell).

    With ``column`` set, the first keyword must sit in that column; the
    others may be anywhere on the row. The returned anchor points at the
    first keyword's cell.
    """
    if not keywords:
        return None
    first, rest = keywords[0], keywords[1:]
    r = start
    while True:
        r = find_row_anchor(grid, first, column=column, start=r)
        if r is None:
            return None
        if all(find_column_anchor(grid, r, kw) is not None for kw in rest):
            col = column if column is not None else find_column_anchor(grid, r, first)
            return Anchor(row=r, col=col, keyword=first, role=ROLE_START)
        r += 1


# ══════════════════════════════════════════════════════════════════════════════
# Table boundaries
# ══════════════════════════════════════════════════════════════════════════════

def _find_blank_run(grid: Grid, start: int, run: int) -> Optional[int]:
    """Row index of the first blank row of the first run of ``run`` blank rows."""
    count = 0
    for r in range(start, grid.n_rows):
        if grid.is_blank_row(r):
            count += 1
            if count >= run:
                return r - run + 1
        else:
            count = 0
    return None


def locate_table(
    grid: Grid,
    start_keywords: Sequence[str],
    end_keywords: Iterable[str] = (),
    *,
    start_column: Optional[int] = None,
    end_column: Optional[int] = None,
    blank_run: int = 2,
    diagnostics: Optional[DiagnosticLog] = None,
) -> Optional[TableBounds]:
    """
    Find the header row by ``start_keywords`` and the end of the table.

    End policy: the first row below the header that matches an end keyword;
    failing that, the first run of ``blank_run`` fully blank rows; failing
    that, the end of the grid (``blank_run=0`` disables the blank-row rule).
    A missing start anchor returns None and logs a ``start_not_found``
    diagnostic.
    """
    start = find_header_row(grid, list(start_keywords), column=start_column)
    if start is None:
        if diagnostics is not None:
            diagnostics.add(
                START_NOT_FOUND,
                f"header keywords {list(start_keywords)!r} not found",
            )
        return None

    body_start = start.row + 1
    end_keywords = list(end_keywords)

    end_anchor: Optional[Anchor] = None
    for kw in end_keywords:
        r = find_row_anchor(grid, kw, column=end_column, start=body_start)
        if r is not None and (end_anchor is None or r < end_anchor.row):
            c = end_column if end_column is not None else find_column_anchor(grid, r, kw)
            end_anchor = Anchor(row=r, col=c, keyword=kw, role=ROLE_END)
    if end_anchor is not None:
        return TableBounds(start.row, body_start, end_anchor.row, "keyword", start, end_anchor)

    if end_keywords and diagnostics is not None:
        diagnostics.add(
            END_NOT_FOUND,
            f"end keywords {end_keywords!r} not found; using blank-row run / end of grid",
            row=start.row,
        )

    blank = _find_blank_run(grid, body_start, blank_run) if blank_run > 0 else None
    if blank is not None:
        return TableBounds(start.row, body_start, blank, "blank_run", start)
    return TableBounds(start.row, body_start, grid.n_rows, "end_of_grid", start)


# ══════════════════════════════════════════════════════════════════════════════
# Metadata cells
# ══════════════════════════════════════════════════════════════════════════════

def look_right(grid: Grid, row: int, col: int, span: int = 5) -> Any:
    """First non-blank cell within ``span`` columns to the right of (row, col)."""
    for k in range(col + 1, col + 1 + span):
        v = grid.cell(row, k)
        if not is_blank(v):
            return v
    return None


def _read_line(value: Any, keyword: str) -> Optional[str]:
    lines = [ln.strip() for ln in str(value).splitlines() if ln.strip()]
    kw = re.compile(re.escape(keyword.strip()), re.IGNORECASE)
    for ln in lines:
        if kw.search(ln):
            rest = kw.sub("", ln, count=1).strip(" :")
            if rest:
                return rest
            break
    return lines[-1] if len(lines) > 1 else None


@dataclass(frozen=True)
class MetadataRule:
    """
    How to read one metadata value keyed by a label cell.

    mode "inline": the value follows the keyword in the same cell
               ("Revision: 03"), captured by ``pattern`` or by ``<kw>\\s*(.+)``.
    mode "right":  the first non-blank cell right of the label.
    mode "offset": the cell exactly ``offset`` columns right of the label.
    mode "cell":   the label cell's whole text.
    mode "line":   in a multi-line label cell, the line holding the keyword
               with the keyword removed; the last line when that is empty.
    mode "digits": the first run of digits in the label cell.
    """

    key: str
    keyword: str
    mode: str = "inline"
    offset: int = 1
    pattern: Optional[Pattern[str]] = None
    prefix: bool = False

    def matches(self, value: Any) -> bool:
        if self.prefix:
            return clean(value).lower().startswith(self.keyword.strip().lower())
        return match_kw(value, self.keyword)

    def read(self, grid: Grid, row: int, col: int) -> Any:
        text = clean(grid.cell(row, col))
        if self.mode == "inline":
            pattern = self.pattern or re.compile(re.escape(self.keyword.strip()) + r"\s*(.+)", re.IGNORECASE)
            m = pattern.search(text)
            return m.group(1).strip() if m else None
        if self.mode == "right":
            return look_right(grid, row, col)
        if self.mode == "offset":
            v = grid.cell(row, col + self.offset)
            return None if is_blank(v) else v
        if self.mode == "line":
            return _read_line(grid.cell(row, col), self.keyword)
        if self.mode == "digits":
            m = re.search(r"\d+", text)
            return m.group(0) if m else (text.split(" ")[-1] or None)
        return text or None


def scan_metadata(
    grid: Grid,
    rules: Sequence[MetadataRule],
    rows: Optional[range] = None,
    cols: Optional[range] = None,
) -> Dict[str, Any]:
    """
    Read ``label → value`` pairs from the sheet preamble.

    Later matches overwrite earlier ones, except that a rule never replaces a
    value with None.
    """
    rows = rows if rows is not None else range(min(5, grid.n_rows))
    found: Dict[str, Any] = {rule.key: None for rule in rules}
    anchors: List[Anchor] = []
    for r in rows:
        width = len(grid.row(r))
        for c in (cols if cols is not None else range(width)):
            v = grid.cell(r, c)
            if is_blank(v):
                continue
            for rule in rules:
                if rule.matches(v):
                    value = rule.read(grid, r, c)
                    if value is not None:
                        found[rule.key] = value
                        anchors.append(Anchor(r, c, rule.keyword, ROLE_METADATA))
    if anchors:
        logger.debug("Metadata anchors: %s", anchors)
    return found
