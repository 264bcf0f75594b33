"""
beverage_manifest.py — beverage delivery manifest (item × flight blocks)
=========================================================================
The manifest repeats one block per beverage classification:

    <classification title>
    STT | item | ĐVT / Thông tin chặng bay | flight columns ... | ghi chú
        |      |                          | VN123 | VN456 ...  |
    1   | Coke | can                      | 24    | 12    ...  |

Each block is anchored on its "STT" cell; the title is the row above. The
block ends at the next "STT" or at "Số lượng xe giao đi". Flight columns run
from the unit / flight-leg column to the "ghi chú" column. One record is
emitted per (classification, item) with one key per flight.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from diagnostics import DUPLICATE_CLASSIFICATION, MISSING_COLUMN, DiagnosticLog
from field_normalizer import is_numeric
from layouts import Layout
from sheet_anchors import find_column_anchor, find_last_column_anchor, match_kw
from sheet_grid import Grid, clean, is_blank

logger = logging.getLogger(__name__)

STT_KW = "STT"
FLIGHT_LEG_KW = "Thông tin chặng bay"
UNIT_KW = "ĐVT"
END_DATA_KW = "Số lượng xe giao đi"
NOTE_KW = "ghi chú"
REEXPORT_KW = "Tái xuất"
TITLE_KW = "PHIẾU GIAO NHẬN ĐỒ UỐNG"

ITEM_COL = 1


@dataclass(frozen=True)
class BlockBounds:
    item_start_row: int
    item_end_row: int                 # exclusive
    flight_start_col: int
    flight_end_col: int               # exclusive
    header_start_row: int
    header_end_row: int               # exclusive


def find_block_bounds(grid: Grid, stt_row: int, diagnostics: Optional[DiagnosticLog] = None) -> Optional[BlockBounds]:
    """
    Bounds of the block whose "STT" header sits on ``stt_row``; None when unusable.

    A header merged down several rows repeats "STT" in column 0; those rows
    belong to this block and the end scan starts below them.
    """
    first_body = stt_row + 1
    while first_body < grid.n_rows and match_kw(grid.cell(first_body, 0), STT_KW):
        first_body += 1

    block_end = grid.n_rows
    for r in range(first_body, grid.n_rows):
        v = grid.cell(r, 0)
        if match_kw(v, STT_KW) or match_kw(v, END_DATA_KW):
            block_end = r
            break

    item_start = next(
        (r for r in range(first_body, block_end) if is_numeric(grid.cell(r, 0))),
        block_end,
    )

    flight_start = find_column_anchor(grid, stt_row, UNIT_KW)
    leg_col = find_column_anchor(grid, stt_row, FLIGHT_LEG_KW)
    if flight_start is None or (leg_col is not None and leg_col < flight_start):
        flight_start = leg_col
    if flight_start is None:
        if diagnostics is not None:
            diagnostics.add(MISSING_COLUMN, f"neither '{UNIT_KW}' nor '{FLIGHT_LEG_KW}' on STT row", row=stt_row)
        return None

    flight_end = None
    for r in (stt_row, stt_row + 1):
        c = find_last_column_anchor(grid, r, NOTE_KW, after=flight_start)
        if c is not None and (flight_end is None or c > flight_end):
            flight_end = c
    if flight_end is None:
        flight_end = grid.n_cols
        if diagnostics is not None:
            diagnostics.add(MISSING_COLUMN, f"'{NOTE_KW}' column not found; using last column", row=stt_row)

    return BlockBounds(
        item_start_row=item_start,
        item_end_row=block_end,
        flight_start_col=flight_start,
        flight_end_col=flight_end,
        header_start_row=stt_row + 1,
        header_end_row=item_start,
    )


_NOT_FLIGHTS = (REEXPORT_KW, UNIT_KW, FLIGHT_LEG_KW, STT_KW, NOTE_KW)


def _flight_headers(grid: Grid, b: BlockBounds) -> List[Tuple[str, int]]:
    # header keywords copied down by merge resolution are not flights
    headers = []
    for r in range(b.header_start_row, b.header_end_row):
        for c in range(b.flight_start_col, b.flight_end_col):
            v = grid.cell(r, c)
            if not is_blank(v) and not any(match_kw(v, kw) for kw in _NOT_FLIGHTS):
                headers.append((clean(v), c))
    return headers


def read_block(grid: Grid, b: BlockBounds) -> "OrderedDict[str, Dict[str, Any]]":
    """{item: {flight: value}}; repeated flight names become NAME_1, NAME_2 ..."""
    headers = _flight_headers(grid, b)
    content: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for r in range(b.item_start_row, b.item_end_row):
        item = grid.cell(r, ITEM_COL)
        if is_blank(item):
            continue
        seen: Dict[str, int] = {}
        values: Dict[str, Any] = {}
        for name, col in headers:
            if name in seen:
                seen[name] += 1
                key = f"{name}_{seen[name]}"
            else:
                seen[name] = 0
                key = name
            v = grid.cell(r, col)
            values[key] = None if is_blank(v) else v
        content[clean(item)] = values
    return content


def extract_manifest(grid: Grid, layout: Layout, diagnostics: DiagnosticLog) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    merged: "OrderedDict[Tuple[str, str], Dict[str, Any]]" = OrderedDict()
    spill_id = None
    blocks = 0

    for i in range(grid.n_rows):
        v = grid.cell(i, 0)
        if match_kw(v, TITLE_KW):
            spill_id = clean(v)
        if not match_kw(v, STT_KW):
            continue
        if i == 0:
            logger.info("'%s' on the first row; no classification title above it", STT_KW)
            continue
        if match_kw(grid.cell(i - 1, 0), STT_KW):
            continue                                # continuation of a merged header

        title = clean(grid.cell(i - 1, 0)) or "Untitled"
        bounds = find_block_bounds(grid, i, diagnostics)
        if bounds is None:
            logger.info("Skipping block under '%s' due to missing boundaries", title)
            continue

        content = read_block(grid, bounds)
        if not content:
            logger.info("No data extracted for block '%s'", title)
            continue
        blocks += 1

        if any(key[0] == title for key in merged):
            diagnostics.add(DUPLICATE_CLASSIFICATION, f"classification '{title}' repeated; merging items", row=i)
        for item, flights in content.items():
            record = merged.setdefault((title, item), {"classification": title, "item": item})
            record.update(flights)

    return list(merged.values()), {"spill_id": spill_id, "blocks": blocks}


BEVERAGE_MANIFEST = Layout(
    name="beverage_manifest",
    description="Beverage delivery manifest: items × flights per classification block",
    start_keywords=(STT_KW,),
    signals=("phiếu giao nhận đồ uống", "thông tin chặng bay", "đvt", "số lượng xe giao đi", "tái xuất"),
    custom=extract_manifest,
)
