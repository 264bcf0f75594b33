"""
header_table.py — flat numbered list under a single header row
================================================================
Loading lists for tissues, amenities and similar items are plain tables:

    <title rows>
    STT | Tên hàng | ĐVT | Số lượng | Ghi chú
    1   | Khăn lạnh| cái | 120      |
        | (subtotal / notes rows without STT)

The header is the first row holding "STT"; fully blank rows are dropped and
only rows with a sequence number are kept. Records are keyed by the header
text, the same shape ``DataFrame.to_dict(orient="records")`` gives.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

import pandas as pd

from diagnostics import MISSING_COLUMN, START_NOT_FOUND, DiagnosticLog
from layouts import Layout
from sheet_anchors import find_row_anchor, match_strict
from sheet_grid import Grid, clean, is_blank

logger = logging.getLogger(__name__)

SEQ_KW = "STT"


def header_names(cells: List[Any]) -> List[str]:
    """Header text per column; blanks become ``col_<n>``, repeats get ``_1``, ``_2``."""
    names: List[str] = []
    seen: Dict[str, int] = {}
    for c, v in enumerate(cells):
        name = clean(v) or f"col_{c}"
        if name in seen:
            seen[name] += 1
            name = f"{name}_{seen[name]}"
        else:
            seen[name] = 0
        names.append(name)
    return names


def extract_header_table(grid: Grid, layout: Layout, diagnostics: DiagnosticLog) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    header_row = find_row_anchor(grid, SEQ_KW)
    if header_row is None:
        diagnostics.add(START_NOT_FOUND, f"no '{SEQ_KW}' header row")
        return [], {}

    columns = header_names(list(grid.row(header_row)))
    width = len(columns)
    body = [
        [None if is_blank(v) else v for v in (list(r) + [None] * width)[:width]]
        for r in grid.to_lists()[header_row + 1:]
    ]
    df = pd.DataFrame(body, columns=columns, dtype=object).dropna(how="all")

    seq_col = next((name for name in columns if match_strict(name, SEQ_KW)), None)
    if seq_col is None:
        diagnostics.add(MISSING_COLUMN, f"'{SEQ_KW}' is not a whole header cell; keeping every row", row=header_row)
    else:
        df = df.dropna(subset=[seq_col])
        df = df[~df[seq_col].map(lambda v: match_strict(v, SEQ_KW))]   # header merged down

    records = df.to_dict(orient="records")
    logger.debug("Header table at row %d: %d rows kept", header_row, len(records))
    return records, {"header_row": header_row, "columns": columns}


HEADER_TABLE = Layout(
    name="header_table",
    description="Flat STT-numbered list (tissues, amenities): one record per numbered row",
    start_keywords=(SEQ_KW,),
    signals=("stt", "khăn", "tissue"),
    custom=extract_header_table,
)
