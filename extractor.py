"""
extractor.py — per-sheet and per-workbook extraction facade
============================================================
Pipeline for one sheet::

    Grid ─ resolve_merges ─ locate_table ─ classify_rows ─ segment_rows ─ emit_records

Design principles (same as every parser in this project)
--------------------------------------------------------
  1. NEVER crash — an unexpected error on one sheet becomes a
     ``sheet_failed`` diagnostic and an empty result for that sheet only.
  2. Structural problems are diagnostics, not exceptions.
  3. Same grid + same layout → same records, in source row order.
  4. ``ExtractionResult.to_dict()`` is always JSON-serialisable.

Usage
-----
    from extractor import extract_workbook
    for result in extract_workbook("menu.xlsx"):
        print(result.sheet, result.layout, len(result.records))
"""

from __future__ import annotations

import logging
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import config
from beverage_manifest import BEVERAGE_MANIFEST
from crew_roster import CREW_ROSTER
from diagnostics import LAYOUT_UNKNOWN, LOAD_FAILED, SHEET_FAILED, Diagnostic, DiagnosticLog
from field_normalizer import extract_identifier, to_text
from flight_timetable import FLIGHT_TIMETABLE
from header_table import HEADER_TABLE
from layouts import MENU_LAYOUTS, Layout
from record_emitter import emit_records, records_to_frame  # noqa: F401  (re-exported)
from row_classifier import RowContext, RowKind, classify_rows, fill_down
from segmenter import ClassSegment, group_summary, segment_rows
from sheet_anchors import TableBounds, find_header_row, locate_table, match_kw, scan_metadata
from sheet_grid import Grid, MergedRegion, clean, is_blank, resolve_merges
from workbook import Source, load_workbook

logger = logging.getLogger(__name__)

LAYOUTS: Dict[str, Layout] = {lay.name: lay for lay in [
    *MENU_LAYOUTS, CREW_ROSTER, BEVERAGE_MANIFEST, FLIGHT_TIMETABLE, HEADER_TABLE,
]}


def get_layout(name: Union[str, Layout]) -> Layout:
    """Look up a layout by name; raises KeyError for unknown names."""
    if isinstance(name, Layout):
        return name
    try:
        return LAYOUTS[name.strip().lower()]
    except KeyError:
        raise KeyError(f"unknown layout '{name}' (known: {', '.join(LAYOUTS)})") from None


# ══════════════════════════════════════════════════════════════════════════════
# Result
# ══════════════════════════════════════════════════════════════════════════════

def _json_safe(v: Any) -> Any:
    if isinstance(v, dict):
        return {str(k): _json_safe(x) for k, x in v.items()}
    if isinstance(v, (list, tuple)):
        return [_json_safe(x) for x in v]
    if isinstance(v, (datetime, date, time)):
        return v.isoformat()
    if isinstance(v, float) and not math.isfinite(v):
        return None
    if hasattr(v, "item") and not isinstance(v, (str, bytes)):   # numpy scalars
        try:
            return v.item()
        except (TypeError, ValueError):
            return str(v)
    return v


@dataclass
class ExtractionResult:
    sheet: str
    layout: Optional[str]
    records: List[Dict[str, Any]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sheet": self.sheet,
            "layout": self.layout,
            "records": _json_safe(self.records),
            "metadata": _json_safe(self.metadata),
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


# ══════════════════════════════════════════════════════════════════════════════
# Engine
# ══════════════════════════════════════════════════════════════════════════════

def _emit(
    grid: Grid,
    layout: Layout,
    rows: Iterable[int],
    context: Optional[RowContext],
    diagnostics: Optional[DiagnosticLog],
    table: Optional[Dict[str, Any]],
    fill: bool = False,
) -> Tuple[List[Dict[str, Any]], List[ClassSegment]]:
    classified = classify_rows(
        grid, rows, layout.roles, layout.rules,
        context=context or layout.initial,
        diagnostics=diagnostics,
    )
    if fill and layout.fill_down:
        classified = fill_down(classified, [layout.roles.index(r) for r in layout.fill_down])
    segments = segment_rows(classified)
    return list(emit_records(segments, layout, table)), segments


def extract_rows(
    grid: Grid,
    layout: Union[str, Layout],
    rows: Optional[Iterable[int]] = None,
    context: Optional[RowContext] = None,
    diagnostics: Optional[DiagnosticLog] = None,
    table: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    """
    Classify, segment and emit ``rows`` of ``grid`` (all rows by default).

    No anchor search happens here; this is the core loop once the table
    body is known.
    """
    layout = get_layout(layout)
    rows = range(grid.n_rows) if rows is None else rows
    records, _ = _emit(grid, layout, rows, context, diagnostics, table)
    return records


def _read_note(grid: Grid, layout: Layout) -> Optional[str]:
    """Whole text of the first cell starting with the note keyword."""
    kw = layout.note_keyword.strip().lower()
    col = layout.start_column or 0
    for r in range(grid.n_rows):
        text = clean(grid.cell(r, col))
        if text.lower().startswith(kw):
            return text
    return None


def _seed_context(grid: Grid, layout: Layout, header_row: int) -> RowContext:
    ctx = layout.initial
    for seed in layout.seeds:
        r = header_row + seed.row_offset
        if r < 0 or r >= grid.n_rows:
            continue
        value = None
        for v in grid.row(r):
            if match_kw(v, seed.keyword):
                value = v                           # rightmost match wins
        if is_blank(value):
            continue
        if seed.normalizer == "identifier":
            value = extract_identifier(value) or clean(value)
        else:
            value = clean(value)
        ctx = ctx.update(**{seed.slot: value})
    return ctx


def _table_rows(layout: Layout, bounds: TableBounds) -> List[int]:
    lead = range(max(bounds.header_row - layout.lead_rows, 0), bounds.header_row)
    body = range(bounds.body_start + layout.skip_rows, bounds.end_row)
    return [*lead, *body]


def _run_layout(
    grid: Grid, layout: Layout, diagnostics: DiagnosticLog, merged: bool = False
) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    if layout.custom is not None:
        return layout.custom(grid, layout, diagnostics)

    metadata: Dict[str, Any] = {}
    if layout.metadata_rules:
        found = scan_metadata(grid, layout.metadata_rules, rows=range(min(config.METADATA_SCAN_ROWS, grid.n_rows)))
        metadata.update({k: to_text(v) for k, v in found.items()})

    blank_run = config.BLANK_ROW_RUN if layout.blank_run is None else layout.blank_run
    bounds = locate_table(
        grid, layout.start_keywords, layout.end_keywords,
        start_column=layout.start_column,
        end_column=layout.end_column,
        blank_run=blank_run,
        diagnostics=diagnostics,
    )
    if bounds is None:
        return [], metadata

    metadata.update({
        "header_row": bounds.header_row,
        "end_row": bounds.end_row,
        "end_reason": bounds.end_reason,
    })

    table: Dict[str, Any] = {}
    if layout.note_keyword:
        table["note"] = _read_note(grid, layout)
        metadata["note"] = table["note"]
    if layout.table_hook is not None:
        table.update(layout.table_hook(grid, bounds, diagnostics))

    context = _seed_context(grid, layout, bounds.header_row)
    records, segments = _emit(
        grid, layout, _table_rows(layout, bounds), context, diagnostics, table, fill=not merged,
    )
    metadata["groups"] = group_summary(segments)
    return records, metadata


# ══════════════════════════════════════════════════════════════════════════════
# Layout detection
# ══════════════════════════════════════════════════════════════════════════════

def _structure_score(layout: Layout, sample: Grid) -> int:
    """Group headers and checkpoints the layout's rules find, minus two per unmatched row."""
    blank_run = config.BLANK_ROW_RUN if layout.blank_run is None else layout.blank_run
    bounds = locate_table(
        sample, layout.start_keywords, layout.end_keywords,
        start_column=layout.start_column,
        end_column=layout.end_column,
        blank_run=blank_run,
    )
    if bounds is None:
        return 0
    classified = classify_rows(sample, _table_rows(layout, bounds), layout.roles, layout.rules, context=layout.initial)
    kinds = Counter(row.kind for row in classified)
    return kinds[RowKind.GROUP_HEADER] + kinds[RowKind.CHECKPOINT] - 2 * kinds[RowKind.UNMATCHED]


def _score_layout(layout: Layout, blob: str, sample: Grid) -> int:
    score = sum(1 for sig in layout.signals if sig in blob)
    if layout.start_keywords and find_header_row(sample, list(layout.start_keywords)) is not None:
        score += 2 * len(layout.start_keywords)
        if layout.custom is None:
            score += _structure_score(layout, sample)
    return score


def detect_layout(grid: Grid, diagnostics: Optional[DiagnosticLog] = None) -> Optional[Layout]:
    """
    Guess the layout from keyword signals in the first rows of the sheet.

    Each signal found scores 1; a header row holding all of a layout's start
    keywords adds 2 per keyword. Table layouts then classify the sampled
    body: every group header or checkpoint adds 1 and every unmatched row
    takes 2 off. Highest positive score wins, ties go to the earlier layout
    in ``LAYOUTS``.
    """
    sample = grid.slice_rows(0, config.DETECT_SCAN_ROWS)
    blob = " ".join(
        re.sub(r"\s+", " ", clean(v).lower())
        for row in sample
        for v in row
        if not is_blank(v)
    )
    scores = {name: _score_layout(layout, blob, sample) for name, layout in LAYOUTS.items()}
    best = max(scores, key=scores.get)
    if scores[best] > 0:
        logger.debug("Layout scores: %s", scores)
        return LAYOUTS[best]
    if diagnostics is not None:
        diagnostics.add(LAYOUT_UNKNOWN, "no layout signals found in the first rows")
    return None


# ══════════════════════════════════════════════════════════════════════════════
# Public API
# ══════════════════════════════════════════════════════════════════════════════

def extract_sheet(
    grid: Grid,
    layout: Optional[Union[str, Layout]] = None,
    merges: Optional[Iterable[MergedRegion]] = None,
    sheet_name: str = "",
) -> ExtractionResult:
    """
    Extract one sheet. ``layout=None`` detects it from the sheet content.

    Never raises for sheet content; an unknown layout name raises KeyError.
    """
    if layout is not None:
        layout = get_layout(layout)
    diagnostics = DiagnosticLog(sheet_name)
    records: List[Dict[str, Any]] = []
    metadata: Dict[str, Any] = {}

    try:
        merges = list(merges or ())
        grid = resolve_merges(grid, merges)
        if layout is None:
            layout = detect_layout(grid, diagnostics)
        if layout is not None:
            records, metadata = _run_layout(grid, layout, diagnostics, merged=bool(merges))
    except Exception as e:
        logger.exception("Extractor crashed on sheet '%s'", sheet_name)
        diagnostics.add(SHEET_FAILED, f"{type(e).__name__}: {e}")
        records, metadata = [], {}

    name = layout.name if layout is not None else None
    logger.info("Sheet '%s' [%s]: %d records, %d diagnostics", sheet_name, name, len(records), len(diagnostics))
    return ExtractionResult(sheet_name, name, records, metadata, list(diagnostics))


def extract_workbook(
    source: Source,
    layout: Optional[Union[str, Layout]] = None,
    filename: str = "",
) -> List[ExtractionResult]:
    """
    Extract every sheet of a workbook (path, bytes, BytesIO or base64 string).

    A workbook that cannot be decoded yields one result with a
    ``load_failed`` diagnostic.
    """
    if layout is not None:
        layout = get_layout(layout)

    sheets = load_workbook(source, filename)
    if not sheets:
        diag = Diagnostic(LOAD_FAILED, "Could not load workbook, file may be corrupt or unsupported.", sheet="")
        logger.warning("%s (%s)", diag, filename or "<upload>")
        return [ExtractionResult(sheet="", layout=None, diagnostics=[diag])]

    return [
        extract_sheet(grid, layout, merges, sheet_name=name)
        for name, (grid, merges) in sheets.items()
    ]
