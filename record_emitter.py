"""
record_emitter.py — flatten segments into output records
=========================================================
One record per DATA row, in source order. Context fields come from the
snapshot stored on the classified row, so later context changes never reach
a record that was already built.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

import pandas as pd

from field_normalizer import NORMALIZERS, extract_identifier, extract_time_window
from layouts import Layout
from row_classifier import ClassifiedRow
from segmenter import ClassSegment, iter_data_rows


def _remark_overrides(row: ClassifiedRow, layout: Layout) -> Dict[str, Any]:
    """A remark such as 'MENU B2 / 10:00<ETD<14:00' overrides context for this record only."""
    idx = layout.roles.remark
    remark = row.cells[idx] if idx is not None and idx < len(row.cells) else None
    overrides: Dict[str, Any] = {}
    window = extract_time_window(remark)
    if window:
        overrides["start_time"], overrides["end_time"] = window
    ident = extract_identifier(remark)
    if ident:
        overrides["identifier"] = ident
    return overrides


def build_record(row: ClassifiedRow, layout: Layout, table: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    table = table or {}
    record: Dict[str, Any] = {}

    for fld in layout.fields:
        idx = layout.roles.index(fld.role)
        raw = row.cells[idx] if idx is not None and idx < len(row.cells) else None
        record[fld.name] = NORMALIZERS[fld.normalizer](raw)

    overrides = _remark_overrides(row, layout) if layout.remark_overrides else {}
    for slot, out_name in layout.context_fields.items():
        record[out_name] = overrides.get(slot, getattr(row.context, slot))

    if layout.note_field:
        record[layout.note_field] = table.get("note")
    if layout.row_hook is not None:
        record.update(layout.row_hook(row, table))
    return record


def emit_records(
    segments: Iterable[ClassSegment],
    layout: Layout,
    table: Optional[Mapping[str, Any]] = None,
) -> Iterator[Dict[str, Any]]:
    for row in iter_data_rows(segments):
        yield build_record(row, layout, table)


def records_to_frame(records: List[Dict[str, Any]]) -> pd.DataFrame:
    """Records as a DataFrame (column order follows first appearance)."""
    return pd.DataFrame.from_records(records)
