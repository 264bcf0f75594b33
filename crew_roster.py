"""
crew_roster.py — monthly crew / staff work-plan layout
=======================================================
A roster sheet has a short preamble (validity dates, issue date, version),
a header row with "Code" and "Họ và Tên", a row of dates right below it and
one row per employee with a shift code per date. Groups are either named
rows (code and name empty, a non-numeric label) or implicit: the sequence
column restarting at 1 opens "Nhóm 2", "Nhóm 3", ...

The schedule columns run from the first column after the name up to the
"CÔNG QL" summary column.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Dict, List, Mapping

from diagnostics import MISSING_COLUMN, DiagnosticLog
from field_normalizer import to_text
from layouts import FieldSpec, Layout
from row_classifier import ClassifiedRow, ColumnRoles, RowContext, RowRules
from sheet_anchors import MetadataRule, TableBounds, find_column_anchor
from sheet_grid import Grid

SUMMARY_COL_KW = "CÔNG QL"
SCHEDULE_START_COL = 3

_IGNORE_RE = re.compile(
    r"anh/em|giao non-air|tùy thuộc|prepared by|write python code",
    re.IGNORECASE,
)


def _date_label(v: Any, col: int) -> str:
    if isinstance(v, (datetime, date)):
        return v.strftime("%Y-%m-%d")
    return to_text(v) or f"Day_{col}"


def roster_table(grid: Grid, bounds: TableBounds, diagnostics: DiagnosticLog) -> Dict[str, Any]:
    """Locate the schedule columns and read the date row under the header."""
    end_col = find_column_anchor(grid, bounds.header_row, SUMMARY_COL_KW)
    if end_col is None:
        end_col = grid.n_cols
        diagnostics.add(
            MISSING_COLUMN,
            f"'{SUMMARY_COL_KW}' not found in header; schedule runs to the last column",
            row=bounds.header_row,
        )
    date_row = bounds.header_row + 1
    columns = list(range(SCHEDULE_START_COL, end_col))
    return {
        "schedule_columns": columns,
        "dates": [_date_label(grid.cell(date_row, c), c) for c in columns],
    }


def roster_schedule(row: ClassifiedRow, table: Mapping[str, Any]) -> Dict[str, Any]:
    cols: List[int] = table.get("schedule_columns", [])
    dates: List[str] = table.get("dates", [])
    schedule = []
    for col, day in zip(cols, dates):
        value = row.cells[col] if col < len(row.cells) else None
        schedule.append({"date": day, "shift_code": to_text(value)})
    return {"work_schedule": schedule}


CREW_ROSTER = Layout(
    name="crew_roster",
    description="Staff work plan: one record per employee with a daily shift list",
    start_keywords=("Code", "Họ và Tên"),
    start_column=None,
    blank_run=0,
    skip_rows=1,
    roles=ColumnRoles(
        label=0, name=2, quantity=None, remark=None, identifier=None, sequence=0,
        extra={"code": 1},
    ),
    rules=RowRules(
        group_pattern=re.compile(r"\S"),
        group_empty=("code", "name"),
        group_reject_numeric=True,
        identifier_only=False,
        data_requires=("code", "name"),
        auto_group_template="Nhóm {n}",
        trailer_pattern=_IGNORE_RE,
    ),
    fields=(
        FieldSpec("id", "code", "code"),
        FieldSpec("name", "name"),
    ),
    context_fields={"group": "group"},
    initial=RowContext(group="Nhóm 1", group_number=1),
    metadata_rules=(
        MetadataRule("valid_from", "Từ :", mode="offset", offset=1),
        MetadataRule("valid_to", "Đến :", mode="offset", offset=1),
        MetadataRule("issued_date", "Phát hành :", mode="offset", offset=2),
        MetadataRule("version", "Phát hành lần", mode="digits", prefix=True),
    ),
    signals=("họ và tên", "công ql", "phát hành", "code"),
    table_hook=roster_table,
    row_hook=roster_schedule,
)
