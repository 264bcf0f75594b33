"""
row_classifier.py — row kinds and context propagation
======================================================
Catering sheets carry state from row to row: the current class, aircraft
variant, menu id, ETD window and cycle are announced once and inherited by
every item row below. ``classify_row`` is a reducer::

    (context, row) -> (context', ClassifiedRow)

Precedence (first match wins):

  0. trailer / blank              → IGNORABLE
  1. group header   (class, crew) → sets group, clears lower context
  2. checkpoint     (condition)   → aircraft flag, window, cycle, menu id
  3. identifier-only row          → sets menu id, clears lower context
  4. data row                     → one record
  5. anything else                → UNMATCHED (diagnostic, skipped)

Layouts may test the checkpoint pattern before the group pattern
(``RowRules.checkpoint_first``) when a condition label can also look like a
class label.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Pattern, Sequence, Tuple

from diagnostics import UNMATCHED_ROW, UNPARSABLE_CONDITION, DiagnosticLog
from field_normalizer import (
    detect_aircraft_type,
    extract_cycle,
    extract_identifier,
    extract_time_window,
    is_numeric,
    parse_date_range,
    to_text,
)
from sheet_grid import Grid, clean, is_blank


class RowKind(str, Enum):
    GROUP_HEADER = "group_header"
    CHECKPOINT = "checkpoint"
    IDENTIFIER_ONLY = "identifier_only"
    DATA = "data"
    IGNORABLE = "ignorable"
    UNMATCHED = "unmatched"


@dataclass(frozen=True)
class RowContext:
    group: Optional[str] = None
    sub_group: Optional[str] = None
    identifier: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    cycle: Optional[str] = None
    group_number: int = 0
    fresh_group: bool = True

    def update(self, **changes: Any) -> "RowContext":
        return replace(self, **changes)


@dataclass(frozen=True)
class ClassifiedRow:
    index: int                       # grid row index
    kind: RowKind
    cells: Tuple[Any, ...]
    context: RowContext              # snapshot after this row's transition
    reason: str = ""
    problem: Optional[str] = None    # diagnostic code raised while classifying


# ══════════════════════════════════════════════════════════════════════════════
# Configuration
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ColumnRoles:
    """Column index of each semantic role; ``None`` when the layout lacks it."""

    label: int = 0
    name: int = 1
    quantity: Optional[int] = 2
    remark: Optional[int] = 3
    identifier: Optional[int] = 2
    cycle: Optional[int] = None
    window: Optional[int] = None          # None → the label column
    sequence: Optional[int] = None
    extra: Mapping[str, int] = field(default_factory=dict)

    def index(self, role: str) -> Optional[int]:
        if role in self.extra:
            return self.extra[role]
        return getattr(self, role, None)

    def all_indices(self) -> List[int]:
        idx = [self.label, self.name, self.quantity, self.remark, self.identifier,
               self.cycle, self.window, self.sequence, *self.extra.values()]
        return sorted({i for i in idx if i is not None})


@dataclass(frozen=True)
class RowRules:
    # group header
    group_pattern: Optional[Pattern[str]] = None
    group_empty: Tuple[str, ...] = ("name",)
    group_requires: Tuple[Tuple[str, Pattern[str]], ...] = ()
    group_reject_numeric: bool = False
    # checkpoint
    checkpoint_pattern: Optional[Pattern[str]] = None
    checkpoint_roles: Tuple[str, ...] = ("label",)      # ("*",) = any column
    checkpoint_empty: Tuple[str, ...] = ()
    checkpoint_others_empty: bool = False
    checkpoint_first: bool = False
    sub_group_mode: str = "aircraft"                    # "aircraft" | "label" | "keep"
    window_mode: str = "time"                           # "time" | "date_range" | "none"
    # identifier-only
    identifier_only: bool = True
    # data
    data_requires: Tuple[str, ...] = ("name",)
    auto_group_template: Optional[str] = None           # e.g. "Nhóm {n}"
    # ignorable
    trailer_pattern: Optional[Pattern[str]] = None


# ══════════════════════════════════════════════════════════════════════════════
# Cell helpers
# ══════════════════════════════════════════════════════════════════════════════

def _cell(cells: Sequence[Any], idx: Optional[int]) -> Any:
    if idx is None or idx < 0 or idx >= len(cells):
        return None
    return cells[idx]


def _role(cells: Sequence[Any], roles: ColumnRoles, role: str) -> Any:
    return _cell(cells, roles.index(role))


def _spilled(cells: Sequence[Any], roles: ColumnRoles, role: str) -> bool:
    """True when a role cell only repeats the label, as a label merged across the row does."""
    idx = roles.index(role)
    if idx is None or idx == roles.label:
        return False
    v, label = _cell(cells, idx), _cell(cells, roles.label)
    return not is_blank(v) and not is_blank(label) and clean(v) == clean(label)


def _vacant(cells: Sequence[Any], roles: ColumnRoles, role: str) -> bool:
    return is_blank(_role(cells, roles, role)) or _spilled(cells, roles, role)


def _blank_roles(cells: Sequence[Any], roles: ColumnRoles, names: Iterable[str]) -> bool:
    return all(_vacant(cells, roles, n) for n in names)


def _read_identifier(cells: Sequence[Any], roles: ColumnRoles) -> Optional[str]:
    if _spilled(cells, roles, "identifier"):
        return None
    return extract_identifier(_cell(cells, roles.identifier))


def _read_cycle(cells: Sequence[Any], roles: ColumnRoles) -> Optional[str]:
    raw = _cell(cells, roles.cycle)
    if is_blank(raw) or _spilled(cells, roles, "cycle"):
        return None
    return extract_cycle(raw) or to_text(raw)


def _window_cell(cells: Sequence[Any], roles: ColumnRoles) -> Any:
    return _cell(cells, roles.window if roles.window is not None else roles.label)


def _is_group_header(cells: Sequence[Any], roles: ColumnRoles, rules: RowRules) -> bool:
    if rules.group_pattern is None:
        return False
    label = _cell(cells, roles.label)
    if is_blank(label) or not _blank_roles(cells, roles, rules.group_empty):
        return False
    if rules.group_reject_numeric and is_numeric(label):
        return False
    if not rules.group_pattern.search(clean(label)):
        return False
    return all(p.search(clean(_role(cells, roles, r))) for r, p in rules.group_requires)


def _is_checkpoint(cells: Sequence[Any], roles: ColumnRoles, rules: RowRules) -> bool:
    if rules.checkpoint_pattern is None:
        return False
    if not _blank_roles(cells, roles, rules.checkpoint_empty):
        return False
    if rules.checkpoint_others_empty:
        label_idx, label = roles.label, clean(_cell(cells, roles.label))
        if any(not is_blank(v) and clean(v) != label for i, v in enumerate(cells) if i != label_idx):
            return False
    if "*" in rules.checkpoint_roles:
        candidates = list(cells)
    else:
        candidates = [_role(cells, roles, r) for r in rules.checkpoint_roles]
    return any(not is_blank(v) and rules.checkpoint_pattern.search(clean(v)) for v in candidates)


# ══════════════════════════════════════════════════════════════════════════════
# Transitions
# ══════════════════════════════════════════════════════════════════════════════

def _enter_group(ctx: RowContext, cells: Sequence[Any], roles: ColumnRoles) -> RowContext:
    return ctx.update(
        group=clean(_cell(cells, roles.label)),
        sub_group=None,
        start_time=None,
        end_time=None,
        cycle=_read_cycle(cells, roles) if roles.cycle is not None else None,
        identifier=_read_identifier(cells, roles) or ctx.identifier,
        fresh_group=True,
    )


def _enter_checkpoint(
    ctx: RowContext, cells: Sequence[Any], roles: ColumnRoles, rules: RowRules
) -> Tuple[RowContext, Optional[str]]:
    changes: dict = {}
    problem = None
    label = _cell(cells, roles.label)

    if rules.sub_group_mode == "aircraft":
        changes["sub_group"] = detect_aircraft_type(label)
    elif rules.sub_group_mode == "label":
        changes["sub_group"] = clean(label) or None

    raw_window = _window_cell(cells, roles)
    if rules.window_mode == "time":
        window = extract_time_window(raw_window)
        changes["start_time"], changes["end_time"] = window if window else (None, None)
        if window is None and "etd" in clean(raw_window).lower():
            problem = UNPARSABLE_CONDITION
    elif rules.window_mode == "date_range":
        rng = parse_date_range(raw_window)
        changes["start_time"], changes["end_time"] = rng if rng else (None, None)
        if not rng and not is_blank(raw_window):
            problem = UNPARSABLE_CONDITION

    if roles.cycle is not None:
        changes["cycle"] = _read_cycle(cells, roles) or ctx.cycle
    changes["identifier"] = _read_identifier(cells, roles) or ctx.identifier
    return ctx.update(**changes), problem


def _enter_data(ctx: RowContext, cells: Sequence[Any], roles: ColumnRoles, rules: RowRules) -> RowContext:
    if rules.auto_group_template is None:
        return ctx
    seq = clean(_cell(cells, roles.sequence)).split(".")[0]
    if seq == "1" and not ctx.fresh_group:
        n = ctx.group_number + 1
        return ctx.update(group=rules.auto_group_template.format(n=n), group_number=n, fresh_group=False)
    if ctx.fresh_group:
        return ctx.update(fresh_group=False)
    return ctx


def classify_row(
    ctx: RowContext,
    cells: Sequence[Any],
    index: int,
    roles: ColumnRoles,
    rules: RowRules,
) -> Tuple[RowContext, ClassifiedRow]:
    """Classify one row and return the context the next row inherits."""
    cells = tuple(cells)

    def result(kind: RowKind, new_ctx: RowContext, reason: str, problem: Optional[str] = None):
        return new_ctx, ClassifiedRow(index, kind, cells, new_ctx, reason, problem)

    label = _cell(cells, roles.label)
    if rules.trailer_pattern is not None and rules.trailer_pattern.search(clean(label)):
        return result(RowKind.IGNORABLE, ctx, "trailer")
    if all(is_blank(_cell(cells, i)) for i in roles.all_indices()):
        return result(RowKind.IGNORABLE, ctx, "blank")

    order = ("checkpoint", "group") if rules.checkpoint_first else ("group", "checkpoint")
    for step in order:
        if step == "group" and _is_group_header(cells, roles, rules):
            return result(RowKind.GROUP_HEADER, _enter_group(ctx, cells, roles), "group label")
        if step == "checkpoint" and _is_checkpoint(cells, roles, rules):
            new_ctx, problem = _enter_checkpoint(ctx, cells, roles, rules)
            return result(RowKind.CHECKPOINT, new_ctx, "condition", problem)

    if rules.identifier_only and is_blank(label) and is_blank(_role(cells, roles, "name")):
        ident = _read_identifier(cells, roles)
        if ident:
            new_ctx = ctx.update(identifier=ident, sub_group=None, start_time=None, end_time=None)
            return result(RowKind.IDENTIFIER_ONLY, new_ctx, "identifier")

    if all(not _vacant(cells, roles, r) for r in rules.data_requires):
        return result(RowKind.DATA, _enter_data(ctx, cells, roles, rules), "item")

    return result(RowKind.UNMATCHED, ctx, "no rule matched", UNMATCHED_ROW)


def classify_rows(
    grid: Grid,
    rows: Iterable[int],
    roles: ColumnRoles,
    rules: RowRules,
    context: Optional[RowContext] = None,
    diagnostics: Optional[DiagnosticLog] = None,
) -> List[ClassifiedRow]:
    """Run ``classify_row`` over ``rows`` of ``grid``, threading the context."""
    ctx = context or RowContext()
    out: List[ClassifiedRow] = []
    for r in rows:
        ctx, classified = classify_row(ctx, grid.row(r), r, roles, rules)
        out.append(classified)
        if classified.problem and diagnostics is not None:
            text = " | ".join(clean(v) for v in classified.cells if not is_blank(v))
            diagnostics.add(classified.problem, f"{classified.reason}: {text[:120]}", row=r)
    return out


def data_rows(classified: Iterable[ClassifiedRow]) -> List[ClassifiedRow]:
    return [c for c in classified if c.kind is RowKind.DATA]


def compile_keywords(*keywords: str) -> Pattern[str]:
    """Case-insensitive alternation of literal keywords."""
    return re.compile("|".join(re.escape(k) for k in keywords), re.IGNORECASE)


def fill_down(classified: Iterable[ClassifiedRow], columns: Iterable[int]) -> List[ClassifiedRow]:
    """
    Copy the last seen value into blank ``columns`` of DATA rows.

    Stands in for vertical merges on sources that lost them (.xls read through
    pandas). A group header restarts the carry; checkpoints do not.
    """
    columns = list(columns)
    carried: dict = {}
    out: List[ClassifiedRow] = []
    for row in classified:
        if row.kind is RowKind.GROUP_HEADER:
            carried = {}
        if row.kind is not RowKind.DATA:
            out.append(row)
            continue
        cells = list(row.cells)
        for c in columns:
            v = _cell(cells, c)
            if not is_blank(v):
                carried[c] = v
            elif c in carried:
                cells.extend([None] * (c + 1 - len(cells)))
                cells[c] = carried[c]
        out.append(replace(row, cells=tuple(cells)))
    return out
