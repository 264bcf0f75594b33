"""
layouts.py — sheet-family configurations for the extraction engine
===================================================================
A layout is pure configuration: where the table header is, how the table
ends, which column plays which role, which rows are class headers or
condition rows, and how the record fields are named. Supporting a new menu
format means adding a ``Layout`` here, not a new extractor.

Known families
--------------
  • flight_menu          — class headers, "<ETD<" condition rows, MENU id rows
  • class_aircraft_menu  — class rows followed by aircraft rows (MENU / CYCLE)
  • cycle_menu           — CYCLE checkpoints with "1-7 APR.2025" date ranges
  • menu_block           — MENU id + CYCLE header rows, class sub-headers

The crew roster, beverage manifest, flight timetable and header table live in
their own modules.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from row_classifier import ColumnRoles, RowContext, RowRules, compile_keywords
from sheet_anchors import MetadataRule


@dataclass(frozen=True)
class FieldSpec:
    """One output field read from a column role through a named normalizer."""

    name: str
    role: str
    normalizer: str = "text"


@dataclass(frozen=True)
class ContextSeed:
    """
    Initial context value read near the header row.

    The first cell of row ``header_row + row_offset`` containing ``keyword``
    fills context slot ``slot``; ``normalizer`` "identifier" extracts a menu
    code, falling back to the cell text.
    """

    slot: str
    keyword: str
    row_offset: int = -1
    normalizer: str = "text"


@dataclass(frozen=True)
class Layout:
    name: str
    description: str = ""
    start_keywords: Tuple[str, ...] = ()
    start_column: Optional[int] = 0
    end_keywords: Tuple[str, ...] = ()
    end_column: Optional[int] = 0
    blank_run: Optional[int] = None            # None → config.BLANK_ROW_RUN
    lead_rows: int = 0                         # rows above the header fed to the classifier
    skip_rows: int = 0                         # rows below the header that are not body
    fill_down: Tuple[str, ...] = ()            # roles carried down data rows when the source has no merges
    roles: ColumnRoles = field(default_factory=ColumnRoles)
    rules: RowRules = field(default_factory=RowRules)
    fields: Tuple[FieldSpec, ...] = ()
    context_fields: Mapping[str, str] = field(default_factory=dict)
    initial: RowContext = field(default_factory=RowContext)
    seeds: Tuple[ContextSeed, ...] = ()
    metadata_rules: Tuple[MetadataRule, ...] = ()
    note_keyword: Optional[str] = None
    note_field: Optional[str] = None
    remark_overrides: bool = False
    signals: Tuple[str, ...] = ()
    table_hook: Optional[Callable[..., Dict[str, Any]]] = None
    row_hook: Optional[Callable[..., Dict[str, Any]]] = None
    custom: Optional[Callable[..., Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "start_keywords": list(self.start_keywords),
            "end_keywords": list(self.end_keywords),
            "fields": [f.name for f in self.fields] + list(self.context_fields.values()),
        }


_MENU_CONTEXT = {
    "group":      "class",
    "sub_group":  "AircraftType",
    "identifier": "MenuId",
    "start_time": "StartTime",
    "end_time":   "EndTime",
}

_CLASS_RE = re.compile(r"\b(CLASS|CREW|CAPTAIN|COPILOT)\b", re.IGNORECASE)
_CONDITION_RE = re.compile(r"dành cho tàu|<\s*etd\s*<", re.IGNORECASE)


FLIGHT_MENU = Layout(
    name="flight_menu",
    description="Class headers, ETD-window condition rows and MENU id rows",
    start_keywords=("Uplift Ratio", "Component Description"),
    end_keywords=("Ghi chú",),
    roles=ColumnRoles(label=0, name=1, quantity=2, remark=3, identifier=2),
    rules=RowRules(
        group_pattern=_CLASS_RE,
        checkpoint_pattern=_CONDITION_RE,
        checkpoint_first=True,
        sub_group_mode="aircraft",
        window_mode="time",
        identifier_only=True,
        data_requires=("name",),
        trailer_pattern=re.compile(r"^(loaded by|ghi chú)", re.IGNORECASE),
    ),
    fields=(
        FieldSpec("Uplift Ratio", "label", "ratio"),
        FieldSpec("Name", "name"),
        FieldSpec("Quantity", "quantity"),
        FieldSpec("Remark", "remark"),
    ),
    context_fields=_MENU_CONTEXT,
    note_keyword="Ghi chú",
    note_field="Note",
    remark_overrides=True,
    signals=("uplift ratio", "component description", "etd", "loaded by", "dành cho tàu"),
)


CLASS_AIRCRAFT_MENU = Layout(
    name="class_aircraft_menu",
    description="Class rows followed by aircraft rows carrying MENU and CYCLE",
    start_keywords=("Uplift Ratio",),
    end_keywords=("Ghi chú",),
    roles=ColumnRoles(label=0, name=1, quantity=2, remark=3, identifier=2, cycle=3),
    rules=RowRules(
        group_pattern=re.compile(
            r"\b(CLASS|CREW|CAPTAIN|COPILOT|PILOT|BUSINESS|ECONOMY|PREMIUM|FIRST)\b|hạng",
            re.IGNORECASE,
        ),
        checkpoint_pattern=re.compile(r"\b(A3\d\d|B7\d\d|ATR)|NEO|CEO|aircraft|tàu", re.IGNORECASE),
        checkpoint_empty=("name",),
        checkpoint_first=True,
        sub_group_mode="aircraft",
        window_mode="none",
        identifier_only=False,
        data_requires=("name",),
    ),
    fields=(
        FieldSpec("Uplift Ratio", "label", "ratio"),
        FieldSpec("Name", "name"),
        FieldSpec("Quantity", "quantity"),
        FieldSpec("Remark", "remark"),
    ),
    context_fields={**_MENU_CONTEXT, "cycle": "Cycle"},
    signals=("uplift ratio", "component description", "cycle", "neo", "aircraft"),
)


CYCLE_MENU = Layout(
    name="cycle_menu",
    description="Single-class menu split by CYCLE rows with date ranges",
    start_keywords=("Uplift Ratio",),
    end_keywords=("Lưu ý",),
    roles=ColumnRoles(
        label=0, name=1, quantity=3, remark=4, identifier=None, cycle=1, window=4,
        extra={"unit": 2},
    ),
    rules=RowRules(
        checkpoint_pattern=compile_keywords("cycle"),
        checkpoint_roles=("*",),
        checkpoint_empty=("label",),
        sub_group_mode="keep",
        window_mode="date_range",
        identifier_only=False,
        data_requires=("name",),
    ),
    fields=(
        FieldSpec("UpliftRatio", "label", "ratio"),
        FieldSpec("Name", "name"),
        FieldSpec("Unit", "unit"),
        FieldSpec("Qty", "quantity"),
        FieldSpec("Remark", "remark"),
    ),
    context_fields={
        "group":      "Class",
        "identifier": "MenuID",
        "cycle":      "Cycle",
        "start_time": "TimeStart",
        "end_time":   "TimeEnd",
    },
    fill_down=("label",),
    initial=RowContext(cycle="ALL"),
    seeds=(
        ContextSeed("group", "class"),
        ContextSeed("identifier", "menu", normalizer="identifier"),
    ),
    signals=("uplift ratio", "lưu ý", "cycle", "class"),
)


MENU_BLOCK = Layout(
    name="menu_block",
    description="MENU id / CYCLE header rows with class sub-headers",
    start_keywords=("Uplift Ratio",),
    end_keywords=("Ghi chú",),
    lead_rows=1,
    roles=ColumnRoles(label=0, name=1, quantity=2, remark=3, identifier=0, cycle=3),
    rules=RowRules(
        group_pattern=compile_keywords("menu"),
        group_requires=(("quantity", compile_keywords("cycle")),),
        checkpoint_pattern=re.compile(r"\S"),
        checkpoint_others_empty=True,
        sub_group_mode="label",
        window_mode="none",
        identifier_only=False,
        data_requires=("label",),
    ),
    fields=(
        FieldSpec("UpliftRatio", "label", "ratio"),
        FieldSpec("Name", "name"),
        FieldSpec("Qty", "quantity"),
        FieldSpec("Remark", "remark"),
    ),
    context_fields={"sub_group": "Class", "identifier": "MenuID", "cycle": "Cycle"},
    initial=RowContext(identifier="%STANDALONE"),
    signals=("uplift ratio", "ghi chú", "menu", "cycle"),
)


MENU_LAYOUTS: List[Layout] = [FLIGHT_MENU, CLASS_AIRCRAFT_MENU, CYCLE_MENU, MENU_BLOCK]
