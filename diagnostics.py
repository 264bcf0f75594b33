"""
diagnostics.py — sheet-scoped, non-fatal extraction notices
============================================================
Every extractor reports structural problems (missing anchors, unparsable
condition rows, merged duplicates ...) here instead of raising, so a single
malformed sheet never aborts a workbook.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

START_NOT_FOUND          = "start_not_found"
END_NOT_FOUND            = "end_not_found"
UNPARSABLE_CONDITION     = "unparsable_condition"
UNMATCHED_ROW            = "unmatched_row"
DUPLICATE_CLASSIFICATION = "duplicate_classification"
MISSING_COLUMN           = "missing_column"
SHEET_FAILED             = "sheet_failed"
LOAD_FAILED              = "load_failed"
LAYOUT_UNKNOWN           = "layout_unknown"


@dataclass(frozen=True)
class Diagnostic:
    code: str
    message: str
    sheet: str = ""
    row: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def __str__(self) -> str:
        where = f"{self.sheet!r}" if self.sheet else "<sheet>"
        if self.row is not None:
            where += f" row {self.row}"
        return f"[{self.code}] {where}: {self.message}"


class DiagnosticLog:
    """Collects diagnostics for one sheet and mirrors them to the module logger."""

    def __init__(self, sheet: str = ""):
        self.sheet = sheet
        self._items: List[Diagnostic] = []

    def add(self, code: str, message: str, row: Optional[int] = None) -> Diagnostic:
        diag = Diagnostic(code=code, message=message, sheet=self.sheet, row=row)
        self._items.append(diag)
        logger.warning("%s", diag)
        return diag

    def codes(self) -> List[str]:
        return [d.code for d in self._items]

    def to_list(self) -> List[Dict[str, Any]]:
        return [d.to_dict() for d in self._items]

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)
