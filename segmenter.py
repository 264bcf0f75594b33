"""
segmenter.py — nest classified rows into class / sub-segments
==============================================================
Boundaries come only from the classifier's kinds, found by re-scanning the
classified sequence: a GROUP_HEADER opens a class segment, a CHECKPOINT opens
a sub-segment inside it. Rows before the first header (or checkpoint) form
an implicit segment with no header. Rows are never reordered.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional

from row_classifier import ClassifiedRow, RowKind


@dataclass
class SubSegment:
    checkpoint: Optional[ClassifiedRow]
    rows: List[ClassifiedRow] = field(default_factory=list)

    @property
    def data_rows(self) -> List[ClassifiedRow]:
        return [r for r in self.rows if r.kind is RowKind.DATA]


@dataclass
class ClassSegment:
    header: Optional[ClassifiedRow]
    sub_segments: List[SubSegment] = field(default_factory=list)

    @property
    def label(self) -> Optional[str]:
        return self.header.context.group if self.header is not None else None

    @property
    def implicit(self) -> bool:
        """True for the headerless segment holding rows above the first group header."""
        return self.header is None

    def rows(self) -> Iterator[ClassifiedRow]:
        for sub in self.sub_segments:
            if sub.checkpoint is not None:
                yield sub.checkpoint
            yield from sub.rows


def segment_rows(classified: Iterable[ClassifiedRow]) -> List[ClassSegment]:
    segments: List[ClassSegment] = []
    current: Optional[ClassSegment] = None

    for row in classified:
        if row.kind is RowKind.GROUP_HEADER:
            current = ClassSegment(header=row)
            segments.append(current)
            continue

        if current is None:
            current = ClassSegment(header=None)
            segments.append(current)

        if row.kind is RowKind.CHECKPOINT:
            current.sub_segments.append(SubSegment(checkpoint=row))
            continue

        if not current.sub_segments:
            current.sub_segments.append(SubSegment(checkpoint=None))
        current.sub_segments[-1].rows.append(row)

    return segments


def iter_data_rows(segments: Iterable[ClassSegment]) -> Iterator[ClassifiedRow]:
    """Data rows in source order, segment by segment."""
    for seg in segments:
        for sub in seg.sub_segments:
            yield from sub.data_rows


def group_summary(segments: Iterable[ClassSegment]) -> List[Dict[str, Any]]:
    """Label and data-row count of every segment; ``None`` labels the implicit one."""
    return [
        {"group": seg.label, "data_rows": sum(1 for r in seg.rows() if r.kind is RowKind.DATA)}
        for seg in segments
    ]
