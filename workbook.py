"""
workbook.py — decode Excel workbooks into Grids
================================================
Accepts a file path, raw bytes, a BytesIO or a base64 string and returns
``{sheet_name: (Grid, [MergedRegion])}``.

``.xlsx`` / ``.xlsm`` workbooks are read with openpyxl (cached formula
values, merged ranges kept). Anything else goes through ``pandas.ExcelFile``,
which has no merge metadata. Failures return ``None`` and are logged.
"""

from __future__ import annotations

import base64
import io
import logging
import zipfile
from typing import Dict, List, Optional, Tuple, Union

import openpyxl
import pandas as pd

from sheet_grid import Grid, MergedRegion

logger = logging.getLogger(__name__)

Source = Union[str, bytes, bytearray, io.BytesIO]
SheetData = Tuple[Grid, List[MergedRegion]]

_EXCEL_EXTS = (".xlsx", ".xls", ".xlsb", ".xlsm")
_OPENPYXL_EXTS = (".xlsx", ".xlsm")


def _to_buffer(source: Source) -> Union[str, io.BytesIO]:
    if isinstance(source, str) and not source.lower().endswith(_EXCEL_EXTS):
        # Assume base64, optionally with a data-URL prefix
        if "," in source and source.lstrip().startswith("data:"):
            source = source.split(",", 1)[1]
        return io.BytesIO(base64.b64decode(source))
    if isinstance(source, (bytes, bytearray)):
        return io.BytesIO(bytes(source))
    return source                                    # BytesIO or file path string


def _is_openpyxl_source(buf: Union[str, io.BytesIO], filename: str) -> bool:
    name = (filename or (buf if isinstance(buf, str) else "")).lower()
    if name.endswith(_OPENPYXL_EXTS):
        return True
    if name.endswith((".xls", ".xlsb")):
        return False
    if isinstance(buf, io.BytesIO):
        pos = buf.tell()
        ok = zipfile.is_zipfile(buf)
        buf.seek(pos)
        return ok
    return False


def _load_openpyxl(buf: Union[str, io.BytesIO]) -> Dict[str, SheetData]:
    wb = openpyxl.load_workbook(buf, data_only=True)
    sheets: Dict[str, SheetData] = {}
    try:
        for ws in wb.worksheets:
            try:
                rows = [list(r) for r in ws.iter_rows(values_only=True)]
                merges = [MergedRegion.from_ref(str(rng)) for rng in ws.merged_cells.ranges]
                sheets[ws.title] = (Grid(rows), merges)
            except Exception as e:
                logger.warning("Skipped sheet '%s': %s", ws.title, e)
    finally:
        wb.close()
    return sheets


def _load_pandas(buf: Union[str, io.BytesIO]) -> Dict[str, SheetData]:
    xl = pd.ExcelFile(buf)
    sheets: Dict[str, SheetData] = {}
    for name in xl.sheet_names:
        try:
            df = xl.parse(name, header=None, dtype=object)
            sheets[name] = (Grid.from_frame(df), [])
        except Exception as e:
            logger.warning("Skipped sheet '%s': %s", name, e)
    return sheets


def load_workbook(source: Source, filename: str = "") -> Optional[Dict[str, SheetData]]:
    """
    Load every sheet of a workbook as ``(Grid, merged regions)``.

    Returns None on failure (error logged).
    """
    try:
        buf = _to_buffer(source)
        if _is_openpyxl_source(buf, filename):
            sheets = _load_openpyxl(buf)
        else:
            sheets = _load_pandas(buf)
        return sheets if sheets else None
    except Exception as e:
        logger.error("Failed to load workbook '%s': %s", filename, e)
        return None
