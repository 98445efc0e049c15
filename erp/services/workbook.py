from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from typing import Any, BinaryIO, Optional

import numpy as np
import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from erp.errors import SourceNotFound, UnreadableWorkbook

logger = logging.getLogger(__name__)

# Sheet names that hold sales data in the workbooks we receive.
SALES_SHEET_HINTS = ("판매", "매출", "거래")


def _plain(v: Any) -> Any:
    # numpy scalars -> int/float/bool so isinstance checks downstream hold
    return v.item() if isinstance(v, np.generic) else v


def _trim_row(values: list[Any]) -> list[Any]:
    values = [_plain(v) for v in values]
    end = len(values)
    while end > 0 and values[end - 1] is None:
        end -= 1
    return values[:end]


def frame_to_rows(df: pd.DataFrame) -> list[list[Any]]:
    """
    Raw rows from a header-less frame: NaN/NaT become None and trailing empty
    cells are dropped, so a row is only as long as its last filled cell.
    """
    clean = df.astype(object).where(pd.notna(df), None)
    return [_trim_row(list(r)) for r in clean.itertuples(index=False, name=None)]


def pick_sheet(sheet_names: list[str], sheet_name: Optional[str] = None) -> str:
    if sheet_name:
        if sheet_name not in sheet_names:
            raise SourceNotFound(f"Sheet not found: {sheet_name} (available: {', '.join(sheet_names)})")
        return sheet_name
    if not sheet_names:
        raise SourceNotFound("Workbook has no sheets.")
    for name in sheet_names:
        if any(h in name for h in SALES_SHEET_HINTS):
            return name
    return sheet_names[0]


def read_rows(source: str | Path | BinaryIO, sheet_name: Optional[str] = None) -> tuple[str, list[list[Any]]]:
    """
    Decode one worksheet into raw rows (lists of cell values).

    `source` is a path or an open binary file (e.g. an uploaded workbook).
    """
    if isinstance(source, (str, Path)) and not Path(source).exists():
        raise SourceNotFound(f"Workbook not found: {source}")

    try:
        xls = pd.ExcelFile(source, engine="openpyxl")
    except (ValueError, OSError, zipfile.BadZipFile, InvalidFileException) as e:
        raise UnreadableWorkbook(f"Not a readable .xlsx workbook: {e}") from e

    with xls:
        name = pick_sheet([str(s) for s in xls.sheet_names], sheet_name)
        df = xls.parse(name, header=None)

    rows = frame_to_rows(df)
    logger.info("Read %s rows from sheet '%s'", len(rows), name)
    return name, rows
