"""
SPREADSHEET DECODER
-------------------
Turns an uploaded .xlsx/.xls payload into tab-separated text that the
price-list parser reads through its delimited path.

First sheet only, every cell as a string, embedded tabs/newlines replaced
by a single space, each cell trimmed.
"""
import io
import re
from pathlib import Path
from typing import List

import pandas as pd

from .error_handlers import SpreadsheetDecodeError
from .logging_config import get_logger

logger = get_logger("spreadsheet")

SPREADSHEET_SUFFIXES = {".xls", ".xlsx"}

_CELL_BREAKS = re.compile(r"[\t\n\r]")


def is_spreadsheet(file_name: str) -> bool:
    return Path(file_name or "").suffix.lower() in SPREADSHEET_SUFFIXES


def _cell_text(value) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return _CELL_BREAKS.sub(" ", str(value)).strip()


def _row_text(values: List) -> str:
    cells = [_cell_text(v) for v in values]
    while cells and not cells[-1]:
        cells.pop()
    return "\t".join(cells)


def spreadsheet_to_text(payload: bytes) -> str:
    """
    Decode the first sheet of a workbook into tab-separated rows.

    Raises:
        SpreadsheetDecodeError: corrupt/unsupported workbook or empty first sheet
    """
    try:
        df = pd.read_excel(io.BytesIO(payload), sheet_name=0, header=None, dtype=str)
    except Exception as e:
        logger.error(f"[XLS] Cannot read workbook: {e}")
        raise SpreadsheetDecodeError("the file may be corrupted or in an unsupported format", str(e)) from e

    if df.empty:
        raise SpreadsheetDecodeError("the first sheet is empty")

    rows = [_row_text(list(row)) for row in df.itertuples(index=False, name=None)]
    logger.info(f"[XLS] Decoded {len(rows)} rows x {df.shape[1]} columns")
    return "\n".join(rows)
