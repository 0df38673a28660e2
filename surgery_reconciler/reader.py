"""
reader.py: turn an exported report file into a raw cell grid

Supports: .xlsx .xlsm .xls .ods .csv .tsv

Public API:
    grid = load_grid("path/to/report.xlsx")

The grid is a list of rows, each a list of cell values (str, int, float,
datetime or None). No header detection happens here: both hospital reports
are positional and the parsers index rows and columns directly.
"""

from __future__ import annotations

import csv
import io
import logging
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS   = {".csv", ".tsv"}
OOXML_FORMATS  = {".xlsx", ".xlsm"}
LEGACY_FORMATS = {".xls"}
ODS_FORMATS    = {".ods"}
ALL_FORMATS    = TEXT_FORMATS | OOXML_FORMATS | LEGACY_FORMATS | ODS_FORMATS

Grid = list[list[Any]]


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    """chardet guess for a text export; utf-8 when it cannot tell."""
    import chardet

    result = chardet.detect(raw)
    detected = result.get("encoding") or ""
    if not detected or detected.lower() == "ascii":
        return "utf-8"
    return detected


def _decode(raw: bytes) -> str:
    for enc in ("utf-8-sig", _detect_encoding(raw), "cp1258"):
        try:
            return raw.decode(enc)
        except (LookupError, UnicodeDecodeError):
            continue
    return raw.decode("cp1252", errors="replace")


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _trim_trailing_empty(rows: Grid) -> Grid:
    while rows and all(value is None or value == "" for value in rows[-1]):
        rows.pop()
    return rows


def _choose_sheet(all_sheets: list[str], sheet_name: Optional[str]) -> str:
    if not all_sheets:
        raise ValueError("Workbook contains no sheets.")
    if sheet_name is None:
        if len(all_sheets) > 1:
            logger.info("Multiple sheets found (%d); reading the first: '%s'", len(all_sheets), all_sheets[0])
        return all_sheets[0]
    if sheet_name not in all_sheets:
        raise ValueError(f"Sheet '{sheet_name}' not found. Available: {all_sheets}")
    return sheet_name


def _load_text(path: Path, suffix: str) -> Grid:
    text = _decode(path.read_bytes())
    if suffix == ".tsv":
        delimiter = "\t"
    else:
        sample = "\n".join(text.splitlines()[:25])
        try:
            delimiter = csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
        except csv.Error:
            delimiter = ","
    rows = [
        [cell if cell.strip() else None for cell in row]
        for row in csv.reader(io.StringIO(text), delimiter=delimiter)
    ]
    return _trim_trailing_empty(rows)


def _load_ooxml(path: Path, sheet_name: Optional[str]) -> Grid:
    from openpyxl import load_workbook

    try:
        workbook = load_workbook(path, data_only=True)
    except Exception as exc:
        raise ValueError(f"Could not read workbook: {exc}") from exc
    sheet = workbook[_choose_sheet(list(workbook.sheetnames), sheet_name)]
    rows = [list(row) for row in sheet.iter_rows(min_row=1, min_col=1, values_only=True)]
    return _trim_trailing_empty(rows)


def _frame_to_grid(df) -> Grid:
    import pandas as pd

    rows: Grid = []
    for values in df.itertuples(index=False, name=None):
        row = []
        for value in values:
            if value is None or (not isinstance(value, (list, tuple)) and pd.isna(value)):
                row.append(None)
            elif hasattr(value, "to_pydatetime"):
                row.append(value.to_pydatetime())
            else:
                row.append(value)
        rows.append(row)
    return _trim_trailing_empty(rows)


def _load_with_pandas(path: Path, sheet_name: Optional[str], engine: str) -> Grid:
    import pandas as pd

    try:
        with pd.ExcelFile(path, engine=engine) as xf:
            chosen = _choose_sheet(list(xf.sheet_names), sheet_name)
            df = pd.read_excel(xf, sheet_name=chosen, header=None, dtype=object)
    except (ValueError, ImportError):
        raise
    except Exception as exc:
        raise ValueError(f"Could not read workbook: {exc}") from exc
    return _frame_to_grid(df)


def _load_xls(path: Path, sheet_name: Optional[str]) -> Grid:
    try:
        import xlrd  # noqa: F401
    except ImportError:
        raise ImportError(
            ".xls files require xlrd. Run: pip install xlrd"
        )
    return _load_with_pandas(path, sheet_name, "xlrd")


def _load_ods(path: Path, sheet_name: Optional[str]) -> Grid:
    try:
        import odf  # noqa: F401
    except ImportError:
        raise ImportError(
            ".ods files require odfpy. Run: pip install odfpy"
        )
    return _load_with_pandas(path, sheet_name, "odf")


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def load_grid(path: "str | Path", sheet_name: Optional[str] = None) -> Grid:
    """
    Load a report export into a row-major grid of raw cell values.

    Args:
        path:       Path to the file (str or Path).
        sheet_name: For workbooks: which sheet to read. None = first sheet,
                    which is where the hospital system writes the report.

    Raises:
        FileNotFoundError  if the file does not exist.
        ValueError         if the format is unsupported or unreadable.
        ImportError        if a required optional dependency is missing.
    """
    path   = Path(path)
    suffix = path.suffix.lower()

    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    if suffix not in ALL_FORMATS:
        supported = ", ".join(sorted(ALL_FORMATS))
        raise ValueError(
            f"Unsupported format '{suffix}'. Supported: {supported}"
        )

    if suffix in TEXT_FORMATS:
        grid = _load_text(path, suffix)
    elif suffix in OOXML_FORMATS:
        grid = _load_ooxml(path, sheet_name)
    elif suffix in LEGACY_FORMATS:
        grid = _load_xls(path, sheet_name)
    else:
        grid = _load_ods(path, sheet_name)

    logger.debug("Loaded %s: %d rows", path.name, len(grid))
    return grid
