"""Cell coercion helpers shared by the grid parsers.

Grids arrive row-major with values already coerced by the reader (str, int,
float, datetime or None). Everything here is tolerant: a value that cannot be
interpreted comes back empty or ``None``, never as an exception.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any, Optional, Sequence

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
NUMBER_RE = re.compile(r"^\d+(\.\d+)?$")
SHEET_DATE_RE = re.compile(r"^\d{2}/\d{2}/\d{4}$")
REPORT_DATETIME_RE = re.compile(
    r"^(\d{1,2})/(\d{1,2})/(\d{4})(?:\s+(\d{1,2}):(\d{1,2})(?::(\d{1,2}))?)?$"
)

Grid = Sequence[Sequence[Any]]


def is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def cell_text(value) -> str:
    """Render a cell the way the report shows it, trimmed."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, datetime):
        if (value.hour, value.minute, value.second) == (0, 0, 0):
            return value.strftime("%Y-%m-%d")
        return value.strftime("%d/%m/%Y %H:%M")
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def grid_cell(grid: Grid, row_idx: int, col_idx: int):
    if row_idx < 0 or row_idx >= len(grid):
        return None
    row = grid[row_idx] or ()
    if col_idx < 0 or col_idx >= len(row):
        return None
    return row[col_idx]


def grid_text(grid: Grid, row_idx: int, col_idx: int) -> str:
    return cell_text(grid_cell(grid, row_idx, col_idx))


def to_number(value) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    raw = str(value).strip().replace(",", ".")
    if not raw:
        return 0.0
    try:
        return float(raw)
    except ValueError:
        return 0.0


def parse_report_datetime(value) -> Optional[datetime]:
    """Parse ``dd/mm/yyyy[ hh:mm[:ss]]``; a missing time means 00:00."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    match = REPORT_DATETIME_RE.match(str(value).strip())
    if not match:
        return None
    day, month, year = int(match.group(1)), int(match.group(2)), int(match.group(3))
    hour = int(match.group(4) or 0)
    minute = int(match.group(5) or 0)
    second = int(match.group(6) or 0)
    try:
        return datetime(year, month, day, hour, minute, second)
    except ValueError:
        return None


def display_datetime(value) -> str:
    if isinstance(value, datetime):
        return value.strftime("%d/%m/%Y %H:%M")
    return cell_text(value)


def join_date_from_end(end_text: str, end_time: Optional[datetime]) -> str:
    """yyyy-mm-dd date used to join a list row against the detail report."""
    date_part = end_text.split(" ")[0] if end_text else ""
    if SHEET_DATE_RE.match(date_part):
        day, month, year = date_part.split("/")
        return f"{year}-{month}-{day}"
    if end_time is None:
        return ""
    return end_time.strftime("%Y-%m-%d")


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def minutes_between(start: datetime, end: datetime) -> int:
    return int(round_half_up((end - start).total_seconds() / 60))


def collapse_whitespace(value: str) -> str:
    return " ".join(value.split())
