"""Shape checks for the two hospital exports.

Both reports are positional: a title at a fixed cell, a reporting-period label
at a fixed cell and the first data row at a fixed offset. A grid that fails
any of these checks is rejected before parsing starts.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from surgery_reconciler.cells import Grid, ISO_DATE_RE, collapse_whitespace, grid_text

logger = logging.getLogger(__name__)

LIST_FILE = "list"
DETAIL_FILE = "detail"
FILE_TITLES = {
    LIST_FILE: "DANH SÁCH PHẪU THUẬT",
    DETAIL_FILE: "CHI TIẾT PHẪU THUẬT THEO KHOA",
}

# (row, column), 0-based
LIST_TITLE_CELL = (2, 0)
LIST_PERIOD_CELL = (4, 0)
LIST_FIRST_DATA_ROW = 8
DETAIL_TITLE_CELL = (1, 0)
DETAIL_PERIOD_CELL = (3, 0)
DETAIL_PATIENT_ROW = 6
DETAIL_DATE_ROW = 7
DETAIL_FIRST_SEQUENCE_ROW = 9

PATIENT_HEADER_RE = re.compile(r"^\d{10}\s*-\s*.+$")


class ReconcileValidationError(ValueError):
    pass


class ReportFormatError(ReconcileValidationError):
    def __init__(self, file_label: str, expectation: str) -> None:
        title = FILE_TITLES.get(file_label, file_label)
        super().__init__(f"{file_label.capitalize()} file ({title}) does not match the expected export: {expectation}")
        self.file_label = file_label
        self.expectation = expectation


class PeriodMismatchError(ReconcileValidationError):
    def __init__(self, list_period: str, detail_period: str) -> None:
        super().__init__(
            "The two reports cover different periods: "
            f"list file says '{list_period}', detail file says '{detail_period}'"
        )
        self.list_period = list_period
        self.detail_period = detail_period


@dataclass(frozen=True)
class ReportPeriods:
    list_period: str
    detail_period: str

    @property
    def label(self) -> str:
        return self.list_period


def _title(grid: Grid, cell: tuple[int, int]) -> str:
    return grid_text(grid, *cell).upper()


def validate_list_grid(grid: Grid) -> None:
    if FILE_TITLES[LIST_FILE] not in _title(grid, LIST_TITLE_CELL):
        raise ReportFormatError(LIST_FILE, f"cell A3 must contain the title '{FILE_TITLES[LIST_FILE]}'")
    sequence = grid_text(grid, LIST_FIRST_DATA_ROW, 0)
    name = grid_text(grid, LIST_FIRST_DATA_ROW, 1)
    if sequence != "1" or not name:
        raise ReportFormatError(
            LIST_FILE,
            "the first data row (row 9) must start with sequence number 1 and a patient name; "
            "export the report without grouping by department",
        )


def validate_detail_grid(grid: Grid) -> None:
    if FILE_TITLES[DETAIL_FILE] not in _title(grid, DETAIL_TITLE_CELL):
        raise ReportFormatError(DETAIL_FILE, f"cell A2 must contain the title '{FILE_TITLES[DETAIL_FILE]}'")
    patient = grid_text(grid, DETAIL_PATIENT_ROW, 0)
    day = grid_text(grid, DETAIL_DATE_ROW, 0)
    sequence = grid_text(grid, DETAIL_FIRST_SEQUENCE_ROW, 0)
    if not PATIENT_HEADER_RE.match(patient) or not ISO_DATE_RE.match(day) or sequence != "1":
        raise ReportFormatError(
            DETAIL_FILE,
            "rows must be grouped as patient (A7 'id - name') → date (A8 yyyy-mm-dd) → machine, "
            "with the first procedure numbered 1 in A10",
        )


def extract_period(grid: Grid, file_label: str) -> str:
    cell = LIST_PERIOD_CELL if file_label == LIST_FILE else DETAIL_PERIOD_CELL
    period = collapse_whitespace(grid_text(grid, *cell))
    if not period:
        column, row = "A", cell[0] + 1
        raise ReportFormatError(file_label, f"reporting period cell {column}{row} is empty")
    return period


def validate_reports(list_grid: Grid, detail_grid: Grid) -> ReportPeriods:
    """Run every pre-parse check; raises on the first failure."""
    validate_list_grid(list_grid)
    validate_detail_grid(detail_grid)
    list_period = extract_period(list_grid, LIST_FILE)
    detail_period = extract_period(detail_grid, DETAIL_FILE)
    if list_period != detail_period:
        raise PeriodMismatchError(list_period, detail_period)
    logger.debug("Reports validated for period %s", list_period)
    return ReportPeriods(list_period=list_period, detail_period=detail_period)
