"""Parser for the "CHI TIẾT PHẪU THUẬT THEO KHOA" detail report.

The report has no explicit structure beyond column occupancy. Groups nest as
patient → date → machine → procedure lines::

    A                               B
    0001234567 - NGUYEN VAN A
    2024-03-05
    SIEUAM01
    1                               Phẫu thuật nội soi cắt ruột thừa
    2                               Gây mê nội khí quản

Rows are classified in a fixed order (blank, patient, date, machine,
procedure); the categories only become mutually exclusive when checked in
that order. A machine header containing ``-`` therefore reads as a patient.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from surgery_reconciler.cells import Grid, ISO_DATE_RE, NUMBER_RE, grid_text
from surgery_reconciler.models import MachineKey

logger = logging.getLogger(__name__)

DETAIL_DATA_START_ROW = 6

MachineMap = dict[MachineKey, str]


class ParserState(enum.Enum):
    AWAITING_PATIENT = "awaiting-patient"
    HAVE_PATIENT = "have-patient"
    HAVE_DATE = "have-date"
    HAVE_MACHINE = "have-machine"


# procedure lines only count once a patient and a date are both known
PROCEDURE_STATES = frozenset({ParserState.HAVE_DATE, ParserState.HAVE_MACHINE})


class RowKind(enum.Enum):
    BLANK = "blank"
    END = "end"
    PATIENT = "patient"
    DATE = "date"
    MACHINE = "machine"
    PROCEDURE = "procedure"
    OTHER = "other"


def _columns(grid: Grid, row_idx: int) -> tuple[str, str]:
    return grid_text(grid, row_idx, 0), grid_text(grid, row_idx, 1)


def is_patient_header(col_a: str) -> bool:
    return "-" in col_a and not ISO_DATE_RE.match(col_a) and not NUMBER_RE.match(col_a)


def split_patient_header(col_a: str) -> tuple[str, str]:
    patient_id, _, patient_name = col_a.partition("-")
    return patient_id.strip(), patient_name.strip()


@dataclass
class DetailWalker:
    """Rolling parse state while walking the detail grid top to bottom."""

    patient_id: str = ""
    patient_name: str = ""
    date: str = ""
    machine: str = ""
    state: ParserState = ParserState.AWAITING_PATIENT

    def classify(self, grid: Grid, row_idx: int) -> RowKind:
        col_a, col_b = _columns(grid, row_idx)
        if not col_a and not col_b:
            next_a, next_b = _columns(grid, row_idx + 1)
            return RowKind.END if not next_a and not next_b else RowKind.BLANK
        if is_patient_header(col_a):
            return RowKind.PATIENT
        if ISO_DATE_RE.match(col_a):
            return RowKind.DATE
        if col_a and not col_b:
            return RowKind.MACHINE
        if col_b and self.state in PROCEDURE_STATES:
            return RowKind.PROCEDURE
        return RowKind.OTHER

    def enter_patient(self, col_a: str) -> None:
        self.patient_id, self.patient_name = split_patient_header(col_a)
        self.date = ""
        self.machine = ""
        self.state = ParserState.HAVE_PATIENT

    def enter_date(self, col_a: str) -> None:
        self.date = col_a
        self.machine = ""
        self.state = ParserState.HAVE_DATE

    def enter_machine(self, col_a: str) -> None:
        self.machine = col_a
        self.state = ParserState.HAVE_MACHINE

    def key_for(self, procedure_name: str) -> MachineKey:
        return MachineKey(self.patient_id, self.patient_name, self.date, procedure_name)


def build_machine_map(grid: Grid, start_row: int = DETAIL_DATA_START_ROW) -> MachineMap:
    """Map (patient id, patient name, date, procedure) to the machine code used.

    An empty machine code means the procedure sits under a date with no
    machine header, which is a legitimate "no machine recorded" entry.
    """
    machine_map: MachineMap = {}
    walker = DetailWalker()
    skipped = 0

    for row_idx in range(start_row, len(grid)):
        kind = walker.classify(grid, row_idx)
        if kind is RowKind.END:
            break
        col_a, col_b = _columns(grid, row_idx)
        if kind is RowKind.PATIENT:
            walker.enter_patient(col_a)
        elif kind is RowKind.DATE:
            walker.enter_date(col_a)
        elif kind is RowKind.MACHINE:
            walker.enter_machine(col_a)
        elif kind is RowKind.PROCEDURE:
            machine_map[walker.key_for(col_b)] = walker.machine
        elif kind is RowKind.OTHER:
            skipped += 1

    logger.debug("Detail report: %d procedure keys, %d unclassified rows skipped", len(machine_map), skipped)
    return machine_map


def machine_map_rows(machine_map: MachineMap) -> list[dict[str, str]]:
    return [
        {
            "patient_id": key.patient_id,
            "patient_name": key.patient_name,
            "date": key.date,
            "machine_code": machine,
            "procedure_name": key.procedure_name,
            "key": key.legacy(),
        }
        for key, machine in machine_map.items()
    ]
