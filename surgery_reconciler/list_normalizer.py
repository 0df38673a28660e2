"""Normalizer for the flat "DANH SÁCH PHẪU THUẬT" list report.

Columns are read by position; the export's header band is several merged rows
and cannot be relied on for lookup.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from surgery_reconciler.cells import (
    Grid,
    cell_text,
    display_datetime,
    is_blank,
    join_date_from_end,
    minutes_between,
    parse_report_datetime,
    round_half_up,
    to_number,
)
from surgery_reconciler.models import MachineKey, SurgeryRecord

logger = logging.getLogger(__name__)

LIST_DATA_START_ROW = 8

COL_SEQUENCE = 0
COL_PATIENT_NAME = 1
COL_MALE_YEAR = 2
COL_FEMALE_YEAR = 3
COL_INSURANCE = 4
COL_DIAGNOSIS_DATE = 5
COL_START = 6
COL_END = 7
COL_PROCEDURE = 8
COL_PERCENTAGE = 18
COL_COUNT = 19
COL_PATIENT_ID = 20
COL_STAFF_START = 21

# (column, tier) in priority order
SURGERY_MARKERS = ((9, "ĐB"), (10, "1"), (11, "2"), (12, "3"))
PROCEDURE_MARKERS = ((13, "ĐB"), (14, "1"), (15, "2"), (16, "3"), (17, "KPL"))

STAFF_FIELDS = (
    "primary_surgeon",
    "assistant_surgeon",
    "anesthesiologist",
    "anesthesia_technician",
    "equipment_operator",
    "auxiliary",
)


def _cell(row: Sequence[Any], col_idx: int):
    return row[col_idx] if col_idx < len(row) else None


def _text(row: Sequence[Any], col_idx: int) -> str:
    return cell_text(_cell(row, col_idx))


def _first_marker(row: Sequence[Any], markers) -> str:
    for col_idx, tier in markers:
        if not is_blank(_cell(row, col_idx)):
            return tier
    return ""


def determine_surgery_tier(row: Sequence[Any]) -> str:
    return _first_marker(row, SURGERY_MARKERS)


def determine_procedure_tier(row: Sequence[Any]) -> str:
    return _first_marker(row, PROCEDURE_MARKERS)


def determine_procedure_type(row: Sequence[Any]) -> str:
    """PĐB/P1/P2/P3 from surgery markers, else TĐB/T1/T2/T3/TKPL, else ""."""
    surgery_tier = determine_surgery_tier(row)
    if surgery_tier:
        return f"P{surgery_tier}"
    procedure_tier = determine_procedure_tier(row)
    if procedure_tier:
        return f"T{procedure_tier}"
    return ""


def gender_and_birth_year(row: Sequence[Any]) -> tuple[str, str]:
    male_year = _text(row, COL_MALE_YEAR)
    female_year = _text(row, COL_FEMALE_YEAR)
    if male_year:
        return "Nam", male_year
    if female_year:
        return "Nữ", female_year
    return "", ""


def build_list_key(patient_id: str, patient_name: str, end_text: str, end_time, procedure_name: str) -> MachineKey:
    return MachineKey(patient_id, patient_name, join_date_from_end(end_text, end_time), procedure_name)


def normalize_row(row: Sequence[Any], machine_map: Mapping[MachineKey, str]) -> SurgeryRecord:
    patient_name = _text(row, COL_PATIENT_NAME)
    patient_id = _text(row, COL_PATIENT_ID)
    procedure_name = _text(row, COL_PROCEDURE)
    gender, year_of_birth = gender_and_birth_year(row)

    raw_start = _cell(row, COL_START)
    raw_end = _cell(row, COL_END)
    start_text = display_datetime(raw_start)
    end_text = display_datetime(raw_end)
    start_time = parse_report_datetime(raw_start)
    end_time = parse_report_datetime(raw_end)

    duration = 0
    if start_time is not None and end_time is not None and end_time > start_time:
        duration = minutes_between(start_time, end_time)

    percentage = to_number(_cell(row, COL_PERCENTAGE))
    raw_count = to_number(_cell(row, COL_COUNT))
    quantity = round_half_up((percentage / 100) * raw_count, 2)

    key = build_list_key(patient_id, patient_name, end_text, end_time, procedure_name)
    staff = {field: _text(row, COL_STAFF_START + offset) for offset, field in enumerate(STAFF_FIELDS)}
    surgery_tier = determine_surgery_tier(row)
    procedure_tier = determine_procedure_tier(row)

    return SurgeryRecord(
        sequence=_text(row, COL_SEQUENCE),
        patient_id=patient_id,
        patient_name=patient_name,
        gender=gender,
        year_of_birth=year_of_birth,
        insurance_card=_text(row, COL_INSURANCE),
        diagnosis_date=display_datetime(_cell(row, COL_DIAGNOSIS_DATE)),
        start_text=start_text,
        end_text=end_text,
        start_time=start_time,
        end_time=end_time,
        duration_minutes=duration,
        procedure_name=procedure_name,
        surgery_tier=surgery_tier,
        procedure_tier=procedure_tier,
        procedure_type=determine_procedure_type(row),
        percentage=percentage,
        raw_count=raw_count,
        quantity=quantity,
        machine_code=machine_map.get(key, ""),
        machine_key=key,
        **staff,
    )


def normalize_list(grid: Grid, machine_map: Mapping[MachineKey, str], start_row: int = LIST_DATA_START_ROW) -> list[SurgeryRecord]:
    """Turn list rows into records until the first row without a sequence number."""
    records: list[SurgeryRecord] = []
    for row_idx in range(start_row, len(grid)):
        row = grid[row_idx] or ()
        if is_blank(_cell(row, COL_SEQUENCE)):
            break
        records.append(normalize_row(row, machine_map))

    unresolved = sum(1 for record in records if not record.machine_code)
    logger.debug("List report: %d records, %d without a resolved machine", len(records), unresolved)
    return records
