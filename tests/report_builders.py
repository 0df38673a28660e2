"""Builders for synthetic list/detail report grids used across the test suite."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from openpyxl import Workbook

from surgery_reconciler.models import MachineKey, SurgeryRecord

PERIOD = "Từ ngày 01/03/2024 đến ngày 31/03/2024"

LIST_WIDTH = 27
MARKER_COLUMNS = {
    "PĐB": 9, "P1": 10, "P2": 11, "P3": 12,
    "TĐB": 13, "T1": 14, "T2": 15, "T3": 16, "TKPL": 17,
}
STAFF_COLUMNS = {
    "primary_surgeon": 21,
    "assistant_surgeon": 22,
    "anesthesiologist": 23,
    "anesthesia_technician": 24,
    "equipment_operator": 25,
    "auxiliary": 26,
}


def list_header(period: str = PERIOD) -> list[list[Any]]:
    rows: list[list[Any]] = [[None] * LIST_WIDTH for _ in range(8)]
    rows[0][0] = "BỆNH VIỆN ĐA KHOA TỈNH"
    rows[2][0] = "DANH SÁCH PHẪU THUẬT"
    rows[4][0] = period
    rows[6][0] = "STT"
    rows[6][1] = "Họ tên"
    return rows


def list_row(
    sequence: Any,
    patient_name: str,
    patient_id: str,
    start: Any,
    end: Any,
    procedure_name: str,
    procedure_type: str = "P1",
    *,
    percentage: Any = 100,
    count: Any = 1,
    male_year: Any = "1980",
    female_year: Any = None,
    **staff: str,
) -> list[Any]:
    row: list[Any] = [None] * LIST_WIDTH
    row[0] = sequence
    row[1] = patient_name
    row[2] = male_year
    row[3] = female_year
    row[4] = "DN4010123456789"
    row[5] = "01/03/2024"
    row[6] = start
    row[7] = end
    row[8] = procedure_name
    if procedure_type:
        row[MARKER_COLUMNS[procedure_type]] = "x"
    row[18] = percentage
    row[19] = count
    row[20] = patient_id
    for field, name in staff.items():
        row[STAFF_COLUMNS[field]] = name
    return row


def list_grid(rows: list[list[Any]], period: str = PERIOD) -> list[list[Any]]:
    return [*list_header(period), *rows, [None] * LIST_WIDTH, ["Người lập bảng"] + [None] * (LIST_WIDTH - 1)]


def detail_grid(groups: list[tuple[str, str, str, Optional[str], list[str]]], period: str = PERIOD) -> list[list[Any]]:
    """groups: (patient_id, patient_name, date, machine or None, procedures)."""
    rows: list[list[Any]] = [[None, None] for _ in range(6)]
    rows[1][0] = "CHI TIẾT PHẪU THUẬT THEO KHOA"
    rows[3][0] = period
    current_patient = None
    for patient_id, patient_name, day, machine, procedures in groups:
        if (patient_id, patient_name) != current_patient:
            rows.append([f"{patient_id} - {patient_name}", None])
            current_patient = (patient_id, patient_name)
        rows.append([day, None])
        if machine is not None:
            rows.append([machine, None])
        for number, procedure in enumerate(procedures, start=1):
            rows.append([str(number), procedure])
    rows.extend([[None, None], [None, None], ["Tổng cộng", "ignored"]])
    return rows


def sample_reports(period: str = PERIOD, detail_period: Optional[str] = None) -> tuple[list[list[Any]], list[list[Any]]]:
    """Four procedures over two days.

    Rows 1 and 2 share a primary surgeon and a machine and overlap 30 minutes.
    Row 3 has no machine in the detail report; row 4 has no type marker and
    is absent from the detail report.
    """
    rows = [
        list_row(
            1, "NGUYEN VAN A", "0000000001", "05/03/2024 08:00", "05/03/2024 10:00", "Cắt ruột thừa", "P1",
            primary_surgeon="BS Hùng", assistant_surgeon="BS Lan", anesthesiologist="BS Minh", auxiliary="Hộ lý Mai",
        ),
        list_row(
            2, "TRAN THI B", "0000000002", "05/03/2024 09:30", "05/03/2024 11:00", "Nội soi dạ dày", "T1",
            male_year=None, female_year="1975",
            primary_surgeon="BS Hùng", anesthesia_technician="KTV Nam",
        ),
        list_row(
            3, "LE VAN C", "0000000003", "06/03/2024 08:00", "06/03/2024 08:20", "Gây mê tĩnh mạch", "P3",
            percentage=50, primary_surgeon="BS Lan",
        ),
        list_row(
            4, "PHAM VAN D", "0000000004", "06/03/2024 13:00", "06/03/2024 13:30", "Thay băng", "",
            primary_surgeon="BS Hùng",
        ),
    ]
    detail = detail_grid(
        [
            ("0000000001", "NGUYEN VAN A", "2024-03-05", "MAY01", ["Cắt ruột thừa"]),
            ("0000000002", "TRAN THI B", "2024-03-05", "MAY01", ["Nội soi dạ dày"]),
            ("0000000003", "LE VAN C", "2024-03-06", None, ["Gây mê tĩnh mạch"]),
        ],
        period=detail_period or period,
    )
    return list_grid(rows, period), detail


def write_grid(grid: list[list[Any]], path: Path) -> Path:
    workbook = Workbook()
    ws = workbook.active
    ws.title = "Sheet1"
    for row_idx, row in enumerate(grid, start=1):
        for col_idx, value in enumerate(row, start=1):
            if value is not None:
                ws.cell(row=row_idx, column=col_idx, value=value)
    workbook.save(path)
    return path


def write_sample_reports(directory: Path, **kwargs) -> tuple[Path, Path]:
    list_data, detail_data = sample_reports(**kwargs)
    return (
        write_grid(list_data, directory / "danh_sach.xlsx"),
        write_grid(detail_data, directory / "chi_tiet.xlsx"),
    )


def make_record(
    sequence: str,
    start: Optional[datetime],
    end: Optional[datetime],
    *,
    procedure_type: str = "P1",
    quantity: float = 1.0,
    machine_code: str = "",
    procedure_name: str = "Thủ thuật",
    **staff: str,
) -> SurgeryRecord:
    duration = int((end - start).total_seconds() // 60) if start and end and end > start else 0
    fields = {field: staff.get(field, "") for field in STAFF_COLUMNS}
    return SurgeryRecord(
        sequence=sequence,
        patient_id=f"00000000{int(sequence):02d}",
        patient_name=f"BENH NHAN {sequence}",
        gender="Nam",
        year_of_birth="1980",
        insurance_card="",
        diagnosis_date="",
        start_text=start.strftime("%d/%m/%Y %H:%M") if start else "",
        end_text=end.strftime("%d/%m/%Y %H:%M") if end else "",
        start_time=start,
        end_time=end,
        duration_minutes=duration,
        procedure_name=procedure_name,
        surgery_tier=procedure_type[1:] if procedure_type.startswith("P") else "",
        procedure_tier=procedure_type[1:] if procedure_type.startswith("T") else "",
        procedure_type=procedure_type,
        percentage=100.0,
        raw_count=quantity,
        quantity=quantity,
        machine_code=machine_code,
        machine_key=MachineKey("", "", "", procedure_name),
        **fields,
    )
