"""Write a processing result to a downloadable .xlsx workbook."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, Iterable

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, Side
from openpyxl.utils import get_column_letter

from surgery_reconciler.detail_parser import machine_map_rows
from surgery_reconciler.pipeline import ProcessingResult

SHEET_RECORDS = "BANG_KET_QUA"
SHEET_STAFF_CONFLICTS = "TRUNG_GIO_NHAN_VIEN"
SHEET_MACHINE_CONFLICTS = "TRUNG_GIO_MAY"
SHEET_MISSING_MACHINE = "THIEU_MA_MAY"
SHEET_TIME_NORMS = "NGOAI_DINH_MUC"
SHEET_PAYMENT = "BANG_THANH_TOAN"
SHEET_MACHINE_LIST = "DS_MA_MAY"

TABLE_START_ROW = 7

RECORD_HEADERS = [
    "STT", "Mã BN", "Họ tên", "Giới", "Năm sinh", "Thẻ BHYT", "Ngày CĐ", "Ngày BĐ", "Ngày KT",
    "Tên kỹ thuật", "Loại Phẫu thuật", "Loại Thủ thuật", "Loại PTTT", "Số lượng", "Thời gian (phút)",
    "PT Chính", "PT Phụ", "BS GM", "KTV GM", "TDC", "GV", "Mã máy", "key",
]
RECORD_WIDTHS = [7, 12, 25, 9, 9, 20, 17, 17, 17, 30, 10, 10, 10, 8, 10, 20, 20, 20, 20, 20, 15, 25, 40]

THIN = Side(style="thin")
BORDER = Border(top=THIN, bottom=THIN, left=THIN, right=THIN)
BOLD = Font(bold=True)
CENTER = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _style_table(ws, first_row: int, last_row: int, width: int) -> None:
    for row in ws.iter_rows(min_row=first_row, max_row=last_row, min_col=1, max_col=width):
        for cell in row:
            cell.border = BORDER
            if cell.row == first_row:
                cell.font = BOLD
                cell.alignment = CENTER


def _append_table(ws, headers: list[str], rows: Iterable[list[Any]]) -> None:
    ws.append(headers)
    for row in rows:
        ws.append(row)
    _style_table(ws, 1, ws.max_row, len(headers))


def _conflict_times(conflict) -> list[Any]:
    a, b = conflict.first, conflict.second
    return [
        a.patient_id, a.patient_name, a.procedure_name, a.start_time, a.end_time,
        b.patient_id, b.patient_name, b.procedure_name, b.start_time, b.end_time,
        conflict.overlap_minutes,
    ]


def write_records_sheet(ws, result: ProcessingResult) -> None:
    ws["J3"] = "DANH SÁCH PHẪU THUẬT"
    ws["J3"].font = BOLD
    ws["J5"] = result.periods.label
    for offset, header in enumerate(RECORD_HEADERS, start=1):
        ws.cell(row=TABLE_START_ROW, column=offset, value=header)
    for row_idx, record in enumerate(result.records, start=TABLE_START_ROW + 1):
        values = [
            record.sequence, record.patient_id, record.patient_name, record.gender, record.year_of_birth,
            record.insurance_card, record.diagnosis_date, record.start_text, record.end_text,
            record.procedure_name, record.surgery_tier, record.procedure_tier, record.procedure_type,
            record.quantity, record.duration_minutes, record.primary_surgeon, record.assistant_surgeon,
            record.anesthesiologist, record.anesthesia_technician, record.equipment_operator,
            record.auxiliary, record.machine_code, record.machine_key.legacy(),
        ]
        for col_idx, value in enumerate(values, start=1):
            ws.cell(row=row_idx, column=col_idx, value=value)
    _style_table(ws, TABLE_START_ROW, TABLE_START_ROW + len(result.records), len(RECORD_HEADERS))
    for col_idx, width in enumerate(RECORD_WIDTHS, start=1):
        ws.column_dimensions[get_column_letter(col_idx)].width = width


def write_payment_sheet(ws, result: ProcessingResult) -> None:
    table = result.payment
    headers = ["STT", "HỌ TÊN", *table.columns, "THÀNH TIỀN"]
    width = len(headers)
    ws.cell(row=3, column=max(1, width // 2), value="BẢNG THANH TOÁN PHẪU THUẬT, THỦ THUẬT").font = BOLD
    ws.cell(row=5, column=max(1, width // 2), value=result.periods.label)

    row_idx = TABLE_START_ROW
    for col_idx, header in enumerate(headers, start=1):
        ws.cell(row=row_idx, column=col_idx, value=header)
    row_idx += 1
    ws.cell(row=row_idx, column=2, value="ĐƠN GIÁ")
    for col_idx, key in enumerate(table.columns, start=3):
        ws.cell(row=row_idx, column=col_idx, value=table.unit_prices[key])

    for role, rows in table.groups():
        row_idx += 1
        ws.cell(row=row_idx, column=1, value=role.label).font = BOLD
        for sequence, payment_row in enumerate(rows, start=1):
            row_idx += 1
            ws.cell(row=row_idx, column=1, value=sequence)
            ws.cell(row=row_idx, column=2, value=payment_row.name)
            for col_idx, key in enumerate(table.columns, start=3):
                ws.cell(row=row_idx, column=col_idx, value=payment_row.values[key])
            ws.cell(row=row_idx, column=width, value=payment_row.total_amount)

    row_idx += 1
    ws.cell(row=row_idx, column=1, value="TỔNG").font = BOLD
    totals = table.column_totals
    for col_idx, key in enumerate(table.columns, start=3):
        ws.cell(row=row_idx, column=col_idx, value=totals[key])
    ws.cell(row=row_idx, column=width, value=table.grand_total)
    _style_table(ws, TABLE_START_ROW, row_idx, width)


def build_workbook(result: ProcessingResult) -> Workbook:
    workbook = Workbook()
    ws = workbook.active
    ws.title = SHEET_RECORDS
    write_records_sheet(ws, result)

    conflict_pair_headers = [
        "Mã BN 1", "Tên BN 1", "Tên KT 1", "BĐ 1", "KT 1",
        "Mã BN 2", "Tên BN 2", "Tên KT 2", "BĐ 2", "KT 2", "Trùng (phút)",
    ]
    _append_table(
        workbook.create_sheet(SHEET_STAFF_CONFLICTS),
        ["Nhân viên", "Vai trò", *conflict_pair_headers],
        ([c.staff_name, c.role.label, *_conflict_times(c)] for c in result.staff_conflicts),
    )
    _append_table(
        workbook.create_sheet(SHEET_MACHINE_CONFLICTS),
        ["Mã máy", *conflict_pair_headers],
        ([c.machine_code, *_conflict_times(c)] for c in result.machine_conflicts),
    )
    _append_table(
        workbook.create_sheet(SHEET_MISSING_MACHINE),
        ["STT", "Mã BN", "Họ tên", "Ngày BĐ", "Tên kỹ thuật"],
        ([r.sequence, r.patient_id, r.patient_name, r.start_text, r.procedure_name] for r in result.missing_machine),
    )
    _append_table(
        workbook.create_sheet(SHEET_TIME_NORMS),
        ["STT", "Mã BN", "Họ tên", "Tên kỹ thuật", "Loại PTTT", "Tối thiểu", "Tối đa", "Thực tế (phút)"],
        (
            [v.record.sequence, v.record.patient_id, v.record.patient_name, v.record.procedure_name,
             v.record.procedure_type, v.expected_min, v.expected_max, v.actual]
            for v in result.time_norm_violations
        ),
    )
    write_payment_sheet(workbook.create_sheet(SHEET_PAYMENT), result)
    _append_table(
        workbook.create_sheet(SHEET_MACHINE_LIST),
        ["Mã BN", "Tên bệnh nhân", "Ngày phẫu thuật", "Mã máy", "Tên phẫu thuật", "key"],
        (
            [row["patient_id"], row["patient_name"], row["date"], row["machine_code"], row["procedure_name"], row["key"]]
            for row in machine_map_rows(result.machine_map)
        ),
    )
    return workbook


def write_result_workbook(result: ProcessingResult, output_path: Path) -> Path:
    workbook = build_workbook(result)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{output_path.stem}.", suffix=output_path.suffix, dir=str(output_path.parent))
    os.close(fd)
    temp_path = Path(tmp_name)
    try:
        workbook.save(temp_path)
        os.replace(temp_path, output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()
    return output_path
