"""One processing run: validate, parse, detect, aggregate, assemble.

Every stage consumes the complete output of the previous one; nothing is
cached between runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Sequence

from surgery_reconciler import __version__ as TOOL_VERSION
from surgery_reconciler.cells import Grid
from surgery_reconciler.config import ProcessingConfig
from surgery_reconciler.conflicts import (
    MachineConflict,
    StaffConflict,
    detect_machine_conflicts,
    detect_staff_conflicts,
)
from surgery_reconciler.contracts import build_contract, build_run_summary
from surgery_reconciler.detail_parser import MachineMap, build_machine_map, machine_map_rows
from surgery_reconciler.list_normalizer import normalize_list
from surgery_reconciler.models import SurgeryRecord
from surgery_reconciler.payment import PaymentTable, aggregate_payments
from surgery_reconciler.reader import load_grid
from surgery_reconciler.validation import ReportPeriods, validate_reports

logger = logging.getLogger(__name__)

NARRATIVE_CONFLICT_LIMIT = 20


@dataclass(frozen=True)
class TimeNormViolation:
    record: SurgeryRecord
    expected_min: int
    expected_max: int

    @property
    def actual(self) -> int:
        return self.record.duration_minutes

    def to_dict(self) -> dict[str, Any]:
        return {
            "sequence": self.record.sequence,
            "patient_id": self.record.patient_id,
            "patient_name": self.record.patient_name,
            "procedure_name": self.record.procedure_name,
            "procedure_type": self.record.procedure_type,
            "expected_min": self.expected_min,
            "expected_max": self.expected_max,
            "actual": self.actual,
        }


@dataclass
class ProcessingResult:
    periods: ReportPeriods
    records: list[SurgeryRecord]
    machine_map: MachineMap
    staff_conflicts: list[StaffConflict]
    machine_conflicts: list[MachineConflict]
    missing_machine: list[SurgeryRecord]
    payment: PaymentTable
    time_norm_violations: list[TimeNormViolation] = field(default_factory=list)
    untyped_records: list[SurgeryRecord] = field(default_factory=list)
    list_path: Optional[Path] = None
    detail_path: Optional[Path] = None

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "total_records": len(self.records),
            "total_duration_minutes": sum(record.duration_minutes for record in self.records),
            "staff_conflicts": len(self.staff_conflicts),
            "machine_conflicts": len(self.machine_conflicts),
            "missing_machines": len(self.missing_machine),
            "low_quantity_records": sum(1 for record in self.records if record.quantity < 1),
            "total_payment_amount": self.payment.grand_total,
            "time_norm_violations": len(self.time_norm_violations),
            "untyped_records": len(self.untyped_records),
        }

    @property
    def has_issues(self) -> bool:
        return bool(self.staff_conflicts or self.machine_conflicts or self.missing_machine)

    def warnings(self) -> list[str]:
        warnings = []
        if self.untyped_records:
            warnings.append(f"{len(self.untyped_records)} record(s) have no surgery/procedure type marker and are excluded from payment")
        unscheduled = sum(1 for record in self.records if not record.is_scheduled)
        if unscheduled:
            warnings.append(f"{unscheduled} record(s) have unreadable start/end times and are excluded from conflict detection")
        return warnings

    def to_dict(self, output_path: Optional[Path] = None) -> dict[str, Any]:
        contract = build_contract("reconcile.result")
        stats = self.stats
        return {
            "contract": contract,
            "schema_version": contract["version"],
            "tool_version": TOOL_VERSION,
            "period": self.periods.label,
            "stats": stats,
            "records": [record.to_dict() for record in self.records],
            "staff_conflicts": [conflict.to_dict() for conflict in self.staff_conflicts],
            "machine_conflicts": [conflict.to_dict() for conflict in self.machine_conflicts],
            "missing_machine": [record.to_dict() for record in self.missing_machine],
            "time_norm_violations": [item.to_dict() for item in self.time_norm_violations],
            "untyped_records": [record.sequence for record in self.untyped_records],
            "payment": self.payment.to_dict(),
            "machine_list": machine_map_rows(self.machine_map),
            "run_summary": build_run_summary(
                "process",
                list_path=self.list_path,
                detail_path=self.detail_path,
                period=self.periods.label,
                output_path=output_path,
                metrics=stats,
                warnings=self.warnings(),
            ),
        }


def find_missing_machines(records: Sequence[SurgeryRecord], config: ProcessingConfig) -> list[SurgeryRecord]:
    return [
        record for record in records
        if not record.machine_code and not config.is_machine_exempt(record.procedure_name)
    ]


def find_time_norm_violations(records: Sequence[SurgeryRecord], config: ProcessingConfig) -> list[TimeNormViolation]:
    violations = []
    for record in records:
        rule = config.time_rule(record.procedure_type) if record.procedure_type else None
        if rule is None or record.duration_minutes <= 0:
            continue
        expected_min, expected_max = rule
        if expected_max <= 0:
            continue
        if not expected_min <= record.duration_minutes <= expected_max:
            violations.append(TimeNormViolation(record=record, expected_min=expected_min, expected_max=expected_max))
    return violations


def process_grids(
    list_grid: Grid,
    detail_grid: Grid,
    config: Optional[ProcessingConfig] = None,
) -> ProcessingResult:
    """Run the whole pipeline over two decoded report grids.

    Raises ``ReportFormatError`` or ``PeriodMismatchError`` before any parsing
    when the grids do not look like the expected exports.
    """
    config = config or ProcessingConfig()
    periods = validate_reports(list_grid, detail_grid)

    machine_map = build_machine_map(detail_grid)
    records = normalize_list(list_grid, machine_map)
    try:
        staff_conflicts = detect_staff_conflicts(records)
        machine_conflicts = detect_machine_conflicts(records)
        payment = aggregate_payments(records, config)
    except Exception:
        logger.exception("Conflict detection or payment aggregation failed on %d records", len(records))
        raise

    result = ProcessingResult(
        periods=periods,
        records=records,
        machine_map=machine_map,
        staff_conflicts=staff_conflicts,
        machine_conflicts=machine_conflicts,
        missing_machine=find_missing_machines(records, config),
        payment=payment,
        time_norm_violations=find_time_norm_violations(records, config),
        untyped_records=[record for record in records if not record.procedure_type],
    )
    logger.info(
        "Processed %d records for %s: %d staff conflicts, %d machine conflicts, %d missing machines",
        len(records),
        periods.label,
        len(staff_conflicts),
        len(machine_conflicts),
        len(result.missing_machine),
    )
    return result


def process_files(
    list_path: "str | Path",
    detail_path: "str | Path",
    config: Optional[ProcessingConfig] = None,
) -> ProcessingResult:
    list_path, detail_path = Path(list_path), Path(detail_path)
    list_grid = load_grid(list_path)
    detail_grid = load_grid(detail_path)
    result = process_grids(list_grid, detail_grid, config)
    result.list_path, result.detail_path = list_path, detail_path
    return result


def build_narrative_payload(result: ProcessingResult, limit: int = NARRATIVE_CONFLICT_LIMIT) -> dict[str, Any]:
    """Summary statistics plus the first ``limit`` conflicts, staff first."""
    conflicts = []
    for kind, items in (("STAFF", result.staff_conflicts), ("MACHINE", result.machine_conflicts)):
        for conflict in items:
            conflicts.append({
                "type": kind,
                "resource_name": conflict.resource_name,
                "procedure_a": conflict.first.procedure_name,
                "procedure_b": conflict.second.procedure_name,
                "overlap_minutes": conflict.overlap_minutes,
            })
    contract = build_contract("reconcile.narrative")
    return {
        "contract": contract,
        "period": result.periods.label,
        "stats": result.stats,
        "conflicts": conflicts[:limit],
    }
