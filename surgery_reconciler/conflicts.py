"""Overlapping-interval detection per staff member and per machine.

Two records collide when they share a resource and their intervals overlap,
endpoints included. Staff are keyed by (role, name): the same person in two
different roles at the same time is not a conflict.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Hashable, Iterable, Sequence

from surgery_reconciler.cells import minutes_between
from surgery_reconciler.models import ROLES_BY_CODE, STAFF_ROLES, StaffRole, SurgeryRecord

logger = logging.getLogger(__name__)


def is_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start <= b_end and b_start <= a_end


def overlap_window(first: SurgeryRecord, second: SurgeryRecord) -> tuple[datetime, datetime]:
    return max(first.start_time, second.start_time), min(first.end_time, second.end_time)


@dataclass(frozen=True)
class _ConflictBase:
    first: SurgeryRecord
    second: SurgeryRecord

    @property
    def overlap_start(self) -> datetime:
        return overlap_window(self.first, self.second)[0]

    @property
    def overlap_end(self) -> datetime:
        return overlap_window(self.first, self.second)[1]

    @property
    def overlap_minutes(self) -> int:
        start, end = overlap_window(self.first, self.second)
        return max(0, minutes_between(start, end))

    def _pair_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for suffix, record in (("1", self.first), ("2", self.second)):
            payload[f"patient_id_{suffix}"] = record.patient_id
            payload[f"patient_name_{suffix}"] = record.patient_name
            payload[f"procedure_name_{suffix}"] = record.procedure_name
            payload[f"start_{suffix}"] = record.start_time.isoformat()
            payload[f"end_{suffix}"] = record.end_time.isoformat()
        payload["overlap_minutes"] = self.overlap_minutes
        return payload


@dataclass(frozen=True)
class StaffConflict(_ConflictBase):
    staff_name: str = ""
    role: StaffRole = STAFF_ROLES[0]

    @property
    def resource_name(self) -> str:
        return self.staff_name

    def to_dict(self) -> dict[str, Any]:
        return {"staff_name": self.staff_name, "role": self.role.code, **self._pair_dict()}


@dataclass(frozen=True)
class MachineConflict(_ConflictBase):
    machine_code: str = ""

    @property
    def resource_name(self) -> str:
        return self.machine_code

    def to_dict(self) -> dict[str, Any]:
        return {"machine_code": self.machine_code, **self._pair_dict()}


def _group(entries: Iterable[tuple[Hashable, SurgeryRecord]]) -> dict[Hashable, list[SurgeryRecord]]:
    groups: dict[Hashable, list[SurgeryRecord]] = {}
    for key, record in entries:
        if not record.is_scheduled:
            continue
        groups.setdefault(key, []).append(record)
    return groups


def overlapping_pairs(records: Sequence[SurgeryRecord]) -> list[tuple[SurgeryRecord, SurgeryRecord]]:
    """Every overlapping (i, j) pair, i < j, after a stable sort by start time."""
    ordered = sorted(records, key=lambda record: record.start_time)
    pairs = []
    for i, first in enumerate(ordered):
        for second in ordered[i + 1:]:
            if is_overlap(first.start_time, first.end_time, second.start_time, second.end_time):
                pairs.append((first, second))
    return pairs


def detect_staff_conflicts(records: Sequence[SurgeryRecord]) -> list[StaffConflict]:
    entries = (
        ((role.code, name), record)
        for record in records
        for role, name in record.staffing()
    )
    conflicts = []
    for (role_code, name), group in _group(entries).items():
        for first, second in overlapping_pairs(group):
            conflicts.append(StaffConflict(first=first, second=second, staff_name=name, role=ROLES_BY_CODE[role_code]))
    logger.debug("Staff conflicts: %d", len(conflicts))
    return conflicts


def detect_machine_conflicts(records: Sequence[SurgeryRecord]) -> list[MachineConflict]:
    entries = ((record.machine_code, record) for record in records if record.machine_code)
    conflicts = []
    for machine_code, group in _group(entries).items():
        for first, second in overlapping_pairs(group):
            conflicts.append(MachineConflict(first=first, second=second, machine_code=machine_code))
    logger.debug("Machine conflicts: %d", len(conflicts))
    return conflicts
