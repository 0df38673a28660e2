from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, NamedTuple, Optional


@dataclass(frozen=True)
class StaffRole:
    code: str
    field: str
    label: str
    price_label: str


# Order matters: it is the conflict scan order and the payment group priority.
STAFF_ROLES: tuple[StaffRole, ...] = (
    StaffRole("PT_CHINH", "primary_surgeon", "PT Chính", "Chính"),
    StaffRole("PT_PHU", "assistant_surgeon", "PT Phụ", "Phụ"),
    StaffRole("BS_GM", "anesthesiologist", "BS GM", "Chính"),
    StaffRole("KTV_GM", "anesthesia_technician", "KTV GM", "Phụ"),
    StaffRole("TDC", "equipment_operator", "TDC", "Phụ"),
    StaffRole("GV", "auxiliary", "GV", "Giúp việc"),
)
ROLES_BY_CODE = {role.code: role for role in STAFF_ROLES}


class MachineKey(NamedTuple):
    patient_id: str
    patient_name: str
    date: str
    procedure_name: str

    def legacy(self) -> str:
        """The dash-joined key the hospital exports used to print."""
        return "-".join(self)


@dataclass(frozen=True)
class SurgeryRecord:
    sequence: str
    patient_id: str
    patient_name: str
    gender: str
    year_of_birth: str
    insurance_card: str
    diagnosis_date: str
    start_text: str
    end_text: str
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    duration_minutes: int
    procedure_name: str
    surgery_tier: str
    procedure_tier: str
    procedure_type: str
    percentage: float
    raw_count: float
    quantity: float
    primary_surgeon: str
    assistant_surgeon: str
    anesthesiologist: str
    anesthesia_technician: str
    equipment_operator: str
    auxiliary: str
    machine_code: str
    machine_key: MachineKey

    @property
    def is_scheduled(self) -> bool:
        return self.start_time is not None and self.end_time is not None

    def staff(self, role: StaffRole) -> str:
        return getattr(self, role.field)

    def staffing(self) -> list[tuple[StaffRole, str]]:
        return [(role, self.staff(role)) for role in STAFF_ROLES if self.staff(role)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "sequence": self.sequence,
            "patient_id": self.patient_id,
            "patient_name": self.patient_name,
            "gender": self.gender,
            "year_of_birth": self.year_of_birth,
            "insurance_card": self.insurance_card,
            "diagnosis_date": self.diagnosis_date,
            "start": self.start_text,
            "end": self.end_text,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_minutes": self.duration_minutes,
            "procedure_name": self.procedure_name,
            "surgery_tier": self.surgery_tier,
            "procedure_tier": self.procedure_tier,
            "procedure_type": self.procedure_type,
            "quantity": self.quantity,
            **{role.field: self.staff(role) for role in STAFF_ROLES},
            "machine_code": self.machine_code,
            "machine_key": self.machine_key.legacy(),
        }
