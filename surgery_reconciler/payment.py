"""Per-staff payment pivot.

Each typed record credits its quantity to every staffed role under the column
``"{procedure_type}-{price_label}"``. The anesthesiologist is paid at the
"Chính" rate and the anesthesia technician at the "Phụ" rate, independent of
the surgical roles on the same record.

The 27-column space (9 procedure types x 3 price labels) is pruned to the
columns that actually carry quantity in this run, so callers must read
``PaymentTable.columns`` instead of assuming a fixed layout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from surgery_reconciler.config import PRICE_ROLES, PROCEDURE_TYPES, ProcessingConfig
from surgery_reconciler.models import STAFF_ROLES, StaffRole, SurgeryRecord

logger = logging.getLogger(__name__)

ALL_COLUMNS: tuple[str, ...] = tuple(
    f"{procedure_type}-{price_label}" for procedure_type in PROCEDURE_TYPES for price_label in PRICE_ROLES
)


def column_key(procedure_type: str, price_label: str) -> str:
    return f"{procedure_type}-{price_label}"


def split_column_key(key: str) -> tuple[str, str]:
    procedure_type, _, price_label = key.partition("-")
    return procedure_type, price_label


@dataclass
class PaymentRow:
    name: str
    role_group: StaffRole
    values: dict[str, float] = field(default_factory=dict)
    amounts: dict[str, float] = field(default_factory=dict)

    @property
    def total_quantity(self) -> float:
        return sum(self.values.values())

    @property
    def total_amount(self) -> float:
        return sum(self.amounts.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "role_group": self.role_group.label,
            "values": dict(self.values),
            "amounts": dict(self.amounts),
            "total_quantity": self.total_quantity,
            "total_amount": self.total_amount,
        }


@dataclass
class PaymentTable:
    columns: list[str]
    rows: list[PaymentRow]
    unit_prices: dict[str, float]

    @property
    def column_totals(self) -> dict[str, float]:
        return {key: sum(row.values.get(key, 0.0) for row in self.rows) for key in self.columns}

    @property
    def column_amounts(self) -> dict[str, float]:
        return {key: sum(row.amounts.get(key, 0.0) for row in self.rows) for key in self.columns}

    @property
    def grand_total(self) -> float:
        return sum(row.total_amount for row in self.rows)

    def groups(self) -> list[tuple[StaffRole, list[PaymentRow]]]:
        grouped: list[tuple[StaffRole, list[PaymentRow]]] = []
        for row in self.rows:
            if not grouped or grouped[-1][0] != row.role_group:
                grouped.append((row.role_group, []))
            grouped[-1][1].append(row)
        return grouped

    def to_dict(self) -> dict[str, Any]:
        return {
            "columns": list(self.columns),
            "unit_prices": dict(self.unit_prices),
            "rows": [row.to_dict() for row in self.rows],
            "column_totals": self.column_totals,
            "column_amounts": self.column_amounts,
            "grand_total": self.grand_total,
        }


def _group_rank(config: ProcessingConfig) -> dict[str, tuple[int, int]]:
    """Sort rank per role code; equal configured ranks fall back to the fixed role order."""
    return {
        role.code: (config.role_order.get(role.label, idx), idx)
        for idx, role in enumerate(STAFF_ROLES, start=1)
    }


def aggregate_payments(records: Sequence[SurgeryRecord], config: ProcessingConfig) -> PaymentTable:
    buckets: dict[str, dict[str, float]] = {}
    # name -> (first-appearance sequence, role of first appearance)
    first_seen: dict[str, tuple[int, StaffRole]] = {}

    for record in records:
        if not record.procedure_type:
            continue
        for role, name in record.staffing():
            if name not in first_seen:
                first_seen[name] = (len(first_seen), role)
            key = column_key(record.procedure_type, role.price_label)
            bucket = buckets.setdefault(name, {})
            bucket[key] = bucket.get(key, 0.0) + record.quantity

    columns = [
        key for key in ALL_COLUMNS
        if sum(bucket.get(key, 0.0) for bucket in buckets.values()) != 0
    ]
    unit_prices = {key: config.unit_price(*split_column_key(key)) for key in columns}

    rank = _group_rank(config)
    ordered_names = sorted(first_seen, key=lambda name: (rank[first_seen[name][1].code], first_seen[name][0]))

    rows = []
    for name in ordered_names:
        bucket = buckets[name]
        values = {key: bucket.get(key, 0.0) for key in columns}
        amounts = {key: values[key] * unit_prices[key] for key in columns}
        rows.append(PaymentRow(name=name, role_group=first_seen[name][1], values=values, amounts=amounts))

    table = PaymentTable(columns=columns, rows=rows, unit_prices=unit_prices)
    logger.debug("Payment table: %d staff rows, %d of %d columns kept", len(rows), len(columns), len(ALL_COLUMNS))
    return table
