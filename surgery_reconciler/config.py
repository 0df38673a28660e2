"""Price, time-norm and ignore-list configuration.

The pipeline receives one ``ProcessingConfig`` per run and never mutates it.
Persisted settings are plain JSON; ``load_config`` merges them over the
defaults per procedure type so a partial file never drops a price.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

PROCEDURE_TYPES = ("PĐB", "P1", "P2", "P3", "TĐB", "T1", "T2", "T3", "TKPL")
PRICE_ROLES = ("Chính", "Phụ", "Giúp việc")

DEFAULT_PRICE_CONFIG: dict[str, dict[str, float]] = {
    "PĐB": {"Chính": 280000, "Phụ": 200000, "Giúp việc": 120000},
    "P1": {"Chính": 125000, "Phụ": 90000, "Giúp việc": 70000},
    "P2": {"Chính": 65000, "Phụ": 50000, "Giúp việc": 30000},
    "P3": {"Chính": 50000, "Phụ": 30000, "Giúp việc": 15000},
    "TĐB": {"Chính": 84000, "Phụ": 60000, "Giúp việc": 36000},
    "T1": {"Chính": 37500, "Phụ": 27000, "Giúp việc": 21000},
    "T2": {"Chính": 19500, "Phụ": 15000, "Giúp việc": 9000},
    "T3": {"Chính": 15000, "Phụ": 9000, "Giúp việc": 4500},
    "TKPL": {"Chính": 0, "Phụ": 0, "Giúp việc": 0},
}

DEFAULT_TIME_RULES: dict[str, dict[str, int]] = {
    "PĐB": {"min": 180, "max": 240},
    "P1": {"min": 120, "max": 180},
    "P2": {"min": 60, "max": 180},
    "P3": {"min": 60, "max": 120},
    "TĐB": {"min": 180, "max": 240},
    "T1": {"min": 120, "max": 180},
    "T2": {"min": 60, "max": 180},
    "T3": {"min": 60, "max": 120},
    "TKPL": {"min": 0, "max": 0},
}

# Display labels for the six staffing slots, in payment-table group order.
DEFAULT_ROLE_ORDER: dict[str, int] = {
    "PT Chính": 1,
    "PT Phụ": 2,
    "BS GM": 3,
    "KTV GM": 4,
    "TDC": 5,
    "GV": 6,
}


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ProcessingConfig:
    price_config: Mapping[str, Mapping[str, float]] = field(
        default_factory=lambda: copy.deepcopy(DEFAULT_PRICE_CONFIG)
    )
    time_rules: Mapping[str, Mapping[str, int]] = field(
        default_factory=lambda: copy.deepcopy(DEFAULT_TIME_RULES)
    )
    ignored_machine_names: tuple[str, ...] = ()
    role_order: Mapping[str, int] = field(default_factory=lambda: dict(DEFAULT_ROLE_ORDER))

    def unit_price(self, procedure_type: str, role_label: str) -> float:
        prices = self.price_config.get(procedure_type) or {}
        value = prices.get(role_label)
        return float(value) if value is not None else 0.0

    def time_rule(self, procedure_type: str) -> tuple[int, int] | None:
        rule = self.time_rules.get(procedure_type)
        if not rule:
            return None
        return int(rule.get("min", 0) or 0), int(rule.get("max", 0) or 0)

    def is_machine_exempt(self, procedure_name: str) -> bool:
        return any(token and token in procedure_name for token in self.ignored_machine_names)

    def to_dict(self) -> dict[str, Any]:
        return {
            "price_config": {key: dict(value) for key, value in self.price_config.items()},
            "time_rules": {key: dict(value) for key, value in self.time_rules.items()},
            "ignored_machine_names": list(self.ignored_machine_names),
            "role_order": dict(self.role_order),
        }


def _pick(payload: Mapping[str, Any], *keys: str):
    for key in keys:
        if key in payload:
            return payload[key]
    return None


def _merge_nested(defaults: Mapping[str, Mapping], overrides, label: str) -> dict[str, dict]:
    merged = copy.deepcopy({key: dict(value) for key, value in defaults.items()})
    if overrides is None:
        return merged
    if not isinstance(overrides, Mapping):
        raise ConfigError(f"'{label}' must be an object keyed by procedure type")
    for key, value in overrides.items():
        if not value:
            continue
        if not isinstance(value, Mapping):
            raise ConfigError(f"'{label}.{key}' must be an object")
        for inner_key, inner_value in value.items():
            if not isinstance(inner_value, (int, float)) or isinstance(inner_value, bool):
                raise ConfigError(f"'{label}.{key}.{inner_key}' must be a number, got {inner_value!r}")
        merged[key] = {**merged.get(key, {}), **dict(value)}
    return merged


def config_from_mapping(payload: Mapping[str, Any]) -> ProcessingConfig:
    if not isinstance(payload, Mapping):
        raise ConfigError("Configuration root must be a JSON object")

    ignored = _pick(payload, "ignored_machine_names", "ignoredMachineNames", "ignoredMachineCodes")
    if ignored is None:
        ignored = []
    if not isinstance(ignored, list) or not all(isinstance(item, str) for item in ignored):
        raise ConfigError("'ignored_machine_names' must be a list of strings")

    role_order = _pick(payload, "role_order", "roleOrder")
    if role_order is not None:
        if not isinstance(role_order, Mapping):
            raise ConfigError("'role_order' must be an object")
        for label, rank in role_order.items():
            if label not in DEFAULT_ROLE_ORDER:
                raise ConfigError(f"'role_order.{label}' is not a staff role; expected one of {list(DEFAULT_ROLE_ORDER)}")
            if not isinstance(rank, int) or isinstance(rank, bool):
                raise ConfigError(f"'role_order.{label}' must be an integer, got {rank!r}")

    return ProcessingConfig(
        price_config=_merge_nested(DEFAULT_PRICE_CONFIG, _pick(payload, "price_config", "priceConfig"), "price_config"),
        time_rules=_merge_nested(DEFAULT_TIME_RULES, _pick(payload, "time_rules", "timeRules"), "time_rules"),
        ignored_machine_names=tuple(item.strip() for item in ignored if item.strip()),
        role_order={**DEFAULT_ROLE_ORDER, **dict(role_order or {})},
    )


def load_config(path: "str | Path | None") -> ProcessingConfig:
    if path is None:
        return ProcessingConfig()
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    if path.suffix.lower() != ".json":
        raise ConfigError(f"Unsupported config format '{path.suffix}'. Use a .json file.")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid config JSON: {exc}") from exc
    return config_from_mapping(payload)


def default_config_payload() -> dict[str, Any]:
    return ProcessingConfig().to_dict()
