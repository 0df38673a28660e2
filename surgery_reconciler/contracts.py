"""Versioned JSON contracts for surgery-reconciler outputs.

Every document carries a ``contract`` block and a ``run_summary``. The run
summary names the two reports by their role (list/detail) and the reporting
period they cover, so a summary read on its own identifies the run.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from surgery_reconciler import __version__ as TOOL_VERSION

TOOL_NAME = "surgery-reconciler"

CONTRACT_VERSIONS = {
    "reconcile.result": "1.0.0",
    "reconcile.validation": "1.0.0",
    "reconcile.narrative": "1.0.0",
}


def generated_at() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_contract(name: str) -> dict[str, str]:
    if name not in CONTRACT_VERSIONS:
        raise KeyError(f"Unknown contract '{name}'. Known: {sorted(CONTRACT_VERSIONS)}")
    return {"name": name, "version": CONTRACT_VERSIONS[name]}


def _path_text(path: Optional[Path]) -> Optional[str]:
    return str(path) if path is not None else None


def build_run_summary(
    step: str,
    *,
    list_path: Optional[Path] = None,
    detail_path: Optional[Path] = None,
    period: Optional[str] = None,
    status: str = "ok",
    output_path: Optional[Path] = None,
    metrics: Optional[dict[str, Any]] = None,
    warnings: Optional[list[str]] = None,
) -> dict[str, Any]:
    warnings = list(warnings or [])
    return {
        "tool": TOOL_NAME,
        "tool_version": TOOL_VERSION,
        "step": step,
        "status": status,
        "generated_at": generated_at(),
        "period": period,
        "reports": {"list": _path_text(list_path), "detail": _path_text(detail_path)},
        "output_file": _path_text(output_path),
        "warnings": warnings,
        "warnings_count": len(warnings),
        "metrics": dict(metrics or {}),
    }
