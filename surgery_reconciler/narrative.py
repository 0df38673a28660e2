"""Optional prose summary of a run from an external text-generation API.

The summary is informational only. A missing API key or a failed request
returns a fixed message instead of raising, so a run never fails because of it.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)

API_KEY_ENV = "SURGERY_RECONCILER_API_KEY"
DEFAULT_MODEL = "gemini-2.5-flash"
ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
REQUEST_TIMEOUT_SECONDS = 60

MISSING_KEY_MESSAGE = "API key is missing. Unable to generate a narrative summary."
FAILURE_MESSAGE = "Failed to generate a narrative summary. Check the API configuration."
EMPTY_MESSAGE = "No narrative generated."


def build_prompt(payload: dict[str, Any]) -> str:
    stats = payload["stats"]
    conflict_lines = "\n".join(
        f"- {item['type']} conflict: {item['resource_name']} overlaps {item['overlap_minutes']} min "
        f"between {item['procedure_a']} and {item['procedure_b']}"
        for item in payload["conflicts"]
    ) or "- none"
    return (
        "You review operating-room activity for a hospital. Write a short report in Vietnamese "
        "(at most 200 words, bullet points, formal medical-administrative tone) covering: an overall "
        "assessment, staff double-booking, procedures missing a machine code, patient-safety risks, "
        "and 3-5 recommendations for staffing and equipment scheduling.\n\n"
        f"Reporting period: {payload['period']}\n"
        f"Total procedures: {stats['total_records']}\n"
        f"Total duration: {stats['total_duration_minutes']} minutes\n"
        f"Staff conflicts: {stats['staff_conflicts']}\n"
        f"Machine conflicts: {stats['machine_conflicts']}\n"
        f"Procedures missing a machine code: {stats['missing_machines']}\n\n"
        f"Representative conflicts:\n{conflict_lines}\n"
    )


def _extract_text(body: dict[str, Any]) -> str:
    for candidate in body.get("candidates") or []:
        parts = (candidate.get("content") or {}).get("parts") or []
        texts = [part.get("text", "") for part in parts if part.get("text")]
        if texts:
            return "".join(texts)
    return ""


def generate_narrative(
    payload: dict[str, Any],
    *,
    api_key: Optional[str] = None,
    model: str = DEFAULT_MODEL,
    session: Optional[requests.Session] = None,
) -> str:
    api_key = api_key or os.environ.get(API_KEY_ENV)
    if not api_key:
        return MISSING_KEY_MESSAGE

    http = session or requests.Session()
    try:
        response = http.post(
            ENDPOINT.format(model=model),
            params={"key": api_key},
            json={"contents": [{"parts": [{"text": build_prompt(payload)}]}]},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        body = response.json()
    except (requests.RequestException, ValueError) as exc:
        logger.warning("Narrative request failed: %s", exc)
        return FAILURE_MESSAGE
    return _extract_text(body) or EMPTY_MESSAGE
