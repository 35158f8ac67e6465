"""Normalize the model's structured answers into findings."""

import json
import logging
import math
from typing import Any, Optional, Union

from reviewpilot.llm.base import ProtocolError
from reviewpilot.models import Bug, MAX_TITLE_CHARS, SEVERITIES


logger = logging.getLogger(__name__)

_DECODER = json.JSONDecoder()


def extract_json_object(text: str, required_key: str) -> Optional[dict]:
    """Find the first JSON object in free text that has ``required_key``.

    Handles bare JSON, JSON inside markdown fences and JSON surrounded by
    prose. Returns None when nothing suitable is found.
    """
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        try:
            obj, _ = _DECODER.raw_decode(text[start:])
        except json.JSONDecodeError:
            obj = None
        if isinstance(obj, dict) and required_key in obj:
            return obj
        start = text.find("{", start + 1)
    return None


def to_line_number(value: Any) -> Optional[int]:
    """Positive integer line number, or None for anything unusable."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    try:
        if not math.isfinite(value):
            return None
    except OverflowError:
        return None
    n = math.floor(value)
    return n if n >= 1 else None


def validate_severity(value: Any) -> str:
    if isinstance(value, str) and value.lower() in SEVERITIES:
        return value.lower()
    return "info"


def _text(value: Any, default: str) -> str:
    if value is None or value == "":
        return default
    return str(value)


def normalize_bug(raw: dict, index: int) -> Bug:
    """Repair one loosely typed finding."""
    start = to_line_number(raw.get("startLine")) or 1
    end = to_line_number(raw.get("endLine")) or start
    fix_diff = raw.get("fixDiff")

    return Bug(
        id=f"bug-{index}",
        severity=validate_severity(raw.get("severity")),
        title=_text(raw.get("title"), "Unknown issue")[:MAX_TITLE_CHARS],
        file=_text(raw.get("file"), "unknown"),
        start_line=start,
        end_line=max(start, end),
        description=_text(raw.get("description"), "No description provided"),
        suggestion=_text(raw.get("suggestion"), "Review the code at this location"),
        fix_diff=fix_diff if isinstance(fix_diff, str) else "",
    )


def normalize_bugs(payload: Union[str, dict]) -> list[Bug]:
    """Turn a final-report payload into findings.

    Args:
        payload: The report tool's raw JSON arguments, or an already
            decoded object.

    Returns:
        Findings in the order the model reported them.

    Raises:
        ProtocolError: The payload is not JSON or has no ``bugs`` array.
    """
    if isinstance(payload, str):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            raise ProtocolError(
                "Failed to parse report_code_review arguments as JSON", preview=payload
            )
    else:
        data = payload

    if not isinstance(data, dict) or not isinstance(data.get("bugs"), list):
        raise ProtocolError('AI report is missing the "bugs" array', preview=json.dumps(data)[:400])

    bugs = []
    for raw in data["bugs"]:
        if not isinstance(raw, dict):
            logger.debug("Skipping non-object finding: %r", raw)
            continue
        bugs.append(normalize_bug(raw, len(bugs)))
    return bugs


def bugs_from_content(content: str) -> Optional[list[Bug]]:
    """Best-effort fallback for models that answer in prose.

    Returns:
        Findings, or None if the content holds no ``{"bugs": [...]}`` object.
    """
    obj = extract_json_object(content, "bugs")
    if obj is None or not isinstance(obj.get("bugs"), list):
        return None
    return normalize_bugs(obj)
