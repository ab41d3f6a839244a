"""Export an assessment's response log in JSON/CSV formats."""
from __future__ import annotations

from dataclasses import asdict, is_dataclass
from typing import Iterable, List, Dict, Any
import csv
import io

_FIELDS: tuple[str, ...] = (
    "assessment_id",
    "question_order",
    "question_id",
    "question_difficulty",
    "is_correct",
    "submitted_answer",
    "answered_at",
)


def _normalize_row(row: Any) -> Dict[str, Any]:
    data = asdict(row) if is_dataclass(row) else dict(row or {})
    out: Dict[str, Any] = {}
    for key in _FIELDS:
        val = data.get(key)
        if key in {"assessment_id", "question_order", "question_id", "question_difficulty"}:
            try:
                out[key] = int(val)
            except (TypeError, ValueError):
                out[key] = 0
        elif key == "answered_at":
            try:
                out[key] = float(val)
            except (TypeError, ValueError):
                out[key] = 0.0
        elif key == "is_correct":
            # free-text answers stay ungraded
            out[key] = None if val is None else bool(val)
        else:
            out[key] = "" if val is None else str(val)
    return out


def to_json(responses: Iterable[Any]) -> Dict[str, Any]:
    """Return a JSON-safe payload for the response log."""

    normalized: List[Dict[str, Any]] = [_normalize_row(r) for r in responses]
    normalized.sort(key=lambda r: r["question_order"])
    return {"responses": normalized}


def to_csv(responses: Iterable[Any]) -> str:
    """Render the response log as CSV with a fixed header."""

    normalized = sorted((_normalize_row(r) for r in responses), key=lambda r: r["question_order"])
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=_FIELDS)
    writer.writeheader()
    for row in normalized:
        if row["is_correct"] is None:
            row["is_correct"] = ""
        writer.writerow(row)
    return buf.getvalue()


__all__ = ["to_json", "to_csv"]
