"""JSON-file persistence for the assessment tables.

The production deployment should ideally swap this module for a proper
database-backed implementation.  For now every table lives in one JSON file
under ``DATA_DIR`` so finalized scores, response logs and assignment
completion survive restarts.  In-progress adaptive sessions are never written
here; they live only in the process.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List

from growth_core.errors import StorageFailure
from growth_core.question_bank import question_from_dict
from growth_core.repository import InMemoryRepository
from growth_core.types import (
    Assessment,
    AssessmentConfig,
    AssessmentResponse,
    Assignment,
    GradeRecord,
    ManifestEntry,
)


log = logging.getLogger(__name__)

DATA_ROOT = Path(os.getenv("DATA_DIR", "data")).resolve()
QUESTIONS_PATH = DATA_ROOT / "questions.json"
STUDENTS_PATH = DATA_ROOT / "students.json"
CONFIGURATIONS_PATH = DATA_ROOT / "configurations.json"
ASSIGNMENTS_PATH = DATA_ROOT / "assignments.json"
ASSESSMENTS_PATH = DATA_ROOT / "assessments.json"
RESPONSES_PATH = DATA_ROOT / "responses.json"
GRADES_PATH = DATA_ROOT / "grades.json"

_LOCK = threading.Lock()


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except ValueError as e:
        log.error("corrupt table %s: %s", path, e)
        raise StorageFailure(f"could not parse {path.name}: {e}") from e
    except OSError as e:
        raise StorageFailure(f"could not read {path.name}: {e}") from e


def _write_json(path: Path, payload: Any) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(path)
    except OSError as e:
        raise StorageFailure(f"could not write {path.name}: {e}") from e


def _assignment_from_dict(raw: Dict[str, Any]) -> Assignment:
    data = dict(raw)
    data["manifest"] = [ManifestEntry(**m) for m in raw.get("manifest", [])]
    data["students"] = {int(k): dict(v) for k, v in (raw.get("students") or {}).items()}
    return Assignment(**data)


def _grouped(rows: List[Dict[str, Any]], cls) -> Dict[int, list]:
    out: Dict[int, list] = {}
    for r in rows:
        out.setdefault(int(r["assessment_id"]), []).append(cls(**r))
    return out


class JsonFileRepository(InMemoryRepository):
    """``InMemoryRepository`` that writes each mutated table back to disk."""

    def __init__(self, **kwargs: Any) -> None:
        students = {int(k): v for k, v in _read_json(STUDENTS_PATH, {}).items()}
        super().__init__(
            questions=[question_from_dict(q) for q in _read_json(QUESTIONS_PATH, [])],
            configurations=[AssessmentConfig(**c) for c in _read_json(CONFIGURATIONS_PATH, [])],
            students=students,
            assignments=[_assignment_from_dict(a) for a in _read_json(ASSIGNMENTS_PATH, [])],
            **kwargs,
        )
        for row in _read_json(ASSESSMENTS_PATH, []):
            a = Assessment(**row)
            self.assessments[a.id] = a
        self.responses.update(_grouped(_read_json(RESPONSES_PATH, []), AssessmentResponse))
        self.grades.update(_grouped(_read_json(GRADES_PATH, []), GradeRecord))
        self._next_assessment_id = max(self.assessments, default=0) + 1
        log.info(
            "loaded %d questions, %d assessments from %s",
            len(self.questions), len(self.assessments), DATA_ROOT,
        )

    # ---- flush helpers ------------------------------------------------------
    def _flush_assessments(self) -> None:
        with _LOCK:
            _write_json(ASSESSMENTS_PATH, [asdict(a) for a in sorted(self.assessments.values(), key=lambda a: a.id)])

    def _flush_responses(self) -> None:
        rows = [asdict(r) for aid in sorted(self.responses) for r in self.responses[aid]]
        with _LOCK:
            _write_json(RESPONSES_PATH, rows)

    def _flush_grades(self) -> None:
        rows = [asdict(g) for aid in sorted(self.grades) for g in self.grades[aid]]
        with _LOCK:
            _write_json(GRADES_PATH, rows)

    def _flush_assignments(self) -> None:
        with _LOCK:
            _write_json(ASSIGNMENTS_PATH, [asdict(a) for a in self.assignments.values()])

    # ---- persisted mutations ------------------------------------------------
    def create_assessment(self, **fields) -> Assessment:
        with self._lock:
            a = super().create_assessment(**fields)
            self._flush_assessments()
            return a

    def save_assessment_result(self, assessment_id, rit_score, correct_answers, duration_minutes, completed_at):
        with self._lock:
            a = super().save_assessment_result(assessment_id, rit_score, correct_answers, duration_minutes, completed_at)
            self._flush_assessments()
            return a

    def append_response(self, response: AssessmentResponse) -> None:
        with self._lock:
            super().append_response(response)
            try:
                self._flush_responses()
            except StorageFailure:
                self.responses[response.assessment_id].remove(response)
                raise

    def mark_assignment_completed(self, assignment_id, student_id, completed_at):
        with self._lock:
            super().mark_assignment_completed(assignment_id, student_id, completed_at)
            self._flush_assignments()

    def append_grade(self, grade: GradeRecord) -> None:
        with self._lock:
            super().append_grade(grade)
            self._flush_grades()
