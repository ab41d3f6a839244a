"""Question/assessment store used by the session controller.

``QuestionRepository`` is the contract the controller talks to; the real
deployment backs it with the relational store. ``InMemoryRepository`` keeps
every table in dicts behind one lock and is what tests and the JSON-file
store in ``api.storage`` build on.
"""

from __future__ import annotations

import random
import threading
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .errors import DuplicateSubmission
from .selection import find_closest
from .types import (
    Assessment,
    AssessmentConfig,
    AssessmentResponse,
    Assignment,
    GradeRecord,
    Question,
)


class QuestionRepository:
    def find_closest_question(
        self,
        subject_id: int,
        grade_id: Optional[int],
        target_difficulty: int,
        exclude_ids: Optional[Set[int]] = None,
        assessment_id: Optional[int] = None,
    ) -> Optional[Question]:
        raise NotImplementedError

    def get_used_question_ids(self, assessment_id: int) -> Set[int]:
        raise NotImplementedError

    def get_assessment_configuration(self, grade_id: Optional[int], subject_id: int) -> Optional[AssessmentConfig]:
        raise NotImplementedError

    def get_student_grade(self, student_id: int) -> Tuple[bool, Optional[int]]:
        raise NotImplementedError

    def latest_finalized_score(self, student_id: int, subject_id: int, year: int) -> Optional[int]:
        raise NotImplementedError

    def previous_finalized(self, student_id: int, subject_id: int, exclude_id: int) -> Optional[Assessment]:
        raise NotImplementedError

    def get_question(self, question_id: int) -> Optional[Question]:
        raise NotImplementedError

    def create_assessment(self, **fields) -> Assessment:
        raise NotImplementedError

    def get_assessment(self, assessment_id: int) -> Optional[Assessment]:
        raise NotImplementedError

    def save_assessment_result(
        self, assessment_id: int, rit_score: int, correct_answers: int, duration_minutes: int, completed_at: float
    ) -> Assessment:
        raise NotImplementedError

    def append_response(self, response: AssessmentResponse) -> None:
        raise NotImplementedError

    def list_responses(self, assessment_id: int) -> List[AssessmentResponse]:
        raise NotImplementedError

    def list_finalized(self, student_id: int, subject_id: int) -> List[Assessment]:
        raise NotImplementedError

    def get_assignment(self, assignment_id: int) -> Optional[Assignment]:
        raise NotImplementedError

    def list_assignments(self) -> List[Assignment]:
        raise NotImplementedError

    def manifest_order(self, assignment_id: int, question_id: int) -> Optional[int]:
        raise NotImplementedError

    def mark_assignment_completed(self, assignment_id: int, student_id: int, completed_at: float) -> None:
        raise NotImplementedError

    def append_grade(self, grade: GradeRecord) -> None:
        raise NotImplementedError

    def list_grades(self, assessment_id: int) -> List[GradeRecord]:
        raise NotImplementedError


class InMemoryRepository(QuestionRepository):
    def __init__(
        self,
        questions: Iterable[Question] = (),
        configurations: Iterable[AssessmentConfig] = (),
        students: Optional[Dict[int, Optional[int]]] = None,
        assignments: Iterable[Assignment] = (),
        rng: Optional[random.Random] = None,
    ) -> None:
        self._lock = threading.RLock()
        self.rng = rng or random.Random()
        self.questions: Dict[int, Question] = {q.id: q for q in questions}
        self.configurations: Dict[Tuple[Optional[int], int], AssessmentConfig] = {
            (c.grade_id, c.subject_id): c for c in configurations
        }
        self.students: Dict[int, Optional[int]] = dict(students or {})
        self.assignments: Dict[int, Assignment] = {a.id: a for a in assignments}
        self.assessments: Dict[int, Assessment] = {}
        self.responses: Dict[int, List[AssessmentResponse]] = {}
        self.grades: Dict[int, List[GradeRecord]] = {}
        self._next_assessment_id = 1

    # ---- questions ----------------------------------------------------------
    def get_question(self, question_id: int) -> Optional[Question]:
        return self.questions.get(question_id)

    def find_closest_question(self, subject_id, grade_id, target_difficulty, exclude_ids=None, assessment_id=None):
        with self._lock:
            responded = self.get_used_question_ids(assessment_id) if assessment_id is not None else set()
            return find_closest(
                list(self.questions.values()),
                subject_id=subject_id,
                grade_id=grade_id,
                target=target_difficulty,
                session_exclude=set(exclude_ids or ()),
                responded_ids=responded,
                rng=self.rng,
            )

    def get_used_question_ids(self, assessment_id: int) -> Set[int]:
        with self._lock:
            return {r.question_id for r in self.responses.get(assessment_id, [])}

    # ---- students / configuration -------------------------------------------
    def get_assessment_configuration(self, grade_id, subject_id):
        return self.configurations.get((grade_id, subject_id))

    def get_student_grade(self, student_id: int) -> Tuple[bool, Optional[int]]:
        if student_id not in self.students:
            return False, None
        return True, self.students[student_id]

    # ---- assessments --------------------------------------------------------
    def create_assessment(self, **fields) -> Assessment:
        with self._lock:
            aid = self._next_assessment_id
            self._next_assessment_id += 1
            assessment = Assessment(id=aid, **fields)
            self.assessments[aid] = assessment
            self.responses.setdefault(aid, [])
            return assessment

    def get_assessment(self, assessment_id: int) -> Optional[Assessment]:
        return self.assessments.get(assessment_id)

    def save_assessment_result(self, assessment_id, rit_score, correct_answers, duration_minutes, completed_at):
        with self._lock:
            updated = replace(
                self.assessments[assessment_id],
                rit_score=int(rit_score),
                correct_answers=int(correct_answers),
                duration_minutes=int(duration_minutes),
                completed_at=completed_at,
            )
            self.assessments[assessment_id] = updated
            return updated

    def list_finalized(self, student_id: int, subject_id: int) -> List[Assessment]:
        with self._lock:
            return self._finalized_for(student_id, subject_id)

    def _finalized_for(self, student_id: int, subject_id: int) -> List[Assessment]:
        rows = [
            a for a in self.assessments.values()
            if a.student_id == student_id and a.subject_id == subject_id and a.rit_score is not None
        ]
        rows.sort(key=lambda a: (a.completed_at or a.created_at, a.id), reverse=True)
        return rows

    def latest_finalized_score(self, student_id, subject_id, year):
        with self._lock:
            for a in self._finalized_for(student_id, subject_id):
                if a.year == year:
                    return a.rit_score
        return None

    def previous_finalized(self, student_id, subject_id, exclude_id):
        with self._lock:
            for a in self._finalized_for(student_id, subject_id):
                if a.id != exclude_id:
                    return a
        return None

    # ---- response log -------------------------------------------------------
    def append_response(self, response: AssessmentResponse) -> None:
        with self._lock:
            rows = self.responses.setdefault(response.assessment_id, [])
            for r in rows:
                if r.question_order == response.question_order or r.question_id == response.question_id:
                    raise DuplicateSubmission(
                        f"Question {response.question_id} (order {response.question_order}) "
                        f"already answered in assessment {response.assessment_id}"
                    )
            rows.append(response)

    def list_responses(self, assessment_id: int) -> List[AssessmentResponse]:
        with self._lock:
            return sorted(self.responses.get(assessment_id, []), key=lambda r: r.question_order)

    # ---- assignments --------------------------------------------------------
    def get_assignment(self, assignment_id: int) -> Optional[Assignment]:
        return self.assignments.get(assignment_id)

    def list_assignments(self) -> List[Assignment]:
        with self._lock:
            return list(self.assignments.values())

    def manifest_order(self, assignment_id: int, question_id: int) -> Optional[int]:
        assignment = self.assignments.get(assignment_id)
        if assignment is None:
            return None
        for entry in assignment.manifest:
            if entry.question_id == question_id:
                return entry.question_order
        return None

    def mark_assignment_completed(self, assignment_id, student_id, completed_at):
        with self._lock:
            assignment = self.assignments.get(assignment_id)
            if assignment is None:
                return
            row = assignment.students.setdefault(student_id, {})
            row["is_completed"] = True
            row["completed_at"] = completed_at

    # ---- free-text grades ---------------------------------------------------
    def append_grade(self, grade: GradeRecord) -> None:
        with self._lock:
            rows = self.grades.setdefault(grade.assessment_id, [])
            if any(g.question_id == grade.question_id for g in rows):
                raise DuplicateSubmission(
                    f"Response for question {grade.question_id} already graded"
                )
            rows.append(grade)

    def list_grades(self, assessment_id: int) -> List[GradeRecord]:
        with self._lock:
            return list(self.grades.get(assessment_id, []))
