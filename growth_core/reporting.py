# growth_core/reporting.py
from __future__ import annotations
import json
from typing import Any, Callable, Dict, Iterable, List, Optional

from .types import Assessment, AssessmentResponse, GradeRecord, Question


def _options(q: Optional[Question]) -> List[Any]:
    if q is None or q.options is None:
        return []
    if isinstance(q.options, str):
        try:
            return json.loads(q.options)
        except ValueError:
            return []
    return list(q.options)


def _correct_answer(q: Optional[Question]) -> Any:
    if q is None:
        return None
    if q.correct_answer is not None:
        try:
            return json.loads(q.correct_answer)
        except ValueError:
            return q.correct_answer
    return q.correct_option_index


def difficulty_progression(responses: Iterable[AssessmentResponse]) -> List[Dict[str, Any]]:
    return [
        {"question_number": r.question_order, "difficulty": r.question_difficulty, "is_correct": r.is_correct}
        for r in responses
    ]


def build_results(
    assessment: Assessment,
    responses: List[AssessmentResponse],
    lookup: Callable[[int], Optional[Question]],
    previous: Optional[Assessment] = None,
    grades: Iterable[GradeRecord] = (),
) -> Dict[str, Any]:
    """Summary of a finalized assessment: statistics, per-item rows, difficulty path.

    Free-text items carry ``is_correct=None``; an external grade, when one was
    recorded, is reported beside it and never folded into the statistics.
    """

    graded = {g.question_id: g for g in grades}
    answered = len(responses)
    correct = int(assessment.correct_answers or 0)
    rows = []
    for r in responses:
        q = lookup(r.question_id)
        g = graded.get(r.question_id)
        rows.append({
            "question_number": r.question_order,
            "question_id": r.question_id,
            "question_type": q.question_type if q else None,
            "question_text": q.text if q else "",
            "options": _options(q),
            "submitted_answer": r.submitted_answer,
            "correct_answer": _correct_answer(q),
            "is_correct": r.is_correct,
            "difficulty": r.question_difficulty,
            "grade": {"correct": g.correct, "reason": g.reason} if g else None,
        })

    previous_score = previous.rit_score if previous is not None else None
    return {
        "assessment": {
            "id": assessment.id,
            "subject_id": assessment.subject_id,
            "period": assessment.period,
            "year": assessment.year,
            "mode": assessment.mode,
            "assignment_id": assessment.assignment_id,
            "completed_at": assessment.completed_at,
            "duration_minutes": assessment.duration_minutes,
        },
        "statistics": {
            "total_questions": answered,
            "correct_answers": correct,
            "incorrect_answers": answered - correct,
            "current_score": assessment.rit_score,
            "previous_score": previous_score,
            "growth": (assessment.rit_score - previous_score) if previous_score is not None else None,
            "accuracy": round(100.0 * correct / answered) if answered else 0,
        },
        "responses": rows,
        "difficulty_progression": difficulty_progression(responses),
        "previous_assessment": None if previous is None else {
            "id": previous.id,
            "score": previous.rit_score,
            "period": previous.period,
            "year": previous.year,
            "completed_at": previous.completed_at,
        },
    }


_HISTORY_ORDER = {"Fall": 1, "Winter": 2, "Spring": 3}
# growth charts run Winter, Spring, Fall within a calendar year
_GROWTH_ORDER = {"Winter": 1, "Spring": 2, "Fall": 3}


def _summary(a: Assessment) -> Dict[str, Any]:
    return {
        "assessment_id": a.id,
        "period": a.period,
        "year": a.year,
        "score": a.rit_score,
        "correct_answers": a.correct_answers,
        "total_questions": a.total_questions,
        "duration_minutes": a.duration_minutes,
        "completed_at": a.completed_at,
    }


def subject_history(finalized: Iterable[Assessment]) -> List[Dict[str, Any]]:
    """Every finalized attempt, newest year first."""
    rows = sorted(finalized, key=lambda a: -(a.completed_at or a.created_at))
    rows.sort(key=lambda a: (-a.year, _HISTORY_ORDER.get(a.period, 9)))
    return [_summary(a) for a in rows]


def growth_over_time(finalized: Iterable[Assessment]) -> List[Dict[str, Any]]:
    """Latest score per (year, period), oldest first."""
    latest: Dict[tuple, Assessment] = {}
    for a in finalized:
        key = (a.year, a.period)
        cur = latest.get(key)
        if cur is None or (a.completed_at or 0, a.id) > (cur.completed_at or 0, cur.id):
            latest[key] = a
    ordered = sorted(latest.values(), key=lambda a: (a.year, _GROWTH_ORDER.get(a.period, 9)))
    return [
        {"label": f"{a.period} {a.year}", "period": a.period, "year": a.year,
         "score": a.rit_score, "assessment_id": a.id}
        for a in ordered
    ]
