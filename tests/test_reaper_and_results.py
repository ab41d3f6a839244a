from __future__ import annotations

import pytest

from growth_core.errors import AssessmentNotFound
from growth_core.engine import _round_half_up
from tests.conftest import build_engine


def _run_to_completion(ctrl, student_id=1, period="Fall"):
    start = ctrl.start_session(student_id, 1, period)
    qid = start.question.id
    while True:
        res = ctrl.submit_answer(student_id, start.assessment_id, qid, 0)
        if res.completed:
            return start, res
        qid = res.question.id


def test_round_half_up():
    assert _round_half_up(200.5) == 201
    assert _round_half_up(200.49) == 200
    assert _round_half_up(220.0) == 220


def test_reap_finalizes_answered_and_drops_empty_sessions():
    ctrl, repo, store, clock = build_engine(time_limit=1)
    answered = ctrl.start_session(1, 1, "Fall")
    ctrl.submit_answer(1, answered.assessment_id, answered.question.id, 0)
    empty = ctrl.start_session(2, 1, "Fall")
    # the answer above did not terminate (limit not yet reached)
    assert len(store) == 2

    clock.advance(3 * 60)
    assert ctrl.reap_expired(grace_minutes=5) == []
    clock.advance(5 * 60)
    assert ctrl.reap_expired(grace_minutes=5) == [answered.assessment_id]
    assert len(store) == 0
    assert repo.get_assessment(answered.assessment_id).rit_score == 225
    assert not repo.get_assessment(empty.assessment_id).finalized


def test_results_report_includes_previous_score():
    ctrl, repo, store, clock = build_engine(max_questions=3)
    first, done1 = _run_to_completion(ctrl)
    clock.advance(60)
    second, done2 = _run_to_completion(ctrl, period="Winter")

    report = ctrl.results(1, second.assessment_id)
    stats = report["statistics"]
    assert stats["current_score"] == done2.final_score
    assert stats["previous_score"] == done1.final_score
    assert stats["total_questions"] == 3 and stats["correct_answers"] == 3
    assert stats["accuracy"] == 100
    assert [p["question_number"] for p in report["difficulty_progression"]] == [1, 2, 3]
    assert report["responses"][0]["options"] == ["A", "B", "C", "D"]
    assert report["assessment"]["period"] == "Winter"


def test_results_require_finalized_owned_assessment(engine):
    ctrl, repo, store, clock = engine
    start = ctrl.start_session(1, 1, "Fall")
    with pytest.raises(AssessmentNotFound):
        ctrl.results(1, start.assessment_id)
