from __future__ import annotations

import pytest

import growth_core.llm_bridge as bridge
from growth_core.errors import DuplicateSubmission, GradingUnavailable, ResponseNotFound
from growth_core.types import Question
from tests.conftest import build_engine, build_synthetic_pool


def _essay_engine(grader):
    pool = build_synthetic_pool(difficulties=[200, 250]) + [
        Question(id=50, subject_id=1, text="Why do leaves change colour?", question_type="Essay",
                 difficulty_level=225, grade_id=5, dok_level=3)
    ]
    ctrl, repo, store, clock = build_engine(pool=pool, grader=grader)
    start = ctrl.start_session(1, 1, "Fall")
    res = ctrl.submit_answer(1, start.assessment_id, 50, "Chlorophyll breaks down in autumn.")
    ctrl.submit_answer(1, start.assessment_id, res.question.id, 0)
    return ctrl, repo, start.assessment_id, res.question.id


def test_grade_response_records_verdict_without_touching_log():
    calls = []

    def fake(question, answer):
        calls.append((question.id, answer))
        return {"correct": 1, "reason": "Explains the mechanism."}

    ctrl, repo, aid, mcq_id = _essay_engine(fake)
    record = ctrl.grade_response(1, aid, 50)
    assert record.correct is True and record.reason == "Explains the mechanism."
    assert calls == [(50, "Chlorophyll breaks down in autumn.")]
    assert repo.list_grades(aid) == [record]
    essay_row = [r for r in repo.list_responses(aid) if r.question_id == 50][0]
    assert essay_row.is_correct is None, "grades live beside the response log"

    with pytest.raises(DuplicateSubmission):
        ctrl.grade_response(1, aid, 50)
    with pytest.raises(ResponseNotFound):
        ctrl.grade_response(1, aid, mcq_id)


def test_grade_response_without_backend():
    ctrl, repo, aid, _ = _essay_engine(None)
    assert ctrl.grader is None
    with pytest.raises(GradingUnavailable) as exc:
        ctrl.grade_response(1, aid, 50)
    assert exc.value.status == 503


def test_parse_verdict_accepts_fenced_json():
    out = bridge.parse_verdict('```json\n{"correct": 0, "reason": " Too shallow for DOK 3. "}\n```')
    assert out == {"correct": 0, "reason": "Too shallow for DOK 3."}


def test_parse_verdict_keyword_fallback():
    out = bridge.parse_verdict("The answer is acceptable and meets the bar.")
    assert out["correct"] == 1
    assert out["reason"].startswith("Grader response could not be parsed")
    assert bridge.parse_verdict('{"correct": 2, "reason": "x"}')["reason"].startswith("Grader response could not be parsed")
    assert bridge.parse_verdict("nope")["correct"] == 0


def test_build_prompt_mentions_dok_level():
    q = Question(id=1, subject_id=1, text="What is 2+2?", question_type="ShortAnswer", dok_level=1,
                 metadata={"description": "Answer with a number."})
    prompt = bridge.build_prompt(q, "4")
    assert "DOK Level: 1 - Recall and Reproduction" in prompt
    assert "Answer with a number." in prompt
    assert prompt.rstrip().endswith("level 4 needs explanation and application.")


def test_grade_free_text_uses_azure_call(monkeypatch):
    monkeypatch.setattr(bridge, "_grade_azure", lambda prompt: '{"correct": 1, "reason": "Right."}')
    q = Question(id=7, subject_id=1, text="Define photosynthesis", question_type="ShortAnswer", dok_level=2)
    assert bridge.grade_free_text(q, "Plants make food from light") == {"correct": 1, "reason": "Right."}


def test_grade_free_text_backend_failure(monkeypatch):
    def boom(prompt):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(bridge, "_grade_azure", boom)
    q = Question(id=7, subject_id=1, text="Define", question_type="ShortAnswer")
    with pytest.raises(GradingUnavailable):
        bridge.grade_free_text(q, "x")


def test_make_grader_respects_config(monkeypatch):
    assert bridge.make_grader({}) is None
    monkeypatch.setattr(bridge, "azure_configured", lambda: True)
    assert bridge.make_grader({"USE_LLM_GRADING": True, "LLM_BACKEND": "azure"}) is bridge.grade_free_text
    monkeypatch.setattr(bridge, "azure_configured", lambda: False)
    assert bridge.make_grader({"USE_LLM_GRADING": True, "LLM_BACKEND": "azure"}) is None
