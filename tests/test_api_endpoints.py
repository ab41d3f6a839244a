from __future__ import annotations

import importlib
import json
import os
import sys

from fastapi.testclient import TestClient

from growth_core.question_bank import question_to_dict
from tests.conftest import build_synthetic_pool


_DEF_MODULES = [
    "growth_core.config",
    "api.storage",
    "api.app",
]


def _seed(data_dir, max_questions: int = 3) -> None:
    data_dir.mkdir(parents=True, exist_ok=True)
    tables = {
        "questions.json": [question_to_dict(q) for q in build_synthetic_pool()],
        "students.json": {"1": 5, "2": 5},
        "configurations.json": [
            {"grade_id": 5, "subject_id": 1, "time_limit_minutes": 30, "max_questions": max_questions}
        ],
        "assignments.json": [
            {
                "id": 7, "name": "Quiz", "subject_id": 1, "grade_id": 5, "mode": "Standard",
                "time_limit_minutes": 15, "total_questions": 2,
                "manifest": [{"question_id": 4, "question_order": 1}, {"question_id": 9, "question_order": 2}],
                "students": {"1": {"is_completed": False}},
            }
        ],
    }
    for name, payload in tables.items():
        (data_dir / name).write_text(json.dumps(payload), encoding="utf-8")


def _reload_app(tmp_path) -> tuple[object, object]:
    os.environ["DATA_DIR"] = str(tmp_path)
    for name in _DEF_MODULES:
        if name in sys.modules:
            importlib.reload(sys.modules[name])
        else:
            __import__(name)
    storage = sys.modules["api.storage"]
    app_module = sys.modules["api.app"]
    return storage, app_module


def _finish(client, start_body) -> dict:
    aid = start_body["assessment_id"]
    qid = start_body["question"]["id"]
    while True:
        resp = client.post(f"/assessments/{aid}/answer", json={"student_id": 1, "question_id": qid, "answer": 0})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        if body["completed"]:
            return body
        qid = body["question"]["id"]


def test_adaptive_flow_over_http(tmp_path):
    _seed(tmp_path)
    storage, app_module = _reload_app(tmp_path)
    client = TestClient(app_module.app)

    assert client.get("/health").json()["status"] == "ok"

    start = client.post("/assessments/start", json={"student_id": 1, "subject_id": 1, "period": "Fall"})
    assert start.status_code == 200, start.text
    body = start.json()
    assert body["mode"] == "Adaptive" and body["question"]["question_number"] == 1
    assert "correct_option_index" not in body["question"], "answers never leak to the client"

    done = _finish(client, body)
    assert done["final_score"] >= 225 and done["correct_answers"] == 3
    assert "Growth Metric score" in done["message"]

    aid = body["assessment_id"]
    results = client.get(f"/assessments/{aid}/results", params={"student_id": 1})
    assert results.status_code == 200
    assert results.json()["statistics"]["current_score"] == done["final_score"]

    saved = json.loads((tmp_path / "assessments.json").read_text(encoding="utf-8"))
    assert saved[0]["rit_score"] == done["final_score"]


def test_error_bodies_carry_codes(tmp_path):
    _seed(tmp_path)
    _storage, app_module = _reload_app(tmp_path)
    client = TestClient(app_module.app)

    bad_period = client.post("/assessments/start", json={"student_id": 1, "subject_id": 1, "period": "Summer"})
    assert bad_period.status_code == 400
    assert bad_period.json()["code"] == "INVALID_PERIOD"

    missing = client.post("/assessments/999/answer", json={"student_id": 1, "question_id": 1, "answer": 0})
    assert missing.status_code == 404
    assert missing.json() == {"error": "Assessment not found", "code": "ASSESSMENT_NOT_FOUND"}

    start = client.post("/assessments/start", json={"student_id": 1, "subject_id": 1, "period": "Fall"}).json()
    aid, qid = start["assessment_id"], start["question"]["id"]
    other = client.post(f"/assessments/{aid}/answer", json={"student_id": 2, "question_id": qid, "answer": 0})
    assert other.status_code == 403 and other.json()["code"] == "UNAUTHORIZED"

    bad = client.post(f"/assessments/{aid}/answer", json={"student_id": 1, "question_id": qid, "answer": "x"})
    assert bad.status_code == 400 and bad.json()["code"] == "INVALID_MCQ_ANSWER"

    ok = client.post(f"/assessments/{aid}/answer", json={"student_id": 1, "question_id": qid, "answer": 0})
    assert ok.status_code == 200
    dup = client.post(f"/assessments/{aid}/answer", json={"student_id": 1, "question_id": qid, "answer": 0})
    assert dup.status_code == 409 and dup.json()["code"] == "DUPLICATE_SUBMISSION"

    grade = client.post(f"/assessments/{aid}/responses/{qid}/grade", json={"student_id": 1})
    assert grade.status_code == 404 and grade.json()["code"] == "RESPONSE_NOT_FOUND"


def test_standard_assignment_over_http(tmp_path):
    _seed(tmp_path)
    _storage, app_module = _reload_app(tmp_path)
    client = TestClient(app_module.app)

    start = client.post("/assignments/7/start", json={"student_id": 1})
    assert start.status_code == 200, start.text
    body = start.json()
    assert [q["id"] for q in body["all_questions"]] == [4, 9]
    aid = body["assessment_id"]

    first = client.post(f"/assessments/{aid}/answer", json={"student_id": 1, "question_id": 4, "answer": 0}).json()
    assert first["completed"] is False and first["question"] is None
    last = client.post(f"/assessments/{aid}/answer", json={"student_id": 1, "question_id": 9, "answer": 2}).json()
    assert last["completed"] is True and last["correct_answers"] == 1

    again = client.post("/assignments/7/start", json={"student_id": 1})
    assert again.status_code == 400 and again.json()["code"] == "ALREADY_COMPLETED"
    saved = json.loads((tmp_path / "assignments.json").read_text(encoding="utf-8"))
    assert saved[0]["students"]["1"]["is_completed"] is True


def test_student_read_routes(tmp_path):
    _seed(tmp_path)
    _storage, app_module = _reload_app(tmp_path)
    client = TestClient(app_module.app)

    start = client.post("/assessments/start", json={"student_id": 1, "subject_id": 1, "period": "Fall"}).json()
    done = _finish(client, start)

    history = client.get("/students/1/subjects/1/results").json()["results"]
    assert [r["score"] for r in history] == [done["final_score"]]
    growth = client.get("/students/1/subjects/1/growth").json()["points"]
    assert growth[0]["assessment_id"] == start["assessment_id"]

    listed = client.get("/students/1/assignments").json()["assignments"]
    assert [a["id"] for a in listed] == [7]
    missing = client.get("/students/42/assignments")
    assert missing.status_code == 404 and missing.json()["code"] == "STUDENT_NOT_FOUND"
