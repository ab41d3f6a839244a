from __future__ import annotations

import json

from fastapi.testclient import TestClient

from growth_core.audit_export import to_csv, to_json
from growth_core.types import AssessmentResponse
from tests.test_api_endpoints import _finish, _reload_app, _seed


def test_export_helpers_normalize_rows():
    rows = [
        AssessmentResponse(1, 12, 2, "essay text, with comma", None, 240, 10.5),
        AssessmentResponse(1, 11, 1, "0", True, 225, 5.0),
    ]
    payload = to_json(rows)
    assert [r["question_order"] for r in payload["responses"]] == [1, 2]
    assert payload["responses"][1]["is_correct"] is None
    json.dumps(payload)

    lines = to_csv(rows).strip().splitlines()
    assert lines[0] == "assessment_id,question_order,question_id,question_difficulty,is_correct,submitted_answer,answered_at"
    assert lines[1].startswith("1,1,11,225,True,0,")
    assert lines[2] == '1,2,12,240,,"essay text, with comma",10.5'


def test_response_exports_available(tmp_path):
    _seed(tmp_path)
    _storage, app_module = _reload_app(tmp_path)
    client = TestClient(app_module.app)

    start = client.post("/assessments/start", json={"student_id": 1, "subject_id": 1, "period": "Fall"}).json()
    _finish(client, start)
    aid = start["assessment_id"]

    json_resp = client.get(f"/assessments/{aid}/responses.json", params={"student_id": 1})
    assert json_resp.status_code == 200
    body = json_resp.json()
    assert body["assessment_id"] == aid
    assert len(body["responses"]) == 3

    csv_resp = client.get(f"/assessments/{aid}/responses.csv", params={"student_id": 1})
    assert csv_resp.status_code == 200
    assert csv_resp.headers["content-type"].startswith("text/csv")
    csv_lines = [line for line in csv_resp.text.strip().splitlines() if line]
    assert len(csv_lines) == 4

    forbidden = client.get(f"/assessments/{aid}/responses.json", params={"student_id": 2})
    assert forbidden.status_code == 403


def test_response_exports_disabled(tmp_path, monkeypatch):
    monkeypatch.setenv("RESPONSE_EXPORT_ENABLED", "0")
    _seed(tmp_path)
    _storage, app_module = _reload_app(tmp_path)
    client = TestClient(app_module.app)

    assert client.get("/assessments/1/responses.json", params={"student_id": 1}).status_code == 404
    assert client.get("/assessments/1/responses.csv", params={"student_id": 1}).status_code == 404
    monkeypatch.delenv("RESPONSE_EXPORT_ENABLED")
    _reload_app(tmp_path)
