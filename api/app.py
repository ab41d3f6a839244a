from __future__ import annotations
from contextlib import asynccontextmanager
from dataclasses import asdict
from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import logging, os, typing as t

# ---- Engine imports ----
from growth_core.engine import SessionController
from growth_core.errors import EngineError
from growth_core.config import RESPONSE_EXPORT_ENABLED, REAPER_INTERVAL_SEC, get_backend
from growth_core.session_store import SessionStore, Reaper
from growth_core.audit_export import to_json as responses_to_json, to_csv as responses_to_csv
from .storage import JsonFileRepository

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger(__name__)

STORE = SessionStore()
CONTROLLER = SessionController(JsonFileRepository(), STORE)
REAPER = Reaper(CONTROLLER.reap_expired, REAPER_INTERVAL_SEC)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    REAPER.start()
    try:
        yield
    finally:
        REAPER.stop()


app = FastAPI(title="Growth Assessment API", lifespan=lifespan)

ALLOWED_ORIGINS = [o for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",") if o]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)


@app.exception_handler(EngineError)
async def engine_error_handler(_request: Request, exc: EngineError):
    if exc.status >= 500:
        log.error("request failed: %s (%s)", exc.message, exc.code)
    return JSONResponse(status_code=exc.status, content=exc.to_dict())


# ---- Schemas ----
class StartReq(BaseModel):
    student_id: int
    subject_id: int
    period: str

class AssignmentStartReq(BaseModel):
    student_id: int

class AnswerReq(BaseModel):
    student_id: int
    question_id: int
    answer: t.Any = None

class GradeReq(BaseModel):
    student_id: int


# ---- Health ----
@app.get("/health")
def health():
    return {
        "status": "ok",
        "active_sessions": len(STORE),
        "grading_backend": get_backend(CONTROLLER.cfg) or "none",
        "grading_available": CONTROLLER.grader is not None,
    }


# ---- Sessions ----
@app.post("/assessments/start")
def start_assessment(req: StartReq):
    return asdict(CONTROLLER.start_session(req.student_id, req.subject_id, req.period))


@app.post("/assignments/{assignment_id}/start")
def start_assignment(assignment_id: int, req: AssignmentStartReq):
    return asdict(CONTROLLER.start_assignment(req.student_id, assignment_id))


@app.post("/assessments/{assessment_id}/answer")
def submit_answer(assessment_id: int, req: AnswerReq):
    res = CONTROLLER.submit_answer(req.student_id, assessment_id, req.question_id, req.answer)
    return asdict(res)


@app.get("/assessments/{assessment_id}/results")
def results(assessment_id: int, student_id: int = Query(...)):
    return CONTROLLER.results(student_id, assessment_id)


# ---- Student read side ----
@app.get("/students/{student_id}/subjects/{subject_id}/results")
def subject_results(student_id: int, subject_id: int):
    return {"results": CONTROLLER.subject_history(student_id, subject_id)}


@app.get("/students/{student_id}/subjects/{subject_id}/growth")
def subject_growth(student_id: int, subject_id: int):
    return {"points": CONTROLLER.growth(student_id, subject_id)}


@app.get("/students/{student_id}/assignments")
def student_assignments(student_id: int):
    return {"assignments": CONTROLLER.open_assignments(student_id)}


# ---- Response log export ----
def _export_rows(assessment_id: int, student_id: int):
    if not RESPONSE_EXPORT_ENABLED:
        raise HTTPException(404, "response export disabled")
    return CONTROLLER.responses_for(student_id, assessment_id)


@app.get("/assessments/{assessment_id}/responses.json")
def responses_json(assessment_id: int, student_id: int = Query(...)):
    rows = _export_rows(assessment_id, student_id)
    return {"assessment_id": assessment_id, **responses_to_json(rows)}


@app.get("/assessments/{assessment_id}/responses.csv")
def responses_csv(assessment_id: int, student_id: int = Query(...)):
    body = responses_to_csv(_export_rows(assessment_id, student_id))
    filename = f"assessment_{assessment_id}_responses.csv"
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=\"{filename}\""},
    )


# ---- Free-text grading ----
@app.post("/assessments/{assessment_id}/responses/{question_id}/grade")
def grade_response(assessment_id: int, question_id: int, req: GradeReq):
    return asdict(CONTROLLER.grade_response(req.student_id, assessment_id, question_id))
