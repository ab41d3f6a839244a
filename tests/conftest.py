from __future__ import annotations

import random
from datetime import datetime, timezone

import pytest

from growth_core.engine import SessionController
from growth_core.repository import InMemoryRepository
from growth_core.session_store import SessionStore
from growth_core.types import AssessmentConfig, Question

SUBJECT_ID = 1
GRADE_ID = 5


class FakeClock:
    """Manually advanced wall clock (epoch seconds)."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    @property
    def year(self) -> int:
        return datetime.fromtimestamp(self.now, tz=timezone.utc).year


def build_synthetic_pool(
    *,
    difficulties=range(100, 351, 5),
    subject_id: int = SUBJECT_ID,
    grade_id: int | None = GRADE_ID,
    start_id: int = 1,
) -> list[Question]:
    """Deterministic MCQ pool, one question per difficulty; option 0 is correct."""

    return [
        Question(
            id=start_id + idx,
            subject_id=subject_id,
            text=f"Question at {diff}",
            options=["A", "B", "C", "D"],
            question_type="MCQ",
            correct_option_index=0,
            difficulty_level=diff,
            grade_id=grade_id,
        )
        for idx, diff in enumerate(difficulties)
    ]


def build_engine(
    *,
    pool: list[Question] | None = None,
    max_questions: int = 5,
    time_limit: int = 30,
    students: dict | None = None,
    assignments=(),
    seed: int = 7,
    grader=None,
):
    clock = FakeClock()
    repo = InMemoryRepository(
        questions=build_synthetic_pool() if pool is None else pool,
        configurations=[AssessmentConfig(GRADE_ID, SUBJECT_ID, time_limit, max_questions)],
        students={1: GRADE_ID, 2: GRADE_ID, 3: 6} if students is None else students,
        assignments=assignments,
        rng=random.Random(seed),
    )
    store = SessionStore(clock=clock)
    ctrl = SessionController(repo, store, rng=random.Random(seed), clock=clock, grader=grader)
    return ctrl, repo, store, clock


@pytest.fixture(autouse=True)
def _no_llm_env(monkeypatch):
    monkeypatch.delenv("USE_LLM_GRADING", raising=False)
    monkeypatch.delenv("LLM_BACKEND", raising=False)


@pytest.fixture
def engine():
    return build_engine()


@pytest.fixture
def rng():
    return random.Random(1234)
