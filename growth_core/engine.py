# growth_core/engine.py
from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import json, logging, math, random, time

from .config import (
    load_config,
    make_rng,
    clamp_difficulty,
    ASSIGNMENT_PERIOD,
    DEFAULT_STARTING_DIFFICULTY,
    PERIODS,
    REAPER_GRACE_MINUTES,
    DEBUG_TRACE,
    TRACE_FIELDS,
)
from .errors import (
    AlreadyCompleted,
    AssessmentCompleted,
    AssessmentNotFound,
    AssignmentNotFound,
    ConfigurationNotFound,
    GradingUnavailable,
    InvalidPeriod,
    NoQuestionsAvailable,
    NotAssigned,
    PastDueDate,
    QuestionNotFound,
    ResponseNotFound,
    SessionNotFound,
    StorageFailure,
    StudentNotFound,
    Unauthorized,
)
from .llm_bridge import make_grader
from .repository import QuestionRepository
from .scoring import evaluate
from .session_store import SessionStore
from .stepper import next_target_difficulty
from .types import (
    AdaptiveSession,
    Assessment,
    AssessmentResponse,
    Assignment,
    FREE_TEXT_TYPES,
    GradeRecord,
    Question,
    QuestionView,
    Session,
    SessionKey,
    StandardProgress,
    StartResult,
    SubmitResult,
)
from . import reporting


log = logging.getLogger(__name__)

Grader = Callable[[Question, str], Dict[str, Any]]

_COMPLETION_MESSAGES = {
    "time_limit": "Assessment completed! Time limit reached. Your Growth Metric score is {score}",
    "question_count": "Assessment completed! Your Growth Metric score is {score}",
    "pool_exhausted": "Assessment completed! No more questions available. Your Growth Metric score is {score}",
}


def _emit_trace(**values: object) -> None:
    if not DEBUG_TRACE:
        return
    ordered = []
    for key in TRACE_FIELDS:
        if key in values:
            ordered.append(f"{key}={values[key]}")
    if ordered:
        log.info("trace %s", " ".join(str(val) for val in ordered))


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _parse_json_field(raw: Any, default: Any) -> Any:
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except ValueError:
            log.error("could not parse stored JSON field %r", raw[:80])
            return default
    return raw if raw is not None else default


def question_view(q: Question, number: int, total: int, order: Optional[int] = None) -> QuestionView:
    return QuestionView(
        id=q.id,
        text=q.text,
        options=_parse_json_field(q.options, []),
        question_type=q.question_type or "MCQ",
        metadata=_parse_json_field(q.metadata, None),
        question_number=number,
        total_questions=total,
        question_order=order,
    )


def derive_progress(assessment: Assessment, responses: List[AssessmentResponse]) -> StandardProgress:
    """Rebuild a Standard attempt's position from its persisted responses."""

    return StandardProgress(
        assessment_id=assessment.id,
        student_id=assessment.student_id,
        subject_id=assessment.subject_id,
        question_count=len(responses),
        max_questions=assessment.total_questions,
        time_limit_minutes=assessment.time_limit_minutes,
        start_time=assessment.created_at,
        responded_ids=frozenset(r.question_id for r in responses),
    )


class SessionController:
    def __init__(
        self,
        repo: QuestionRepository,
        store: Optional[SessionStore] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], float]] = None,
        grader: Optional[Grader] = None,
    ):
        self.cfg = load_config()
        self.repo = repo
        self.clock = clock or (store.clock if store is not None else time.time)
        self.store = store if store is not None else SessionStore(clock=self.clock)
        self.rng = rng or make_rng(self.cfg)
        self.grader = grader if grader is not None else make_grader(self.cfg)

    # ---- helpers -------------------------------------------------------------
    def _year(self) -> int:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc).year

    def _student_grade(self, student_id: int) -> Optional[int]:
        found, grade_id = self.repo.get_student_grade(student_id)
        if not found:
            raise StudentNotFound("Student not found")
        return grade_id

    def _starting_difficulty(self, student_id: int, subject_id: int, fallback: int) -> int:
        prior = self.repo.latest_finalized_score(student_id, subject_id, self._year())
        if prior is not None:
            log.info(
                "using previous score %s as starting difficulty student=%s subject=%s",
                prior, student_id, subject_id,
            )
            return int(prior)
        return int(fallback)

    def _open_adaptive(
        self,
        key: SessionKey,
        assessment: Assessment,
        grade_id: Optional[int],
        first: Question,
        starting: int,
    ) -> AdaptiveSession:
        sess = AdaptiveSession(
            key=key,
            assessment_id=assessment.id,
            student_id=assessment.student_id,
            subject_id=assessment.subject_id,
            grade_id=grade_id,
            current_difficulty=clamp_difficulty(first.difficulty_level),
            max_questions=assessment.total_questions,
            time_limit_minutes=assessment.time_limit_minutes,
            start_time=assessment.created_at,
            starting_difficulty=starting,
        )
        self.store.create(sess)
        log.info(
            "session started assessment=%s key=%s starting=%d first_difficulty=%d",
            assessment.id, key, starting, first.difficulty_level,
        )
        return sess

    def _first_question(self, subject_id: int, grade_id: Optional[int], starting: int) -> Question:
        target = next_target_difficulty(starting, None, self.rng)
        first = self.repo.find_closest_question(subject_id, grade_id, target, None, None)
        if first is None:
            raise NoQuestionsAvailable("No questions available for this subject")
        return first

    def _owned(self, student_id: int, assessment_id: int) -> Assessment:
        assessment = self.repo.get_assessment(assessment_id)
        if assessment is None:
            raise AssessmentNotFound("Assessment not found")
        if assessment.student_id != student_id:
            raise Unauthorized("You are not authorized to access this assessment")
        return assessment

    # ---- start ---------------------------------------------------------------
    def start_session(self, student_id: int, subject_id: int, period: str) -> StartResult:
        if period not in PERIODS:
            raise InvalidPeriod(f"Period must be one of {', '.join(PERIODS)}")
        grade_id = self._student_grade(student_id)
        cfg = self.repo.get_assessment_configuration(grade_id, subject_id)
        if cfg is None:
            raise ConfigurationNotFound("Assessment configuration not found for this grade-subject combination")

        starting = self._starting_difficulty(student_id, subject_id, DEFAULT_STARTING_DIFFICULTY)
        first = self._first_question(subject_id, grade_id, starting)

        assessment = self.repo.create_assessment(
            student_id=student_id,
            subject_id=subject_id,
            grade_id=grade_id,
            period=period,
            year=self._year(),
            mode="Adaptive",
            total_questions=cfg.max_questions,
            time_limit_minutes=cfg.time_limit_minutes,
            created_at=self.clock(),
        )
        self._open_adaptive((student_id, subject_id, period), assessment, grade_id, first, starting)
        return StartResult(
            assessment_id=assessment.id,
            mode="Adaptive",
            time_limit_minutes=cfg.time_limit_minutes,
            question=question_view(first, 1, cfg.max_questions),
            starting_difficulty=starting,
        )

    def _check_assignment(self, student_id: int, assignment: Optional[Assignment]) -> Optional[int]:
        if assignment is None or not assignment.is_active or not assignment.is_published:
            raise AssignmentNotFound("Assignment not found or not available")
        found, grade_id = self.repo.get_student_grade(student_id)
        row = assignment.students.get(student_id)
        if row is None:
            if not found or grade_id != assignment.grade_id:
                raise NotAssigned("You are not assigned to this assessment")
        else:
            if row.get("is_completed"):
                raise AlreadyCompleted("You have already completed this assessment")
            due = row.get("due_date")
            if due is not None and float(due) < self.clock():
                raise PastDueDate("This assessment is past its due date")
        return grade_id if found else assignment.grade_id

    def start_assignment(self, student_id: int, assignment_id: int) -> StartResult:
        assignment = self.repo.get_assignment(assignment_id)
        grade_id = self._check_assignment(student_id, assignment)
        if assignment.mode == "Adaptive":
            return self._start_adaptive_assignment(student_id, assignment, grade_id)
        return self._start_standard_assignment(student_id, assignment)

    def _start_standard_assignment(self, student_id: int, assignment: Assignment) -> StartResult:
        entries = sorted(assignment.manifest, key=lambda e: e.question_order)
        if not entries:
            raise NoQuestionsAvailable("No questions found for this assignment")
        questions = []
        for entry in entries:
            q = self.repo.get_question(entry.question_id)
            if q is None:
                raise QuestionNotFound(f"Question {entry.question_id} in assignment manifest not found")
            questions.append((q, entry.question_order))
        if assignment.question_sequence == "random":
            self.rng.shuffle(questions)

        assessment = self.repo.create_assessment(
            student_id=student_id,
            subject_id=assignment.subject_id,
            grade_id=assignment.grade_id,
            period=ASSIGNMENT_PERIOD,
            year=self._year(),
            mode="Standard",
            total_questions=assignment.total_questions,
            time_limit_minutes=assignment.time_limit_minutes,
            created_at=self.clock(),
            assignment_id=assignment.id,
        )
        views = [
            question_view(q, idx + 1, len(questions), order)
            for idx, (q, order) in enumerate(questions)
        ]
        log.info("standard assignment %s started assessment=%s questions=%d", assignment.id, assessment.id, len(views))
        return StartResult(
            assessment_id=assessment.id,
            mode="Standard",
            time_limit_minutes=assignment.time_limit_minutes,
            question=views[0],
            assignment_id=assignment.id,
            all_questions=views,
        )

    def _start_adaptive_assignment(self, student_id: int, assignment: Assignment, grade_id: Optional[int]) -> StartResult:
        fallback = assignment.difficulty_level or DEFAULT_STARTING_DIFFICULTY
        starting = self._starting_difficulty(student_id, assignment.subject_id, fallback)
        first = self._first_question(assignment.subject_id, grade_id, starting)
        assessment = self.repo.create_assessment(
            student_id=student_id,
            subject_id=assignment.subject_id,
            grade_id=assignment.grade_id,
            period=ASSIGNMENT_PERIOD,
            year=self._year(),
            mode="Adaptive",
            total_questions=assignment.total_questions,
            time_limit_minutes=assignment.time_limit_minutes,
            created_at=self.clock(),
            assignment_id=assignment.id,
        )
        key = (student_id, assignment.subject_id, f"assignment_{assignment.id}")
        self._open_adaptive(key, assessment, grade_id, first, starting)
        return StartResult(
            assessment_id=assessment.id,
            mode="Adaptive",
            time_limit_minutes=assignment.time_limit_minutes,
            question=question_view(first, 1, assignment.total_questions),
            starting_difficulty=starting,
            assignment_id=assignment.id,
        )

    # ---- submit --------------------------------------------------------------
    def submit_answer(self, student_id: int, assessment_id: int, question_id: int, answer: Any) -> SubmitResult:
        assessment = self._owned(student_id, assessment_id)
        if assessment.finalized:
            raise AssessmentCompleted("Assessment already completed")
        if assessment.mode == "Adaptive":
            key = self.store.key_for(student_id, assessment_id)
            if key is None:
                raise SessionNotFound("Assessment session not found")
            lock_key: object = key
        else:
            key = None
            lock_key = ("standard", assessment_id)

        with self.store.locked(lock_key):
            assessment = self.repo.get_assessment(assessment_id)
            if assessment.finalized:
                raise AssessmentCompleted("Assessment already completed")
            session: Session
            if key is not None:
                found = self.store.get(key)
                # the key may have been restarted for a new assessment while we waited
                if found is None or found.assessment_id != assessment_id:
                    raise SessionNotFound("Assessment session not found")
                session = found
            else:
                session = derive_progress(assessment, self.repo.list_responses(assessment_id))

            question = self.repo.get_question(question_id)
            if question is None:
                raise QuestionNotFound("Question not found")
            graded = evaluate(question, answer)

            order = session.question_count + 1
            if isinstance(session, StandardProgress) and assessment.assignment_id is not None:
                order = self.repo.manifest_order(assessment.assignment_id, question_id) or order
            now = self.clock()
            self.repo.append_response(AssessmentResponse(
                assessment_id=assessment_id,
                question_id=question_id,
                question_order=order,
                submitted_answer=graded.stored_answer,
                is_correct=graded.is_correct,
                question_difficulty=int(question.difficulty_level),
                answered_at=now,
            ))
            return self._advance(assessment, session, question, graded.is_correct, order, now)

    def _advance(
        self,
        assessment: Assessment,
        session: Session,
        question: Question,
        is_correct: Optional[bool],
        order: int,
        now: float,
    ) -> SubmitResult:
        difficulty = int(question.difficulty_level)
        if isinstance(session, AdaptiveSession):
            session.question_count += 1
            session.used_question_ids.add(question.id)
            if is_correct:
                session.current_difficulty = clamp_difficulty(difficulty)
                session.highest_correct_difficulty = max(session.highest_correct_difficulty, difficulty)
            count = session.question_count
        else:
            count = session.question_count + 1

        elapsed_minutes = (now - session.start_time) / 60.0
        if elapsed_minutes >= session.time_limit_minutes:
            return self._finalize(assessment, session, now, "time_limit", is_correct, difficulty)
        if count >= session.max_questions:
            return self._finalize(assessment, session, now, "question_count", is_correct, difficulty)
        if isinstance(session, StandardProgress):
            return SubmitResult(completed=False, is_correct=is_correct, assessment_id=assessment.id)

        target = next_target_difficulty(difficulty, is_correct, self.rng)
        nxt = self.repo.find_closest_question(
            session.subject_id, session.grade_id, target, session.used_question_ids, assessment.id
        )
        log.debug(
            "step assessment=%s q=%d difficulty=%d correct=%s target=%d next=%s",
            assessment.id, count, difficulty, is_correct, target,
            nxt.difficulty_level if nxt is not None else None,
        )
        _emit_trace(
            assessment_id=assessment.id,
            question_id=question.id,
            order=order,
            difficulty=difficulty,
            correct=is_correct,
            current=session.current_difficulty,
            target=target,
            count=count,
        )
        if nxt is None:
            return self._finalize(assessment, session, now, "pool_exhausted", is_correct, difficulty)
        return SubmitResult(
            completed=False,
            is_correct=is_correct,
            assessment_id=assessment.id,
            question=question_view(nxt, count + 1, session.max_questions),
            current_score=session.current_difficulty,
        )

    # ---- finalize ------------------------------------------------------------
    def _finalize(
        self,
        assessment: Assessment,
        session: Session,
        now: float,
        reason: str,
        is_correct: Optional[bool] = None,
        fallback_difficulty: Optional[int] = None,
    ) -> SubmitResult:
        responses = self.repo.list_responses(assessment.id)
        difficulties = [r.question_difficulty for r in responses]
        if difficulties:
            score = _round_half_up(sum(difficulties) / len(difficulties))
        else:
            score = int(fallback_difficulty or DEFAULT_STARTING_DIFFICULTY)
        correct = sum(1 for r in responses if r.is_correct is True)
        duration = _round_half_up(max(0.0, now - session.start_time) / 60.0)

        self.repo.save_assessment_result(assessment.id, score, correct, duration, now)
        if assessment.assignment_id is not None:
            try:
                self.repo.mark_assignment_completed(assessment.assignment_id, assessment.student_id, now)
            except StorageFailure:
                log.warning(
                    "assignment %s completion not recorded for student %s",
                    assessment.assignment_id, assessment.student_id, exc_info=True,
                )
        if isinstance(session, AdaptiveSession):
            self.store.close(session.key)

        log.info(
            "assessment %s finalized reason=%s score=%d correct=%d/%d duration=%dmin",
            assessment.id, reason, score, correct, len(responses), duration,
        )
        return SubmitResult(
            completed=True,
            is_correct=is_correct,
            assessment_id=assessment.id,
            final_score=score,
            correct_answers=correct,
            reason=reason,
            message=_COMPLETION_MESSAGES[reason].format(score=score),
        )

    def reap_expired(self, grace_minutes: float = REAPER_GRACE_MINUTES) -> List[int]:
        """Finalize sessions abandoned past their time limit; returns assessment ids."""

        reaped: List[int] = []
        for sess in self.store.expired(grace_minutes):
            with self.store.locked(sess.key):
                if self.store.get(sess.key) is not sess:
                    continue
                assessment = self.repo.get_assessment(sess.assessment_id)
                if assessment is None or not self.repo.list_responses(sess.assessment_id):
                    log.warning("reaper dropped unanswered session %s", sess.key)
                    self.store.close(sess.key)
                    continue
                self._finalize(assessment, sess, self.clock(), "time_limit")
                reaped.append(sess.assessment_id)
        return reaped

    # ---- read side -----------------------------------------------------------
    def results(self, student_id: int, assessment_id: int) -> Dict[str, Any]:
        assessment = self._owned(student_id, assessment_id)
        if assessment.rit_score is None:
            raise AssessmentNotFound("Assessment not found")
        previous = self.repo.previous_finalized(student_id, assessment.subject_id, assessment.id)
        return reporting.build_results(
            assessment,
            self.repo.list_responses(assessment_id),
            self.repo.get_question,
            previous=previous,
            grades=self.repo.list_grades(assessment_id),
        )

    def subject_history(self, student_id: int, subject_id: int) -> List[Dict[str, Any]]:
        self._student_grade(student_id)
        return reporting.subject_history(self.repo.list_finalized(student_id, subject_id))

    def growth(self, student_id: int, subject_id: int) -> List[Dict[str, Any]]:
        self._student_grade(student_id)
        return reporting.growth_over_time(self.repo.list_finalized(student_id, subject_id))

    def open_assignments(self, student_id: int) -> List[Dict[str, Any]]:
        """Assignments the student can start right now, newest first."""

        self._student_grade(student_id)
        out = []
        for a in sorted(self.repo.list_assignments(), key=lambda a: a.id, reverse=True):
            try:
                self._check_assignment(student_id, a)
            except (AssignmentNotFound, NotAssigned, AlreadyCompleted, PastDueDate):
                continue
            row = a.students.get(student_id) or {}
            out.append({
                "id": a.id,
                "name": a.name,
                "subject_id": a.subject_id,
                "grade_id": a.grade_id,
                "mode": a.mode,
                "time_limit_minutes": a.time_limit_minutes,
                "total_questions": a.total_questions,
                "question_sequence": a.question_sequence,
                "due_date": row.get("due_date"),
            })
        return out

    def responses_for(self, student_id: int, assessment_id: int) -> List[AssessmentResponse]:
        self._owned(student_id, assessment_id)
        return self.repo.list_responses(assessment_id)

    def grade_response(self, student_id: int, assessment_id: int, question_id: int) -> GradeRecord:
        """Send a pending free-text response to the external grader."""

        self._owned(student_id, assessment_id)
        resp = next((r for r in self.repo.list_responses(assessment_id) if r.question_id == question_id), None)
        question = self.repo.get_question(question_id)
        if resp is None or question is None or question.question_type not in FREE_TEXT_TYPES:
            raise ResponseNotFound("No free-text response for this question in the assessment")
        if self.grader is None:
            raise GradingUnavailable("No grading backend configured")
        verdict = self.grader(question, resp.submitted_answer)
        record = GradeRecord(
            assessment_id=assessment_id,
            question_id=question_id,
            correct=bool(verdict.get("correct")),
            reason=str(verdict.get("reason", "")),
            graded_at=self.clock(),
        )
        self.repo.append_grade(record)
        return record
