from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Literal, Set, Tuple, Union, Any

QuestionType = Literal["MCQ","TrueFalse","MultipleSelect","FillInBlank","Matching","ShortAnswer","Essay"]
Mode = Literal["Adaptive","Standard"]
FREE_TEXT_TYPES = ("ShortAnswer", "Essay")

@dataclass
class Question:
    id: int; subject_id: int; text: str
    options: Optional[List[Any]] = None
    question_type: str = "MCQ"
    correct_option_index: Optional[int] = None
    correct_answer: Optional[str] = None
    difficulty_level: int = 225
    grade_id: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None
    dok_level: Optional[int] = None
@dataclass
class AssessmentConfig:
    grade_id: int; subject_id: int
    time_limit_minutes: int
    max_questions: int
@dataclass
class ManifestEntry:
    question_id: int; question_order: int; points: float = 1.0
@dataclass
class Assignment:
    id: int; name: str; subject_id: int; grade_id: Optional[int]
    mode: Mode = "Standard"
    time_limit_minutes: int = 30
    total_questions: int = 10
    difficulty_level: Optional[int] = None
    question_sequence: str = "fixed"
    is_active: bool = True
    is_published: bool = True
    manifest: List[ManifestEntry] = field(default_factory=list)
    students: Dict[int, Dict[str, Any]] = field(default_factory=dict)
@dataclass
class Assessment:
    id: int; student_id: int; subject_id: int; grade_id: Optional[int]
    period: str; year: int
    mode: Mode
    total_questions: int
    time_limit_minutes: int
    created_at: float
    assignment_id: Optional[int] = None
    rit_score: Optional[int] = None
    correct_answers: Optional[int] = None
    duration_minutes: Optional[int] = None
    completed_at: Optional[float] = None

    @property
    def finalized(self) -> bool:
        return self.rit_score is not None or self.completed_at is not None
@dataclass
class AssessmentResponse:
    assessment_id: int; question_id: int; question_order: int
    submitted_answer: str
    is_correct: Optional[bool]
    question_difficulty: int
    answered_at: float = 0.0
@dataclass
class GradeRecord:
    assessment_id: int; question_id: int
    correct: bool; reason: str
    graded_at: float = 0.0
@dataclass
class EvaluatedAnswer:
    is_correct: Optional[bool]
    stored_answer: str

SessionKey = Tuple[int, int, str]

@dataclass
class AdaptiveSession:
    """In-memory state of one adaptive attempt; owned by the SessionStore."""
    key: SessionKey
    assessment_id: int; student_id: int; subject_id: int
    grade_id: Optional[int]
    current_difficulty: int
    max_questions: int
    time_limit_minutes: int
    start_time: float
    starting_difficulty: int
    question_count: int = 0
    used_question_ids: Set[int] = field(default_factory=set)
    highest_correct_difficulty: int = 0
    mode: Mode = "Adaptive"
@dataclass(frozen=True)
class StandardProgress:
    """Read-only view of a Standard attempt rebuilt from the response log."""
    assessment_id: int; student_id: int; subject_id: int
    question_count: int
    max_questions: int
    time_limit_minutes: int
    start_time: float
    responded_ids: frozenset = frozenset()
    mode: Mode = "Standard"

Session = Union[AdaptiveSession, StandardProgress]

@dataclass
class QuestionView:
    id: int; text: str
    options: List[Any]
    question_type: str
    metadata: Optional[Dict[str, Any]]
    question_number: int
    total_questions: int
    question_order: Optional[int] = None
@dataclass
class StartResult:
    assessment_id: int
    mode: Mode
    time_limit_minutes: int
    question: QuestionView
    starting_difficulty: Optional[int] = None
    assignment_id: Optional[int] = None
    all_questions: List[QuestionView] = field(default_factory=list)
@dataclass
class SubmitResult:
    completed: bool
    is_correct: Optional[bool]
    assessment_id: int
    question: Optional[QuestionView] = None
    current_score: Optional[int] = None
    final_score: Optional[int] = None
    correct_answers: Optional[int] = None
    reason: Optional[str] = None
    message: str = ""
