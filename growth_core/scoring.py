from __future__ import annotations
from typing import Any, List, Optional, Tuple
import json, math

from .errors import InvalidAnswerFormat
from .types import EvaluatedAnswer, FREE_TEXT_TYPES, Question

_TRUE_FALSE = {"true": 0, "false": 1}


def _dump(value: Any) -> str:
    # JSON.stringify-compatible form: "[1,2]", '{"a":1}'
    return json.dumps(value, separators=(",", ":"))


def _as_index(raw: Any, code: str) -> int:
    if isinstance(raw, bool):
        raise InvalidAnswerFormat(f"Invalid answer index: {raw!r}", code=code)
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        if math.isfinite(raw) and raw.is_integer():
            return int(raw)
        raise InvalidAnswerFormat(f"Invalid answer index: {raw!r}", code=code)
    if isinstance(raw, str):
        try:
            return int(raw.strip())
        except ValueError:
            pass
    raise InvalidAnswerFormat(f"Invalid answer index: {raw!r}", code=code)


def _as_index_list(raw: Any, code: str) -> List[int]:
    """Accept a list, a JSON-encoded list, or a single scalar."""
    parsed = raw
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except ValueError:
            parsed = raw
    if not isinstance(parsed, (list, tuple)):
        parsed = [parsed]
    return [_as_index(v, code) for v in parsed]


def _canonical_list(question: Question) -> List[int]:
    if question.correct_answer:
        try:
            parsed = json.loads(question.correct_answer)
        except (TypeError, ValueError):
            parsed = None
        if isinstance(parsed, list):
            return [int(v) for v in parsed]
        if parsed is not None and not isinstance(parsed, (dict, bool)):
            return [int(parsed)]
    if question.correct_option_index is None:
        return []
    return [int(question.correct_option_index)]


def _score_single(question: Question, raw: Any) -> Tuple[bool, str]:
    code = "INVALID_MCQ_ANSWER"
    if question.question_type == "TrueFalse":
        if isinstance(raw, bool):
            raw = 0 if raw else 1
        elif isinstance(raw, str) and raw.strip().lower() in _TRUE_FALSE:
            raw = _TRUE_FALSE[raw.strip().lower()]
        code = "INVALID_TRUEFALSE_ANSWER"
    chosen = _as_index(raw, code)
    correct = question.correct_option_index
    return (correct is not None and chosen == int(correct)), str(chosen)


def _score_multi(question: Question, raw: Any) -> Tuple[bool, str]:
    chosen = sorted(_as_index_list(raw, "INVALID_MULTIPLESELECT_ANSWER"))
    canonical = sorted(_canonical_list(question))
    # all-or-nothing: no partial credit for overlap
    return chosen == canonical, _dump(chosen)


def _score_fill(question: Question, raw: Any) -> Tuple[bool, str]:
    code = "INVALID_FILLINBLANK_ANSWER"
    chosen = _as_index_list(raw, code)
    if not chosen:
        raise InvalidAnswerFormat("No answers provided for FillInBlank question", code=code)
    canonical = _canonical_list(question)
    if len(chosen) != len(canonical):
        return False, _dump(chosen)
    return all(c == k for c, k in zip(chosen, canonical)), _dump(chosen)


def _matching_pairs(question: Question, code: str) -> List[dict]:
    if not question.correct_answer:
        raise InvalidAnswerFormat("No correct pairs found in question", code=code)
    try:
        pairs = json.loads(question.correct_answer)
    except (TypeError, ValueError):
        pairs = None
    if not isinstance(pairs, list) or not all(isinstance(p, dict) for p in pairs):
        raise InvalidAnswerFormat("Invalid correct pairs format in question", code=code)
    return pairs


def _score_matching(question: Question, raw: Any) -> Tuple[bool, str]:
    code = "INVALID_MATCHING_ANSWER"
    chosen = _as_index_list(raw, code)
    pairs = _matching_pairs(question, code)
    if not chosen:
        raise InvalidAnswerFormat("No answers provided for Matching question", code=code)
    if len(chosen) != len(pairs):
        raise InvalidAnswerFormat(f"Expected {len(pairs)} answers, got {len(chosen)}", code=code)
    by_left = {}
    for p in pairs:
        try:
            by_left.setdefault(int(p.get("left")), int(p.get("right")))
        except (TypeError, ValueError):
            raise InvalidAnswerFormat("Invalid correct pairs format in question", code=code) from None
    ok = all(left in by_left and by_left[left] == right for left, right in enumerate(chosen))
    return ok, _dump(chosen)


def _score_free_text(question: Question, raw: Any) -> Tuple[Optional[bool], str]:
    # graded externally; stored verbatim
    return None, raw if isinstance(raw, str) else _dump(raw)


def evaluate(question: Question, submitted: Any) -> EvaluatedAnswer:
    """
    Grade ``submitted`` against the question's canonical answer.

    MCQ/TrueFalse: one option index (TrueFalse also takes true/false).
    MultipleSelect: index set, all-or-nothing.
    FillInBlank: ordered indices, one per blank.
    Matching: right-side index chosen for each left item, by position.
    ShortAnswer/Essay: not graded here, is_correct is None.

    Raises InvalidAnswerFormat before anything is persisted.
    """
    t = str(question.question_type or "MCQ")
    if t in FREE_TEXT_TYPES:
        ok, stored = _score_free_text(question, submitted)
    elif t == "MultipleSelect":
        ok, stored = _score_multi(question, submitted)
    elif t == "FillInBlank":
        ok, stored = _score_fill(question, submitted)
    elif t == "Matching":
        ok, stored = _score_matching(question, submitted)
    else:
        ok, stored = _score_single(question, submitted)
    return EvaluatedAnswer(is_correct=ok, stored_answer=stored)
