from __future__ import annotations
import json, pathlib
from typing import Any, Dict, List
from .config import clamp_difficulty
from .types import Question

_FIELDS = ("id","subject_id","text","options","question_type","correct_option_index",
           "correct_answer","difficulty_level","grade_id","metadata","dok_level")

def question_from_dict(raw: Dict[str, Any]) -> Question:
    r = {k: raw[k] for k in _FIELDS if k in raw}
    if "text" not in r and "question_text" in raw:
        r["text"] = raw["question_text"]
    ca = r.get("correct_answer")
    if ca is not None and not isinstance(ca, str):
        r["correct_answer"] = json.dumps(ca, separators=(",", ":"))
    r["difficulty_level"] = clamp_difficulty(r.get("difficulty_level", 225))
    return Question(**r)

def question_to_dict(q: Question) -> Dict[str, Any]:
    return {k: getattr(q, k) for k in _FIELDS}

def load_bank(path: str | pathlib.Path) -> List[Question]:
    raw = json.loads(pathlib.Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("questions", [])
    return [question_from_dict(r) for r in raw]
