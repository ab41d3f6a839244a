"""External grading of free-text answers.

Short answers and essays are recorded with no correctness; an instructor (or this
bridge) grades them afterwards against the question's Depth-of-Knowledge
level. The verdict is ``{"correct": 0|1, "reason": str}`` and is kept apart
from the response log, so a grade never changes a finalized score.
"""
from __future__ import annotations
import json, logging, re
from typing import Any, Callable, Dict, Optional

from .azure_cfg import client as azure_client, settings as azure_settings, configured as azure_configured
from .config import get_backend
from .errors import GradingUnavailable
from .types import Question

log = logging.getLogger(__name__)

DOK_LEVELS = {
    1: "Recall and Reproduction - basic recall of facts, terms or simple one-step procedures.",
    2: "Skills and Concepts - application of information and conceptual understanding over multiple steps.",
    3: "Strategic Thinking - complex reasoning, planning and use of evidence in multi-step problem solving.",
    4: "Extended Thinking - investigation and complex reasoning over multiple sources with real-world application.",
}

_SYSTEM = ("You are an expert educational assessor. "
           "Return ONLY compact JSON with keys: correct (0 or 1), reason (one or two sentences).")

_FALLBACK_WORDS = ("correct", "acceptable", "meets", "satisfactory")

def build_prompt(question: Question, answer: str) -> str:
    dok = question.dok_level
    desc = DOK_LEVELS.get(dok or 0, "Unknown DOK level")
    meta = question.metadata if isinstance(question.metadata, dict) else {}
    instructions = meta.get("description") or "No specific instructions provided."
    return (
        f"Question: {question.text}\n"
        f"DOK Level: {dok} - {desc}\n"
        f"Instructions: {instructions}\n\n"
        f"Student's response:\n{(answer or '').strip()}\n\n"
        f"Decide whether the response shows the depth of knowledge DOK Level {dok} requires. "
        "A short direct answer can pass at level 1 while level 4 needs explanation and application."
    )

def parse_verdict(text: str) -> Dict[str, Any]:
    raw = (text or "").strip()
    body = re.sub(r"```(?:json)?", "", raw)
    m = re.search(r"\{.*\}", body, re.S)
    try:
        parsed = json.loads(m.group(0) if m else body)
        correct = parsed.get("correct")
        reason = parsed.get("reason")
        if isinstance(correct, bool) or correct not in (0, 1):
            raise ValueError("correct must be 0 or 1")
        if not isinstance(reason, str) or not reason.strip():
            raise ValueError("missing reason")
        return {"correct": int(correct), "reason": reason.strip()}
    except (ValueError, AttributeError) as e:
        log.warning("grader returned unparseable verdict (%s); using keyword fallback", e)
        low = raw.lower()
        ok = any(w in low for w in _FALLBACK_WORDS)
        return {
            "correct": 1 if ok else 0,
            "reason": "Grader response could not be parsed; keyword fallback used. Original response: " + raw[:200],
        }

def _grade_azure(prompt: str) -> str:
    s = azure_settings(); cli = azure_client()
    resp = cli.chat.completions.create(
        model=s.deployment,
        messages=[{"role": "system", "content": _SYSTEM}, {"role": "user", "content": prompt}],
        temperature=0.0, max_tokens=200, top_p=1.0,
    )
    return resp.choices[0].message.content or "{}"

def grade_free_text(question: Question, answer: str) -> Dict[str, Any]:
    try:
        raw = _grade_azure(build_prompt(question, answer))
    except GradingUnavailable:
        raise
    except Exception as e:
        log.error("azure grading call failed for question %s: %s", question.id, e)
        raise GradingUnavailable(f"Grading backend failed: {e}") from e
    verdict = parse_verdict(raw)
    log.info("graded question %s correct=%s", question.id, verdict["correct"])
    return verdict

def make_grader(cfg: dict) -> Optional[Callable[[Question, str], Dict[str, Any]]]:
    """Return the configured grader, or None when grading is switched off."""
    backend = get_backend(cfg)
    if backend == "azure" and azure_configured():
        return grade_free_text
    if backend == "azure":
        log.warning("LLM grading requested but Azure OpenAI settings are incomplete")
    return None
