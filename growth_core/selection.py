# growth_core/selection.py
"""Closest-difficulty question search with an escalating fallback.

Tiers, most constrained first:
  1. subject, grade match or ungraded, not used in session, not responded
  2. drop the grade filter
  3. drop the in-session exclusion (responded ids stay excluded)
Each tier picks the minimum ``abs(difficulty - target)``; ties are broken
uniformly at random.
"""
from __future__ import annotations

import random
from typing import Iterable, List, Optional, Sequence, Set

from .types import Question


def _grade_ok(q: Question, grade_id: Optional[int]) -> bool:
    return q.grade_id is None or grade_id is None or q.grade_id == grade_id


def closest(candidates: Sequence[Question], target: int, rng: random.Random) -> Optional[Question]:
    if not candidates:
        return None
    best = min(abs(int(q.difficulty_level) - int(target)) for q in candidates)
    tied = [q for q in candidates if abs(int(q.difficulty_level) - int(target)) == best]
    return rng.choice(tied)


def find_closest(
    pool: Iterable[Question],
    *,
    subject_id: int,
    grade_id: Optional[int],
    target: int,
    session_exclude: Optional[Set[int]] = None,
    responded_ids: Optional[Set[int]] = None,
    rng: Optional[random.Random] = None,
) -> Optional[Question]:
    rng = rng or random.Random()
    used = set(session_exclude or ())
    responded = set(responded_ids or ())
    subject_pool: List[Question] = [
        q for q in pool if q.subject_id == subject_id and q.id not in responded
    ]

    tiers = (
        [q for q in subject_pool if q.id not in used and _grade_ok(q, grade_id)],
        [q for q in subject_pool if q.id not in used],
        subject_pool,
    )
    for candidates in tiers:
        picked = closest(candidates, target, rng)
        if picked is not None:
            return picked
    return None
