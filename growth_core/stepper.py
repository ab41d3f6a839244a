# growth_core/stepper.py
"""Next-difficulty rule for adaptive sessions.

A greedy local hill-climb: every correct answer moves the target up by a
random 3..5 points, every miss moves it down by the same amount, clamped to
the 100..350 scale. It does not estimate ability and never strictly
converges; a student answering near their level oscillates around it.
"""
from __future__ import annotations

import random
from typing import Optional

from .config import STEP_MIN, STEP_MAX, clamp_difficulty


def draw_step(rng: random.Random) -> int:
    return rng.randint(STEP_MIN, STEP_MAX)


def next_target_difficulty(
    current_difficulty: int,
    was_correct: Optional[bool],
    rng: Optional[random.Random] = None,
) -> int:
    """Return the difficulty the next question should be closest to.

    ``was_correct=None`` means there is no graded prior answer (first
    question, or a free-text answer pending grading): the current
    difficulty is the target unchanged.
    """
    if was_correct is None:
        return clamp_difficulty(current_difficulty)
    step = draw_step(rng or random.Random())
    if was_correct:
        return clamp_difficulty(current_difficulty + step)
    return clamp_difficulty(current_difficulty - step)
