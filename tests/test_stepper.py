from __future__ import annotations

import random

from growth_core.config import DIFFICULTY_MAX, DIFFICULTY_MIN
from growth_core.stepper import draw_step, next_target_difficulty


def test_step_within_bounds_and_direction(rng):
    for _ in range(500):
        current = rng.randint(105, 345)
        correct = rng.random() < 0.5
        out = next_target_difficulty(current, correct, rng)
        assert DIFFICULTY_MIN <= out <= DIFFICULTY_MAX
        delta = out - current
        if correct:
            assert 3 <= delta <= 5, f"{current}->{out} after correct answer"
        else:
            assert -5 <= delta <= -3, f"{current}->{out} after wrong answer"


def test_step_clamped_at_scale_edges(rng):
    assert next_target_difficulty(350, True, rng) == 350
    assert next_target_difficulty(348, True, rng) == 350
    assert next_target_difficulty(100, False, rng) == 100
    assert next_target_difficulty(102, False, rng) == 100


def test_no_prior_answer_keeps_current():
    assert next_target_difficulty(225, None) == 225
    assert next_target_difficulty(900, None) == 350, "out-of-scale input still clamped"


def test_draw_step_covers_range():
    rng = random.Random(3)
    seen = {draw_step(rng) for _ in range(200)}
    assert seen == {3, 4, 5}


def test_seeded_rng_is_deterministic():
    a = [next_target_difficulty(225, True, random.Random(11)) for _ in range(3)]
    b = [next_target_difficulty(225, True, random.Random(11)) for _ in range(3)]
    assert a == b
