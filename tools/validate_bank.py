from __future__ import annotations
from collections import defaultdict, Counter
import os, sys
from growth_core.config import DIFFICULTY_BAND_WIDTH, DIFFICULTY_MIN, DIFFICULTY_MAX
from growth_core.question_bank import load_bank

# Configurable targets; a band below these leaves the stepper nothing nearby
TARGETS = {
    "per_band_min": int(os.getenv("TARGET_PER_BAND_MIN", 3)),
}

def _band(difficulty: int) -> int:
    return DIFFICULTY_MIN + ((int(difficulty) - DIFFICULTY_MIN) // DIFFICULTY_BAND_WIDTH) * DIFFICULTY_BAND_WIDTH

def bands() -> list[int]:
    return list(range(DIFFICULTY_MIN, DIFFICULTY_MAX + 1, DIFFICULTY_BAND_WIDTH))

def summarize(questions) -> dict:
    """Per (subject, grade): question counts by difficulty band and type, plus bands short of target."""
    groups = defaultdict(list)
    for q in questions:
        groups[(q.subject_id, q.grade_id)].append(q)
    out = {}
    for key, qs in sorted(groups.items(), key=lambda kv: (kv[0][0], kv[0][1] is None, kv[0][1] or 0)):
        by_band = Counter(_band(q.difficulty_level) for q in qs)
        counts = {b: by_band.get(b, 0) for b in bands()}
        out[key] = {
            "total": len(qs),
            "bands": counts,
            "types": dict(Counter(q.question_type for q in qs)),
            "short": [b for b, n in counts.items() if n < TARGETS["per_band_min"]],
        }
    return out

def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    path = argv[0] if argv else os.path.join(os.getenv("DATA_DIR", "data"), "questions.json")
    summary = summarize(load_bank(path))
    print(f"Target: ≥{TARGETS['per_band_min']} questions per {DIFFICULTY_BAND_WIDTH}-point band.\n")
    for (subject, grade), info in summary.items():
        types = " ".join(f"{k}={v}" for k, v in sorted(info["types"].items()))
        print(f"subject {subject} grade {grade if grade is not None else '-'}: {info['total']} questions  {types}")
        for b, n in info["bands"].items():
            print(f"  {b:3d}-{b + DIFFICULTY_BAND_WIDTH - 1:3d}: {n:3d}")
        if info["short"]:
            print(f"  → Add questions to bands: {', '.join(str(b) for b in info['short'])}\n")
        else:
            print("  ✓ Meets targets\n")
    return 0 if all(not i["short"] for i in summary.values()) else 1

if __name__ == "__main__":
    sys.exit(main())
