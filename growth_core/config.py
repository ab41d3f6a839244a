from __future__ import annotations
import os, json, pathlib, random


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


DIFFICULTY_MIN: int = 100
DIFFICULTY_MAX: int = 350
DEFAULT_STARTING_DIFFICULTY: int = 225

STEP_MIN: int = 3
STEP_MAX: int = 5

PERIODS: tuple[str, ...] = ("Fall", "Winter", "Spring")
ASSIGNMENT_PERIOD: str = "Fall"

DIFFICULTY_BAND_WIDTH: int = 50

REAPER_INTERVAL_SEC: float = 0.0
REAPER_GRACE_MINUTES: float = 5.0

RESPONSE_EXPORT_ENABLED: bool = True

DEBUG_TRACE: bool = False
DEBUG_SEED: int | None = None
TRACE_FIELDS: tuple[str, ...] = (
    "assessment_id",
    "question_id",
    "order",
    "difficulty",
    "correct",
    "current",
    "target",
    "count",
)
# // env overrides for staging/ops; defaults remain conservative.
REAPER_INTERVAL_SEC = _env_float("REAPER_INTERVAL_SEC", REAPER_INTERVAL_SEC)
REAPER_GRACE_MINUTES = _env_float("REAPER_GRACE_MINUTES", REAPER_GRACE_MINUTES)
RESPONSE_EXPORT_ENABLED = _env_bool("RESPONSE_EXPORT_ENABLED", RESPONSE_EXPORT_ENABLED)
DEBUG_TRACE = _env_bool("DEBUG_TRACE", False)
_seed_raw = _env_int("DEBUG_SEED", -1)
DEBUG_SEED = _seed_raw if _seed_raw >= 0 else None


def clamp_difficulty(value: int) -> int:
    return max(DIFFICULTY_MIN, min(DIFFICULTY_MAX, int(value)))


def _env_true(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1","true","yes","on")
def load_config() -> dict:
    cfg = {}
    p = pathlib.Path("config.json")
    if p.exists():
        try: cfg = json.loads(p.read_text(encoding="utf-8"))
        except ValueError: cfg = {}
    e = os.environ
    if e.get("USE_LLM_GRADING"): cfg["USE_LLM_GRADING"] = _env_true("USE_LLM_GRADING")
    if e.get("LLM_BACKEND"): cfg["LLM_BACKEND"] = e.get("LLM_BACKEND")
    if e.get("SEED"): cfg["SEED"] = int(e.get("SEED"))
    return cfg
def get_backend(cfg: dict) -> str|None:
    if not cfg.get("USE_LLM_GRADING"): return None
    b = (cfg.get("LLM_BACKEND") or "").lower().strip()
    return b if b == "azure" else None
def make_rng(cfg: dict | None = None) -> random.Random:
    s = (cfg or {}).get("SEED", DEBUG_SEED)
    return random.Random(int(s)) if s is not None else random.Random()
