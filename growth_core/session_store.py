"""Process-wide store of in-progress adaptive sessions.

One ``AdaptiveSession`` per ``(student_id, subject_id, period)`` key. Every
key has its own lock; the controller holds it for the whole of an answer
submission so two requests for the same attempt cannot interleave, while
other students' sessions proceed untouched.
"""
from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Hashable, Iterator, List, Optional

from .types import AdaptiveSession, SessionKey


log = logging.getLogger(__name__)


class SessionStore:
    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self.clock = clock or time.time
        self._data: Dict[SessionKey, AdaptiveSession] = {}
        self._by_assessment: Dict[int, SessionKey] = {}
        # key -> [lock, holders]; dropped when the last holder leaves
        self._locks: Dict[Hashable, list] = {}
        self._guard = threading.Lock()

    def _acquire_entry(self, key: Hashable) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _release_entry(self, key: Hashable) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def locked(self, key: Hashable) -> Iterator[None]:
        lk = self._acquire_entry(key)
        try:
            with lk:
                yield
        finally:
            self._release_entry(key)

    def create(self, session: AdaptiveSession) -> None:
        with self._guard:
            old = self._data.get(session.key)
            if old is not None:
                log.warning(
                    "session key %s restarted; dropping assessment %s", session.key, old.assessment_id
                )
                self._by_assessment.pop(old.assessment_id, None)
            self._data[session.key] = session
            self._by_assessment[session.assessment_id] = session.key

    def get(self, key: SessionKey) -> Optional[AdaptiveSession]:
        with self._guard:
            return self._data.get(key)

    def key_for(self, student_id: int, assessment_id: int) -> Optional[SessionKey]:
        with self._guard:
            key = self._by_assessment.get(assessment_id)
            if key is None:
                return None
            sess = self._data.get(key)
            if sess is None or sess.student_id != student_id:
                return None
            return key

    def find(self, student_id: int, assessment_id: int) -> Optional[AdaptiveSession]:
        key = self.key_for(student_id, assessment_id)
        return self.get(key) if key is not None else None

    def close(self, key: SessionKey) -> Optional[AdaptiveSession]:
        with self._guard:
            sess = self._data.pop(key, None)
            if sess is not None:
                self._by_assessment.pop(sess.assessment_id, None)
            return sess

    def __contains__(self, key: object) -> bool:
        with self._guard:
            return key in self._data

    def __len__(self) -> int:
        with self._guard:
            return len(self._data)

    def expired(self, grace_minutes: float = 0.0) -> List[AdaptiveSession]:
        """Sessions whose time limit plus ``grace_minutes`` has passed."""
        now = self.clock()
        with self._guard:
            return [
                s for s in self._data.values()
                if (now - s.start_time) / 60.0 >= s.time_limit_minutes + grace_minutes
            ]


class Reaper:
    """Background thread calling ``sweep`` every ``interval`` seconds."""

    def __init__(self, sweep: Callable[[], object], interval: float) -> None:
        self._sweep = sweep
        self.interval = float(interval)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None or self.interval <= 0:
            return
        self._thread = threading.Thread(target=self._run, name="session-reaper", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval + 1.0)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self._sweep()
            except Exception:
                log.exception("session reaper sweep failed")
