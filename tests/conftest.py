import contextlib
import threading
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

import pendulum
import pytest

from achievement_engine.achievements.records import (
    Achievement,
    ExerciseStats,
    UnlockRecord,
    UnlockStatus,
    UnlockWriteResult,
)


@dataclass
class FakeDB:
    fetchone_results: list[Any] = field(default_factory=list)
    fetchall_results: list[Any] = field(default_factory=list)
    executed: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)
    last_query: str | None = None
    last_params: tuple[Any, ...] | None = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def fetchone(self, query: str, params=None):
        self.last_query = query
        self.last_params = tuple(params or ())
        if self.fetchone_results:
            return self.fetchone_results.pop(0)

    def fetchall(self, query: str, params=None):
        self.last_query = query
        self.last_params = tuple(params or ())
        if self.fetchall_results:
            return self.fetchall_results.pop(0)
        return []

    def execute(self, query: str, params=None) -> None:
        self.executed.append((query, tuple(params or ())))


class FakeDBManager:
    def __init__(self, db: FakeDB):
        self._db = db

    def __call__(self):
        return self._db


@contextlib.contextmanager
def patched_dbmanager(monkeypatch, target_module, db: FakeDB) -> Iterator[FakeDB]:
    monkeypatch.setattr(target_module, 'DBManager', FakeDBManager(db))
    yield db


@pytest.fixture()
def fake_db() -> FakeDB:
    return FakeDB()


# --- in-memory collaborators ------------------------------------------------


class FakeCatalog:
    def __init__(self, achievements: Optional[list[Achievement]] = None):
        self.achievements = list(achievements or [])
        self.loads = 0

    def active_achievements(self) -> list[Achievement]:
        self.loads += 1
        return [a for a in self.achievements if a.is_active]


class FakeStats:
    def __init__(
        self,
        stats: Optional[dict[int, ExerciseStats]] = None,
        recent_attempts: int = 0,
    ):
        self.stats = dict(stats or {})
        self.recent_attempts = recent_attempts
        self.calls: list[int] = []

    def student_stats(self, student_id: int) -> Optional[ExerciseStats]:
        self.calls.append(student_id)
        return self.stats.get(student_id)

    def count_recent_attempts(
        self, student_id: int, learning_point_id: int, window_days: int
    ) -> int:
        return self.recent_attempts


class FakeStreaks:
    def __init__(self, streaks: Optional[dict[tuple[int, str], int]] = None):
        self.streaks = dict(streaks or {})

    def current_streak(self, student_id: int, streak_type: str) -> int:
        return self.streaks.get((student_id, streak_type), 0)


class FakeIdentities:
    def __init__(self, users: Optional[dict[int, int]] = None):
        self.users = dict(users or {})

    def user_id_for_student(self, student_id: int) -> Optional[int]:
        return self.users.get(student_id)


class InMemoryUnlockStore:
    '''Unlock store whose conditional write is atomic under a lock.'''

    def __init__(self):
        self.rows: dict[tuple[int, int], UnlockRecord] = {}
        self.unlock_calls: list[tuple[int, int, int]] = []
        self._lock = threading.Lock()

    def has_unlocked(self, student_id: int, achievement_id: int) -> bool:
        return (student_id, achievement_id) in self.rows

    def unlock(
        self, student_id: int, achievement_id: int, points_awarded: int
    ) -> UnlockWriteResult:
        with self._lock:
            self.unlock_calls.append((student_id, achievement_id, points_awarded))
            key = (student_id, achievement_id)
            if key in self.rows:
                return UnlockWriteResult(
                    UnlockStatus.ALREADY_UNLOCKED, 'Achievement already unlocked'
                )
            record = UnlockRecord(
                student_id, achievement_id, points_awarded, pendulum.now('UTC')
            )
            self.rows[key] = record
            return UnlockWriteResult(UnlockStatus.SUCCESS, 'Achievement unlocked', record)


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.events: list[Any] = []
        self.fail = fail

    def achievement_unlocked(self, event) -> None:
        if self.fail:
            raise RuntimeError('notification service down')
        self.events.append(event)


@pytest.fixture()
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture()
def stats() -> FakeStats:
    return FakeStats()


@pytest.fixture()
def streaks() -> FakeStreaks:
    return FakeStreaks()


@pytest.fixture()
def identities() -> FakeIdentities:
    return FakeIdentities({42: 4200, 7: 700})


@pytest.fixture()
def unlock_store() -> InMemoryUnlockStore:
    return InMemoryUnlockStore()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
