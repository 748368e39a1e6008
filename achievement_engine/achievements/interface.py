from __future__ import annotations

from typing import Optional, Protocol, Sequence, runtime_checkable

from achievement_engine.achievements.events import AchievementUnlockedEvent
from achievement_engine.achievements.records import (
    Achievement,
    ExerciseStats,
    UnlockWriteResult,
)


@runtime_checkable
class AchievementCatalog(Protocol):
    def active_achievements(self) -> Sequence[Achievement]:
        pass


@runtime_checkable
class ExerciseStatsSource(Protocol):
    def student_stats(self, student_id: int) -> Optional[ExerciseStats]:
        '''Aggregate exercise statistics, or None when the student has none.'''
        pass

    def count_recent_attempts(
        self, student_id: int, learning_point_id: int, window_days: int
    ) -> int:
        pass


@runtime_checkable
class StreakSource(Protocol):
    def current_streak(self, student_id: int, streak_type: str) -> int:
        pass


@runtime_checkable
class UserIdentityResolver(Protocol):
    def user_id_for_student(self, student_id: int) -> Optional[int]:
        pass


@runtime_checkable
class UnlockStore(Protocol):
    def has_unlocked(self, student_id: int, achievement_id: int) -> bool:
        pass

    def unlock(
        self, student_id: int, achievement_id: int, points_awarded: int
    ) -> UnlockWriteResult:
        '''
        Write the unlock only if the (student, achievement) pair has none yet.
        Must be atomic: concurrent callers for the same pair see exactly one
        SUCCESS.
        '''
        pass


@runtime_checkable
class Notifier(Protocol):
    def achievement_unlocked(self, event: AchievementUnlockedEvent) -> None:
        pass
