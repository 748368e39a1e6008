from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional, Union

import pendulum

from achievement_engine.utils.constants import (
    ACHIEVEMENT_UNLOCKED,
    EXERCISE_COMPLETED,
    LEARNING_POINT_COMPLETED,
    STREAK_UPDATED,
)

EventType = Literal[
    'exercise_completed', 'streak_updated', 'learning_point_completed'
]


def _new_event_id() -> str:
    return uuid.uuid4().hex


def _utc_now() -> datetime:
    return pendulum.now('UTC')


@dataclass(frozen=True)
class ExerciseCompletedEvent:
    student_id: int
    exercise_id: Optional[int] = None
    learning_point_id: Optional[int] = None
    difficulty: Optional[str] = None
    is_correct: Optional[bool] = None
    score: Optional[float] = None
    time_spent_seconds: Optional[int] = None
    hints_used: Optional[int] = None
    attempt_number: Optional[int] = None
    exercise_type: Optional[str] = None
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=_utc_now)

    @property
    def type(self) -> EventType:
        return 'exercise_completed'


@dataclass(frozen=True)
class StreakUpdatedEvent:
    student_id: int
    streak_type: str = 'daily'
    current_streak: Optional[int] = None
    previous_streak: Optional[int] = None
    is_new_record: Optional[bool] = None
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=_utc_now)

    @property
    def type(self) -> EventType:
        return 'streak_updated'


@dataclass(frozen=True)
class LearningPointCompletedEvent:
    student_id: int
    learning_point_id: Optional[int] = None
    learning_point_name: Optional[str] = None
    total_exercises_completed: Optional[int] = None
    average_score: Optional[float] = None
    total_time_spent: Optional[int] = None
    mastery_level: Optional[str] = None
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=_utc_now)

    @property
    def type(self) -> EventType:
        return 'learning_point_completed'


TriggerEvent = Union[
    ExerciseCompletedEvent, StreakUpdatedEvent, LearningPointCompletedEvent
]


@dataclass(frozen=True)
class AchievementUnlockedEvent:
    '''Emitted to the notifier after an unlock has been written.'''

    user_id: int
    student_id: int
    achievement_id: int
    achievement_name: str
    points_awarded: int
    rarity_tier: Optional[str] = None
    trigger_reason: Optional[str] = None
    event_id: str = field(default_factory=_new_event_id)
    occurred_at: datetime = field(default_factory=_utc_now)

    @property
    def type(self) -> str:
        return ACHIEVEMENT_UNLOCKED

    def to_dict(self) -> dict[str, Any]:
        return {
            'eventId': self.event_id,
            'eventType': self.type,
            'occurredAt': self.occurred_at.isoformat(),
            'userId': self.user_id,
            'studentProfileId': self.student_id,
            'achievementId': self.achievement_id,
            'achievementName': self.achievement_name,
            'pointsAwarded': self.points_awarded,
            'rarityTier': self.rarity_tier,
            'triggerReason': self.trigger_reason,
        }


_EVENT_CLASSES: dict[str, type] = {
    EXERCISE_COMPLETED: ExerciseCompletedEvent,
    STREAK_UPDATED: StreakUpdatedEvent,
    LEARNING_POINT_COMPLETED: LearningPointCompletedEvent,
}

_CAMEL_RE = re.compile(r'(?<!^)(?=[A-Z])')


def _snake(key: str) -> str:
    return _CAMEL_RE.sub('_', key).lower()


def event_from_payload(payload: dict[str, Any]) -> TriggerEvent:
    '''Build a typed trigger event from a wire payload.

    Accepts camelCase or snake_case keys; ``studentProfileId`` is accepted as
    an alias of ``studentId``.
    '''
    if not isinstance(payload, dict):
        raise ValueError('Event payload must be a JSON object')
    raw_type = str(payload.get('eventType') or payload.get('event_type') or '')
    # ExerciseCompletedEvent, EXERCISE_COMPLETED and exercise_completed all match
    event_type = raw_type.lower() if '_' in raw_type else _snake(raw_type)
    event_type = event_type.removesuffix('_event')
    cls = _EVENT_CLASSES.get(event_type)
    if cls is None:
        raise ValueError(f'Unknown trigger event type: {raw_type!r}')

    values = {_snake(k): v for k, v in payload.items()}
    if 'student_id' not in values and 'student_profile_id' in values:
        values['student_id'] = values['student_profile_id']
    if values.get('student_id') is None:
        raise ValueError('studentId is required')
    values['student_id'] = int(values['student_id'])

    occurred_at = values.get('occurred_at')
    if isinstance(occurred_at, str):
        values['occurred_at'] = pendulum.parse(occurred_at, strict=False)

    allowed = set(cls.__dataclass_fields__)
    return cls(**{k: v for k, v in values.items() if k in allowed})
