from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional


@dataclass(frozen=True)
class Achievement:
    '''Catalog entry; administered elsewhere and read-only to the engine.'''

    id: int
    name: str
    trigger_rule: Optional[str]
    points_value: int = 0
    description: Optional[str] = None
    rarity_tier: Optional[str] = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> 'Achievement':
        return cls(
            id=int(row['id']),
            name=row.get('achievement_name') or row.get('name') or '',
            trigger_rule=row.get('trigger_rule'),
            points_value=int(row.get('points_value') or 0),
            description=row.get('achievement_description'),
            rarity_tier=row.get('rarity_tier'),
            is_active=bool(row.get('is_active', True)),
        )


@dataclass(frozen=True)
class ExerciseStats:
    total_completed: int = 0
    average_score: float = 0.0
    total_attempted: int = 0


@dataclass(frozen=True)
class UnlockRecord:
    student_id: int
    achievement_id: int
    points_awarded: int
    unlocked_at: datetime


class UnlockStatus(str, Enum):
    SUCCESS = 'SUCCESS'
    ALREADY_UNLOCKED = 'ALREADY_UNLOCKED'
    FAILURE = 'FAILURE'


@dataclass(frozen=True)
class UnlockWriteResult:
    status: UnlockStatus
    message: str = ''
    record: Optional[UnlockRecord] = None

    @property
    def ok(self) -> bool:
        return self.status is UnlockStatus.SUCCESS
