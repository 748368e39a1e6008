import logging

import pendulum
import psycopg

from achievement_engine.achievements.records import (
    UnlockRecord,
    UnlockStatus,
    UnlockWriteResult,
)
from achievement_engine.models.base import BaseModel

logger = logging.getLogger(__name__)


class StudentAchievementModel(BaseModel):
    '''Unlocked achievements; one row per (student profile, achievement).'''

    table = 'student_achievements'

    @classmethod
    def has_unlocked(cls, student_id: int, achievement_id: int) -> bool:
        return cls.exists(
            'student_profile_id = %s AND achievement_id = %s',
            (student_id, achievement_id),
        )

    @classmethod
    def unlock(
        cls, student_id: int, achievement_id: int, points_awarded: int
    ) -> UnlockWriteResult:
        try:
            row = cls.create_if_absent(
                ('student_profile_id', 'achievement_id'),
                {
                    'student_profile_id': student_id,
                    'achievement_id': achievement_id,
                    'points_awarded': int(points_awarded),
                    'earned_at': pendulum.now('UTC'),
                },
            )
        except psycopg.Error as e:
            return UnlockWriteResult(UnlockStatus.FAILURE, f'Database error: {e}')

        if row is None:
            return UnlockWriteResult(
                UnlockStatus.ALREADY_UNLOCKED, 'Achievement already unlocked'
            )
        return UnlockWriteResult(
            UnlockStatus.SUCCESS,
            'Achievement unlocked',
            UnlockRecord(
                student_id=int(row['student_profile_id']),
                achievement_id=int(row['achievement_id']),
                points_awarded=int(row['points_awarded']),
                unlocked_at=row['earned_at'],
            ),
        )
