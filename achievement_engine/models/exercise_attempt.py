from typing import Optional

from achievement_engine.achievements.records import ExerciseStats
from achievement_engine.database.db_manager import DBManager
from achievement_engine.models.base import BaseModel


class ExerciseAttemptModel(BaseModel):
    table = 'exercise_attempts'

    @classmethod
    def student_stats(cls, student_id: int) -> Optional[ExerciseStats]:
        with DBManager() as db:
            row = db.fetchone(
                '''
                SELECT COUNT(*) AS total_attempted,
                       COUNT(*) FILTER (WHERE is_completed) AS total_completed,
                       AVG(score) FILTER (WHERE is_completed) AS average_score
                FROM exercise_attempts
                WHERE student_profile_id = %s
                ''',
                (student_id,),
            )
        if not row or not row.get('total_attempted'):
            return None
        return ExerciseStats(
            total_completed=int(row.get('total_completed') or 0),
            average_score=float(row.get('average_score') or 0.0),
            total_attempted=int(row['total_attempted']),
        )

    @classmethod
    def count_recent_attempts(
        cls, student_id: int, learning_point_id: int, window_days: int
    ) -> int:
        with DBManager() as db:
            row = db.fetchone(
                '''
                SELECT COUNT(*) AS cnt
                FROM exercise_attempts
                WHERE student_profile_id = %s
                  AND learning_point_id = %s
                  AND attempted_at >= NOW() - make_interval(days => %s)
                ''',
                (student_id, learning_point_id, window_days),
            )
        return int(row['cnt']) if row and 'cnt' in row else 0
