from achievement_engine.database.db_manager import DBManager
from achievement_engine.models.base import BaseModel


class StudentStreakModel(BaseModel):
    table = 'student_streaks'

    @classmethod
    def current_streak(cls, student_id: int, streak_type: str) -> int:
        with DBManager() as db:
            row = db.fetchone(
                'SELECT current_streak FROM student_streaks '
                'WHERE student_profile_id = %s AND streak_type = %s',
                (student_id, streak_type),
            )
        return int(row['current_streak']) if row and row.get('current_streak') else 0
