from typing import Optional

from achievement_engine.database.db_manager import DBManager
from achievement_engine.models.base import BaseModel


class StudentProfileModel(BaseModel):
    table = 'student_profile'

    @classmethod
    def user_id_for_student(cls, student_id: int) -> Optional[int]:
        with DBManager() as db:
            row = db.fetchone(
                'SELECT user_id FROM student_profile WHERE id = %s', (student_id,)
            )
        return int(row['user_id']) if row and row.get('user_id') is not None else None
