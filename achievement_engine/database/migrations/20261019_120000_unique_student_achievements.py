from achievement_engine.database.db_manager import DBManager

FILENAME = '20261019_120000_unique_student_achievements.py'


def up(db_manager: DBManager):
    # Keep the earliest unlock of each pair before adding the constraint
    db_manager.execute('''
        DELETE FROM student_achievements a
        USING student_achievements b
        WHERE a.student_profile_id = b.student_profile_id
          AND a.achievement_id = b.achievement_id
          AND (a.earned_at, a.id) > (b.earned_at, b.id);
    ''')
    db_manager.execute('''
        DO $$
        BEGIN
            IF NOT EXISTS (
                SELECT 1 FROM pg_constraint WHERE conname = 'uq_student_achievement'
            ) THEN
                ALTER TABLE student_achievements
                    ADD CONSTRAINT uq_student_achievement
                    UNIQUE (student_profile_id, achievement_id);
            END IF;
        END
        $$;
    ''')


def down(db_manager: DBManager):
    db_manager.execute(
        'ALTER TABLE student_achievements '
        'DROP CONSTRAINT IF EXISTS uq_student_achievement'
    )
    db_manager.execute('DELETE FROM migrations WHERE filename = %s', (FILENAME,))
