import logging

from achievement_engine.database.db_manager import DBManager

logger = logging.getLogger(__name__)


def init_schema(db: DBManager):
    '''Create the database schema if it doesn't already exist.'''

    # --- STUDENT PROFILE TABLE ---
    db.execute(
        '''
        CREATE TABLE IF NOT EXISTS student_profile (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL UNIQUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        '''
    )

    # --- ACHIEVEMENTS TABLE ---
    # trigger_rule holds either legacy text or the structured JSON rule
    db.execute(
        '''
        CREATE TABLE IF NOT EXISTS achievements (
            id BIGSERIAL PRIMARY KEY,
            achievement_name TEXT NOT NULL,
            achievement_description TEXT,
            trigger_rule TEXT,
            points_value INTEGER NOT NULL DEFAULT 0,
            rarity_tier TEXT,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            is_hidden BOOLEAN NOT NULL DEFAULT FALSE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        '''
    )

    # --- STUDENT ACHIEVEMENTS TABLE ---
    db.execute(
        '''
        CREATE TABLE IF NOT EXISTS student_achievements (
            id BIGSERIAL PRIMARY KEY,
            student_profile_id BIGINT NOT NULL
                REFERENCES student_profile(id) ON DELETE CASCADE,
            achievement_id BIGINT NOT NULL
                REFERENCES achievements(id) ON DELETE CASCADE,
            points_awarded INTEGER NOT NULL DEFAULT 0,
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_student_achievement
                UNIQUE (student_profile_id, achievement_id)
        )
        '''
    )

    # --- EXERCISE ATTEMPTS TABLE ---
    db.execute(
        '''
        CREATE TABLE IF NOT EXISTS exercise_attempts (
            id BIGSERIAL PRIMARY KEY,
            student_profile_id BIGINT NOT NULL
                REFERENCES student_profile(id) ON DELETE CASCADE,
            exercise_id BIGINT,
            learning_point_id BIGINT,
            is_completed BOOLEAN NOT NULL DEFAULT FALSE,
            score DOUBLE PRECISION,
            attempted_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        '''
    )

    # --- STUDENT STREAKS TABLE ---
    db.execute(
        '''
        CREATE TABLE IF NOT EXISTS student_streaks (
            student_profile_id BIGINT NOT NULL
                REFERENCES student_profile(id) ON DELETE CASCADE,
            streak_type TEXT NOT NULL DEFAULT 'daily',
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            PRIMARY KEY (student_profile_id, streak_type)
        )
        '''
    )

    # --- NOTIFICATIONS TABLE ---
    db.execute(
        '''
        CREATE TABLE IF NOT EXISTS notifications (
            id BIGSERIAL PRIMARY KEY,
            recipient_user_id BIGINT NOT NULL,
            notification_type TEXT NOT NULL,
            title TEXT NOT NULL,
            message TEXT NOT NULL,
            payload JSONB,
            is_read BOOLEAN NOT NULL DEFAULT FALSE,
            sent_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        '''
    )

    # --- MIGRATIONS TABLE ---
    db.execute(
        '''
        CREATE TABLE IF NOT EXISTS migrations (
            id BIGSERIAL PRIMARY KEY,
            filename TEXT NOT NULL UNIQUE,
            applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        '''
    )

    # --- INDEXES ---
    db.execute(
        'CREATE INDEX IF NOT EXISTS idx_exercise_attempts_student '
        'ON exercise_attempts(student_profile_id, attempted_at);'
    )
    db.execute(
        'CREATE INDEX IF NOT EXISTS idx_achievements_active '
        'ON achievements(is_active);'
    )
    db.execute(
        'CREATE INDEX IF NOT EXISTS idx_notifications_recipient '
        'ON notifications(recipient_user_id, sent_at);'
    )
