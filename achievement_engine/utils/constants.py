RULE_SCHEMA_VERSION = '1.0'

# Threshold no real student can reach; used by rules that need a human to migrate
SENTINEL_REQUIRED_COUNT = 999999

# Event types
EXERCISE_COMPLETED = 'exercise_completed'
STREAK_UPDATED = 'streak_updated'
LEARNING_POINT_COMPLETED = 'learning_point_completed'
ACHIEVEMENT_UNLOCKED = 'achievement_unlocked'

TRIGGER_EVENT_TYPES = (EXERCISE_COMPLETED, STREAK_UPDATED, LEARNING_POINT_COMPLETED)

# Condition types
EXERCISE = 'EXERCISE'
STREAK = 'STREAK'
TIME = 'TIME'
PERFORMANCE = 'PERFORMANCE'
COMPOSITE = 'COMPOSITE'

# Rule types
RULE_EXERCISE_COMPLETION = 'EXERCISE_COMPLETION'
RULE_STREAK_ACHIEVEMENT = 'STREAK_ACHIEVEMENT'
RULE_PERFECT_SCORE = 'PERFECT_SCORE'
RULE_REQUIRES_MANUAL_MIGRATION = 'REQUIRES_MANUAL_MIGRATION'

# Migration types (recorded in rule metadata)
MIGRATION_EXERCISE_COMPLETION = 'exercise_completion'
MIGRATION_STREAK = 'streak'
MIGRATION_PERFECT_SCORE = 'perfect_score'
MIGRATION_GENERIC_FALLBACK = 'generic_fallback'

MIGRATED_CATEGORY = 'auto-migrated'
MIGRATED_BY = 'rule_migration'

COMBINATORS = ('AND', 'OR', 'NOT')
LOGICAL_OPERATORS = ('ALL', 'ANY', 'NONE')

# Deepest allowed nesting of COMPOSITE conditions
MAX_COMPOSITE_DEPTH = 16

# Which trigger events can change the outcome of a condition type
EVENTS_BY_CONDITION_TYPE = {
    EXERCISE: (EXERCISE_COMPLETED, LEARNING_POINT_COMPLETED),
    STREAK: (STREAK_UPDATED, EXERCISE_COMPLETED),
    TIME: (EXERCISE_COMPLETED,),
    PERFORMANCE: (EXERCISE_COMPLETED,),
}

ACHIEVEMENT_NOTIFICATION_TYPE = 'ACHIEVEMENT_UNLOCKED'
ACHIEVEMENT_NOTIFICATION_TITLE = 'Achievement unlocked!'
DEFAULT_WEBHOOK_TIMEOUT = 5.0
