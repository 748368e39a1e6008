import json

import pendulum
import pytest

from achievement_engine.achievements.rules.migration import (
    is_structured_rule,
    migrate_legacy_rule,
    resolve_rule,
)
from achievement_engine.achievements.rules.schema import (
    ExerciseCondition,
    PerformanceCondition,
    StreakCondition,
)

MIGRATED_AT = pendulum.datetime(2026, 10, 19, 12, 0, tz='UTC')


def test_exercise_count_with_difficulty():
    rule = migrate_legacy_rule('complete_10_exercises_hard', migrated_at=MIGRATED_AT)

    assert rule.rule_type == 'EXERCISE_COMPLETION'
    assert rule.version == '1.0'
    assert rule.conditions == (
        ExerciseCondition(required_count=10, difficulty='hard', priority=1),
    )


def test_exercise_count_without_difficulty_means_any():
    rule = migrate_legacy_rule('Complete 5 exercises', migrated_at=MIGRATED_AT)
    assert rule.conditions[0].difficulty == 'any'
    assert rule.conditions[0].required_count == 5


def test_day_streak():
    rule = migrate_legacy_rule('7_day_streak', migrated_at=MIGRATED_AT)

    assert rule.rule_type == 'STREAK_ACHIEVEMENT'
    assert rule.conditions == (
        StreakCondition(required_streak_length=7, streak_type='daily', priority=1),
    )


def test_days_streak_with_spaces():
    rule = migrate_legacy_rule('  30 Days Streak ', migrated_at=MIGRATED_AT)
    assert rule.conditions[0].required_streak_length == 30


def test_perfect_score_defaults_to_one_attempt():
    rule = migrate_legacy_rule('perfect_score', migrated_at=MIGRATED_AT)

    assert rule.rule_type == 'PERFECT_SCORE'
    condition = rule.conditions[0]
    assert isinstance(condition, PerformanceCondition)
    assert condition.minimum_score == 100.0
    assert condition.minimum_attempts == 1


def test_perfect_score_with_count():
    rule = migrate_legacy_rule('perfect_score_5', migrated_at=MIGRATED_AT)
    assert rule.conditions[0].minimum_attempts == 5


def test_exercise_matcher_runs_before_streak():
    rule = migrate_legacy_rule(
        'complete_3_exercises and keep a 4 day streak', migrated_at=MIGRATED_AT
    )
    assert rule.rule_type == 'EXERCISE_COMPLETION'
    assert rule.metadata.custom_properties['migrationType'] == 'exercise_completion'


@pytest.mark.parametrize('text', ['be awesome', '', 'complete all exercises'])
def test_unmatched_text_becomes_sentinel(text):
    rule = migrate_legacy_rule(text, migrated_at=MIGRATED_AT)

    assert rule.requires_manual_migration
    assert rule.rule_type == 'REQUIRES_MANUAL_MIGRATION'
    assert len(rule.conditions) == 1
    assert rule.conditions[0].required_count == 999999
    assert rule.metadata.custom_properties['migrationType'] == 'generic_fallback'


def test_migration_metadata():
    rule = migrate_legacy_rule(
        'Complete_10_Exercises_Hard', 'Hard Worker', migrated_at=MIGRATED_AT
    )
    metadata = rule.metadata

    assert metadata.category == 'auto-migrated'
    assert metadata.created_by == 'rule_migration'
    assert "'Hard Worker'" in metadata.description
    assert metadata.custom_properties == {
        'originalRule': 'Complete_10_Exercises_Hard',
        'migrationType': 'exercise_completion',
        'migrationDate': MIGRATED_AT.isoformat(),
    }


def test_same_text_and_time_gives_identical_rule():
    first = migrate_legacy_rule('7_day_streak', 'Week', migrated_at=MIGRATED_AT)
    second = migrate_legacy_rule('7_day_streak', 'Week', migrated_at=MIGRATED_AT)

    assert first == second
    assert first.to_json() == second.to_json()


def test_custom_matchers_replace_defaults():
    rule = migrate_legacy_rule(
        '7_day_streak', migrated_at=MIGRATED_AT, matchers=[]
    )
    assert rule.requires_manual_migration


def test_resolve_rule_prefers_structured_json():
    text = json.dumps(
        {
            'version': '1.0',
            'ruleType': 'STREAK_ACHIEVEMENT',
            'conditions': [
                {'conditionType': 'STREAK', 'requiredStreakLength': 3}
            ],
        }
    )
    rule = resolve_rule(text)

    assert rule.metadata is None
    assert rule.conditions == (StreakCondition(required_streak_length=3),)
    assert is_structured_rule(text)


def test_resolve_rule_migrates_legacy_text():
    rule = resolve_rule('complete_10_exercises_hard', 'Hard', MIGRATED_AT)
    assert rule.rule_type == 'EXERCISE_COMPLETION'
    assert not is_structured_rule('complete_10_exercises_hard')
    assert not is_structured_rule('   ')


def test_deeply_nested_rule_resolves_to_sentinel():
    condition = {'conditionType': 'EXERCISE', 'requiredCount': 1}
    for _ in range(400):
        condition = {'conditionType': 'COMPOSITE', 'subConditions': [condition]}
    text = json.dumps(
        {'version': '1.0', 'ruleType': 'DEEP', 'conditions': [condition]}
    )

    rule = resolve_rule(text, 'Deep', MIGRATED_AT)

    assert rule.requires_manual_migration
    assert rule.metadata.custom_properties['originalRule'] == text
