from __future__ import annotations

import logging
import re
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

import pendulum

from achievement_engine.achievements.rules.schema import (
    ExerciseCondition,
    PerformanceCondition,
    RuleMetadata,
    RuleSchema,
    RuleSchemaError,
    StreakCondition,
    parse_rule_schema,
)
from achievement_engine.utils.constants import (
    MIGRATED_BY,
    MIGRATED_CATEGORY,
    MIGRATION_EXERCISE_COMPLETION,
    MIGRATION_GENERIC_FALLBACK,
    MIGRATION_PERFECT_SCORE,
    MIGRATION_STREAK,
    RULE_EXERCISE_COMPLETION,
    RULE_PERFECT_SCORE,
    RULE_REQUIRES_MANUAL_MIGRATION,
    RULE_SCHEMA_VERSION,
    RULE_STREAK_ACHIEVEMENT,
    SENTINEL_REQUIRED_COUNT,
)

logger = logging.getLogger(__name__)

EXERCISE_COUNT_PATTERN = re.compile(
    r'complete[_\s]*(\d+)[_\s]*exercises?(?:[_\s]*(easy|medium|hard))?'
)
STREAK_PATTERN = re.compile(r'(\d+)[_\s]*days?[_\s]*streak')
PERFECT_SCORE_PATTERN = re.compile(r'perfect[_\s]*score(?:[_\s]*(\d+))?')

LegacyMatcher = Callable[[str], Optional[RuleSchema]]


def match_exercise_count(text: str) -> Optional[RuleSchema]:
    '''complete_10_exercises_hard -> 10 completed exercises, difficulty hard.'''
    match = EXERCISE_COUNT_PATTERN.search(text)
    if not match:
        return None
    condition = ExerciseCondition(
        required_count=int(match.group(1)),
        difficulty=match.group(2) or 'any',
        priority=1,
    )
    return RuleSchema(RULE_SCHEMA_VERSION, RULE_EXERCISE_COMPLETION, (condition,))


def match_day_streak(text: str) -> Optional[RuleSchema]:
    '''7_day_streak -> daily streak of 7.'''
    match = STREAK_PATTERN.search(text)
    if not match:
        return None
    condition = StreakCondition(
        required_streak_length=int(match.group(1)),
        streak_type='daily',
        priority=1,
    )
    return RuleSchema(RULE_SCHEMA_VERSION, RULE_STREAK_ACHIEVEMENT, (condition,))


def match_perfect_score(text: str) -> Optional[RuleSchema]:
    '''perfect_score[_N] -> score of 100 on at least N attempts (default 1).'''
    match = PERFECT_SCORE_PATTERN.search(text)
    if not match:
        return None
    condition = PerformanceCondition(
        minimum_score=100.0,
        minimum_attempts=int(match.group(1)) if match.group(1) else 1,
        performance_type='score',
        priority=1,
    )
    return RuleSchema(RULE_SCHEMA_VERSION, RULE_PERFECT_SCORE, (condition,))


# Order matters: the first matcher that fires wins
LEGACY_MATCHERS: list[tuple[str, LegacyMatcher]] = [
    (MIGRATION_EXERCISE_COMPLETION, match_exercise_count),
    (MIGRATION_STREAK, match_day_streak),
    (MIGRATION_PERFECT_SCORE, match_perfect_score),
]


def manual_migration_rule() -> RuleSchema:
    '''Fail-closed rule for legacy text nobody could interpret.'''
    condition = ExerciseCondition(required_count=SENTINEL_REQUIRED_COUNT, priority=1)
    return RuleSchema(RULE_SCHEMA_VERSION, RULE_REQUIRES_MANUAL_MIGRATION, (condition,))


def _with_migration_metadata(
    rule: RuleSchema,
    original_text: str,
    migration_type: str,
    achievement_name: Optional[str],
    migrated_at: datetime,
) -> RuleSchema:
    subject = f"'{achievement_name}'" if achievement_name else 'achievement'
    metadata = RuleMetadata(
        description=f'Auto-migrated from legacy rule for {subject}',
        category=MIGRATED_CATEGORY,
        created_by=MIGRATED_BY,
        custom_properties={
            'originalRule': original_text,
            'migrationType': migration_type,
            'migrationDate': migrated_at.isoformat(),
        },
    )
    return replace(rule, metadata=metadata)


def migrate_legacy_rule(
    text: str,
    achievement_name: Optional[str] = None,
    migrated_at: Optional[datetime] = None,
    matchers: Optional[list[tuple[str, LegacyMatcher]]] = None,
) -> RuleSchema:
    '''Convert free-text legacy rule into a structured rule.

    Identical text and timestamp always yield an identical rule. Text no
    matcher understands becomes the manual-migration sentinel.
    '''
    migrated_at = migrated_at or pendulum.now('UTC')
    normalized = (text or '').lower().strip()

    for migration_type, matcher in matchers or LEGACY_MATCHERS:
        rule = matcher(normalized)
        if rule is not None:
            return _with_migration_metadata(
                rule, text, migration_type, achievement_name, migrated_at
            )

    logger.warning(f'Legacy rule needs manual migration: {text!r}')
    return _with_migration_metadata(
        manual_migration_rule(),
        text,
        MIGRATION_GENERIC_FALLBACK,
        achievement_name,
        migrated_at,
    )


def is_structured_rule(text: Optional[str]) -> bool:
    if not text or not text.strip():
        return False
    try:
        parse_rule_schema(text)
    except RuleSchemaError:
        return False
    return True


def resolve_rule(
    text: str,
    achievement_name: Optional[str] = None,
    migrated_at: Optional[datetime] = None,
) -> RuleSchema:
    '''Parse structured rule JSON, or migrate legacy text when it is not one.'''
    try:
        return parse_rule_schema(text)
    except RuleSchemaError as e:
        logger.debug(f'Rule is not structured JSON ({e}), migrating: {text!r}')
    return migrate_legacy_rule(text, achievement_name, migrated_at)
