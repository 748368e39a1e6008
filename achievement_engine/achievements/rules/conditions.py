'''Per-type condition evaluators.

The set of condition types is closed: ``evaluate_condition`` dispatches on the
concrete condition class and every branch returns a ``ConditionResult``.
Nothing raised inside an evaluator escapes it.
'''

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from achievement_engine.achievements.events import TriggerEvent
from achievement_engine.achievements.interface import (
    ExerciseStatsSource,
    StreakSource,
)
from achievement_engine.achievements.records import ExerciseStats
from achievement_engine.achievements.rules.results import ConditionResult
from achievement_engine.achievements.rules.schema import (
    CompositeCondition,
    ExerciseCondition,
    PerformanceCondition,
    RuleCondition,
    StreakCondition,
    TimeCondition,
)
from achievement_engine.utils.constants import (
    COMPOSITE,
    EXERCISE,
    PERFORMANCE,
    STREAK,
    TIME,
)

logger = logging.getLogger(__name__)


@dataclass
class EvaluationContext:
    student_id: int
    event: TriggerEvent
    stats: ExerciseStatsSource
    streaks: StreakSource
    _stats_cache: Optional[ExerciseStats] = field(default=None, repr=False)

    def exercise_stats(self) -> ExerciseStats:
        # One statistics read per rule evaluation
        if self._stats_cache is None:
            self._stats_cache = self.stats.student_stats(self.student_id) or ExerciseStats()
        return self._stats_cache


def evaluate_exercise(
    condition: ExerciseCondition, ctx: EvaluationContext
) -> ConditionResult:
    stats = ctx.exercise_stats()
    completed = int(stats.total_completed or 0)

    actual: dict = {'completedExercises': completed}
    required: dict = {'requiredCount': condition.required_count}
    passed = completed >= condition.required_count

    if condition.difficulty:
        required['difficulty'] = condition.difficulty

    accuracy_ok = True
    if condition.minimum_accuracy is not None:
        average = float(stats.average_score or 0.0)
        actual['averageAccuracy'] = average
        required['minimumAccuracy'] = condition.minimum_accuracy
        accuracy_ok = average >= condition.minimum_accuracy

    learning_point_id = getattr(ctx.event, 'learning_point_id', None)
    if condition.time_frame_days and learning_point_id is not None:
        required['timeFrameDays'] = condition.time_frame_days
        try:
            actual['recentAttempts'] = ctx.stats.count_recent_attempts(
                ctx.student_id, learning_point_id, condition.time_frame_days
            )
        except Exception as e:
            # Diagnostics only; never changes the outcome
            logger.warning(f'Could not count recent attempts for {ctx.student_id}: {e}')

    if not passed:
        description = (
            f'Only {completed} exercises completed, '
            f'{condition.required_count} required'
        )
    elif not accuracy_ok:
        description = (
            f'Average score {actual["averageAccuracy"]:.1f} is below the required '
            f'{condition.minimum_accuracy:.1f}'
        )
    else:
        description = (
            f'Completed {completed} exercises (required: {condition.required_count})'
        )

    return ConditionResult(
        condition_type=EXERCISE,
        passed=passed and accuracy_ok,
        description=description,
        actual_values=actual,
        required_values=required,
    )


def evaluate_streak(
    condition: StreakCondition, ctx: EvaluationContext
) -> ConditionResult:
    current = int(ctx.streaks.current_streak(ctx.student_id, condition.streak_type) or 0)
    passed = current >= condition.required_streak_length
    if passed:
        description = (
            f'Current {condition.streak_type} streak: {current} '
            f'(required: {condition.required_streak_length})'
        )
    else:
        description = (
            f'Current {condition.streak_type} streak is {current}, '
            f'{condition.required_streak_length} required'
        )
    return ConditionResult(
        condition_type=STREAK,
        passed=passed,
        description=description,
        actual_values={'currentStreak': current},
        required_values={
            'requiredStreakLength': condition.required_streak_length,
            'streakType': condition.streak_type,
        },
    )


def evaluate_time(condition: TimeCondition, ctx: EvaluationContext) -> ConditionResult:
    required = {
        k: v
        for k, v in {
            'maxTimeSeconds': condition.max_time_seconds,
            'minTimeSeconds': condition.min_time_seconds,
            'timeType': condition.time_type,
        }.items()
        if v is not None
    }
    return ConditionResult(
        condition_type=TIME,
        passed=False,
        description='Time conditions are not implemented yet',
        required_values=required,
    )


def evaluate_performance(
    condition: PerformanceCondition, ctx: EvaluationContext
) -> ConditionResult:
    required = {
        k: v
        for k, v in {
            'minimumScore': condition.minimum_score,
            'minimumAverage': condition.minimum_average,
            'minimumAttempts': condition.minimum_attempts,
            'performanceType': condition.performance_type,
        }.items()
        if v is not None
    }
    return ConditionResult(
        condition_type=PERFORMANCE,
        passed=False,
        description='Performance conditions are not implemented yet',
        required_values=required,
    )


def evaluate_composite(
    condition: CompositeCondition, ctx: EvaluationContext
) -> ConditionResult:
    operator = condition.logical_operator
    total = len(condition.sub_conditions)
    if total == 0:
        return ConditionResult(
            condition_type=COMPOSITE,
            passed=False,
            description='Composite condition has no sub-conditions',
            required_values={'logicalOperator': operator},
        )

    children = [evaluate_condition(c, ctx) for c in condition.sub_conditions]
    passed_count = sum(1 for r in children if r.passed)

    if operator == 'ALL':
        passed = passed_count == total
    elif operator == 'ANY':
        passed = passed_count > 0
    else:  # NONE
        passed = passed_count == 0

    return ConditionResult(
        condition_type=COMPOSITE,
        passed=passed,
        description=f'{passed_count} of {total} sub-conditions passed ({operator})',
        actual_values={
            'passedSubConditions': passed_count,
            'subConditionResults': [r.summary() for r in children],
        },
        required_values={'logicalOperator': operator, 'totalSubConditions': total},
    )


def evaluate_condition(
    condition: RuleCondition, ctx: EvaluationContext
) -> ConditionResult:
    condition_type = getattr(condition, 'condition_type', type(condition).__name__)
    try:
        if isinstance(condition, ExerciseCondition):
            return evaluate_exercise(condition, ctx)
        if isinstance(condition, StreakCondition):
            return evaluate_streak(condition, ctx)
        if isinstance(condition, TimeCondition):
            return evaluate_time(condition, ctx)
        if isinstance(condition, PerformanceCondition):
            return evaluate_performance(condition, ctx)
        if isinstance(condition, CompositeCondition):
            return evaluate_composite(condition, ctx)
    except Exception as e:
        logger.error(
            f'Error evaluating {condition_type} condition for student '
            f'{ctx.student_id}: {e}',
            exc_info=True,
        )
        return ConditionResult.failed(
            condition_type, f'Error evaluating {condition_type} condition: {e}'
        )

    logger.warning(f'Unsupported condition type: {condition_type}')
    return ConditionResult.failed(
        condition_type, f'Unsupported condition type: {condition_type}'
    )
