from __future__ import annotations

import logging

import pendulum

from achievement_engine.achievements.events import TriggerEvent
from achievement_engine.achievements.interface import (
    ExerciseStatsSource,
    StreakSource,
)
from achievement_engine.achievements.rules.conditions import (
    EvaluationContext,
    evaluate_condition,
)
from achievement_engine.achievements.rules.results import EvaluationResult
from achievement_engine.achievements.rules.schema import RuleSchema

logger = logging.getLogger(__name__)


class RuleEvaluator:
    '''Runs every condition of a rule against one student and event.

    The rule passes only when every condition passes. Each condition's own
    ``combinator`` is not consulted here; combining logic belongs in a
    composite condition.
    '''

    def __init__(self, stats: ExerciseStatsSource, streaks: StreakSource) -> None:
        self.stats = stats
        self.streaks = streaks

    def evaluate(
        self, rule: RuleSchema, student_id: int, event: TriggerEvent
    ) -> EvaluationResult:
        snapshot = {
            'studentId': student_id,
            'evaluatedAt': pendulum.now('UTC').isoformat(),
            'triggerEventType': getattr(event, 'type', None),
        }
        logger.debug(f'Evaluating {rule.rule_type} rule for student {student_id}')

        try:
            ctx = EvaluationContext(
                student_id=student_id,
                event=event,
                stats=self.stats,
                streaks=self.streaks,
            )
            results = tuple(evaluate_condition(c, ctx) for c in rule.conditions)

            if not results:
                return EvaluationResult(
                    passed=False,
                    completion_percentage=0.0,
                    failure_reason='Rule has no conditions',
                    rule_type=rule.rule_type,
                    context_snapshot=snapshot,
                )

            passed_count = sum(1 for r in results if r.passed)
            failure_reason = next((r.description for r in results if not r.passed), None)
            return EvaluationResult(
                passed=passed_count == len(results),
                condition_results=results,
                completion_percentage=passed_count / len(results) * 100.0,
                failure_reason=failure_reason,
                rule_type=rule.rule_type,
                context_snapshot=snapshot,
            )
        except Exception as e:
            logger.error(
                f'Error evaluating rule for student {student_id}: {e}', exc_info=True
            )
            return EvaluationResult.error(f'Internal error: {e}', snapshot)
