from __future__ import annotations

import logging
from dataclasses import dataclass

from achievement_engine.achievements.events import AchievementUnlockedEvent
from achievement_engine.achievements.interface import (
    Notifier,
    UnlockStore,
    UserIdentityResolver,
)
from achievement_engine.achievements.records import (
    Achievement,
    UnlockStatus,
    UnlockWriteResult,
)
from achievement_engine.achievements.rules.results import EvaluationResult
from achievement_engine.utils.tracing import trace_span

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnlockOutcome:
    status: UnlockStatus
    message: str = ''
    notified: bool = False

    @property
    def unlocked(self) -> bool:
        return self.status is UnlockStatus.SUCCESS


class UnlockOrchestrator:
    '''Dedup guard, unlock write and notification for a passing evaluation.

    Every step logs its own failure and turns it into an ``UnlockOutcome``;
    nothing is raised to the caller. The store's conditional write is the
    authority on duplicates, so the guard is only a shortcut.
    '''

    def __init__(
        self,
        store: UnlockStore,
        identities: UserIdentityResolver,
        notifier: Notifier,
    ) -> None:
        self.store = store
        self.identities = identities
        self.notifier = notifier

    def unlock(
        self, achievement: Achievement, student_id: int, evaluation: EvaluationResult
    ) -> UnlockOutcome:
        if not evaluation.passed:
            return UnlockOutcome(UnlockStatus.FAILURE, 'Rule evaluation did not pass')

        with trace_span(
            'achievements.unlock',
            {'achievement_id': achievement.id, 'student_id': student_id},
        ) as span:
            try:
                if self.store.has_unlocked(student_id, achievement.id):
                    logger.debug(
                        f'Student {student_id} already has achievement {achievement.id}'
                    )
                    span.metadata['status'] = UnlockStatus.ALREADY_UNLOCKED.value
                    return UnlockOutcome(
                        UnlockStatus.ALREADY_UNLOCKED, 'Achievement already unlocked'
                    )
            except Exception as e:
                # The conditional write below still rejects duplicates
                logger.warning(
                    f'Dedup check failed for achievement {achievement.id}, '
                    f'student {student_id}: {e}'
                )

            logger.info(
                f"Unlocking achievement {achievement.id} '{achievement.name}' "
                f'for student {student_id}'
            )
            try:
                result = self.store.unlock(
                    student_id, achievement.id, achievement.points_value
                )
            except Exception as e:
                logger.error(
                    f'Error unlocking achievement {achievement.id} for student '
                    f'{student_id}: {e}',
                    exc_info=True,
                )
                result = UnlockWriteResult(UnlockStatus.FAILURE, str(e))

            span.metadata['status'] = result.status.value
            if result.status is not UnlockStatus.SUCCESS:
                if result.status is UnlockStatus.FAILURE:
                    logger.warning(
                        f'Could not unlock achievement {achievement.id} for '
                        f'student {student_id}: {result.message}'
                    )
                return UnlockOutcome(result.status, result.message)

            logger.info(
                f'Achievement {achievement.id} unlocked for student {student_id}'
            )
            notified = self._notify(achievement, student_id, evaluation)
            return UnlockOutcome(UnlockStatus.SUCCESS, result.message, notified)

    def _notify(
        self, achievement: Achievement, student_id: int, evaluation: EvaluationResult
    ) -> bool:
        try:
            user_id = self.identities.user_id_for_student(student_id)
        except Exception as e:
            logger.error(f'Error resolving user for student {student_id}: {e}')
            return False
        if user_id is None:
            logger.warning(f'No user found for student profile {student_id}')
            return False

        event = AchievementUnlockedEvent(
            user_id=user_id,
            student_id=student_id,
            achievement_id=achievement.id,
            achievement_name=achievement.name,
            points_awarded=achievement.points_value,
            rarity_tier=achievement.rarity_tier,
            trigger_reason='; '.join(
                r.description for r in evaluation.condition_results
            ) or None,
        )
        try:
            self.notifier.achievement_unlocked(event)
        except Exception as e:
            logger.error(
                f'Error sending unlock notification for achievement '
                f'{achievement.id} to user {user_id}: {e}',
                exc_info=True,
            )
            return False

        logger.info(f'Unlock notification sent to user {user_id}')
        return True
