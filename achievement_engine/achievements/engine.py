from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from achievement_engine.achievements.events import TriggerEvent
from achievement_engine.achievements.interface import (
    AchievementCatalog,
    ExerciseStatsSource,
    Notifier,
    StreakSource,
    UnlockStore,
    UserIdentityResolver,
)
from achievement_engine.achievements.registry import (
    AchievementIndex,
    IndexedAchievement,
    catalog_fingerprint,
)
from achievement_engine.achievements.rules.evaluator import RuleEvaluator
from achievement_engine.achievements.rules.results import EvaluationResult
from achievement_engine.achievements.unlock import UnlockOrchestrator, UnlockOutcome
from achievement_engine.utils.constants import TRIGGER_EVENT_TYPES
from achievement_engine.utils.tracing import add_span_metadata, trace_span

logger = logging.getLogger(__name__)


class AchievementState(str, Enum):
    UNLOCKED = 'UNLOCKED'
    NOT_UNLOCKED = 'NOT_UNLOCKED'
    MIGRATION_FAILED = 'MIGRATION_FAILED'


@dataclass(frozen=True)
class AchievementOutcome:
    achievement_id: int
    state: AchievementState
    evaluation: Optional[EvaluationResult] = None
    unlock: Optional[UnlockOutcome] = None


class AchievementsEngine:
    '''Consumes trigger events and unlocks the achievements they satisfy.

    Dispatch is fire-and-forget: the event source gets nothing back and a
    failure on one achievement never stops the others.

    Each event reads the active catalog. The event-type index is rebuilt only
    when the catalog differs from the one it was built from, and resolved
    rules carry over between rebuilds. An index passed to the constructor is
    used as-is and the catalog is never read.
    '''

    def __init__(
        self,
        catalog: AchievementCatalog,
        stats: ExerciseStatsSource,
        streaks: StreakSource,
        unlocks: UnlockStore,
        identities: UserIdentityResolver,
        notifier: Notifier,
        index: Optional[AchievementIndex] = None,
    ) -> None:
        self.catalog = catalog
        self.evaluator = RuleEvaluator(stats, streaks)
        self.unlocker = UnlockOrchestrator(unlocks, identities, notifier)
        self._pinned = index is not None
        self._index = index
        self._index_lock = threading.Lock()

    @property
    def index(self) -> AchievementIndex:
        '''Index matching the catalog as it is now.'''
        if self._pinned:
            return self._index  # type: ignore[return-value]
        return self._sync_index()

    def _sync_index(self, force: bool = False) -> AchievementIndex:
        with trace_span('achievements.load_catalog') as span:
            achievements = list(self.catalog.active_achievements())
            fingerprint = catalog_fingerprint(achievements)
            with self._index_lock:
                current = self._index
                if (
                    not force
                    and current is not None
                    and current.fingerprint == fingerprint
                ):
                    span.metadata['rebuilt'] = False
                    return current
                previous_rules = current.rules if current is not None else None
                self._index = AchievementIndex.build(achievements, previous_rules)
                span.metadata['rebuilt'] = True
                return self._index

    def _index_for_dispatch(self) -> Optional[AchievementIndex]:
        try:
            return self.index
        except Exception:
            logger.error('Could not load achievement catalog', exc_info=True)
            if self._index is not None:
                logger.warning('Using the last loaded achievement catalog')
            return self._index

    def refresh(self) -> AchievementIndex:
        '''Rebuild from the catalog; keeps the previous index if the load fails.'''
        try:
            return self._sync_index(force=True)
        except Exception:
            logger.error('Could not reload achievement catalog', exc_info=True)
            return self._index if self._index is not None else AchievementIndex()

    def dispatch(self, event: TriggerEvent) -> None:
        event_type = getattr(event, 'type', None)
        if event_type not in TRIGGER_EVENT_TYPES:
            logger.warning(f'Ignoring unsupported event type: {event_type}')
            return

        with trace_span(
            'achievements.dispatch',
            {'event_type': event_type, 'student_id': event.student_id},
        ) as span:
            logger.info(f'Processing {event_type} for student {event.student_id}')
            index = self._index_for_dispatch()
            if index is None:
                return
            candidates = index.for_event(event_type)

            unlocked = 0
            for entry in candidates:
                try:
                    outcome = self.evaluate_achievement(entry, event)
                except Exception:
                    # Fail-safe: one broken achievement must not block the rest
                    logger.error(
                        f'Error evaluating achievement {entry.achievement.id} '
                        f'for student {event.student_id}',
                        exc_info=True,
                    )
                    continue
                if outcome.state is AchievementState.UNLOCKED:
                    unlocked += 1

            span.metadata['candidates'] = len(candidates)
            span.metadata['unlocked'] = unlocked

    def evaluate_achievement(
        self, entry: IndexedAchievement, event: TriggerEvent
    ) -> AchievementOutcome:
        achievement = entry.achievement
        with trace_span(
            'achievements.rule_evaluation',
            {'achievement_id': achievement.id, 'rule_type': entry.rule.rule_type},
        ):
            if entry.rule.requires_manual_migration:
                logger.debug(
                    f'Achievement {achievement.id} rule needs manual migration'
                )
                return AchievementOutcome(
                    achievement.id, AchievementState.MIGRATION_FAILED
                )

            result = self.evaluator.evaluate(entry.rule, event.student_id, event)
            if not result.passed:
                logger.debug(
                    f'Achievement {achievement.id} not met for student '
                    f'{event.student_id}: {result.failure_reason}'
                )
                return AchievementOutcome(
                    achievement.id, AchievementState.NOT_UNLOCKED, result
                )

            unlock = self.unlocker.unlock(achievement, event.student_id, result)
            state = (
                AchievementState.UNLOCKED
                if unlock.unlocked
                else AchievementState.NOT_UNLOCKED
            )
            add_span_metadata('state', state.value)
            return AchievementOutcome(achievement.id, state, result, unlock)


def default_engine() -> AchievementsEngine:
    '''Engine wired to the Postgres-backed collaborators.'''
    from achievement_engine.models.achievement import AchievementModel
    from achievement_engine.models.exercise_attempt import ExerciseAttemptModel
    from achievement_engine.models.student_achievement import StudentAchievementModel
    from achievement_engine.models.student_profile import StudentProfileModel
    from achievement_engine.models.student_streak import StudentStreakModel
    from achievement_engine.services.notifications import NotificationService

    return AchievementsEngine(
        catalog=AchievementModel(),
        stats=ExerciseAttemptModel(),
        streaks=StudentStreakModel(),
        unlocks=StudentAchievementModel(),
        identities=StudentProfileModel(),
        notifier=NotificationService(),
    )
