from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

import pendulum

from achievement_engine.achievements.records import Achievement
from achievement_engine.achievements.rules.migration import resolve_rule
from achievement_engine.achievements.rules.schema import (
    CompositeCondition,
    RuleCondition,
    RuleSchema,
)
from achievement_engine.utils.constants import (
    EVENTS_BY_CONDITION_TYPE,
    TRIGGER_EVENT_TYPES,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexedAchievement:
    achievement: Achievement
    rule: RuleSchema


def _event_types_for_condition(condition: RuleCondition) -> set[str]:
    if isinstance(condition, CompositeCondition):
        types: set[str] = set()
        for child in condition.sub_conditions:
            types |= _event_types_for_condition(child)
        return types
    return set(EVENTS_BY_CONDITION_TYPE.get(condition.condition_type, TRIGGER_EVENT_TYPES))


def event_types_for_rule(rule: RuleSchema) -> set[str]:
    '''Trigger events whose occurrence can change the outcome of the rule.'''
    if rule.requires_manual_migration:
        # Listed on every event so each one records the migration failure
        return set(TRIGGER_EVENT_TYPES)
    types: set[str] = set()
    for condition in rule.conditions:
        types |= _event_types_for_condition(condition)
    return types


RuleCache = dict[tuple[str, str], RuleSchema]


def catalog_fingerprint(achievements: Iterable[Achievement]) -> tuple[Achievement, ...]:
    '''Value that changes whenever any indexed field of the catalog changes.'''
    return tuple(sorted(achievements, key=lambda a: a.id))


class AchievementIndex:
    '''Active achievements with resolved rules, looked up by event type.

    ``previous_rules`` lets a rebuilt index reuse rules resolved by the index
    it replaces; only entries still in use are carried forward.
    '''

    def __init__(
        self,
        resolved_at: Optional[datetime] = None,
        previous_rules: Optional[RuleCache] = None,
    ) -> None:
        self.resolved_at = resolved_at or pendulum.now('UTC')
        self.fingerprint: tuple[Achievement, ...] = ()
        self._entries: List[IndexedAchievement] = []
        self._by_event: dict[str, List[IndexedAchievement]] = {
            t: [] for t in TRIGGER_EVENT_TYPES
        }
        self._rules_by_text: RuleCache = {}
        self._previous_rules: RuleCache = previous_rules or {}

    def register(
        self, achievement: Achievement, rule: Optional[RuleSchema] = None
    ) -> Optional[IndexedAchievement]:
        if not achievement.is_active:
            return None
        # Avoid duplicates by id
        if any(e.achievement.id == achievement.id for e in self._entries):
            return None
        if rule is None:
            text = achievement.trigger_rule or ''
            if not text.strip():
                logger.debug(f'Achievement {achievement.id} has no trigger rule')
                return None
            rule = self._resolve(text, achievement.name)

        entry = IndexedAchievement(achievement=achievement, rule=rule)
        self._entries.append(entry)
        for event_type in event_types_for_rule(rule):
            self._by_event.setdefault(event_type, []).append(entry)
        return entry

    def _resolve(self, text: str, name: str) -> RuleSchema:
        key = (text, name)
        if key not in self._rules_by_text:
            rule = self._previous_rules.get(key)
            if rule is None:
                rule = resolve_rule(text, name, self.resolved_at)
            self._rules_by_text[key] = rule
        return self._rules_by_text[key]

    @property
    def rules(self) -> RuleCache:
        return dict(self._rules_by_text)

    def for_event(self, event_type: str) -> List[IndexedAchievement]:
        return list(self._by_event.get(event_type, []))

    def all(self) -> Iterable[IndexedAchievement]:
        return list(self._entries)

    def manual_migration_required(self) -> List[IndexedAchievement]:
        return [e for e in self._entries if e.rule.requires_manual_migration]

    def __len__(self) -> int:
        return len(self._entries)

    @classmethod
    def build(
        cls,
        achievements: Iterable[Achievement],
        previous_rules: Optional[RuleCache] = None,
    ) -> 'AchievementIndex':
        achievements = list(achievements)
        index = cls(previous_rules=previous_rules)
        index.fingerprint = catalog_fingerprint(achievements)
        for achievement in achievements:
            try:
                index.register(achievement)
            except Exception:
                logger.error(
                    f'Could not index achievement {achievement.id}', exc_info=True
                )
        pending = len(index.manual_migration_required())
        logger.info(
            f'Indexed {len(index)} achievements ({pending} need manual migration)'
        )
        return index
