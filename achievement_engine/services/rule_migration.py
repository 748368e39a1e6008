'''Batch migration of legacy trigger rules and the migration report.'''

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from achievement_engine.achievements.records import Achievement
from achievement_engine.achievements.rules.migration import migrate_legacy_rule
from achievement_engine.achievements.rules.schema import (
    RuleSchemaError,
    parse_rule_schema,
)
from achievement_engine.models.achievement import AchievementModel

logger = logging.getLogger(__name__)

EMPTY = 'empty'
STRUCTURED = 'already_structured'
MIGRATABLE = 'migrated'
MANUAL = 'manual_migration_required'


def classify_rule(text: Optional[str]) -> str:
    if not text or not text.strip():
        return EMPTY
    try:
        rule = parse_rule_schema(text)
    except RuleSchemaError:
        rule = migrate_legacy_rule(text)
        return MANUAL if rule.requires_manual_migration else MIGRATABLE
    return MANUAL if rule.requires_manual_migration else STRUCTURED


@dataclass
class MigrationReport:
    total: int = 0
    already_structured: int = 0
    migrated: int = 0
    empty: int = 0
    manual_migration_required: int = 0
    errors: int = 0
    manual_achievement_ids: list[int] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            'total': self.total,
            'already_structured': self.already_structured,
            'migrated': self.migrated,
            'empty': self.empty,
            'manual_migration_required': self.manual_migration_required,
            'errors': self.errors,
        }

    def log(self) -> None:
        logger.info('=== RULE MIGRATION REPORT ===')
        for key, value in self.as_dict().items():
            logger.info(f'{key}: {value}')
        if self.manual_achievement_ids:
            logger.info(f'needs a human: {self.manual_achievement_ids}')


def build_migration_report(achievements: Iterable[Achievement]) -> MigrationReport:
    report = MigrationReport()
    for achievement in achievements:
        report.total += 1
        kind = classify_rule(achievement.trigger_rule)
        if kind == EMPTY:
            report.empty += 1
        elif kind == STRUCTURED:
            report.already_structured += 1
        elif kind == MIGRATABLE:
            report.migrated += 1
            logger.info(
                f'Legacy rule on achievement {achievement.id}: '
                f'{achievement.trigger_rule!r}'
            )
        else:
            report.manual_migration_required += 1
            report.manual_achievement_ids.append(achievement.id)
    report.log()
    return report


def migrate_all_legacy_rules(
    apply: bool = False, model: type[AchievementModel] = AchievementModel
) -> MigrationReport:
    '''Migrate every matchable legacy rule; write them back when apply is set.

    Sentinel rules are never written: those achievements keep their legacy
    text until someone edits them.
    '''
    report = MigrationReport()
    for achievement in model.all_achievements():
        report.total += 1
        try:
            kind = classify_rule(achievement.trigger_rule)
            if kind == EMPTY:
                report.empty += 1
                continue
            if kind == STRUCTURED:
                report.already_structured += 1
                continue
            if kind == MANUAL:
                report.manual_migration_required += 1
                report.manual_achievement_ids.append(achievement.id)
                continue

            rule = migrate_legacy_rule(achievement.trigger_rule or '', achievement.name)
            logger.info(
                f"Migrated rule for achievement {achievement.id} "
                f"'{achievement.name}': {rule.to_json()}"
            )
            if apply:
                model.update_trigger_rule(achievement.id, rule.to_json())
            report.migrated += 1
        except Exception as e:
            report.errors += 1
            logger.error(f'Error migrating achievement {achievement.id}: {e}')
    report.log()
    return report
