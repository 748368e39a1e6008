import argparse
import json
import logging
import sys
from typing import Optional, Sequence

from achievement_engine.achievements.engine import default_engine
from achievement_engine.achievements.events import event_from_payload
from achievement_engine.achievements.rules.migration import resolve_rule
from achievement_engine.database import start_db
from achievement_engine.database.db_manager import DBManager
from achievement_engine.models.achievement import AchievementModel
from achievement_engine.services.rule_migration import (
    build_migration_report,
    migrate_all_legacy_rules,
)
from achievement_engine.utils.env import load_env
from achievement_engine.utils.logs import setup_logging

logger = logging.getLogger(__name__)


def _setup_db(args: argparse.Namespace) -> int:
    with DBManager() as db:
        # Run full DB setup (schema + migrations)
        start_db.run(db)
    return 0


def _migration_report(args: argparse.Namespace) -> int:
    report = build_migration_report(AchievementModel.all_achievements())
    print(json.dumps(report.as_dict(), indent=2))
    return 0


def _migrate_rules(args: argparse.Namespace) -> int:
    report = migrate_all_legacy_rules(apply=args.apply)
    print(json.dumps(report.as_dict(), indent=2))
    return 1 if report.errors else 0


def _migrate_text(args: argparse.Namespace) -> int:
    rule = resolve_rule(args.rule, args.name)
    print(json.dumps(rule.to_dict(), indent=2, sort_keys=True))
    return 0


def _dispatch(args: argparse.Namespace) -> int:
    try:
        event = event_from_payload(json.loads(args.event_json))
    except (ValueError, TypeError) as e:
        logger.error(f'Invalid event payload: {e}')
        return 2
    default_engine().dispatch(event)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='achievement-engine',
        description='Evaluate achievement rules and migrate legacy triggers.',
    )
    sub = parser.add_subparsers(dest='command', required=True)

    setup = sub.add_parser('setup-db', help='Create tables and run migrations')
    setup.set_defaults(func=_setup_db, needs_db=True)

    report = sub.add_parser(
        'migration-report', help='Count rules by migration outcome'
    )
    report.set_defaults(func=_migration_report, needs_db=True)

    migrate = sub.add_parser('migrate-rules', help='Migrate legacy trigger rules')
    migrate.add_argument(
        '--apply', action='store_true', help='Write migrated rules back'
    )
    migrate.set_defaults(func=_migrate_rules, needs_db=True)

    text = sub.add_parser('migrate-text', help='Migrate a single rule string')
    text.add_argument('rule')
    text.add_argument('--name', default=None, help='Achievement name')
    text.set_defaults(func=_migrate_text, needs_db=False)

    dispatch = sub.add_parser('dispatch', help='Dispatch one trigger event')
    dispatch.add_argument('event_json', help='Event payload as JSON')
    dispatch.set_defaults(func=_dispatch, needs_db=True)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_env()
    setup_logging()
    args = build_parser().parse_args(argv)

    if not args.needs_db:
        return args.func(args)

    DBManager.init_pool()
    try:
        return args.func(args)
    finally:
        DBManager.close_pool()


if __name__ == '__main__':
    sys.exit(main())
