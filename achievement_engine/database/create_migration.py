import logging
import os

import pendulum

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
MIGRATIONS_DIR = os.path.join(BASE_DIR, 'migrations')

TEMPLATE = '''from achievement_engine.database.db_manager import DBManager


def up(db_manager: DBManager):
    pass


def down(db_manager: DBManager):
    db_manager.execute(
        'DELETE FROM migrations WHERE filename = %s', ({filename!r},)
    )
'''


def migration_filename(name: str, now=None) -> str:
    timestamp = (now or pendulum.now('UTC')).strftime('%Y%m%d_%H%M%S')
    return f'{timestamp}_{name.strip().lower().replace(" ", "_")}.py'


def create_migration(name: str, directory: str = MIGRATIONS_DIR) -> str:
    '''Create a new migration file with a timestamp-based name.'''
    filename = migration_filename(name)
    filepath = os.path.join(directory, filename)
    os.makedirs(directory, exist_ok=True)

    with open(filepath, 'w', encoding='utf-8') as f:
        f.write(TEMPLATE.format(filename=filename))

    logger.info(f'Created new migration file: {filepath}')
    return filepath


if __name__ == '__main__':
    note = input('Enter a short note for this migration: ')
    create_migration(note)
