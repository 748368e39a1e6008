import os
from unittest.mock import MagicMock

import psycopg
import pytest

from achievement_engine.database import create_migration as create_migration_module
from achievement_engine.database import db_manager as db_manager_module
from achievement_engine.database import start_db
from achievement_engine.database.db_manager import DBManager
from achievement_engine.database.init_schema import init_schema
from tests.conftest import FakeDB


def test_schema_has_unique_unlock_pair():
    db = FakeDB()
    init_schema(db)

    statements = '\n'.join(q for q, _ in db.executed)
    for table in (
        'achievements',
        'student_achievements',
        'exercise_attempts',
        'student_streaks',
        'student_profile',
        'notifications',
        'migrations',
    ):
        assert f'CREATE TABLE IF NOT EXISTS {table} ' in statements
    assert 'UNIQUE (student_profile_id, achievement_id)' in statements


def test_run_applies_pending_migrations(monkeypatch):
    db = FakeDB(
        fetchall_results=[
            [{'table_name': 'achievements'}],
            [],
        ]
    )
    applied = []

    def fake_up(_db):
        applied.append(True)

    monkeypatch.setattr(start_db, 'init_schema', lambda _db: None)

    run_module = MagicMock(up=fake_up)
    monkeypatch.setattr(
        start_db.importlib.util,
        'module_from_spec',
        lambda spec: run_module,
    )
    monkeypatch.setattr(
        start_db.importlib.util,
        'spec_from_file_location',
        lambda name, path: MagicMock(),
    )

    start_db.run(db)

    assert applied == [True]
    inserts = [p for q, p in db.executed if q.startswith('INSERT INTO migrations')]
    assert inserts == [('20261019_120000_unique_student_achievements.py',)]


def test_applied_migrations_skipped(monkeypatch):
    db = FakeDB(
        fetchall_results=[
            [{'filename': '20261019_120000_unique_student_achievements.py'}]
        ]
    )
    assert start_db.pending_migrations(db) == []


def test_create_migration_writes_template(tmp_path):
    path = create_migration_module.create_migration('Add index', str(tmp_path))

    assert os.path.basename(path).endswith('_add_index.py')
    with open(path, encoding='utf-8') as f:
        body = f.read()
    assert 'def up(db_manager: DBManager):' in body
    assert os.path.basename(path) in body


def test_db_manager_requires_context():
    with pytest.raises(RuntimeError):
        DBManager().fetchone('SELECT 1')


def test_db_manager_commits_and_retries(monkeypatch):
    cursor = MagicMock()
    cursor.fetchall.side_effect = [psycopg.OperationalError('dropped'), [{'x': 1}]]
    cursor.description = [MagicMock()]
    cursor.description[0].name = 'x'
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    connects = []

    def fake_connect(conninfo, row_factory=None):
        connects.append(conninfo)
        return conn

    monkeypatch.setenv('DATABASE_URL', 'postgresql://localhost/test')
    monkeypatch.setattr(DBManager, '_pool', None)
    monkeypatch.setattr(db_manager_module.psycopg, 'connect', fake_connect)

    with DBManager() as db:
        assert db.fetchone('SELECT 1 AS x') == {'x': 1}

    assert len(connects) == 2
    conn.commit.assert_called_once()


def test_db_manager_rolls_back_on_error(monkeypatch):
    conn = MagicMock()
    monkeypatch.setenv('DATABASE_URL', 'postgresql://localhost/test')
    monkeypatch.setattr(DBManager, '_pool', None)
    monkeypatch.setattr(db_manager_module.psycopg, 'connect', lambda *a, **k: conn)

    with pytest.raises(ValueError):
        with DBManager():
            raise ValueError('bad')

    conn.rollback.assert_called_once()
    conn.commit.assert_not_called()


def test_missing_database_url(monkeypatch):
    monkeypatch.delenv('DATABASE_URL', raising=False)
    monkeypatch.setattr(DBManager, '_pool', None)

    with pytest.raises(RuntimeError):
        with DBManager():
            pass
