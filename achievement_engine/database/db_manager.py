import logging
import os
from functools import wraps
from typing import Any, Callable, Iterable, List, Optional, Tuple, TypeVar

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from achievement_engine.utils.env import get_int

T = TypeVar('T')

logger = logging.getLogger(__name__)


def require_connection(func: Callable) -> Callable:
    '''Decorator to ensure DBManager is used within a context manager.'''

    @wraps(func)
    def wrapper(self: 'DBManager', *args, **kwargs) -> Any:
        if not self._connected:
            raise RuntimeError(
                'DBManager is not in a context. Use "with DBManager() as db:"'
            )
        return func(self, *args, **kwargs)

    return wrapper


def _database_url(db_url: Optional[str] = None) -> str:
    conninfo = db_url or os.getenv('DATABASE_URL')
    if not conninfo:
        raise RuntimeError('DATABASE_URL is not set.')
    return conninfo


class DBManager:
    '''Postgres connection scoped to one transaction.

    Commits on a clean exit and rolls back when the block raises.
    '''

    # Shared pool across the process
    _pool: Optional[ConnectionPool] = None

    def __init__(self) -> None:
        self._connected: bool = False
        self._pg_conn: Any | None = None
        self._from_pool: bool = False

    @classmethod
    def init_pool(
        cls,
        db_url: Optional[str] = None,
        min_size: Optional[int] = None,
        max_size: Optional[int] = None,
    ) -> None:
        if cls._pool is not None:
            return
        cls._pool = ConnectionPool(
            conninfo=_database_url(db_url),
            min_size=min_size or get_int('DB_POOL_MIN_SIZE', 1),
            max_size=max_size or get_int('DB_POOL_MAX_SIZE', 10),
            kwargs={'row_factory': dict_row},
        )
        logger.info('Initialized Postgres connection pool')

    @classmethod
    def close_pool(cls) -> None:
        if cls._pool is not None:
            try:
                cls._pool.close()
            finally:
                cls._pool = None

    def _connect(self) -> None:
        pool = self.__class__._pool
        if pool is not None:
            self._pg_conn = pool.getconn()
            self._from_pool = True
        else:
            self._pg_conn = psycopg.connect(_database_url(), row_factory=dict_row)
            self._from_pool = False

    def _release(self) -> None:
        pool = self.__class__._pool
        try:
            if self._from_pool and pool is not None:
                # A broken connection is discarded by the pool on put
                pool.putconn(self._pg_conn)
            elif self._pg_conn is not None:
                self._pg_conn.close()
        finally:
            self._pg_conn = None
            self._from_pool = False

    def __enter__(self) -> 'DBManager':
        self._connect()
        self._connected = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self._connected:
            return
        try:
            if exc_type is None:
                self._pg_conn.commit()
            else:
                self._pg_conn.rollback()
        finally:
            self._release()
            self._connected = False

    def _run_with_retry(self, fn: Callable[[], T]) -> T:
        '''Run a statement; on a dropped connection reconnect and retry once.'''
        try:
            return fn()
        except (psycopg.OperationalError, psycopg.InterfaceError) as e:
            logger.warning(
                f'DB operation failed due to connection issue: {e}. '
                f'Reconnecting and retrying once...'
            )
            try:
                self._release()
            except Exception as close_error:
                logger.warning(f'Error while releasing connection: {close_error}')
            self._connect()
            return fn()

    def _exec(self, query: str, params: Iterable[Any] | None) -> None:
        assert self._pg_conn is not None
        with self._pg_conn.cursor() as cur:
            cur.execute(query, tuple(params or ()))

    def _select(
        self, query: str, params: Iterable[Any] | None
    ) -> Tuple[List[dict[str, Any]], List[str]]:
        assert self._pg_conn is not None
        with self._pg_conn.cursor() as cur:
            cur.execute(query, tuple(params or ()))
            rows: List[dict[str, Any]] = cur.fetchall()
            cols: List[str] = (
                [d.name for d in cur.description] if cur.description else []
            )
            return rows, cols

    @require_connection
    def execute(self, query: str, params: Iterable[Any] | None = None) -> None:
        '''Execute a statement that returns no rows.'''
        try:
            self._run_with_retry(lambda: self._exec(query, params))
        except Exception as e:
            logger.error(f'Postgres execute() error: {e}\nQuery: {query}')
            raise

    @require_connection
    def fetchall(
        self, query: str, params: Iterable[Any] | None = None
    ) -> List[dict[str, Any]]:
        try:
            rows, _ = self._run_with_retry(lambda: self._select(query, params))
            return rows
        except Exception as e:
            logger.error(f'Postgres fetchall() error: {e}\nQuery: {query}')
            raise

    @require_connection
    def fetchone(
        self, query: str, params: Iterable[Any] | None = None
    ) -> Optional[dict[str, Any]]:
        '''Return the first row as a dictionary, or None if there is none.'''
        try:
            rows, _ = self._run_with_retry(lambda: self._select(query, params))
            return rows[0] if rows else None
        except Exception as e:
            logger.error(f'Postgres fetchone() error: {e}\nQuery: {query}')
            raise
