from typing import Any, ClassVar, Iterable, Optional, Sequence, cast

from psycopg.types.json import Json

from achievement_engine.database.db_manager import DBManager


def _adapt(value: Any) -> Any:
    # dicts and lists go to JSONB columns
    return Json(value) if isinstance(value, (dict, list)) else value


class BaseModel:
    table: ClassVar[str]
    pk: ClassVar[str] = 'id'

    @classmethod
    def get(cls, id_value: Any) -> Optional[dict[str, Any]]:
        with DBManager() as db:
            row = db.fetchone(
                f'SELECT * FROM {cls.table} WHERE {cls.pk} = %s', (id_value,)
            )
        return cast(Optional[dict[str, Any]], row)

    @classmethod
    def get_many(
        cls,
        where: str = '',
        params: Iterable[Any] = (),
        order_by: str = '',
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        query_parts: list[str] = [f'SELECT * FROM {cls.table}']
        parameters: tuple[Any, ...] = tuple(params)

        if where:
            query_parts.append(f'WHERE {where}')
        if order_by:
            query_parts.append(f'ORDER BY {order_by}')
        if limit is not None:
            query_parts.append('LIMIT %s')
            parameters = (*parameters, limit)

        with DBManager() as db:
            rows = db.fetchall(' '.join(query_parts), parameters)
        return cast(list[dict[str, Any]], rows)

    @classmethod
    def create(cls, values: dict[str, Any]) -> dict[str, Any]:
        cols = list(values.keys())
        placeholders = ', '.join(['%s'] * len(cols))
        sql_query = (
            f'INSERT INTO {cls.table} ({", ".join(cols)}) '
            f'VALUES ({placeholders}) RETURNING *'
        )
        params = [_adapt(values[c]) for c in cols]

        with DBManager() as db:
            rows = db.fetchall(sql_query, tuple(params))
        return cast(dict[str, Any], rows[0]) if rows else {}

    @classmethod
    def create_if_absent(
        cls, conflict_cols: Sequence[str], values: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        '''Insert unless a row with the same conflict columns exists.

        Returns the new row, or None when the insert was skipped. The check
        and the insert are one statement, so concurrent callers cannot both
        succeed.
        '''
        cols = list(values.keys())
        placeholders = ', '.join(['%s'] * len(cols))
        sql_query = (
            f'INSERT INTO {cls.table} ({", ".join(cols)}) '
            f'VALUES ({placeholders}) '
            f'ON CONFLICT ({", ".join(conflict_cols)}) DO NOTHING RETURNING *'
        )
        params = [_adapt(values[c]) for c in cols]

        with DBManager() as db:
            row = db.fetchone(sql_query, tuple(params))
        return cast(Optional[dict[str, Any]], row)

    @classmethod
    def update(cls, id_value: Any, values: dict[str, Any]) -> dict[str, Any]:
        if not values:
            current = cls.get(id_value)
            return current if current is not None else {}
        sets = ', '.join([f'{k} = %s' for k in values.keys()])
        sql = f'UPDATE {cls.table} SET {sets} WHERE {cls.pk} = %s RETURNING *'
        params = [*(_adapt(v) for v in values.values()), id_value]
        with DBManager() as db:
            rows = db.fetchall(sql, tuple(params))
        return cast(dict[str, Any], rows[0]) if rows else {}

    @classmethod
    def exists(cls, where: str, params: Iterable[Any] = ()) -> bool:
        where_clause = f' WHERE {where}' if where else ''
        with DBManager() as db:
            row = db.fetchone(
                f'SELECT 1 FROM {cls.table}{where_clause} LIMIT 1', tuple(params)
            )
        return row is not None
