"""Fluent query client over the relational store.

The rest of the system treats the database as an opaque hosted store: given a
table name it gets a query builder supporting equality, set membership,
ranges, case-insensitive substring matching, ordering, offset/count paging
and an exact row count, plus row-level insert/update/delete.

Tables are reflected from the live database rather than taken from
``schema.py`` so that whatever schema generation is actually deployed is what
queries run against. A column missing from the live table surfaces as
``ColumnNotFoundError`` when the query executes, never when it is built.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import MetaData, Table, and_, delete, func, insert, or_, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, NoSuchTableError, OperationalError, SQLAlchemyError

from wastetrack.utils.logging import get_logger

logger = get_logger(__name__)

UNDEFINED_COLUMN = "42703"
UNDEFINED_TABLE = "42P01"
UNIQUE_VIOLATION = "23505"


class StoreError(Exception):
    """Error reported by the store, with a stable code where one is known."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class ColumnNotFoundError(StoreError):
    def __init__(self, table: str, column: str):
        super().__init__(f'column "{column}" of relation "{table}" does not exist', UNDEFINED_COLUMN)
        self.table = table
        self.column = column


class TableNotFoundError(StoreError):
    def __init__(self, table: str):
        super().__init__(f'relation "{table}" does not exist', UNDEFINED_TABLE)
        self.table = table


def _translate_db_error(table: str, exc: SQLAlchemyError) -> StoreError:
    """Map a driver error onto the store error taxonomy."""
    text = str(getattr(exc, "orig", exc))
    if isinstance(exc, IntegrityError):
        code = UNIQUE_VIOLATION if "UNIQUE" in text.upper() else None
        return StoreError(text, code)
    if isinstance(exc, OperationalError):
        lowered = text.lower()
        if "no such column" in lowered or "has no column named" in lowered:
            column = text.rsplit(" ", 1)[-1]
            return ColumnNotFoundError(table, column)
        if "no such table" in lowered:
            return TableNotFoundError(table)
    return StoreError(text)


def like_pattern(term: str) -> str:
    """Substring pattern for ILIKE with the term's own wildcards escaped."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@dataclass
class QueryResult:
    data: List[Dict[str, Any]] = field(default_factory=list)
    count: Optional[int] = None


# A predicate is resolved against the reflected table at execution time
Predicate = Callable[[Table], Any]


class QueryBuilder:
    """
    Chainable query against one table.

    Every filter method returns the builder, so calls read like:

        store.table("payments").eq("user_id", uid).gte("amount", 10).order("created_at", ascending=False).range(0, 19).execute(count=True)
    """

    def __init__(self, client: "StoreClient", table_name: str):
        self._client = client
        self._table_name = table_name
        self._columns: Optional[List[str]] = None
        self._predicates: List[Predicate] = []
        self._order: List[tuple[str, bool]] = []
        self._offset: Optional[int] = None
        self._limit: Optional[int] = None

    @property
    def table_name(self) -> str:
        return self._table_name

    def _column(self, table: Table, name: str):
        try:
            return table.c[name]
        except KeyError:
            raise ColumnNotFoundError(self._table_name, name) from None

    # Projection

    def select(self, *columns: str) -> "QueryBuilder":
        self._columns = list(columns) if columns else None
        return self

    # Filters

    def eq(self, column: str, value: Any) -> "QueryBuilder":
        self._predicates.append(lambda t: self._column(t, column) == value)
        return self

    def neq(self, column: str, value: Any) -> "QueryBuilder":
        self._predicates.append(lambda t: self._column(t, column) != value)
        return self

    def in_(self, column: str, values: Iterable[Any]) -> "QueryBuilder":
        values = list(values)
        self._predicates.append(lambda t: self._column(t, column).in_(values))
        return self

    def gt(self, column: str, value: Any) -> "QueryBuilder":
        self._predicates.append(lambda t: self._column(t, column) > value)
        return self

    def gte(self, column: str, value: Any) -> "QueryBuilder":
        self._predicates.append(lambda t: self._column(t, column) >= value)
        return self

    def lt(self, column: str, value: Any) -> "QueryBuilder":
        self._predicates.append(lambda t: self._column(t, column) < value)
        return self

    def lte(self, column: str, value: Any) -> "QueryBuilder":
        self._predicates.append(lambda t: self._column(t, column) <= value)
        return self

    def is_null(self, column: str) -> "QueryBuilder":
        self._predicates.append(lambda t: self._column(t, column).is_(None))
        return self

    def ilike(self, column: str, pattern: str) -> "QueryBuilder":
        self._predicates.append(lambda t: self._column(t, column).ilike(pattern, escape="\\"))
        return self

    def or_ilike(self, columns: Sequence[str], term: str) -> "QueryBuilder":
        """Case-insensitive substring match of ``term`` against any of ``columns``."""
        pattern = like_pattern(term)
        columns = list(columns)
        self._predicates.append(
            lambda t: or_(*[self._column(t, c).ilike(pattern, escape="\\") for c in columns])
        )
        return self

    # Ordering and paging

    def order(self, column: str, ascending: bool = True) -> "QueryBuilder":
        self._order.append((column, ascending))
        return self

    def range(self, start: int, end: int) -> "QueryBuilder":
        """Inclusive row window ``[start, end]``."""
        self._offset = max(0, start)
        self._limit = max(0, end - start + 1)
        return self

    def limit(self, count: int) -> "QueryBuilder":
        self._limit = max(0, count)
        return self

    # Execution

    def _where(self, table: Table):
        clauses = [predicate(table) for predicate in self._predicates]
        return and_(*clauses) if clauses else None

    def _build_select(self, table: Table):
        if self._columns:
            stmt = select(*[self._column(table, c) for c in self._columns])
        else:
            stmt = select(table)
        where = self._where(table)
        if where is not None:
            stmt = stmt.where(where)
        for column, ascending in self._order:
            col = self._column(table, column)
            stmt = stmt.order_by(col.asc() if ascending else col.desc())
        if self._offset:
            stmt = stmt.offset(self._offset)
        if self._limit is not None:
            stmt = stmt.limit(self._limit)
        return stmt

    def _build_count(self, table: Table):
        stmt = select(func.count()).select_from(table)
        where = self._where(table)
        if where is not None:
            stmt = stmt.where(where)
        return stmt

    def execute(self, count: bool = False) -> QueryResult:
        """
        Run the query.

        Args:
            count: Also return the exact number of rows matching the filters
                (ignoring ordering and paging)

        Returns:
            QueryResult with rows as plain dicts

        Raises:
            StoreError: Any store failure, ColumnNotFoundError / TableNotFoundError
                for schema mismatches
        """
        table = self._client.get_table(self._table_name)
        stmt = self._build_select(table)
        count_stmt = self._build_count(table) if count else None
        try:
            with self._client.engine.connect() as conn:
                rows = [dict(row._mapping) for row in conn.execute(stmt)]
                total = conn.execute(count_stmt).scalar_one() if count_stmt is not None else None
        except SQLAlchemyError as exc:
            raise _translate_db_error(self._table_name, exc) from exc
        return QueryResult(data=rows, count=total)

    def first(self) -> Optional[Dict[str, Any]]:
        self._limit = 1
        result = self.execute()
        return result.data[0] if result.data else None

    def count(self) -> int:
        table = self._client.get_table(self._table_name)
        stmt = self._build_count(table)
        try:
            with self._client.engine.connect() as conn:
                return int(conn.execute(stmt).scalar_one())
        except SQLAlchemyError as exc:
            raise _translate_db_error(self._table_name, exc) from exc

    # Mutations

    def insert(self, rows: Dict[str, Any] | List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Insert one or more rows and return them as stored."""
        if isinstance(rows, dict):
            rows = [rows]
        if not rows:
            return []
        table = self._client.get_table(self._table_name)
        for row in rows:
            for key in row:
                self._column(table, key)
        pk = self._primary_key(table)
        try:
            with self._client.engine.begin() as conn:
                conn.execute(insert(table), rows)
                ids = [row[pk.name] for row in rows if pk.name in row]
                stored = [dict(r._mapping) for r in conn.execute(select(table).where(pk.in_(ids)))]
        except SQLAlchemyError as exc:
            raise _translate_db_error(self._table_name, exc) from exc
        by_id = {row[pk.name]: row for row in stored}
        return [by_id[i] for i in ids if i in by_id]

    def update(self, values: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Apply ``values`` to every row matching the filters; return the updated rows."""
        table = self._client.get_table(self._table_name)
        for key in values:
            self._column(table, key)
        pk = self._primary_key(table)
        where = self._where(table)
        try:
            with self._client.engine.begin() as conn:
                id_stmt = select(pk)
                if where is not None:
                    id_stmt = id_stmt.where(where)
                ids = [r[0] for r in conn.execute(id_stmt)]
                if not ids:
                    return []
                conn.execute(update(table).where(pk.in_(ids)).values(**values))
                return [dict(r._mapping) for r in conn.execute(select(table).where(pk.in_(ids)))]
        except SQLAlchemyError as exc:
            raise _translate_db_error(self._table_name, exc) from exc

    def delete(self) -> int:
        """Delete every row matching the filters; return how many were removed."""
        table = self._client.get_table(self._table_name)
        stmt = delete(table)
        where = self._where(table)
        if where is not None:
            stmt = stmt.where(where)
        try:
            with self._client.engine.begin() as conn:
                return conn.execute(stmt).rowcount or 0
        except SQLAlchemyError as exc:
            raise _translate_db_error(self._table_name, exc) from exc

    def _primary_key(self, table: Table):
        pk_columns = list(table.primary_key.columns)
        if pk_columns:
            return pk_columns[0]
        return self._column(table, "id")


class StoreClient:
    """Entry point to the store: hands out query builders per table."""

    def __init__(self, engine: Engine):
        self._engine = engine
        self._metadata = MetaData()
        self._tables: Dict[str, Table] = {}
        self._lock = threading.Lock()

    @property
    def engine(self) -> Engine:
        return self._engine

    def table(self, name: str) -> QueryBuilder:
        return QueryBuilder(self, name)

    def get_table(self, name: str) -> Table:
        """Reflected table, cached until refresh_schema()."""
        with self._lock:
            table = self._tables.get(name)
            if table is None:
                try:
                    table = Table(name, self._metadata, autoload_with=self._engine)
                except NoSuchTableError:
                    raise TableNotFoundError(name) from None
                except SQLAlchemyError as exc:
                    raise _translate_db_error(name, exc) from exc
                self._tables[name] = table
            return table

    def has_column(self, table: str, column: str) -> bool:
        return column in self.get_table(table).c

    def refresh_schema(self) -> None:
        """Forget reflected tables so the next query sees the current schema."""
        with self._lock:
            self._tables.clear()
            self._metadata = MetaData()
        logger.debug("Store schema cache cleared")

    def dispose(self) -> None:
        self._engine.dispose()
