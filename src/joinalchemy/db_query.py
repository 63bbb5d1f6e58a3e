# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Parameterized statement execution over DB-API connections.

Statements are written with ``?`` placeholders or ``:name`` parameters and
translated to the driver's parameter style by the connection adapter. Results are
consumed through row mappers: callables receiving a :class:`RowSource` and
returning the mapped value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, TypeVar

from .connection import DatabaseConnection, wrap_connection
from .constants import (
    DefaultConfiguration,
    ErrorMessages,
    LoggingConstants,
    QueryParsingConstants,
    SQLConstants,
)
from .exceptions import QueryParameterError

logger = logging.getLogger(__name__)

T = TypeVar("T")
RowMapper = Callable[["RowSource"], T]


@dataclass(frozen=True)
class StatementConfiguration:
    """
    Cursor settings applied to every statement.

    :class: StatementConfiguration
    :synopsis: fetch batch size and result row limit (0 means unlimited)
    """

    fetch_size: int = DefaultConfiguration.FETCH_SIZE
    max_rows: int = DefaultConfiguration.MAX_ROWS


class RowSource:
    """Cursor-like view over a result set, fetched in batches."""

    def __init__(self, cursor: Any, max_rows: int = DefaultConfiguration.MAX_ROWS) -> None:
        self._cursor = cursor
        self._max_rows = max_rows
        self._consumed = 0

    @property
    def column_names(self) -> List[str]:
        description = self._cursor.description or ()
        return [column[0] for column in description]

    def fetch_one(self) -> Optional[Tuple[Any, ...]]:
        """Return the next row, or ``None`` when exhausted."""
        if self._max_rows and self._consumed >= self._max_rows:
            return None
        row = self._cursor.fetchone()
        if row is not None:
            self._consumed += 1
            return tuple(row)
        return None

    def __iter__(self) -> Iterator[Tuple[Any, ...]]:
        while True:
            batch = self._cursor.fetchmany()
            if not batch:
                return
            for row in batch:
                if self._max_rows and self._consumed >= self._max_rows:
                    return
                self._consumed += 1
                yield tuple(row)


# -----------------------------------------------------------------------------
# Row mappers
# -----------------------------------------------------------------------------

def to_id(rows: RowSource) -> Any:
    """First column of the first row, or ``None`` for an empty result."""
    row = rows.fetch_one()
    return row[0] if row is not None else None


def to_id_list(rows: RowSource) -> List[Any]:
    """First column of every row."""
    return [row[0] for row in rows]


def to_array(rows: RowSource) -> Optional[Tuple[Any, ...]]:
    """The first row as a tuple, or ``None``."""
    return rows.fetch_one()


def to_list_of_array(rows: RowSource) -> List[Tuple[Any, ...]]:
    return list(rows)


def to_map(rows: RowSource) -> Optional[Dict[str, Any]]:
    """The first row keyed by column label, or ``None``."""
    row = rows.fetch_one()
    if row is None:
        return None
    return dict(zip(rows.column_names, row))


def to_list_of_map(rows: RowSource) -> List[Dict[str, Any]]:
    names = rows.column_names
    return [dict(zip(names, row)) for row in rows]


def map_row(row_function: Callable[[Tuple[Any, ...]], T]) -> RowMapper[List[T]]:
    """Build a row mapper applying ``row_function`` to every row."""

    def mapper(rows: RowSource) -> List[T]:
        return [row_function(row) for row in rows]

    return mapper


# -----------------------------------------------------------------------------
# Executor
# -----------------------------------------------------------------------------

class DbQuery:
    """
    Executes parameterized statements and maps their results.

    :class: DbQuery
    :synopsis: CRUD primitives with named parameter and null predicate rewriting
    """

    def __init__(self, configuration: Optional[StatementConfiguration] = None) -> None:
        self.configuration = configuration if configuration is not None else StatementConfiguration()

    def execute(self, connection: Any, sql: str, params: Sequence[Any] = ()) -> int:
        """
        Execute an INSERT/UPDATE/DELETE or DDL statement.

        Returns:
            Number of rows affected as reported by the driver
        """
        cursor = self._run(wrap_connection(connection), sql, params)
        try:
            return cursor.rowcount
        finally:
            cursor.close()

    def execute_named(self, connection: Any, sql: str, parameters: Mapping[str, Any]) -> int:
        parsed_sql, params = self.parse_named_parameter_query(sql, parameters)
        return self.execute(connection, parsed_sql, params)

    def query(self, connection: Any, sql: str, row_mapper: RowMapper[T], params: Sequence[Any] = ()) -> T:
        """
        Run a SELECT and hand its rows to ``row_mapper``.

        ``= ?`` comparisons bound to ``None`` are rewritten to ``IS NULL`` first.
        """
        sql, rewritten = self.modify_null_parameter_in_query(sql, params)
        cursor = self._run(wrap_connection(connection), sql, rewritten)
        try:
            return row_mapper(RowSource(cursor, self.configuration.max_rows))
        finally:
            cursor.close()

    def query_named(
        self, connection: Any, sql: str, row_mapper: RowMapper[T], parameters: Mapping[str, Any]
    ) -> T:
        parsed_sql, params = self.parse_named_parameter_query(sql, parameters)
        return self.query(connection, parsed_sql, row_mapper, params)

    def insert(
        self,
        connection: Any,
        sql: str,
        generated_columns: Sequence[str] = (),
        params: Sequence[Any] = (),
    ) -> Any:
        """
        Execute an INSERT and return the generated key.

        Drivers supporting ``RETURNING`` get it appended for ``generated_columns``;
        the others report ``cursor.lastrowid``.
        """
        conn = wrap_connection(connection)
        returning = conn.supports_returning and bool(generated_columns)
        if returning:
            sql = f"{sql} RETURNING {SQLConstants.COLUMN_SEPARATOR.join(generated_columns)}"
        cursor = self._run(conn, sql, params)
        try:
            if returning:
                row = cursor.fetchone()
                return row[0] if row is not None else None
            return cursor.lastrowid
        finally:
            cursor.close()

    def insert_named(
        self,
        connection: Any,
        sql: str,
        parameters: Mapping[str, Any],
        generated_columns: Sequence[str] = (),
    ) -> Any:
        parsed_sql, params = self.parse_named_parameter_query(sql, parameters)
        return self.insert(connection, parsed_sql, generated_columns, params)

    def batch(self, connection: Any, sql: str, param_rows: Sequence[Sequence[Any]]) -> List[int]:
        """
        Execute ``sql`` once per parameter row.

        Returns:
            Rows affected per parameter row
        """
        conn = wrap_connection(connection)
        prepared = conn.prepare(sql)
        logger.debug(LoggingConstants.EXECUTING_BATCH, sql, len(param_rows))
        counts: List[int] = []
        cursor = conn.cursor()
        try:
            for params in param_rows:
                cursor.execute(prepared, conn.adapt_parameters(params))
                counts.append(cursor.rowcount)
        finally:
            cursor.close()
        return counts

    def _run(self, conn: DatabaseConnection, sql: str, params: Sequence[Any]) -> Any:
        logger.debug(LoggingConstants.EXECUTING_SQL, sql, list(params))
        cursor = conn.cursor()
        cursor.arraysize = self.configuration.fetch_size
        try:
            cursor.execute(conn.prepare(sql), conn.adapt_parameters(params))
        except Exception:
            cursor.close()
            raise
        return cursor

    @staticmethod
    def parse_named_parameter_query(sql: str, parameters: Mapping[str, Any]) -> Tuple[str, List[Any]]:
        """
        Replace ``:name`` tokens outside quoted literals with ``?``.

        Values are collected in token order; a name used twice is bound twice.
        ``::`` (PostgreSQL casts) is left untouched.

        Raises:
            QueryParameterError: a token has no entry in ``parameters``
        """
        out: List[str] = []
        params: List[Any] = []
        quote: Optional[str] = None
        length = len(sql)
        index = 0
        while index < length:
            char = sql[index]
            if quote is not None:
                if char == quote:
                    quote = None
                out.append(char)
                index += 1
                continue
            if char in (QueryParsingConstants.SINGLE_QUOTE, QueryParsingConstants.DOUBLE_QUOTE):
                quote = char
                out.append(char)
                index += 1
                continue
            if char == QueryParsingConstants.NAMED_PARAMETER_PREFIX:
                if index + 1 < length and sql[index + 1] == QueryParsingConstants.NAMED_PARAMETER_PREFIX:
                    out.append(sql[index:index + 2])
                    index += 2
                    continue
                end = index + 1
                if end < length and (sql[end].isalpha() or sql[end] == "_"):
                    while end < length and (sql[end].isalnum() or sql[end] == "_"):
                        end += 1
                    name = sql[index + 1:end]
                    if name not in parameters:
                        raise QueryParameterError(ErrorMessages.MISSING_NAMED_PARAMETER.format(name=name))
                    params.append(parameters[name])
                    out.append(QueryParsingConstants.POSITIONAL_PLACEHOLDER)
                    index = end
                    continue
            out.append(char)
            index += 1
        return "".join(out), params

    @staticmethod
    def modify_null_parameter_in_query(sql: str, params: Sequence[Any]) -> Tuple[str, List[Any]]:
        """
        Rewrite ``= ?`` comparisons bound to ``None`` into ``IS NULL``.

        The scan is quote-aware and counts every placeholder so that parameters stay
        aligned; the dropped ``None`` values are removed from the returned list.
        ``!=``, ``<=`` and ``>=`` comparisons are never rewritten.

        Raises:
            QueryParameterError: the statement has more placeholders than parameters
        """
        out: List[str] = []
        kept: List[Any] = []
        quote: Optional[str] = None
        param_index = 0
        length = len(sql)
        index = 0

        def next_param() -> Any:
            if param_index >= len(params):
                raise QueryParameterError(
                    ErrorMessages.PARAMETER_COUNT_MISMATCH.format(expected=param_index + 1, actual=len(params))
                )
            return params[param_index]

        while index < length:
            char = sql[index]
            if quote is not None:
                if char == quote:
                    quote = None
                out.append(char)
                index += 1
                continue
            if char in (QueryParsingConstants.SINGLE_QUOTE, QueryParsingConstants.DOUBLE_QUOTE):
                quote = char
                out.append(char)
                index += 1
                continue
            if char == QueryParsingConstants.POSITIONAL_PLACEHOLDER:
                kept.append(next_param())
                param_index += 1
                out.append(char)
                index += 1
                continue
            if char == QueryParsingConstants.EQUALS and not (index > 0 and sql[index - 1] in "!<>"):
                lookahead = index + 1
                while lookahead < length and sql[lookahead].isspace():
                    lookahead += 1
                if lookahead < length and sql[lookahead] == QueryParsingConstants.POSITIONAL_PLACEHOLDER:
                    value = next_param()
                    param_index += 1
                    if value is None:
                        out.append(SQLConstants.IS_NULL)
                    else:
                        out.append(sql[index:lookahead + 1])
                        kept.append(value)
                    index = lookahead + 1
                    continue
            out.append(char)
            index += 1

        # Extra parameters are passed through for the driver to reject
        kept.extend(params[param_index:])
        return "".join(out), kept
