# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the statement executor, its parameter rewriting and the row mappers.
"""

from __future__ import annotations

from datetime import date

import pytest

from joinalchemy import (
    DBAPIConnection,
    DbQuery,
    QueryParameterError,
    StatementConfiguration,
    map_row,
    to_array,
    to_id,
    to_id_list,
    to_list_of_array,
    to_list_of_map,
    to_map,
)

from .models import Species


class FakeCursor:
    """Records statements and answers every fetch with a fixed row."""

    def __init__(self, log, row=(42,)):
        self.log = log
        self.row = row
        self.rowcount = 1
        self.lastrowid = None
        self.arraysize = 1
        self.description = (("id", None, None, None, None, None, None),)
        self.closed = False

    def execute(self, sql, params):
        self.log.append((sql, list(params)))

    def fetchone(self):
        return self.row

    def fetchmany(self):
        return []

    def close(self):
        self.closed = True


class FakeDriverConnection:
    def __init__(self):
        self.log = []

    def cursor(self):
        return FakeCursor(self.log)


@pytest.fixture
def db_query() -> DbQuery:
    return DbQuery()


@pytest.fixture
def clubs(connection):
    connection.executemany("INSERT INTO club (title) VALUES (?)", [("Chess",), ("Go",), ("Bridge",)])
    return connection


class TestNamedParameters:
    """Rewriting of :name tokens into positional placeholders."""

    def test_tokens_bound_in_order(self):
        sql, params = DbQuery.parse_named_parameter_query(
            "SELECT * FROM t WHERE a = :a AND b = :b OR a = :a", {"a": 1, "b": 2}
        )

        assert sql == "SELECT * FROM t WHERE a = ? AND b = ? OR a = ?"
        assert params == [1, 2, 1]

    def test_quoted_literals_and_casts_untouched(self):
        sql, params = DbQuery.parse_named_parameter_query(
            "SELECT * FROM t WHERE s = ':x' AND n = \":y\" AND id::text = :id", {"id": 5}
        )

        assert sql == "SELECT * FROM t WHERE s = ':x' AND n = \":y\" AND id::text = ?"
        assert params == [5]

    def test_missing_parameter(self):
        with pytest.raises(QueryParameterError, match=":b"):
            DbQuery.parse_named_parameter_query("SELECT * FROM t WHERE a = :a AND b = :b", {"a": 1})

    def test_lone_colon_is_kept(self):
        sql, params = DbQuery.parse_named_parameter_query("SELECT ':' || x FROM t WHERE y = : ", {})

        assert sql == "SELECT ':' || x FROM t WHERE y = : "
        assert params == []


class TestNullRewrite:
    """Rewriting of ``= ?`` comparisons bound to None."""

    def test_equality_with_none_becomes_is_null(self):
        sql, params = DbQuery.modify_null_parameter_in_query("SELECT * FROM t WHERE a = ? AND b = ?", [None, 2])

        assert sql == "SELECT * FROM t WHERE a  IS NULL  AND b = ?"
        assert params == [2]

    def test_without_spaces(self):
        sql, params = DbQuery.modify_null_parameter_in_query("SELECT * FROM t WHERE a=? AND b=?", [1, None])

        assert sql == "SELECT * FROM t WHERE a=? AND b IS NULL "
        assert params == [1]

    def test_inequality_operators_untouched(self):
        sql, params = DbQuery.modify_null_parameter_in_query(
            "SELECT * FROM t WHERE a != ? AND b <= ? AND c >= ?", [None, None, None]
        )

        assert sql == "SELECT * FROM t WHERE a != ? AND b <= ? AND c >= ?"
        assert params == [None, None, None]

    def test_quoted_text_untouched(self):
        sql, params = DbQuery.modify_null_parameter_in_query("SELECT * FROM t WHERE a = '= ?' AND b = ?", [None])

        assert sql == "SELECT * FROM t WHERE a = '= ?' AND b  IS NULL "
        assert params == []

    def test_other_placeholders_keep_alignment(self):
        sql, params = DbQuery.modify_null_parameter_in_query(
            "SELECT * FROM t WHERE a IN (?, ?) AND b = ?", [1, None, None]
        )

        assert sql == "SELECT * FROM t WHERE a IN (?, ?) AND b  IS NULL "
        assert params == [1, None]

    def test_too_few_parameters(self):
        with pytest.raises(QueryParameterError, match="expects 2 parameters, got 1"):
            DbQuery.modify_null_parameter_in_query("SELECT * FROM t WHERE a = ? AND b = ?", [1])

    def test_extra_parameters_pass_through(self):
        sql, params = DbQuery.modify_null_parameter_in_query("SELECT * FROM t WHERE a = ?", [1, 2])

        assert sql == "SELECT * FROM t WHERE a = ?"
        assert params == [1, 2]


class TestExecution:
    """Statements against an in-memory SQLite database."""

    def test_insert_returns_generated_key(self, connection, db_query):
        first = db_query.insert(connection, "INSERT INTO club (title) VALUES (?)", ("id",), ("Chess",))
        second = db_query.insert_named(connection, "INSERT INTO club (title) VALUES (:title)", {"title": "Go"})

        assert (first, second) == (1, 2)

    def test_execute_returns_affected_rows(self, clubs, db_query):
        assert db_query.execute(clubs, "UPDATE club SET title = upper(title)") == 3
        assert db_query.execute_named(clubs, "DELETE FROM club WHERE title = :title", {"title": "GO"}) == 1

    def test_batch(self, connection, db_query):
        counts = db_query.batch(connection, "INSERT INTO club (title) VALUES (?)", [("a",), ("b",), ("c",)])

        assert counts == [1, 1, 1]
        assert db_query.query(connection, "SELECT COUNT(*) FROM club", to_id) == 3

    def test_query_with_none_parameter(self, connection, db_query):
        connection.execute("INSERT INTO note (text) VALUES ('orphan')")

        texts = db_query.query(connection, "SELECT text FROM note WHERE owner_id = ?", to_id_list, [None])

        assert texts == ["orphan"]

    def test_parameters_adapted_for_sqlite(self, connection, db_query):
        db_query.execute(
            connection,
            "INSERT INTO pet (name, species, birth_date) VALUES (?, ?, ?)",
            ["Rex", Species.DOG, date(2020, 3, 14)],
        )

        row = db_query.query(connection, "SELECT species, birth_date FROM pet", to_array)

        assert row == ("dog", "2020-03-14")

    def test_max_rows_limits_results(self, clubs):
        limited = DbQuery(StatementConfiguration(fetch_size=1, max_rows=2))

        assert limited.query(clubs, "SELECT id FROM club ORDER BY id", to_id_list) == [1, 2]


class TestRowMappers:
    """Result shaping helpers."""

    def test_scalar_mappers(self, clubs, db_query):
        assert db_query.query(clubs, "SELECT id FROM club ORDER BY id", to_id) == 1
        assert db_query.query(clubs, "SELECT id FROM club WHERE id = ?", to_id, [99]) is None
        assert db_query.query(clubs, "SELECT id FROM club ORDER BY id", to_id_list) == [1, 2, 3]

    def test_tuple_mappers(self, clubs, db_query):
        assert db_query.query(clubs, "SELECT id, title FROM club ORDER BY id", to_array) == (1, "Chess")
        assert db_query.query(clubs, "SELECT id, title FROM club ORDER BY id", to_list_of_array) == [
            (1, "Chess"), (2, "Go"), (3, "Bridge"),
        ]

    def test_dict_mappers(self, clubs, db_query):
        assert db_query.query(clubs, "SELECT id, title FROM club ORDER BY id", to_map) == {"id": 1, "title": "Chess"}
        assert db_query.query(clubs, "SELECT title FROM club WHERE id = ?", to_map, [99]) is None
        assert db_query.query_named(
            clubs, "SELECT id, title AS name FROM club WHERE id > :low ORDER BY id", to_list_of_map, {"low": 1}
        ) == [{"id": 2, "name": "Go"}, {"id": 3, "name": "Bridge"}]

    def test_map_row(self, clubs, db_query):
        titles = db_query.query(clubs, "SELECT title FROM club ORDER BY id", map_row(lambda row: row[0].lower()))

        assert titles == ["chess", "go", "bridge"]


class TestDriverAdapters:
    """Parameter style translation and RETURNING support."""

    def test_format_paramstyle(self):
        conn = DBAPIConnection(object(), paramstyle="format")

        assert conn.prepare("SELECT * FROM t WHERE a = ? AND b LIKE '50%?'") == (
            "SELECT * FROM t WHERE a = %s AND b LIKE '50%%?'"
        )

    def test_qmark_paramstyle_untouched(self):
        conn = DBAPIConnection(object(), paramstyle="qmark")

        assert conn.prepare("SELECT * FROM t WHERE a = ?") == "SELECT * FROM t WHERE a = ?"

    def test_insert_with_returning(self, db_query):
        raw = FakeDriverConnection()
        conn = DBAPIConnection(raw, paramstyle="format", supports_returning=True)

        key = db_query.insert(conn, "INSERT INTO club (title) VALUES (?)", ("id",), ("Chess",))

        assert key == 42
        assert raw.log == [("INSERT INTO club (title) VALUES (%s) RETURNING id", ["Chess"])]
