# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Tests for transaction boundaries and connection adapters.
"""

from __future__ import annotations

import sqlite3

import pytest

from joinalchemy import (
    DBAPIConnection,
    DatabaseConnection,
    Repository,
    RepositoryFactory,
    SQLiteConnection,
    StatementConfiguration,
    Transaction,
    transaction_scope,
    wrap_connection,
)

from .models import SCHEMA, Club, Owner, count_rows, sample_owner


class AttributeAutocommitConnection:
    """Driver exposing auto-commit as an attribute, like psycopg."""

    def __init__(self, autocommit=True):
        self.autocommit = autocommit
        self.calls = []

    def commit(self):
        self.calls.append(("commit", self.autocommit))

    def rollback(self):
        self.calls.append(("rollback", self.autocommit))


class MethodAutocommitConnection:
    """Driver exposing get_autocommit()/autocommit(value), like PyMySQL."""

    def __init__(self, autocommit=True):
        self._autocommit = autocommit
        self.calls = []

    def get_autocommit(self):
        return self._autocommit

    def autocommit(self, value):
        self.calls.append(("autocommit", value))
        self._autocommit = value

    def commit(self):
        self.calls.append(("commit",))

    def rollback(self):
        self.calls.append(("rollback",))


@pytest.fixture
def manual_connection():
    """Connection in manual-commit mode; the test owns its transaction."""
    conn = sqlite3.connect(":memory:")
    try:
        conn.executescript(SCHEMA)
        yield conn
    finally:
        conn.close()


class TestTransactionOwnership:
    """A transaction is opened only on auto-commit connections."""

    def test_commit_on_clean_exit(self):
        raw = AttributeAutocommitConnection()

        with transaction_scope(raw) as conn:
            assert conn.autocommit is False

        assert raw.calls == [("commit", False)]
        assert raw.autocommit is True

    def test_rollback_on_error_propagates(self):
        raw = AttributeAutocommitConnection()

        with pytest.raises(RuntimeError, match="boom"):
            with transaction_scope(raw):
                raise RuntimeError("boom")

        assert raw.calls == [("rollback", False)]
        assert raw.autocommit is True

    def test_manual_commit_connection_is_left_alone(self):
        raw = AttributeAutocommitConnection(autocommit=False)

        with pytest.raises(ValueError):
            with Transaction(raw) as conn:
                assert isinstance(conn, DBAPIConnection)
                raise ValueError("caller decides")

        assert raw.calls == []
        assert raw.autocommit is False

    def test_method_style_driver(self):
        raw = MethodAutocommitConnection()

        with transaction_scope(raw):
            pass

        assert raw.calls == [("autocommit", False), ("commit",), ("autocommit", True)]

    def test_sqlite_isolation_level_restored(self, connection):
        transaction = Transaction(connection)
        assert transaction.owns_transaction

        with transaction as conn:
            assert isinstance(conn, SQLiteConnection)
            assert connection.isolation_level is not None

        assert connection.isolation_level is None

    def test_wrap_connection(self, connection):
        wrapped = wrap_connection(connection)

        assert isinstance(wrapped, SQLiteConnection)
        assert wrap_connection(wrapped) is wrapped
        assert isinstance(wrap_connection(AttributeAutocommitConnection()), DBAPIConnection)

    def test_adapter_must_define_autocommit(self):
        with pytest.raises(TypeError):
            DatabaseConnection(AttributeAutocommitConnection())


class TestSaveAtomicity:
    """A failed save leaves no rows behind."""

    def test_failure_rolls_back_every_row(self, connection, owner_repository):
        owner = sample_owner()
        owner.clubs = [Club(title="")]

        with pytest.raises(sqlite3.IntegrityError):
            owner_repository.save(connection, owner)

        for table_name in ("owner", "address", "pet", "note", "club", "toy"):
            assert count_rows(connection, table_name) == 0, table_name
        assert connection.isolation_level is None

    def test_failed_save_all_keeps_nothing(self, connection):
        clubs = Repository(Club, int)

        with pytest.raises(sqlite3.IntegrityError):
            clubs.save_all(connection, [Club(title="Chess"), Club(title="")])

        assert count_rows(connection, "club") == 0

    def test_caller_owned_transaction(self, manual_connection):
        owners = Repository(Owner, int)

        owners.save(manual_connection, sample_owner())
        assert count_rows(manual_connection, "owner") == 1

        manual_connection.rollback()

        assert count_rows(manual_connection, "owner") == 0
        assert manual_connection.isolation_level == ""


class TestRepositoryFactory:
    """Repositories sharing one configuration and one transaction."""

    def test_shared_configuration(self):
        factory = RepositoryFactory(statement_configuration=StatementConfiguration(fetch_size=10))

        owners = factory.create_repository(Owner, int)
        clubs = factory(Club)

        assert owners.registry is clubs.registry is factory.registry
        assert owners.db_query is clubs.db_query
        assert owners.db_query.configuration.fetch_size == 10

    def test_scope_spans_several_saves(self, connection):
        factory = RepositoryFactory()
        owners = factory.create_repository(Owner, int)
        clubs = factory.create_repository(Club, int)

        with pytest.raises(RuntimeError):
            with factory.transaction_scope(connection) as conn:
                owners.save(conn, sample_owner())
                clubs.save(conn, Club(title="Go"))
                raise RuntimeError("abort")

        assert count_rows(connection, "owner") == 0
        assert count_rows(connection, "club") == 0

        with factory.transaction_scope(connection) as conn:
            clubs.save(conn, Club(title="Go"))

        assert count_rows(connection, "club") == 1
