# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Connection adapters and transaction boundaries over DB-API 2.0 connections.

Connections are acquired and pooled by the caller. The adapters only know how a
driver spells auto-commit, which parameter style it expects, and which Python
values it cannot bind directly.
"""

from __future__ import annotations

import datetime
import decimal
import logging
import sqlite3
import sys
import uuid
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, List, Optional, Sequence

from .constants import DriverConstants, LoggingConstants, QueryParsingConstants

logger = logging.getLogger(__name__)


class DatabaseConnection(ABC):
    """Wrapper for a DB-API connection with a uniform auto-commit switch."""

    supports_returning: bool = False

    def __init__(self, raw: Any, paramstyle: Optional[str] = None) -> None:
        """
        Initialize the adapter.

        Args:
            raw: Open DB-API connection
            paramstyle: Driver parameter style; detected from the driver module when omitted
        """
        self.raw = raw
        self.paramstyle = paramstyle if paramstyle is not None else _detect_paramstyle(raw)

    @property
    @abstractmethod
    def autocommit(self) -> bool:
        """Whether every statement commits on its own."""

    @autocommit.setter
    @abstractmethod
    def autocommit(self, value: bool) -> None:
        """Switch auto-commit mode."""

    def cursor(self) -> Any:
        return self.raw.cursor()

    def commit(self) -> None:
        self.raw.commit()

    def rollback(self) -> None:
        self.raw.rollback()

    def prepare(self, sql: str) -> str:
        """Rewrite ``?`` placeholders into the driver's parameter style."""
        if self.paramstyle in (DriverConstants.PARAMSTYLE_FORMAT, DriverConstants.PARAMSTYLE_PYFORMAT):
            return _qmark_to_format(sql)
        return sql

    def adapt_parameter(self, value: Any) -> Any:
        if isinstance(value, Enum):
            return value.value
        return value

    def adapt_parameters(self, params: Sequence[Any]) -> List[Any]:
        return [self.adapt_parameter(value) for value in params]

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(paramstyle={self.paramstyle!r})>"


class SQLiteConnection(DatabaseConnection):
    """
    Adapter for :mod:`sqlite3` connections.

    Auto-commit is ``isolation_level is None`` in legacy transaction control and the
    ``autocommit`` attribute on Python 3.12+ connections that opted into it.
    """

    def __init__(self, raw: sqlite3.Connection) -> None:
        super().__init__(raw, paramstyle=DriverConstants.PARAMSTYLE_QMARK)
        # isolation level restored when leaving auto-commit mode
        self._manual_isolation_level = raw.isolation_level if raw.isolation_level is not None else ""

    @property
    def autocommit(self) -> bool:
        mode = getattr(self.raw, DriverConstants.AUTOCOMMIT_ATTRIBUTE, None)
        if isinstance(mode, bool):
            return mode
        return self.raw.isolation_level is None

    @autocommit.setter
    def autocommit(self, value: bool) -> None:
        mode = getattr(self.raw, DriverConstants.AUTOCOMMIT_ATTRIBUTE, None)
        if isinstance(mode, bool):
            self.raw.autocommit = value
            return
        if value:
            if self.raw.isolation_level is not None:
                self._manual_isolation_level = self.raw.isolation_level
            self.raw.isolation_level = None
        else:
            self.raw.isolation_level = self._manual_isolation_level

    def adapt_parameter(self, value: Any) -> Any:
        # sqlite3 has no native temporal, decimal or uuid storage classes
        if isinstance(value, datetime.datetime):
            return value.isoformat(sep=" ")
        if isinstance(value, (datetime.date, datetime.time)):
            return value.isoformat()
        if isinstance(value, (decimal.Decimal, uuid.UUID)):
            return str(value)
        return super().adapt_parameter(value)


class DBAPIConnection(DatabaseConnection):
    """
    Adapter for other DB-API drivers.

    Handles drivers exposing ``autocommit`` as an attribute (psycopg) and drivers
    exposing ``get_autocommit()`` / ``autocommit(value)`` methods (PyMySQL).
    """

    def __init__(self, raw: Any, paramstyle: Optional[str] = None, supports_returning: bool = False) -> None:
        super().__init__(raw, paramstyle=paramstyle)
        self.supports_returning = supports_returning

    @property
    def autocommit(self) -> bool:
        getter = getattr(self.raw, DriverConstants.GET_AUTOCOMMIT_METHOD, None)
        if callable(getter):
            return bool(getter())
        return bool(getattr(self.raw, DriverConstants.AUTOCOMMIT_ATTRIBUTE, False))

    @autocommit.setter
    def autocommit(self, value: bool) -> None:
        setter = getattr(self.raw, DriverConstants.AUTOCOMMIT_ATTRIBUTE, None)
        if callable(setter):
            setter(value)
        else:
            self.raw.autocommit = value


def wrap_connection(connection: Any) -> DatabaseConnection:
    """Return ``connection`` wrapped in the adapter matching its driver."""
    if isinstance(connection, DatabaseConnection):
        return connection
    if isinstance(connection, sqlite3.Connection):
        return SQLiteConnection(connection)
    return DBAPIConnection(connection)


def _detect_paramstyle(raw: Any) -> str:
    module_name = type(raw).__module__.split(".")[0]
    module = sys.modules.get(module_name)
    return getattr(module, DriverConstants.PARAMSTYLE_ATTRIBUTE, DriverConstants.PARAMSTYLE_QMARK)


def _qmark_to_format(sql: str) -> str:
    out: List[str] = []
    quote: Optional[str] = None
    for char in sql:
        if char == QueryParsingConstants.PERCENT:
            # format style drivers interpolate the whole statement, literals included
            out.append(QueryParsingConstants.ESCAPED_PERCENT)
            continue
        if quote is not None:
            if char == quote:
                quote = None
            out.append(char)
            continue
        if char in (QueryParsingConstants.SINGLE_QUOTE, QueryParsingConstants.DOUBLE_QUOTE):
            quote = char
            out.append(char)
        elif char == QueryParsingConstants.POSITIONAL_PLACEHOLDER:
            out.append(QueryParsingConstants.FORMAT_PLACEHOLDER)
        else:
            out.append(char)
    return "".join(out)


# -----------------------------------------------------------------------------
# Transaction boundary
# -----------------------------------------------------------------------------

class Transaction:
    """
    Context manager owning a transaction only when the connection is in auto-commit mode.

    On entry auto-commit is switched off. A clean exit commits, an exception rolls
    back and propagates unchanged. The original mode is restored either way.
    A connection already in manual-commit mode belongs to the caller and is left alone.
    """

    def __init__(self, connection: Any) -> None:
        self.connection = wrap_connection(connection)
        self._original_autocommit = self.connection.autocommit
        self.owns_transaction = self._original_autocommit

    def __enter__(self) -> DatabaseConnection:
        if self.owns_transaction:
            self.connection.autocommit = False
        return self.connection

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        _ = exc_tb  # Mark as intentionally unused
        if not self.owns_transaction:
            return False
        try:
            if exc_type is None:
                self.connection.commit()
                logger.debug(LoggingConstants.TRANSACTION_COMMITTED)
            else:
                self.connection.rollback()
                logger.warning(LoggingConstants.TRANSACTION_ROLLED_BACK, exc_type.__name__, exc_val)
        finally:
            self.connection.autocommit = self._original_autocommit
        return False


def transaction_scope(connection: Any) -> Transaction:
    """
    Provide a transactional scope around a series of operations.

    Returns:
        Transaction whose context value is the wrapped connection
    """
    return Transaction(connection)

