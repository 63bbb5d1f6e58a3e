# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Exception hierarchy for JoinAlchemy.

Configuration errors are structural and never retried. Conversion, staleness and
parameter errors concern a single operation. Driver errors are never wrapped.
"""

from __future__ import annotations


class JoinAlchemyError(Exception):
    """Base class for every error raised by JoinAlchemy itself."""


class MappingConfigurationError(JoinAlchemyError, ValueError):
    """Entity mapping is structurally broken; raised at registration time."""


class ConversionError(JoinAlchemyError, TypeError):
    """A value cannot be converted between its storage and domain representation."""


class StaleEntityError(JoinAlchemyError, RuntimeError):
    """An id expected to exist in the database matched no row."""

    def __init__(self, message: str, table_name: str, id_value: object) -> None:
        super().__init__(message)
        self.table_name = table_name
        self.id_value = id_value


class QueryParameterError(JoinAlchemyError, ValueError):
    """Statement parameters do not line up with the statement text."""
