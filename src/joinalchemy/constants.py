# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Constants module for JoinAlchemy.

This module centralizes all constants, configuration values, and literal strings
used throughout the JoinAlchemy codebase. No magic values are allowed elsewhere.

:module: constants
:synopsis: Centralized constants and configuration for JoinAlchemy
:author: JoinAlchemy Contributors
"""

from __future__ import annotations

from enum import Enum, StrEnum
from typing import Final


# ============================================================================
# CASCADE TYPES
# ============================================================================

class CascadeType(Enum):
    """
    Operations propagated from a parent entity to its associated children.

    ALL covers every other member.
    """

    ALL = "ALL"
    PERSIST = "PERSIST"
    MERGE = "MERGE"
    REMOVE = "REMOVE"


class SaveMode(Enum):
    """Per-row write mode selected by the database presence check."""

    PERSIST = "PERSIST"
    MERGE = "MERGE"

    @property
    def cascade_type(self) -> CascadeType:
        """The cascade member that authorizes propagation of this mode."""
        return CascadeType(self.value)


# ============================================================================
# ASSOCIATION KINDS
# ============================================================================

class AssociationKind(Enum):
    """Declared relationship kind of an association field."""

    MANY_TO_ONE = "many_to_one"
    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_MANY = "many_to_many"

    @property
    def is_single_valued(self) -> bool:
        return self in (AssociationKind.MANY_TO_ONE, AssociationKind.ONE_TO_ONE)


class IdGeneration(Enum):
    """
    Identifier generation strategy.

    AUTO inserts a supplied id as given and lets the database generate one otherwise.
    IDENTITY only accepts database generated ids: a supplied id that has no row is stale.
    """

    AUTO = "auto"
    IDENTITY = "identity"


# ============================================================================
# SQL CONSTANTS
# ============================================================================

class SQLConstants(StrEnum):
    """SQL keywords and fragments emitted by the statement builders."""

    # @@ STEP 1: Statement keywords
    SELECT = "SELECT"
    SELECT_DISTINCT = "SELECT DISTINCT"
    FROM = "FROM"
    WHERE = "WHERE"
    LEFT_JOIN = "LEFT JOIN"
    ON = "ON"
    AND = "AND"
    INSERT_INTO = "INSERT INTO"
    VALUES = "VALUES"
    DEFAULT_VALUES = "DEFAULT VALUES"
    UPDATE = "UPDATE"
    SET = "SET"
    DELETE_FROM = "DELETE FROM"

    # @@ STEP 2: Fragments
    PLACEHOLDER = "?"
    IS_NULL = " IS NULL "
    NULL = "NULL"
    COLUMN_SEPARATOR = ", "
    QUALIFIER = "."
    ALWAYS_TRUE = "1 = 1"


class QueryParsingConstants:
    """Characters recognized by the quote-aware statement scanners."""

    SINGLE_QUOTE: Final[str] = "'"
    DOUBLE_QUOTE: Final[str] = '"'
    NAMED_PARAMETER_PREFIX: Final[str] = ":"
    POSITIONAL_PLACEHOLDER: Final[str] = "?"
    EQUALS: Final[str] = "="
    PERCENT: Final[str] = "%"
    ESCAPED_PERCENT: Final[str] = "%%"
    FORMAT_PLACEHOLDER: Final[str] = "%s"


class AliasConstants:
    """Table alias generation for repeated joins of the same table."""

    ALIAS_PREFIX: Final[str] = "c"
    ALIAS_SEPARATOR: Final[str] = "_"


class DriverConstants:
    """DB-API driver conventions."""

    PARAMSTYLE_QMARK: Final[str] = "qmark"
    PARAMSTYLE_FORMAT: Final[str] = "format"
    PARAMSTYLE_PYFORMAT: Final[str] = "pyformat"
    PARAMSTYLE_ATTRIBUTE: Final[str] = "paramstyle"
    AUTOCOMMIT_ATTRIBUTE: Final[str] = "autocommit"
    GET_AUTOCOMMIT_METHOD: Final[str] = "get_autocommit"
    SQLITE_MODULE: Final[str] = "sqlite3"
    YES: Final[str] = "Y"
    NO: Final[str] = "N"


class DefaultConfiguration:
    """Default values for repository and executor configuration."""

    FETCH_SIZE: Final[int] = 100
    MAX_ROWS: Final[int] = 0
    CONVERTER_PRIORITY: Final[int] = 100
    TEXT_ENCODING: Final[str] = "utf-8"


# ============================================================================
# MODEL METADATA CONSTANTS
# ============================================================================

class ModelMetadataConstants:
    """Model metadata attribute constants."""

    # @@ STEP 1: Class level markers set by the @entity decorator
    ENTITY_TABLE_NAME: Final[str] = "__entity_table_name__"
    IS_ENTITY: Final[str] = "__is_entity__"

    # @@ STEP 2: Field level metadata key inside json_schema_extra
    FIELD_METADATA: Final[str] = "joinalchemy_metadata"

    # @@ STEP 3: Default foreign key column naming
    FOREIGN_KEY_SEPARATOR: Final[str] = "_"


# ============================================================================
# ERROR MESSAGE CONSTANTS
# ============================================================================

class ErrorMessages:
    """Error message constants."""

    # @@ STEP 1: Mapping configuration errors
    NOT_AN_ENTITY: Final[str] = "Class {class_name} is not an entity. Decorate it with @entity"
    MISSING_ID_FIELD: Final[str] = "Entity {class_name} has no id field. Declare exactly one column(primary_key=True)"
    MULTIPLE_ID_FIELDS: Final[str] = "Entity {class_name} declares more than one id field: {fields}"
    MISSING_JOIN_TABLE: Final[str] = "Many-to-many field {class_name}.{field_name} requires a join_table declaration"
    EMPTY_JOIN_TABLE_COLUMNS: Final[str] = "Join table {table_name} for {class_name}.{field_name} needs join_columns and inverse_join_columns"
    UNRESOLVED_TARGET: Final[str] = "Cannot resolve association target of {class_name}.{field_name}: {target}"
    TARGET_NOT_ENTITY: Final[str] = "Association target {target} of {class_name}.{field_name} is not an entity"
    COLLECTION_REQUIRED: Final[str] = "{kind} field {class_name}.{field_name} must be annotated as a list or set"
    ID_TYPE_MISMATCH: Final[str] = "Declared id type {declared} does not match id field {class_name}.{field_name} of type {actual}"

    # @@ STEP 2: Conversion errors
    UNSUPPORTED_CONVERSION: Final[str] = "Could not convert database type {source} to entity type {target}"
    LOSSY_CONVERSION: Final[str] = "Converting {value!r} to {target} would lose information"
    INVALID_BOOLEAN: Final[str] = "Value {value!r} is not a valid boolean"
    INVALID_ENUM: Final[str] = "Value {value!r} is not a member of {target}"

    # @@ STEP 3: Persistence errors
    UPDATE_FAILED: Final[str] = "Update failed for {table_name} with id {id_value}: no row affected"
    IDENTITY_ROW_MISSING: Final[str] = "Entity {table_name} with generated id {id_value} does not exist"
    ENTITY_CLASS_MISMATCH: Final[str] = "Expected an instance of {expected}, got {actual}"
    INSERT_RETURNED_NO_KEY: Final[str] = "Insert into {table_name} returned no generated key"

    # @@ STEP 4: Query parameter errors
    MISSING_NAMED_PARAMETER: Final[str] = "No value supplied for named parameter :{name}"
    PARAMETER_COUNT_MISMATCH: Final[str] = "Statement expects {expected} parameters, got {actual}"


# ============================================================================
# LOGGING CONSTANTS
# ============================================================================

class LoggingConstants:
    """Log message templates."""

    REGISTERED_ENTITY: Final[str] = "Registered entity %s for table %s"
    BUILT_JOIN_PLAN: Final[str] = "Built join plan for %s: %s"
    REGISTERED_CONVERTER: Final[str] = "Registered converter %s with priority %d"
    RECONSTRUCTED_GRAPH: Final[str] = "Reconstructed %s: %d roots, %d entities from %d rows"
    EXECUTING_SQL: Final[str] = "Executing SQL: %s | params=%s"
    EXECUTING_BATCH: Final[str] = "Executing batch SQL: %s | rows=%d"
    SKIPPED_UPDATE: Final[str] = "Skipped update of %s id=%s: row unchanged"
    TRANSACTION_COMMITTED: Final[str] = "Transaction committed"
    TRANSACTION_ROLLED_BACK: Final[str] = "Transaction rolled back after %s: %s"
    CYCLE_SKIPPED: Final[str] = "Object %s id=%s already on the current path, not re-entered"
