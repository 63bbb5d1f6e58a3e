# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
JoinAlchemy: a lightweight entity-relational mapper over DB-API connections.

Entities are Pydantic models; one join query loads a whole object graph and
saves and deletes cascade through associations inside a single transaction.
"""

from __future__ import annotations

from .connection import (
    DatabaseConnection,
    DBAPIConnection,
    SQLiteConnection,
    Transaction,
    transaction_scope,
    wrap_connection,
)
from .constants import AssociationKind, CascadeType, IdGeneration, SaveMode
from .db_query import (
    DbQuery,
    RowSource,
    StatementConfiguration,
    map_row,
    to_array,
    to_id,
    to_id_list,
    to_list_of_array,
    to_list_of_map,
    to_map,
)
from .entity_orm import (
    Association,
    ColumnJoin,
    EntityBase,
    EntityDescriptor,
    EntityRegistry,
    JoinColumn,
    JoinTable,
    ManyToManyAssociation,
    ScalarField,
    ToManyAssociation,
    ToOneAssociation,
    clear_registry,
    column,
    entity,
    get_registry,
    many_to_many,
    many_to_one,
    one_to_many,
    one_to_one,
    transient,
)
from .exceptions import (
    ConversionError,
    JoinAlchemyError,
    MappingConfigurationError,
    QueryParameterError,
    StaleEntityError,
)
from .join_query import GraphReconstructor
from .join_query_builder import JoinPlan, JoinQueryBuilder, JoinStep, StatementBuilder
from .repository import Repository, RepositoryFactory
from .type_converters import (
    AttributeConverter,
    BaseTypeConverter,
    TypeConversionService,
    YesNoConverter,
    get_conversion_service,
)

__version__ = "0.1.0"

__all__ = [
    # Declarations
    "entity",
    "column",
    "transient",
    "many_to_one",
    "one_to_one",
    "one_to_many",
    "many_to_many",
    "JoinColumn",
    "JoinTable",
    "EntityBase",
    # Registry and descriptors
    "EntityRegistry",
    "EntityDescriptor",
    "ScalarField",
    "Association",
    "ToOneAssociation",
    "ToManyAssociation",
    "ManyToManyAssociation",
    "ColumnJoin",
    "get_registry",
    "clear_registry",
    # Join queries
    "JoinPlan",
    "JoinStep",
    "JoinQueryBuilder",
    "StatementBuilder",
    "GraphReconstructor",
    # Repositories
    "Repository",
    "RepositoryFactory",
    # Execution
    "DbQuery",
    "RowSource",
    "StatementConfiguration",
    "to_id",
    "to_id_list",
    "to_array",
    "to_list_of_array",
    "to_map",
    "to_list_of_map",
    "map_row",
    # Connections
    "DatabaseConnection",
    "SQLiteConnection",
    "DBAPIConnection",
    "Transaction",
    "transaction_scope",
    "wrap_connection",
    # Conversion
    "TypeConversionService",
    "BaseTypeConverter",
    "AttributeConverter",
    "YesNoConverter",
    "get_conversion_service",
    # Constants
    "CascadeType",
    "AssociationKind",
    "IdGeneration",
    "SaveMode",
    # Exceptions
    "JoinAlchemyError",
    "MappingConfigurationError",
    "ConversionError",
    "StaleEntityError",
    "QueryParameterError",
]
