# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Repository: finders and cascading save/delete of entity graphs.

Reads run the cached join plan of the repository's entity and rebuild the object
graph from its rows. Writes walk the input graph using registry descriptors and
persist one row at a time inside a single transaction.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import (
    Any,
    Dict,
    Generic,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
    Type,
)

from .connection import DatabaseConnection, transaction_scope
from .constants import CascadeType, ErrorMessages, IdGeneration, LoggingConstants, SaveMode
from .db_query import DbQuery, RowMapper, StatementConfiguration, to_array, to_id
from .entity_orm import (
    EntityDescriptor,
    EntityRegistry,
    EntityType,
    ManyToManyAssociation,
    ToManyAssociation,
    ToOneAssociation,
    get_registry,
)
from .exceptions import JoinAlchemyError, StaleEntityError
from .join_query import GraphReconstructor
from .join_query_builder import JoinPlan, StatementBuilder, bridge_values
from .type_converters import TypeConversionService, get_conversion_service

logger = logging.getLogger(__name__)

# Column name -> storage value of one table row
RowValues = Dict[str, Any]


class Repository(Generic[EntityType]):
    """
    Data access for one entity class and the graph reachable from it.

    All operations take an open DB-API connection as first argument. Writes run
    inside :func:`transaction_scope`: a connection in auto-commit mode gets its own
    transaction, one in manual-commit mode is left to the caller.
    """

    def __init__(
        self,
        entity_class: Type[EntityType],
        id_type: Optional[type] = None,
        *,
        registry: Optional[EntityRegistry] = None,
        conversion_service: Optional[TypeConversionService] = None,
        db_query: Optional[DbQuery] = None,
    ) -> None:
        """
        Initialize the repository and register ``entity_class``.

        Args:
            entity_class: Root entity of every graph handled by this repository
            id_type: Expected type of the id field; checked against the mapping when given
            registry: Registry to use instead of the default one
            conversion_service: Conversion service to use instead of the default one
            db_query: Statement executor

        Raises:
            MappingConfigurationError: the entity or one of its targets is mis-mapped
        """
        self.entity_class = entity_class
        self.registry = registry if registry is not None else get_registry()
        self.conversion_service = conversion_service if conversion_service is not None else get_conversion_service()
        self.db_query = db_query if db_query is not None else DbQuery()

        self.descriptor: EntityDescriptor = self.registry.describe(entity_class)
        if id_type is not None:
            self.registry.check_id_type(entity_class, id_type)
        self.plan: JoinPlan = self.registry.get_join_plan(entity_class)
        self.reconstructor = GraphReconstructor(self.plan, self.registry, self.conversion_service)

    @property
    def select_sql(self) -> str:
        """The join query without a WHERE clause; custom finders extend it."""
        return self.plan.sql

    # =========================================================================
    # FINDERS
    # =========================================================================

    def find_by_id(self, connection: Any, id_value: Any) -> Optional[EntityType]:
        """Load the graph rooted at ``id_value`` or return ``None``."""
        if id_value is None:
            return None
        params = [self.conversion_service.to_storage_type(id_value, self.descriptor.id_field)]
        return self.db_query.query(connection, self.plan.by_id_sql, self.reconstructor.to_entity, params)

    def find_single(self, connection: Any, sql: str, *params: Any) -> Optional[EntityType]:
        """
        Run a full SELECT laid out like :attr:`select_sql` and return the first root.

        ``params`` are positional values, or a single mapping for ``:name`` parameters.
        """
        return self._query(connection, sql, self.reconstructor.to_entity, params)

    def find_single_with_where(self, connection: Any, where: str, *params: Any) -> Optional[EntityType]:
        return self._query(connection, self.plan.select_sql(where), self.reconstructor.to_entity, params)

    def find_all(self, connection: Any) -> List[EntityType]:
        return self._query(connection, self.plan.sql, self.reconstructor.to_list, ())

    def find_multiple(self, connection: Any, sql: str, *params: Any) -> List[EntityType]:
        """Run a full SELECT laid out like :attr:`select_sql` and return every root."""
        return self._query(connection, sql, self.reconstructor.to_list, params)

    def find_multiple_with_where(self, connection: Any, where: str, *params: Any) -> List[EntityType]:
        return self._query(connection, self.plan.select_sql(where), self.reconstructor.to_list, params)

    def find_distinct_with_where(self, connection: Any, where: str, *params: Any) -> List[EntityType]:
        return self._query(connection, self.plan.select_sql(where, distinct=True), self.reconstructor.to_list, params)

    def has_id(self, connection: Any, id_value: Any) -> bool:
        """Whether a row with ``id_value`` exists in the root table."""
        if id_value is None:
            return False
        storage_id = self.conversion_service.to_storage_type(id_value, self.descriptor.id_field)
        return _id_exists(self.db_query, connection, self.descriptor, storage_id)

    def _query(self, connection: Any, sql: str, row_mapper: RowMapper, params: Sequence[Any]) -> Any:
        if len(params) == 1 and isinstance(params[0], Mapping):
            return self.db_query.query_named(connection, sql, row_mapper, params[0])
        return self.db_query.query(connection, sql, row_mapper, list(params))

    # =========================================================================
    # SAVE
    # =========================================================================

    def save(self, connection: Any, entity: EntityType) -> EntityType:
        """
        Insert or update ``entity`` and every associated object its cascades cover.

        Returns:
            The graph reloaded from the database, generated ids included

        Raises:
            StaleEntityError: an update matched no row, or an identity id has no row
            ConversionError: a value cannot be converted for storage
        """
        self._check_class(entity)
        with transaction_scope(connection) as conn:
            return self._save(conn, entity)

    def save_all(self, connection: Any, entities: Iterable[EntityType]) -> List[EntityType]:
        """Save every entity in one transaction; results keep the input order."""
        entities = list(entities)
        for entity in entities:
            self._check_class(entity)
        with transaction_scope(connection) as conn:
            return [self._save(conn, entity) for entity in entities]

    def _save(self, conn: DatabaseConnection, entity: EntityType) -> EntityType:
        existing = self.find_by_id(conn, self.descriptor.get_id(entity))
        mode = SaveMode.MERGE if existing is not None else SaveMode.PERSIST

        operation = _CascadeSave(self, conn, mode)
        saved = operation.save(self.descriptor, existing, entity)

        id_field = self.descriptor.id_field
        id_value = self.conversion_service.to_domain_type(saved[id_field.column_name], id_field.python_type, id_field)
        return self.find_by_id(conn, id_value)

    def _check_class(self, entity: Any) -> None:
        if not isinstance(entity, self.entity_class):
            raise TypeError(
                ErrorMessages.ENTITY_CLASS_MISMATCH.format(
                    expected=self.entity_class.__name__, actual=type(entity).__name__
                )
            )

    # =========================================================================
    # DELETE
    # =========================================================================

    def delete(self, connection: Any, where: str, *params: Any) -> int:
        """
        Delete every graph whose root matches ``where``.

        Returns:
            Number of root entities deleted
        """
        with transaction_scope(connection) as conn:
            entities = self.find_multiple_with_where(conn, where, *params)
            operation = _CascadeDelete(self, conn)
            for entity in entities:
                operation.delete(entity)
            return len(entities)

    def delete_by_id(self, connection: Any, id_value: Any) -> int:
        """Delete the stored graph rooted at ``id_value``; returns 0 when absent."""
        with transaction_scope(connection) as conn:
            stored = self.find_by_id(conn, id_value)
            if stored is None:
                return 0
            _CascadeDelete(self, conn).delete(stored)
            return 1

    def delete_entity(self, connection: Any, entity: EntityType) -> int:
        """
        Delete the stored counterpart of ``entity``.

        Cascades follow the stored graph, not the in-memory one.
        """
        self._check_class(entity)
        return self.delete_by_id(connection, self.descriptor.get_id(entity))

    def __repr__(self) -> str:
        return f"<Repository({self.entity_class.__name__}, table={self.descriptor.table_name!r})>"


# -----------------------------------------------------------------------------
# Row level helpers
# -----------------------------------------------------------------------------

def _id_exists(db_query: DbQuery, conn: Any, descriptor: EntityDescriptor, storage_id: Any) -> bool:
    if storage_id is None:
        return False
    return db_query.query(conn, StatementBuilder.id_exists(descriptor), to_id, [storage_id]) is not None


def _same_id(descriptor: EntityDescriptor, left: Any, right: Any) -> bool:
    left_id = descriptor.get_id(left)
    return left_id is not None and left_id == descriptor.get_id(right)


def _children(entity: Any, field_name: str) -> List[Any]:
    if entity is None:
        return []
    value = getattr(entity, field_name, None)
    return list(value) if value else []


def _distinct_stored(descriptor: EntityDescriptor, children: List[Any]) -> List[Any]:
    """Stored children with one entry per id, first occurrence kept."""
    seen: Set[Any] = set()
    distinct: List[Any] = []
    for child in children:
        id_value = descriptor.get_id(child)
        if id_value in seen:
            continue
        seen.add(id_value)
        distinct.append(child)
    return distinct


class _CascadeDelete:
    """
    Depth-first delete of one or more stored graphs.

    Bridge rows go first, then collection children with a removal cascade, then
    the row itself, then to-one children with a removal cascade (their key is
    referenced by the row just deleted).
    """

    def __init__(self, repository: Repository, conn: DatabaseConnection) -> None:
        self.registry = repository.registry
        self.conversion_service = repository.conversion_service
        self.db_query = repository.db_query
        self.conn = conn
        self.visited: Set[Tuple[str, Any]] = set()

    def delete(self, entity: Any) -> None:
        descriptor = self.registry.get_descriptor_for(entity)
        id_value = descriptor.get_id(entity)
        if id_value is None:
            return
        key = (descriptor.table_name, id_value)
        if key in self.visited:
            logger.debug(LoggingConstants.CYCLE_SKIPPED, descriptor.table_name, id_value)
            return
        self.visited.add(key)

        deferred: List[Any] = []
        for association in descriptor.associations:
            # @@ STEP 1: Bridge rows of this entity, regardless of cascade
            if isinstance(association, ManyToManyAssociation):
                self._delete_bridge_rows(descriptor, association, entity)

            if not association.cascades(CascadeType.REMOVE):
                continue
            if isinstance(association, ToOneAssociation):
                child = getattr(entity, association.field_name, None)
                if child is not None:
                    deferred.append(child)
                continue

            # @@ STEP 2: Collection children before this row
            for child in _children(entity, association.field_name):
                self.delete(child)

        # @@ STEP 3: This row, then the to-one children it referenced
        storage_id = self.conversion_service.to_storage_type(id_value, descriptor.id_field)
        self.db_query.execute(self.conn, StatementBuilder.delete_by_id(descriptor), [storage_id])
        for child in deferred:
            self.delete(child)

    def _delete_bridge_rows(self, descriptor: EntityDescriptor, association: ManyToManyAssociation, entity: Any) -> None:
        values: Dict[str, Any] = {}
        for join in association.parent_to_bridge:
            scalar = descriptor.field_for_column(join.parent_column)
            raw = getattr(entity, scalar.field_name) if scalar is not None else None
            values[join.child_column] = self.conversion_service.to_storage_type(raw, scalar)
        columns = list(values)
        self.db_query.execute(
            self.conn,
            StatementBuilder.delete_matching(association.bridge_table, columns),
            [values[column] for column in columns],
        )


class _CascadeSave:
    """
    One top-level save: walks the input graph and writes rows.

    Input objects are never mutated; foreign keys propagated from a parent travel
    as column overrides. Objects on the current path are not re-entered and
    objects already written in this operation are not written twice.
    """

    def __init__(self, repository: Repository, conn: DatabaseConnection, mode: SaveMode) -> None:
        self.registry = repository.registry
        self.conversion_service = repository.conversion_service
        self.db_query = repository.db_query
        self.conn = conn
        self.mode = mode
        self.cascade_type = mode.cascade_type
        self.deleter = _CascadeDelete(repository, conn)
        # id(object) -> row known so far (None until an id is known)
        self.path: Dict[int, Optional[RowValues]] = {}
        self.completed: Dict[int, RowValues] = {}

    def save(
        self,
        descriptor: EntityDescriptor,
        existing: Any,
        entity: Any,
        overrides: Optional[RowValues] = None,
    ) -> Optional[RowValues]:
        """
        Save ``entity`` against its stored counterpart ``existing`` (or None).

        Returns:
            The written row as stored (column -> storage value)
        """
        marker = id(entity)
        if marker in self.completed:
            return self.completed[marker]
        if marker in self.path:
            logger.debug(LoggingConstants.CYCLE_SKIPPED, descriptor.table_name, descriptor.get_id(entity))
            return self.path[marker]

        if existing is not None and type(existing) is not type(entity):
            raise TypeError(
                ErrorMessages.ENTITY_CLASS_MISMATCH.format(
                    expected=type(existing).__name__, actual=type(entity).__name__
                )
            )

        row = self.row_values(descriptor, entity)
        id_column = descriptor.id_column
        self.path[marker] = {id_column: row[id_column]} if row[id_column] is not None else None
        try:
            # @@ STEP 1: To-one children first, the row needs their keys
            replaced = self._save_to_one(descriptor, existing, entity, row)
            if overrides:
                row.update(overrides)

            # @@ STEP 2: The row itself
            saved = self._write_row(descriptor, row)
            self.path[marker] = saved
            for child in replaced:
                self.deleter.delete(child)

            # @@ STEP 3: Collections, now that the parent key is known
            for association in descriptor.to_many:
                if isinstance(association, ToManyAssociation):
                    self._save_owned(association, existing, entity, saved)
                else:
                    self._save_bridged(association, existing, entity, saved)
        finally:
            del self.path[marker]

        self.completed[marker] = saved
        return saved

    # ---- row values ----

    def row_values(self, descriptor: EntityDescriptor, entity: Any) -> RowValues:
        """Storage values of id, scalar columns and to-one join columns."""
        row: RowValues = {}
        for column_name, scalar in descriptor.columns.items():
            row[column_name] = self.conversion_service.to_storage_type(getattr(entity, scalar.field_name), scalar)

        for association in descriptor.to_one:
            join = association.column_join
            if row.get(join.parent_column) is not None:
                continue
            child = getattr(entity, association.field_name)
            value = None
            if child is not None:
                child_descriptor = self.registry.get(association.child_table)
                scalar = child_descriptor.field_for_column(join.child_column)
                if scalar is not None:
                    value = self.conversion_service.to_storage_type(getattr(child, scalar.field_name), scalar)
            row[join.parent_column] = value
        return row

    # ---- associations ----

    def _save_to_one(self, descriptor: EntityDescriptor, existing: Any, entity: Any, row: RowValues) -> List[Any]:
        """Save cascaded to-one children into ``row``; returns stored children to delete afterwards."""
        replaced: List[Any] = []
        for association in descriptor.to_one:
            if not association.cascades(self.cascade_type):
                continue

            child_descriptor = self.registry.get(association.child_table)
            existing_child = getattr(existing, association.field_name) if existing is not None else None
            child = getattr(entity, association.field_name)
            removes = association.cascades(CascadeType.REMOVE)

            child_row: Optional[RowValues] = None
            if child is not None:
                if existing_child is not None and _same_id(child_descriptor, existing_child, child):
                    child_row = self.save(child_descriptor, existing_child, child)
                else:
                    if existing_child is not None and removes:
                        replaced.append(existing_child)
                    child_row = self.save(child_descriptor, None, child)
            elif existing_child is not None and removes:
                replaced.append(existing_child)

            join = association.column_join
            row[join.parent_column] = child_row.get(join.child_column) if child_row else None
        return replaced

    def _save_owned(self, association: ToManyAssociation, existing: Any, entity: Any, saved: RowValues) -> None:
        if not association.cascades(self.cascade_type):
            return

        child_descriptor = self.registry.get(association.child_table)
        foreign_key = {join.child_column: saved.get(join.parent_column) for join in association.column_joins}
        remaining = _children(entity, association.field_name)

        for existing_child in _distinct_stored(child_descriptor, _children(existing, association.field_name)):
            match = next((c for c in remaining if _same_id(child_descriptor, existing_child, c)), None)
            if match is None:
                if association.cascades(CascadeType.REMOVE):
                    self.deleter.delete(existing_child)
                else:
                    self._unlink(child_descriptor, association, existing_child)
                continue
            remaining = [c for c in remaining if c is not match]
            self.save(child_descriptor, existing_child, match, foreign_key)

        for child in remaining:
            self.save(child_descriptor, None, child, foreign_key)

    def _save_bridged(self, association: ManyToManyAssociation, existing: Any, entity: Any, saved: RowValues) -> None:
        child_descriptor = self.registry.get(association.child_table)
        cascades = association.cascades(self.cascade_type)
        remaining = _children(entity, association.field_name)

        for existing_child in _distinct_stored(child_descriptor, _children(existing, association.field_name)):
            match = next((c for c in remaining if _same_id(child_descriptor, existing_child, c)), None)
            existing_row = self.row_values(child_descriptor, existing_child)
            if match is None:
                self._delete_bridge(association, saved, existing_row)
                if association.cascades(CascadeType.REMOVE):
                    self.deleter.delete(existing_child)
                continue
            remaining = [c for c in remaining if c is not match]
            if cascades:
                self._delete_bridge(association, saved, existing_row)
                child_row = self.save(child_descriptor, existing_child, match)
                self._insert_bridge(association, saved, child_row)

        for child in remaining:
            if cascades:
                child_row = self.save(child_descriptor, None, child)
                self._insert_bridge(association, saved, child_row)
                continue
            # Not cascaded: link only children that already exist
            child_row = self.row_values(child_descriptor, child)
            if _id_exists(self.db_query, self.conn, child_descriptor, child_row[child_descriptor.id_column]):
                self._insert_bridge(association, saved, child_row)

    def _unlink(self, child_descriptor: EntityDescriptor, association: ToManyAssociation, child: Any) -> None:
        storage_id = self.conversion_service.to_storage_type(child_descriptor.get_id(child), child_descriptor.id_field)
        sql = StatementBuilder.unlink(
            child_descriptor.table_name,
            [join.child_column for join in association.column_joins],
            child_descriptor.id_column,
        )
        self.db_query.execute(self.conn, sql, [storage_id])

    def _insert_bridge(self, association: ManyToManyAssociation, parent_row: RowValues, child_row: Optional[RowValues]) -> None:
        values = bridge_values(association, parent_row, child_row or {})
        columns = list(values)
        self.db_query.execute(
            self.conn,
            StatementBuilder.insert(association.bridge_table, columns),
            [values[column] for column in columns],
        )

    def _delete_bridge(self, association: ManyToManyAssociation, parent_row: RowValues, child_row: RowValues) -> None:
        values = bridge_values(association, parent_row, child_row)
        columns = list(values)
        self.db_query.execute(
            self.conn,
            StatementBuilder.delete_matching(association.bridge_table, columns),
            [values[column] for column in columns],
        )

    # ---- row writes ----

    def _write_row(self, descriptor: EntityDescriptor, row: RowValues) -> RowValues:
        id_column = descriptor.id_column
        id_value = row.get(id_column)

        if _id_exists(self.db_query, self.conn, descriptor, id_value):
            self._update_row(descriptor, row)
            key = id_value
        else:
            if id_value is not None and descriptor.id_field.generation is IdGeneration.IDENTITY:
                raise StaleEntityError(
                    ErrorMessages.IDENTITY_ROW_MISSING.format(table_name=descriptor.table_name, id_value=id_value),
                    descriptor.table_name,
                    id_value,
                )
            columns = [c for c in row if c != id_column or id_value is not None]
            generated = self.db_query.insert(
                self.conn,
                StatementBuilder.insert(descriptor.table_name, columns),
                [id_column],
                [row[c] for c in columns],
            )
            key = id_value if id_value is not None else generated
            if key is None:
                raise JoinAlchemyError(ErrorMessages.INSERT_RETURNED_NO_KEY.format(table_name=descriptor.table_name))

        # Re-read to pick up database defaults and computed columns
        stored = self.db_query.query(self.conn, StatementBuilder.select_row_by_id(descriptor), to_array, [key])
        if stored is None:
            raise StaleEntityError(
                ErrorMessages.IDENTITY_ROW_MISSING.format(table_name=descriptor.table_name, id_value=key),
                descriptor.table_name,
                key,
            )
        saved = dict(zip(descriptor.database_columns, stored))
        # Columns outside the mapping (unidirectional foreign keys) keep the written value
        for column_name, value in row.items():
            saved.setdefault(column_name, value)
        return saved

    def _update_row(self, descriptor: EntityDescriptor, row: RowValues) -> None:
        id_column = descriptor.id_column
        compared = [c for c in row if c not in descriptor.system_managed_columns]
        matched = self.db_query.query(
            self.conn,
            StatementBuilder.matching_row(descriptor, compared),
            to_id,
            [row[c] for c in compared],
        )
        if matched is not None:
            logger.debug(LoggingConstants.SKIPPED_UPDATE, descriptor.table_name, row[id_column])
            return

        columns = [c for c in row if c != id_column]
        if not columns:
            return
        count = self.db_query.execute(
            self.conn,
            StatementBuilder.update_by_id(descriptor, columns),
            [row[c] for c in columns] + [row[id_column]],
        )
        if count == 0:
            raise StaleEntityError(
                ErrorMessages.UPDATE_FAILED.format(table_name=descriptor.table_name, id_value=row[id_column]),
                descriptor.table_name,
                row[id_column],
            )


# -----------------------------------------------------------------------------
# Factory
# -----------------------------------------------------------------------------

class RepositoryFactory:
    """Factory for creating repositories with consistent configuration."""

    def __init__(
        self,
        registry: Optional[EntityRegistry] = None,
        conversion_service: Optional[TypeConversionService] = None,
        statement_configuration: Optional[StatementConfiguration] = None,
    ) -> None:
        """
        Initialize repository factory.

        Args:
            registry: Registry shared by created repositories (default registry when omitted)
            conversion_service: Conversion service shared by created repositories
            statement_configuration: Cursor settings of the shared executor
        """
        self.registry = registry if registry is not None else get_registry()
        self.conversion_service = conversion_service if conversion_service is not None else get_conversion_service()
        self.db_query = DbQuery(statement_configuration)

    def create_repository(self, entity_class: Type[EntityType], id_type: Optional[type] = None) -> Repository[EntityType]:
        """
        Create a repository for ``entity_class``.

        Returns:
            New Repository sharing this factory's configuration
        """
        return Repository(
            entity_class,
            id_type,
            registry=self.registry,
            conversion_service=self.conversion_service,
            db_query=self.db_query,
        )

    @contextmanager
    def transaction_scope(self, connection: Any) -> Iterator[DatabaseConnection]:
        """
        Provide a transactional scope for a series of repository calls.

        Yields:
            The wrapped connection
        """
        with transaction_scope(connection) as conn:
            yield conn

    def __call__(self, entity_class: Type[EntityType], id_type: Optional[type] = None) -> Repository[EntityType]:
        """Allow factory to be called directly."""
        return self.create_repository(entity_class, id_type)
