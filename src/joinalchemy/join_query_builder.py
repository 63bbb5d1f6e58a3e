# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Join plan synthesis and per-table statement builders.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Set, Tuple

from .constants import AliasConstants, LoggingConstants, SQLConstants
from .entity_orm import (
    Association,
    ColumnJoin,
    EntityDescriptor,
    ManyToManyAssociation,
    ToManyAssociation,
    ToOneAssociation,
    get_declared_entity,
)

if TYPE_CHECKING:
    from .entity_orm import EntityRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JoinStep:
    """One traversed association of a join plan."""
    association: Association
    parent_alias: str
    child_alias: str
    bridge_alias: Optional[str]
    # Result position of the child's id column
    offset: int


@dataclass(frozen=True)
class JoinPlan:
    """
    The outer-join SELECT of one root entity and its positional layout.

    ``tables`` lists ``(alias, table_name, offset)`` for every visited table, root
    first; ``steps`` lists traversed associations in the same discovery order.
    """
    root_table: str
    root_alias: str
    id_column: str
    steps: Tuple[JoinStep, ...]
    tables: Tuple[Tuple[str, str, int], ...]
    select_columns: Tuple[str, ...]
    from_clause: str

    @property
    def sql(self) -> str:
        return self.select_sql()

    def select_sql(self, where: Optional[str] = None, distinct: bool = False) -> str:
        keyword = SQLConstants.SELECT_DISTINCT if distinct else SQLConstants.SELECT
        sql = f"{keyword} {SQLConstants.COLUMN_SEPARATOR.join(self.select_columns)} {self.from_clause}"
        if where:
            sql = f"{sql} {SQLConstants.WHERE} {where}"
        return sql

    @property
    def by_id_sql(self) -> str:
        return self.select_sql(f"{self.root_alias}.{self.id_column} = {SQLConstants.PLACEHOLDER}")


class JoinQueryBuilder:
    """
    Builds the join plan of a root entity by depth-first traversal.

    An association whose child table is already on the current path is not
    traversed. A table joined a second time anywhere in the query gets the alias
    ``c<N>_<table>`` where N is the number of aliases issued so far.
    """

    def __init__(self, registry: "EntityRegistry") -> None:
        self.registry = registry
        self.select_columns: List[str] = []
        self.joins: List[str] = []
        self.steps: List[JoinStep] = []
        self.tables: List[Tuple[str, str, int]] = []
        self.aliases: Set[str] = set()
        self.path: Set[str] = set()
        self.column_offset = 0

    def build(self, root: EntityDescriptor) -> JoinPlan:
        """Build the plan rooted at ``root``."""
        root_alias = self._alias(root.table_name)
        self.path.add(root.table_name)
        self._visit(root, root_alias)

        plan = JoinPlan(
            root_table=root.table_name,
            root_alias=root_alias,
            id_column=root.id_column,
            steps=tuple(self.steps),
            tables=tuple(self.tables),
            select_columns=tuple(self.select_columns),
            from_clause=" ".join([f"{SQLConstants.FROM} {root.table_name}", *self.joins]),
        )
        logger.debug(LoggingConstants.BUILT_JOIN_PLAN, root.table_name, plan.sql)
        return plan

    def _visit(self, descriptor: EntityDescriptor, alias: str) -> None:
        # @@ STEP 1: Columns of this table, id first
        self.tables.append((alias, descriptor.table_name, self.column_offset))
        for column_name in descriptor.columns:
            self.select_columns.append(f"{alias}{SQLConstants.QUALIFIER}{column_name}")
        self.column_offset += descriptor.column_count

        # @@ STEP 2: Descend into every association not closing a cycle
        for association in descriptor.associations:
            child_table = association.child_table
            if child_table in self.path:
                continue

            child = self.registry.get(child_table)
            if child is None:
                child = self.registry.describe(get_declared_entity(child_table))

            child_alias = self._alias(child_table)
            bridge_alias: Optional[str] = None

            if isinstance(association, ToOneAssociation):
                self._join(alias, child_table, child_alias, (association.column_join,))
            elif isinstance(association, ToManyAssociation):
                self._join(alias, child_table, child_alias, association.column_joins)
            elif isinstance(association, ManyToManyAssociation):
                bridge_alias = self._alias(association.bridge_table)
                self._join(alias, association.bridge_table, bridge_alias, association.parent_to_bridge)
                self._join(bridge_alias, child_table, child_alias, association.bridge_to_child)

            self.steps.append(
                JoinStep(
                    association=association,
                    parent_alias=alias,
                    child_alias=child_alias,
                    bridge_alias=bridge_alias,
                    offset=self.column_offset,
                )
            )

            self.path.add(child_table)
            self._visit(child, child_alias)
            self.path.discard(child_table)

    def _alias(self, table_name: str) -> str:
        alias = table_name
        if table_name in self.aliases:
            alias = f"{AliasConstants.ALIAS_PREFIX}{len(self.aliases)}{AliasConstants.ALIAS_SEPARATOR}{table_name}"
        self.aliases.add(alias)
        return alias

    def _join(self, parent_alias: str, table_name: str, alias: str, column_joins: Sequence[ColumnJoin]) -> None:
        target = table_name if alias == table_name else f"{table_name} {alias}"
        predicate = f" {SQLConstants.AND} ".join(
            f"{parent_alias}{SQLConstants.QUALIFIER}{join.parent_column} = {alias}{SQLConstants.QUALIFIER}{join.child_column}"
            for join in column_joins
        )
        self.joins.append(f"{SQLConstants.LEFT_JOIN} {target} {SQLConstants.ON} {predicate}")


# -----------------------------------------------------------------------------
# Single table statements
# -----------------------------------------------------------------------------

class StatementBuilder:
    """SQL text for single-row reads and writes of one table."""

    @staticmethod
    def _assignments(columns: Sequence[str], separator: str) -> str:
        return separator.join(f"{column} = {SQLConstants.PLACEHOLDER}" for column in columns)

    @staticmethod
    def insert(table_name: str, columns: Sequence[str]) -> str:
        if not columns:
            return f"{SQLConstants.INSERT_INTO} {table_name} {SQLConstants.DEFAULT_VALUES}"
        placeholders = SQLConstants.COLUMN_SEPARATOR.join(SQLConstants.PLACEHOLDER for _ in columns)
        return (
            f"{SQLConstants.INSERT_INTO} {table_name} "
            f"({SQLConstants.COLUMN_SEPARATOR.join(columns)}) {SQLConstants.VALUES} ({placeholders})"
        )

    @staticmethod
    def update_by_id(descriptor: EntityDescriptor, columns: Sequence[str]) -> str:
        return (
            f"{SQLConstants.UPDATE} {descriptor.table_name} {SQLConstants.SET} "
            f"{StatementBuilder._assignments(columns, SQLConstants.COLUMN_SEPARATOR)} "
            f"{SQLConstants.WHERE} {descriptor.id_column} = {SQLConstants.PLACEHOLDER}"
        )

    @staticmethod
    def delete_by_id(descriptor: EntityDescriptor) -> str:
        return (
            f"{SQLConstants.DELETE_FROM} {descriptor.table_name} "
            f"{SQLConstants.WHERE} {descriptor.id_column} = {SQLConstants.PLACEHOLDER}"
        )

    @staticmethod
    def id_exists(descriptor: EntityDescriptor) -> str:
        return (
            f"{SQLConstants.SELECT} {descriptor.id_column} {SQLConstants.FROM} {descriptor.table_name} "
            f"{SQLConstants.WHERE} {descriptor.table_name}{SQLConstants.QUALIFIER}{descriptor.id_column} = {SQLConstants.PLACEHOLDER}"
        )

    @staticmethod
    def select_row_by_id(descriptor: EntityDescriptor) -> str:
        """Persisted columns of one row, in ``database_columns`` order."""
        return (
            f"{SQLConstants.SELECT} {SQLConstants.COLUMN_SEPARATOR.join(descriptor.database_columns)} "
            f"{SQLConstants.FROM} {descriptor.table_name} "
            f"{SQLConstants.WHERE} {descriptor.id_column} = {SQLConstants.PLACEHOLDER}"
        )

    @staticmethod
    def matching_row(descriptor: EntityDescriptor, columns: Sequence[str]) -> str:
        """Id of a row equal on every given column; run through the null rewrite."""
        where = StatementBuilder._assignments(columns, f" {SQLConstants.AND} ") or SQLConstants.ALWAYS_TRUE
        return (
            f"{SQLConstants.SELECT} {descriptor.id_column} {SQLConstants.FROM} {descriptor.table_name} "
            f"{SQLConstants.WHERE} {where}"
        )

    @staticmethod
    def delete_matching(table_name: str, columns: Sequence[str]) -> str:
        return (
            f"{SQLConstants.DELETE_FROM} {table_name} "
            f"{SQLConstants.WHERE} {StatementBuilder._assignments(columns, f' {SQLConstants.AND} ')}"
        )

    @staticmethod
    def unlink(table_name: str, foreign_key_columns: Sequence[str], id_column: str) -> str:
        """Null the foreign key columns of one child row."""
        assignments = SQLConstants.COLUMN_SEPARATOR.join(f"{column} = {SQLConstants.NULL}" for column in foreign_key_columns)
        return (
            f"{SQLConstants.UPDATE} {table_name} {SQLConstants.SET} {assignments} "
            f"{SQLConstants.WHERE} {id_column} = {SQLConstants.PLACEHOLDER}"
        )


def bridge_values(
    association: ManyToManyAssociation, parent_row: Dict[str, object], child_row: Dict[str, object]
) -> Dict[str, object]:
    """Bridge column values linking ``parent_row`` to ``child_row``."""
    values: Dict[str, object] = {}
    for join in association.parent_to_bridge:
        values[join.child_column] = parent_row.get(join.parent_column)
    for join in association.bridge_to_child:
        values[join.parent_column] = child_row.get(join.child_column)
    return values
