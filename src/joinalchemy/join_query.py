# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Rebuilds object graphs from the rows of a join plan query.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Hashable, List, Optional, Sequence, Set, Tuple

from .constants import LoggingConstants
from .entity_orm import EntityDescriptor
from .type_converters import TypeConversionService, get_conversion_service

if TYPE_CHECKING:
    from .db_query import RowSource
    from .entity_orm import EntityRegistry
    from .join_query_builder import JoinPlan

logger = logging.getLogger(__name__)

NodeKey = Tuple[str, Hashable]


@dataclass
class JoinNode:
    """Entity materialized once per query execution, keyed by table and id."""
    entity: Any
    descriptor: EntityDescriptor


@dataclass
class ResultGraph:
    """Per-execution state: nodes by (table, id) and observed links per join step."""
    roots: Dict[Hashable, NodeKey] = field(default_factory=dict)
    nodes: Dict[NodeKey, JoinNode] = field(default_factory=dict)
    # One ordered set of (parent, child) node keys per join step
    links: List[Dict[Tuple[NodeKey, NodeKey], None]] = field(default_factory=list)


class GraphReconstructor:
    """
    Consumes rows laid out by a :class:`JoinPlan` and returns root entities.

    Both :meth:`to_entity` and :meth:`to_list` are row mappers accepted by
    :meth:`DbQuery.query`.
    """

    def __init__(
        self,
        plan: "JoinPlan",
        registry: "EntityRegistry",
        conversion_service: Optional[TypeConversionService] = None,
    ) -> None:
        self.plan = plan
        self.registry = registry
        self.conversion_service = conversion_service if conversion_service is not None else get_conversion_service()
        self._root = registry.get(plan.root_table)
        self._children: List[EntityDescriptor] = [registry.get(step.association.child_table) for step in plan.steps]

    def to_entity(self, rows: "RowSource") -> Any:
        """First root entity of the result, or ``None``."""
        entities = self.to_list(rows)
        return entities[0] if entities else None

    def to_list(self, rows: "RowSource") -> List[Any]:
        """Distinct root entities in order of first appearance."""
        graph = ResultGraph(links=[{} for _ in self.plan.steps])
        row_count = 0
        for row in rows:
            row_count += 1
            self._consume_row(graph, row)
        self._link(graph)
        logger.debug(LoggingConstants.RECONSTRUCTED_GRAPH, self.plan.root_table, len(graph.roots), len(graph.nodes), row_count)
        return [graph.nodes[key].entity for key in graph.roots.values()]

    def _consume_row(self, graph: ResultGraph, row: Sequence[Any]) -> None:
        root_id = row[0]
        if root_id is None:
            return

        root_key = (self._root.table_name, root_id)
        if root_key not in graph.nodes:
            graph.nodes[root_key] = self._build_node(self._root, row, 0)
            graph.roots[root_id] = root_key

        # Node of each alias in this row
        row_nodes: Dict[str, NodeKey] = {self.plan.root_alias: root_key}

        for index, step in enumerate(self.plan.steps):
            parent_key = row_nodes.get(step.parent_alias)
            if parent_key is None:
                continue
            child_id = row[step.offset]
            if child_id is None:
                # outer join miss for this association only
                continue

            child_descriptor = self._children[index]
            child_key = (child_descriptor.table_name, child_id)
            if child_key not in graph.nodes:
                graph.nodes[child_key] = self._build_node(child_descriptor, row, step.offset)

            row_nodes[step.child_alias] = child_key
            graph.links[index][(parent_key, child_key)] = None

    def _build_node(self, descriptor: EntityDescriptor, row: Sequence[Any], offset: int) -> JoinNode:
        values: Dict[str, Any] = {}
        for position, scalar in enumerate(descriptor.columns.values()):
            values[scalar.field_name] = self.conversion_service.to_domain_type(
                row[offset + position], scalar.python_type, scalar
            )
        for association in descriptor.to_one:
            values[association.field_name] = None
        for field_name, container in descriptor.collection_fields.items():
            values[field_name] = container()

        # No validation: graphs are linked after construction
        entity = descriptor.entity_class.model_construct(**values)
        return JoinNode(entity=entity, descriptor=descriptor)

    def _link(self, graph: ResultGraph) -> None:
        # A table joined under several aliases yields the same link once per alias
        linked: Set[Tuple[NodeKey, str, NodeKey]] = set()
        # Deepest joins first
        for index in range(len(self.plan.steps) - 1, -1, -1):
            association = self.plan.steps[index].association
            for parent_key, child_key in graph.links[index]:
                link = (parent_key, association.field_name, child_key)
                if link in linked:
                    continue
                linked.add(link)
                parent = graph.nodes[parent_key].entity
                child = graph.nodes[child_key].entity
                if association.is_collection:
                    container = parent.__dict__[association.field_name]
                    if isinstance(container, set):
                        container.add(child)
                    else:
                        container.append(child)
                elif parent.__dict__.get(association.field_name) is None:
                    parent.__dict__[association.field_name] = child
