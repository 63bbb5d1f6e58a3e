# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Entity declarations, mapping metadata and the entity registry.

Entities are Pydantic models decorated with :func:`entity`. Their fields are
declared with :func:`column`, :func:`transient` and the association helpers,
which attach metadata objects to ``json_schema_extra``. The registry resolves
this metadata once per table into immutable :class:`EntityDescriptor` objects;
the query builder, the reconstructor and the repository only consume
descriptors.
"""

from __future__ import annotations

import logging
from collections import abc
from dataclasses import dataclass, field as dataclass_field
from threading import RLock
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Optional,
    Set,
    Tuple,
    Type,
    TypeVar,
    Union,
    ForwardRef,
    get_args,
    get_origin,
)

from pydantic import BaseModel, ConfigDict, Field
from pydantic.fields import FieldInfo

from .constants import (
    AssociationKind,
    CascadeType,
    ErrorMessages,
    IdGeneration,
    LoggingConstants,
    ModelMetadataConstants,
)
from .exceptions import MappingConfigurationError
from .type_converters import AttributeConverter, unwrap_optional

if TYPE_CHECKING:
    from .join_query_builder import JoinPlan

logger = logging.getLogger(__name__)

T = TypeVar("T")
EntityType = TypeVar("EntityType", bound="EntityBase")

_LIST_ORIGINS = (list, tuple, abc.Sequence, abc.MutableSequence, abc.Collection, abc.Iterable)
_SET_ORIGINS = (set, frozenset, abc.Set, abc.MutableSet)


# -----------------------------------------------------------------------------
# Declaration metadata
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class JoinColumn:
    """
    Foreign key column of an association.

    :param name: column holding the key
    :param referenced_column: column it references; the referenced entity's id when omitted
    """

    name: str
    referenced_column: Optional[str] = None


@dataclass(frozen=True)
class JoinTable:
    """Bridge table of a many-to-many association."""

    name: str
    join_columns: Tuple[JoinColumn, ...] = ()
    inverse_join_columns: Tuple[JoinColumn, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "join_columns", _as_join_columns(self.join_columns))
        object.__setattr__(self, "inverse_join_columns", _as_join_columns(self.inverse_join_columns))


@dataclass
class ColumnMetadata:
    """
    Metadata for persisted scalar fields.

    :class: ColumnMetadata
    :synopsis: Column name, identity and conversion settings of one field
    """
    name: Optional[str] = None
    primary_key: bool = False
    generation: IdGeneration = IdGeneration.AUTO
    converter: Optional[AttributeConverter] = None
    update_timestamp: bool = False


@dataclass
class TransientMetadata:
    """Marks a field that is neither persisted nor loaded."""


@dataclass
class AssociationMetadata:
    """Declared relationship of one field, before target resolution."""
    kind: AssociationKind
    target: Optional[Union[Type[Any], str]] = None
    join_columns: Tuple[JoinColumn, ...] = ()
    join_table: Optional[JoinTable] = None
    cascade: FrozenSet[CascadeType] = dataclass_field(default_factory=frozenset)


FieldMetadata = Union[ColumnMetadata, TransientMetadata, AssociationMetadata]


def _as_join_columns(columns: Union[None, str, JoinColumn, Iterable[Union[str, JoinColumn]]]) -> Tuple[JoinColumn, ...]:
    if columns is None:
        return ()
    if isinstance(columns, (str, JoinColumn)):
        columns = (columns,)
    return tuple(JoinColumn(c) if isinstance(c, str) else c for c in columns)


def _attach(metadata: FieldMetadata, json_schema_extra: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if type(json_schema_extra) is not dict:
        json_schema_extra = {}
    # metadata object stored as-is
    json_schema_extra[ModelMetadataConstants.FIELD_METADATA] = metadata
    return json_schema_extra


def column(
    default: Any = ...,
    *,
    name: Optional[str] = None,
    primary_key: bool = False,
    generation: IdGeneration = IdGeneration.AUTO,
    converter: Optional[Union[AttributeConverter, Type[AttributeConverter]]] = None,
    update_timestamp: bool = False,
    default_factory: Optional[Callable[[], Any]] = None,
    alias: Optional[str] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
    json_schema_extra: Optional[Dict[str, Any]] = None,
) -> Any:
    """
    Create a Pydantic Field mapped to a table column.

    Args:
        default: Default value; id fields and update timestamps default to None
        name: Column name, the field name when omitted
        primary_key: Marks the id field (exactly one per entity)
        generation: Id generation strategy, only meaningful on the id field
        converter: Per-field converter (class or instance) overriding built-in conversions
        update_timestamp: Column is set to the current time on every write and is
            ignored when checking whether a row changed
    """
    if isinstance(converter, type):
        converter = converter()

    metadata = ColumnMetadata(
        name=name,
        primary_key=primary_key,
        generation=generation,
        converter=converter,
        update_timestamp=update_timestamp,
    )

    field_kwargs = {
        "json_schema_extra": _attach(metadata, json_schema_extra),
        "alias": alias,
        "title": title,
        "description": description,
    }

    if default_factory is not None:
        return Field(default_factory=default_factory, **field_kwargs)
    if default is ... and (primary_key or update_timestamp):
        # The database supplies these values
        return Field(default=None, **field_kwargs)
    return Field(default=default, **field_kwargs)


def transient(default: Any = None, *, default_factory: Optional[Callable[[], Any]] = None) -> Any:
    """Create a Pydantic Field ignored by the mapping."""
    extra = _attach(TransientMetadata(), None)
    if default_factory is not None:
        return Field(default_factory=default_factory, json_schema_extra=extra)
    return Field(default=default, json_schema_extra=extra)


def _to_one(
    kind: AssociationKind,
    join_column: Optional[Union[str, JoinColumn]],
    target: Optional[Union[Type[Any], str]],
    cascade: Iterable[CascadeType],
) -> Any:
    metadata = AssociationMetadata(
        kind=kind,
        target=target,
        join_columns=_as_join_columns(join_column),
        cascade=frozenset(cascade),
    )
    return Field(default=None, json_schema_extra=_attach(metadata, None))


def many_to_one(
    *,
    join_column: Optional[Union[str, JoinColumn]] = None,
    target: Optional[Union[Type[Any], str]] = None,
    cascade: Iterable[CascadeType] = (),
) -> Any:
    """
    Declare a to-one association whose foreign key lives on this entity's row.

    The join column defaults to the field name and references the target's id.
    """
    return _to_one(AssociationKind.MANY_TO_ONE, join_column, target, cascade)


def one_to_one(
    *,
    join_column: Optional[Union[str, JoinColumn]] = None,
    target: Optional[Union[Type[Any], str]] = None,
    cascade: Iterable[CascadeType] = (),
) -> Any:
    """Same mapping as :func:`many_to_one`; the kind is kept for introspection."""
    return _to_one(AssociationKind.ONE_TO_ONE, join_column, target, cascade)


def one_to_many(
    *,
    join_columns: Union[None, str, JoinColumn, Iterable[Union[str, JoinColumn]]] = None,
    target: Optional[Union[Type[Any], str]] = None,
    cascade: Iterable[CascadeType] = (),
) -> Any:
    """
    Declare an owned to-many association; the foreign key lives on the child rows.

    Each join column names the child's column and the parent column it references
    (the parent id when omitted). Without join columns the child column is
    ``<parent_table>_<parent_id_column>``.
    """
    metadata = AssociationMetadata(
        kind=AssociationKind.ONE_TO_MANY,
        target=target,
        join_columns=_as_join_columns(join_columns),
        cascade=frozenset(cascade),
    )
    return Field(default_factory=list, validate_default=True, json_schema_extra=_attach(metadata, None))


def many_to_many(
    *,
    join_table: Optional[JoinTable] = None,
    target: Optional[Union[Type[Any], str]] = None,
    cascade: Iterable[CascadeType] = (),
) -> Any:
    """Declare a many-to-many association through ``join_table``."""
    metadata = AssociationMetadata(
        kind=AssociationKind.MANY_TO_MANY,
        target=target,
        join_table=join_table,
        cascade=frozenset(cascade),
    )
    return Field(default_factory=list, validate_default=True, json_schema_extra=_attach(metadata, None))


# -----------------------------------------------------------------------------
# Resolved descriptors
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class ColumnJoin:
    """Equality pair ``parent.parent_column = child.child_column``."""

    parent_column: str
    child_column: str


@dataclass(frozen=True)
class ScalarField:
    """A persisted scalar field resolved against its model."""

    field_name: str
    column_name: str
    python_type: Any
    converter: Optional[AttributeConverter] = None
    system_managed: bool = False
    generation: IdGeneration = IdGeneration.AUTO


@dataclass(frozen=True)
class Association:
    """Common part of the association variants."""

    kind: AssociationKind
    field_name: str
    parent_table: str
    child_table: str
    container: Optional[type]
    cascade: FrozenSet[CascadeType]

    @property
    def is_collection(self) -> bool:
        return self.container is not None

    def cascades(self, cascade_type: CascadeType) -> bool:
        return CascadeType.ALL in self.cascade or cascade_type in self.cascade


@dataclass(frozen=True)
class ToOneAssociation(Association):
    """Foreign key on the parent row."""

    column_join: ColumnJoin


@dataclass(frozen=True)
class ToManyAssociation(Association):
    """Foreign key on the child rows, pointing back to the parent."""

    column_joins: Tuple[ColumnJoin, ...]


@dataclass(frozen=True)
class ManyToManyAssociation(Association):
    """Link rows in a bridge table."""

    bridge_table: str
    parent_to_bridge: Tuple[ColumnJoin, ...]
    bridge_to_child: Tuple[ColumnJoin, ...]


@dataclass(frozen=True, eq=False)
class EntityDescriptor:
    """
    Resolved mapping of one table.

    ``columns`` starts with the id column followed by scalar columns in declaration
    order; this order fixes result positions of the join query.
    """

    table_name: str
    entity_class: Type[Any]
    id_field: ScalarField
    columns: Dict[str, ScalarField]
    to_one: Tuple[ToOneAssociation, ...]
    to_many: Tuple[Union[ToManyAssociation, ManyToManyAssociation], ...]
    collection_fields: Dict[str, type]
    database_columns: Tuple[str, ...]
    system_managed_columns: FrozenSet[str]

    @property
    def id_column(self) -> str:
        return self.id_field.column_name

    @property
    def associations(self) -> Tuple[Association, ...]:
        return self.to_one + self.to_many

    @property
    def column_count(self) -> int:
        return len(self.columns)

    def get_id(self, entity: Any) -> Any:
        return getattr(entity, self.id_field.field_name)

    def field_for_column(self, column_name: str) -> Optional[ScalarField]:
        return self.columns.get(column_name)

    def __repr__(self) -> str:
        return f"<EntityDescriptor(table={self.table_name!r}, class={self.entity_class.__name__})>"


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------

# Every class decorated with @entity, by class name and by table name.
# Kept apart from the descriptor registry so string targets resolve after clear_registry().
_declared_entities: Dict[str, Type[Any]] = {}
_declared_lock = RLock()


def get_declared_entity(name: str) -> Optional[Type[Any]]:
    with _declared_lock:
        return _declared_entities.get(name)


class EntityRegistry:
    """
    Thread-safe registry of entity descriptors keyed by table name.

    Registration is idempotent: concurrent first registrations may build a
    descriptor each, and the first one published wins. Descriptors are published
    before their association targets are registered, which terminates the
    recursion on cyclic schemas.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._descriptors: Dict[str, EntityDescriptor] = {}
        self._join_plans: Dict[str, "JoinPlan"] = {}
        # Keyed by id(field_info) because FieldInfo may not be hashable
        self._field_metadata_cache: Dict[int, Optional[FieldMetadata]] = {}

    # ---- lookups ----

    def get(self, table_name: str) -> Optional[EntityDescriptor]:
        with self._lock:
            return self._descriptors.get(table_name)

    def is_registered(self, table_name: str) -> bool:
        with self._lock:
            return table_name in self._descriptors

    @property
    def tables(self) -> List[str]:
        with self._lock:
            return list(self._descriptors)

    def get_field_metadata(self, field_info: FieldInfo) -> Optional[FieldMetadata]:
        """
        Get mapping metadata from field info with caching (hot path).

        :param field_info: Pydantic field info
        :returns: Attached metadata or None for plain fields
        """
        cache_key = id(field_info)
        with self._lock:
            if cache_key in self._field_metadata_cache:
                return self._field_metadata_cache[cache_key]

        result: Optional[FieldMetadata] = None
        extra = field_info.json_schema_extra
        if extra and isinstance(extra, dict):
            candidate = extra.get(ModelMetadataConstants.FIELD_METADATA)
            if isinstance(candidate, (ColumnMetadata, TransientMetadata, AssociationMetadata)):
                result = candidate

        with self._lock:
            self._field_metadata_cache[cache_key] = result
        return result

    # ---- registration ----

    def describe(self, entity_class: Type[Any]) -> EntityDescriptor:
        """
        Return the descriptor of ``entity_class``, registering it and every entity
        reachable through its associations on first use.

        Raises:
            MappingConfigurationError: the class or one of its targets is mis-mapped
        """
        table_name = _table_name_of(entity_class)
        existing = self.get(table_name)
        if existing is not None:
            return existing

        descriptor, targets = self._build_descriptor(entity_class, table_name)
        with self._lock:
            published = self._descriptors.setdefault(table_name, descriptor)
        if published is not descriptor:
            return published

        logger.debug(LoggingConstants.REGISTERED_ENTITY, entity_class.__name__, table_name)
        for target in targets:
            self.describe(target)
        return published

    def get_descriptor_for(self, entity_or_class: Any) -> EntityDescriptor:
        """Descriptor of an entity class or of the class of an entity instance."""
        entity_class = entity_or_class if isinstance(entity_or_class, type) else type(entity_or_class)
        return self.describe(entity_class)

    def get_join_plan(self, entity_class: Type[Any]) -> "JoinPlan":
        """Return the cached join plan rooted at ``entity_class``."""
        descriptor = self.describe(entity_class)
        with self._lock:
            plan = self._join_plans.get(descriptor.table_name)
        if plan is not None:
            return plan

        from .join_query_builder import JoinQueryBuilder

        plan = JoinQueryBuilder(self).build(descriptor)
        with self._lock:
            return self._join_plans.setdefault(descriptor.table_name, plan)

    def check_id_type(self, entity_class: Type[Any], id_type: type) -> None:
        """
        Raise when ``id_type`` cannot hold values of the entity's id field.

        Raises:
            MappingConfigurationError: declared and actual id types differ
        """
        descriptor = self.describe(entity_class)
        actual = descriptor.id_field.python_type
        if actual is Any or not isinstance(actual, type):
            return
        if not (isinstance(id_type, type) and issubclass(actual, id_type)):
            raise MappingConfigurationError(
                ErrorMessages.ID_TYPE_MISMATCH.format(
                    declared=getattr(id_type, "__name__", id_type),
                    class_name=entity_class.__name__,
                    field_name=descriptor.id_field.field_name,
                    actual=actual.__name__,
                )
            )

    def clear(self) -> None:
        with self._lock:
            self._descriptors.clear()
            self._join_plans.clear()
            self._field_metadata_cache.clear()

    # ---- descriptor construction ----

    def _build_descriptor(self, entity_class: Type[Any], table_name: str) -> Tuple[EntityDescriptor, List[Type[Any]]]:
        _ensure_model_complete(entity_class)

        # @@ STEP 1: Classify fields
        id_fields: List[ScalarField] = []
        scalars: List[ScalarField] = []
        declared_associations: List[Tuple[str, FieldInfo, AssociationMetadata]] = []

        for field_name, field_info in entity_class.model_fields.items():
            metadata = self.get_field_metadata(field_info)
            if isinstance(metadata, TransientMetadata):
                continue
            if isinstance(metadata, AssociationMetadata):
                declared_associations.append((field_name, field_info, metadata))
                continue
            column_meta = metadata if isinstance(metadata, ColumnMetadata) else ColumnMetadata()
            scalar = ScalarField(
                field_name=field_name,
                column_name=column_meta.name or field_name,
                python_type=unwrap_optional(field_info.annotation),
                converter=column_meta.converter,
                system_managed=column_meta.update_timestamp,
                generation=column_meta.generation,
            )
            if column_meta.primary_key:
                id_fields.append(scalar)
            else:
                scalars.append(scalar)

        # @@ STEP 2: Exactly one id field
        if not id_fields:
            raise MappingConfigurationError(ErrorMessages.MISSING_ID_FIELD.format(class_name=entity_class.__name__))
        if len(id_fields) > 1:
            raise MappingConfigurationError(
                ErrorMessages.MULTIPLE_ID_FIELDS.format(
                    class_name=entity_class.__name__,
                    fields=", ".join(f.field_name for f in id_fields),
                )
            )
        id_field = id_fields[0]

        columns: Dict[str, ScalarField] = {id_field.column_name: id_field}
        for scalar in scalars:
            columns[scalar.column_name] = scalar

        # @@ STEP 3: Resolve associations
        to_one: List[ToOneAssociation] = []
        to_many: List[Union[ToManyAssociation, ManyToManyAssociation]] = []
        collection_fields: Dict[str, type] = {}
        targets: List[Type[Any]] = []

        for field_name, field_info, metadata in declared_associations:
            target_class, container = _resolve_target(entity_class, field_name, field_info, metadata)
            target_table = _table_name_of(target_class)
            target_id_column = _id_column_of(target_class, self)
            targets.append(target_class)

            if metadata.kind.is_single_valued:
                join_column = metadata.join_columns[0] if metadata.join_columns else None
                to_one.append(
                    ToOneAssociation(
                        kind=metadata.kind,
                        field_name=field_name,
                        parent_table=table_name,
                        child_table=target_table,
                        container=None,
                        cascade=metadata.cascade,
                        column_join=ColumnJoin(
                            parent_column=join_column.name if join_column else field_name,
                            child_column=(join_column.referenced_column if join_column else None) or target_id_column,
                        ),
                    )
                )
                continue

            if container is None:
                raise MappingConfigurationError(
                    ErrorMessages.COLLECTION_REQUIRED.format(
                        kind=metadata.kind.value, class_name=entity_class.__name__, field_name=field_name
                    )
                )
            collection_fields[field_name] = container

            if metadata.kind is AssociationKind.ONE_TO_MANY:
                join_columns = metadata.join_columns or (
                    JoinColumn(f"{table_name}{ModelMetadataConstants.FOREIGN_KEY_SEPARATOR}{id_field.column_name}"),
                )
                to_many.append(
                    ToManyAssociation(
                        kind=metadata.kind,
                        field_name=field_name,
                        parent_table=table_name,
                        child_table=target_table,
                        container=container,
                        cascade=metadata.cascade,
                        column_joins=tuple(
                            ColumnJoin(parent_column=jc.referenced_column or id_field.column_name, child_column=jc.name)
                            for jc in join_columns
                        ),
                    )
                )
                continue

            join_table = metadata.join_table
            if join_table is None:
                raise MappingConfigurationError(
                    ErrorMessages.MISSING_JOIN_TABLE.format(class_name=entity_class.__name__, field_name=field_name)
                )
            if not join_table.join_columns or not join_table.inverse_join_columns:
                raise MappingConfigurationError(
                    ErrorMessages.EMPTY_JOIN_TABLE_COLUMNS.format(
                        table_name=join_table.name, class_name=entity_class.__name__, field_name=field_name
                    )
                )
            to_many.append(
                ManyToManyAssociation(
                    kind=metadata.kind,
                    field_name=field_name,
                    parent_table=table_name,
                    child_table=target_table,
                    container=container,
                    cascade=metadata.cascade,
                    bridge_table=join_table.name,
                    parent_to_bridge=tuple(
                        ColumnJoin(parent_column=jc.referenced_column or id_field.column_name, child_column=jc.name)
                        for jc in join_table.join_columns
                    ),
                    bridge_to_child=tuple(
                        ColumnJoin(parent_column=jc.name, child_column=jc.referenced_column or target_id_column)
                        for jc in join_table.inverse_join_columns
                    ),
                )
            )

        # @@ STEP 4: Persisted column list: id, scalars, then to-one foreign keys
        database_columns: List[str] = list(columns)
        for association in to_one:
            if association.column_join.parent_column not in database_columns:
                database_columns.append(association.column_join.parent_column)

        descriptor = EntityDescriptor(
            table_name=table_name,
            entity_class=entity_class,
            id_field=id_field,
            columns=columns,
            to_one=tuple(to_one),
            to_many=tuple(to_many),
            collection_fields=collection_fields,
            database_columns=tuple(database_columns),
            system_managed_columns=frozenset(c for c, f in columns.items() if f.system_managed),
        )
        return descriptor, targets


def _table_name_of(entity_class: Any) -> str:
    table_name = getattr(entity_class, "__dict__", {}).get(ModelMetadataConstants.ENTITY_TABLE_NAME)
    if table_name is None:
        raise MappingConfigurationError(
            ErrorMessages.NOT_AN_ENTITY.format(class_name=getattr(entity_class, "__name__", entity_class))
        )
    return table_name


def _id_column_of(entity_class: Type[Any], registry: EntityRegistry) -> str:
    _ensure_model_complete(entity_class)
    for field_name, field_info in entity_class.model_fields.items():
        metadata = registry.get_field_metadata(field_info)
        if isinstance(metadata, ColumnMetadata) and metadata.primary_key:
            return metadata.name or field_name
    raise MappingConfigurationError(ErrorMessages.MISSING_ID_FIELD.format(class_name=entity_class.__name__))


def _ensure_model_complete(entity_class: Type[Any]) -> None:
    if not getattr(entity_class, "__pydantic_complete__", True):
        with _declared_lock:
            namespace = dict(_declared_entities)
        entity_class.model_rebuild(_types_namespace=namespace)


def _resolve_target(
    entity_class: Type[Any], field_name: str, field_info: FieldInfo, metadata: AssociationMetadata
) -> Tuple[Type[Any], Optional[type]]:
    """Return the target entity class and the container type (None when single valued)."""
    annotation = unwrap_optional(field_info.annotation)
    container: Optional[type] = None
    element: Any = annotation

    origin = get_origin(annotation)
    if origin is not None:
        args = get_args(annotation)
        if origin in _SET_ORIGINS and args:
            container, element = set, args[0]
        elif origin in _LIST_ORIGINS and args:
            container, element = list, args[0]
    elif annotation in (list, tuple):
        container, element = list, None
    elif annotation in (set, frozenset):
        container, element = set, None

    target = metadata.target if metadata.target is not None else element
    target_class = _resolve_class(target)
    if target_class is None:
        raise MappingConfigurationError(
            ErrorMessages.UNRESOLVED_TARGET.format(class_name=entity_class.__name__, field_name=field_name, target=target)
        )
    if not getattr(target_class, "__dict__", {}).get(ModelMetadataConstants.IS_ENTITY, False):
        raise MappingConfigurationError(
            ErrorMessages.TARGET_NOT_ENTITY.format(
                target=getattr(target_class, "__name__", target_class),
                class_name=entity_class.__name__,
                field_name=field_name,
            )
        )
    return target_class, container


def _resolve_class(target: Any) -> Optional[Type[Any]]:
    if isinstance(target, ForwardRef):
        target = target.__forward_arg__
    if isinstance(target, str):
        return get_declared_entity(target.strip("'\""))
    if isinstance(target, type):
        return target
    return None


_entity_registry = EntityRegistry()


def get_registry() -> EntityRegistry:
    """Return the process-wide default registry."""
    return _entity_registry


def clear_registry() -> None:
    """Drop every descriptor and join plan of the default registry."""
    _entity_registry.clear()


# -----------------------------------------------------------------------------
# Decorator
# -----------------------------------------------------------------------------

def entity(table: Optional[str] = None) -> Callable[[Type[T]], Type[T]]:
    """
    Decorator to mark a model class as an entity.

    The table name defaults to the lower-cased class name. Descriptors are built
    lazily on first use.
    """

    def decorator(cls: Type[T]) -> Type[T]:
        table_name = table if table is not None else cls.__name__.lower()
        setattr(cls, ModelMetadataConstants.ENTITY_TABLE_NAME, table_name)
        setattr(cls, ModelMetadataConstants.IS_ENTITY, True)
        with _declared_lock:
            _declared_entities[cls.__name__] = cls
            _declared_entities[table_name] = cls
        return cls

    return decorator


# -----------------------------------------------------------------------------
# Base model
# -----------------------------------------------------------------------------

class EntityBase(BaseModel):
    """Base model for all entities with identity based equality."""

    model_config = ConfigDict(
        arbitrary_types_allowed=True, validate_assignment=True, use_enum_values=False
    )

    @classmethod
    def get_table_name(cls) -> str:
        return _table_name_of(cls)

    @classmethod
    def get_id_field_name(cls) -> str:
        cached = cls.__dict__.get("__entity_cached_id_field__")
        if cached is not None:
            return cached
        for field_name, field_info in cls.model_fields.items():
            metadata = _entity_registry.get_field_metadata(field_info)
            if isinstance(metadata, ColumnMetadata) and metadata.primary_key:
                # cache on class for subsequent lookups
                setattr(cls, "__entity_cached_id_field__", field_name)
                return field_name
        raise MappingConfigurationError(ErrorMessages.MISSING_ID_FIELD.format(class_name=cls.__name__))

    @classmethod
    def get_association_field_names(cls) -> Set[str]:
        cached = cls.__dict__.get("__entity_cached_association_fields__")
        if cached is not None:
            return cached
        names = {
            field_name
            for field_name, field_info in cls.model_fields.items()
            if isinstance(_entity_registry.get_field_metadata(field_info), AssociationMetadata)
        }
        setattr(cls, "__entity_cached_association_fields__", names)
        return names

    def get_id(self) -> Any:
        return self.__dict__.get(self.get_id_field_name())

    def __hash__(self) -> int:
        """Hash by id; unsaved entities hash by object identity."""
        id_value = self.get_id()
        if id_value is None:
            return hash(id(self))
        return hash((self.__class__.__name__, id_value))

    def __eq__(self, other: object) -> bool:
        """Entities of the same class are equal when their ids are equal and not None."""
        if not isinstance(other, self.__class__):
            return False
        self_id = self.get_id()
        if self_id is None:
            return self is other
        return self_id == other.get_id()

    def __repr_args__(self):
        # Associations are left out: object graphs are cyclic
        associations = self.get_association_field_names()
        for name, value in super().__repr_args__():
            if name not in associations:
                yield name, value
