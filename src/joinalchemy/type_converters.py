# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Scalar type coercion between storage values and entity field types.

Built-in rules are grouped in converters tried by descending priority:

* temporal values (datetime, date, time, ISO strings, epoch numbers) convert
  through a single ``datetime`` instant;
* numeric values (int, float, Decimal, bool) convert exactly, and a narrowing
  that would lose information raises :class:`ConversionError`;
* UUID, Enum, binary and text values.

A per-field :class:`AttributeConverter` declared with ``column(converter=...)``
overrides every built-in rule for that field.
"""

from __future__ import annotations

import datetime
import decimal
import logging
import types
import uuid
from abc import ABC, abstractmethod
from enum import Enum
from threading import RLock
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple, Type, Union, get_args, get_origin

from .constants import DefaultConfiguration, DriverConstants, ErrorMessages, LoggingConstants
from .exceptions import ConversionError

if TYPE_CHECKING:
    from .entity_orm import ScalarField

logger = logging.getLogger(__name__)

_NONE_TYPE = type(None)
_EPOCH_DATE = datetime.date(1970, 1, 1)

# Module-level cache for enum lookups: {EnumClass: (names_dict, values_dict)}
_ENUM_CACHE: Dict[Type[Enum], Tuple[Dict[str, Enum], Dict[Any, Enum]]] = {}

# Sentinel object to distinguish missing lookups from None values
_MISSING = object()


def unwrap_optional(annotation: Any) -> Any:
    """Return ``T`` for ``Optional[T]``; any other annotation is returned unchanged."""
    if get_origin(annotation) in (Union, types.UnionType):
        args = [arg for arg in get_args(annotation) if arg is not _NONE_TYPE]
        if len(args) == 1:
            return args[0]
    return annotation


def _is_exact_instance(value: Any, target_type: type) -> bool:
    # bool subclasses int and datetime subclasses date; neither is a valid pass-through
    if target_type is int and isinstance(value, bool):
        return False
    if target_type is datetime.date and isinstance(value, datetime.datetime):
        return False
    return isinstance(value, target_type)


# -----------------------------------------------------------------------------
# Per-field converters
# -----------------------------------------------------------------------------

class AttributeConverter(ABC):
    """Converter declared on a single field; overrides the built-in rules."""

    @abstractmethod
    def to_database_column(self, attribute: Any) -> Any:
        """Convert the entity attribute value to its column value."""

    @abstractmethod
    def to_entity_attribute(self, column_value: Any) -> Any:
        """Convert a column value read from the database to the attribute value."""


class YesNoConverter(AttributeConverter):
    """Stores booleans as ``'Y'`` / ``'N'``."""

    def to_database_column(self, attribute: Any) -> Any:
        if attribute is None:
            return None
        return DriverConstants.YES if attribute else DriverConstants.NO

    def to_entity_attribute(self, column_value: Any) -> Any:
        if column_value is None:
            return None
        normalized = str(column_value).strip().upper()
        if normalized == DriverConstants.YES:
            return True
        if normalized == DriverConstants.NO:
            return False
        raise ConversionError(ErrorMessages.INVALID_BOOLEAN.format(value=column_value))


# -----------------------------------------------------------------------------
# Built-in converters
# -----------------------------------------------------------------------------

class BaseTypeConverter(ABC):
    """
    Converter for one family of types.

    ``can_handle`` is asked with ``target_type=None`` when a domain value is
    being prepared for storage, and with the field type when a storage value is
    being read back.
    """

    @property
    def priority(self) -> int:
        return DefaultConfiguration.CONVERTER_PRIORITY

    @abstractmethod
    def can_handle(self, value: Any, target_type: Any = None) -> bool:
        """Check if this converter can handle the value for the given target."""

    def to_database(self, value: Any) -> Any:
        return value

    @abstractmethod
    def from_database(self, value: Any, target_type: Any) -> Any:
        """Convert a storage value to ``target_type``."""


class EnumConverter(BaseTypeConverter):
    """Enums are stored by value and read back by value, then by member name."""

    @property
    def priority(self) -> int:
        return 90

    @staticmethod
    def _get_enum_lookups(enum_type: Type[Enum]) -> Tuple[Dict[str, Enum], Dict[Any, Enum]]:
        lookups = _ENUM_CACHE.get(enum_type)
        if lookups is None:
            names: Dict[str, Enum] = {}
            values: Dict[Any, Enum] = {}
            for member in enum_type:
                names[member.name] = member
                values[member.value] = member
            lookups = (names, values)
            _ENUM_CACHE[enum_type] = lookups
        return lookups

    def can_handle(self, value: Any, target_type: Any = None) -> bool:
        if target_type is None:
            return isinstance(value, Enum)
        return isinstance(target_type, type) and issubclass(target_type, Enum)

    def to_database(self, value: Any) -> Any:
        return value.value

    def from_database(self, value: Any, target_type: Any) -> Any:
        names, values = self._get_enum_lookups(target_type)

        member = values.get(value, _MISSING)
        if member is not _MISSING:
            return member

        if isinstance(value, str):
            member = names.get(value, _MISSING)
            if member is not _MISSING:
                return member
            # Numeric strings for int valued enums stored in text columns
            stripped = value.strip()
            if stripped.lstrip("-").isdigit():
                member = values.get(int(stripped), _MISSING)
                if member is not _MISSING:
                    return member

        raise ConversionError(ErrorMessages.INVALID_ENUM.format(value=value, target=target_type.__name__))


class UUIDConverter(BaseTypeConverter):
    """UUIDs read back from text, 16 byte binary or integer columns."""

    @property
    def priority(self) -> int:
        return 80

    def can_handle(self, value: Any, target_type: Any = None) -> bool:
        return target_type is uuid.UUID and isinstance(value, (str, bytes, bytearray, memoryview, int))

    def from_database(self, value: Any, target_type: Any) -> Any:
        try:
            if isinstance(value, str):
                return uuid.UUID(value)
            if isinstance(value, (bytes, bytearray, memoryview)):
                return uuid.UUID(bytes=bytes(value))
            return uuid.UUID(int=value)
        except ValueError as e:
            raise ConversionError(
                ErrorMessages.UNSUPPORTED_CONVERSION.format(source=type(value).__name__, target=target_type.__name__)
            ) from e


class TemporalConverter(BaseTypeConverter):
    """Every temporal shape converts through one ``datetime`` instant."""

    TEMPORAL_TYPES: Tuple[type, ...] = (datetime.datetime, datetime.date, datetime.time)

    @property
    def priority(self) -> int:
        return 70

    def can_handle(self, value: Any, target_type: Any = None) -> bool:
        if target_type is None or target_type not in self.TEMPORAL_TYPES:
            return False
        if isinstance(value, bool):
            return False
        return isinstance(value, self.TEMPORAL_TYPES + (str, int, float))

    def from_database(self, value: Any, target_type: Any) -> Any:
        return self.from_instant(self.to_instant(value), target_type)

    @staticmethod
    def to_instant(value: Any) -> datetime.datetime:
        """Convert any supported temporal shape to a ``datetime``."""
        # datetime is a date subclass, check it first
        if isinstance(value, datetime.datetime):
            return value
        if isinstance(value, datetime.date):
            return datetime.datetime.combine(value, datetime.time())
        if isinstance(value, datetime.time):
            return datetime.datetime.combine(_EPOCH_DATE, value)
        if isinstance(value, (int, float)):
            return datetime.datetime.fromtimestamp(value)
        text = value.strip()
        try:
            return datetime.datetime.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.datetime.combine(_EPOCH_DATE, datetime.time.fromisoformat(text))
        except ValueError as e:
            raise ConversionError(
                ErrorMessages.UNSUPPORTED_CONVERSION.format(source=type(value).__name__, target="datetime")
            ) from e

    @staticmethod
    def from_instant(instant: datetime.datetime, target_type: Any) -> Any:
        if target_type is datetime.datetime:
            return instant
        if target_type is datetime.date:
            return instant.date()
        return instant.timetz()


class NumericConverter(BaseTypeConverter):
    """
    Exact conversions between int, float, Decimal and bool.

    Values are first lifted to ``Decimal`` and then narrowed; a narrowing whose
    result does not compare equal to the source raises.
    """

    NUMERIC_TYPES: Tuple[type, ...] = (int, float, decimal.Decimal, bool)

    @property
    def priority(self) -> int:
        return 60

    def can_handle(self, value: Any, target_type: Any = None) -> bool:
        if target_type is None or target_type not in self.NUMERIC_TYPES:
            return False
        return isinstance(value, self.NUMERIC_TYPES + (str,))

    def from_database(self, value: Any, target_type: Any) -> Any:
        exact = self._to_decimal(value, target_type)

        if target_type is decimal.Decimal:
            return exact

        if not exact.is_finite():
            if target_type is float:
                return float(exact)
            raise ConversionError(ErrorMessages.LOSSY_CONVERSION.format(value=value, target=target_type.__name__))

        if target_type is bool:
            if exact == 0:
                return False
            if exact == 1:
                return True
            raise ConversionError(ErrorMessages.INVALID_BOOLEAN.format(value=value))

        if target_type is int:
            if exact != exact.to_integral_value():
                raise ConversionError(ErrorMessages.LOSSY_CONVERSION.format(value=value, target="int"))
            return int(exact)

        narrowed = float(exact)
        if decimal.Decimal(repr(narrowed)) != exact:
            raise ConversionError(ErrorMessages.LOSSY_CONVERSION.format(value=value, target="float"))
        return narrowed

    @staticmethod
    def _to_decimal(value: Any, target_type: Any) -> decimal.Decimal:
        if isinstance(value, decimal.Decimal):
            return value
        if isinstance(value, bool):
            return decimal.Decimal(int(value))
        if isinstance(value, int):
            return decimal.Decimal(value)
        try:
            if isinstance(value, float):
                # repr gives the shortest string that round-trips the float
                return decimal.Decimal(repr(value))
            return decimal.Decimal(value.strip())
        except decimal.InvalidOperation as e:
            raise ConversionError(
                ErrorMessages.UNSUPPORTED_CONVERSION.format(source=type(value).__name__, target=target_type.__name__)
            ) from e


class BinaryConverter(BaseTypeConverter):
    """Driver buffer types and text to ``bytes``."""

    @property
    def priority(self) -> int:
        return 50

    def can_handle(self, value: Any, target_type: Any = None) -> bool:
        return target_type is bytes and isinstance(value, (bytearray, memoryview, str))

    def from_database(self, value: Any, target_type: Any) -> Any:
        if isinstance(value, str):
            return value.encode(DefaultConfiguration.TEXT_ENCODING)
        return bytes(value)


class TextConverter(BaseTypeConverter):
    """Fallback for text fields: decode buffers, stringify everything else."""

    @property
    def priority(self) -> int:
        return 10

    def can_handle(self, value: Any, target_type: Any = None) -> bool:
        return target_type is str

    def from_database(self, value: Any, target_type: Any) -> Any:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value).decode(DefaultConfiguration.TEXT_ENCODING)
        if isinstance(value, Enum):
            return str(value.value)
        return str(value)


# -----------------------------------------------------------------------------
# Service
# -----------------------------------------------------------------------------

class TypeConversionService:
    """
    Converts values between their storage and domain representations.

    :class: TypeConversionService
    :synopsis: Priority ordered converter chain with per-field overrides
    """

    def __init__(self, converters: Optional[List[BaseTypeConverter]] = None) -> None:
        self._lock = RLock()
        self._converters: List[BaseTypeConverter] = []
        defaults = converters if converters is not None else [
            EnumConverter(),
            UUIDConverter(),
            TemporalConverter(),
            NumericConverter(),
            BinaryConverter(),
            TextConverter(),
        ]
        for converter in defaults:
            self.register_converter(converter)

    def register_converter(self, converter: BaseTypeConverter) -> None:
        """Add a converter; converters are tried by descending priority."""
        with self._lock:
            self._converters.append(converter)
            self._converters.sort(key=lambda c: c.priority, reverse=True)
        logger.debug(LoggingConstants.REGISTERED_CONVERTER, type(converter).__name__, converter.priority)

    @property
    def converters(self) -> List[BaseTypeConverter]:
        return list(self._converters)

    def to_storage_type(self, value: Any, field: Optional["ScalarField"] = None) -> Any:
        """
        Convert a domain value to the value bound as a statement parameter.

        System managed fields ignore ``value`` and receive the current time.
        """
        if field is not None:
            if field.system_managed:
                return self.current_time(field.python_type)
            if field.converter is not None:
                return field.converter.to_database_column(value)

        if value is None:
            return None

        for converter in self._converters:
            if converter.can_handle(value, None):
                return converter.to_database(value)
        return value

    def to_domain_type(self, value: Any, target_type: Any, field: Optional["ScalarField"] = None) -> Any:
        """
        Convert a storage value to ``target_type``.

        Raises:
            ConversionError: no converter handles the pair, or the conversion is lossy
        """
        if field is not None and field.converter is not None:
            return field.converter.to_entity_attribute(value)

        if value is None:
            return None

        target_type = unwrap_optional(target_type)
        if target_type is Any or target_type is object:
            return value
        # Parameterized generics and other typing constructs pass through untouched
        if not isinstance(target_type, type):
            return value
        if _is_exact_instance(value, target_type):
            return value

        for converter in self._converters:
            if converter.can_handle(value, target_type):
                return converter.from_database(value, target_type)

        raise ConversionError(
            ErrorMessages.UNSUPPORTED_CONVERSION.format(source=type(value).__name__, target=target_type.__name__)
        )

    def current_time(self, target_type: Any) -> Any:
        """Current local time in the shape of ``target_type`` (datetime when unknown)."""
        target_type = unwrap_optional(target_type)
        now = datetime.datetime.now()
        if target_type in TemporalConverter.TEMPORAL_TYPES:
            return TemporalConverter.from_instant(now, target_type)
        if target_type is int:
            return int(now.timestamp())
        if target_type is float:
            return now.timestamp()
        return now


_default_conversion_service = TypeConversionService()


def get_conversion_service() -> TypeConversionService:
    """Return the process-wide default conversion service."""
    return _default_conversion_service
