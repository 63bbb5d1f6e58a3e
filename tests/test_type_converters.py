# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Tests for storage/domain value conversion.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from decimal import Decimal
from enum import Enum
from typing import Optional

import pytest

from joinalchemy import (
    BaseTypeConverter,
    ConversionError,
    ScalarField,
    TypeConversionService,
    YesNoConverter,
)

from .models import Species


class Priority(Enum):
    LOW = 1
    HIGH = 2


@pytest.fixture
def service() -> TypeConversionService:
    return TypeConversionService()


class TestNumericConversion:
    """Exact numeric conversions."""

    def test_widening(self, service):
        assert service.to_domain_type(3, float) == 3.0
        assert service.to_domain_type(3, Decimal) == Decimal(3)
        assert service.to_domain_type(0.1, Decimal) == Decimal("0.1")

    def test_exact_narrowing(self, service):
        assert service.to_domain_type(4.0, int) == 4
        assert service.to_domain_type(Decimal("12.000"), int) == 12
        assert service.to_domain_type("42", int) == 42

    @pytest.mark.parametrize("value", [3.5, Decimal("1.25"), "7.1"])
    def test_lossy_narrowing_raises(self, service, value):
        with pytest.raises(ConversionError, match="lose information"):
            service.to_domain_type(value, int)

    def test_decimal_to_float_must_round_trip(self, service):
        assert service.to_domain_type(Decimal("2.5"), float) == 2.5
        with pytest.raises(ConversionError):
            service.to_domain_type(Decimal("0.1000000000000000000000001"), float)

    def test_booleans(self, service):
        assert service.to_domain_type(1, bool) is True
        assert service.to_domain_type(0, bool) is False
        with pytest.raises(ConversionError, match="not a valid boolean"):
            service.to_domain_type(2, bool)

    def test_bool_is_not_passed_through_as_int(self, service):
        assert service.to_domain_type(True, int) == 1
        assert type(service.to_domain_type(True, int)) is int

    def test_unparseable_text(self, service):
        with pytest.raises(ConversionError, match="Could not convert"):
            service.to_domain_type("many", int)


class TestTemporalConversion:
    """Temporal values convert through a datetime instant."""

    def test_iso_text(self, service):
        assert service.to_domain_type("2020-03-14", datetime.date) == datetime.date(2020, 3, 14)
        assert service.to_domain_type("2020-03-14 10:30:00", datetime.datetime) == datetime.datetime(2020, 3, 14, 10, 30)
        assert service.to_domain_type("10:30:00", datetime.time) == datetime.time(10, 30)

    def test_between_temporal_types(self, service):
        instant = datetime.datetime(2021, 6, 1, 8, 15)

        assert service.to_domain_type(instant, datetime.date) == datetime.date(2021, 6, 1)
        assert service.to_domain_type(instant, datetime.time) == datetime.time(8, 15)
        assert service.to_domain_type(datetime.date(2021, 6, 1), datetime.datetime) == datetime.datetime(2021, 6, 1)

    def test_epoch_seconds(self, service):
        expected = datetime.datetime.fromtimestamp(0)

        assert service.to_domain_type(0, datetime.datetime) == expected

    def test_invalid_text(self, service):
        with pytest.raises(ConversionError):
            service.to_domain_type("yesterday", datetime.date)


class TestOtherConversions:
    """Enums, UUIDs, binary and text."""

    def test_enum_by_value_then_name(self, service):
        assert service.to_domain_type("dog", Species) is Species.DOG
        assert service.to_domain_type("CAT", Species) is Species.CAT
        assert service.to_domain_type("2", Priority) is Priority.HIGH
        with pytest.raises(ConversionError, match="not a member of Species"):
            service.to_domain_type("fish", Species)

    def test_enum_stored_by_value(self, service):
        assert service.to_storage_type(Species.CAT) == "cat"
        assert service.to_storage_type(Priority.LOW) == 1

    def test_uuid(self, service):
        value = uuid.UUID("12345678-1234-5678-1234-567812345678")

        assert service.to_domain_type(str(value), uuid.UUID) == value
        assert service.to_domain_type(value.bytes, uuid.UUID) == value
        assert service.to_domain_type(value.int, uuid.UUID) == value

    def test_binary_and_text(self, service):
        assert service.to_domain_type(memoryview(b"ab"), bytes) == b"ab"
        assert service.to_domain_type("ab", bytes) == b"ab"
        assert service.to_domain_type(b"ab", str) == "ab"
        assert service.to_domain_type(12, str) == "12"

    def test_none_and_optional(self, service):
        assert service.to_domain_type(None, int) is None
        assert service.to_domain_type("5", Optional[int]) == 5
        assert service.to_storage_type(None) is None

    def test_no_converter(self, service):
        with pytest.raises(ConversionError, match="list"):
            service.to_domain_type(b"\x00", list)


class TestFieldConverters:
    """Per-field overrides."""

    def test_yes_no_converter(self, service):
        field = ScalarField("active", "active", bool, converter=YesNoConverter())

        assert service.to_storage_type(True, field) == "Y"
        assert service.to_storage_type(False, field) == "N"
        assert service.to_domain_type("y", bool, field) is True
        assert service.to_domain_type("N", bool, field) is False
        with pytest.raises(ConversionError):
            service.to_domain_type("maybe", bool, field)

    def test_system_managed_field_gets_current_time(self, service):
        field = ScalarField("updated_at", "updated_at", datetime.datetime, system_managed=True)
        before = datetime.datetime.now()

        stamp = service.to_storage_type(datetime.datetime(2000, 1, 1), field)

        assert stamp >= before

    def test_custom_converter_priority(self, caplog):
        class Upper(BaseTypeConverter):
            @property
            def priority(self) -> int:
                return 200

            def can_handle(self, value, target_type=None):
                return target_type is str

            def from_database(self, value, target_type):
                return str(value).upper()

        service = TypeConversionService()
        with caplog.at_level(logging.DEBUG, logger="joinalchemy.type_converters"):
            service.register_converter(Upper())

        assert type(service.converters[0]) is Upper
        assert "Registered converter Upper with priority 200" in caplog.messages
        assert service.to_domain_type(b"abc", str) == "B'ABC'"
