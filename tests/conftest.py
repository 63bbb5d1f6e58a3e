# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and shared fixtures for JoinAlchemy tests.
"""

from __future__ import annotations

import sqlite3
from typing import Generator, List

import pytest

from joinalchemy import Repository, clear_registry

from .models import SCHEMA, Owner, Pet


@pytest.fixture(autouse=True)
def global_registry_cleanup():
    """Clean up the global registry before and after every test."""
    clear_registry()

    yield

    clear_registry()


@pytest.fixture(scope="function")
def connection() -> Generator[sqlite3.Connection, None, None]:
    """In-memory database in auto-commit mode with foreign keys enforced."""
    conn = sqlite3.connect(":memory:", isolation_level=None)
    try:
        conn.execute("PRAGMA foreign_keys = ON")
        conn.executescript(SCHEMA)
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="function")
def statements(connection: sqlite3.Connection) -> List[str]:
    """Every statement executed on ``connection`` from now on."""
    executed: List[str] = []
    connection.set_trace_callback(executed.append)
    return executed


@pytest.fixture(scope="function")
def owner_repository() -> Repository[Owner]:
    return Repository(Owner, int)


@pytest.fixture(scope="function")
def pet_repository() -> Repository[Pet]:
    return Repository(Pet, int)
