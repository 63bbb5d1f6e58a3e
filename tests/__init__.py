# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Test suite for JoinAlchemy.

This package contains tests for all components of JoinAlchemy:
- Unit tests for conversion, statement parsing and join plan synthesis
- Integration tests against in-memory SQLite databases
- Concurrency and cycle edge cases
"""
