# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Tests for join plan synthesis and the single table statement builders.
"""

from __future__ import annotations

from typing import List, Optional

from joinalchemy import (
    EntityBase,
    StatementBuilder,
    column,
    entity,
    get_registry,
    many_to_one,
    one_to_many,
)
from joinalchemy.join_query_builder import bridge_values

from .models import Note, Owner, Pet

OWNER_SQL = (
    "SELECT owner.id, owner.name, owner.active, owner.updated_at, "
    "address.id, address.street, address.city, "
    "pet.id, pet.name, pet.species, pet.birth_date, "
    "toy.id, toy.label, "
    "c5_address.id, c5_address.street, c5_address.city, "
    "note.id, note.text, "
    "club.id, club.title "
    "FROM owner "
    "LEFT JOIN address ON owner.address_id = address.id "
    "LEFT JOIN pet ON owner.id = pet.owner_id "
    "LEFT JOIN pet_toy ON pet.id = pet_toy.pet_id "
    "LEFT JOIN toy ON pet_toy.toy_id = toy.id "
    "LEFT JOIN address c5_address ON toy.address_id = c5_address.id "
    "LEFT JOIN note ON owner.id = note.owner_id "
    "LEFT JOIN owner_club ON owner.id = owner_club.owner_id "
    "LEFT JOIN club ON owner_club.club_id = club.id"
)


class TestJoinPlan:
    """Structure of the synthesized outer-join query."""

    def test_owner_plan_sql(self):
        plan = get_registry().get_join_plan(Owner)

        assert plan.sql == OWNER_SQL
        assert plan.root_alias == "owner"
        assert plan.id_column == "id"

    def test_owner_plan_steps_and_offsets(self):
        plan = get_registry().get_join_plan(Owner)

        layout = [
            (step.association.field_name, step.parent_alias, step.child_alias, step.bridge_alias, step.offset)
            for step in plan.steps
        ]
        assert layout == [
            ("address", "owner", "address", None, 4),
            ("pets", "owner", "pet", None, 7),
            ("toys", "pet", "toy", "pet_toy", 11),
            ("made_at", "toy", "c5_address", None, 13),
            ("notes", "owner", "note", None, 16),
            ("clubs", "owner", "club", "owner_club", 18),
        ]
        assert plan.tables[0] == ("owner", "owner", 0)
        assert len(plan.select_columns) == 20

    def test_to_one_before_to_many(self):
        plan = get_registry().get_join_plan(Pet)

        assert [step.association.field_name for step in plan.steps] == [
            "owner", "address", "notes", "clubs", "toys", "made_at",
        ]

    def test_repeated_table_alias_counts_issued_aliases(self):
        plan = get_registry().get_join_plan(Pet)

        offsets = {step.child_alias: step.offset for step in plan.steps}
        assert offsets == {
            "owner": 4,
            "address": 8,
            "note": 11,
            "club": 13,
            "toy": 15,
            "c8_address": 17,
        }
        assert "LEFT JOIN address c8_address ON toy.address_id = c8_address.id" in plan.sql

    def test_cycle_back_to_path_is_not_joined(self):
        plan = get_registry().get_join_plan(Pet)

        # pet -> owner -> pets would re-enter pet
        assert "LEFT JOIN pet " not in plan.sql
        assert plan.sql.startswith("SELECT pet.id, pet.name, pet.species, pet.birth_date, owner.id")

    def test_self_referencing_entity_has_no_joins(self):
        @entity(table="category")
        class Category(EntityBase):
            id: Optional[int] = column(primary_key=True)
            name: str = column("")
            parent: Optional[Category] = many_to_one(join_column="parent_id")
            children: List[Category] = one_to_many(join_columns="parent_id")

        plan = get_registry().get_join_plan(Category)

        assert plan.sql == "SELECT category.id, category.name FROM category"
        assert plan.steps == ()

    def test_leaf_entity_plan(self):
        plan = get_registry().get_join_plan(Note)

        assert plan.sql == "SELECT note.id, note.text FROM note"

    def test_where_and_distinct(self):
        plan = get_registry().get_join_plan(Note)

        assert plan.select_sql("note.text = ?") == "SELECT note.id, note.text FROM note WHERE note.text = ?"
        assert plan.select_sql(distinct=True) == "SELECT DISTINCT note.id, note.text FROM note"
        assert plan.by_id_sql == "SELECT note.id, note.text FROM note WHERE note.id = ?"


class TestStatementBuilder:
    """Single table statements."""

    def test_insert(self):
        assert StatementBuilder.insert("note", ["text", "owner_id"]) == "INSERT INTO note (text, owner_id) VALUES (?, ?)"

    def test_insert_without_columns(self):
        assert StatementBuilder.insert("note", []) == "INSERT INTO note DEFAULT VALUES"

    def test_update_and_delete_by_id(self):
        owner = get_registry().describe(Owner)

        assert StatementBuilder.update_by_id(owner, ["name", "active"]) == "UPDATE owner SET name = ?, active = ? WHERE id = ?"
        assert StatementBuilder.delete_by_id(owner) == "DELETE FROM owner WHERE id = ?"

    def test_reads_by_id(self):
        owner = get_registry().describe(Owner)

        assert StatementBuilder.id_exists(owner) == "SELECT id FROM owner WHERE owner.id = ?"
        assert StatementBuilder.select_row_by_id(owner) == (
            "SELECT id, name, active, updated_at, address_id FROM owner WHERE id = ?"
        )

    def test_matching_row(self):
        note = get_registry().describe(Note)

        assert StatementBuilder.matching_row(note, ["text", "owner_id"]) == (
            "SELECT id FROM note WHERE text = ? AND owner_id = ?"
        )
        assert StatementBuilder.matching_row(note, []) == "SELECT id FROM note WHERE 1 = 1"

    def test_bridge_statements(self):
        assert StatementBuilder.delete_matching("owner_club", ["owner_id", "club_id"]) == (
            "DELETE FROM owner_club WHERE owner_id = ? AND club_id = ?"
        )
        assert StatementBuilder.unlink("note", ["owner_id"], "id") == "UPDATE note SET owner_id = NULL WHERE id = ?"

    def test_bridge_values(self):
        clubs = get_registry().describe(Owner).to_many[2]

        values = bridge_values(clubs, {"id": 7, "name": "Ada"}, {"id": 3, "title": "Chess"})

        assert values == {"owner_id": 7, "club_id": 3}
