"""Tests for RelationshipGraph and the relationship data types."""

import pytest

from dataset_explorer.core.relationships import JoinColumns, Relationship, RelationshipGraph, TableDescriptor


@pytest.fixture
def chain_graph():
    """A -> B -> C, plus an unrelated D."""
    return RelationshipGraph(
        [
            TableDescriptor("A", relationships=(Relationship("b_id", "B", "id"),)),
            TableDescriptor("B", relationships=(Relationship("c_id", "C", "id"),)),
            TableDescriptor("C"),
            TableDescriptor("D"),
        ]
    )


class TestRelationshipGraph:
    def test_find_path_transitive_chain_returns_full_path(self, chain_graph):
        assert chain_graph.find_path("A", "C") == ["A", "B", "C"]

    def test_find_path_reverse_direction_follows_undirected_edges(self, chain_graph):
        assert chain_graph.find_path("C", "A") == ["C", "B", "A"]

    def test_find_path_unrelated_table_returns_none(self, chain_graph):
        assert chain_graph.find_path("A", "D") is None

    def test_find_path_same_table_returns_none(self, chain_graph):
        assert chain_graph.find_path("A", "A") is None

    def test_find_path_absent_table_returns_none(self, chain_graph):
        assert chain_graph.find_path("A", "Z") is None

    def test_has_edge_both_directions_true(self, chain_graph):
        assert chain_graph.has_edge("A", "B")
        assert chain_graph.has_edge("B", "A")

    def test_has_edge_two_hops_apart_false(self, chain_graph):
        assert not chain_graph.has_edge("A", "C")

    def test_are_related_transitive_true_unrelated_false(self, chain_graph):
        assert chain_graph.are_related("A", "C")
        assert not chain_graph.are_related("A", "D")

    def test_find_path_shortest_of_two_routes_chosen(self):
        # Arrange: A-B-C-D and a shortcut A-D
        graph = RelationshipGraph(
            [
                TableDescriptor(
                    "A", relationships=(Relationship("b_id", "B", "id"), Relationship("d_id", "D", "id"))
                ),
                TableDescriptor("B", relationships=(Relationship("c_id", "C", "id"),)),
                TableDescriptor("C", relationships=(Relationship("d_id", "D", "id"),)),
                TableDescriptor("D"),
            ]
        )

        # Act
        path = graph.find_path("A", "D")

        # Assert
        assert path == ["A", "D"]

    def test_graph_referenced_but_undeclared_table_still_adjacent(self):
        graph = RelationshipGraph([TableDescriptor("samples", relationships=(Relationship("pid", "patients", "id"),))])

        assert graph.has_edge("patients", "samples")

    def test_join_columns_child_to_parent_uses_foreign_key_locally(self, study_tables):
        graph = RelationshipGraph(study_tables)

        assert graph.join_columns("samples", "patients") == JoinColumns("patient_id", "patient_id")

    def test_join_columns_parent_to_child_uses_referenced_column_locally(self):
        # Arrange: child column name differs from the parent key
        graph = RelationshipGraph(
            [
                TableDescriptor("patients"),
                TableDescriptor("samples", relationships=(Relationship("subject", "patients", "patient_id"),)),
            ]
        )

        # Act
        join = graph.join_columns("patients", "samples")

        # Assert
        assert join == JoinColumns(local_column="patient_id", remote_column="subject")

    def test_join_columns_unrelated_tables_returns_none(self, study_tables):
        graph = RelationshipGraph(study_tables)

        assert graph.join_columns("lab_results", "patients") is None

    def test_summary_lists_declared_relationships(self, study_tables):
        summary = RelationshipGraph(study_tables).summary()

        assert "samples.patient_id -> patients.patient_id (many-to-one)" in summary
        assert "lab_results.sample_id -> samples.sample_id" in summary


class TestRelationship:
    def test_from_dict_camel_case_shape_parsed(self):
        rel = Relationship.from_dict(
            {"foreignKeyColumn": "patient_id", "referencedTable": "patients", "referencedColumn": "patient_id"}
        )

        assert rel == Relationship("patient_id", "patients", "patient_id")

    def test_from_dict_storage_shape_with_type_parsed(self):
        rel = Relationship.from_dict(
            {
                "foreign_key": "patient_id",
                "referenced_table": "patients",
                "referenced_column": "patient_id",
                "type": "many-to-one",
            }
        )

        assert rel.kind == "many-to-one"
        assert rel.foreign_key_column == "patient_id"

    def test_to_dict_from_dict_roundtrip(self):
        rel = Relationship("sample_id", "samples", "sample_id", kind="many-to-one")

        assert Relationship.from_dict(rel.to_dict()) == rel
