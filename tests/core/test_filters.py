"""Tests for the filter expression tree.

- AAA pattern (Arrange-Act-Assert)
- Descriptive test names: test_unit_scenario_expectedBehavior
"""

import pytest

from dataset_explorer.core.errors import InvalidFilter, InvalidFilterValue
from dataset_explorer.core.filters import (
    EMPTY_LABEL,
    FilterAnd,
    FilterLeaf,
    FilterNot,
    FilterOr,
    filter_column,
    filter_columns,
    filter_contains_column,
    filter_table,
    filter_to_dict,
    is_missing_value,
    parse_filter,
    parse_filters,
    prune_unknown_columns,
)


class TestParseFilter:
    def test_parse_filter_leaf_with_table_name_sets_owning_table(self):
        # Arrange
        wire = {"column": "status", "operator": "eq", "value": "Active", "tableName": "patients"}

        # Act
        node = parse_filter(wire)

        # Assert
        assert node == FilterLeaf("status", "eq", "Active", owning_table="patients")

    def test_parse_filter_owning_table_key_accepted(self):
        node = parse_filter({"column": "age", "operator": "gt", "value": 40, "owningTable": "patients"})

        assert node.owning_table == "patients"

    def test_parse_filter_list_value_becomes_tuple(self):
        node = parse_filter({"column": "status", "operator": "in", "value": ["Active", ""]})

        assert node.value == ("Active", "")

    def test_parse_filter_nested_compound_builds_tree(self):
        # Arrange
        wire = {
            "or": [
                {"column": "status", "operator": "eq", "value": "Active"},
                {"not": {"column": "age", "operator": "lt", "value": 30}},
            ]
        }

        # Act
        node = parse_filter(wire)

        # Assert
        assert isinstance(node, FilterOr)
        assert isinstance(node.children[1], FilterNot)
        assert node.children[1].child == FilterLeaf("age", "lt", 30)

    def test_parse_filter_compound_table_name_inherited_by_leaves(self):
        # Arrange
        wire = {
            "tableName": "patients",
            "or": [
                {"column": "status", "operator": "eq", "value": "Active"},
                {"column": "status", "operator": "eq", "value": "Inactive", "tableName": "other"},
            ],
        }

        # Act
        node = parse_filter(wire)

        # Assert
        assert node.children[0].owning_table == "patients"
        assert node.children[1].owning_table == "other"

    @pytest.mark.parametrize(
        "wire",
        [
            {"column": "a", "operator": "eq", "value": 1, "and": []},
            {"and": [], "or": []},
            {"value": 1},
            {},
        ],
    )
    def test_parse_filter_ambiguous_or_empty_shape_raises_invalid_filter(self, wire):
        with pytest.raises(InvalidFilter):
            parse_filter(wire)

    def test_parse_filter_unknown_operator_raises_invalid_filter(self):
        with pytest.raises(InvalidFilter, match="Unsupported filter operator"):
            parse_filter({"column": "age", "operator": "like", "value": "3%"})

    def test_parse_filter_non_list_children_raises_invalid_filter(self):
        with pytest.raises(InvalidFilter, match="must be a list"):
            parse_filter({"and": {"column": "age", "operator": "gt", "value": 1}})

    def test_parse_filter_invalid_filter_is_invalid_filter_value(self):
        # InvalidFilter is reported the same way as a bad value
        with pytest.raises(InvalidFilterValue):
            parse_filter("status = 'Active'")

    def test_parse_filters_none_returns_empty_list(self):
        assert parse_filters(None) == []


class TestFilterToDict:
    def test_filter_to_dict_leaf_emits_table_name_and_list_value(self):
        # Arrange
        node = FilterLeaf("status", "in", ("Active", "Inactive"), owning_table="patients")

        # Act
        wire = filter_to_dict(node)

        # Assert
        assert wire == {"column": "status", "operator": "in", "value": ["Active", "Inactive"], "tableName": "patients"}

    def test_filter_to_dict_parse_result_reproduces_wire_shape(self):
        wire = {
            "and": [
                {"column": "age", "operator": "between", "value": [30, 50], "tableName": "patients"},
                {"not": {"column": "region", "operator": "eq", "value": "East", "tableName": "patients"}},
            ]
        }

        assert filter_to_dict(parse_filter(wire)) == wire


class TestFilterHelpers:
    @pytest.fixture
    def tree(self):
        return FilterAnd(
            (
                FilterOr(
                    (
                        FilterLeaf("status", "eq", "Active", "patients"),
                        FilterLeaf("region", "eq", "North", "patients"),
                    )
                ),
                FilterNot(FilterLeaf("age", "lt", 30, "patients")),
            )
        )

    def test_filter_column_returns_first_leaf_column(self, tree):
        assert filter_column(tree) == "status"

    def test_filter_table_returns_first_leaf_table(self, tree):
        assert filter_table(tree) == "patients"

    def test_filter_table_empty_compound_returns_none(self):
        assert filter_table(FilterAnd(())) is None

    def test_filter_columns_collects_every_leaf(self, tree):
        assert filter_columns(tree) == {"status", "region", "age"}

    def test_filter_contains_column_nested_not_found(self, tree):
        assert filter_contains_column(tree, "age")
        assert not filter_contains_column(tree, "sample_type")

    @pytest.mark.parametrize("value", [None, "", EMPTY_LABEL])
    def test_is_missing_value_sentinels_are_missing(self, value):
        assert is_missing_value(value)

    @pytest.mark.parametrize("value", [0, " ", "N/A", False])
    def test_is_missing_value_other_values_are_not_missing(self, value):
        assert not is_missing_value(value)


class TestPruneUnknownColumns:
    def test_prune_unknown_columns_all_known_returns_same_tree(self):
        node = FilterLeaf("status", "eq", "Active")

        assert prune_unknown_columns(node, {"status"}) is node

    def test_prune_unknown_columns_or_with_one_survivor_collapses(self):
        # Arrange
        node = FilterOr((FilterLeaf("status", "eq", "Active"), FilterLeaf("missing_col", "eq", 1)))

        # Act
        pruned = prune_unknown_columns(node, {"status"})

        # Assert
        assert pruned == FilterLeaf("status", "eq", "Active")

    def test_prune_unknown_columns_and_keeps_surviving_children(self):
        node = FilterAnd(
            (FilterLeaf("a", "eq", 1), FilterLeaf("b", "eq", 2), FilterLeaf("gone", "eq", 3))
        )

        pruned = prune_unknown_columns(node, {"a", "b"})

        assert pruned == FilterAnd((FilterLeaf("a", "eq", 1), FilterLeaf("b", "eq", 2)))

    def test_prune_unknown_columns_not_of_unknown_column_disappears(self):
        node = FilterNot(FilterLeaf("gone", "eq", 1))

        assert prune_unknown_columns(node, {"a"}) is None

    def test_prune_unknown_columns_nothing_known_returns_none(self):
        node = FilterAnd((FilterLeaf("x", "eq", 1), FilterOr((FilterLeaf("y", "eq", 2),))))

        assert prune_unknown_columns(node, set()) is None
