"""Tests for the filter classifier (direct vs propagated filters per table)."""

from dataset_explorer.core.classifier import EffectiveFilters, classify
from dataset_explorer.core.filters import FilterLeaf, FilterOr


class TestClassify:
    def test_classify_empty_filters_every_table_has_empty_entry(self, study_tables):
        # Act
        result = classify([], study_tables)

        # Assert
        assert set(result) == {"patients", "samples", "lab_results"}
        assert all(entry == EffectiveFilters() for entry in result.values())

    def test_classify_filter_on_parent_direct_there_propagated_to_child(self, study_tables):
        # Arrange
        status = FilterLeaf("status", "eq", "Active", owning_table="patients")

        # Act
        result = classify([status], study_tables)

        # Assert
        assert result["patients"].direct == [status]
        assert result["patients"].propagated == []
        assert result["samples"].propagated == [status]

    def test_classify_propagation_is_one_hop_only(self, study_tables):
        status = FilterLeaf("status", "eq", "Active", owning_table="patients")

        result = classify([status], study_tables)

        # lab_results is two hops from patients
        assert not result["lab_results"]

    def test_classify_filter_on_middle_table_propagates_both_ways(self, study_tables):
        sample_type = FilterLeaf("sample_type", "eq", "Blood", owning_table="samples")

        result = classify([sample_type], study_tables)

        assert result["samples"].direct == [sample_type]
        assert result["patients"].propagated == [sample_type]
        assert result["lab_results"].propagated == [sample_type]

    def test_classify_untagged_filter_contributes_nowhere(self, study_tables):
        untagged = FilterLeaf("status", "eq", "Active")

        result = classify([untagged], study_tables)

        assert not any(result.values())

    def test_classify_compound_filter_uses_first_leaf_table(self, study_tables):
        # Arrange
        either = FilterOr(
            (
                FilterLeaf("status", "eq", "Active", owning_table="patients"),
                FilterLeaf("status", "eq", "Inactive", owning_table="patients"),
            )
        )

        # Act
        result = classify([either], study_tables)

        # Assert
        assert result["patients"].direct == [either]
        assert result["samples"].propagated == [either]

    def test_classify_filter_on_unknown_table_ignored(self, study_tables):
        stray = FilterLeaf("x", "eq", 1, owning_table="visits")

        result = classify([stray], study_tables)

        assert "visits" not in result
        assert not any(result.values())

    def test_effective_filters_all_lists_direct_then_propagated(self):
        direct = FilterLeaf("a", "eq", 1, "t1")
        propagated = FilterLeaf("b", "eq", 2, "t2")

        effective = EffectiveFilters(direct=[direct], propagated=[propagated])

        assert effective.all == [direct, propagated]
