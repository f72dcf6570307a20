"""Tests for the predicate AST renderer (parameterized and inline forms)."""

import pytest

from dataset_explorer.core.predicates import (
    Between,
    Comparison,
    Conjunction,
    InList,
    InSubquery,
    IsMissing,
    IsNotAvailable,
    Negation,
    conjunction,
    disjunction,
    quote_identifier,
    render,
    sql_literal,
)


class TestQuoteIdentifier:
    def test_quote_identifier_plain_name_unquoted(self):
        assert quote_identifier("patient_id") == "patient_id"

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("sample type", '"sample type"'),
            ("order", '"order"'),
            ("1st_visit", '"1st_visit"'),
            ('odd"name', '"odd""name"'),
        ],
    )
    def test_quote_identifier_unsafe_name_double_quoted(self, name, expected):
        assert quote_identifier(name) == expected

    def test_quote_identifier_empty_name_raises(self):
        with pytest.raises(ValueError):
            quote_identifier("")


class TestSqlLiteral:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [("Active", "'Active'"), ("O'Brien", "'O''Brien'"), (42, "42"), (30.0, "30"), (0.5, "0.5")],
    )
    def test_sql_literal_values_rendered(self, value, expected):
        assert sql_literal(value) == expected

    def test_sql_literal_non_finite_float_raises(self):
        with pytest.raises(ValueError):
            sql_literal(float("nan"))


class TestRender:
    def test_render_comparison_parameterized_uses_placeholder(self):
        # Act
        rendered = render(Comparison("status", "=", "Active"))

        # Assert
        assert rendered.sql == "status = ?"
        assert rendered.params == ("Active",)

    def test_render_comparison_inline_embeds_escaped_literal(self):
        rendered = render(Comparison("name", "=", "O'Brien"), inline=True)

        assert rendered.sql == "name = 'O''Brien'"
        assert rendered.params == ()

    def test_render_in_list_params_in_order(self):
        rendered = render(InList("status", ("Active", "Inactive")))

        assert rendered.sql == "status IN (?, ?)"
        assert rendered.params == ("Active", "Inactive")

    def test_render_is_missing_casts_to_text(self):
        rendered = render(IsMissing("age"))

        assert rendered.sql == "(age IS NULL OR TRIM(CAST(age AS VARCHAR)) = '')"

    def test_render_is_not_available_case_insensitive(self):
        rendered = render(IsNotAvailable("status"))

        assert rendered.sql == "LOWER(TRIM(CAST(status AS VARCHAR))) = 'n/a'"

    def test_render_between_two_params(self):
        rendered = render(Between("age", 30, 50))

        assert rendered.sql == "age BETWEEN ? AND ?"
        assert rendered.params == (30, 50)

    def test_render_nested_boolean_parenthesized(self):
        # Arrange
        predicate = Conjunction(
            (
                disjunction([Comparison("a", "=", 1), Comparison("b", "=", 2)]),
                Negation(Comparison("c", ">", 3)),
            )
        )

        # Act
        rendered = render(predicate, inline=True)

        # Assert
        assert rendered.sql == "((a = 1 OR b = 2) AND NOT (c > 3))"

    def test_render_subquery_inline_matches_expected_shape(self):
        # Arrange
        predicate = InSubquery("patient_id", "patients", "patient_id", Comparison("status", "=", "Active"))

        # Act
        rendered = render(predicate, inline=True)

        # Assert
        assert rendered.sql == "patient_id IN (SELECT patient_id FROM patients WHERE status = 'Active')"

    def test_render_params_follow_textual_order_across_subquery(self):
        predicate = Conjunction(
            (
                Comparison("purity", ">", 0.5),
                InSubquery("patient_id", "patients", "patient_id", Comparison("status", "=", "Active")),
            )
        )

        rendered = render(predicate)

        assert rendered.sql == (
            "(purity > ? AND patient_id IN (SELECT patient_id FROM patients WHERE status = ?))"
        )
        assert rendered.params == (0.5, "Active")

    def test_render_unknown_comparison_operator_raises(self):
        with pytest.raises(ValueError, match="Unsupported comparison operator"):
            render(Comparison("a", "LIKE", "x"))


class TestCombinators:
    def test_conjunction_empty_returns_none(self):
        assert conjunction([]) is None

    def test_conjunction_singleton_collapses(self):
        term = Comparison("a", "=", 1)

        assert conjunction([term]) is term

    def test_disjunction_empty_returns_none(self):
        assert disjunction([]) is None
