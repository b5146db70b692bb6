"""
Tests for the rule templates and the Rule Catalog.

These tests verify:
1. Scalar evaluation agrees with the vectorised satisfying set for every rule
2. The catalog only keeps informative rules
3. Rule ids, English renderings and look-alike families
"""

import pytest

from enigmind.code_space import CodeSpace
from enigmind.rules import (
    TEMPLATES,
    CountEquals,
    GreaterThan,
    IsEven,
    IsHighest,
    IsLowest,
    IsOdd,
    NotAt,
    RuleCatalog,
    SumAbove,
    SumBelow,
    SumEquals,
    get_catalog,
)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def make_catalog(base=3, columns=3, max_sum_columns=3):
    return RuleCatalog(CodeSpace(base, columns), max_sum_columns)


# ============================================================================
# TESTS
# ============================================================================

class TestEvaluation:

    def test_scalar_matches_vectorised_for_every_rule(self):
        catalog = make_catalog(4, 3)
        space = catalog.space
        codes = list(space.all())
        for rule in catalog.rules:
            satisfying = rule.satisfying(space.digits)
            for i, code in enumerate(codes):
                assert bool(satisfying[i]) == rule.evaluate(code), (rule.rule_id, code)

    def test_parity(self):
        assert IsEven(0).evaluate((4, 1))
        assert not IsEven(1).evaluate((4, 1))
        assert IsOdd(1).evaluate((4, 1))

    def test_lowest_requires_strict_minimum(self):
        assert IsLowest(0).evaluate((0, 1, 2))
        assert not IsLowest(0).evaluate((1, 1, 2))
        assert not IsLowest(1).evaluate((0, 1, 2))

    def test_highest_requires_strict_maximum(self):
        assert IsHighest(2).evaluate((0, 1, 2))
        assert not IsHighest(0).evaluate((2, 2, 1))

    def test_sums(self):
        code = (3, 1, 4)
        assert SumBelow((0, 2), 8).evaluate(code)
        assert not SumBelow((0, 2), 7).evaluate(code)
        assert SumEquals((0, 2), 7).evaluate(code)
        assert SumAbove((0, 1, 2), 7).evaluate(code)

    def test_count_and_position(self):
        assert CountEquals(2, 3).evaluate((3, 1, 3))
        assert CountEquals(0, 4).evaluate((3, 1, 3))
        assert NotAt(1, 4).evaluate((4, 1, 4))
        assert not NotAt(0, 4).evaluate((4, 1, 4))

    def test_greater_than(self):
        assert GreaterThan(0, 2).evaluate((3, 0, 1))
        assert not GreaterThan(0, 2).evaluate((1, 0, 1))

    def test_evaluation_is_deterministic(self):
        rule = SumEquals((0, 1), 4)
        assert all(rule.evaluate((2, 2)) for _ in range(10))


class TestCatalog:

    def test_every_rule_is_informative(self):
        catalog = make_catalog(4, 3)
        size = catalog.space.size()
        for rule in catalog:
            assert 0 < catalog.coverage(rule) < size

    def test_trivial_instances_are_dropped(self):
        catalog = make_catalog(2, 2)
        # (0, 0) is the only code whose sum is 0, SumAbove(AB, 2) never holds
        assert SumEquals((0, 1), 0) in catalog
        assert SumAbove((0, 1), 2) not in catalog
        assert CountEquals(3, 0) not in catalog

    def test_coverage_matches_mask(self):
        catalog = make_catalog(3, 3)
        for rule in catalog:
            assert catalog.coverage(rule) == int(rule.satisfying(catalog.space.digits).sum())

    @pytest.mark.parametrize("template", [SumBelow, SumEquals, SumAbove, CountEquals])
    def test_histogram_coverage_matches_masks(self, template):
        space = CodeSpace(5, 4)
        for rule, count in template.coverage_counts(space, 3):
            assert count == int(rule.satisfying(space.digits).sum()), rule.rule_id

    def test_lookup_by_id(self):
        catalog = make_catalog(3, 3)
        rule = catalog.get("GreaterThan(A, C)")
        assert rule == GreaterThan(0, 2)
        with pytest.raises(KeyError):
            catalog.get("GreaterThan(A, A)")

    def test_rule_ids_are_unique(self):
        catalog = make_catalog(4, 4)
        ids = [r.rule_id for r in catalog]
        assert len(ids) == len(set(ids))

    def test_every_template_is_represented(self):
        catalog = make_catalog(4, 3)
        for template in TEMPLATES:
            assert catalog.of_template(template), template.rule_name

    def test_greater_than_covers_ordered_pairs(self):
        assert len(make_catalog(4, 3).of_template(GreaterThan)) == 6

    def test_max_sum_columns(self):
        catalog = make_catalog(3, 4, max_sum_columns=2)
        for template in (SumBelow, SumEquals, SumAbove):
            assert all(len(r.columns) <= 2 for r in catalog.of_template(template))

    def test_shared_catalog(self):
        assert get_catalog(3, 3) is get_catalog(3, 3)


class TestRendering:

    def test_rule_ids(self):
        assert IsEven(0).rule_id == "IsEven(A)"
        assert SumBelow((0, 2), 7).rule_id == "SumBelow(AC, 7)"
        assert CountEquals(2, 3).rule_id == "CountEquals(2, 3)"
        assert NotAt(1, 4).rule_id == "NotAt(B, 4)"
        assert GreaterThan(0, 2).rule_id == "GreaterThan(A, C)"
        assert str(IsOdd(3)) == "IsOdd(D)"

    def test_text(self):
        assert IsEven(0).to_text() == "Column A is even."
        assert IsLowest(0).to_text() == "Column A is strictly lower than every other column."
        assert SumBelow((0, 2), 7).to_text() == "The sum of columns A and C is below 7."
        assert SumEquals((1,), 3).to_text() == "Column B is equal to 3."
        assert CountEquals(2, 3).to_text() == "Exactly 2 columns hold 3."
        assert CountEquals(1, 3).to_text() == "Exactly 1 column holds 3."
        assert CountEquals(0, 4).to_text() == "No column holds 4."
        assert NotAt(1, 4).to_text() == "Column B does not hold 4."
        assert GreaterThan(0, 2).to_text() == "Column A is greater than column C."

    def test_templates_are_distinct(self):
        assert IsEven(0) != IsOdd(0)
        assert SumBelow((0,), 2) != SumAbove((0,), 2)
        assert len({IsEven(0), IsEven(0), IsOdd(0)}) == 2

    def test_to_json(self):
        assert SumAbove((0, 1), 3).to_json() == {"type": "SumAbove", "columns": [0, 1], "value": 3}


class TestFamilies:

    def test_every_family_contains_the_rule(self):
        catalog = make_catalog(4, 3)
        for rule in catalog:
            families = rule.similar(catalog.space, catalog.max_sum_columns)
            assert families, rule.rule_id
            for description, members in families:
                assert description
                assert rule in members, (rule.rule_id, description)

    def test_parity_family(self):
        space = CodeSpace(4, 3)
        description, members = IsOdd(1).similar(space, 3)[0]
        assert description == "Column B is even or odd"
        assert members == [IsEven(1), IsOdd(1)]

    def test_sum_family_holds_the_three_relations(self):
        space = CodeSpace(6, 4)
        description, members = SumEquals((0, 2), 5).similar(space, 3)[0]
        assert description == "The sum of columns A and C is below, equal to or above 5"
        assert {type(m) for m in members} == {SumBelow, SumEquals, SumAbove}
