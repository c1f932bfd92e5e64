"""
Tests for the ICP segment rule model: parsing, validation, legacy criteria
and summaries.
"""

import pytest

from app.services.segments.errors import RuleValidationError
from app.services.segments.rules import (
    EMPTY_RULE_SET,
    AndGroup,
    FieldPredicate,
    OrGroup,
    RuleOperator,
    is_empty_rule_set,
    normalize_operator,
    parse_rule_set,
    rule_set_to_dict,
    rules_from_legacy,
    summarize_rule_set,
    validate_rule_set,
)


def leaf(field, operator, value=None) -> dict:
    item = {"field": field, "operator": operator}
    if value is not None:
        item["value"] = value
    return item


class TestParseRuleSet:

    def test_nested_groups(self):
        rule_set = parse_rule_set({
            "logic": "or",
            "rules": [
                {"logic": "and", "rules": [leaf("rating", "greater_than_or_equal", 4.5)]},
                leaf("icp_score", "greater_than_or_equal", 70),
            ],
        })

        assert isinstance(rule_set, OrGroup)
        assert rule_set.rules[0] == AndGroup((FieldPredicate("rating", RuleOperator.GREATER_THAN_OR_EQUAL, 4.5),))
        assert rule_set.rules[1] == FieldPredicate("icp_score", RuleOperator.GREATER_THAN_OR_EQUAL, 70)

    @pytest.mark.parametrize("data", [None, {}])
    def test_missing_rules_are_empty(self, data):
        assert parse_rule_set(data) == EMPTY_RULE_SET
        assert is_empty_rule_set(parse_rule_set(data))

    def test_root_leaf_is_wrapped(self):
        assert parse_rule_set(leaf("city", "equals", "Austin")) == AndGroup(
            (FieldPredicate("city", RuleOperator.EQUALS, "Austin"),)
        )

    def test_list_values_are_frozen(self):
        rule_set = parse_rule_set({"rules": [leaf("city", "in", ["Austin", "Dallas"])]})
        assert rule_set.rules[0].value == ("Austin", "Dallas")
        hash(rule_set)

    def test_null_operator_drops_value(self):
        rule_set = parse_rule_set({"rules": [leaf("website", "is_null", "ignored")]})
        assert rule_set.rules[0].value is None

    def test_unknown_logic(self):
        with pytest.raises(RuleValidationError, match="unknown logic"):
            parse_rule_set({"logic": "xor", "rules": []})

    def test_missing_field(self):
        with pytest.raises(RuleValidationError) as exc_info:
            parse_rule_set({"rules": [{"operator": "equals", "value": 1}]})
        assert exc_info.value.path == "rules.rules[0]"

    def test_round_trip_to_stored_form(self):
        stored = {
            "logic": "or",
            "rules": [
                {"logic": "and", "rules": [leaf("tags", "contains", "no-ssl"), leaf("website", "is_null")]},
                leaf("city", "in", ["Austin", "Dallas"]),
            ],
        }
        assert rule_set_to_dict(parse_rule_set(stored)) == stored


class TestOperators:

    @pytest.mark.parametrize("raw, expected", [
        ("equals", RuleOperator.EQUALS),
        ("eq", RuleOperator.EQUALS),
        ("neq", RuleOperator.NOT_EQUALS),
        ("gte", RuleOperator.GREATER_THAN_OR_EQUAL),
        ("greaterThanOrEqual", RuleOperator.GREATER_THAN_OR_EQUAL),
        ("lte", RuleOperator.LESS_THAN_OR_EQUAL),
        ("is_empty", RuleOperator.IS_NULL),
        ("is-not-null", RuleOperator.IS_NOT_NULL),
        ("in_list", RuleOperator.IN),
    ])
    def test_aliases(self, raw, expected):
        assert normalize_operator(raw) == expected

    def test_unknown_operator(self):
        with pytest.raises(RuleValidationError) as exc_info:
            normalize_operator("between", field="rating")
        assert exc_info.value.operator == "between"
        assert exc_info.value.field == "rating"


class TestValidateRuleSet:

    def test_valid_rule_set(self):
        rule_set = parse_rule_set({
            "logic": "and",
            "rules": [
                leaf("icp_score", "greater_than_or_equal", 70),
                leaf("business_type", "contains", "paint"),
                leaf("needs_website", "equals", True),
                leaf("contacted_at", "less_than_or_equal", "2026-01-01"),
                leaf("tags", "contains", "no-ssl"),
                leaf("city", "in", ["Austin", "Dallas"]),
                leaf("email", "is_not_null"),
            ],
        })
        assert validate_rule_set(rule_set) is rule_set

    def test_empty_root_is_allowed(self):
        assert validate_rule_set(EMPTY_RULE_SET) is EMPTY_RULE_SET

    def test_unknown_field(self):
        rule_set = parse_rule_set({"rules": [leaf("shoeSize", "equals", 9)]})

        with pytest.raises(RuleValidationError) as exc_info:
            validate_rule_set(rule_set)

        error = exc_info.value
        assert error.to_error_item() == {
            "field": "shoeSize",
            "operator": "equals",
            "path": "rules.rules[0]",
            "message": "unknown field",
        }
        assert "shoeSize" in str(error)

    @pytest.mark.parametrize("rule, message", [
        (leaf("rating", "contains", "4"), "operator not supported for number fields"),
        (leaf("needs_website", "greater_than_or_equal", 1), "operator not supported for boolean fields"),
        (leaf("tags", "equals", "x"), "operator not supported for list fields"),
        (leaf("contacted_at", "equals", "2026-01-01"), "operator not supported for date fields"),
        (leaf("icp_score", "greater_than_or_equal", "70"), "value must be a number"),
        (leaf("icp_score", "equals", True), "value must be a number"),
        (leaf("needs_website", "equals", "yes"), "value must be true or false"),
        (leaf("city", "equals", 5), "value must be a string"),
        (leaf("contacted_at", "greater_than_or_equal", "last week"), "value must be an ISO 8601 date"),
        (leaf("city", "in", []), "value must be a non-empty list"),
        (leaf("city", "in", "Austin"), "value must be a non-empty list"),
        (leaf("icp_score", "in", [1, "two"]), "every list item must be a number"),
    ])
    def test_type_incompatible_leaf(self, rule, message):
        with pytest.raises(RuleValidationError) as exc_info:
            validate_rule_set(parse_rule_set({"rules": [rule]}))
        assert exc_info.value.reason == message

    def test_nested_empty_group(self):
        rule_set = parse_rule_set({"rules": [leaf("icp_score", "equals", 1), {"logic": "or", "rules": []}]})

        with pytest.raises(RuleValidationError) as exc_info:
            validate_rule_set(rule_set)
        assert exc_info.value.path == "rules.rules[1]"


class TestLegacyCriteria:

    def test_ranges_and_flags(self):
        rule_set = parse_rule_set({"minIcpScore": 70, "maxReviews": 50, "needsWebsite": True})

        assert rule_set == AndGroup((
            FieldPredicate("icp_score", RuleOperator.GREATER_THAN_OR_EQUAL, 70),
            FieldPredicate("review_count", RuleOperator.LESS_THAN_OR_EQUAL, 50),
            FieldPredicate("needs_website", RuleOperator.EQUALS, True),
        ))

    def test_lists_become_or_groups(self):
        rule_set = rules_from_legacy({"businessTypes": ["Painter", "HVAC"]})

        assert rule_set == AndGroup((
            OrGroup((
                FieldPredicate("business_type", RuleOperator.CONTAINS, "Painter"),
                FieldPredicate("business_type", RuleOperator.CONTAINS, "HVAC"),
            )),
        ))

    def test_presence_flags(self):
        rule_set = rules_from_legacy({"hasWebsite": False, "hasEmail": False, "isContacted": True})

        assert rule_set == AndGroup((
            FieldPredicate("website", RuleOperator.IS_NULL),
            FieldPredicate("contacted_at", RuleOperator.IS_NOT_NULL),
        ))

    def test_unknown_criteria(self):
        with pytest.raises(RuleValidationError, match="unknown criteria: favoriteColor"):
            parse_rule_set({"minIcpScore": 70, "favoriteColor": "blue"})

    def test_converted_rules_validate(self):
        rule_set = parse_rule_set({"minRating": 4.5, "cities": ["Austin"], "isHotLead": True})
        assert validate_rule_set(rule_set) is rule_set


class TestSummaries:

    def test_and_root_gives_one_line_per_criterion(self):
        rule_set = parse_rule_set({
            "rules": [
                leaf("icp_score", "greater_than_or_equal", 70),
                leaf("website", "is_null"),
                leaf("needs_website", "equals", True),
                leaf("city", "in", ["Austin", "Dallas"]),
            ],
        })

        assert summarize_rule_set(rule_set) == [
            "ICP Score >= 70",
            "Website is empty",
            "Needs Website = yes",
            "City is one of Austin, Dallas",
        ]

    def test_or_root_gives_single_line(self):
        rule_set = parse_rule_set({
            "logic": "or",
            "rules": [
                {"logic": "and", "rules": [leaf("rating", "gte", 4.5), leaf("review_count", "gte", 20)]},
                leaf("icp_score", "gte", 70),
            ],
        })

        assert summarize_rule_set(rule_set) == ["(Rating >= 4.5 AND Reviews >= 20) OR ICP Score >= 70"]

    def test_empty(self):
        assert summarize_rule_set(EMPTY_RULE_SET) == []
