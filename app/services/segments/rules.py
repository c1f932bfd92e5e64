"""
ICP Segment Rule Model

A rule set is a tagged tree of three node kinds:

- ``FieldPredicate``: a leaf comparing one prospect attribute with a value
- ``AndGroup``: all children must match
- ``OrGroup``: at least one child must match

Stored form (JSON, same shape the segment engine has always used):

    {
        "logic": "or",
        "rules": [
            {
                "logic": "and",
                "rules": [
                    {"field": "rating", "operator": "greater_than_or_equal", "value": 4.5},
                    {"field": "review_count", "operator": "greater_than_or_equal", "value": 20}
                ]
            },
            {"field": "icp_score", "operator": "greater_than_or_equal", "value": 70}
        ]
    }

The root of a rule set is always a group. Flat criteria saved by older
clients (``minIcpScore``, ``businessTypes`` ...) are converted by
``rules_from_legacy``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional, Union

from app.services.segments.errors import RuleValidationError


class FieldType(str, Enum):
    """Declared type of a rule-addressable prospect attribute."""

    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    DATE = "date"
    LIST = "list"


class RuleOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    CONTAINS = "contains"
    IN = "in"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"


# Accepted spellings from older clients, normalised on parse
OPERATOR_ALIASES: dict[str, RuleOperator] = {
    "eq": RuleOperator.EQUALS,
    "equal": RuleOperator.EQUALS,
    "neq": RuleOperator.NOT_EQUALS,
    "not_equal": RuleOperator.NOT_EQUALS,
    "notequals": RuleOperator.NOT_EQUALS,
    "gte": RuleOperator.GREATER_THAN_OR_EQUAL,
    "greater_than_or_equals": RuleOperator.GREATER_THAN_OR_EQUAL,
    "greaterthanorequal": RuleOperator.GREATER_THAN_OR_EQUAL,
    "lte": RuleOperator.LESS_THAN_OR_EQUAL,
    "less_than_or_equals": RuleOperator.LESS_THAN_OR_EQUAL,
    "lessthanorequal": RuleOperator.LESS_THAN_OR_EQUAL,
    "in_list": RuleOperator.IN,
    "is_empty": RuleOperator.IS_NULL,
    "isnull": RuleOperator.IS_NULL,
    "is_not_empty": RuleOperator.IS_NOT_NULL,
    "isnotnull": RuleOperator.IS_NOT_NULL,
}

NULL_OPERATORS = frozenset({RuleOperator.IS_NULL, RuleOperator.IS_NOT_NULL})

OPERATORS_BY_TYPE: dict[FieldType, frozenset[RuleOperator]] = {
    FieldType.NUMBER: frozenset({
        RuleOperator.EQUALS,
        RuleOperator.NOT_EQUALS,
        RuleOperator.GREATER_THAN_OR_EQUAL,
        RuleOperator.LESS_THAN_OR_EQUAL,
        RuleOperator.IN,
    }) | NULL_OPERATORS,
    FieldType.STRING: frozenset({
        RuleOperator.EQUALS,
        RuleOperator.NOT_EQUALS,
        RuleOperator.CONTAINS,
        RuleOperator.IN,
    }) | NULL_OPERATORS,
    FieldType.BOOLEAN: frozenset({
        RuleOperator.EQUALS,
        RuleOperator.NOT_EQUALS,
    }) | NULL_OPERATORS,
    FieldType.DATE: frozenset({
        RuleOperator.GREATER_THAN_OR_EQUAL,
        RuleOperator.LESS_THAN_OR_EQUAL,
    }) | NULL_OPERATORS,
    FieldType.LIST: frozenset({RuleOperator.CONTAINS}) | NULL_OPERATORS,
}


@dataclass(frozen=True)
class FieldDefinition:
    """A prospect attribute that segment rules may reference."""

    name: str
    display_name: str
    data_type: FieldType
    column: str
    description: str = ""


def _field(name: str, display_name: str, data_type: FieldType, description: str, column: Optional[str] = None):
    return name, FieldDefinition(name, display_name, data_type, column or name, description)


FIELD_DEFINITIONS: dict[str, FieldDefinition] = dict([
    # Scores
    _field("icp_score", "ICP Score", FieldType.NUMBER, "Ideal-customer-profile fit (0-100)"),
    _field("lead_score", "Lead Score", FieldType.NUMBER, "AI lead score (0-100)"),
    _field("opportunity_score", "Opportunity Score", FieldType.NUMBER, "Estimated opportunity (0-100)"),
    _field("sentiment_score", "Sentiment Score", FieldType.NUMBER, "Review sentiment (-1 to 1)"),
    # Reputation
    _field("rating", "Rating", FieldType.NUMBER, "Google rating (0-5)"),
    _field("review_count", "Reviews", FieldType.NUMBER, "Number of Google reviews"),
    _field("years_in_business", "Years in Business", FieldType.NUMBER, "Years since founding"),
    _field("employee_count", "Employees", FieldType.NUMBER, "Number of employees"),
    # Business
    _field("company_name", "Company Name", FieldType.STRING, "Business name"),
    _field("business_type", "Business Type", FieldType.STRING, "Category, e.g. Painter, HVAC"),
    _field("city", "City", FieldType.STRING, "City the business operates in"),
    _field("website", "Website", FieldType.STRING, "Website URL"),
    _field("email", "Email", FieldType.STRING, "Contact email"),
    _field("data_source", "Data Source", FieldType.STRING, "Where the prospect was collected"),
    _field("tags", "Tags", FieldType.LIST, "Free-form prospect tags"),
    # Flags
    _field("needs_website", "Needs Website", FieldType.BOOLEAN, "Has no usable website"),
    _field("has_cms", "Has CMS", FieldType.BOOLEAN, "Website runs on a CMS"),
    _field("is_hot_lead", "Hot Lead", FieldType.BOOLEAN, "Flagged as a hot lead"),
    _field("is_converted", "Converted", FieldType.BOOLEAN, "Became a customer"),
    # Dates
    _field("contacted_at", "Contacted At", FieldType.DATE, "When outreach happened"),
    _field("created_at", "Created At", FieldType.DATE, "When the prospect was added"),
])


# =============================================================================
# RULE TREE
# =============================================================================


@dataclass(frozen=True)
class FieldPredicate:
    field: str
    operator: RuleOperator
    value: Any = None


@dataclass(frozen=True)
class AndGroup:
    rules: tuple["RuleNode", ...] = ()


@dataclass(frozen=True)
class OrGroup:
    rules: tuple["RuleNode", ...] = ()


RuleNode = Union[FieldPredicate, AndGroup, OrGroup]
RuleSet = Union[AndGroup, OrGroup]

EMPTY_RULE_SET = AndGroup(())


def _freeze(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def normalize_operator(raw: Any, field: Optional[str] = None, path: str = "rules") -> RuleOperator:
    """Resolve an operator name, accepting legacy aliases and camelCase."""
    if isinstance(raw, RuleOperator):
        return raw
    if not isinstance(raw, str) or not raw:
        raise RuleValidationError("operator is required", field=field, path=path)
    key = raw.strip()
    try:
        return RuleOperator(key)
    except ValueError:
        pass
    key = key.lower().replace("-", "_")
    if key in OPERATOR_ALIASES:
        return OPERATOR_ALIASES[key]
    try:
        return RuleOperator(key)
    except ValueError:
        raise RuleValidationError(f"unknown operator '{raw}'", field=field, operator=str(raw), path=path)


def _parse_node(data: Any, path: str) -> RuleNode:
    if not isinstance(data, Mapping):
        raise RuleValidationError("rule must be an object", path=path)

    if "logic" in data or "rules" in data:
        logic = str(data.get("logic", "and")).lower()
        children = data.get("rules", [])
        if not isinstance(children, (list, tuple)):
            raise RuleValidationError("'rules' must be a list", path=path)
        nodes = tuple(_parse_node(child, f"{path}.rules[{i}]") for i, child in enumerate(children))
        if logic == "and":
            return AndGroup(nodes)
        if logic == "or":
            return OrGroup(nodes)
        raise RuleValidationError(f"unknown logic '{data.get('logic')}', expected 'and' or 'or'", path=path)

    field = data.get("field")
    if not isinstance(field, str) or not field:
        raise RuleValidationError("field is required", path=path)
    operator = normalize_operator(data.get("operator"), field=field, path=path)
    value = None if operator in NULL_OPERATORS else _freeze(data.get("value"))
    return FieldPredicate(field=field, operator=operator, value=value)


def parse_rule_set(data: Optional[Mapping[str, Any]]) -> RuleSet:
    """
    Build a rule tree from its stored JSON form.

    Only checks structure. Field names and operator/type compatibility are
    checked by ``validate_rule_set`` (save time) and again by the compiler
    (apply time), since the recognised field list can grow between the two.
    """
    if not data:
        return EMPTY_RULE_SET
    if is_legacy_rules(data):
        return rules_from_legacy(data)
    node = _parse_node(data, "rules")
    if isinstance(node, FieldPredicate):
        return AndGroup((node,))
    return node


def rule_set_to_dict(node: RuleNode) -> dict[str, Any]:
    """Serialize a rule tree back into its stored JSON form."""
    if isinstance(node, FieldPredicate):
        item: dict[str, Any] = {"field": node.field, "operator": node.operator.value}
        if node.operator not in NULL_OPERATORS:
            item["value"] = _thaw(node.value)
        return item
    logic = "and" if isinstance(node, AndGroup) else "or"
    return {"logic": logic, "rules": [rule_set_to_dict(child) for child in node.rules]}


# =============================================================================
# VALIDATION
# =============================================================================


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def coerce_date(value: Any) -> Optional[datetime]:
    """Parse an ISO date/datetime value. Returns None if it is not one."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def _check_scalar(value: Any, data_type: FieldType) -> Optional[str]:
    if data_type == FieldType.NUMBER and not _is_number(value):
        return "value must be a number"
    if data_type in (FieldType.STRING, FieldType.LIST) and not isinstance(value, str):
        return "value must be a string"
    if data_type == FieldType.BOOLEAN and not isinstance(value, bool):
        return "value must be true or false"
    if data_type == FieldType.DATE and coerce_date(value) is None:
        return "value must be an ISO 8601 date"
    return None


def check_leaf(leaf: FieldPredicate, path: str = "rules") -> FieldDefinition:
    """
    Validate a single leaf against the prospect schema.

    Returns the field definition so callers can dispatch on its type.
    """
    field_def = FIELD_DEFINITIONS.get(leaf.field)
    if field_def is None:
        raise RuleValidationError(
            "unknown field", field=leaf.field, operator=leaf.operator.value, path=path
        )

    if leaf.operator not in OPERATORS_BY_TYPE[field_def.data_type]:
        raise RuleValidationError(
            f"operator not supported for {field_def.data_type.value} fields",
            field=leaf.field,
            operator=leaf.operator.value,
            path=path,
        )

    if leaf.operator in NULL_OPERATORS:
        return field_def

    if leaf.operator == RuleOperator.IN:
        if not isinstance(leaf.value, (tuple, list)) or len(leaf.value) == 0:
            raise RuleValidationError(
                "value must be a non-empty list", field=leaf.field, operator=leaf.operator.value, path=path
            )
        for item in leaf.value:
            problem = _check_scalar(item, field_def.data_type)
            if problem:
                raise RuleValidationError(
                    problem.replace("value", "every list item", 1),
                    field=leaf.field,
                    operator=leaf.operator.value,
                    path=path,
                )
        return field_def

    problem = _check_scalar(leaf.value, field_def.data_type)
    if problem:
        raise RuleValidationError(problem, field=leaf.field, operator=leaf.operator.value, path=path)
    return field_def


def _validate_node(node: RuleNode, path: str, is_root: bool) -> None:
    if isinstance(node, FieldPredicate):
        check_leaf(node, path)
        return
    if not node.rules and not is_root:
        raise RuleValidationError("group must contain at least one rule", path=path)
    for i, child in enumerate(node.rules):
        _validate_node(child, f"{path}.rules[{i}]", is_root=False)


def validate_rule_set(rule_set: RuleSet) -> RuleSet:
    """Reject unknown fields and type-incompatible leaves. Empty root is allowed."""
    _validate_node(rule_set, "rules", is_root=True)
    return rule_set


def is_empty_rule_set(rule_set: RuleSet) -> bool:
    return not rule_set.rules


# =============================================================================
# LEGACY FLAT CRITERIA
# =============================================================================


_LEGACY_RANGES = {
    "minIcpScore": ("icp_score", RuleOperator.GREATER_THAN_OR_EQUAL),
    "maxIcpScore": ("icp_score", RuleOperator.LESS_THAN_OR_EQUAL),
    "minLeadScore": ("lead_score", RuleOperator.GREATER_THAN_OR_EQUAL),
    "maxLeadScore": ("lead_score", RuleOperator.LESS_THAN_OR_EQUAL),
    "minOpportunityScore": ("opportunity_score", RuleOperator.GREATER_THAN_OR_EQUAL),
    "maxOpportunityScore": ("opportunity_score", RuleOperator.LESS_THAN_OR_EQUAL),
    "minReviews": ("review_count", RuleOperator.GREATER_THAN_OR_EQUAL),
    "maxReviews": ("review_count", RuleOperator.LESS_THAN_OR_EQUAL),
    "minRating": ("rating", RuleOperator.GREATER_THAN_OR_EQUAL),
    "maxRating": ("rating", RuleOperator.LESS_THAN_OR_EQUAL),
}

_LEGACY_LISTS = {
    "businessTypes": "business_type",
    "cities": "city",
}

# Flag -> (field, operator when true, operator when false). None: no condition.
_LEGACY_PRESENCE = {
    "hasWebsite": ("website", RuleOperator.IS_NOT_NULL, RuleOperator.IS_NULL),
    "hasEmail": ("email", RuleOperator.IS_NOT_NULL, None),
    "isContacted": ("contacted_at", RuleOperator.IS_NOT_NULL, RuleOperator.IS_NULL),
}

_LEGACY_FLAGS = {
    "needsWebsite": "needs_website",
    "hasCMS": "has_cms",
    "isConverted": "is_converted",
    "isHotLead": "is_hot_lead",
}

LEGACY_KEYS = frozenset(_LEGACY_RANGES) | frozenset(_LEGACY_LISTS) | frozenset(_LEGACY_PRESENCE) | frozenset(_LEGACY_FLAGS)


def is_legacy_rules(data: Mapping[str, Any]) -> bool:
    return "logic" not in data and "rules" not in data and any(key in LEGACY_KEYS for key in data)


def rules_from_legacy(data: Mapping[str, Any]) -> AndGroup:
    """
    Convert flat criteria into an AND group.

    Multi-value lists (``businessTypes``, ``cities``) become OR groups of
    case-insensitive ``contains`` leaves.
    """
    unknown = sorted(key for key in data if key not in LEGACY_KEYS)
    if unknown:
        raise RuleValidationError(f"unknown criteria: {', '.join(unknown)}", field=unknown[0])

    leaves: list[RuleNode] = []
    for key, (field, operator) in _LEGACY_RANGES.items():
        if data.get(key) is not None:
            leaves.append(FieldPredicate(field, operator, data[key]))

    for key, field in _LEGACY_LISTS.items():
        values = data.get(key)
        if not values:
            continue
        if not isinstance(values, (list, tuple)):
            raise RuleValidationError(f"'{key}' must be a list", field=field, path=key)
        leaves.append(OrGroup(tuple(FieldPredicate(field, RuleOperator.CONTAINS, v) for v in values)))

    for key, (field, when_true, when_false) in _LEGACY_PRESENCE.items():
        flag = data.get(key)
        if flag is None:
            continue
        operator = when_true if flag else when_false
        if operator is not None:
            leaves.append(FieldPredicate(field, operator))

    for key, field in _LEGACY_FLAGS.items():
        flag = data.get(key)
        if flag is not None:
            leaves.append(FieldPredicate(field, RuleOperator.EQUALS, flag))

    return AndGroup(tuple(leaves))


# =============================================================================
# SUMMARIES
# =============================================================================


_SYMBOLS = {
    RuleOperator.EQUALS: "=",
    RuleOperator.NOT_EQUALS: "!=",
    RuleOperator.GREATER_THAN_OR_EQUAL: ">=",
    RuleOperator.LESS_THAN_OR_EQUAL: "<=",
    RuleOperator.CONTAINS: "contains",
    RuleOperator.IN: "is one of",
}


def _describe(node: RuleNode) -> str:
    if isinstance(node, FieldPredicate):
        field_def = FIELD_DEFINITIONS.get(node.field)
        label = field_def.display_name if field_def else node.field
        if node.operator == RuleOperator.IS_NULL:
            return f"{label} is empty"
        if node.operator == RuleOperator.IS_NOT_NULL:
            return f"{label} is set"
        value = _thaw(node.value)
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        elif isinstance(value, bool):
            value = "yes" if value else "no"
        return f"{label} {_SYMBOLS[node.operator]} {value}"

    joiner = " AND " if isinstance(node, AndGroup) else " OR "
    return "(" + joiner.join(_describe(child) for child in node.rules) + ")"


def summarize_rule_set(rule_set: RuleSet) -> list[str]:
    """
    Human-readable lines for a rule set, e.g. ``["ICP Score >= 70"]``.

    An AND root yields one line per criterion; an OR root yields one line.
    """
    if not rule_set.rules:
        return []
    if isinstance(rule_set, AndGroup):
        lines = []
        for child in rule_set.rules:
            text = _describe(child)
            if isinstance(child, AndGroup) and text.startswith("("):
                text = text[1:-1]
            lines.append(text)
        return lines
    return [" OR ".join(_describe(child) for child in rule_set.rules)]
