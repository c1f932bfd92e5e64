"""
Predicate Compiler

Translates a rule tree into a store-neutral ``Predicate`` intersected with
the caller's scope. Pure and deterministic: no I/O, and the same rule set and
scope always give an equal predicate.

- Groups compile to conjunctions/disjunctions in source order, unsimplified.
- ``contains`` means element membership on list fields and case-insensitive
  substring on string fields.
- Any bad leaf raises ``RuleValidationError``; leaves are never dropped.
- An empty rule set matches nothing, never everything.
"""

import logging

from app.services.segments.errors import RuleValidationError, Unauthenticated
from app.services.segments.predicates import (
    MATCH_NOTHING,
    CompareOp,
    Comparison,
    Conjunction,
    Disjunction,
    Predicate,
    all_of,
    fingerprint,
)
from app.services.segments.rules import (
    AndGroup,
    FieldDefinition,
    FieldPredicate,
    FieldType,
    OrGroup,
    RuleNode,
    RuleOperator,
    RuleSet,
    check_leaf,
    coerce_date,
    is_empty_rule_set,
)
from app.services.segments.scope import Scope

logger = logging.getLogger(__name__)


_DIRECT_OPS = {
    RuleOperator.EQUALS: CompareOp.EQ,
    RuleOperator.NOT_EQUALS: CompareOp.NE,
    RuleOperator.GREATER_THAN_OR_EQUAL: CompareOp.GE,
    RuleOperator.LESS_THAN_OR_EQUAL: CompareOp.LE,
    RuleOperator.IN: CompareOp.IN,
    RuleOperator.IS_NULL: CompareOp.IS_NULL,
    RuleOperator.IS_NOT_NULL: CompareOp.IS_NOT_NULL,
}


def _compile_leaf(leaf: FieldPredicate, field_def: FieldDefinition) -> Comparison:
    column = field_def.column

    if leaf.operator in (RuleOperator.IS_NULL, RuleOperator.IS_NOT_NULL):
        return Comparison(column, _DIRECT_OPS[leaf.operator])

    if leaf.operator == RuleOperator.CONTAINS:
        op = CompareOp.HAS_ITEM if field_def.data_type == FieldType.LIST else CompareOp.TEXT_CONTAINS
        return Comparison(column, op, leaf.value)

    value = leaf.value
    if field_def.data_type == FieldType.DATE:
        value = coerce_date(value)
    elif leaf.operator == RuleOperator.IN:
        value = tuple(value)
    return Comparison(column, _DIRECT_OPS[leaf.operator], value)


def _compile_node(node: RuleNode, path: str) -> Predicate:
    if isinstance(node, FieldPredicate):
        field_def = check_leaf(node, path)
        return _compile_leaf(node, field_def)

    if isinstance(node, (AndGroup, OrGroup)):
        if not node.rules:
            raise RuleValidationError("group must contain at least one rule", path=path)
        items = tuple(_compile_node(child, f"{path}.rules[{i}]") for i, child in enumerate(node.rules))
        if isinstance(node, AndGroup):
            return Conjunction(items)
        return Disjunction(items)

    raise RuleValidationError(f"unsupported rule node {type(node).__name__}", path=path)


def compile_rules(rule_set: RuleSet) -> Predicate:
    """Compile the rule part only. Callers outside this module want ``compile_rule_set``."""
    if is_empty_rule_set(rule_set):
        return MATCH_NOTHING
    return _compile_node(rule_set, "rules")


def compile_rule_set(rule_set: RuleSet, scope: Scope) -> Predicate:
    """
    Compile a rule set for the given scope.

    Returns:
        ``scope AND rules``; the scope clause is always present

    Raises:
        RuleValidationError: unknown field, operator/type mismatch or bad value
        Unauthenticated: no scope supplied
    """
    if scope is None:
        raise Unauthenticated("A scope is required to compile segment rules")

    predicate = all_of(scope.predicate(), compile_rules(rule_set))
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            f"Compiled rule set {fingerprint(predicate)[:12]}",
            extra={"scope": type(scope).__name__, "actor_id": scope.actor_id},
        )
    return predicate
