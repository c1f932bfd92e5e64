"""
Store-neutral filter predicates.

The compiler emits these; a record store translates them into its native
query form. Nodes are immutable and ordered, so equal inputs always produce
equal trees and equal fingerprints.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, Union


class CompareOp(str, Enum):
    EQ = "eq"
    NE = "ne"
    GE = "ge"
    LE = "le"
    IN = "in"
    TEXT_CONTAINS = "text_contains"  # case-insensitive substring
    HAS_ITEM = "has_item"  # list column holds the element
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"


@dataclass(frozen=True)
class Comparison:
    column: str
    op: CompareOp
    value: Any = None


@dataclass(frozen=True)
class Conjunction:
    items: tuple["Predicate", ...]


@dataclass(frozen=True)
class Disjunction:
    items: tuple["Predicate", ...]


@dataclass(frozen=True)
class MatchNothing:
    """Matches no record. An empty rule set compiles to this."""


Predicate = Union[Comparison, Conjunction, Disjunction, MatchNothing]

MATCH_NOTHING = MatchNothing()


def all_of(*items: Predicate) -> Conjunction:
    return Conjunction(tuple(items))


def any_of(*items: Predicate) -> Disjunction:
    return Disjunction(tuple(items))


def id_in(ids: Iterable[Any]) -> Comparison:
    """Membership on the primary key; ids are sorted so the predicate is stable."""
    return Comparison("id", CompareOp.IN, tuple(sorted(ids)))


def _plain(value: Any) -> Any:
    if isinstance(value, tuple):
        return [_plain(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def to_dict(predicate: Predicate) -> dict[str, Any]:
    """Plain-data form of a predicate, for logging and fingerprints."""
    if isinstance(predicate, Comparison):
        return {"column": predicate.column, "op": predicate.op.value, "value": _plain(predicate.value)}
    if isinstance(predicate, Conjunction):
        return {"and": [to_dict(item) for item in predicate.items]}
    if isinstance(predicate, Disjunction):
        return {"or": [to_dict(item) for item in predicate.items]}
    if isinstance(predicate, MatchNothing):
        return {"nothing": True}
    raise TypeError(f"Not a predicate: {predicate!r}")


def fingerprint(predicate: Predicate) -> str:
    """Stable hash of a predicate; equal predicates share a fingerprint."""
    payload = json.dumps(to_dict(predicate), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
