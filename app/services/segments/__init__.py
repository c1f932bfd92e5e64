"""
ICP segmentation.

Rule model, predicate compiler, scope resolution, record store, membership
reconciler and the segment registry that ties them together.
"""

from app.services.segments.compiler import compile_rule_set
from app.services.segments.errors import (
    RuleValidationError,
    SegmentError,
    SegmentNotFound,
    StoreFailure,
    Unauthenticated,
)
from app.services.segments.reconciler import ApplyResult, SegmentReconciler, reconcile
from app.services.segments.registry import SegmentRegistry, load_rules
from app.services.segments.rules import (
    FIELD_DEFINITIONS,
    parse_rule_set,
    rule_set_to_dict,
    summarize_rule_set,
    validate_rule_set,
)
from app.services.segments.scope import (
    ActorIdentity,
    OrganizationScope,
    PersonalScope,
    Scope,
    resolve_scope,
)
from app.services.segments.store import ProspectRecordStore

__all__ = [
    "ActorIdentity",
    "ApplyResult",
    "FIELD_DEFINITIONS",
    "OrganizationScope",
    "PersonalScope",
    "ProspectRecordStore",
    "RuleValidationError",
    "Scope",
    "SegmentError",
    "SegmentNotFound",
    "SegmentReconciler",
    "SegmentRegistry",
    "StoreFailure",
    "Unauthenticated",
    "compile_rule_set",
    "load_rules",
    "parse_rule_set",
    "reconcile",
    "resolve_scope",
    "rule_set_to_dict",
    "summarize_rule_set",
    "validate_rule_set",
]
