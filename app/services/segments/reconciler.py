"""
Segment Reconciler

Makes stored ``segment_id`` assignments agree with a segment's rules.

Two modes:

- Additive (default): every in-scope prospect matching the rules is assigned
  to the segment. Nothing is ever unassigned, so manual or stale assignments
  survive.
- Clear-others: first unassign current members that no longer match
  (``A - M``), then assign every match (``M``). Afterwards membership is
  exactly ``M``.

Both phases are set-based bulk updates. Phase 2 always assigns the freshly
computed ``M`` rather than a delta, so a failure between the phases leaves a
recoverable state that re-running apply repairs. Reported counts come from
counting queries issued after the updates, not from affected-row counts.
"""

import logging
import time
from dataclasses import dataclass
from typing import AbstractSet, Any, Hashable, Iterable

from app.services.segments.compiler import compile_rule_set
from app.services.segments.errors import StoreFailure
from app.services.segments.predicates import (
    CompareOp,
    Comparison,
    Predicate,
    all_of,
    any_of,
    id_in,
)
from app.services.segments.rules import RuleSet
from app.services.segments.scope import Scope
from app.services.segments.store import RecordStore

logger = logging.getLogger(__name__)

SEGMENT_FIELD = "segment_id"

# Id sets larger than this are counted in slices to keep IN lists bounded
COUNT_CHUNK_SIZE = 500


@dataclass(frozen=True)
class MembershipDiff:
    """Changes needed to turn the current member set into the target set."""

    to_add: frozenset
    to_remove: frozenset

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove


def reconcile(current: Iterable[Hashable], target: Iterable[Hashable]) -> MembershipDiff:
    """
    Diff two id sets.

    Applying the diff to ``current`` (remove, then add) yields ``target``.
    """
    current_set = frozenset(current)
    target_set = frozenset(target)
    return MembershipDiff(to_add=target_set - current_set, to_remove=current_set - target_set)


@dataclass
class ApplyResult:
    """Caller-visible summary of one apply."""

    segment_id: Any
    matched_count: int
    reassigned_count: int
    unassigned_count: int
    clear_others: bool = False
    execution_time_ms: float = 0


class SegmentReconciler:
    """Applies a segment's rules to the record store within one scope."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def apply(
        self,
        segment_id: Any,
        rule_set: RuleSet,
        scope: Scope,
        clear_others: bool = False,
    ) -> ApplyResult:
        """
        Reconcile membership of ``segment_id`` with ``rule_set``.

        Raises:
            RuleValidationError: before any record is touched
            StoreFailure: with ``phase`` set to read, unassign, assign or count
        """
        start = time.monotonic()

        # Compile first: a bad rule set must never partially apply
        predicate = compile_rule_set(rule_set, scope)
        scope_predicate = scope.predicate()
        assigned_here = all_of(scope_predicate, Comparison(SEGMENT_FIELD, CompareOp.EQ, segment_id))

        try:
            current = await self._ids(assigned_here)
            matched = await self._ids(predicate)
        except StoreFailure as e:
            raise e.in_phase("read") from e

        diff = reconcile(current, matched)

        # Phase 1: unassign stale members
        unassigned: frozenset = frozenset()
        if clear_others and diff.to_remove:
            try:
                await self.store.bulk_set_field(diff.to_remove, SEGMENT_FIELD, None, within=scope_predicate)
            except StoreFailure as e:
                raise e.in_phase("unassign") from e
            unassigned = diff.to_remove

        # Phase 2: assign every current match
        if matched:
            try:
                await self.store.bulk_set_field(matched, SEGMENT_FIELD, segment_id, within=scope_predicate)
            except StoreFailure as e:
                logger.warning(
                    "Segment apply failed while assigning; re-run apply to repair membership",
                    extra={"segment_id": segment_id, "unassigned": len(unassigned)},
                )
                raise e.in_phase("assign") from e

        try:
            matched_count = await self.store.count(predicate)
            reassigned_count = await self._count_ids(assigned_here, diff.to_add)
            left_segment = all_of(
                scope_predicate,
                any_of(
                    Comparison(SEGMENT_FIELD, CompareOp.IS_NULL),
                    Comparison(SEGMENT_FIELD, CompareOp.NE, segment_id),
                ),
            )
            unassigned_count = await self._count_ids(left_segment, unassigned)
        except StoreFailure as e:
            raise e.in_phase("count") from e

        execution_time = (time.monotonic() - start) * 1000

        logger.info(
            f"Applied segment {segment_id}: {matched_count} matched, "
            f"{reassigned_count} reassigned, {unassigned_count} unassigned",
            extra={
                "segment_id": segment_id,
                "clear_others": clear_others,
                "execution_time_ms": round(execution_time, 1),
            },
        )

        return ApplyResult(
            segment_id=segment_id,
            matched_count=matched_count,
            reassigned_count=reassigned_count,
            unassigned_count=unassigned_count,
            clear_others=clear_others,
            execution_time_ms=execution_time,
        )

    async def _ids(self, predicate: Predicate) -> set:
        rows = await self.store.find(predicate, fields=("id",))
        return {row["id"] for row in rows}

    async def _count_ids(self, predicate: Predicate, ids: AbstractSet) -> int:
        """Count how many of ``ids`` satisfy ``predicate`` right now."""
        if not ids:
            return 0
        ordered = sorted(ids)
        total = 0
        for start in range(0, len(ordered), COUNT_CHUNK_SIZE):
            chunk = ordered[start:start + COUNT_CHUNK_SIZE]
            total += await self.store.count(all_of(predicate, id_in(chunk)))
        return total
