"""
Segment Registry

CRUD for ICP segments plus the ``apply_segment`` entry point. Every lookup is
filtered by the caller's scope; a segment of another tenant is reported
exactly like a missing one.
"""

import logging
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.icp_segment import IcpSegment, OfferTemplate
from app.services.segments.compiler import compile_rule_set
from app.services.segments.errors import RuleValidationError, SegmentNotFound, StoreFailure
from app.services.segments.predicates import CompareOp, Comparison, all_of
from app.services.segments.reconciler import ApplyResult, SegmentReconciler
from app.services.segments.rules import (
    RuleSet,
    parse_rule_set,
    rule_set_to_dict,
    validate_rule_set,
)
from app.services.segments.scope import Scope, ownership_values
from app.services.segments.store import ProspectRecordStore, RecordStore, scope_clause

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "description", "color", "rules", "offer_template_id")


def load_rules(data: Optional[dict[str, Any]]) -> RuleSet:
    """Parse and validate rules as submitted by a client."""
    return validate_rule_set(parse_rule_set(data))


class SegmentRegistry:
    """Scoped segment storage feeding the reconciler."""

    def __init__(self, db: AsyncSession, store: Optional[RecordStore] = None):
        self.db = db
        self.store = store or ProspectRecordStore(db)
        self.reconciler = SegmentReconciler(self.store)

    # =========================================================================
    # READ
    # =========================================================================

    async def list_segments(self, scope: Scope) -> list[IcpSegment]:
        result = await self.db.execute(
            select(IcpSegment)
            .where(scope_clause(IcpSegment, scope))
            .order_by(IcpSegment.created_at.desc(), IcpSegment.id.desc())
        )
        return list(result.scalars().all())

    async def get_segment(self, scope: Scope, segment_id: int) -> IcpSegment:
        result = await self.db.execute(
            select(IcpSegment).where(IcpSegment.id == segment_id, scope_clause(IcpSegment, scope))
        )
        segment = result.scalar_one_or_none()
        if segment is None:
            raise SegmentNotFound("ICP Segment", segment_id)
        return segment

    async def assigned_count(self, scope: Scope, segment_id: int) -> int:
        return await self.store.count(
            all_of(scope.predicate(), Comparison("segment_id", CompareOp.EQ, segment_id))
        )

    async def matching_count(self, scope: Scope, rule_set: RuleSet) -> int:
        return await self.store.count(compile_rule_set(rule_set, scope))

    async def segment_counts(self, scope: Scope, segment: IcpSegment) -> tuple[int, Optional[int]]:
        """
        ``(assigned, matching)`` for a stored segment.

        ``matching`` is None when the stored rules no longer validate, e.g. a
        field was retired after the segment was saved.
        """
        assigned = await self.assigned_count(scope, segment.id)
        try:
            rule_set = parse_rule_set(segment.rules)
            matching = await self.matching_count(scope, rule_set)
        except RuleValidationError as e:
            logger.warning(f"Segment {segment.id} has invalid stored rules: {e}")
            matching = None
        return assigned, matching

    # =========================================================================
    # WRITE
    # =========================================================================

    async def _check_offer(self, scope: Scope, offer_template_id: Optional[int]) -> None:
        if offer_template_id is None:
            return
        result = await self.db.execute(
            select(OfferTemplate.id).where(
                OfferTemplate.id == offer_template_id,
                scope_clause(OfferTemplate, scope),
            )
        )
        if result.scalar_one_or_none() is None:
            raise SegmentNotFound("Offer Template", offer_template_id)

    async def create_segment(
        self,
        scope: Scope,
        name: str,
        rules: Optional[dict[str, Any]],
        description: Optional[str] = None,
        color: Optional[str] = None,
        offer_template_id: Optional[int] = None,
    ) -> IcpSegment:
        """Create a segment. Unknown fields are rejected here, at save time."""
        rule_set = load_rules(rules)
        await self._check_offer(scope, offer_template_id)

        segment = IcpSegment(
            name=name.strip(),
            description=(description or "").strip() or None,
            color=color or settings.DEFAULT_SEGMENT_COLOR,
            rules=rule_set_to_dict(rule_set),
            offer_template_id=offer_template_id,
            **ownership_values(scope),
        )
        self.db.add(segment)
        await self.db.commit()
        await self.db.refresh(segment)

        logger.info("ICP segment created", extra={"segment_id": segment.id, "actor_id": scope.actor_id})
        return segment

    async def update_segment(self, scope: Scope, segment_id: int, changes: dict[str, Any]) -> IcpSegment:
        """Apply a partial update. Rules are replaced in place, not re-applied."""
        segment = await self.get_segment(scope, segment_id)

        for field, value in changes.items():
            if field not in UPDATABLE_FIELDS:
                raise ValueError(f"Field '{field}' cannot be updated")
            if field == "rules":
                value = rule_set_to_dict(load_rules(value))
            elif field == "offer_template_id":
                await self._check_offer(scope, value)
            elif field == "name":
                if value is None or not value.strip():
                    raise ValueError("Segment name cannot be empty")
                value = value.strip()
            elif field == "color":
                value = value or settings.DEFAULT_SEGMENT_COLOR
            elif field == "description":
                value = (value or "").strip() or None
            setattr(segment, field, value)

        await self.db.commit()
        await self.db.refresh(segment)
        return segment

    async def delete_segment(self, scope: Scope, segment_id: int) -> int:
        """
        Delete a segment without deleting prospects.

        Prospects pointing at the segment are unassigned first. A linked offer
        is kept or deleted according to ``SEGMENT_DELETE_OFFER_POLICY``.

        Returns:
            Number of prospects that were unassigned
        """
        segment = await self.get_segment(scope, segment_id)
        scope_predicate = scope.predicate()

        try:
            rows = await self.store.find(
                all_of(scope_predicate, Comparison("segment_id", CompareOp.EQ, segment.id))
            )
            unassigned = await self.store.bulk_set_field(
                [row["id"] for row in rows], "segment_id", None, within=scope_predicate
            )
        except StoreFailure as e:
            raise e.in_phase("cleanup") from e

        offer_id = segment.offer_template_id
        await self.db.delete(segment)
        await self.db.flush()

        if offer_id is not None and settings.SEGMENT_DELETE_OFFER_POLICY == "delete":
            await self._delete_orphaned_offer(offer_id)

        await self.db.commit()

        logger.info(
            "ICP segment deleted",
            extra={"segment_id": segment_id, "unassigned": unassigned, "actor_id": scope.actor_id},
        )
        return unassigned

    async def _delete_orphaned_offer(self, offer_id: int) -> None:
        still_linked = await self.db.execute(
            select(func.count()).select_from(IcpSegment).where(IcpSegment.offer_template_id == offer_id)
        )
        if still_linked.scalar():
            return
        offer = await self.db.get(OfferTemplate, offer_id)
        if offer is not None:
            await self.db.delete(offer)
            logger.info("Deleted offer template linked to removed segment", extra={"offer_id": offer_id})

    # =========================================================================
    # APPLY
    # =========================================================================

    async def apply_segment(self, scope: Scope, segment_id: int, clear_others: bool = False) -> ApplyResult:
        """
        Reconcile a stored segment's membership.

        Rules are compiled now, with the current field catalogue.
        """
        segment = await self.get_segment(scope, segment_id)
        rule_set = parse_rule_set(segment.rules)
        return await self.reconciler.apply(segment.id, rule_set, scope, clear_others=clear_others)
