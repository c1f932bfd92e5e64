"""
ICP Segments API - rule-defined prospect audiences.

All endpoints work inside the caller's scope: their organization when they
belong to one, otherwise their personal records.
"""

import logging
from fastapi import APIRouter, status
from sqlalchemy import select

from app.api.deps import DbSession, CurrentScope
from app.models.icp_segment import IcpSegment, OfferTemplate
from app.schemas.icp_segment import (
    SegmentCreate,
    SegmentUpdate,
    SegmentResponse,
    SegmentListResponse,
    SegmentDeleteResponse,
    ApplyRequest,
    ApplyResponse,
    PreviewRequest,
    PreviewResponse,
    FieldOperatorInfo,
    FieldListResponse,
)
from app.services.segments import (
    FIELD_DEFINITIONS,
    Scope,
    SegmentRegistry,
    load_rules,
    parse_rule_set,
    rule_set_to_dict,
    summarize_rule_set,
)
from app.services.segments.rules import OPERATORS_BY_TYPE

logger = logging.getLogger(__name__)

router = APIRouter()


async def _offer_names(db, offer_ids: set[int]) -> dict[int, str]:
    if not offer_ids:
        return {}
    result = await db.execute(
        select(OfferTemplate.id, OfferTemplate.name).where(OfferTemplate.id.in_(offer_ids))
    )
    return {row.id: row.name for row in result.all()}


async def _to_response(
    registry: SegmentRegistry,
    scope: Scope,
    segment: IcpSegment,
    offer_names: dict[int, str],
) -> SegmentResponse:
    assigned, matching = await registry.segment_counts(scope, segment)
    rule_set = parse_rule_set(segment.rules)
    return SegmentResponse(
        id=segment.id,
        name=segment.name,
        description=segment.description,
        color=segment.color,
        rules=rule_set_to_dict(rule_set),
        rules_summary=summarize_rule_set(rule_set),
        offer_template_id=segment.offer_template_id,
        offer_template_name=offer_names.get(segment.offer_template_id),
        owner_id=segment.owner_id,
        organization_id=segment.organization_id,
        assigned_count=assigned,
        matching_count=matching,
        created_at=segment.created_at,
        updated_at=segment.updated_at,
    )


@router.get("/fields", response_model=FieldListResponse)
async def list_segment_fields(scope: CurrentScope):
    """Prospect fields that segment rules can reference, with their operators."""
    fields = [
        FieldOperatorInfo(
            name=field_def.name,
            display_name=field_def.display_name,
            data_type=field_def.data_type.value,
            description=field_def.description,
            operators=sorted(op.value for op in OPERATORS_BY_TYPE[field_def.data_type]),
        )
        for field_def in FIELD_DEFINITIONS.values()
    ]
    return FieldListResponse(fields=fields)


@router.post("/preview", response_model=PreviewResponse)
async def preview_segment(
    request: PreviewRequest,
    db: DbSession,
    scope: CurrentScope,
):
    """Count in-scope prospects that would match the given rules. Nothing is written."""
    rule_set = load_rules(request.rules)
    registry = SegmentRegistry(db)
    count = await registry.matching_count(scope, rule_set)
    return PreviewResponse(matching_count=count, rules_summary=summarize_rule_set(rule_set))


@router.get("", response_model=SegmentListResponse)
async def list_segments(
    db: DbSession,
    scope: CurrentScope,
):
    """List segments in scope, newest first, with assigned and matching counts."""
    registry = SegmentRegistry(db)
    segments = await registry.list_segments(scope)
    offer_names = await _offer_names(db, {s.offer_template_id for s in segments if s.offer_template_id})
    items = [await _to_response(registry, scope, s, offer_names) for s in segments]
    return SegmentListResponse(items=items, total=len(items))


@router.post("", response_model=SegmentResponse, status_code=status.HTTP_201_CREATED)
async def create_segment(
    segment_data: SegmentCreate,
    db: DbSession,
    scope: CurrentScope,
):
    """Create a segment. Prospects are not assigned until the segment is applied."""
    registry = SegmentRegistry(db)
    segment = await registry.create_segment(
        scope,
        name=segment_data.name,
        rules=segment_data.rules,
        description=segment_data.description,
        color=segment_data.color,
        offer_template_id=segment_data.offer_template_id,
    )
    offer_names = await _offer_names(db, {segment.offer_template_id} - {None})
    return await _to_response(registry, scope, segment, offer_names)


@router.get("/{segment_id}", response_model=SegmentResponse)
async def get_segment(
    segment_id: int,
    db: DbSession,
    scope: CurrentScope,
):
    """Get a single segment."""
    registry = SegmentRegistry(db)
    segment = await registry.get_segment(scope, segment_id)
    offer_names = await _offer_names(db, {segment.offer_template_id} - {None})
    return await _to_response(registry, scope, segment, offer_names)


@router.patch("/{segment_id}", response_model=SegmentResponse)
async def update_segment(
    segment_id: int,
    segment_data: SegmentUpdate,
    db: DbSession,
    scope: CurrentScope,
):
    """Update a segment. Changed rules take effect on the next apply."""
    registry = SegmentRegistry(db)
    changes = segment_data.model_dump(exclude_unset=True)
    segment = await registry.update_segment(scope, segment_id, changes)
    offer_names = await _offer_names(db, {segment.offer_template_id} - {None})
    return await _to_response(registry, scope, segment, offer_names)


@router.delete("/{segment_id}", response_model=SegmentDeleteResponse)
async def delete_segment(
    segment_id: int,
    db: DbSession,
    scope: CurrentScope,
):
    """Delete a segment. Its prospects are unassigned, never deleted."""
    registry = SegmentRegistry(db)
    unassigned = await registry.delete_segment(scope, segment_id)
    return SegmentDeleteResponse(id=segment_id, unassigned_count=unassigned)


@router.post("/{segment_id}/apply", response_model=ApplyResponse)
async def apply_segment(
    segment_id: int,
    db: DbSession,
    scope: CurrentScope,
    request: ApplyRequest | None = None,
):
    """
    Assign every in-scope prospect matching the segment's rules.

    With ``clear_others`` set, current members that no longer match are
    unassigned first, so membership ends up exactly equal to the matches.
    """
    clear_others = request.clear_others if request else False
    registry = SegmentRegistry(db)
    result = await registry.apply_segment(scope, segment_id, clear_others=clear_others)
    return ApplyResponse(
        segment_id=result.segment_id,
        matched_count=result.matched_count,
        reassigned_count=result.reassigned_count,
        unassigned_count=result.unassigned_count,
        clear_others=result.clear_others,
        execution_time_ms=round(result.execution_time_ms, 1),
    )
