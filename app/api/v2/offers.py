"""
Offer Templates API - service offers linked to ICP segments.
"""

import logging
from fastapi import APIRouter, status
from sqlalchemy import func, select, update

from app.api.deps import DbSession, CurrentScope
from app.models.icp_segment import IcpSegment, OfferTemplate
from app.schemas.offer import OfferTemplateCreate, OfferTemplateResponse
from app.services.segments import SegmentNotFound
from app.services.segments.scope import ownership_values
from app.services.segments.store import scope_clause

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[OfferTemplateResponse])
async def list_offers(
    db: DbSession,
    scope: CurrentScope,
):
    """List offer templates in scope with how many segments link to each."""
    segment_count = (
        select(func.count(IcpSegment.id))
        .where(IcpSegment.offer_template_id == OfferTemplate.id)
        .correlate(OfferTemplate)
        .scalar_subquery()
    )
    result = await db.execute(
        select(OfferTemplate, segment_count.label("segment_count"))
        .where(scope_clause(OfferTemplate, scope))
        .order_by(OfferTemplate.created_at.desc(), OfferTemplate.id.desc())
    )
    offers = []
    for offer, count in result.all():
        response = OfferTemplateResponse.model_validate(offer)
        response.segment_count = count or 0
        offers.append(response)
    return offers


@router.post("", response_model=OfferTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_offer(
    offer_data: OfferTemplateCreate,
    db: DbSession,
    scope: CurrentScope,
):
    """Create an offer template in the caller's scope."""
    offer = OfferTemplate(
        name=offer_data.name.strip(),
        description=offer_data.description,
        price=offer_data.price,
        **ownership_values(scope),
    )
    db.add(offer)
    await db.commit()
    await db.refresh(offer)
    return OfferTemplateResponse.model_validate(offer)


@router.delete("/{offer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_offer(
    offer_id: int,
    db: DbSession,
    scope: CurrentScope,
):
    """Delete an offer template. Segments linking to it keep existing without an offer."""
    result = await db.execute(
        select(OfferTemplate).where(OfferTemplate.id == offer_id, scope_clause(OfferTemplate, scope))
    )
    offer = result.scalar_one_or_none()
    if offer is None:
        raise SegmentNotFound("Offer Template", offer_id)

    await db.execute(
        update(IcpSegment)
        .where(IcpSegment.offer_template_id == offer.id)
        .values(offer_template_id=None)
    )
    await db.delete(offer)
    await db.commit()
    logger.info("Offer template deleted", extra={"offer_id": offer_id, "actor_id": scope.actor_id})
