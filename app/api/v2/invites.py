"""
Invite redemption.

Previewing needs no organization membership. Accepting moves the caller and
their personal data into the inviting organization; from the next request on
they work in organization scope.
"""

from fastapi import APIRouter
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import DbSession, CurrentUser
from app.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from app.models.organization import Organization, OrganizationInvite
from app.schemas.organization import (
    AcceptInviteRequest,
    InviteAcceptResponse,
    InvitePreview,
    OrganizationResponse,
)
from app.services.organizations import accept_invite, get_invite_by_token, is_expired, member_count

router = APIRouter()


async def _valid_invite(db: AsyncSession, token: str) -> tuple[OrganizationInvite, Organization]:
    invite = await get_invite_by_token(db, token)
    if invite is None:
        raise NotFoundError("Invalid invite")
    organization = await db.get(Organization, invite.organization_id)
    if organization is None:
        raise NotFoundError("Invalid invite")
    if is_expired(invite):
        raise BadRequestError("Invite has expired")
    return invite, organization


@router.get("/{token}", response_model=InvitePreview)
async def preview_invite(
    token: str,
    db: DbSession,
    current_user: CurrentUser,
):
    """Show the organization and role an invite is for."""
    invite, organization = await _valid_invite(db, token)
    return InvitePreview(
        organization_name=organization.name,
        member_count=await member_count(db, organization.id),
        role=invite.role,
        expires_at=invite.expires_at,
    )


@router.post("/accept", response_model=InviteAcceptResponse)
async def accept(
    request: AcceptInviteRequest,
    db: DbSession,
    current_user: CurrentUser,
):
    """Join the inviting organization, bringing the caller's personal data along."""
    invite, organization = await _valid_invite(db, request.token)

    if invite.email.lower() != current_user.email.lower():
        raise ForbiddenError("This invite was sent to a different email address")
    if current_user.organization_id is not None:
        raise ConflictError("You are already in an organization. Leave it first to join another.")

    role = invite.role
    setup = await accept_invite(db, current_user, invite, organization)
    return InviteAcceptResponse(
        organization=OrganizationResponse.model_validate(setup.organization),
        role=role,
        migrated_prospects=setup.migrated_prospects,
        migrated_segments=setup.migrated_segments,
        migrated_offers=setup.migrated_offers,
        message=f"You have joined {organization.name}",
    )
