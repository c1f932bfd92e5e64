from fastapi import APIRouter, status

from app.api.deps import DbSession, CurrentUser
from app.exceptions import ConflictError, ForbiddenError, NotFoundError
from app.models.user import User
from app.schemas.organization import (
    OrganizationCreate,
    OrganizationResponse,
    OrganizationCreateResponse,
    MemberResponse,
    MemberListResponse,
    InviteCreate,
    InviteResponse,
)
from app.services.organizations import (
    MANAGER_ROLES,
    cancel_invite,
    create_invite,
    create_organization,
    has_pending_invite,
    invite_url,
    is_member,
    list_members,
)

router = APIRouter()


def _require_member(user: User, org_id: int) -> None:
    if user.organization_id != org_id:
        raise ForbiddenError("Not in this organization")


def _require_manager(user: User, org_id: int, action: str) -> None:
    _require_member(user, org_id)
    if user.org_role not in MANAGER_ROLES:
        raise ForbiddenError(f"Only owners and admins can {action}")


@router.post("", response_model=OrganizationCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_org(
    org_data: OrganizationCreate,
    db: DbSession,
    current_user: CurrentUser,
):
    """Create an organization and move the caller's personal data into it."""
    if current_user.organization_id is not None:
        raise ConflictError("User already belongs to an organization")

    setup = await create_organization(db, current_user, org_data.name)
    return OrganizationCreateResponse(
        organization=OrganizationResponse.model_validate(setup.organization),
        migrated_prospects=setup.migrated_prospects,
        migrated_segments=setup.migrated_segments,
        migrated_offers=setup.migrated_offers,
    )


@router.get("/{org_id}/members", response_model=MemberListResponse)
async def get_members(
    org_id: int,
    db: DbSession,
    current_user: CurrentUser,
):
    """List members, owner first, then admins, then members."""
    _require_member(current_user, org_id)

    members = await list_members(db, org_id)
    return MemberListResponse(members=[MemberResponse.model_validate(m) for m in members])


@router.post("/{org_id}/invites", response_model=InviteResponse, status_code=status.HTTP_201_CREATED)
async def invite_member(
    org_id: int,
    invite_data: InviteCreate,
    db: DbSession,
    current_user: CurrentUser,
):
    """Invite someone by email. The response carries a link for manual sharing."""
    _require_manager(current_user, org_id, "invite members")

    if await is_member(db, org_id, invite_data.email):
        raise ConflictError("This person is already a member")
    if await has_pending_invite(db, org_id, invite_data.email):
        raise ConflictError("An invite is already pending for this email")

    invite = await create_invite(db, org_id, current_user, invite_data.email, invite_data.role)
    return InviteResponse(
        id=invite.id,
        organization_id=invite.organization_id,
        email=invite.email,
        role=invite.role,
        expires_at=invite.expires_at,
        invite_url=invite_url(invite),
    )


@router.delete("/{org_id}/invites/{invite_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invite(
    org_id: int,
    invite_id: int,
    db: DbSession,
    current_user: CurrentUser,
):
    """Cancel a pending invite."""
    _require_manager(current_user, org_id, "cancel invites")

    if not await cancel_invite(db, org_id, invite_id):
        raise NotFoundError(f"Invite with ID {invite_id} was not found")
