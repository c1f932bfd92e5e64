"""
Organization Service

Joining an organization turns a user's personal scope into a shared one: the
user's personal prospects, segments and offers move into the organization so
their segments keep matching the same prospects. This happens both for the
creator of a new organization and for a user accepting an invite.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.icp_segment import IcpSegment, OfferTemplate
from app.models.organization import Organization, OrganizationInvite
from app.models.prospect import Prospect
from app.models.user import User

logger = logging.getLogger(__name__)

INVITE_ROLES = ("admin", "member")
MANAGER_ROLES = ("owner", "admin")

# owner first, then admin, then member
_ROLE_ORDER = case((User.org_role == "owner", 0), (User.org_role == "admin", 1), else_=2)


@dataclass
class OrganizationSetup:
    organization: Organization
    migrated_prospects: int = 0
    migrated_segments: int = 0
    migrated_offers: int = 0


async def _adopt_personal_rows(db: AsyncSession, model: type, user_id: int, organization_id: int) -> int:
    result = await db.execute(
        update(model)
        .where(model.owner_id == user_id, model.organization_id.is_(None))
        .values(organization_id=organization_id)
    )
    return result.rowcount or 0


async def _join(db: AsyncSession, user: User, organization: Organization, role: str) -> OrganizationSetup:
    """Move ``user`` and their personal rows into ``organization``. Does not commit."""
    setup = OrganizationSetup(organization=organization)
    setup.migrated_prospects = await _adopt_personal_rows(db, Prospect, user.id, organization.id)
    setup.migrated_segments = await _adopt_personal_rows(db, IcpSegment, user.id, organization.id)
    setup.migrated_offers = await _adopt_personal_rows(db, OfferTemplate, user.id, organization.id)

    user.organization_id = organization.id
    user.org_role = role
    return setup


async def create_organization(db: AsyncSession, user: User, name: str) -> OrganizationSetup:
    """
    Create an organization owned by ``user`` and move their personal data into it.

    The caller checks that ``user`` is not already in an organization.
    Everything happens in one transaction.
    """
    organization = Organization(name=name.strip(), owner_id=user.id)
    db.add(organization)
    await db.flush()

    setup = await _join(db, user, organization, "owner")

    await db.commit()
    await db.refresh(organization)

    logger.info(
        "Organization created",
        extra={
            "organization_id": organization.id,
            "user_id": user.id,
            "migrated_prospects": setup.migrated_prospects,
            "migrated_segments": setup.migrated_segments,
        },
    )
    return setup


# =============================================================================
# MEMBERS
# =============================================================================


async def list_members(db: AsyncSession, organization_id: int) -> list[User]:
    result = await db.execute(
        select(User)
        .where(User.organization_id == organization_id)
        .order_by(_ROLE_ORDER, User.created_at, User.id)
    )
    return list(result.scalars().all())


async def member_count(db: AsyncSession, organization_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(User).where(User.organization_id == organization_id)
    )
    return result.scalar() or 0


# =============================================================================
# INVITES
# =============================================================================


def invite_url(invite: OrganizationInvite) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/invite/{invite.token}"


def is_expired(invite: OrganizationInvite, now: Optional[datetime] = None) -> bool:
    """SQLite hands back naive datetimes; those are taken as UTC."""
    expires_at = invite.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= (now or datetime.now(timezone.utc))


async def get_invite_by_token(db: AsyncSession, token: str) -> Optional[OrganizationInvite]:
    result = await db.execute(select(OrganizationInvite).where(OrganizationInvite.token == token))
    return result.scalar_one_or_none()


async def is_member(db: AsyncSession, organization_id: int, email: str) -> bool:
    result = await db.execute(
        select(User.id).where(
            func.lower(User.email) == email.lower(),
            User.organization_id == organization_id,
        )
    )
    return result.first() is not None


async def has_pending_invite(db: AsyncSession, organization_id: int, email: str) -> bool:
    result = await db.execute(
        select(OrganizationInvite).where(
            OrganizationInvite.organization_id == organization_id,
            OrganizationInvite.email == email.lower(),
        )
    )
    return any(not is_expired(invite) for invite in result.scalars().all())


async def create_invite(
    db: AsyncSession, organization_id: int, inviter: User, email: str, role: str = "member"
) -> OrganizationInvite:
    """
    Invite ``email`` to the organization.

    The caller checks the inviter's role and that the email is neither a
    member nor already invited.
    """
    invite = OrganizationInvite(
        organization_id=organization_id,
        email=email.lower(),
        role=role,
        invited_by_id=inviter.id,
        expires_at=datetime.now(timezone.utc) + timedelta(days=settings.INVITE_EXPIRE_DAYS),
    )
    db.add(invite)
    await db.commit()
    await db.refresh(invite)

    logger.info(
        "Organization invite created",
        extra={"organization_id": organization_id, "invite_id": invite.id, "user_id": inviter.id},
    )
    return invite


async def cancel_invite(db: AsyncSession, organization_id: int, invite_id: int) -> bool:
    """Delete an invite of the organization. Returns False if there was none."""
    result = await db.execute(
        select(OrganizationInvite).where(
            OrganizationInvite.id == invite_id,
            OrganizationInvite.organization_id == organization_id,
        )
    )
    invite = result.scalar_one_or_none()
    if invite is None:
        return False
    await db.delete(invite)
    await db.commit()
    return True


async def accept_invite(
    db: AsyncSession, user: User, invite: OrganizationInvite, organization: Organization
) -> OrganizationSetup:
    """
    Add ``user`` to the invite's organization with the invited role.

    The user's personal prospects, segments and offers move into the
    organization and the invite is consumed, all in one transaction. The
    caller checks expiry, the invited email and that ``user`` is not already
    in an organization.
    """
    setup = await _join(db, user, organization, invite.role)
    await db.delete(invite)

    await db.commit()
    await db.refresh(organization)

    logger.info(
        "Organization invite accepted",
        extra={
            "organization_id": organization.id,
            "user_id": user.id,
            "migrated_prospects": setup.migrated_prospects,
            "migrated_segments": setup.migrated_segments,
        },
    )
    return setup
