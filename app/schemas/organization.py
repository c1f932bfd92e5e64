from pydantic import BaseModel, ConfigDict, EmailStr, Field
from datetime import datetime
from typing import Literal, Optional


class OrganizationCreate(BaseModel):
    """Schema for creating an organization."""

    name: str = Field(..., min_length=1, max_length=100)


class OrganizationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    owner_id: int
    created_at: Optional[datetime] = None


class OrganizationCreateResponse(BaseModel):
    """New organization plus what was moved into it from the creator's personal scope."""

    organization: OrganizationResponse
    migrated_prospects: int
    migrated_segments: int
    migrated_offers: int


class MemberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    org_role: Optional[str] = None
    created_at: Optional[datetime] = None


class MemberListResponse(BaseModel):
    members: list[MemberResponse]


# ============ Invites ============


class InviteCreate(BaseModel):
    """Owners and admins invite by email; nobody is invited as owner."""

    email: EmailStr
    role: Literal["admin", "member"] = "member"


class InviteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    email: str
    role: str
    expires_at: datetime
    invite_url: str


class InvitePreview(BaseModel):
    """What an invitee sees before accepting."""

    organization_name: str
    member_count: int
    role: str
    expires_at: datetime


class AcceptInviteRequest(BaseModel):
    token: str = Field(..., min_length=1)


class InviteAcceptResponse(BaseModel):
    organization: OrganizationResponse
    role: str
    migrated_prospects: int
    migrated_segments: int
    migrated_offers: int
    message: str
