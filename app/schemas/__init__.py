from app.schemas.auth import (
    UserResponse,
    Token,
    TokenData,
    LoginRequest,
    AuthMeResponse,
)
from app.schemas.icp_segment import (
    SegmentCreate,
    SegmentUpdate,
    SegmentResponse,
    SegmentListResponse,
    ApplyRequest,
    ApplyResponse,
    PreviewRequest,
    PreviewResponse,
)
from app.schemas.offer import OfferTemplateCreate, OfferTemplateResponse
from app.schemas.organization import (
    OrganizationCreate,
    OrganizationResponse,
    MemberResponse,
    InviteCreate,
    InviteResponse,
    InvitePreview,
    AcceptInviteRequest,
    InviteAcceptResponse,
)

__all__ = [
    "UserResponse",
    "Token",
    "TokenData",
    "LoginRequest",
    "AuthMeResponse",
    "SegmentCreate",
    "SegmentUpdate",
    "SegmentResponse",
    "SegmentListResponse",
    "ApplyRequest",
    "ApplyResponse",
    "PreviewRequest",
    "PreviewResponse",
    "OfferTemplateCreate",
    "OfferTemplateResponse",
    "OrganizationCreate",
    "OrganizationResponse",
    "MemberResponse",
    "InviteCreate",
    "InviteResponse",
    "InvitePreview",
    "AcceptInviteRequest",
    "InviteAcceptResponse",
]
