from app.models.organization import Organization, OrganizationInvite
from app.models.user import User
from app.models.prospect import Prospect
from app.models.icp_segment import IcpSegment, OfferTemplate

__all__ = [
    "Organization",
    "OrganizationInvite",
    "User",
    "Prospect",
    "IcpSegment",
    "OfferTemplate",
]
