import secrets

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base


class Organization(Base):
    """A team sharing prospects, segments and offers."""

    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    owner_id = Column(Integer, nullable=False)  # api_users.id of the creator

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    members = relationship("User", back_populates="organization", foreign_keys="User.organization_id")

    def __repr__(self):
        return f"<Organization id={self.id} name='{self.name}'>"


class OrganizationInvite(Base):
    """Pending invitation to join an organization, redeemed by token."""

    __tablename__ = "organization_invites"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    email = Column(String(255), nullable=False, index=True)  # stored lowercased
    role = Column(String(20), nullable=False, default="member")  # admin, member
    token = Column(String(64), unique=True, nullable=False, index=True, default=lambda: secrets.token_urlsafe(32))
    invited_by_id = Column(Integer, ForeignKey("api_users.id", ondelete="SET NULL"), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    organization = relationship("Organization")

    def __repr__(self):
        return f"<OrganizationInvite org={self.organization_id} email='{self.email}'>"
