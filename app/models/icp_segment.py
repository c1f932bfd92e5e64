"""
ICP segment and offer template models.

A segment stores its rules in structured form (``{"logic": ..., "rules": [...]}``);
rules are compiled at apply time, never at save time.
"""

from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base


class IcpSegment(Base):
    """Named, rule-defined audience of prospects owned by one tenant scope."""

    __tablename__ = "icp_segments"

    id = Column(Integer, primary_key=True, index=True)

    # Ownership scope
    owner_id = Column(Integer, ForeignKey("api_users.id"), nullable=False, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True, index=True)

    name = Column(String(100), nullable=False)
    description = Column(Text)
    color = Column(String(7), nullable=False, default="#06b6d4")  # Hex color for UI

    # Example: {
    #   "logic": "or",
    #   "rules": [
    #     {"logic": "and", "rules": [
    #       {"field": "rating", "operator": "greater_than_or_equal", "value": 4.5},
    #       {"field": "review_count", "operator": "greater_than_or_equal", "value": 20}
    #     ]},
    #     {"field": "icp_score", "operator": "greater_than_or_equal", "value": 70}
    #   ]
    # }
    rules = Column(JSON, nullable=False)

    offer_template_id = Column(Integer, ForeignKey("offer_templates.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    offer_template = relationship("OfferTemplate", back_populates="segments")
    prospects = relationship("Prospect", back_populates="segment", passive_deletes=True)

    def __repr__(self):
        return f"<IcpSegment id={self.id} name='{self.name}'>"


class OfferTemplate(Base):
    """Service offer pitched to the prospects of linked segments."""

    __tablename__ = "offer_templates"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("api_users.id"), nullable=False, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True, index=True)

    name = Column(String(100), nullable=False)
    description = Column(Text)
    price = Column(Numeric(10, 2))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    segments = relationship("IcpSegment", back_populates="offer_template")

    def __repr__(self):
        return f"<OfferTemplate id={self.id} name='{self.name}'>"
