from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, Text, JSON, ForeignKey, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base


class Prospect(Base):
    """
    A business lead.

    Scope columns (``owner_id``, ``organization_id``) are set at creation and
    only change through the organization-join migration. ``segment_id`` is the
    single current ICP segment assignment (last applied segment wins).
    """

    __tablename__ = "prospects"

    id = Column(Integer, primary_key=True, index=True)

    # Tenant scope
    owner_id = Column(Integer, ForeignKey("api_users.id"), nullable=False, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True, index=True)

    # Business info
    company_name = Column(String(255), nullable=False)
    business_type = Column(String(100))
    city = Column(String(100))
    website = Column(String(500))
    email = Column(String(255))
    data_source = Column(String(50))
    notes = Column(Text)

    # Reputation
    rating = Column(Float)  # Google rating, 0-5
    review_count = Column(Integer)
    years_in_business = Column(Integer)
    employee_count = Column(Integer)

    # Scores
    icp_score = Column(Integer)
    lead_score = Column(Integer)
    opportunity_score = Column(Integer)
    sentiment_score = Column(Float)

    # Tags, e.g. ["no-ssl", "outdated-site"]
    tags = Column(JSON(none_as_null=True))

    # Gap / status flags
    needs_website = Column(Boolean, default=False)
    has_cms = Column(Boolean, default=False)
    is_hot_lead = Column(Boolean, default=False)
    is_converted = Column(Boolean, default=False)
    contacted_at = Column(DateTime(timezone=True))

    # Current ICP segment
    segment_id = Column(Integer, ForeignKey("icp_segments.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    segment = relationship("IcpSegment", back_populates="prospects")

    __table_args__ = (
        Index("ix_prospects_org_segment", "organization_id", "segment_id"),
        Index("ix_prospects_owner_segment", "owner_id", "segment_id"),
    )

    def __repr__(self):
        return f"<Prospect id={self.id} company='{self.company_name}' segment={self.segment_id}>"
