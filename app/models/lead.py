from uuid import uuid4

from sqlalchemy import (
    Column,
    String,
    Numeric,
    Integer,
    DateTime,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.models.base import Base
from sqlalchemy.sql import func


class Lead(Base):
    """Business prospect that rules and workflows read and mutate.

    Scoring and enrichment data are produced by external collaborators
    and stored in one-to-one side tables; the engine only reads them
    when resolving condition fields (``confidence``, ``companySize``,
    ``revenue``).  ``status`` is free-form so that rule actions can move
    a lead into any pipeline stage.
    """

    __tablename__ = "leads"
    lead_id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid(),
    )
    company_name = Column(String(200), nullable=False)
    domain = Column(String(255))
    industry = Column(String(100))
    status = Column(String(50), nullable=False, server_default="RAW")
    score = Column(Integer)
    assigned_to_id = Column(
        UUID(as_uuid=True), ForeignKey("users.user_id", ondelete="SET NULL")
    )
    assigned_team_id = Column(
        UUID(as_uuid=True), ForeignKey("teams.team_id", ondelete="SET NULL")
    )
    campaign_id = Column(UUID(as_uuid=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    assigned_to = relationship("User", foreign_keys=[assigned_to_id])
    assigned_team = relationship("Team", foreign_keys=[assigned_team_id])
    scoring_details = relationship(
        "LeadScoringDetail",
        back_populates="lead",
        uselist=False,
        cascade="all, delete-orphan",
    )
    enrichment = relationship(
        "LeadEnrichment",
        back_populates="lead",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_leads_status", "status"),
        Index("idx_leads_assigned_to", "assigned_to_id"),
        CheckConstraint(
            "score IS NULL OR score BETWEEN 0 AND 100", name="ck_lead_score_range"
        ),
    )


class LeadScoringDetail(Base):
    """Latest AI scoring output for a lead (written by the scoring service)."""

    __tablename__ = "lead_scoring_details"
    scoring_id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid(),
    )
    lead_id = Column(
        UUID(as_uuid=True),
        ForeignKey("leads.lead_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    total_score = Column(Integer)
    confidence = Column(Numeric(5, 4))
    scored_at = Column(DateTime(timezone=True), server_default=func.now())

    lead = relationship("Lead", back_populates="scoring_details")


class LeadEnrichment(Base):
    """Firmographic enrichment for a lead (written by the enrichment service)."""

    __tablename__ = "lead_enrichments"
    enrichment_id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid(),
    )
    lead_id = Column(
        UUID(as_uuid=True),
        ForeignKey("leads.lead_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    company_size = Column(String(50))
    revenue = Column(Numeric(18, 2))
    enriched_at = Column(DateTime(timezone=True), server_default=func.now())

    lead = relationship("Lead", back_populates="enrichment")
