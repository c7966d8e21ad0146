from uuid import uuid4

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    Boolean,
    DateTime,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from app.models.base import Base
from sqlalchemy.sql import func, text


class BusinessRule(Base):
    """Declarative rule: JSONB ``conditions`` plus JSONB ``actions``.

    ``conditions`` is a list of ``{field, operator, value,
    logical_operator}`` objects folded left to right by the condition
    evaluator; ``actions`` is a list of ``{type, target, value,
    metadata}`` objects applied in order by the action dispatcher.
    """

    __tablename__ = "business_rules"
    rule_id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid(),
    )
    name = Column(String(100), nullable=False)
    description = Column(Text)
    type = Column(String(50), nullable=False)
    conditions = Column(JSONB, nullable=False)
    actions = Column(JSONB, nullable=False)
    is_active = Column(Boolean, nullable=False, server_default=text("true"))
    priority = Column(Integer, nullable=False, server_default=text("0"))
    created_by_id = Column(
        UUID(as_uuid=True), ForeignKey("users.user_id", ondelete="SET NULL")
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    created_by = relationship("User")

    __table_args__ = (
        Index("idx_business_rules_active_priority", "is_active", "priority"),
        CheckConstraint(
            "type IN ('assignment', 'scoring', 'notification', 'status_change', 'enrichment')",
            name="ck_business_rule_type",
        ),
        CheckConstraint("priority BETWEEN 0 AND 100", name="ck_business_rule_priority"),
    )
