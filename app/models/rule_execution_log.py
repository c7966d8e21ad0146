from uuid import uuid4

from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from app.models.base import Base
from sqlalchemy.sql import func


class RuleExecutionLog(Base):
    """Append-only audit row for one rule application attempt.

    ``rule_id`` is ``NULL`` when the attempt failed before any rule was
    selected (e.g. the lead could not be loaded during a bulk run).
    """

    __tablename__ = "rule_execution_logs"
    log_id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid(),
    )
    lead_id = Column(UUID(as_uuid=True))
    rule_id = Column(
        UUID(as_uuid=True),
        ForeignKey("business_rules.rule_id", ondelete="SET NULL"),
    )
    trigger_event = Column(String(50), nullable=False)
    success = Column(Boolean, nullable=False)
    error_message = Column(Text)
    executed_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_rule_execution_logs_rule", "rule_id", "executed_at"),
        Index("idx_rule_execution_logs_lead", "lead_id", "executed_at"),
    )
