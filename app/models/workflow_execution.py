from uuid import uuid4

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    Boolean,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from app.models.base import Base
from sqlalchemy.sql import func


class WorkflowExecution(Base):
    """One run of a workflow.

    ``status`` moves ``running`` → ``completed`` | ``failed`` and never
    leaves a terminal state (see ``listeners.guard_terminal_executions``).
    While a long delay is pending the execution stays ``running`` with
    ``resume_at`` / ``resume_after_order`` set.
    """

    __tablename__ = "workflow_executions"
    execution_id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid(),
    )
    workflow_id = Column(
        UUID(as_uuid=True),
        ForeignKey("workflows.workflow_id", ondelete="CASCADE"),
        nullable=False,
    )
    lead_id = Column(
        UUID(as_uuid=True), ForeignKey("leads.lead_id", ondelete="SET NULL")
    )
    user_id = Column(
        UUID(as_uuid=True), ForeignKey("users.user_id", ondelete="SET NULL")
    )
    status = Column(String(20), nullable=False, default="running")
    trigger_data = Column(JSONB)
    started_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True))
    error_message = Column(Text)
    resume_at = Column(DateTime(timezone=True))
    resume_after_order = Column(Integer)

    workflow = relationship("Workflow", back_populates="executions")
    step_results = relationship(
        "WorkflowStepResult",
        back_populates="execution",
        cascade="all, delete-orphan",
        order_by="WorkflowStepResult.position",
    )

    __table_args__ = (
        Index("idx_workflow_executions_workflow", "workflow_id", "started_at"),
        Index("idx_workflow_executions_resume", "status", "resume_at"),
        CheckConstraint(
            "status IN ('running', 'completed', 'failed')",
            name="ck_workflow_execution_status",
        ),
    )


class WorkflowStepResult(Base):
    """Append-only record of one executed step, addressed by ``position``."""

    __tablename__ = "workflow_step_results"
    result_id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=func.gen_random_uuid(),
    )
    execution_id = Column(
        UUID(as_uuid=True),
        ForeignKey("workflow_executions.execution_id", ondelete="CASCADE"),
        nullable=False,
    )
    position = Column(Integer, nullable=False)
    step_id = Column(
        UUID(as_uuid=True), ForeignKey("workflow_steps.step_id", ondelete="SET NULL")
    )
    step_name = Column(String(100), nullable=False)
    step_type = Column(String(50), nullable=False)
    success = Column(Boolean, nullable=False)
    result = Column(JSONB)
    error = Column(Text)
    recorded_at = Column(DateTime(timezone=True), server_default=func.now())

    execution = relationship("WorkflowExecution", back_populates="step_results")

    __table_args__ = (
        UniqueConstraint("execution_id", "position", name="uq_step_result_position"),
    )
