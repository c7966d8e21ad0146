from datetime import datetime, timezone
from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from app.core.constants import TERMINAL_EXECUTION_STATUSES
from app.models.business_rule import BusinessRule
from app.models.lead import Lead
from app.models.workflow import Workflow
from app.models.workflow_execution import WorkflowExecution


# Auto updated_at
@event.listens_for(Lead, "before_update")
@event.listens_for(BusinessRule, "before_update")
@event.listens_for(Workflow, "before_update")
def update_timestamp(mapper, connection, target):
    target.updated_at = datetime.now(timezone.utc)


# Execution status is monotonic: running -> completed | failed, never back
@event.listens_for(Session, "before_flush")
def guard_terminal_executions(session: Session, flush_context, instances):
    for obj in list(session.new) + list(session.dirty):
        if not isinstance(obj, WorkflowExecution):
            continue

        history = inspect(obj).attrs.status.history
        if history.has_changes():
            old = history.deleted[0] if history.deleted else None
            new = history.added[0] if history.added else obj.status
            if old in TERMINAL_EXECUTION_STATUSES and new != old:
                raise ValueError(
                    f"Invalid execution transition: {old} → {new}"
                )

        if obj.status in TERMINAL_EXECUTION_STATUSES:
            if obj.completed_at is None:
                obj.completed_at = datetime.now(timezone.utc)
            obj.resume_at = None
            obj.resume_after_order = None
