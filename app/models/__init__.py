from app.models.base import Base
from app.models.user import User, Team
from app.models.lead import Lead, LeadScoringDetail, LeadEnrichment
from app.models.business_rule import BusinessRule
from app.models.workflow import Workflow, WorkflowStep
from app.models.workflow_execution import WorkflowExecution, WorkflowStepResult
from app.models.rule_execution_log import RuleExecutionLog
from app.models.audit_log import AuditLog

# Import event listeners to register them
from app.models import listeners  # noqa: F401

__all__ = [
    "Base",
    "User",
    "Team",
    "Lead",
    "LeadScoringDetail",
    "LeadEnrichment",
    "BusinessRule",
    "Workflow",
    "WorkflowStep",
    "WorkflowExecution",
    "WorkflowStepResult",
    "RuleExecutionLog",
    "AuditLog",
]
