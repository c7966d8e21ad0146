"""Repository layer – all database access goes through here.

Repositories encapsulate SQLAlchemy queries so that the service layer
only contains rule and workflow logic.
"""

from app.repositories.lead_repository import LeadRepository
from app.repositories.business_rule_repository import BusinessRuleRepository
from app.repositories.workflow_repository import WorkflowRepository
from app.repositories.workflow_execution_repository import WorkflowExecutionRepository
from app.repositories.rule_execution_log_repository import RuleExecutionLogRepository
from app.repositories.audit_log_repository import AuditLogRepository

__all__ = [
    "LeadRepository",
    "BusinessRuleRepository",
    "WorkflowRepository",
    "WorkflowExecutionRepository",
    "RuleExecutionLogRepository",
    "AuditLogRepository",
]
