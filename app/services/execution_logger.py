import logging
from typing import Optional
from uuid import UUID

from app.core.database import SessionFactory
from app.repositories.audit_log_repository import AuditLogRepository
from app.repositories.rule_execution_log_repository import RuleExecutionLogRepository

logger = logging.getLogger(__name__)


class ExecutionLogger:
    """Best-effort writer for rule execution logs and audit entries.

    Every write opens its own session from *session_factory* so that a
    failing log insert can neither roll back nor mask the business
    operation being recorded.  Errors are logged and swallowed.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def log_rule_execution(
        self,
        lead_id: Optional[UUID],
        rule_id: Optional[UUID],
        trigger_event: str,
        success: bool,
        error_message: Optional[str] = None,
    ) -> None:
        try:
            async with self._session_factory() as session:
                repo = RuleExecutionLogRepository(session)
                await repo.create(
                    lead_id=lead_id,
                    rule_id=rule_id,
                    trigger_event=trigger_event,
                    success=success,
                    error_message=error_message,
                )
                await repo.commit()
        except Exception:
            logger.error(
                "Failed to log rule execution (lead=%s, rule=%s)",
                lead_id,
                rule_id,
                exc_info=True,
            )

    async def log_activity(
        self,
        action: str,
        entity_type: str,
        entity_id: UUID,
        user_id: Optional[UUID] = None,
        description: Optional[str] = None,
    ) -> None:
        try:
            async with self._session_factory() as session:
                repo = AuditLogRepository(session)
                await repo.create(
                    action=action,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    user_id=user_id,
                    description=description,
                )
                await repo.commit()
        except Exception:
            logger.error(
                "Failed to write audit log (%s %s %s)",
                action,
                entity_type,
                entity_id,
                exc_info=True,
            )
