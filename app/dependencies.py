import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from redis.asyncio import Redis

from app.core.cache import CacheService
from app.core.config import settings
from app.core.database import AsyncSessionLocal, get_db
from app.core.exceptions import DefinitionValidationError
from app.repositories.business_rule_repository import BusinessRuleRepository
from app.repositories.lead_repository import LeadRepository
from app.repositories.rule_execution_log_repository import RuleExecutionLogRepository
from app.repositories.workflow_execution_repository import WorkflowExecutionRepository
from app.repositories.workflow_repository import WorkflowRepository
from app.services.action_dispatcher import ActionDispatcher
from app.services.business_rule_service import BusinessRuleService
from app.services.collaborators import IntegrationGateway, NotificationSink
from app.services.execution_logger import ExecutionLogger
from app.services.execution_stats import ExecutionStatsService
from app.services.rule_execution_service import RuleExecutionService
from app.services.workflow_service import WorkflowService
from app.services.workflow_steps import WorkflowStepExecutor

logger = logging.getLogger(__name__)

# Process-wide collaborators; both are stateless
notification_sink = NotificationSink()
integration_gateway = IntegrationGateway()


# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------


async def get_actor_id(
    x_actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
) -> Optional[UUID]:
    """Acting user id from the optional ``X-Actor-Id`` header."""
    if not x_actor_id:
        return None
    try:
        return UUID(x_actor_id)
    except ValueError:
        raise DefinitionValidationError("X-Actor-Id must be a UUID")


# ---------------------------------------------------------------------------
# Redis client factory
# ---------------------------------------------------------------------------


async def get_redis_client() -> Optional[Redis]:
    """Get an async Redis client instance using connection pooling."""
    try:
        client = Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
        await client.ping()
        return client
    except Exception:
        logger.warning("Redis unavailable – rule cache disabled for this request")
        return None


async def get_cache_service(
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> CacheService:
    """Build a :class:`CacheService` backed by the shared Redis client."""
    return CacheService(redis_client=redis_client)


# ---------------------------------------------------------------------------
# Repository factory functions (one per repository, each gets the shared db)
# ---------------------------------------------------------------------------


async def get_lead_repo(db: AsyncSession = Depends(get_db)) -> LeadRepository:
    return LeadRepository(db)


async def get_rule_repo(db: AsyncSession = Depends(get_db)) -> BusinessRuleRepository:
    return BusinessRuleRepository(db)


async def get_execution_repo(
    db: AsyncSession = Depends(get_db),
) -> WorkflowExecutionRepository:
    return WorkflowExecutionRepository(db)


async def get_rule_log_repo(
    db: AsyncSession = Depends(get_db),
) -> RuleExecutionLogRepository:
    return RuleExecutionLogRepository(db)


# ---------------------------------------------------------------------------
# Service factory functions
# ---------------------------------------------------------------------------


async def get_execution_logger() -> ExecutionLogger:
    """Logger writing through its own sessions, never the request's."""
    return ExecutionLogger(AsyncSessionLocal)


async def get_action_dispatcher(
    lead_repo: LeadRepository = Depends(get_lead_repo),
) -> ActionDispatcher:
    return ActionDispatcher(lead_repo=lead_repo, notification_sink=notification_sink)


async def get_business_rule_service(
    rule_repo: BusinessRuleRepository = Depends(get_rule_repo),
    lead_repo: LeadRepository = Depends(get_lead_repo),
    dispatcher: ActionDispatcher = Depends(get_action_dispatcher),
    execution_logger: ExecutionLogger = Depends(get_execution_logger),
    cache: CacheService = Depends(get_cache_service),
) -> BusinessRuleService:
    """Build a :class:`BusinessRuleService` with injected dependencies."""
    return BusinessRuleService(
        rule_repo=rule_repo,
        lead_repo=lead_repo,
        dispatcher=dispatcher,
        execution_logger=execution_logger,
        cache=cache,
    )


async def get_rule_execution_service(
    rule_repo: BusinessRuleRepository = Depends(get_rule_repo),
    lead_repo: LeadRepository = Depends(get_lead_repo),
    dispatcher: ActionDispatcher = Depends(get_action_dispatcher),
    execution_logger: ExecutionLogger = Depends(get_execution_logger),
) -> RuleExecutionService:
    return RuleExecutionService(
        rule_repo=rule_repo,
        lead_repo=lead_repo,
        dispatcher=dispatcher,
        execution_logger=execution_logger,
    )


def build_workflow_service(db: AsyncSession) -> WorkflowService:
    """Wire a :class:`WorkflowService` onto one session.

    Used both by the request dependency below and by the delay
    scheduler, which resumes every execution in a session of its own.
    """
    step_executor = WorkflowStepExecutor(
        lead_repo=LeadRepository(db),
        notification_sink=notification_sink,
        integration_gateway=integration_gateway,
    )
    return WorkflowService(
        workflow_repo=WorkflowRepository(db),
        execution_repo=WorkflowExecutionRepository(db),
        step_executor=step_executor,
        execution_logger=ExecutionLogger(AsyncSessionLocal),
    )


async def get_workflow_service(
    db: AsyncSession = Depends(get_db),
) -> WorkflowService:
    return build_workflow_service(db)


async def get_execution_stats_service(
    rule_log_repo: RuleExecutionLogRepository = Depends(get_rule_log_repo),
    execution_repo: WorkflowExecutionRepository = Depends(get_execution_repo),
) -> ExecutionStatsService:
    return ExecutionStatsService(
        rule_log_repo=rule_log_repo, execution_repo=execution_repo
    )
