import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.repositories.workflow_execution_repository import WorkflowExecutionRepository
from app.services.workflow_service import WorkflowService

logger = logging.getLogger(__name__)

ServiceBuilder = Callable[[AsyncSession], WorkflowService]


async def resume_due_executions(
    session_factory: Callable[..., AsyncSession],
    build_service: ServiceBuilder,
    batch_size: int = settings.DELAY_SCHEDULER_BATCH_SIZE,
) -> int:
    """One-shot: resume every parked execution whose delay has elapsed.

    Parameters:
        session_factory: An async context-manager callable that yields
            an ``AsyncSession`` (e.g. ``AsyncSessionLocal``).
        build_service: Builds a ``WorkflowService`` bound to a session.

    Each execution is resumed in its own session so one failure cannot
    affect the others.  Returns the number of executions resumed.
    """
    async with session_factory() as session:
        due = await WorkflowExecutionRepository(session).find_due(
            datetime.now(timezone.utc), batch_size
        )
    if not due:
        return 0

    logger.info("Found %d suspended execution(s) due for resume", len(due))
    resumed = 0
    for execution_id in due:
        try:
            async with session_factory() as session:
                result = await build_service(session).resume_execution(execution_id)
            resumed += 1
            logger.info(
                "Resumed execution %s (success=%s, suspended=%s)",
                execution_id,
                result.success,
                result.suspended,
            )
        except Exception:
            logger.warning(
                "Failed to resume execution %s", execution_id, exc_info=True
            )
    return resumed


async def start_delay_scheduler_loop(
    session_factory: Callable[..., AsyncSession],
    build_service: ServiceBuilder,
) -> None:
    """Infinite loop that resumes delayed workflow executions.

    Parameters:
        session_factory: An async context-manager callable that yields
            an ``AsyncSession``.
        build_service: Builds a ``WorkflowService`` bound to a session.
    """
    interval = settings.DELAY_SCHEDULER_INTERVAL_SECONDS
    logger.info(
        "Delay scheduler started (interval=%ds, batch=%d)",
        interval,
        settings.DELAY_SCHEDULER_BATCH_SIZE,
    )
    while True:
        try:
            count = await resume_due_executions(session_factory, build_service)
            if count:
                logger.info("Delay scheduler cycle complete: %d execution(s)", count)
        except Exception:
            logger.error("Delay scheduler cycle failed", exc_info=True)
        await asyncio.sleep(interval)
