"""API-layer dependency functions.

Re-exports all dependency factories from ``app.dependencies`` so that
endpoint modules only need to import from ``app.api.deps``.
"""

from app.dependencies import (
    # Request context
    get_actor_id,
    # Repository factories
    get_lead_repo,
    get_rule_repo,
    get_execution_repo,
    get_rule_log_repo,
    # Service factories
    get_execution_logger,
    get_action_dispatcher,
    get_business_rule_service,
    get_rule_execution_service,
    get_workflow_service,
    get_execution_stats_service,
    # Redis
    get_redis_client,
    get_cache_service,
)

__all__ = [
    "get_actor_id",
    "get_lead_repo",
    "get_rule_repo",
    "get_execution_repo",
    "get_rule_log_repo",
    "get_execution_logger",
    "get_action_dispatcher",
    "get_business_rule_service",
    "get_rule_execution_service",
    "get_workflow_service",
    "get_execution_stats_service",
    "get_redis_client",
    "get_cache_service",
]
