from fastapi import APIRouter

from app.api.v1.endpoints import rules, workflows, executions, health

router = APIRouter(prefix="/api/v1")

router.include_router(rules.router)
router.include_router(workflows.router)
router.include_router(executions.router)
router.include_router(health.router)
