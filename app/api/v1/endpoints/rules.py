from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from app.api.deps import (
    get_actor_id,
    get_business_rule_service,
    get_rule_execution_service,
)
from app.core.rate_limit import BULK_RATE_LIMIT, limiter
from app.schemas.business_rule import (
    ApplyActionsRequest,
    ApplyActionsResponse,
    BulkApplyItem,
    BulkApplyRequest,
    BusinessRuleCreate,
    BusinessRuleOut,
    BusinessRuleUpdate,
    EvaluateRulesRequest,
    RuleExecutionResult,
    RuleMatch,
    RuleStats,
    RuleTestRequest,
    RuleTestResult,
    TriggerRulesRequest,
)
from app.schemas.common import RuleType, SuccessResponse
from app.services.business_rule_service import BusinessRuleService
from app.services.rule_execution_service import RuleExecutionService

router = APIRouter(prefix="/rules", tags=["Business Rules"])


@router.post("", response_model=BusinessRuleOut, status_code=201)
async def create_rule(
    body: BusinessRuleCreate,
    actor_id: Optional[UUID] = Depends(get_actor_id),
    service: BusinessRuleService = Depends(get_business_rule_service),
) -> BusinessRuleOut:
    rule = await service.create_rule(body, created_by_id=actor_id)
    return BusinessRuleOut.model_validate(rule)


@router.get("", response_model=List[BusinessRuleOut])
async def list_rules(
    is_active: Optional[bool] = Query(None),
    type: Optional[RuleType] = Query(None),
    created_by_id: Optional[UUID] = Query(None),
    service: BusinessRuleService = Depends(get_business_rule_service),
) -> List[BusinessRuleOut]:
    """List rules, highest priority first."""
    rules = await service.get_rules(
        is_active=is_active,
        rule_type=type.value if type else None,
        created_by_id=created_by_id,
    )
    return [BusinessRuleOut.model_validate(r) for r in rules]


@router.get("/stats", response_model=RuleStats)
async def rule_stats(
    service: BusinessRuleService = Depends(get_business_rule_service),
) -> RuleStats:
    return await service.get_rule_stats()


@router.get("/type/{rule_type}", response_model=List[BusinessRuleOut])
async def list_rules_by_type(
    rule_type: RuleType,
    service: BusinessRuleService = Depends(get_business_rule_service),
) -> List[BusinessRuleOut]:
    rules = await service.get_rules_by_type(rule_type.value)
    return [BusinessRuleOut.model_validate(r) for r in rules]


@router.post(
    "/bulk-apply",
    response_model=List[BulkApplyItem],
)
@limiter.limit(BULK_RATE_LIMIT)
async def bulk_apply_rules(
    request: Request,
    body: BulkApplyRequest,
    service: BusinessRuleService = Depends(get_business_rule_service),
) -> List[BulkApplyItem]:
    """Evaluate and apply rules for many leads.

    Each lead succeeds or fails on its own; the response has one item
    per requested lead, in request order.
    """
    return await service.bulk_apply_rules(body.lead_ids, body.context)


@router.post("/evaluate/{lead_id}", response_model=List[RuleMatch])
async def evaluate_rules(
    lead_id: UUID,
    body: Optional[EvaluateRulesRequest] = None,
    service: BusinessRuleService = Depends(get_business_rule_service),
) -> List[RuleMatch]:
    return await service.evaluate_rules(lead_id, body.context if body else None)


@router.post("/apply/{lead_id}", response_model=ApplyActionsResponse)
async def apply_rule_actions(
    lead_id: UUID,
    body: ApplyActionsRequest,
    service: BusinessRuleService = Depends(get_business_rule_service),
) -> ApplyActionsResponse:
    applied = await service.apply_rule_actions(lead_id, body.actions)
    return ApplyActionsResponse(lead_id=lead_id, actions_applied=applied)


@router.post("/trigger/{lead_id}", response_model=RuleExecutionResult)
async def trigger_rules(
    lead_id: UUID,
    body: TriggerRulesRequest,
    service: RuleExecutionService = Depends(get_rule_execution_service),
) -> RuleExecutionResult:
    """Run the rules relevant to a lead lifecycle event."""
    return await service.execute_rules_for_lead(
        lead_id, body.trigger_event.value, body.context
    )


@router.get("/{rule_id}", response_model=BusinessRuleOut)
async def get_rule(
    rule_id: UUID,
    service: BusinessRuleService = Depends(get_business_rule_service),
) -> BusinessRuleOut:
    return BusinessRuleOut.model_validate(await service.get_rule_by_id(rule_id))


@router.put("/{rule_id}", response_model=BusinessRuleOut)
async def update_rule(
    rule_id: UUID,
    body: BusinessRuleUpdate,
    actor_id: Optional[UUID] = Depends(get_actor_id),
    service: BusinessRuleService = Depends(get_business_rule_service),
) -> BusinessRuleOut:
    rule = await service.update_rule(rule_id, body, actor_id=actor_id)
    return BusinessRuleOut.model_validate(rule)


@router.delete("/{rule_id}", response_model=SuccessResponse)
async def delete_rule(
    rule_id: UUID,
    actor_id: Optional[UUID] = Depends(get_actor_id),
    service: BusinessRuleService = Depends(get_business_rule_service),
) -> SuccessResponse:
    await service.delete_rule(rule_id, actor_id=actor_id)
    return SuccessResponse()


@router.post("/{rule_id}/test", response_model=RuleTestResult)
async def test_rule(
    rule_id: UUID,
    body: RuleTestRequest,
    service: BusinessRuleService = Depends(get_business_rule_service),
) -> RuleTestResult:
    """Evaluate a stored rule against sample lead data without side effects."""
    return await service.test_rule_evaluation(rule_id, body.test_data)
