"""FastAPI routes for return policies and reasons."""

import json

from fastapi import APIRouter, Depends
from protean.utils.globals import current_domain

from aftersales.api.auth import acting_user_id
from aftersales.api.schemas import AddReturnReasonRequest, DefineReturnPolicyRequest, IdResponse
from aftersales.policy.management import AddReturnReason, DefineReturnPolicy

policy_router = APIRouter(tags=["policies"])


@policy_router.post("/return-policies", status_code=201, response_model=IdResponse)
async def define_policy(body: DefineReturnPolicyRequest, actor_id: str = Depends(acting_user_id)) -> IdResponse:
    command = DefineReturnPolicy(
        actor_id=actor_id,
        seller_id=body.seller_id,
        category_id=body.category_id,
        return_window_days=body.return_window_days,
        replacement_window_days=body.replacement_window_days,
        refund_window_days=body.refund_window_days,
        policy_text=body.policy_text,
        non_returnable_items=json.dumps(body.non_returnable_items) if body.non_returnable_items else None,
        auto_approve_threshold=body.auto_approve_threshold,
        shipping_paid_by=body.shipping_paid_by,
        conditional_rules=json.dumps(body.conditional_rules) if body.conditional_rules else None,
    )
    policy_id = current_domain.process(command, asynchronous=False)
    return IdResponse(id=policy_id)


@policy_router.post("/return-reasons", status_code=201, response_model=IdResponse)
async def add_reason(body: AddReturnReasonRequest, actor_id: str = Depends(acting_user_id)) -> IdResponse:
    command = AddReturnReason(
        actor_id=actor_id,
        reason_text=body.reason_text,
        category=body.category,
        display_order=body.display_order,
    )
    reason_id = current_domain.process(command, asynchronous=False)
    return IdResponse(id=reason_id)
