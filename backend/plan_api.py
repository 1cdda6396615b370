"""
Plan API Endpoints
"""

from fastapi import APIRouter, Depends, status

from api_response import success
from auth import require_roles
from models import UserRole
from plan_service import plan_service
from schemas import PlanCreate, PlanResponse, PlanUpdate
from tenant_scope import TenantScope

router = APIRouter(prefix="/api/plans", tags=["plans"])

editors = require_roles(UserRole.OWNER, UserRole.ADMIN, UserRole.MANAGER)


@router.get("")
async def list_plans(
    scope: TenantScope = Depends(require_roles(UserRole.OWNER, UserRole.ADMIN, UserRole.MANAGER, UserRole.SUPPORT))
):
    """Active plans ordered by price"""
    rows = await plan_service.list(scope)
    return success([
        PlanResponse.model_validate(plan).model_copy(update={"subscription_count": count})
        for plan, count in rows
    ])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_plan(request: PlanCreate, scope: TenantScope = Depends(editors)):
    plan = await plan_service.create(scope, request)
    return success(PlanResponse.model_validate(plan), "Plan created successfully")


@router.patch("/{plan_id}")
async def update_plan(plan_id: int, request: PlanUpdate, scope: TenantScope = Depends(editors)):
    plan = await plan_service.update(scope, plan_id, request)
    return success(PlanResponse.model_validate(plan), "Plan updated successfully")


@router.delete("/{plan_id}")
async def deactivate_plan(
    plan_id: int,
    scope: TenantScope = Depends(require_roles(UserRole.OWNER, UserRole.ADMIN))
):
    await plan_service.deactivate(scope, plan_id)
    return success(message="Plan deactivated successfully")
