"""
Usage API Endpoints
Import of traffic counters exported by the network (RADIUS / NAS) side
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api_response import success
from auth import require_roles
from models import UserRole
from schemas import UsageCounterResponse, UsageImportRequest
from tenant_scope import TenantScope
from usage_service import usage_service

router = APIRouter(prefix="/api/usage", tags=["usage"])


@router.post("/import")
async def import_usage(
    request: UsageImportRequest,
    scope: TenantScope = Depends(require_roles(UserRole.OWNER, UserRole.ADMIN))
):
    result = await usage_service.import_records(scope, request.records)
    return success(result, f"Imported {result['imported']} usage record(s)")


@router.get("/{subscription_id}")
async def subscription_usage(
    subscription_id: int,
    period: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}$"),
    scope: TenantScope = Depends(require_roles(UserRole.OWNER, UserRole.ADMIN, UserRole.MANAGER, UserRole.SUPPORT))
):
    counters = await usage_service.get_by_subscription(scope, subscription_id, period)
    return success([UsageCounterResponse.model_validate(c) for c in counters])
