"""
Billing API Endpoints
Manual billing runs, dry-run preview, status and the billing run log
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from api_response import paginated, success
from auth import require_roles
from billing_service import billing_service
from models import UserRole
from schemas import BillingRunDetail, BillingRunRequest, BillingRunResponse
from tenant_scope import TenantScope

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/billing", tags=["billing"])

billing_admin = require_roles(UserRole.OWNER, UserRole.ADMIN)


@router.post("/run")
async def run_billing(
    request: BillingRunRequest,
    scope: TenantScope = Depends(billing_admin)
):
    """Invoice every due subscription (or only subscriptionIds). dryRun persists nothing."""
    result = await billing_service.run_billing(
        scope,
        billing_date=request.billing_date,
        subscription_ids=request.subscription_ids,
        dry_run=request.dry_run,
        triggered_by=f"user:{scope.user_id}"
    )
    message = "Billing preview completed" if request.dry_run else "Billing run completed"
    return success(result, message)


@router.get("/preview")
async def preview_billing(
    as_of: Optional[datetime] = Query(None, alias="date"),
    scope: TenantScope = Depends(billing_admin)
):
    return success(await billing_service.preview_billing(scope, as_of))


@router.get("/status")
async def billing_status(scope: TenantScope = Depends(billing_admin)):
    return success(await billing_service.get_billing_status(scope))


@router.get("/runs")
async def list_runs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    scope: TenantScope = Depends(billing_admin)
):
    runs, total = await billing_service.list_runs(scope, page, limit)
    return paginated(runs, page, limit, total, BillingRunResponse)


@router.get("/runs/{run_id}")
async def get_run(run_id: int, scope: TenantScope = Depends(billing_admin)):
    run = await billing_service.get_run(scope, run_id)
    return success(BillingRunDetail.model_validate(run))
