"""
Reports and Dashboard API Endpoints
"""

from typing import Literal

from fastapi import APIRouter, Depends

from api_response import success
from auth import require_roles
from models import UserRole
from report_service import report_service
from tenant_scope import TenantScope

router = APIRouter(prefix="/api/reports", tags=["reports"])
dashboard_router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])

managers = require_roles(UserRole.OWNER, UserRole.ADMIN, UserRole.MANAGER)


@router.get("/dashboard")
async def report_dashboard(scope: TenantScope = Depends(managers)):
    return success(await report_service.dashboard_stats(scope))


@router.get("/revenue")
async def report_revenue(scope: TenantScope = Depends(managers)):
    """Revenue of the last 12 months"""
    return success({"revenue_data": await report_service.revenue_by_month(scope, months=12)})


@router.get("/customers")
async def report_customers(scope: TenantScope = Depends(managers)):
    return success(await report_service.customer_report(scope))


@router.get("/aging")
async def report_aging(scope: TenantScope = Depends(managers)):
    return success(await report_service.aging_report(scope))


@dashboard_router.get("/stats")
async def dashboard_stats(scope: TenantScope = Depends(require_roles(*UserRole))):
    """Headline numbers, visible to every staff role"""
    return success(await report_service.dashboard_stats(scope))


@dashboard_router.get("/charts")
async def dashboard_charts(
    period: Literal["3months", "6months", "12months"] = "12months",
    scope: TenantScope = Depends(managers)
):
    return success({"revenue_data": await report_service.chart_data(scope, period)})
