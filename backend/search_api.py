"""
Global Search API Endpoint
"""

from fastapi import APIRouter, Depends, Query

from api_response import success
from auth import get_tenant_scope
from search_service import search_service
from tenant_scope import TenantScope

router = APIRouter(prefix="/api/search", tags=["search"])


@router.get("/global")
async def global_search(
    q: str = Query(..., min_length=2),
    scope: TenantScope = Depends(get_tenant_scope)
):
    return success(await search_service.search(scope, q))
