"""
Subscription API Endpoints
Enrolling customers in plans and managing the subscription lifecycle
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from api_response import paginated, success
from auth import require_roles
from models import SubscriptionStatus, UserRole
from schemas import SubscriptionCreate, SubscriptionResponse, SubscriptionStatusUpdate, SubscriptionUpdate
from subscription_service import subscription_service
from tenant_scope import TenantScope

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])

staff = require_roles(UserRole.OWNER, UserRole.ADMIN, UserRole.MANAGER, UserRole.SUPPORT)
editors = require_roles(UserRole.OWNER, UserRole.ADMIN, UserRole.MANAGER)


@router.get("")
async def list_subscriptions(
    status: Optional[SubscriptionStatus] = None,
    customer_id: Optional[int] = None,
    q: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    scope: TenantScope = Depends(staff)
):
    subscriptions, total = await subscription_service.list(scope, page, limit, status, customer_id, q)
    return paginated(subscriptions, page, limit, total, SubscriptionResponse)


@router.get("/{subscription_id}")
async def get_subscription(subscription_id: int, scope: TenantScope = Depends(staff)):
    subscription = await subscription_service.get_by_id(scope, subscription_id)
    return success(SubscriptionResponse.model_validate(subscription))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_subscription(request: SubscriptionCreate, scope: TenantScope = Depends(editors)):
    subscription = await subscription_service.create(scope, request)
    return success(SubscriptionResponse.model_validate(subscription), "Subscription created successfully")


@router.patch("/{subscription_id}")
async def update_subscription(subscription_id: int, request: SubscriptionUpdate, scope: TenantScope = Depends(editors)):
    subscription = await subscription_service.update(scope, subscription_id, request)
    return success(SubscriptionResponse.model_validate(subscription), "Subscription updated successfully")


@router.patch("/{subscription_id}/status")
async def update_subscription_status(
    subscription_id: int,
    request: SubscriptionStatusUpdate,
    scope: TenantScope = Depends(editors)
):
    subscription = await subscription_service.update_status(scope, subscription_id, request.status)
    return success(SubscriptionResponse.model_validate(subscription), f"Subscription {request.status.value.lower()}")


@router.delete("/{subscription_id}")
async def delete_subscription(
    subscription_id: int,
    scope: TenantScope = Depends(require_roles(UserRole.OWNER, UserRole.ADMIN))
):
    await subscription_service.delete(scope, subscription_id)
    return success(message="Subscription deleted successfully")
