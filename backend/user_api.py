"""
User API Endpoints
Staff account management within a tenant
"""

from fastapi import APIRouter, Depends, status

from api_response import success
from auth import require_roles
from models import UserRole
from schemas import UserCreate, UserResponse, UserUpdate
from tenant_scope import TenantScope
from user_service import user_service

router = APIRouter(prefix="/api/users", tags=["users"])

admins = require_roles(UserRole.OWNER, UserRole.ADMIN)


@router.get("")
async def list_users(scope: TenantScope = Depends(admins)):
    users = await user_service.list(scope)
    return success([UserResponse.model_validate(u) for u in users])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(request: UserCreate, scope: TenantScope = Depends(admins)):
    user = await user_service.create(scope, request)
    return success(UserResponse.model_validate(user), "User created successfully")


@router.patch("/{user_id}")
async def update_user(user_id: int, request: UserUpdate, scope: TenantScope = Depends(admins)):
    user = await user_service.update(scope, user_id, request)
    return success(UserResponse.model_validate(user), "User updated successfully")


@router.delete("/{user_id}")
async def deactivate_user(user_id: int, scope: TenantScope = Depends(require_roles(UserRole.OWNER))):
    await user_service.deactivate(scope, user_id)
    return success(message="User deactivated successfully")
