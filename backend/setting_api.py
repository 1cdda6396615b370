"""
Settings API Endpoints
Per-tenant configuration documents (invoice, tax, email, SMS, branding)
"""

from fastapi import APIRouter, Depends

from api_response import success
from auth import require_roles
from models import UserRole
from schemas import SettingUpdate
from setting_service import setting_service
from tenant_scope import TenantScope

router = APIRouter(prefix="/api/settings", tags=["settings"])

admins = require_roles(UserRole.OWNER, UserRole.ADMIN)


@router.get("")
async def get_settings(scope: TenantScope = Depends(admins)):
    return success(await setting_service.get_all(scope))


@router.get("/{key}")
async def get_setting(key: str, scope: TenantScope = Depends(admins)):
    return success(await setting_service.get(scope, key))


@router.put("/{key}")
async def update_setting(key: str, request: SettingUpdate, scope: TenantScope = Depends(admins)):
    return success(await setting_service.update(scope, key, request.value), "Setting updated successfully")
