"""
Auth API Endpoints
Tenant registration, staff login and logout, token refresh and password reset
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api_response import success
from auth import get_current_user
from auth_service import auth_service
from database import get_db
from models import Tenant, User
from schemas import (
    ForgotPasswordRequest, LoginRequest, RefreshRequest, RegisterRequest, ResetPasswordRequest,
    TenantResponse, UserResponse
)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest, db: AsyncSession = Depends(get_db)):
    tokens = await auth_service.register(db, request)
    return success(tokens, "Registration successful")


@router.post("/login")
async def login(request: LoginRequest, db: AsyncSession = Depends(get_db)):
    tokens = await auth_service.login(db, request)
    return success(tokens, "Login successful")


@router.post("/refresh")
async def refresh(request: RefreshRequest, db: AsyncSession = Depends(get_db)):
    tokens = await auth_service.refresh(db, request.refresh_token)
    return success(tokens)


@router.post("/logout")
async def logout(current_user: User = Depends(get_current_user)):
    auth_service.logout(current_user)
    return success(message="Logged out successfully")


@router.get("/me")
async def me(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    tenant = (await db.execute(select(Tenant).where(Tenant.id == current_user.tenant_id))).scalar_one()
    return success({
        "user": UserResponse.model_validate(current_user),
        "tenant": TenantResponse.model_validate(tenant),
    })


@router.post("/forgot-password")
async def forgot_password(request: ForgotPasswordRequest, db: AsyncSession = Depends(get_db)):
    """Public endpoint; the answer never reveals whether the account exists"""
    message = await auth_service.forgot_password(db, request.email, request.tenant_slug)
    return success(message=message)


@router.post("/reset-password")
async def reset_password(request: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    await auth_service.reset_password(db, request)
    return success(message="Password has been successfully reset. You can now log in with your new password.")
