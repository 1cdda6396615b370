import asyncio
import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth import (
    REFRESH_TOKEN, create_access_token, create_refresh_token, decode_token,
    get_password_hash, verify_password
)
from config import settings
from email_service import email_service
from errors import BadRequestError, UnauthorizedError
from models import Tenant, User, UserRole, UserStatus
from schemas import (
    LoginRequest, RegisterRequest, ResetPasswordRequest, TenantResponse, TokenResponse, UserResponse
)
from setting_service import setting_service
from tenant_scope import TenantScope

logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = "If an account with that email exists, a password reset link has been sent."


def _token_pair(user: User, tenant: Tenant) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user.id, tenant.id),
        refresh_token=create_refresh_token(user.id, tenant.id),
        user=UserResponse.model_validate(user),
        tenant=TenantResponse.model_validate(tenant)
    )


class AuthService:

    async def register(self, db: AsyncSession, data: RegisterRequest) -> TokenResponse:
        """Create a tenant, its OWNER account and the default settings documents"""
        existing = await db.execute(select(Tenant).where(Tenant.slug == data.tenant_slug))
        if existing.scalar_one_or_none():
            raise BadRequestError("Tenant slug already taken")

        tenant = Tenant(name=data.tenant_name, slug=data.tenant_slug, branding={"primaryColor": "#3B82F6"})
        db.add(tenant)
        await db.flush()

        owner = User(
            tenant_id=tenant.id,
            name=data.name,
            email=data.email,
            hashed_password=get_password_hash(data.password),
            role=UserRole.OWNER,
            status=UserStatus.ACTIVE
        )
        db.add(owner)
        await setting_service.create_defaults(TenantScope(db, tenant.id), tenant.slug)
        await db.commit()
        await db.refresh(owner)
        await db.refresh(tenant)

        logger.info(f"✅ Registered tenant '{tenant.slug}' with owner {owner.email}")
        return _token_pair(owner, tenant)

    async def login(self, db: AsyncSession, data: LoginRequest) -> TokenResponse:
        stmt = (
            select(User, Tenant)
            .join(Tenant, Tenant.id == User.tenant_id)
            .where(User.email == data.email)
        )
        if data.tenant_slug:
            stmt = stmt.where(Tenant.slug == data.tenant_slug)
        rows = (await db.execute(stmt)).all()

        if len(rows) > 1:
            raise BadRequestError("This email belongs to several tenants. Please provide tenant_slug.")

        if not rows or not verify_password(data.password, rows[0][0].hashed_password):
            raise UnauthorizedError("Invalid credentials")

        user, tenant = rows[0]
        if user.status != UserStatus.ACTIVE:
            raise UnauthorizedError("Account is inactive")

        user.last_login_at = datetime.utcnow()
        await db.commit()

        logger.info(f"User {user.email} logged in to tenant {tenant.slug}")
        return _token_pair(user, tenant)

    async def refresh(self, db: AsyncSession, refresh_token: str) -> TokenResponse:
        payload = decode_token(refresh_token, REFRESH_TOKEN)
        try:
            user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            raise UnauthorizedError("Invalid token.")

        result = await db.execute(
            select(User, Tenant)
            .join(Tenant, Tenant.id == User.tenant_id)
            .where(User.id == user_id, User.tenant_id == payload["tenant_id"])
        )
        row = result.first()
        if row is None or row[0].status != UserStatus.ACTIVE:
            raise UnauthorizedError("Invalid token or user inactive.")
        return _token_pair(row[0], row[1])

    def logout(self, user: User) -> None:
        """Tokens are stateless JWTs; the client drops them and they expire on their own"""
        logger.info(f"User {user.id} logged out (tenant {user.tenant_id})")

    async def forgot_password(self, db: AsyncSession, email: str, tenant_slug: str = None) -> str:
        """
        Issue a reset token and email the link. The response is the same
        whether or not the account exists.
        """
        stmt = select(User).join(Tenant, Tenant.id == User.tenant_id).where(
            User.email == email, User.status == UserStatus.ACTIVE
        )
        if tenant_slug:
            stmt = stmt.where(Tenant.slug == tenant_slug)
        users = list((await db.execute(stmt)).scalars().all())

        if len(users) != 1:
            return RESET_REQUESTED_MESSAGE

        user = users[0]
        reset_token = secrets.token_urlsafe(32)
        user.reset_token = reset_token
        user.reset_token_expires = datetime.utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
        await db.commit()

        reset_url = f"{settings.FRONTEND_URL}/reset-password?token={reset_token}"
        asyncio.create_task(
            email_service.send_password_reset_email(
                user_email=user.email,
                user_full_name=user.name,
                reset_url=reset_url
            )
        )

        logger.info(f"Password reset requested for user: {user.email}")
        return RESET_REQUESTED_MESSAGE

    async def reset_password(self, db: AsyncSession, data: ResetPasswordRequest) -> None:
        result = await db.execute(
            select(User).where(
                User.reset_token == data.token,
                User.reset_token_expires.isnot(None)
            )
        )
        user = result.scalar_one_or_none()

        if not user:
            raise BadRequestError("Invalid or expired reset token")

        if user.reset_token_expires < datetime.utcnow():
            user.reset_token = None
            user.reset_token_expires = None
            await db.commit()
            raise BadRequestError("Reset token has expired. Please request a new password reset.")

        user.hashed_password = get_password_hash(data.new_password)
        user.reset_token = None
        user.reset_token_expires = None
        await db.commit()

        logger.info(f"Password successfully reset for user: {user.email}")


auth_service = AuthService()
