from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from config import settings
from database import get_db
from errors import UnauthorizedError, ForbiddenError
from models import User, UserRole, UserStatus, Customer, CustomerStatus
from tenant_scope import TenantScope

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"
PORTAL_TOKEN = "portal"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password"""
    return pwd_context.hash(password)


def _encode(claims: dict, expires_delta: timedelta) -> str:
    to_encode = claims.copy()
    to_encode["exp"] = datetime.utcnow() + expires_delta
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(user_id: int, tenant_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token carrying the tenant context"""
    return _encode(
        {"sub": str(user_id), "tenant_id": tenant_id, "type": ACCESS_TOKEN},
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )


def create_refresh_token(user_id: int, tenant_id: int) -> str:
    return _encode(
        {"sub": str(user_id), "tenant_id": tenant_id, "type": REFRESH_TOKEN},
        timedelta(minutes=settings.REFRESH_TOKEN_EXPIRE_MINUTES)
    )


def create_portal_token(customer_id: int, tenant_id: int) -> str:
    """Token for the customer self-service portal (not valid for staff endpoints)"""
    return _encode(
        {"sub": f"customer:{customer_id}", "customer_id": customer_id, "tenant_id": tenant_id, "type": PORTAL_TOKEN},
        timedelta(minutes=settings.PORTAL_TOKEN_EXPIRE_MINUTES)
    )


def decode_token(token: str, expected_type: str) -> dict:
    """Decode and check the token type, raising UnauthorizedError on any problem"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise UnauthorizedError("Invalid token.")
    if payload.get("type") != expected_type or payload.get("tenant_id") is None:
        raise UnauthorizedError("Invalid token.")
    return payload


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Get the current authenticated staff user"""
    if not token:
        raise UnauthorizedError("Access denied. No token provided.")

    payload = decode_token(token, ACCESS_TOKEN)
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise UnauthorizedError("Invalid token.")

    result = await db.execute(
        select(User).where(User.id == user_id, User.tenant_id == payload["tenant_id"])
    )
    user = result.scalar_one_or_none()

    if user is None or user.status != UserStatus.ACTIVE:
        raise UnauthorizedError("Invalid token or user inactive.")
    return user


async def get_tenant_scope(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> TenantScope:
    """
    Tenant capability for the request.
    The tenant always comes from the authenticated user, never from client input.
    """
    return TenantScope(db, current_user.tenant_id, user_id=current_user.id, role=current_user.role.value)


def require_roles(*roles: UserRole):
    """
    Dependency factory for role checks.

    Usage:
        @router.post("/run")
        async def run(scope: TenantScope = Depends(require_roles(UserRole.OWNER, UserRole.ADMIN))):
            ...
    """
    allowed = {role.value for role in roles}

    async def checker(
        current_user: User = Depends(get_current_user),
        scope: TenantScope = Depends(get_tenant_scope)
    ) -> TenantScope:
        if current_user.role.value not in allowed:
            raise ForbiddenError("Access denied. Insufficient permissions.")
        return scope
    return checker


async def get_portal_customer(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> Customer:
    """Resolve the portal customer from a portal token"""
    if not token:
        raise UnauthorizedError("Access denied. No token provided.")

    payload = decode_token(token, PORTAL_TOKEN)
    result = await db.execute(
        select(Customer).where(
            Customer.id == payload.get("customer_id"),
            Customer.tenant_id == payload["tenant_id"]
        )
    )
    customer = result.scalar_one_or_none()

    if customer is None or customer.status != CustomerStatus.ACTIVE:
        raise UnauthorizedError("Invalid token or customer inactive.")
    return customer
