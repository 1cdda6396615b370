import logging
from typing import List

from auth import get_password_hash
from errors import BadRequestError
from models import User, UserRole, UserStatus
from schemas import UserCreate, UserUpdate
from tenant_scope import TenantScope

logger = logging.getLogger(__name__)


class UserService:
    """Staff accounts of a tenant"""

    async def list(self, scope: TenantScope) -> List[User]:
        result = await scope.db.execute(
            scope.select(User, User.status != UserStatus.INACTIVE).order_by(User.created_at.desc(), User.id.desc())
        )
        return list(result.scalars().all())

    async def get_by_id(self, scope: TenantScope, user_id: int) -> User:
        return await scope.get(User, user_id, message="User not found")

    async def create(self, scope: TenantScope, data: UserCreate) -> User:
        if await scope.db.scalar(scope.count(User, User.email == data.email)):
            raise BadRequestError("Email already exists")
        if data.role == UserRole.OWNER:
            raise BadRequestError("A tenant has exactly one owner")

        user = scope.add(
            User,
            name=data.name,
            email=data.email,
            hashed_password=get_password_hash(data.password),
            role=data.role,
            status=UserStatus.ACTIVE
        )
        await scope.db.commit()
        await scope.db.refresh(user)
        logger.info(f"Created {user.role.value} user {user.email} for tenant {scope.tenant_id}")
        return user

    async def update(self, scope: TenantScope, user_id: int, data: UserUpdate) -> User:
        user = await self.get_by_id(scope, user_id)
        update_data = data.model_dump(exclude_unset=True)

        if user.role == UserRole.OWNER:
            if update_data.get("role") not in (None, UserRole.OWNER):
                raise BadRequestError("Cannot change the owner's role")
            if update_data.get("status") == UserStatus.INACTIVE:
                raise BadRequestError("Cannot deactivate owner")
        elif update_data.get("role") == UserRole.OWNER:
            raise BadRequestError("A tenant has exactly one owner")

        password = update_data.pop("password", None)
        if password:
            user.hashed_password = get_password_hash(password)

        for field, value in update_data.items():
            if value is not None:
                setattr(user, field, value)

        await scope.db.commit()
        await scope.db.refresh(user)
        return user

    async def deactivate(self, scope: TenantScope, user_id: int) -> None:
        user = await self.get_by_id(scope, user_id)
        if user.role == UserRole.OWNER:
            raise BadRequestError("Cannot deactivate owner")

        user.status = UserStatus.INACTIVE
        await scope.db.commit()
        logger.info(f"User {user.email} deactivated (tenant {scope.tenant_id})")


user_service = UserService()
