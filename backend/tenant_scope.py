"""
Tenant scope capability.

Services never build tenant-owned queries from a bare session: every
request resolves a TenantScope from the authenticated principal, and the
scope is the only thing that hands out SELECT/UPDATE statements and new
rows for tenant-owned models, always filtered by its tenant id.
"""

from typing import Iterable, Optional, Type, TypeVar

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from errors import NotFoundError

T = TypeVar("T")


class TenantScope:
    """Request-scoped capability bound to one tenant and one session"""

    def __init__(self, db: AsyncSession, tenant_id: int, user_id: Optional[int] = None, role: Optional[str] = None):
        if tenant_id is None:
            raise ValueError("TenantScope requires a tenant id")
        self.db = db
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.role = role

    def __repr__(self):
        return f"<TenantScope tenant={self.tenant_id} user={self.user_id}>"

    @staticmethod
    def _tenant_column(model):
        column = getattr(model, "tenant_id", None)
        if column is None:
            raise TypeError(f"{model.__name__} is not a tenant-owned model")
        return column

    def select(self, model: Type[T], *criteria):
        """SELECT model rows belonging to this tenant"""
        return select(model).where(self._tenant_column(model) == self.tenant_id, *criteria)

    def count(self, model, *criteria):
        return (
            select(func.count())
            .select_from(model)
            .where(self._tenant_column(model) == self.tenant_id, *criteria)
        )

    def update(self, model, *criteria):
        return update(model).where(self._tenant_column(model) == self.tenant_id, *criteria)

    def where(self, model):
        """Tenant predicate, for aggregate queries built by hand"""
        return self._tenant_column(model) == self.tenant_id

    def add(self, model: Type[T], **values) -> T:
        """Create a tenant-owned row stamped with this tenant"""
        self._tenant_column(model)
        values.pop("tenant_id", None)
        obj = model(tenant_id=self.tenant_id, **values)
        self.db.add(obj)
        return obj

    async def find(self, model: Type[T], object_id: int, options: Iterable = (), reload: bool = False) -> Optional[T]:
        stmt = self.select(model, model.id == object_id)
        for option in options:
            stmt = stmt.options(option)
        if reload:
            # Overwrite the identity-map copy so eager options apply to it
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, model: Type[T], object_id: int, options: Iterable = (), message: Optional[str] = None, reload: bool = False) -> T:
        """Load one row of this tenant or raise NotFoundError (also for other tenants' ids)"""
        obj = await self.find(model, object_id, options, reload)
        if obj is None:
            raise NotFoundError(message or f"{model.__name__} not found")
        return obj
