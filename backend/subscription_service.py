import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import or_

from billing_service import to_naive_utc
from errors import BadRequestError, NotFoundError
from models import Customer, Plan, Subscription, SubscriptionStatus
from schemas import SubscriptionCreate, SubscriptionUpdate
from tenant_scope import TenantScope

logger = logging.getLogger(__name__)


class SubscriptionService:

    async def list(
        self,
        scope: TenantScope,
        page: int = 1,
        limit: int = 20,
        status: Optional[SubscriptionStatus] = None,
        customer_id: Optional[int] = None,
        q: Optional[str] = None
    ) -> Tuple[List[Subscription], int]:
        criteria = []
        if status:
            criteria.append(Subscription.status == status)
        if customer_id:
            criteria.append(Subscription.customer_id == customer_id)
        if q:
            criteria.append(or_(Subscription.username.contains(q), Subscription.mac.contains(q)))

        total = await scope.db.scalar(scope.count(Subscription, *criteria))
        result = await scope.db.execute(
            scope.select(Subscription, *criteria)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def get_by_id(self, scope: TenantScope, subscription_id: int) -> Subscription:
        return await scope.get(Subscription, subscription_id, message="Subscription not found")

    async def _ensure_username_free(self, scope: TenantScope, username: str, exclude_id: Optional[int] = None):
        criteria = [Subscription.username == username]
        if exclude_id:
            criteria.append(Subscription.id != exclude_id)
        if await scope.db.scalar(scope.count(Subscription, *criteria)):
            raise BadRequestError("Username already exists")

    async def _active_plan(self, scope: TenantScope, plan_id: int) -> Plan:
        result = await scope.db.execute(scope.select(Plan, Plan.id == plan_id, Plan.is_active == True))
        plan = result.scalar_one_or_none()
        if plan is None:
            raise NotFoundError("Plan not found or inactive")
        return plan

    async def create(self, scope: TenantScope, data: SubscriptionCreate) -> Subscription:
        """
        Create a PENDING subscription. The first billing is due one plan
        duration after the start date.
        """
        if await scope.find(Customer, data.customer_id) is None:
            raise NotFoundError("Customer not found")

        plan = await self._active_plan(scope, data.plan_id)

        if data.username:
            await self._ensure_username_free(scope, data.username)

        start_date = to_naive_utc(data.start_date) if data.start_date else datetime.utcnow()

        subscription = scope.add(
            Subscription,
            customer_id=data.customer_id,
            plan_id=plan.id,
            username=data.username,
            mac=data.mac,
            access_type=data.access_type,
            auto_renew=data.auto_renew,
            status=SubscriptionStatus.PENDING,
            started_at=start_date,
            ends_at=start_date + timedelta(days=plan.duration_days)
        )
        await scope.db.commit()
        logger.info(f"Created subscription {subscription.id} on plan '{plan.name}' (tenant {scope.tenant_id})")
        return await scope.get(Subscription, subscription.id, reload=True)

    async def update(self, scope: TenantScope, subscription_id: int, data: SubscriptionUpdate) -> Subscription:
        subscription = await self.get_by_id(scope, subscription_id)
        update_data = data.model_dump(exclude_unset=True)

        if update_data.get("plan_id") and update_data["plan_id"] != subscription.plan_id:
            await self._active_plan(scope, update_data["plan_id"])

        if update_data.get("username") and update_data["username"] != subscription.username:
            await self._ensure_username_free(scope, update_data["username"], exclude_id=subscription.id)

        for field, value in update_data.items():
            setattr(subscription, field, value)

        await scope.db.commit()
        return await scope.get(Subscription, subscription.id, reload=True)

    async def update_status(self, scope: TenantScope, subscription_id: int, status: SubscriptionStatus) -> Subscription:
        subscription = await self.get_by_id(scope, subscription_id)
        previous = subscription.status
        subscription.status = status
        if status == SubscriptionStatus.ACTIVE and subscription.started_at is None:
            subscription.started_at = datetime.utcnow()

        await scope.db.commit()
        logger.info(f"Subscription {subscription.id} status {previous.value} -> {status.value}")
        return subscription

    async def delete(self, scope: TenantScope, subscription_id: int) -> None:
        subscription = await self.get_by_id(scope, subscription_id)
        if subscription.status == SubscriptionStatus.ACTIVE:
            raise BadRequestError("Cannot delete an active subscription")

        await scope.db.delete(subscription)
        await scope.db.commit()
        logger.info(f"Deleted subscription {subscription_id} (tenant {scope.tenant_id})")


subscription_service = SubscriptionService()
