import logging
from typing import List, Tuple

from sqlalchemy import func, select

from errors import BadRequestError
from models import Plan, Subscription, SubscriptionStatus
from schemas import PlanCreate, PlanUpdate
from tenant_scope import TenantScope

logger = logging.getLogger(__name__)


class PlanService:
    """Plans are deactivated, never deleted, so historical invoices keep their plan"""

    async def list(self, scope: TenantScope) -> List[Tuple[Plan, int]]:
        """Active plans, cheapest first, with their subscription count"""
        subscription_count = (
            select(func.count(Subscription.id))
            .where(Subscription.plan_id == Plan.id)
            .correlate(Plan)
            .scalar_subquery()
        )
        result = await scope.db.execute(
            select(Plan, subscription_count)
            .where(scope.where(Plan), Plan.is_active == True)
            .order_by(Plan.price.asc(), Plan.id.asc())
        )
        return [tuple(row) for row in result.all()]

    async def get_by_id(self, scope: TenantScope, plan_id: int) -> Plan:
        return await scope.get(Plan, plan_id, message="Plan not found")

    async def create(self, scope: TenantScope, data: PlanCreate) -> Plan:
        plan = scope.add(
            Plan,
            name=data.name,
            speed_mbps=data.speed_mbps,
            quota_gb=data.quota_gb,
            price=data.price,
            duration_days=data.duration_days,
            tax_rate=data.tax_rate,
            fup=data.fup.model_dump(by_alias=True) if data.fup else None,
            is_active=True
        )
        await scope.db.commit()
        await scope.db.refresh(plan)
        logger.info(f"Created plan '{plan.name}' ({plan.price}) for tenant {scope.tenant_id}")
        return plan

    async def update(self, scope: TenantScope, plan_id: int, data: PlanUpdate) -> Plan:
        plan = await self.get_by_id(scope, plan_id)
        update_data = data.model_dump(exclude_unset=True)

        if "fup" in update_data:
            update_data["fup"] = data.fup.model_dump(by_alias=True) if data.fup else None

        for field, value in update_data.items():
            setattr(plan, field, value)

        await scope.db.commit()
        await scope.db.refresh(plan)
        return plan

    async def deactivate(self, scope: TenantScope, plan_id: int) -> None:
        plan = await self.get_by_id(scope, plan_id)

        active = await scope.db.scalar(scope.count(
            Subscription,
            Subscription.plan_id == plan.id,
            Subscription.status == SubscriptionStatus.ACTIVE
        ))
        if active:
            raise BadRequestError("Cannot deactivate plan with active subscriptions")

        plan.is_active = False
        await scope.db.commit()
        logger.info(f"Plan {plan.id} deactivated (tenant {scope.tenant_id})")


plan_service = PlanService()
