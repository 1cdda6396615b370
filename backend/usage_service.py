import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from errors import NotFoundError
from models import Subscription, UsageCounter
from schemas import UsageRecord
from tenant_scope import TenantScope

logger = logging.getLogger(__name__)


def month_period(moment: datetime) -> str:
    """Usage period key (YYYY-MM)"""
    return moment.strftime("%Y-%m")


def shift_months(moment: datetime, months: int) -> datetime:
    """First day of the month `months` away from moment's month"""
    index = moment.year * 12 + (moment.month - 1) + months
    return datetime(index // 12, index % 12 + 1, 1)


class UsageService:

    async def _resolve_subscription(self, scope: TenantScope, record: UsageRecord) -> Optional[Subscription]:
        if record.subscription_id:
            return await scope.find(Subscription, record.subscription_id)
        if record.username:
            result = await scope.db.execute(scope.select(Subscription, Subscription.username == record.username))
            return result.scalar_one_or_none()
        return None

    async def import_records(self, scope: TenantScope, records: List[UsageRecord]) -> dict:
        """
        Upsert monthly counters. Each record is applied on its own savepoint;
        bad records are reported and skipped.
        """
        imported = 0
        errors = []

        for index, record in enumerate(records, start=1):
            label = record.subscription_id or record.username or f"row {index}"
            subscription = await self._resolve_subscription(scope, record)
            if subscription is None:
                errors.append(f"Subscription {label} not found")
                continue

            try:
                async with scope.db.begin_nested():
                    result = await scope.db.execute(scope.select(
                        UsageCounter,
                        UsageCounter.subscription_id == subscription.id,
                        UsageCounter.period == record.period
                    ))
                    counter = result.scalar_one_or_none()
                    if counter is None:
                        counter = scope.add(UsageCounter, subscription_id=subscription.id, period=record.period)
                    counter.up_bytes = record.up_bytes
                    counter.down_bytes = record.down_bytes
                    counter.total_bytes = record.up_bytes + record.down_bytes
                    counter.sessions = record.sessions
                    counter.last_updated_at = datetime.utcnow()
                imported += 1
            except SQLAlchemyError as e:
                logger.warning(f"Usage import failed for {label}: {e}")
                errors.append(f"Error processing {label}: {e.__class__.__name__}")

        await scope.db.commit()
        logger.info(f"Usage import for tenant {scope.tenant_id}: {imported} imported, {len(errors)} failed")
        return {"imported": imported, "failed": len(errors), "errors": errors}

    async def get_by_subscription(self, scope: TenantScope, subscription_id: int, period: Optional[str] = None) -> List[UsageCounter]:
        if await scope.find(Subscription, subscription_id) is None:
            raise NotFoundError("Subscription not found")

        criteria = [UsageCounter.subscription_id == subscription_id]
        if period:
            criteria.append(UsageCounter.period == period)
        result = await scope.db.execute(
            scope.select(UsageCounter, *criteria).order_by(UsageCounter.period.desc())
        )
        return list(result.scalars().all())

    async def history(self, scope: TenantScope, subscription_id: int, months: int = 6, now: datetime = None) -> List[dict]:
        """Counters for the last `months` months, oldest first, zero-filled"""
        now = now or datetime.utcnow()
        periods = [month_period(shift_months(now, -offset)) for offset in range(months - 1, -1, -1)]

        result = await scope.db.execute(scope.select(
            UsageCounter,
            UsageCounter.subscription_id == subscription_id,
            UsageCounter.period.in_(periods)
        ))
        counters = {counter.period: counter for counter in result.scalars().all()}

        history = []
        for period in periods:
            counter = counters.get(period)
            history.append({
                "period": period,
                "up_bytes": counter.up_bytes if counter else 0,
                "down_bytes": counter.down_bytes if counter else 0,
                "total_bytes": counter.total_bytes if counter else 0,
                "sessions": counter.sessions if counter else 0,
            })
        return history


usage_service = UsageService()
