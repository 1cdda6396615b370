"""
Billing Scheduler - daily background billing for every tenant

This module handles:
1. Running the billing engine for each tenant (recorded in the run log as
   triggered_by="scheduler")
2. Status updates (PENDING -> OVERDUE) for invoices past their due date

Run as a background task using APScheduler.
"""

import asyncio
import logging
from datetime import datetime

from sqlalchemy import select

from billing_service import billing_service
from config import settings
from database import async_session_maker
from models import Tenant
from tenant_scope import TenantScope

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def bill_all_tenants(billing_date: datetime = None):
    """Run billing and overdue marking for each tenant in its own session"""
    billing_date = billing_date or datetime.utcnow()
    logger.info(f"🔍 Starting scheduled billing for {billing_date:%Y-%m-%d %H:%M}...")

    async with async_session_maker() as db:
        tenant_ids = (await db.execute(select(Tenant.id).order_by(Tenant.id))).scalars().all()

    logger.info(f"📊 Found {len(tenant_ids)} tenant(s) to bill")

    for tenant_id in tenant_ids:
        async with async_session_maker() as db:
            scope = TenantScope(db, tenant_id)
            try:
                result = await billing_service.run_billing(scope, billing_date=billing_date, triggered_by="scheduler")
                overdue = await billing_service.mark_overdue_invoices(scope, billing_date)
                logger.info(
                    f"✅ Tenant {tenant_id}: {result.successful}/{result.processed} invoiced "
                    f"({result.total_amount:.2f}), {overdue} marked overdue"
                )
                for error in result.errors:
                    logger.warning(f"⚠️ Tenant {tenant_id}: {error}")
            except Exception as e:
                # One tenant's failure must not stop the others
                logger.error(f"❌ Billing failed for tenant {tenant_id}: {str(e)}", exc_info=True)

    logger.info("✅ Scheduled billing completed")


async def run_billing_jobs():
    """Main entry point for the daily billing job."""
    logger.info("=" * 60)
    logger.info("🚀 Starting billing maintenance...")
    logger.info("=" * 60)

    await bill_all_tenants()

    logger.info("=" * 60)
    logger.info("✅ Billing maintenance completed successfully")
    logger.info("=" * 60)


# ============================================================================
# Scheduler Setup (APScheduler)
# ============================================================================

def start_billing_scheduler():
    """
    Start the APScheduler background scheduler for billing.
    Runs once a day at BILLING_SCHEDULER_HOUR (UTC).
    """
    from apscheduler.schedulers.asyncio import AsyncIOScheduler
    from apscheduler.triggers.cron import CronTrigger

    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        run_billing_jobs,
        CronTrigger(hour=settings.BILLING_SCHEDULER_HOUR, minute=0),
        id='daily_billing',
        name='Daily Recurring Billing',
        replace_existing=True
    )

    scheduler.start()
    logger.info(f"📅 Billing scheduler started - runs daily at {settings.BILLING_SCHEDULER_HOUR:02d}:00 UTC")

    return scheduler


if __name__ == "__main__":
    asyncio.run(run_billing_jobs())
