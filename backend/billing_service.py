"""
Recurring billing engine.

A billing run selects the tenant's due subscriptions (ACTIVE, auto-renew,
ends_at <= billing date), creates one PENDING invoice per subscription for
the period [ends_at, ends_at + plan.duration_days) and advances ends_at to
the end of that period.

Guarantees:
- Idempotent per period: an existing invoice for the same subscription
  period fails that subscription with DuplicateInvoiceError, backed by a
  unique constraint for writers in other processes. Any other unique
  violation (e.g. an invoice number clash) is reported as such.
- Each subscription is billed inside its own SAVEPOINT; a failure rolls back
  only that subscription and is reported in the result's errors.
- ends_at is advanced with a compare-and-swap on the old value, so a
  subscription can only be billed once per period even across processes.
- Explicitly requested subscriptions that were not billed are reported in
  errors, e.g. when the period containing the billing date is already
  invoiced.
- Runs for one tenant are serialised in-process.
- Dry runs compute the same figures but persist nothing and are not logged.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from errors import DuplicateInvoiceError, ConcurrentBillingError
from invoice_numbering import generate_invoice_number
from models import (
    Subscription, SubscriptionStatus, Invoice, InvoiceItem, InvoiceItemType,
    InvoiceStatus, BillingRun, BillingRunItem, BillingRunStatus, BillingRunOutcome
)
from schemas import (
    InvoiceSettings, BillingResult, BilledInvoice, BillingPreview,
    BillingPreviewItem, BillingPreviewSummary, BillingStatus
)
from setting_service import setting_service
from tenant_scope import TenantScope

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")

_tenant_locks: Dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)


def to_money(value) -> Decimal:
    """Round to cents, half up"""
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def compute_charges(price: float, tax_rate: float) -> Tuple[Decimal, Decimal, Decimal]:
    """(subtotal, tax_amount, total) for a plan price and tax percentage"""
    subtotal = to_money(price)
    tax_amount = to_money(subtotal * Decimal(str(tax_rate)) / Decimal(100))
    return subtotal, tax_amount, subtotal + tax_amount


def to_naive_utc(value: Optional[datetime]) -> datetime:
    """Datetimes are stored as naive UTC"""
    if value is None:
        return datetime.utcnow()
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def recurring_label(plan_name: str, period_start: datetime, period_end: datetime) -> str:
    return f"{plan_name} ({period_start:%b %d} - {period_end:%b %d, %Y})"


def tax_label(tax_rate: float) -> str:
    return f"Tax ({tax_rate:g}%)"


def tenant_lock(tenant_id: int) -> asyncio.Lock:
    return _tenant_locks[tenant_id]


class BillingService:

    def _due_query(self, scope: TenantScope, billing_date: datetime, subscription_ids: Optional[List[int]] = None):
        stmt = scope.select(
            Subscription,
            Subscription.status == SubscriptionStatus.ACTIVE,
            Subscription.auto_renew.is_(True),
            Subscription.ends_at.is_not(None),
            Subscription.ends_at <= billing_date
        ).order_by(Subscription.ends_at, Subscription.id)
        if subscription_ids is not None:
            stmt = stmt.where(Subscription.id.in_(subscription_ids))
        return stmt

    async def get_due_subscriptions(self, scope: TenantScope, billing_date: datetime, subscription_ids: Optional[List[int]] = None) -> List[Subscription]:
        result = await scope.db.execute(self._due_query(scope, billing_date, subscription_ids))
        return list(result.scalars().all())

    async def run_billing(
        self,
        scope: TenantScope,
        billing_date: Optional[datetime] = None,
        subscription_ids: Optional[List[int]] = None,
        dry_run: bool = False,
        triggered_by: str = "api"
    ) -> BillingResult:
        """Bill every due subscription of the tenant. Per-subscription failures are collected, not raised."""
        billing_date = to_naive_utc(billing_date)
        async with tenant_lock(scope.tenant_id):
            return await self._run(scope, billing_date, subscription_ids, dry_run, triggered_by)

    async def _run(self, scope: TenantScope, billing_date: datetime, subscription_ids, dry_run: bool, triggered_by: str) -> BillingResult:
        db = scope.db
        result = BillingResult()
        run = None

        if not dry_run:
            run = scope.add(
                BillingRun,
                billing_date=billing_date,
                dry_run=False,
                triggered_by=triggered_by,
                status=BillingRunStatus.RUNNING,
                started_at=datetime.utcnow()
            )
            await db.commit()
            result.run_id = run.id

        logger.info(
            f"Billing run started for tenant {scope.tenant_id} "
            f"(date={billing_date:%Y-%m-%d}, dry_run={dry_run}, by={triggered_by})"
        )

        try:
            invoice_settings = await setting_service.get_invoice_settings(scope)
            subscriptions = await self.get_due_subscriptions(scope, billing_date, subscription_ids)
            result.processed = len(subscriptions)
            total_amount = Decimal("0")
            run_items = []

            for subscription in subscriptions:
                subscription_id = subscription.id
                period_start = subscription.ends_at
                try:
                    async with db.begin_nested():
                        billed = await self._bill_subscription(scope, subscription, billing_date, invoice_settings, dry_run)
                except Exception as e:
                    if isinstance(e, IntegrityError):
                        message = await self._conflict_reason(scope, subscription_id, period_start, e)
                    else:
                        message = getattr(e, "message", None) or str(e) or e.__class__.__name__
                    result.failed += 1
                    result.errors.append(f"Subscription {subscription_id}: {message}")
                    run_items.append(BillingRunItem(
                        subscription_id=subscription_id,
                        outcome=BillingRunOutcome.FAILED,
                        error=message
                    ))
                    logger.warning(f"Billing failed for subscription {subscription_id}: {message}")
                    continue

                result.successful += 1
                total_amount += to_money(billed.total)
                result.invoices.append(billed)
                run_items.append(BillingRunItem(
                    subscription_id=subscription_id,
                    invoice_id=billed.id,
                    outcome=BillingRunOutcome.INVOICED,
                    amount=billed.total
                ))

            if subscription_ids is not None:
                billed_ids = {subscription.id for subscription in subscriptions}
                for subscription_id in dict.fromkeys(subscription_ids):
                    if subscription_id in billed_ids:
                        continue
                    message = await self._skip_reason(scope, subscription_id, billing_date)
                    result.processed += 1
                    result.failed += 1
                    result.errors.append(f"Subscription {subscription_id}: {message}")
                    run_items.append(BillingRunItem(
                        subscription_id=subscription_id,
                        outcome=BillingRunOutcome.FAILED,
                        error=message
                    ))

            result.total_amount = float(total_amount)

            if run is not None:
                for item in run_items:
                    item.run_id = run.id
                    db.add(item)
                self._finish_run(run, result, BillingRunStatus.COMPLETED)
                await db.commit()
        except Exception:
            await db.rollback()
            if run is not None:
                await self._mark_run_failed(scope, run.id, result)
            raise

        logger.info(
            f"Billing run finished for tenant {scope.tenant_id}: processed={result.processed} "
            f"successful={result.successful} failed={result.failed} total={result.total_amount:.2f}"
            + (" (dry run)" if dry_run else "")
        )
        return result

    async def _skip_reason(self, scope: TenantScope, subscription_id: int, billing_date: datetime) -> str:
        """Why an explicitly requested subscription was not billed"""
        subscription = await scope.find(Subscription, subscription_id)
        if subscription is None:
            return "Subscription not found"

        already_billed = await scope.db.scalar(
            select(Invoice.id).where(
                scope.where(Invoice),
                Invoice.subscription_id == subscription_id,
                Invoice.period_start <= billing_date,
                Invoice.period_end > billing_date
            ).limit(1)
        )
        if already_billed is not None:
            return DuplicateInvoiceError().message
        return "Subscription is not due for billing"

    async def _conflict_reason(self, scope: TenantScope, subscription_id: int, period_start: datetime, error: IntegrityError) -> str:
        """Message for a unique violation raised while saving an invoice"""
        existing = await scope.db.scalar(
            select(Invoice.id).where(
                scope.where(Invoice),
                Invoice.subscription_id == subscription_id,
                Invoice.period_start == period_start
            ).limit(1)
        )
        if existing is not None:
            # Another writer created the invoice for this period first
            return DuplicateInvoiceError().message
        logger.error(f"Invoice for subscription {subscription_id} violated a constraint: {error.orig}")
        return f"Invoice could not be saved: {error.orig}"

    async def _bill_subscription(
        self,
        scope: TenantScope,
        subscription: Subscription,
        billing_date: datetime,
        invoice_settings: InvoiceSettings,
        dry_run: bool
    ) -> BilledInvoice:
        db = scope.db
        plan = subscription.plan
        period_start = subscription.ends_at
        period_end = period_start + timedelta(days=plan.duration_days)

        existing = await db.scalar(
            select(Invoice.id).where(
                scope.where(Invoice),
                Invoice.subscription_id == subscription.id,
                Invoice.period_start == period_start,
                Invoice.period_end == period_end
            ).limit(1)
        )
        if existing is not None:
            raise DuplicateInvoiceError()

        subtotal, tax_amount, total = compute_charges(plan.price, plan.tax_rate)
        due_date = billing_date + timedelta(days=invoice_settings.due_days)

        billed = BilledInvoice(
            subscription_id=subscription.id,
            customer_id=subscription.customer_id,
            period_start=period_start,
            period_end=period_end,
            subtotal=float(subtotal),
            tax_amount=float(tax_amount),
            total=float(total),
            due_date=due_date
        )
        if dry_run:
            return billed

        number = await generate_invoice_number(scope, billing_date, invoice_settings)
        invoice = scope.add(
            Invoice,
            subscription_id=subscription.id,
            customer_id=subscription.customer_id,
            number=number,
            period_start=period_start,
            period_end=period_end,
            subtotal=float(subtotal),
            tax_amount=float(tax_amount),
            total=float(total),
            status=InvoiceStatus.PENDING,
            due_date=due_date
        )
        items = [InvoiceItem(
            type=InvoiceItemType.RECURRING,
            label=recurring_label(plan.name, period_start, period_end),
            quantity=1,
            unit_price=float(subtotal),
            amount=float(subtotal)
        )]
        if tax_amount > 0:
            items.append(InvoiceItem(
                type=InvoiceItemType.TAX,
                label=tax_label(plan.tax_rate),
                quantity=1,
                unit_price=float(tax_amount),
                amount=float(tax_amount)
            ))
        invoice.items = items

        # A unique violation here is classified by the caller once the
        # savepoint has been rolled back
        await db.flush()

        advanced = await db.execute(
            scope.update(
                Subscription,
                Subscription.id == subscription.id,
                Subscription.ends_at == period_start
            )
            .values(ends_at=period_end)
            .execution_options(synchronize_session=False)
        )
        if advanced.rowcount != 1:
            raise ConcurrentBillingError()
        set_committed_value(subscription, "ends_at", period_end)

        billed.id = invoice.id
        billed.number = number
        billed.status = InvoiceStatus.PENDING
        return billed

    @staticmethod
    def _finish_run(run: BillingRun, result: BillingResult, status: BillingRunStatus):
        run.status = status
        run.finished_at = datetime.utcnow()
        run.processed = result.processed
        run.successful = result.successful
        run.failed = result.failed
        run.total_amount = result.total_amount

    async def _mark_run_failed(self, scope: TenantScope, run_id: int, result: BillingResult):
        run = await scope.find(BillingRun, run_id)
        if run is None:
            return
        self._finish_run(run, result, BillingRunStatus.FAILED)
        await scope.db.commit()
        logger.error(f"Billing run {run_id} for tenant {scope.tenant_id} failed")

    async def preview_billing(self, scope: TenantScope, as_of: Optional[datetime] = None) -> BillingPreview:
        """What a run at as_of would invoice. Read-only."""
        as_of = to_naive_utc(as_of)
        invoice_settings = await setting_service.get_invoice_settings(scope)
        subscriptions = await self.get_due_subscriptions(scope, as_of)
        due_date = as_of + timedelta(days=invoice_settings.due_days)

        preview = []
        total_amount = revenue = tax = Decimal("0")
        for subscription in subscriptions:
            subtotal, tax_amount, total = compute_charges(subscription.plan.price, subscription.plan.tax_rate)
            total_amount += total
            revenue += subtotal
            tax += tax_amount
            preview.append(BillingPreviewItem(
                subscription_id=subscription.id,
                customer_name=subscription.customer.name,
                plan_name=subscription.plan.name,
                subtotal=float(subtotal),
                tax_amount=float(tax_amount),
                total=float(total),
                due_date=due_date
            ))

        return BillingPreview(
            preview=preview,
            summary=BillingPreviewSummary(
                total_subscriptions=len(preview),
                total_amount=float(total_amount),
                estimated_revenue=float(revenue),
                estimated_tax=float(tax)
            )
        )

    async def get_billing_status(self, scope: TenantScope) -> BillingStatus:
        db = scope.db
        now = datetime.utcnow()
        pending = await db.scalar(scope.count(
            Subscription,
            Subscription.status == SubscriptionStatus.ACTIVE,
            Subscription.auto_renew.is_(True),
            Subscription.ends_at <= now
        ))

        last_run = (await db.execute(
            scope.select(BillingRun).order_by(BillingRun.started_at.desc(), BillingRun.id.desc()).limit(1)
        )).scalar_one_or_none()

        if last_run is not None:
            last_billing_run = last_run.finished_at or last_run.started_at
            last_run_id = last_run.id
        else:
            # No logged run yet: fall back to the newest invoice
            last_billing_run = await db.scalar(
                select(func.max(Invoice.created_at)).where(scope.where(Invoice))
            )
            last_run_id = None

        return BillingStatus(
            pending_subscriptions=pending or 0,
            last_billing_run=last_billing_run,
            last_run_id=last_run_id,
            status="PENDING" if pending else "UP_TO_DATE"
        )

    async def list_runs(self, scope: TenantScope, page: int = 1, limit: int = 20) -> Tuple[List[BillingRun], int]:
        db = scope.db
        total = await db.scalar(scope.count(BillingRun))
        result = await db.execute(
            scope.select(BillingRun)
            .order_by(BillingRun.started_at.desc(), BillingRun.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def get_run(self, scope: TenantScope, run_id: int) -> BillingRun:
        return await scope.get(
            BillingRun, run_id,
            options=[selectinload(BillingRun.items)],
            message="Billing run not found",
            reload=True
        )

    async def mark_overdue_invoices(self, scope: TenantScope, as_of: Optional[datetime] = None) -> int:
        """Flip PENDING invoices whose due date has passed to OVERDUE"""
        as_of = to_naive_utc(as_of)
        result = await scope.db.execute(
            scope.update(
                Invoice,
                Invoice.status == InvoiceStatus.PENDING,
                Invoice.due_date < as_of
            )
            .values(status=InvoiceStatus.OVERDUE)
            .execution_options(synchronize_session=False)
        )
        await scope.db.commit()
        if result.rowcount:
            logger.info(f"Marked {result.rowcount} invoice(s) overdue for tenant {scope.tenant_id}")
        return result.rowcount


billing_service = BillingService()
