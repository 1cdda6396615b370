import logging
from datetime import datetime, timedelta
from typing import List

from sqlalchemy import func, select

from billing_service import to_money
from models import (
    Customer, CustomerStatus, Invoice, InvoiceStatus, Payment, PaymentStatus, Plan,
    Subscription, SubscriptionStatus, Ticket, TicketStatus
)
from tenant_scope import TenantScope
from usage_service import shift_months

logger = logging.getLogger(__name__)

UNPAID_STATUSES = (InvoiceStatus.PENDING, InvoiceStatus.OVERDUE)

CHART_PERIODS = {"3months": 3, "6months": 6, "12months": 12}


class ReportService:
    """Aggregate views over one tenant's data"""

    async def _revenue(self, scope: TenantScope, start: datetime, end: datetime) -> float:
        """Completed payments received in [start, end); refunds count negative"""
        total = await scope.db.scalar(
            select(func.coalesce(func.sum(Payment.amount), 0.0)).where(
                scope.where(Payment),
                Payment.status == PaymentStatus.COMPLETED,
                Payment.received_at >= start,
                Payment.received_at < end
            )
        )
        return float(to_money(total or 0))

    async def dashboard_stats(self, scope: TenantScope, now: datetime = None) -> dict:
        now = now or datetime.utcnow()
        this_month = shift_months(now, 0)
        last_month = shift_months(now, -1)
        next_month = shift_months(now, 1)

        total_customers = await scope.db.scalar(scope.count(Customer, Customer.status == CustomerStatus.ACTIVE))
        active_subscriptions = await scope.db.scalar(
            scope.count(Subscription, Subscription.status == SubscriptionStatus.ACTIVE)
        )
        pending_invoices = await scope.db.scalar(scope.count(Invoice, Invoice.status.in_(UNPAID_STATUSES)))
        open_tickets = await scope.db.scalar(
            scope.count(Ticket, Ticket.status.in_((TicketStatus.OPEN, TicketStatus.IN_PROGRESS)))
        )

        this_month_revenue = await self._revenue(scope, this_month, next_month)
        last_month_revenue = await self._revenue(scope, last_month, this_month)
        growth = 0.0
        if last_month_revenue > 0:
            growth = round((this_month_revenue - last_month_revenue) / last_month_revenue * 100, 2)

        return {
            "total_customers": total_customers or 0,
            "active_subscriptions": active_subscriptions or 0,
            "pending_invoices": pending_invoices or 0,
            "open_tickets": open_tickets or 0,
            "this_month_revenue": this_month_revenue,
            "last_month_revenue": last_month_revenue,
            "revenue_growth": growth,
        }

    async def revenue_by_month(self, scope: TenantScope, months: int = 12, now: datetime = None) -> List[dict]:
        """Revenue for the last `months` calendar months, oldest first"""
        now = now or datetime.utcnow()
        data = []
        for offset in range(months - 1, -1, -1):
            start = shift_months(now, -offset)
            end = shift_months(now, -offset + 1)
            data.append({
                "period": start.strftime("%b %Y"),
                "revenue": await self._revenue(scope, start, end),
            })
        return data

    async def chart_data(self, scope: TenantScope, period: str = "12months", now: datetime = None) -> List[dict]:
        """Monthly revenue plus the number of customers created by the end of each month"""
        now = now or datetime.utcnow()
        months = CHART_PERIODS.get(period, 12)
        data = await self.revenue_by_month(scope, months=months, now=now)
        for offset, row in zip(range(months - 1, -1, -1), data):
            end = shift_months(now, -offset + 1)
            row["customers"] = await scope.db.scalar(scope.count(Customer, Customer.created_at < end)) or 0
        return data

    async def customer_report(self, scope: TenantScope) -> dict:
        total = await scope.db.scalar(scope.count(Customer))
        active = await scope.db.scalar(scope.count(Customer, Customer.status == CustomerStatus.ACTIVE))
        suspended = await scope.db.scalar(scope.count(Customer, Customer.status == CustomerStatus.SUSPENDED))

        result = await scope.db.execute(
            select(Plan.id, Plan.name, func.count(Subscription.id))
            .join(Subscription, Subscription.plan_id == Plan.id)
            .where(scope.where(Subscription), Subscription.status == SubscriptionStatus.ACTIVE)
            .group_by(Plan.id, Plan.name)
            .order_by(Plan.name)
        )
        by_plan = [
            {"plan_id": plan_id, "plan_name": name, "subscriptions": count}
            for plan_id, name, count in result.all()
        ]

        return {
            "total_customers": total or 0,
            "active_customers": active or 0,
            "suspended_customers": suspended or 0,
            "customers_by_plan": by_plan,
        }

    async def aging_report(self, scope: TenantScope, now: datetime = None) -> dict:
        """
        Unpaid (PENDING/OVERDUE) invoices bucketed by how far the due date lies
        in the past: current (not yet due), 1-30, 31-60 and over 60 days.
        """
        now = now or datetime.utcnow()
        thirty_days_ago = now - timedelta(days=30)
        sixty_days_ago = now - timedelta(days=60)

        buckets = {
            "current": [Invoice.due_date >= now],
            "days30": [Invoice.due_date >= thirty_days_ago, Invoice.due_date < now],
            "days60": [Invoice.due_date >= sixty_days_ago, Invoice.due_date < thirty_days_ago],
            "days90": [Invoice.due_date < sixty_days_ago],
        }

        report = {}
        for name, criteria in buckets.items():
            amount, count = (await scope.db.execute(
                select(func.coalesce(func.sum(Invoice.total), 0.0), func.count(Invoice.id)).where(
                    scope.where(Invoice), Invoice.status.in_(UNPAID_STATUSES), *criteria
                )
            )).one()
            report[name] = {"amount": float(to_money(amount or 0)), "count": count}
        return report


report_service = ReportService()
