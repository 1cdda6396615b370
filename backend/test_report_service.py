from datetime import datetime

import pytest

from billing_service import billing_service
from invoice_service import invoice_service
from models import InvoiceStatus, Payment, PaymentMethod, PaymentStatus, UserRole
from report_service import report_service
from tenant_scope import TenantScope


def add_payment(scope, amount, received_at, status=PaymentStatus.COMPLETED):
    return scope.add(
        Payment,
        method=PaymentMethod.CASH,
        amount=amount,
        status=status,
        received_at=received_at
    )


@pytest.fixture
async def billed(scope):
    """John (58.99) and Tech Solutions (176.99), both due 2024-02-16"""
    return await billing_service.run_billing(scope, billing_date=datetime(2024, 2, 1))


async def test_dashboard_revenue_growth(scope, db, other_tenant):
    add_payment(scope, 100.0, datetime(2024, 1, 10))
    add_payment(scope, 150.0, datetime(2024, 2, 5))
    add_payment(scope, -25.0, datetime(2024, 2, 6))  # refund
    add_payment(scope, 999.0, datetime(2024, 2, 7), status=PaymentStatus.PENDING)
    add_payment(TenantScope(db, other_tenant.id), 500.0, datetime(2024, 2, 8))
    await db.commit()

    stats = await report_service.dashboard_stats(scope, now=datetime(2024, 2, 20))

    assert stats["this_month_revenue"] == pytest.approx(125.0)
    assert stats["last_month_revenue"] == pytest.approx(100.0)
    assert stats["revenue_growth"] == pytest.approx(25.0)
    assert stats["total_customers"] == 4
    assert stats["active_subscriptions"] == 4
    assert stats["open_tickets"] == 0


async def test_growth_is_zero_without_last_month_revenue(scope, db):
    add_payment(scope, 80.0, datetime(2024, 2, 5))
    await db.commit()

    stats = await report_service.dashboard_stats(scope, now=datetime(2024, 2, 20))

    assert stats["this_month_revenue"] == pytest.approx(80.0)
    assert stats["revenue_growth"] == 0.0


async def test_revenue_by_month_is_oldest_first(scope, db):
    add_payment(scope, 100.0, datetime(2024, 1, 10))
    add_payment(scope, 40.0, datetime(2024, 2, 1))
    await db.commit()

    data = await report_service.revenue_by_month(scope, months=3, now=datetime(2024, 2, 20))

    assert data == [
        {"period": "Dec 2023", "revenue": 0.0},
        {"period": "Jan 2024", "revenue": 100.0},
        {"period": "Feb 2024", "revenue": 40.0},
    ]


async def test_chart_counts_customers_per_month(scope):
    data = await report_service.chart_data(scope, "3months", now=datetime.utcnow())

    assert len(data) == 3
    assert data[-1]["customers"] == 5


@pytest.mark.parametrize("now, bucket", [
    (datetime(2024, 2, 10), "current"),
    (datetime(2024, 3, 1), "days30"),
    (datetime(2024, 4, 1), "days60"),
    (datetime(2024, 5, 1), "days90"),
])
async def test_aging_buckets_by_days_past_due(scope, billed, now, bucket):
    report = await report_service.aging_report(scope, now=now)

    assert report[bucket] == {"amount": pytest.approx(235.98), "count": 2}
    assert sum(entry["count"] for entry in report.values()) == 2


async def test_aging_ignores_paid_invoices(scope, billed):
    paid = next(invoice for invoice in billed.invoices if invoice.total == pytest.approx(58.99))
    await invoice_service.update_status(scope, paid.id, InvoiceStatus.PAID)
    await billing_service.mark_overdue_invoices(scope, datetime(2024, 3, 1))

    report = await report_service.aging_report(scope, now=datetime(2024, 3, 1))

    assert report["days30"] == {"amount": pytest.approx(176.99), "count": 1}


async def test_customer_report_groups_active_subscriptions_by_plan(scope):
    report = await report_service.customer_report(scope)

    assert (report["total_customers"], report["active_customers"], report["suspended_customers"]) == (5, 4, 1)
    assert [(row["plan_name"], row["subscriptions"]) for row in report["customers_by_plan"]] == [
        ("Basic 25Mbps", 1),
        ("Business 200Mbps", 1),
        ("Premium 100Mbps", 1),
        ("Standard 50Mbps", 1),
    ]


async def test_dashboard_charts_route(client, staff_headers):
    response = await client.get(
        "/api/dashboard/charts", params={"period": "3months"}, headers=staff_headers[UserRole.MANAGER]
    )

    assert response.status_code == 200
    assert len(response.json()["data"]["revenue_data"]) == 3

    cashier = await client.get("/api/dashboard/charts", headers=staff_headers[UserRole.CASHIER])
    assert cashier.status_code == 403
