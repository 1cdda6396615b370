"""
Recurring billing runs against the demo-isp tenant.

Due on 2024-02-01: john_smith (Standard 50Mbps, 49.99 + 18%) and
techsolutions (Business 200Mbps, 149.99 + 18%). Emily's subscription is
SUSPENDED and the others end later in February.
"""
from datetime import datetime

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from billing_service import billing_service, compute_charges, to_money, recurring_label
from conftest import subscription_by_username
from errors import NotFoundError
from invoice_numbering import generate_invoice_number
from models import (
    BillingRun, BillingRunOutcome, BillingRunStatus, Invoice, InvoiceItemType, InvoiceStatus, Subscription
)
from setting_service import setting_service
from tenant_scope import TenantScope

BILLING_DATE = datetime(2024, 2, 1)


def test_compute_charges_rounds_half_up():
    subtotal, tax, total = compute_charges(49.99, 18)
    assert (subtotal, tax, total) == (to_money("49.99"), to_money("9.00"), to_money("58.99"))
    assert to_money(2.675) == to_money("2.68")


def test_recurring_label():
    assert recurring_label("Basic", datetime(2024, 2, 1), datetime(2024, 3, 2)) == "Basic (Feb 01 - Mar 02, 2024)"


async def test_run_invoices_due_subscriptions(scope, db):
    result = await billing_service.run_billing(scope, billing_date=BILLING_DATE, triggered_by="test")

    assert result.processed == 2
    assert result.successful == 2
    assert result.failed == 0
    assert result.errors == []
    assert result.total_amount == pytest.approx(235.98)
    assert [i.number for i in result.invoices] == ["INV-DEMO-ISP-202402-0001", "INV-DEMO-ISP-202402-0002"]

    john = await subscription_by_username(db, "john_smith")
    invoice = (await db.execute(select(Invoice).where(Invoice.subscription_id == john.id))).scalar_one()
    assert invoice.status == InvoiceStatus.PENDING
    assert invoice.subtotal == pytest.approx(49.99)
    assert invoice.tax_amount == pytest.approx(9.00)
    assert invoice.total == pytest.approx(58.99)
    assert invoice.period_start == datetime(2024, 2, 1)
    assert invoice.period_end == datetime(2024, 3, 2)
    assert invoice.due_date == datetime(2024, 2, 16)
    assert invoice.customer_id == john.customer_id

    items = sorted(invoice.items, key=lambda item: item.id)
    assert [item.type for item in items] == [InvoiceItemType.RECURRING, InvoiceItemType.TAX]
    assert items[0].label == "Standard 50Mbps (Feb 01 - Mar 02, 2024)"
    assert items[1].label == "Tax (18%)"
    assert items[1].amount == pytest.approx(9.00)

    assert john.ends_at == datetime(2024, 3, 2)


async def test_run_is_logged(scope, db):
    result = await billing_service.run_billing(scope, billing_date=BILLING_DATE, triggered_by="test")

    run = await billing_service.get_run(scope, result.run_id)
    assert run.status == BillingRunStatus.COMPLETED
    assert run.triggered_by == "test"
    assert run.finished_at is not None
    assert (run.processed, run.successful, run.failed) == (2, 2, 0)
    assert run.total_amount == pytest.approx(235.98)
    assert {item.outcome for item in run.items} == {BillingRunOutcome.INVOICED}
    assert sorted(item.invoice_id for item in run.items) == sorted(i.id for i in result.invoices)


async def test_second_run_on_same_date_bills_nothing(scope):
    await billing_service.run_billing(scope, billing_date=BILLING_DATE)
    second = await billing_service.run_billing(scope, billing_date=BILLING_DATE)

    assert second.processed == 0
    assert second.invoices == []


async def test_rerun_for_same_subscription_reports_duplicate(scope, db):
    john = await subscription_by_username(db, "john_smith")
    await billing_service.run_billing(scope, billing_date=BILLING_DATE, subscription_ids=[john.id])

    again = await billing_service.run_billing(scope, billing_date=BILLING_DATE, subscription_ids=[john.id])

    assert again.invoices == []
    assert (again.processed, again.successful, again.failed) == (1, 0, 1)
    assert again.errors == [f"Subscription {john.id}: Invoice already exists for this period"]
    assert await db.scalar(select(func.count(Invoice.id))) == 1
    assert john.ends_at == datetime(2024, 3, 2)


async def test_requested_subscription_not_due_or_missing(scope, db):
    sarah = await subscription_by_username(db, "sarah_johnson")

    result = await billing_service.run_billing(scope, billing_date=BILLING_DATE, subscription_ids=[sarah.id, 9999])

    assert result.errors == [
        f"Subscription {sarah.id}: Subscription is not due for billing",
        "Subscription 9999: Subscription not found",
    ]


async def test_existing_invoice_for_period_fails_only_that_subscription(scope, db):
    await billing_service.run_billing(scope, billing_date=BILLING_DATE)

    # Put the subscription back on the period it was just billed for
    john = await subscription_by_username(db, "john_smith")
    john.ends_at = BILLING_DATE
    await db.commit()

    result = await billing_service.run_billing(scope, billing_date=BILLING_DATE)

    assert result.processed == 1
    assert result.successful == 0
    assert result.failed == 1
    assert result.errors == [f"Subscription {john.id}: Invoice already exists for this period"]

    count = await db.scalar(select(func.count(Invoice.id)))
    assert count == 2

    run = await billing_service.get_run(scope, result.run_id)
    assert run.status == BillingRunStatus.COMPLETED
    assert run.items[0].outcome == BillingRunOutcome.FAILED
    assert run.items[0].error == "Invoice already exists for this period"


async def test_dry_run_persists_nothing(scope, db):
    result = await billing_service.run_billing(scope, billing_date=BILLING_DATE, dry_run=True)

    assert result.processed == 2
    assert result.successful == 2
    assert result.run_id is None
    assert all(invoice.id is None and invoice.number is None for invoice in result.invoices)
    assert result.total_amount == pytest.approx(235.98)

    assert await db.scalar(select(func.count(Invoice.id))) == 0
    assert await db.scalar(select(func.count(BillingRun.id))) == 0
    john = await subscription_by_username(db, "john_smith")
    assert john.ends_at == BILLING_DATE


async def test_run_limited_to_subscription_ids(scope, db):
    john = await subscription_by_username(db, "john_smith")

    result = await billing_service.run_billing(scope, billing_date=BILLING_DATE, subscription_ids=[john.id])

    assert result.processed == 1
    assert result.invoices[0].subscription_id == john.id
    assert result.invoices[0].total == pytest.approx(58.99)


async def test_suspended_subscription_is_not_billed(scope, db):
    emily = await subscription_by_username(db, "emily_brown")

    result = await billing_service.run_billing(scope, billing_date=datetime(2024, 6, 1))

    assert emily.id not in [invoice.subscription_id for invoice in result.invoices]


async def test_preview_matches_run_without_writing(scope, db):
    preview = await billing_service.preview_billing(scope, BILLING_DATE)

    assert preview.summary.total_subscriptions == 2
    assert preview.summary.total_amount == pytest.approx(235.98)
    assert preview.summary.estimated_revenue == pytest.approx(199.98)
    assert preview.summary.estimated_tax == pytest.approx(36.00)
    assert {item.customer_name for item in preview.preview} == {"John Smith", "Tech Solutions LLC"}
    assert await db.scalar(select(func.count(Invoice.id))) == 0


async def test_mark_overdue_invoices(scope, db):
    await billing_service.run_billing(scope, billing_date=BILLING_DATE)

    assert await billing_service.mark_overdue_invoices(scope, datetime(2024, 2, 10)) == 0
    assert await billing_service.mark_overdue_invoices(scope, datetime(2024, 3, 1)) == 2

    statuses = (await db.execute(select(Invoice.status))).scalars().all()
    assert set(statuses) == {InvoiceStatus.OVERDUE}


async def test_billing_status_reports_last_run(scope):
    status = await billing_service.get_billing_status(scope)
    assert status.status == "PENDING"
    assert status.last_run_id is None
    assert status.last_billing_run is None

    result = await billing_service.run_billing(scope, billing_date=BILLING_DATE)
    status = await billing_service.get_billing_status(scope)
    assert status.last_run_id == result.run_id
    assert status.last_billing_run is not None


async def test_runs_are_tenant_scoped(scope, db, other_tenant):
    result = await billing_service.run_billing(scope, billing_date=BILLING_DATE)
    other_scope = TenantScope(db, other_tenant.id)

    runs, total = await billing_service.list_runs(other_scope)
    assert (runs, total) == ([], 0)
    with pytest.raises(NotFoundError):
        await billing_service.get_run(other_scope, result.run_id)
    other_result = await billing_service.run_billing(other_scope, billing_date=BILLING_DATE)
    assert other_result.processed == 0


async def test_number_format_without_month_keeps_billing_next_month(scope, db):
    await setting_service.update(scope, "invoice_settings", {"prefix": "INV", "numberFormat": "{PREFIX}-{SEQ}"})

    february = await billing_service.run_billing(scope, billing_date=BILLING_DATE)
    john = await subscription_by_username(db, "john_smith")
    march = await billing_service.run_billing(scope, billing_date=datetime(2024, 3, 2), subscription_ids=[john.id])

    assert [i.number for i in february.invoices] == ["INV-0001", "INV-0002"]
    assert march.errors == []
    assert [i.number for i in march.invoices] == ["INV-0003"]
    assert john.ends_at == datetime(2024, 4, 1)


async def test_number_clash_is_not_reported_as_duplicate_period(scope, db):
    sarah = await subscription_by_username(db, "sarah_johnson")
    john = await subscription_by_username(db, "john_smith")
    # Taken outside the counter, e.g. imported from an older system
    scope.add(
        Invoice,
        subscription_id=sarah.id,
        customer_id=sarah.customer_id,
        number="INV-DEMO-ISP-202402-0001",
        period_start=datetime(2024, 1, 15),
        period_end=datetime(2024, 2, 14),
        subtotal=29.99,
        tax_amount=5.40,
        total=35.39,
        due_date=datetime(2024, 1, 30)
    )
    await db.commit()

    result = await billing_service.run_billing(scope, billing_date=BILLING_DATE, subscription_ids=[john.id])

    assert (result.processed, result.successful, result.failed) == (1, 0, 1)
    assert result.errors[0].startswith(f"Subscription {john.id}: Invoice could not be saved")
    assert "already exists" not in result.errors[0]
    assert await db.scalar(select(Subscription.ends_at).where(Subscription.id == john.id)) == BILLING_DATE


async def test_unique_violation_for_billed_period_is_a_duplicate(scope, db):
    await billing_service.run_billing(scope, billing_date=BILLING_DATE)
    john = await subscription_by_username(db, "john_smith")
    clash = IntegrityError("INSERT INTO invoices", {}, Exception("UNIQUE constraint failed"))

    message = await billing_service._conflict_reason(scope, john.id, BILLING_DATE, clash)

    assert message == "Invoice already exists for this period"


async def test_period_moved_by_another_writer_fails_only_that_subscription(scope, db, monkeypatch):
    john = await subscription_by_username(db, "john_smith")

    async def number_after_concurrent_renewal(run_scope, billing_date, invoice_settings=None):
        # Another process renews john between selection and the ends_at update
        await run_scope.db.execute(
            update(Subscription)
            .where(Subscription.id == john.id)
            .values(ends_at=datetime(2024, 2, 5))
            .execution_options(synchronize_session=False)
        )
        return await generate_invoice_number(run_scope, billing_date, invoice_settings)

    monkeypatch.setattr("billing_service.generate_invoice_number", number_after_concurrent_renewal)

    result = await billing_service.run_billing(scope, billing_date=BILLING_DATE, subscription_ids=[john.id])

    assert (result.processed, result.successful, result.failed) == (1, 0, 1)
    assert result.errors == [f"Subscription {john.id}: Subscription was billed by a concurrent run"]
    assert await db.scalar(select(func.count(Invoice.id))) == 0
    run = await billing_service.get_run(scope, result.run_id)
    assert run.status == BillingRunStatus.COMPLETED
    assert run.items[0].outcome == BillingRunOutcome.FAILED
