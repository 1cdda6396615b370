from datetime import datetime

import pytest
from sqlalchemy import select

import billing_scheduler
from models import BillingRun, BillingRunStatus, Invoice, InvoiceStatus, Setting
from tenant_scope import TenantScope


@pytest.fixture(autouse=True)
def scheduler_sessions(monkeypatch, session_maker):
    monkeypatch.setattr(billing_scheduler, "async_session_maker", session_maker)


async def test_bills_every_tenant_and_marks_overdue(db, demo_tenant):
    await billing_scheduler.bill_all_tenants(datetime(2024, 2, 1))

    runs = (await db.execute(select(BillingRun))).scalars().all()
    assert [(run.tenant_id, run.status, run.triggered_by, run.successful) for run in runs] == [
        (demo_tenant.id, BillingRunStatus.COMPLETED, "scheduler", 2)
    ]
    await db.commit()

    await billing_scheduler.bill_all_tenants(datetime(2024, 2, 20))

    statuses = (await db.execute(select(Invoice.status).where(Invoice.tenant_id == demo_tenant.id))).scalars().all()
    assert statuses == [InvoiceStatus.OVERDUE, InvoiceStatus.OVERDUE]


async def test_failing_tenant_does_not_stop_the_others(db, other_tenant, demo_tenant):
    assert other_tenant.id < demo_tenant.id
    # Stored settings that no longer validate make every run of this tenant fail
    TenantScope(db, other_tenant.id).add(Setting, key="invoice_settings", value={"numberFormat": "{PREFIX}"})
    await db.commit()

    await billing_scheduler.bill_all_tenants(datetime(2024, 2, 1))

    runs = {run.tenant_id: run for run in (await db.execute(select(BillingRun))).scalars().all()}
    assert runs[other_tenant.id].status == BillingRunStatus.FAILED
    assert runs[demo_tenant.id].status == BillingRunStatus.COMPLETED
    assert runs[demo_tenant.id].successful == 2
    invoices = (await db.execute(select(Invoice).where(Invoice.tenant_id == demo_tenant.id))).scalars().all()
    assert len(invoices) == 2
