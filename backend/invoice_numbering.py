"""
Invoice number generation.

Numbers come from a counter row per tenant, keyed by the invoice number
rendered with every placeholder filled except {SEQ}. With the default
format the key is e.g. INV-DEMO-ISP-202402-{SEQ}, so the counter restarts
each month; a format without {YEAR}/{MONTH} keeps one running counter.
Either way two invoices can only share a key when they would share every
other character of the number, so numbers are never reused.

The counter is advanced with a single UPDATE ... SET last_value =
last_value + 1 and read back inside the same transaction, so two writers
can never observe the same value. Values consumed by a transaction that
later rolls back leave a gap.
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from errors import NotFoundError
from models import InvoiceSequence, Tenant
from schemas import InvoiceSettings
from setting_service import setting_service
from tenant_scope import TenantScope

logger = logging.getLogger(__name__)

SEQUENCE_WIDTH = 4
MAX_CREATE_ATTEMPTS = 3


def sequence_key(number_format: str, prefix: str, tenant_slug: str, billing_date: datetime) -> str:
    """The invoice number with every placeholder but {SEQ} filled"""
    return (
        number_format
        .replace("{PREFIX}", prefix)
        .replace("{TENANT}", tenant_slug.upper())
        .replace("{YEAR}", f"{billing_date.year:04d}")
        .replace("{MONTH}", f"{billing_date.month:02d}")
    )


def format_invoice_number(number_format: str, prefix: str, tenant_slug: str, billing_date: datetime, sequence: int) -> str:
    """Fill the {PREFIX} {TENANT} {YEAR} {MONTH} {SEQ} placeholders"""
    key = sequence_key(number_format, prefix, tenant_slug, billing_date)
    return key.replace("{SEQ}", str(sequence).zfill(SEQUENCE_WIDTH))


async def next_sequence_value(scope: TenantScope, key: str) -> int:
    """Atomically advance and return the tenant's counter for key"""
    db = scope.db
    increment = (
        scope.update(InvoiceSequence, InvoiceSequence.key == key)
        .values(last_value=InvoiceSequence.last_value + 1, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )

    for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
        result = await db.execute(increment)
        if result.rowcount:
            break
        # First number for this key: create the counter row.
        # A concurrent writer may create it first, in which case the insert
        # fails inside the savepoint and the increment is retried.
        try:
            async with db.begin_nested():
                scope.add(InvoiceSequence, key=key, last_value=0)
        except IntegrityError:
            logger.info(f"Invoice sequence {key} created concurrently (attempt {attempt})")
    else:
        raise RuntimeError(f"Could not allocate invoice sequence {key} for tenant {scope.tenant_id}")

    value = await db.scalar(
        select(InvoiceSequence.last_value).where(scope.where(InvoiceSequence), InvoiceSequence.key == key)
    )
    return value


async def generate_invoice_number(scope: TenantScope, billing_date: datetime, invoice_settings: InvoiceSettings = None) -> str:
    """Next invoice number for the tenant at billing_date"""
    if invoice_settings is None:
        invoice_settings = await setting_service.get_invoice_settings(scope)

    tenant = await scope.db.get(Tenant, scope.tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found")

    key = sequence_key(invoice_settings.number_format, invoice_settings.prefix, tenant.slug, billing_date)
    sequence = await next_sequence_value(scope, key)
    return key.replace("{SEQ}", str(sequence).zfill(SEQUENCE_WIDTH))
