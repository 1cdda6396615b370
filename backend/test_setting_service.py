from datetime import datetime

import pytest
from pydantic import ValidationError

from errors import BadRequestError, NotFoundError
from invoice_numbering import generate_invoice_number
from models import Tenant
from setting_service import setting_service
from tenant_scope import TenantScope


async def test_new_tenant_has_default_documents(scope):
    documents = await setting_service.get_all(scope)

    assert {"invoice_settings", "tax_settings", "email_settings", "sms_settings", "branding"} <= set(documents)
    assert documents["invoice_settings"] == {
        "prefix": "INV",
        "numberFormat": "{PREFIX}-{TENANT}-{YEAR}{MONTH}-{SEQ}",
        "dueDays": 15,
    }
    assert documents["email_settings"]["from"] == "noreply@demo-isp.com"
    assert documents["branding"]["companyInfo"]["email"] == "billing@demo-isp.com"


async def test_invoice_settings_drive_numbering(scope):
    await setting_service.update(scope, "invoice_settings", {
        "prefix": "BILL",
        "numberFormat": "{PREFIX}/{YEAR}/{SEQ}",
        "dueDays": 30,
    })

    invoice_settings = await setting_service.get_invoice_settings(scope)
    assert invoice_settings.due_days == 30
    assert await generate_invoice_number(scope, datetime(2024, 2, 1)) == "BILL/2024/0001"


async def test_number_format_must_contain_sequence(scope):
    with pytest.raises(ValidationError):
        await setting_service.update(scope, "invoice_settings", {"numberFormat": "{PREFIX}-{YEAR}"})


async def test_unknown_key_is_rejected(scope):
    with pytest.raises(BadRequestError, match="Unknown setting 'colour_scheme'"):
        await setting_service.update(scope, "colour_scheme", {"value": 1})
    with pytest.raises(BadRequestError):
        await setting_service.get(scope, "colour_scheme")


async def test_branding_is_stored_on_the_tenant(scope, db, demo_tenant):
    result = await setting_service.update(scope, "branding", {"primaryColor": "#000000"})

    assert result["value"]["primaryColor"] == "#000000"
    tenant = await db.get(Tenant, demo_tenant.id)
    assert tenant.branding["primaryColor"] == "#000000"


async def test_missing_document_falls_back_to_defaults(db, other_tenant):
    other_scope = TenantScope(db, other_tenant.id)

    invoice_settings = await setting_service.get_invoice_settings(other_scope)
    assert invoice_settings.prefix == "INV"
    with pytest.raises(NotFoundError, match="Setting not found"):
        await setting_service.get(other_scope, "tax_settings")
