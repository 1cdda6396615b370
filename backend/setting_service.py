"""
Per-tenant settings documents.

Every document is validated through its Pydantic model on write and again
on read, so services always work with typed settings instead of raw JSON.
Unknown keys are rejected.
"""

import logging
from typing import Dict

from pydantic import BaseModel, ValidationError

from errors import ApiError, BadRequestError, NotFoundError
from models import Setting, Tenant
from schemas import SETTING_MODELS, InvoiceSettings, TaxSettings, EmailSettings, SmsSettings
from tenant_scope import TenantScope
from config import settings as app_settings

logger = logging.getLogger(__name__)

BRANDING_KEY = "branding"


def default_documents(tenant_slug: str) -> Dict[str, BaseModel]:
    """Documents created for every new tenant"""
    return {
        "tax_settings": TaxSettings(default_rate=0.18, inclusive=False),
        "invoice_settings": InvoiceSettings(due_days=app_settings.DEFAULT_DUE_DAYS),
        "email_settings": EmailSettings(**{"from": f"noreply@{tenant_slug}.com"}),
        "sms_settings": SmsSettings(),
    }


def _model_for(key: str):
    model = SETTING_MODELS.get(key)
    if model is None:
        raise BadRequestError(
            f"Unknown setting '{key}'",
            errors=[{"field": "key", "message": f"Must be one of: {', '.join(sorted(SETTING_MODELS))}"}]
        )
    return model


def _dump(document: BaseModel) -> dict:
    return document.model_dump(by_alias=True, mode="json")


def _parse_stored(key: str, raw) -> BaseModel:
    model = _model_for(key)
    try:
        return model.model_validate(raw or {})
    except ValidationError as e:
        logger.error(f"Stored setting '{key}' failed validation: {e}")
        raise ApiError(f"Stored setting '{key}' is invalid", 500)


class SettingService:

    async def _get_row(self, scope: TenantScope, key: str):
        result = await scope.db.execute(scope.select(Setting, Setting.key == key))
        return result.scalar_one_or_none()

    async def _tenant(self, scope: TenantScope) -> Tenant:
        tenant = await scope.db.get(Tenant, scope.tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant not found")
        return tenant

    async def get_document(self, scope: TenantScope, key: str) -> BaseModel:
        """Typed document for a key, falling back to model defaults when never written"""
        if key == BRANDING_KEY:
            tenant = await self._tenant(scope)
            return _parse_stored(key, tenant.branding)
        row = await self._get_row(scope, key)
        if row is None:
            return _model_for(key)()
        return _parse_stored(key, row.value)

    async def get_invoice_settings(self, scope: TenantScope) -> InvoiceSettings:
        return await self.get_document(scope, "invoice_settings")

    async def get_all(self, scope: TenantScope) -> dict:
        result = await scope.db.execute(scope.select(Setting).order_by(Setting.key))
        documents = {}
        for row in result.scalars().all():
            if row.key not in SETTING_MODELS:
                logger.warning(f"Ignoring unknown setting '{row.key}' for tenant {scope.tenant_id}")
                continue
            documents[row.key] = _dump(_parse_stored(row.key, row.value))
        tenant = await self._tenant(scope)
        if tenant.branding is not None:
            documents[BRANDING_KEY] = _dump(_parse_stored(BRANDING_KEY, tenant.branding))
        return documents

    async def get(self, scope: TenantScope, key: str) -> dict:
        _model_for(key)
        if key == BRANDING_KEY:
            tenant = await self._tenant(scope)
            if tenant.branding is None:
                raise NotFoundError("Setting not found")
            return {"key": key, "value": _dump(_parse_stored(key, tenant.branding))}

        row = await self._get_row(scope, key)
        if row is None:
            raise NotFoundError("Setting not found")
        return {"key": key, "value": _dump(_parse_stored(key, row.value))}

    async def update(self, scope: TenantScope, key: str, value: dict) -> dict:
        """Validate and upsert a settings document"""
        document = _model_for(key).model_validate(value)
        stored = _dump(document)

        if key == BRANDING_KEY:
            tenant = await self._tenant(scope)
            tenant.branding = stored
        else:
            row = await self._get_row(scope, key)
            if row is None:
                scope.add(Setting, key=key, value=stored)
            else:
                row.value = stored

        await scope.db.commit()
        logger.info(f"Tenant {scope.tenant_id} updated setting '{key}'")
        return {"key": key, "value": stored}

    async def create_defaults(self, scope: TenantScope, tenant_slug: str):
        """Add the default documents for a new tenant (caller commits)"""
        for key, document in default_documents(tenant_slug).items():
            scope.add(Setting, key=key, value=_dump(document))


setting_service = SettingService()
