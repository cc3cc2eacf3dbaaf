"""Attribution settings endpoints.

WHAT:
    GET/PUT /settings, PUT /settings/api-key, GET /settings/status
WHY:
    The embedded dashboard's settings page. Saves are mirrored to app
    metafields so the storefront SDK picks them up.
"""

import logging

from fastapi import APIRouter, Depends

from oce_app.deps import Tenant, get_current_tenant, get_repository, get_vendor_clients
from oce_app.repository import Repository
from oce_app.schemas import ApiKeyUpdate, SettingsUpdate
from oce_app.services import settings_service
from oce_app.services.clients import VendorClients

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["Settings"])


@router.get("")
def read_settings(
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
):
    """Return settings, creating the defaults on first access."""
    return {"success": True, "settings": settings_service.get_settings_payload(repo, tenant.shop)}


@router.put("")
async def update_settings(
    payload: SettingsUpdate,
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    settings = await settings_service.update_settings(
        repo,
        clients,
        tenant.shop,
        tenant.access_token,
        payload.model_dump(exclude_unset=True),
    )
    return {"success": True, "settings": settings}


@router.put("/api-key")
async def update_api_key(
    payload: ApiKeyUpdate,
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    return await settings_service.save_api_key(repo, clients, tenant.shop, tenant.access_token, payload.api_key)


@router.get("/status")
async def read_status(
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    """Integration health: API connection, SDK and order webhook."""
    status = await settings_service.integration_status(repo, clients, tenant.shop)
    return {"success": True, **status}
