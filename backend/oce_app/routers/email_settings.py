"""Outreach credential endpoints.

WHAT:
    GET/PUT /email-settings, connection tests for Cloudflare and Smartlead,
    Gmail connect (authorize URL) and disconnect.
WHY:
    Credentials are write-only from the dashboard's point of view: reads
    always return masked values.
"""

from fastapi import APIRouter, Depends

from oce_app.deps import Settings, Tenant, get_current_tenant, get_repository, get_settings, get_vendor_clients
from oce_app.repository import Repository
from oce_app.schemas import EmailSettingsUpdate
from oce_app.services import email_settings_service
from oce_app.services.clients import VendorClients

router = APIRouter(prefix="/email-settings", tags=["Email Settings"])


@router.get("")
def read_email_settings(
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
):
    return {"success": True, "settings": email_settings_service.get_email_settings_payload(repo, tenant.shop)}


@router.put("")
def update_email_settings(
    payload: EmailSettingsUpdate,
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
):
    settings = email_settings_service.update_email_settings(repo, tenant.shop, payload.model_dump(exclude_unset=True))
    return {"success": True, "settings": settings}


@router.post("/test-cloudflare")
async def test_cloudflare(
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    return await email_settings_service.test_cloudflare(repo, clients, tenant.shop)


@router.post("/test-smartlead")
async def test_smartlead(
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    return await email_settings_service.test_smartlead(repo, clients, tenant.shop)


@router.get("/gmail/authorize")
def gmail_authorize(
    tenant: Tenant = Depends(get_current_tenant),
    settings: Settings = Depends(get_settings),
):
    """Google consent URL; the embedded app opens it in a new window."""
    return {"success": True, "url": email_settings_service.gmail_authorization_url(settings, tenant.shop)}


@router.delete("/gmail")
def gmail_disconnect(
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
):
    return email_settings_service.disconnect_gmail(repo, tenant.shop)
