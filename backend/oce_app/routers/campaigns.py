"""Outreach campaign endpoints."""

from fastapi import APIRouter, Depends, status

from oce_app.deps import Tenant, get_current_tenant, get_repository, get_vendor_clients
from oce_app.repository import Repository
from oce_app.schemas import CampaignCreate
from oce_app.services import campaign_service
from oce_app.services.clients import VendorClients

router = APIRouter(prefix="/campaigns", tags=["Campaigns"])


@router.get("")
def list_campaigns(
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
):
    return {"success": True, "campaigns": campaign_service.list_campaigns(repo, tenant.shop)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_campaign(
    payload: CampaignCreate,
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    campaign = await campaign_service.create_campaign(repo, clients, tenant.shop, payload.name)
    return {"success": True, "campaign": campaign_service.serialize_campaign(campaign)}


@router.get("/{campaign_id}")
async def campaign_detail(
    campaign_id: str,
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    """Campaign row, assigned accounts, inbound reply count and Smartlead stats."""
    campaign = await campaign_service.campaign_detail(repo, clients, tenant.shop, campaign_id)
    return {"success": True, "campaign": campaign}
