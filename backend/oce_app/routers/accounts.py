"""Email account (mailbox) endpoints."""

from fastapi import APIRouter, Depends, status

from oce_app.deps import Tenant, get_current_tenant, get_repository, get_vendor_clients
from oce_app.repository import Repository
from oce_app.schemas import CampaignAssignment, EmailAccountCreate, WarmupToggle
from oce_app.services import account_service
from oce_app.services.clients import VendorClients

router = APIRouter(prefix="/accounts", tags=["Email Accounts"])


@router.get("")
def list_accounts(
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
):
    return {"success": True, "accounts": account_service.list_accounts(repo, tenant.shop)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_account(
    payload: EmailAccountCreate,
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    account = await account_service.create_account(
        repo,
        clients,
        tenant.shop,
        domain_id=payload.domain_id,
        local_part=payload.local_part,
        password=payload.password,
        from_name=payload.from_name,
        smtp_host=payload.smtp_host,
        smtp_port=payload.smtp_port,
        imap_host=payload.imap_host,
        imap_port=payload.imap_port,
        daily_limit=payload.daily_limit,
        warmup_enabled=payload.warmup_enabled,
    )
    return {"success": True, "account": account_service.serialize_account(account)}


@router.post("/{account_id}/warmup")
async def toggle_warmup(
    account_id: str,
    payload: WarmupToggle,
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    account = await account_service.set_warmup(repo, clients, tenant.shop, account_id, payload.enabled)
    return {"success": True, "account": account_service.serialize_account(account)}


@router.get("/{account_id}/warmup-stats")
async def warmup_stats(
    account_id: str,
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    stats = await account_service.warmup_stats(repo, clients, tenant.shop, account_id)
    return {"success": True, "stats": stats}


@router.post("/{account_id}/assign")
async def assign_account(
    account_id: str,
    payload: CampaignAssignment,
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    return await account_service.assign_to_campaign(repo, clients, tenant.shop, account_id, payload.campaign_id)
