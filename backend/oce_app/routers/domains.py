"""Sending-domain endpoints (Cloudflare Registrar + DNS).

WHAT:
    search, purchase, provision-dns and verify-dns spend money or change
    DNS, so they also require the function secret; list and status are
    read-only.
REFERENCES:
    - oce_app/services/domain_service.py
"""

from fastapi import APIRouter, Depends, status

from oce_app.deps import Tenant, get_current_tenant, get_repository, get_vendor_clients, require_function_secret
from oce_app.repository import Repository
from oce_app.schemas import DomainPurchaseRequest, DomainSearchRequest, ProvisionDnsRequest, VerifyDnsRequest
from oce_app.services import domain_service
from oce_app.services.clients import VendorClients

router = APIRouter(prefix="/domains", tags=["Domains"])

protected = [Depends(require_function_secret)]


@router.post("/search", dependencies=protected)
async def search_domains(
    payload: DomainSearchRequest,
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    domains = await domain_service.search_domains(repo, clients, tenant.shop, payload.query)
    return {"success": True, "domains": domains}


@router.post("/purchase", dependencies=protected, status_code=status.HTTP_201_CREATED)
async def purchase_domain(
    payload: DomainPurchaseRequest,
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    domain = await domain_service.purchase_domain(repo, clients, tenant.shop, payload.domain, payload.years)
    return {"success": True, "domain": domain_service.serialize_domain(domain)}


@router.post("/provision-dns", dependencies=protected)
async def provision_dns(
    payload: ProvisionDnsRequest,
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    results = await domain_service.provision_dns(repo, clients, tenant.shop, payload.domain_id, payload.provider)
    return {"success": True, "results": results}


@router.post("/verify-dns", dependencies=protected)
async def verify_dns(
    payload: VerifyDnsRequest,
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    result = await domain_service.verify_dns(repo, clients, tenant.shop, payload.domain_id)
    return {"success": True, **result}


@router.get("/list")
def list_domains(
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
):
    return {"success": True, "domains": domain_service.list_domains(repo, tenant.shop)}


@router.get("/status/{domain_id}")
def domain_status(
    domain_id: str,
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
):
    return {"success": True, **domain_service.domain_status(repo, tenant.shop, domain_id)}
