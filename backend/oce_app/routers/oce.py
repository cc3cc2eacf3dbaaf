"""OCE dashboard pass-throughs: video assets, reports and exposure events."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from oce_app.deps import Tenant, get_current_tenant, get_repository, get_vendor_clients
from oce_app.repository import Repository
from oce_app.schemas import ExposureEvent, VideoAssetCreate
from oce_app.services import oce_service
from oce_app.services.clients import VendorClients

router = APIRouter(prefix="/oce", tags=["OCE"])


@router.get("/assets")
async def list_assets(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    assets = await oce_service.list_assets(repo, clients, tenant.shop, page, limit)
    return {"success": True, "assets": assets}


@router.post("/assets", status_code=status.HTTP_201_CREATED)
async def register_asset(
    payload: VideoAssetCreate,
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    asset = await oce_service.register_asset(
        repo,
        clients,
        tenant.shop,
        title=payload.title,
        creator_id=payload.creator_id,
        video_url=payload.video_url,
        skus=payload.skus,
        platform=payload.platform,
    )
    return {"success": True, "asset": asset}


@router.get("/reports/attribution")
async def attribution_report(
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    creator_id: Optional[str] = Query(None),
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    report = await oce_service.attribution_report(repo, clients, tenant.shop, start_date, end_date, creator_id)
    return {"success": True, "report": report}


@router.get("/reports/commissions")
async def commission_report(
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    summary = await oce_service.commission_summary(repo, clients, tenant.shop, start_date, end_date)
    return {"success": True, "summary": summary}


@router.post("/exposures")
async def relay_exposure(
    payload: ExposureEvent,
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
    clients: VendorClients = Depends(get_vendor_clients),
):
    result = await oce_service.relay_exposure(
        repo,
        clients,
        tenant.shop,
        exposure_id=payload.exposure_id,
        asset_id=payload.asset_id,
        sku=payload.sku,
        session_id=payload.session_id,
        events=payload.events,
    )
    return {"success": True, "result": result}
