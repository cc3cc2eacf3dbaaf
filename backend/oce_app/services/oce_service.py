"""Dashboard pass-throughs to the OCE API (assets, reports, exposure events).

Nothing here is stored locally; every call uses the shop's saved API key.
"""

from typing import Any, Dict, List, Optional

from oce_app.errors import ConfigurationMissing, ValidationFailed
from oce_app.models import OceSettings
from oce_app.repository import Repository
from oce_app.services.clients import VendorClients
from oce_app.services.oce_client import OceClient


def _oce(repo: Repository, clients: VendorClients, shop: str) -> OceClient:
    settings = repo.select_one(OceSettings, {"shop": shop})
    if settings is None or not settings.api_key:
        raise ConfigurationMissing("OCE API key not configured. Add it in Settings.")
    return clients.oce(settings.api_key)


async def list_assets(repo: Repository, clients: VendorClients, shop: str, page: int, limit: int) -> Dict[str, Any]:
    return await _oce(repo, clients, shop).list_video_assets(page=page, limit=limit)


async def register_asset(
    repo: Repository,
    clients: VendorClients,
    shop: str,
    *,
    title: Optional[str],
    creator_id: Optional[str],
    video_url: Optional[str],
    skus: Optional[List[str]] = None,
    platform: Optional[str] = None,
) -> Dict[str, Any]:
    missing = [name for name, value in (("title", title), ("creator_id", creator_id), ("video_url", video_url)) if not value]
    if missing:
        raise ValidationFailed(f"Missing required fields: {', '.join(missing)}")
    return await _oce(repo, clients, shop).register_video_asset(
        title=title,
        creator_id=creator_id,
        video_url=video_url,
        skus=skus,
        platform=platform,
    )


async def attribution_report(
    repo: Repository,
    clients: VendorClients,
    shop: str,
    start_date: Optional[str],
    end_date: Optional[str],
    creator_id: Optional[str] = None,
) -> Dict[str, Any]:
    return await _oce(repo, clients, shop).get_attribution_report(start_date, end_date, creator_id)


async def commission_summary(
    repo: Repository,
    clients: VendorClients,
    shop: str,
    start_date: Optional[str],
    end_date: Optional[str],
) -> Dict[str, Any]:
    return await _oce(repo, clients, shop).get_commission_summary(start_date, end_date)


async def relay_exposure(
    repo: Repository,
    clients: VendorClients,
    shop: str,
    *,
    exposure_id: Optional[str],
    asset_id: Optional[str] = None,
    sku: Optional[str] = None,
    session_id: Optional[str] = None,
    events: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    if not exposure_id:
        raise ValidationFailed("exposure_id is required")
    return await _oce(repo, clients, shop).send_exposure_event(
        exposure_id=exposure_id,
        asset_id=asset_id,
        sku=sku,
        session_id=session_id,
        events=events,
    )
