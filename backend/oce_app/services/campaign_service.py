"""Outreach campaigns mirrored from Smartlead."""

import logging
from typing import Any, Dict, List, Optional

from oce_app.errors import NotFound, ValidationFailed
from oce_app.models import CampaignStatusEnum, DirectionEnum, EmailConversation, EmailSettings, OutreachCampaign
from oce_app.repository import Repository
from oce_app.services.account_service import serialize_account
from oce_app.services.clients import VendorClients
from oce_app.services.email_settings_service import require_smartlead
from oce_app.services.smartlead_client import SmartleadAPIError
from oce_app.utils.ids import parse_uuid

logger = logging.getLogger(__name__)


def serialize_campaign(campaign: OutreachCampaign) -> Dict[str, Any]:
    return {
        "id": str(campaign.id),
        "name": campaign.name,
        "smartlead_campaign_id": campaign.smartlead_campaign_id,
        "status": campaign.status.value if campaign.status else None,
        "email_account_ids": list(campaign.email_account_ids or []),
        "sent_count": campaign.sent_count,
        "reply_count": campaign.reply_count,
        "created_at": campaign.created_at.isoformat() if campaign.created_at else None,
    }


def list_campaigns(repo: Repository, shop: str) -> List[Dict[str, Any]]:
    campaigns = repo.select_many(OutreachCampaign, {"shop": shop}, order_by="-created_at")
    return [serialize_campaign(campaign) for campaign in campaigns]


async def create_campaign(repo: Repository, clients: VendorClients, shop: str, name: Optional[str]) -> OutreachCampaign:
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Campaign name is required")

    api_key = require_smartlead(repo, shop)
    result = await clients.smartlead(api_key).create_campaign(name)
    vendor_id = (result or {}).get("id") or (result or {}).get("campaign_id")

    campaign = repo.insert(OutreachCampaign, {
        "shop": shop,
        "name": name,
        "smartlead_campaign_id": str(vendor_id) if vendor_id else None,
        "status": CampaignStatusEnum.draft,
        "email_account_ids": [],
    })
    logger.info("[SMARTLEAD] Created campaign %r for %s (vendor id %s)", name, shop, vendor_id)
    return campaign


async def campaign_detail(repo: Repository, clients: VendorClients, shop: str, campaign_id: Any) -> Dict[str, Any]:
    """Local row plus best-effort Smartlead statistics."""
    campaign_uuid = parse_uuid(campaign_id)
    campaign = repo.select_one(OutreachCampaign, {"shop": shop, "id": campaign_uuid}) if campaign_uuid else None
    if campaign is None:
        raise NotFound("Campaign not found")

    smartlead_stats = None
    if campaign.smartlead_campaign_id:
        email_settings = repo.select_one(EmailSettings, {"shop": shop})
        api_key = email_settings.smartlead_api_key if email_settings else None
        if api_key:
            try:
                smartlead_stats = await clients.smartlead(api_key).get_campaign_stats(campaign.smartlead_campaign_id)
            except SmartleadAPIError as e:
                logger.warning("[SMARTLEAD] Could not fetch stats for campaign %s: %s", campaign.id, e)

    reply_count = repo.count(EmailConversation, {
        "shop": shop,
        "campaign_id": campaign.id,
        "direction": DirectionEnum.inbound,
    })
    accounts = repo.accounts_by_ids(shop, campaign.email_account_ids or [])

    return {
        **serialize_campaign(campaign),
        "reply_count": reply_count,
        "accounts": [serialize_account(account) for account in accounts],
        "smartlead_stats": smartlead_stats,
    }
