"""Mailboxes on the shop's sending domains, registered with Smartlead."""

import logging
from typing import Any, Dict, List, Optional

from oce_app.errors import NotFound, ValidationFailed
from oce_app.models import EmailAccount, EmailDomain, OutreachCampaign, WarmupStatusEnum
from oce_app.repository import Repository
from oce_app.services.clients import VendorClients
from oce_app.services.email_settings_service import require_smartlead
from oce_app.utils.ids import parse_uuid

logger = logging.getLogger(__name__)

DEFAULT_SMTP_HOST = "smtp.zoho.com"
DEFAULT_SMTP_PORT = 587
DEFAULT_IMAP_HOST = "imap.zoho.com"
DEFAULT_IMAP_PORT = 993
DEFAULT_DAILY_LIMIT = 20


def serialize_account(account: EmailAccount) -> Dict[str, Any]:
    return {
        "id": str(account.id),
        "domain_id": str(account.domain_id),
        "email": account.email,
        "from_name": account.from_name,
        "smtp_host": account.smtp_host,
        "smtp_port": account.smtp_port,
        "imap_host": account.imap_host,
        "imap_port": account.imap_port,
        "smartlead_account_id": account.smartlead_account_id,
        "warmup_enabled": account.warmup_enabled,
        "warmup_status": account.warmup_status.value if account.warmup_status else None,
        "daily_limit": account.daily_limit,
        "created_at": account.created_at.isoformat() if account.created_at else None,
    }


def _warmup_status(enabled: bool) -> WarmupStatusEnum:
    return WarmupStatusEnum.active if enabled else WarmupStatusEnum.paused


def require_account(repo: Repository, shop: str, account_id: Any) -> EmailAccount:
    account_uuid = parse_uuid(account_id)
    account = repo.select_one(EmailAccount, {"shop": shop, "id": account_uuid}) if account_uuid else None
    if account is None:
        raise NotFound("Email account not found")
    return account


def _require_linked(account: EmailAccount) -> str:
    if not account.smartlead_account_id:
        raise ValidationFailed("Account not linked to Smartlead")
    return account.smartlead_account_id


def list_accounts(repo: Repository, shop: str) -> List[Dict[str, Any]]:
    domains = {domain.id: domain for domain in repo.select_many(EmailDomain, {"shop": shop})}
    payload = []
    for account in repo.select_many(EmailAccount, {"shop": shop}, order_by="-created_at"):
        domain = domains.get(account.domain_id)
        payload.append({
            **serialize_account(account),
            "domain": domain.domain if domain else None,
            "domain_status": domain.status.value if domain and domain.status else None,
        })
    return payload


async def create_account(
    repo: Repository,
    clients: VendorClients,
    shop: str,
    *,
    domain_id: Any,
    local_part: Optional[str],
    password: Optional[str],
    from_name: Optional[str] = None,
    smtp_host: Optional[str] = None,
    smtp_port: Optional[int] = None,
    imap_host: Optional[str] = None,
    imap_port: Optional[int] = None,
    daily_limit: Optional[int] = None,
    warmup_enabled: bool = True,
) -> EmailAccount:
    """Register `local_part@domain` with Smartlead and store it locally."""
    local_part = (local_part or "").strip().lower()
    if not domain_id or not local_part or not password:
        raise ValidationFailed("domainId, localPart and password are required")

    domain_uuid = parse_uuid(domain_id)
    domain = repo.select_one(EmailDomain, {"shop": shop, "id": domain_uuid}) if domain_uuid else None
    if domain is None:
        raise NotFound("Domain not found")

    email = f"{local_part}@{domain.domain}"
    if repo.find_account_by_email(email) is not None:
        raise ValidationFailed(f"Email account {email} already exists")

    api_key = require_smartlead(repo, shop)
    smtp_host = smtp_host or DEFAULT_SMTP_HOST
    smtp_port = smtp_port or DEFAULT_SMTP_PORT
    imap_host = imap_host or DEFAULT_IMAP_HOST
    imap_port = imap_port or DEFAULT_IMAP_PORT
    daily_limit = daily_limit or DEFAULT_DAILY_LIMIT
    from_name = from_name or local_part

    result = await clients.smartlead(api_key).add_email_account(
        from_email=email,
        password=password,
        smtp_host=smtp_host,
        imap_host=imap_host,
        from_name=from_name,
        user_name=email,
        smtp_port=smtp_port,
        imap_port=imap_port,
        max_daily_limit=daily_limit,
        warmup_enabled=warmup_enabled,
    )
    vendor_id = (result or {}).get("id") or (result or {}).get("email_account_id")

    account = repo.insert(EmailAccount, {
        "shop": shop,
        "domain_id": domain.id,
        "email": email,
        "from_name": from_name,
        "smtp_host": smtp_host,
        "smtp_port": smtp_port,
        "imap_host": imap_host,
        "imap_port": imap_port,
        "smartlead_account_id": str(vendor_id) if vendor_id else None,
        "warmup_enabled": warmup_enabled,
        "warmup_status": _warmup_status(warmup_enabled),
        "daily_limit": daily_limit,
    })
    logger.info("[SMARTLEAD] Created email account %s for %s", email, shop)
    return account


async def set_warmup(
    repo: Repository,
    clients: VendorClients,
    shop: str,
    account_id: Any,
    enabled: bool,
) -> EmailAccount:
    account = require_account(repo, shop, account_id)
    vendor_id = _require_linked(account)
    api_key = require_smartlead(repo, shop)

    await clients.smartlead(api_key).update_warmup(vendor_id, enabled)
    return repo.update(
        EmailAccount,
        {"warmup_enabled": enabled, "warmup_status": _warmup_status(enabled)},
        {"id": account.id},
    )


async def warmup_stats(repo: Repository, clients: VendorClients, shop: str, account_id: Any) -> Dict[str, Any]:
    account = require_account(repo, shop, account_id)
    vendor_id = _require_linked(account)
    api_key = require_smartlead(repo, shop)
    return await clients.smartlead(api_key).get_warmup_stats(vendor_id)


async def assign_to_campaign(
    repo: Repository,
    clients: VendorClients,
    shop: str,
    account_id: Any,
    campaign_id: Any,
) -> Dict[str, Any]:
    account = require_account(repo, shop, account_id)
    vendor_account_id = _require_linked(account)

    campaign_uuid = parse_uuid(campaign_id)
    campaign = repo.select_one(OutreachCampaign, {"shop": shop, "id": campaign_uuid}) if campaign_uuid else None
    if campaign is None:
        raise NotFound("Campaign not found")
    if not campaign.smartlead_campaign_id:
        raise ValidationFailed("Campaign not linked to Smartlead")

    api_key = require_smartlead(repo, shop)
    await clients.smartlead(api_key).add_email_accounts_to_campaign(
        campaign.smartlead_campaign_id,
        [vendor_account_id],
    )

    assigned = list(campaign.email_account_ids or [])
    if str(account.id) not in assigned:
        repo.update(OutreachCampaign, {"email_account_ids": assigned + [str(account.id)]}, {"id": campaign.id})

    logger.info("[SMARTLEAD] Assigned %s to campaign %s", account.email, campaign.name)
    return {"success": True, "message": f"{account.email} assigned to {campaign.name}"}
