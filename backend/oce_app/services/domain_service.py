"""Sending-domain lifecycle: search, purchase, DNS provisioning and verification.

WHAT:
    purchased --provision (no errors)--> dns_pending --verify (all four)--> active
    purchased --provision (any error)--> failed (reason = joined errors)

    Provisioning and verification both overwrite the MX/SPF/DKIM/DMARC flags;
    concurrent calls for the same domain are last-write-wins.

WHY:
    Vendor calls and row writes are not transactional. A missing zone id is
    therefore looked up (or the zone created) lazily at provisioning time
    rather than trusted from purchase.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from oce_app.errors import NotFound, ValidationFailed
from oce_app.models import DomainStatusEnum, EmailDomain
from oce_app.repository import Repository
from oce_app.services.account_service import serialize_account
from oce_app.services.clients import VendorClients
from oce_app.services.cloudflare_client import (
    ZOHO_PROFILE,
    CloudflareAPIError,
    CloudflareClient,
    DnsProviderProfile,
)
from oce_app.services.email_settings_service import require_cloudflare, whois_contact
from oce_app.utils.ids import parse_uuid

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
DAYS_PER_YEAR = 365


# =============================================================================
# SERIALIZATION
# =============================================================================

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_domain(domain: EmailDomain) -> Dict[str, Any]:
    return {
        "id": str(domain.id),
        "domain": domain.domain,
        "registrar": domain.registrar,
        "cloudflare_zone_id": domain.cloudflare_zone_id,
        "status": domain.status.value if domain.status else None,
        "status_reason": domain.status_reason,
        "dns_configured": domain.dns_configured,
        "mx_verified": domain.mx_verified,
        "spf_verified": domain.spf_verified,
        "dkim_verified": domain.dkim_verified,
        "dmarc_verified": domain.dmarc_verified,
        "purchased_at": _iso(domain.purchased_at),
        "expires_at": _iso(domain.expires_at),
        "dns_configured_at": _iso(domain.dns_configured_at),
        "last_verified_at": _iso(domain.last_verified_at),
        "created_at": _iso(domain.created_at),
    }


def _require_domain(repo: Repository, shop: str, domain_id: Any) -> EmailDomain:
    if not domain_id:
        raise ValidationFailed("domain_id is required")
    domain_uuid = parse_uuid(domain_id)
    domain = repo.select_one(EmailDomain, {"shop": shop, "id": domain_uuid}) if domain_uuid else None
    if domain is None:
        raise NotFound("Domain not found")
    return domain


def _cloudflare(repo: Repository, clients: VendorClients, shop: str) -> CloudflareClient:
    _, api_token, account_id = require_cloudflare(repo, shop)
    return clients.cloudflare(api_token, account_id)


# =============================================================================
# REGISTRAR
# =============================================================================

async def search_domains(repo: Repository, clients: VendorClients, shop: str, query: Optional[str]) -> List[Dict[str, Any]]:
    query = (query or "").strip()
    if len(query) < MIN_QUERY_LENGTH:
        raise ValidationFailed(f"Search query must be at least {MIN_QUERY_LENGTH} characters")
    return await _cloudflare(repo, clients, shop).search_domains(query)


async def purchase_domain(
    repo: Repository,
    clients: VendorClients,
    shop: str,
    domain_name: Optional[str],
    years: int = 1,
) -> EmailDomain:
    """Register a domain and store it as `purchased`.

    The WHOIS gate runs before any vendor call. The zone id lookup afterwards
    is best-effort; a null zone id is backfilled by `provision_dns`.
    """
    domain_name = (domain_name or "").strip().lower()
    if not domain_name:
        raise ValidationFailed("domain is required")
    if years < 1:
        raise ValidationFailed("years must be at least 1")

    if repo.select_one(EmailDomain, {"shop": shop, "domain": domain_name}):
        raise ValidationFailed(f"Domain {domain_name} already exists")

    settings, api_token, account_id = require_cloudflare(repo, shop)
    contact = whois_contact(settings)
    cloudflare = clients.cloudflare(api_token, account_id)

    await cloudflare.purchase_domain(domain_name, contact, years)
    logger.info("[CLOUDFLARE] Purchased %s for %s", domain_name, shop)

    zone_id = None
    try:
        zone_id = await cloudflare.get_zone_id(domain_name)
    except CloudflareAPIError as e:
        logger.warning("[CLOUDFLARE] Zone lookup after purchase failed for %s: %s", domain_name, e)
    if not zone_id:
        logger.info("[CLOUDFLARE] No zone yet for %s, will backfill on provisioning", domain_name)

    purchased_at = datetime.utcnow()
    return repo.insert(EmailDomain, {
        "shop": shop,
        "domain": domain_name,
        "registrar": "cloudflare",
        "cloudflare_zone_id": zone_id,
        "status": DomainStatusEnum.purchased,
        "purchased_at": purchased_at,
        "expires_at": purchased_at + timedelta(days=years * DAYS_PER_YEAR),
    })


# =============================================================================
# DNS
# =============================================================================

async def _ensure_zone(repo: Repository, cloudflare: CloudflareClient, domain: EmailDomain) -> str:
    if domain.cloudflare_zone_id:
        return domain.cloudflare_zone_id

    zone_id = await cloudflare.get_zone_id(domain.domain)
    if not zone_id:
        zone = await cloudflare.create_zone(domain.domain)
        zone_id = zone.get("id")
    if not zone_id:
        raise CloudflareAPIError(f"Could not find or create a zone for {domain.domain}")

    repo.update(EmailDomain, {"cloudflare_zone_id": zone_id}, {"id": domain.id})
    logger.info("[DNS] Backfilled zone %s for %s", zone_id, domain.domain)
    return zone_id


async def provision_dns(
    repo: Repository,
    clients: VendorClients,
    shop: str,
    domain_id: Any,
    provider: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Create the cold-email record set and record the outcome on the domain.

    Any provisioning error marks the domain `failed`. The MX/SPF/DMARC flags
    still reflect which records exist, so a retry only needs the failed ones.
    """
    domain = _require_domain(repo, shop, domain_id)
    profile = DnsProviderProfile.from_payload(provider) if provider else ZOHO_PROFILE
    cloudflare = _cloudflare(repo, clients, shop)
    zone_id = await _ensure_zone(repo, cloudflare, domain)

    results = await cloudflare.provision_cold_email_dns(zone_id, domain.domain, profile)

    errors = results["errors"]
    repo.update(EmailDomain, {
        "status": DomainStatusEnum.failed if errors else DomainStatusEnum.dns_pending,
        "status_reason": "; ".join(errors) if errors else None,
        "dns_configured": True,
        "dns_configured_at": datetime.utcnow(),
        "mx_verified": len(results["mx"]) > 0,
        "spf_verified": results["spf"] is not None,
        "dmarc_verified": results["dmarc"] is not None,
    }, {"id": domain.id})
    return results


async def verify_dns(repo: Repository, clients: VendorClients, shop: str, domain_id: Any) -> Dict[str, Any]:
    domain = _require_domain(repo, shop, domain_id)
    if not domain.cloudflare_zone_id:
        raise ValidationFailed("Domain has no Cloudflare zone")

    cloudflare = _cloudflare(repo, clients, shop)
    flags = await cloudflare.verify_dns_records(domain.cloudflare_zone_id, domain.domain)
    all_verified = all(flags.values())
    status = DomainStatusEnum.active if all_verified else DomainStatusEnum.dns_pending

    repo.update(EmailDomain, {
        "mx_verified": flags["mx"],
        "spf_verified": flags["spf"],
        "dkim_verified": flags["dkim"],
        "dmarc_verified": flags["dmarc"],
        "status": status,
        "last_verified_at": datetime.utcnow(),
    }, {"id": domain.id})
    logger.info("[DNS] Verified %s: %s", domain.domain, flags)

    return {"status": flags, "all_verified": all_verified, "domain_status": status.value}


# =============================================================================
# LISTING
# =============================================================================

def list_domains(repo: Repository, shop: str) -> List[Dict[str, Any]]:
    counts = repo.account_counts_by_domain(shop)
    domains = repo.select_many(EmailDomain, {"shop": shop}, order_by="-created_at")
    payload = []
    for domain in domains:
        total, active = counts.get(domain.id, (0, 0))
        payload.append({**serialize_domain(domain), "account_count": total, "active_account_count": active})
    return payload


def domain_status(repo: Repository, shop: str, domain_id: Any) -> Dict[str, Any]:
    domain = _require_domain(repo, shop, domain_id)
    accounts = repo.accounts_for_domain(shop, domain.id)
    return {"domain": serialize_domain(domain), "accounts": [serialize_account(a) for a in accounts]}
