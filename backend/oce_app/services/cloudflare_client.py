"""Cloudflare API v4 client: registrar, zones and DNS records.

WHAT:
    Per-shop client built from the tenant's Cloudflare account id and API
    token. Adds the two composite operations the outreach flow needs:
    cold-email DNS provisioning and DNS verification.

WHY:
    Sending domains must carry MX, SPF, DKIM and DMARC before any mailbox can
    warm up. Provisioning collects per-record failures instead of aborting, so
    a partially configured zone is reported rather than lost.

REFERENCES:
    - https://developers.cloudflare.com/api/operations/dns-records-for-a-zone-create-dns-record
    - https://developers.cloudflare.com/api/operations/registrar-domains-list-domains
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from oce_app.errors import ValidationFailed
from oce_app.services.vendor_client import VendorAPIError, VendorClient

logger = logging.getLogger(__name__)

CLOUDFLARE_BASE_URL = "https://api.cloudflare.com/client/v4"
DEFAULT_TTL = 3600


class CloudflareAPIError(VendorAPIError):
    vendor = "Cloudflare"


@dataclass
class DnsProviderProfile:
    """Mailbox provider DNS requirements.

    mx:          (host, priority) pairs
    spf_include: domain for `include:`; SPF is skipped when empty
    dkim:        {"name", "content", "type"?} entries, type defaults to TXT
    """
    mx: List[Tuple[str, int]] = field(default_factory=list)
    spf_include: Optional[str] = None
    dkim: List[Dict[str, str]] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "DnsProviderProfile":
        """Build a profile from the request shape used by the dashboard.

        Accepts `mx_records` / `mxRecords` entries of `{content, priority}`,
        `spf_include` / `spfInclude` and `dkim_records` / `dkimRecords`.

        Raises:
            ValidationFailed: on any malformed entry, before a record is created
        """
        mx_entries = payload.get("mx_records") or payload.get("mxRecords") or []
        dkim_entries = payload.get("dkim_records") or payload.get("dkimRecords") or []
        if not isinstance(mx_entries, list) or not isinstance(dkim_entries, list):
            raise ValidationFailed("mx_records and dkim_records must be lists")

        mx: List[Tuple[str, int]] = []
        for entry in mx_entries:
            content = entry.get("content") if isinstance(entry, dict) else None
            if not isinstance(content, str) or not content.strip():
                raise ValidationFailed("Each MX record needs a content host")
            try:
                priority = int(entry.get("priority", 10))
            except (TypeError, ValueError):
                raise ValidationFailed(f"MX record {content} has an invalid priority")
            mx.append((content.strip(), priority))

        dkim: List[Dict[str, str]] = []
        for entry in dkim_entries:
            if not isinstance(entry, dict):
                raise ValidationFailed("Each DKIM record needs a name and content")
            name, content = entry.get("name"), entry.get("content")
            if not isinstance(name, str) or not name.strip() or not isinstance(content, str) or not content.strip():
                raise ValidationFailed("Each DKIM record needs a name and content")
            dkim.append({"name": name.strip(), "content": content.strip(), "type": entry.get("type") or "TXT"})

        spf_include = payload.get("spf_include") or payload.get("spfInclude")
        if spf_include is not None and not isinstance(spf_include, str):
            raise ValidationFailed("spf_include must be a domain name")

        return cls(mx=mx, spf_include=spf_include, dkim=dkim)


# DKIM keys are issued per mailbox provider after the first mailbox exists,
# so the default profile carries none.
ZOHO_PROFILE = DnsProviderProfile(
    mx=[("mx.zoho.com", 10), ("mx2.zoho.com", 20), ("mx3.zoho.com", 50)],
    spf_include="zoho.com",
    dkim=[],
)


def spf_content(include: str) -> str:
    return f"v=spf1 include:{include} -all"


def dmarc_content(domain: str) -> str:
    return f"v=DMARC1; p=quarantine; rua=mailto:dmarc@{domain}"


def evaluate_dns_records(records: Iterable[Dict[str, Any]], domain: str) -> Dict[str, bool]:
    """Compute the four mail-authentication flags from a zone's records.

    Each flag is independent and the record list is scanned once.
    """
    status = {"mx": False, "spf": False, "dkim": False, "dmarc": False}
    dmarc_name = f"_dmarc.{domain}"

    for record in records:
        rtype = record.get("type")
        name = record.get("name") or ""
        content = record.get("content") or ""

        if rtype == "MX" and name == domain:
            status["mx"] = True
        if rtype == "TXT" and name == domain and content.startswith("v=spf1"):
            status["spf"] = True
        if rtype in ("TXT", "CNAME") and "._domainkey." in name:
            status["dkim"] = True
        if rtype == "TXT" and name == dmarc_name and content.startswith("v=DMARC1"):
            status["dmarc"] = True

    return status


class CloudflareClient(VendorClient):
    """Client for one tenant's Cloudflare account.

    Usage:
        cf = CloudflareClient(api_token="...", account_id="...")
        zone_id = await cf.get_zone_id("brand-mail.com")
        results = await cf.provision_cold_email_dns(zone_id, "brand-mail.com", ZOHO_PROFILE)
    """

    base_url = CLOUDFLARE_BASE_URL
    error_class = CloudflareAPIError
    log_tag = "[CLOUDFLARE]"

    def __init__(self, api_token: str, account_id: str, **kwargs):
        super().__init__(**kwargs)
        self.api_token = api_token
        self.account_id = account_id

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_token}"}

    def is_success(self, data: Any) -> bool:
        if isinstance(data, dict):
            return bool(data.get("success"))
        return True

    def error_message(self, status_code: int, data: Any) -> str:
        errors = []
        if isinstance(data, dict):
            errors = [e.get("message", "") for e in data.get("errors") or [] if isinstance(e, dict)]
        detail = "; ".join(e for e in errors if e) or f"HTTP {status_code}"
        return f"Cloudflare API error: {detail}"

    def unwrap(self, data: Any) -> Any:
        if isinstance(data, dict):
            return data.get("result")
        return data

    # ----- token ---------------------------------------------------------

    async def verify_token(self) -> Dict[str, Any]:
        """Check the API token; never raises."""
        try:
            result = await self.request("GET", "/user/tokens/verify")
            return {"valid": True, "status": (result or {}).get("status")}
        except CloudflareAPIError as e:
            return {"valid": False, "error": e.message}

    # ----- registrar -----------------------------------------------------

    async def search_domains(self, query: str) -> List[Dict[str, Any]]:
        result = await self.request(
            "GET",
            f"/accounts/{self.account_id}/registrar/domains/search",
            params={"query": query},
        )
        return result or []

    async def purchase_domain(self, domain: str, contact: Dict[str, Any], years: int = 1) -> Dict[str, Any]:
        """Register a domain with one contact applied to every WHOIS role."""
        logger.info("[CLOUDFLARE] Purchasing %s for %d year(s)", domain, years)
        return await self.request(
            "POST",
            f"/accounts/{self.account_id}/registrar/domains/purchase",
            {
                "name": domain,
                "years": years,
                "auto_renew": True,
                "privacy": True,
                "contacts": {
                    "registrant": contact,
                    "admin": contact,
                    "tech": contact,
                    "billing": contact,
                },
            },
        )

    # ----- zones ---------------------------------------------------------

    async def get_zone_id(self, domain: str) -> Optional[str]:
        result = await self.request("GET", "/zones", params={"name": domain, "account.id": self.account_id})
        if not result:
            return None
        return result[0].get("id")

    async def create_zone(self, domain: str) -> Dict[str, Any]:
        logger.info("[CLOUDFLARE] Creating zone for %s", domain)
        return await self.request(
            "POST",
            "/zones",
            {"name": domain, "account": {"id": self.account_id}, "type": "full"},
        )

    # ----- DNS records ---------------------------------------------------

    async def list_dns_records(self, zone_id: str, record_type: Optional[str] = None) -> List[Dict[str, Any]]:
        result = await self.request(
            "GET",
            f"/zones/{zone_id}/dns_records",
            params={"per_page": 100, "type": record_type},
        )
        return result or []

    async def create_dns_record(
        self,
        zone_id: str,
        *,
        type: str,
        name: str,
        content: str,
        priority: Optional[int] = None,
        ttl: int = DEFAULT_TTL,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"type": type, "name": name, "content": content, "ttl": ttl}
        if priority is not None:
            body["priority"] = priority
        return await self.request("POST", f"/zones/{zone_id}/dns_records", body)

    # ----- composites ----------------------------------------------------

    async def provision_cold_email_dns(
        self,
        zone_id: str,
        domain: str,
        profile: DnsProviderProfile,
    ) -> Dict[str, Any]:
        """Create MX, SPF, DKIM and DMARC records for a sending domain.

        Every record is created independently; failures are collected into
        `errors` and the remaining records are still attempted.

        Returns:
            {"mx": [...], "spf": record|None, "dkim": [...], "dmarc": record|None, "errors": [...]}
        """
        results: Dict[str, Any] = {"mx": [], "spf": None, "dkim": [], "dmarc": None, "errors": []}

        for host, priority in profile.mx:
            try:
                record = await self.create_dns_record(zone_id, type="MX", name=domain, content=host, priority=priority)
                results["mx"].append(record)
            except CloudflareAPIError as e:
                results["errors"].append(f"MX {host}: {e.message}")

        if profile.spf_include:
            try:
                results["spf"] = await self.create_dns_record(
                    zone_id, type="TXT", name=domain, content=spf_content(profile.spf_include)
                )
            except CloudflareAPIError as e:
                results["errors"].append(f"SPF: {e.message}")

        for dkim in profile.dkim:
            try:
                record = await self.create_dns_record(
                    zone_id,
                    type=dkim.get("type") or "TXT",
                    name=dkim["name"],
                    content=dkim["content"],
                )
                results["dkim"].append(record)
            except CloudflareAPIError as e:
                results["errors"].append(f"DKIM {dkim.get('name')}: {e.message}")

        try:
            results["dmarc"] = await self.create_dns_record(
                zone_id, type="TXT", name=f"_dmarc.{domain}", content=dmarc_content(domain)
            )
        except CloudflareAPIError as e:
            results["errors"].append(f"DMARC: {e.message}")

        if results["errors"]:
            logger.warning("[DNS] Provisioning for %s finished with %d error(s)", domain, len(results["errors"]))
        else:
            logger.info("[DNS] Provisioned cold-email records for %s", domain)
        return results

    async def verify_dns_records(self, zone_id: str, domain: str) -> Dict[str, bool]:
        records = await self.list_dns_records(zone_id)
        return evaluate_dns_records(records, domain)
