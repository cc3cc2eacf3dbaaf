"""Tests for the Cloudflare client: DNS evaluation and cold-email provisioning."""

import asyncio

import httpx
import pytest

from oce_app.services.cloudflare_client import (
    ZOHO_PROFILE,
    CloudflareAPIError,
    CloudflareClient,
    DnsProviderProfile,
    evaluate_dns_records,
)

DOMAIN = "brandmail.com"


def _ok(result):
    return {"success": True, "errors": [], "result": result}


def _client(vendors):
    return CloudflareClient("cf-token", "cf-account", transport=httpx.MockTransport(vendors.handler))


class TestEvaluateDnsRecords:
    """WHAT: The four mail-authentication flags are computed independently."""

    def test_complete_zone(self):
        records = [
            {"type": "MX", "name": DOMAIN, "content": "mx.zoho.com"},
            {"type": "TXT", "name": DOMAIN, "content": "v=spf1 include:zoho.com -all"},
            {"type": "TXT", "name": f"zmail._domainkey.{DOMAIN}", "content": "v=DKIM1; k=rsa; p=abc"},
            {"type": "TXT", "name": f"_dmarc.{DOMAIN}", "content": "v=DMARC1; p=quarantine"},
        ]
        assert evaluate_dns_records(records, DOMAIN) == {"mx": True, "spf": True, "dkim": True, "dmarc": True}

    def test_flags_do_not_depend_on_each_other(self):
        """WHY: a missing MX must not hide a correct DMARC record."""
        records = [{"type": "TXT", "name": f"_dmarc.{DOMAIN}", "content": "v=DMARC1; p=none"}]
        assert evaluate_dns_records(records, DOMAIN) == {"mx": False, "spf": False, "dkim": False, "dmarc": True}

    def test_cname_dkim_counts(self):
        records = [{"type": "CNAME", "name": f"s1._domainkey.{DOMAIN}", "content": "s1.dkim.example.net"}]
        assert evaluate_dns_records(records, DOMAIN)["dkim"] is True

    def test_non_spf_txt_and_other_names_ignored(self):
        records = [
            {"type": "TXT", "name": DOMAIN, "content": "google-site-verification=abc"},
            {"type": "MX", "name": f"mail.{DOMAIN}", "content": "mx.zoho.com"},
            {"type": "TXT", "name": f"_dmarc.{DOMAIN}", "content": "not dmarc"},
        ]
        assert evaluate_dns_records(records, DOMAIN) == {"mx": False, "spf": False, "dkim": False, "dmarc": False}

    def test_empty_zone(self):
        assert evaluate_dns_records([], DOMAIN) == {"mx": False, "spf": False, "dkim": False, "dmarc": False}


class TestProvisionColdEmailDns:
    def test_creates_full_record_set(self, vendors):
        vendors.add("POST", "/zones/zone-1/dns_records", lambda request: _ok({"id": "rec", **vendors.body(request)}))

        results = asyncio.run(_client(vendors).provision_cold_email_dns("zone-1", DOMAIN, ZOHO_PROFILE))

        assert results["errors"] == []
        assert [r["content"] for r in results["mx"]] == ["mx.zoho.com", "mx2.zoho.com", "mx3.zoho.com"]
        assert results["spf"]["content"] == "v=spf1 include:zoho.com -all"
        assert results["dmarc"]["name"] == f"_dmarc.{DOMAIN}"
        assert results["dmarc"]["content"].startswith("v=DMARC1")
        # 3 MX + SPF + DMARC, no DKIM in the default profile
        assert len(vendors.calls("POST", "/dns_records")) == 5

    def test_failures_are_collected_and_remaining_records_attempted(self, vendors):
        """WHAT: One failed record never aborts the rest of the set."""

        def create(request):
            body = vendors.body(request)
            if body["content"] == "mx2.zoho.com":
                return httpx.Response(400, json={"success": False, "errors": [{"message": "Record already exists"}]})
            return _ok({"id": "rec", **body})

        vendors.add("POST", "/zones/zone-1/dns_records", create)

        results = asyncio.run(_client(vendors).provision_cold_email_dns("zone-1", DOMAIN, ZOHO_PROFILE))

        assert results["errors"] == ["MX mx2.zoho.com: Cloudflare API error: Record already exists"]
        assert len(results["mx"]) == 2
        assert results["spf"] is not None
        assert results["dmarc"] is not None

    def test_custom_profile_with_dkim(self, vendors):
        vendors.add("POST", "/dns_records", lambda request: _ok(vendors.body(request)))
        profile = DnsProviderProfile.from_payload({
            "mxRecords": [{"content": "mx.provider.net", "priority": 5}],
            "spfInclude": "provider.net",
            "dkimRecords": [{"name": f"pm._domainkey.{DOMAIN}", "content": "pm.dkim.provider.net", "type": "CNAME"}],
        })

        results = asyncio.run(_client(vendors).provision_cold_email_dns("zone-1", DOMAIN, profile))

        assert results["mx"][0]["priority"] == 5
        assert results["dkim"] == [{
            "type": "CNAME",
            "name": f"pm._domainkey.{DOMAIN}",
            "content": "pm.dkim.provider.net",
            "ttl": 3600,
        }]


class TestCloudflareErrors:
    def test_success_false_raises_with_vendor_messages(self, vendors):
        vendors.add("GET", "/zones", {"success": False, "errors": [{"message": "Invalid zone"}, {"message": "Denied"}]})

        with pytest.raises(CloudflareAPIError) as exc_info:
            asyncio.run(_client(vendors).get_zone_id(DOMAIN))

        assert exc_info.value.message == "Cloudflare API error: Invalid zone; Denied"

    def test_verify_token_never_raises(self, vendors):
        vendors.add("GET", "/user/tokens/verify", {"success": False, "errors": [{"message": "Invalid token"}]}, 401)

        result = asyncio.run(_client(vendors).verify_token())

        assert result == {"valid": False, "error": "Cloudflare API error: Invalid token"}

    def test_zone_lookup_returns_first_match(self, vendors):
        vendors.add("GET", "/zones", _ok([{"id": "zone-9", "name": DOMAIN}]))
        assert asyncio.run(_client(vendors).get_zone_id(DOMAIN)) == "zone-9"
