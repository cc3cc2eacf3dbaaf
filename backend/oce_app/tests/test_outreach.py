"""Tests for mailboxes, campaigns and the reply inbox endpoints."""

from datetime import datetime, timedelta

import pytest

from oce_app.models import (
    DirectionEnum,
    DomainStatusEnum,
    EmailAccount,
    EmailConversation,
    EmailDomain,
    OutreachCampaign,
    WarmupStatusEnum,
)

SMARTLEAD = "server.smartlead.ai"


@pytest.fixture
def domain(repo, cloudflare_settings):
    return repo.insert(EmailDomain, {
        "shop": cloudflare_settings.shop,
        "domain": "brandmail.com",
        "status": DomainStatusEnum.active,
    })


@pytest.fixture
def account(repo, domain):
    return repo.insert(EmailAccount, {
        "shop": domain.shop,
        "domain_id": domain.id,
        "email": "rep@brandmail.com",
        "smtp_host": "smtp.zoho.com",
        "imap_host": "imap.zoho.com",
        "smartlead_account_id": "501",
        "warmup_status": WarmupStatusEnum.active,
    })


@pytest.fixture
def campaign(repo, domain):
    return repo.insert(OutreachCampaign, {
        "shop": domain.shop,
        "name": "Spring launch",
        "smartlead_campaign_id": "321",
        "email_account_ids": [],
    })


# ============================================================================
# Accounts
# ============================================================================

class TestEmailAccounts:
    def test_create_registers_with_smartlead(self, client, shop_headers, domain, vendors):
        vendors.add("POST", "/api/v1/email-accounts/save", {"ok": True, "id": 9001})

        response = client.post(
            "/accounts",
            json={"domainId": str(domain.id), "localPart": "Sales", "password": "app-password"},
            headers=shop_headers,
        )

        assert response.status_code == 201
        account = response.json()["account"]
        assert account["email"] == "sales@brandmail.com"
        assert account["smartlead_account_id"] == "9001"
        assert account["smtp_host"] == "smtp.zoho.com"
        assert account["smtp_port"] == 587
        assert account["daily_limit"] == 20
        assert account["warmup_status"] == "active"

        [request] = vendors.calls("POST", "/api/v1/email-accounts/save")
        assert request.url.params["api_key"] == "sl-key-abcdef123456"
        assert vendors.body(request)["max_email_per_day"] == 20

    def test_duplicate_address_rejected(self, client, shop_headers, account, vendors):
        response = client.post(
            "/accounts",
            json={"domainId": str(account.domain_id), "localPart": "rep", "password": "pw"},
            headers=shop_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Email account rep@brandmail.com already exists"
        assert vendors.requests == []

    def test_missing_fields(self, client, shop_headers, domain):
        response = client.post("/accounts", json={"domainId": str(domain.id)}, headers=shop_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "domainId, localPart and password are required"

    def test_vendor_failure_surfaces_as_500(self, client, shop_headers, domain, vendors, repo):
        vendors.add("POST", "/api/v1/email-accounts/save", {"message": "Invalid SMTP credentials"}, 400)

        response = client.post(
            "/accounts",
            json={"domainId": str(domain.id), "localPart": "sales", "password": "bad"},
            headers=shop_headers,
        )

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Smartlead API error: Invalid SMTP credentials"}
        assert repo.count(EmailAccount) == 0

    def test_list_includes_domain(self, client, shop_headers, account):
        response = client.get("/accounts", headers=shop_headers)

        [listed] = response.json()["accounts"]
        assert listed["email"] == "rep@brandmail.com"
        assert listed["domain"] == "brandmail.com"
        assert listed["domain_status"] == "active"

    def test_pause_warmup(self, client, shop_headers, account, vendors):
        vendors.add("POST", "/api/v1/email-accounts/501/warmup", {"ok": True})

        response = client.post(f"/accounts/{account.id}/warmup", json={"enabled": False}, headers=shop_headers)

        assert response.status_code == 200
        assert response.json()["account"]["warmup_status"] == "paused"
        assert vendors.body(vendors.calls("POST", "/warmup")[0]) == {"warmup_enabled": False}

    def test_assign_to_campaign(self, client, shop_headers, account, campaign, vendors, repo):
        vendors.add("POST", "/api/v1/campaigns/321/email-accounts", {"ok": True})

        response = client.post(
            f"/accounts/{account.id}/assign",
            json={"campaignId": str(campaign.id)},
            headers=shop_headers,
        )

        assert response.json() == {"success": True, "message": "rep@brandmail.com assigned to Spring launch"}
        assert vendors.body(vendors.calls("POST", "/email-accounts")[0]) == {"email_account_ids": ["501"]}
        repo.db.expire_all()
        assert repo.select_one(OutreachCampaign, {"id": campaign.id}).email_account_ids == [str(account.id)]

    def test_unknown_account(self, client, shop_headers, domain):
        response = client.get("/accounts/not-an-id/warmup-stats", headers=shop_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "Email account not found"


# ============================================================================
# Campaigns
# ============================================================================

class TestCampaigns:
    def test_create_campaign(self, client, shop_headers, cloudflare_settings, vendors):
        vendors.add("POST", "/api/v1/campaigns/create", {"ok": True, "id": 777, "name": "Q3 push"})

        response = client.post("/campaigns", json={"name": " Q3 push "}, headers=shop_headers)

        assert response.status_code == 201
        campaign = response.json()["campaign"]
        assert campaign["name"] == "Q3 push"
        assert campaign["smartlead_campaign_id"] == "777"
        assert campaign["status"] == "draft"

    def test_name_required(self, client, shop_headers, cloudflare_settings, vendors):
        response = client.post("/campaigns", json={"name": "  "}, headers=shop_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Campaign name is required"
        assert vendors.requests == []

    def test_smartlead_key_required(self, client, shop_headers, installed_shop):
        response = client.post("/campaigns", json={"name": "Q3"}, headers=shop_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Smartlead API key not configured. Add it in Email Settings."

    def test_detail_survives_stats_failure(self, client, shop_headers, repo, account, campaign, vendors):
        repo.update(OutreachCampaign, {"email_account_ids": [str(account.id)]}, {"id": campaign.id})
        repo.insert(EmailConversation, {
            "shop": campaign.shop,
            "campaign_id": campaign.id,
            "direction": DirectionEnum.inbound,
            "from_email": "lead@prospect.io",
            "to_email": account.email,
        })
        vendors.add("GET", "/statistics", {"message": "rate limited"}, 429)

        response = client.get(f"/campaigns/{campaign.id}", headers=shop_headers)

        assert response.status_code == 200
        detail = response.json()["campaign"]
        assert detail["reply_count"] == 1
        assert [a["email"] for a in detail["accounts"]] == ["rep@brandmail.com"]
        assert detail["smartlead_stats"] is None


# ============================================================================
# Inbox
# ============================================================================

class TestInbox:
    @pytest.fixture
    def conversations(self, repo, account, campaign):
        base = datetime(2026, 3, 1, 12, 0, 0)
        rows = []
        for index in range(3):
            rows.append(repo.insert(EmailConversation, {
                "shop": account.shop,
                "campaign_id": campaign.id if index < 2 else None,
                "email_account_id": account.id,
                "from_email": f"lead{index}@prospect.io",
                "to_email": account.email,
                "subject": f"Reply {index}",
                "received_at": base + timedelta(minutes=index),
            }))
        return rows

    def test_newest_first_with_pagination(self, client, shop_headers, conversations):
        response = client.get("/inbox", params={"page": 1, "limit": 2}, headers=shop_headers)

        body = response.json()
        assert [c["subject"] for c in body["conversations"]] == ["Reply 2", "Reply 1"]
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}

    def test_campaign_filter(self, client, shop_headers, conversations, campaign):
        response = client.get("/inbox", params={"campaignId": str(campaign.id)}, headers=shop_headers)

        assert response.json()["pagination"]["total"] == 2

    def test_viewing_marks_read(self, client, shop_headers, conversations):
        target = conversations[0]

        response = client.get(f"/inbox/{target.id}", headers=shop_headers)

        assert response.json()["conversation"]["is_read"] is True
        stats = client.get("/inbox/stats", headers=shop_headers).json()
        assert stats["total"] == 3
        assert stats["unread"] == 2

    def test_stats_by_campaign(self, client, shop_headers, conversations, campaign):
        stats = client.get("/inbox/stats", headers=shop_headers).json()

        counts = {entry["campaign_id"]: entry["count"] for entry in stats["by_campaign"]}
        assert counts == {str(campaign.id): 2, None: 1}

    def test_mark_read_unknown(self, client, shop_headers, conversations):
        response = client.put("/inbox/00000000-0000-0000-0000-000000000000/read", headers=shop_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "Conversation not found"
