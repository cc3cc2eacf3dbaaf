"""Pydantic schemas for request payloads.

Fields are mostly optional on purpose: the use-case services own the
required-field checks so their messages are the ones returned to callers.
Dashboard payloads arrive in camelCase; both spellings are accepted.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# =============================================================================
# SETTINGS
# =============================================================================

class SettingsUpdate(CamelModel):
    """Whitelisted attribution settings patch."""

    sdk_enabled: Optional[bool] = Field(None, alias="sdkEnabled")
    webhook_enabled: Optional[bool] = Field(None, alias="webhookEnabled")
    attribution_model: Optional[str] = Field(None, alias="attributionModel", examples=["last-touch"])
    attribution_window: Optional[int] = Field(None, alias="attributionWindow", ge=1, description="Days")
    commission_rate: Optional[float] = Field(None, alias="commissionRate", ge=0, le=100, description="Percent")
    track_impressions: Optional[bool] = Field(None, alias="trackImpressions")
    track_clicks: Optional[bool] = Field(None, alias="trackClicks")
    track_watch_progress: Optional[bool] = Field(None, alias="trackWatchProgress")
    min_watch_percent: Optional[int] = Field(None, alias="minWatchPercent", ge=0, le=100)


class ApiKeyUpdate(CamelModel):
    api_key: Optional[str] = Field(None, alias="apiKey", description="OCE API key")


class EmailSettingsUpdate(CamelModel):
    """Outreach credentials and WHOIS contact patch."""

    cloudflare_account_id: Optional[str] = Field(None, alias="cloudflareAccountId")
    cloudflare_api_token: Optional[str] = Field(None, alias="cloudflareApiToken")
    smartlead_api_key: Optional[str] = Field(None, alias="smartleadApiKey")
    gmail_forward_to: Optional[str] = Field(None, alias="gmailForwardTo")
    whois_first_name: Optional[str] = Field(None, alias="whoisFirstName")
    whois_last_name: Optional[str] = Field(None, alias="whoisLastName")
    whois_address: Optional[str] = Field(None, alias="whoisAddress")
    whois_city: Optional[str] = Field(None, alias="whoisCity")
    whois_state: Optional[str] = Field(None, alias="whoisState")
    whois_zip: Optional[str] = Field(None, alias="whoisZip")
    whois_country: Optional[str] = Field(None, alias="whoisCountry")
    whois_phone: Optional[str] = Field(None, alias="whoisPhone")
    whois_email: Optional[str] = Field(None, alias="whoisEmail")


# =============================================================================
# DOMAINS
# =============================================================================

class DomainSearchRequest(CamelModel):
    query: Optional[str] = Field(None, examples=["brandmail"])


class DomainPurchaseRequest(CamelModel):
    domain: Optional[str] = Field(None, examples=["getbrandmail.com"])
    years: int = Field(1, ge=1, le=10)


class ProvisionDnsRequest(CamelModel):
    domain_id: Optional[str] = Field(None, alias="domainId")
    provider: Optional[Dict[str, Any]] = Field(
        None,
        description="Mail provider profile: mx_records, spf_include, dkim_records",
    )


class VerifyDnsRequest(CamelModel):
    domain_id: Optional[str] = Field(None, alias="domainId")


# =============================================================================
# ACCOUNTS / CAMPAIGNS
# =============================================================================

class EmailAccountCreate(CamelModel):
    domain_id: Optional[str] = Field(None, alias="domainId")
    local_part: Optional[str] = Field(None, alias="localPart", examples=["john"])
    password: Optional[str] = None
    from_name: Optional[str] = Field(None, alias="fromName")
    smtp_host: Optional[str] = Field(None, alias="smtpHost")
    smtp_port: Optional[int] = Field(None, alias="smtpPort")
    imap_host: Optional[str] = Field(None, alias="imapHost")
    imap_port: Optional[int] = Field(None, alias="imapPort")
    daily_limit: Optional[int] = Field(None, alias="dailyLimit", ge=1)
    warmup_enabled: bool = Field(True, alias="warmupEnabled")


class WarmupToggle(CamelModel):
    enabled: bool


class CampaignAssignment(CamelModel):
    campaign_id: Optional[str] = Field(None, alias="campaignId")


class CampaignCreate(CamelModel):
    name: Optional[str] = None


# =============================================================================
# OCE
# =============================================================================

class VideoAssetCreate(CamelModel):
    title: Optional[str] = None
    creator_id: Optional[str] = Field(None, alias="creatorId")
    video_url: Optional[str] = Field(None, alias="videoUrl")
    skus: Optional[List[str]] = None
    platform: Optional[str] = Field(None, examples=["tiktok"])


class ExposureEvent(CamelModel):
    exposure_id: Optional[str] = Field(None, alias="exposureId")
    asset_id: Optional[str] = Field(None, alias="assetId")
    sku: Optional[str] = None
    session_id: Optional[str] = Field(None, alias="sessionId")
    events: Optional[List[Dict[str, Any]]] = None


# =============================================================================
# WEBHOOKS
# =============================================================================

class SmartleadReplyPayload(CamelModel):
    """Smartlead EMAIL_REPLY webhook body (only the fields we use)."""

    from_email: Optional[str] = None
    to_email: Optional[str] = None
    subject: Optional[str] = None
    email_body: Optional[str] = None
    campaign_id: Optional[Any] = None
    lead_id: Optional[Any] = None
