"""SQLAlchemy ORM models and enums.

Every table is keyed by the tenant's `shop` domain (e.g. "mystore.myshopify.com").
Rows are exclusively owned by one shop and are purged together on uninstall.
Vendor credentials are stored through `EncryptedString`, so the database only
ever holds Fernet ciphertext.
"""

import uuid
from datetime import datetime
import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.types import TypeDecorator

from oce_app.security import decrypt_secret, encrypt_secret


# Single Base used by the entire application
Base = declarative_base()


class EncryptedString(TypeDecorator):
    """String column transparently encrypted with the app's Fernet key.

    Empty strings are stored as NULL so that "not configured" has exactly one
    representation.
    """

    impl = Text
    cache_ok = True

    def __init__(self, label: str = "credential", *args, **kwargs):
        self.label = label
        super().__init__(*args, **kwargs)

    def process_bind_param(self, value, dialect):
        if not value:
            return None
        return encrypt_secret(value, context=self.label)

    def process_result_value(self, value, dialect):
        if not value:
            return None
        return decrypt_secret(value, context=self.label)


# Enums ---------------------------------------------------------

class WarmupStatusEnum(str, enum.Enum):
    pending = "pending"
    active = "active"
    completed = "completed"
    paused = "paused"


class CampaignStatusEnum(str, enum.Enum):
    draft = "draft"
    active = "active"
    paused = "paused"
    completed = "completed"


class DirectionEnum(str, enum.Enum):
    inbound = "inbound"
    outbound = "outbound"


class SyncStatusEnum(str, enum.Enum):
    pending = "pending"
    sent = "sent"
    failed = "failed"


class DomainStatusEnum(str, enum.Enum):
    """Lifecycle of a registered sending domain.

    purchased -> dns_pending -> active, or failed when provisioning errors.
    """
    purchased = "purchased"
    dns_pending = "dns_pending"
    active = "active"
    failed = "failed"


# Platform session -------------------------------------------------

class ShopifySession(Base):
    """Offline Shopify Admin API session, one per installed shop.

    WHAT: Holds the offline access token used for Admin API calls
    WHY: Presence of this row is what makes a shop "Authenticated"
    """
    __tablename__ = "shopify_sessions"

    id = Column(String, primary_key=True)  # "offline_<shop>"
    shop = Column(String, nullable=False, unique=True, index=True)
    access_token = Column(EncryptedString("shopify_sessions.access_token"), nullable=False)
    scope = Column(String, nullable=True)
    is_online = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __str__(self):
        return self.id


# Attribution ------------------------------------------------------

class OceSettings(Base):
    """Per-shop attribution settings, created with defaults on first read."""
    __tablename__ = "oce_settings"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shop = Column(String, nullable=False, unique=True, index=True)

    api_key = Column(EncryptedString("oce_settings.api_key"), nullable=True)
    sdk_enabled = Column(Boolean, nullable=False, default=True)
    webhook_enabled = Column(Boolean, nullable=False, default=True)

    # Attribution tuning
    attribution_model = Column(String, nullable=False, default="last-touch")
    attribution_window = Column(Integer, nullable=False, default=30)  # days
    commission_rate = Column(Float, nullable=False, default=10.0)  # percent
    track_impressions = Column(Boolean, nullable=False, default=True)
    track_clicks = Column(Boolean, nullable=False, default=True)
    track_watch_progress = Column(Boolean, nullable=False, default=True)
    min_watch_percent = Column(Integer, nullable=False, default=25)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class OrderSync(Base):
    """Outcome of relaying one Shopify order to the attribution backend.

    WHAT: One row per (shop, order); status pending -> sent | failed
    WHY: The "sent" status is the guard against double-submitting an order
         when Shopify re-delivers the webhook
    """
    __tablename__ = "order_syncs"
    __table_args__ = (
        UniqueConstraint("shop", "shopify_order_id", name="uq_order_sync_shop_order"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shop = Column(String, nullable=False, index=True)
    shopify_order_id = Column(String, nullable=False)
    order_number = Column(String, nullable=True)

    status = Column(Enum(SyncStatusEnum), nullable=False, default=SyncStatusEnum.pending)
    total_amount = Column(Numeric(12, 2), nullable=True)
    currency = Column(String, nullable=True)

    oce_order_id = Column(String, nullable=True)
    exposure_ids = Column(JSON, nullable=True)  # list[str]
    commission = Column(Numeric(12, 2), nullable=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# Outreach ---------------------------------------------------------

class EmailSettings(Base):
    """Per-shop outreach credentials and the WHOIS contact used for registration."""
    __tablename__ = "email_settings"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shop = Column(String, nullable=False, unique=True, index=True)

    # Registrar (Cloudflare)
    cloudflare_account_id = Column(String, nullable=True)
    cloudflare_api_token = Column(EncryptedString("email_settings.cloudflare_api_token"), nullable=True)

    # Outreach platform (Smartlead)
    smartlead_api_key = Column(EncryptedString("email_settings.smartlead_api_key"), nullable=True)

    # Reply forwarding (Gmail)
    gmail_access_token = Column(EncryptedString("email_settings.gmail_access_token"), nullable=True)
    gmail_refresh_token = Column(EncryptedString("email_settings.gmail_refresh_token"), nullable=True)
    gmail_forward_to = Column(String, nullable=True)

    # WHOIS contact (applied to registrant/admin/tech/billing)
    whois_first_name = Column(String, nullable=True)
    whois_last_name = Column(String, nullable=True)
    whois_address = Column(String, nullable=True)
    whois_city = Column(String, nullable=True)
    whois_state = Column(String, nullable=True)
    whois_zip = Column(String, nullable=True)
    whois_country = Column(String, nullable=True)
    whois_phone = Column(String, nullable=True)
    whois_email = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class EmailDomain(Base):
    """A sending domain registered through Cloudflare Registrar.

    The four *_verified flags are written independently by provisioning and
    verification; `status` is the overall tenant-visible state.
    """
    __tablename__ = "email_domains"
    __table_args__ = (
        UniqueConstraint("shop", "domain", name="uq_email_domain_shop_domain"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shop = Column(String, nullable=False, index=True)
    domain = Column(String, nullable=False)

    registrar = Column(String, nullable=False, default="cloudflare")
    cloudflare_zone_id = Column(String, nullable=True)  # backfilled lazily on provisioning
    status = Column(Enum(DomainStatusEnum), nullable=False, default=DomainStatusEnum.purchased)
    status_reason = Column(Text, nullable=True)

    dns_configured = Column(Boolean, nullable=False, default=False)
    mx_verified = Column(Boolean, nullable=False, default=False)
    spf_verified = Column(Boolean, nullable=False, default=False)
    dkim_verified = Column(Boolean, nullable=False, default=False)
    dmarc_verified = Column(Boolean, nullable=False, default=False)

    purchased_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    dns_configured_at = Column(DateTime, nullable=True)
    last_verified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    accounts = relationship("EmailAccount", back_populates="domain")

    def __str__(self):
        return self.domain


class EmailAccount(Base):
    """A mailbox on one of the shop's domains, registered with Smartlead."""
    __tablename__ = "email_accounts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shop = Column(String, nullable=False, index=True)
    domain_id = Column(UUID(as_uuid=True), ForeignKey("email_domains.id"), nullable=False)

    email = Column(String, nullable=False, unique=True)
    from_name = Column(String, nullable=True)
    smtp_host = Column(String, nullable=False)
    smtp_port = Column(Integer, nullable=False, default=587)
    imap_host = Column(String, nullable=False)
    imap_port = Column(Integer, nullable=False, default=993)

    smartlead_account_id = Column(String, nullable=True)
    warmup_enabled = Column(Boolean, nullable=False, default=True)
    warmup_status = Column(Enum(WarmupStatusEnum), nullable=False, default=WarmupStatusEnum.pending)
    daily_limit = Column(Integer, nullable=False, default=20)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    domain = relationship("EmailDomain", back_populates="accounts")

    def __str__(self):
        return self.email


class OutreachCampaign(Base):
    """A cold-email campaign mirrored from Smartlead."""
    __tablename__ = "outreach_campaigns"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shop = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    smartlead_campaign_id = Column(String, nullable=True, index=True)
    status = Column(Enum(CampaignStatusEnum), nullable=False, default=CampaignStatusEnum.draft)

    email_account_ids = Column(JSON, nullable=False, default=list)  # list[str] of EmailAccount ids
    sent_count = Column(Integer, nullable=False, default=0)
    reply_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __str__(self):
        return self.name


class EmailConversation(Base):
    """An inbound reply (or outbound message) shown in the shop's inbox."""
    __tablename__ = "email_conversations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shop = Column(String, nullable=False, index=True)
    campaign_id = Column(UUID(as_uuid=True), ForeignKey("outreach_campaigns.id"), nullable=True)
    email_account_id = Column(UUID(as_uuid=True), ForeignKey("email_accounts.id"), nullable=True)

    direction = Column(Enum(DirectionEnum), nullable=False, default=DirectionEnum.inbound)
    from_email = Column(String, nullable=False)
    to_email = Column(String, nullable=False)
    subject = Column(String, nullable=True)
    body_text = Column(Text, nullable=True)
    body_html = Column(Text, nullable=True)

    lead_id = Column(String, nullable=True)
    smartlead_campaign_id = Column(String, nullable=True)
    gmail_message_id = Column(String, nullable=True)  # set once forwarded into Gmail

    is_read = Column(Boolean, nullable=False, default=False)
    received_at = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)


# Purge order for tenant offboarding: children before parents.
TENANT_MODELS = (
    EmailConversation,
    OutreachCampaign,
    EmailAccount,
    EmailDomain,
    EmailSettings,
    OrderSync,
    OceSettings,
    ShopifySession,
)
