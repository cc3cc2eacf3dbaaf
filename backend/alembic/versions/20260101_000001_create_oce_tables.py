"""Create OCE attribution and outreach tables

Revision ID: 20260101_000001
Revises:
Create Date: 2026-01-01 00:00:00.000000

WHAT:
    Creates the full per-shop schema:
    - shopify_sessions: offline Admin API token per installed shop
    - oce_settings: attribution settings + encrypted OCE API key
    - order_syncs: one row per (shop, order) relayed to OCE
    - email_settings: Cloudflare/Smartlead/Gmail credentials + WHOIS contact
    - email_domains: registered sending domains and DNS state
    - email_accounts: mailboxes registered with Smartlead
    - outreach_campaigns: campaigns mirrored from Smartlead
    - email_conversations: inbound replies shown in the inbox

WHY:
    Every table is keyed by `shop` so uninstall / shop/redact can purge a
    tenant with one delete per table. Credential columns are TEXT because
    they hold Fernet ciphertext, never plaintext.

REFERENCES:
    - oce_app/models.py
    - Shopify mandatory webhooks: https://shopify.dev/docs/apps/build/privacy-law-compliance
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '20260101_000001'
down_revision = None
branch_labels = None
depends_on = None


ENUM_NAMES = ('syncstatusenum', 'domainstatusenum', 'warmupstatusenum', 'campaignstatusenum', 'directionenum')


def upgrade() -> None:
    # =========================================================================
    # STEP 1: Platform session
    # =========================================================================
    # WHAT: One offline session per shop, id "offline_<shop>"
    # WHY: Row presence is what marks a shop as installed
    op.create_table(
        'shopify_sessions',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('shop', sa.String(), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('scope', sa.String(), nullable=True),
        sa.Column('is_online', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_shopify_sessions_shop', 'shopify_sessions', ['shop'], unique=True)

    # =========================================================================
    # STEP 2: Attribution tables
    # =========================================================================
    op.create_table(
        'oce_settings',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('shop', sa.String(), nullable=False),
        sa.Column('api_key', sa.Text(), nullable=True),
        sa.Column('sdk_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('webhook_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('attribution_model', sa.String(), nullable=False, server_default='last-touch'),
        sa.Column('attribution_window', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('commission_rate', sa.Float(), nullable=False, server_default='10.0'),
        sa.Column('track_impressions', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('track_clicks', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('track_watch_progress', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('min_watch_percent', sa.Integer(), nullable=False, server_default='25'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_oce_settings_shop', 'oce_settings', ['shop'], unique=True)

    # WHAT: Sync ledger; (shop, shopify_order_id) is the idempotency key
    # WHY: A "sent" row stops re-delivered webhooks from double-submitting
    op.create_table(
        'order_syncs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('shop', sa.String(), nullable=False),
        sa.Column('shopify_order_id', sa.String(), nullable=False),
        sa.Column('order_number', sa.String(), nullable=True),
        sa.Column(
            'status',
            sa.Enum('pending', 'sent', 'failed', name='syncstatusenum'),
            nullable=False,
            server_default='pending',
        ),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('currency', sa.String(), nullable=True),
        sa.Column('oce_order_id', sa.String(), nullable=True),
        sa.Column('exposure_ids', sa.JSON(), nullable=True),
        sa.Column('commission', sa.Numeric(12, 2), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('shop', 'shopify_order_id', name='uq_order_sync_shop_order'),
    )
    op.create_index('ix_order_syncs_shop', 'order_syncs', ['shop'])

    # =========================================================================
    # STEP 3: Outreach credentials and domains
    # =========================================================================
    op.create_table(
        'email_settings',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('shop', sa.String(), nullable=False),
        sa.Column('cloudflare_account_id', sa.String(), nullable=True),
        sa.Column('cloudflare_api_token', sa.Text(), nullable=True),
        sa.Column('smartlead_api_key', sa.Text(), nullable=True),
        sa.Column('gmail_access_token', sa.Text(), nullable=True),
        sa.Column('gmail_refresh_token', sa.Text(), nullable=True),
        sa.Column('gmail_forward_to', sa.String(), nullable=True),
        sa.Column('whois_first_name', sa.String(), nullable=True),
        sa.Column('whois_last_name', sa.String(), nullable=True),
        sa.Column('whois_address', sa.String(), nullable=True),
        sa.Column('whois_city', sa.String(), nullable=True),
        sa.Column('whois_state', sa.String(), nullable=True),
        sa.Column('whois_zip', sa.String(), nullable=True),
        sa.Column('whois_country', sa.String(), nullable=True),
        sa.Column('whois_phone', sa.String(), nullable=True),
        sa.Column('whois_email', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_email_settings_shop', 'email_settings', ['shop'], unique=True)

    op.create_table(
        'email_domains',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('shop', sa.String(), nullable=False),
        sa.Column('domain', sa.String(), nullable=False),
        sa.Column('registrar', sa.String(), nullable=False, server_default='cloudflare'),
        sa.Column('cloudflare_zone_id', sa.String(), nullable=True),
        sa.Column(
            'status',
            sa.Enum('purchased', 'dns_pending', 'active', 'failed', name='domainstatusenum'),
            nullable=False,
            server_default='purchased',
        ),
        sa.Column('status_reason', sa.Text(), nullable=True),
        sa.Column('dns_configured', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('mx_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('spf_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('dkim_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('dmarc_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('purchased_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('dns_configured_at', sa.DateTime(), nullable=True),
        sa.Column('last_verified_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('shop', 'domain', name='uq_email_domain_shop_domain'),
    )
    op.create_index('ix_email_domains_shop', 'email_domains', ['shop'])

    # =========================================================================
    # STEP 4: Mailboxes, campaigns, inbox
    # =========================================================================
    op.create_table(
        'email_accounts',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('shop', sa.String(), nullable=False),
        sa.Column('domain_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('email_domains.id'), nullable=False),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('from_name', sa.String(), nullable=True),
        sa.Column('smtp_host', sa.String(), nullable=False),
        sa.Column('smtp_port', sa.Integer(), nullable=False, server_default='587'),
        sa.Column('imap_host', sa.String(), nullable=False),
        sa.Column('imap_port', sa.Integer(), nullable=False, server_default='993'),
        sa.Column('smartlead_account_id', sa.String(), nullable=True),
        sa.Column('warmup_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            'warmup_status',
            sa.Enum('pending', 'active', 'completed', 'paused', name='warmupstatusenum'),
            nullable=False,
            server_default='pending',
        ),
        sa.Column('daily_limit', sa.Integer(), nullable=False, server_default='20'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_email_accounts_shop', 'email_accounts', ['shop'])

    op.create_table(
        'outreach_campaigns',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('shop', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('smartlead_campaign_id', sa.String(), nullable=True),
        sa.Column(
            'status',
            sa.Enum('draft', 'active', 'paused', 'completed', name='campaignstatusenum'),
            nullable=False,
            server_default='draft',
        ),
        sa.Column('email_account_ids', sa.JSON(), nullable=False),
        sa.Column('sent_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reply_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_outreach_campaigns_shop', 'outreach_campaigns', ['shop'])
    op.create_index('ix_outreach_campaigns_smartlead_campaign_id', 'outreach_campaigns', ['smartlead_campaign_id'])

    op.create_table(
        'email_conversations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('shop', sa.String(), nullable=False),
        sa.Column('campaign_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('outreach_campaigns.id'), nullable=True),
        sa.Column('email_account_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('email_accounts.id'), nullable=True),
        sa.Column(
            'direction',
            sa.Enum('inbound', 'outbound', name='directionenum'),
            nullable=False,
            server_default='inbound',
        ),
        sa.Column('from_email', sa.String(), nullable=False),
        sa.Column('to_email', sa.String(), nullable=False),
        sa.Column('subject', sa.String(), nullable=True),
        sa.Column('body_text', sa.Text(), nullable=True),
        sa.Column('body_html', sa.Text(), nullable=True),
        sa.Column('lead_id', sa.String(), nullable=True),
        sa.Column('smartlead_campaign_id', sa.String(), nullable=True),
        sa.Column('gmail_message_id', sa.String(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('received_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_email_conversations_shop', 'email_conversations', ['shop'])


def downgrade() -> None:
    # Children before parents
    op.drop_table('email_conversations')
    op.drop_table('outreach_campaigns')
    op.drop_table('email_accounts')
    op.drop_table('email_domains')
    op.drop_table('email_settings')
    op.drop_table('order_syncs')
    op.drop_table('oce_settings')
    op.drop_table('shopify_sessions')

    for enum_name in ENUM_NAMES:
        op.execute(f'DROP TYPE IF EXISTS {enum_name}')
