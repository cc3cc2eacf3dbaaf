"""Inbound replies from Smartlead.

WHAT:
    Phase 1 (in the request): resolve the shop from the recipient mailbox,
    store the conversation, bump the campaign's reply counter.
    Phase 2 (after the ack): copy the reply into the shop's Gmail inbox and
    persist the Gmail message id plus any refreshed access token.

WHY:
    The payload carries no shop identifier; the recipient address is the
    only link back to a tenant. Forwarding talks to Google and must never
    delay or fail the acknowledgement.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from oce_app.models import DirectionEnum, EmailConversation, EmailSettings, OutreachCampaign
from oce_app.repository import Repository
from oce_app.services.clients import VendorClients
from oce_app.services.gmail_client import GmailAPIError
from oce_app.utils.ids import parse_uuid

logger = logging.getLogger(__name__)


def _text(payload: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def store_inbound_reply(repo: Repository, payload: Dict[str, Any]) -> Optional[EmailConversation]:
    """Store a reply for the shop owning the recipient mailbox.

    Returns None when no mailbox matches the recipient.
    """
    to_email = (_text(payload, "to_email") or "").strip()
    from_email = (_text(payload, "from_email") or "").strip()

    account = repo.find_account_by_email(to_email) if to_email else None
    if account is None:
        logger.warning("[REPLY_WEBHOOK] No email account for recipient %r, reply not stored", to_email)
        return None

    shop = account.shop
    vendor_campaign_id = _text(payload, "campaign_id")
    campaign = repo.find_campaign_by_vendor_id(shop, vendor_campaign_id)

    body = _text(payload, "email_body", "reply_body", "body")
    conversation = repo.insert(EmailConversation, {
        "shop": shop,
        "campaign_id": campaign.id if campaign else None,
        "email_account_id": account.id,
        "direction": DirectionEnum.inbound,
        "from_email": from_email,
        "to_email": account.email,
        "subject": _text(payload, "subject"),
        "body_text": body,
        "body_html": body,
        "lead_id": _text(payload, "lead_id"),
        "smartlead_campaign_id": vendor_campaign_id,
        "is_read": False,
        "received_at": datetime.utcnow(),
    })

    if campaign is not None:
        repo.update(OutreachCampaign, {"reply_count": (campaign.reply_count or 0) + 1}, {"id": campaign.id})

    logger.info(
        "[REPLY_WEBHOOK] Stored reply %s for %s (campaign=%s)",
        conversation.id, shop, campaign.id if campaign else None,
    )
    return conversation


async def forward_reply(repo: Repository, clients: VendorClients, conversation_id: Any) -> Dict[str, Any]:
    """Best-effort copy of a stored reply into the shop's Gmail inbox.

    Never raises for vendor failures; the outcome is logged and returned.
    """
    conversation_uuid = parse_uuid(conversation_id)
    conversation = repo.select_one(EmailConversation, {"id": conversation_uuid}) if conversation_uuid else None
    if conversation is None:
        return {"forwarded": False, "reason": "not_found"}

    settings = repo.select_one(EmailSettings, {"shop": conversation.shop})
    if (
        settings is None
        or not settings.gmail_forward_to
        or not (settings.gmail_access_token or settings.gmail_refresh_token)
    ):
        return {"forwarded": False, "reason": "not_configured"}

    gmail = clients.gmail(settings.gmail_access_token, settings.gmail_refresh_token)
    try:
        result = await gmail.insert_message(
            from_email=conversation.from_email,
            to_email=settings.gmail_forward_to,
            subject=conversation.subject,
            body=conversation.body_html or conversation.body_text,
        )
    except GmailAPIError as e:
        logger.warning("[GMAIL] Forwarding reply %s failed: %s", conversation.id, e)
        return {"forwarded": False, "reason": "error", "error": e.message}
    finally:
        if gmail.refreshed_access_token:
            repo.update(
                EmailSettings,
                {"gmail_access_token": gmail.refreshed_access_token},
                {"shop": conversation.shop},
            )

    message_id = (result or {}).get("id")
    repo.update(EmailConversation, {"gmail_message_id": message_id}, {"id": conversation.id})
    logger.info("[GMAIL] Forwarded reply %s as %s", conversation.id, message_id)
    return {"forwarded": True, "gmail_message_id": message_id}
