"""Reply inbox: paginated conversations, read state and summary counts."""

import math
from typing import Any, Dict, Optional

from oce_app.errors import NotFound
from oce_app.models import EmailConversation
from oce_app.repository import Repository
from oce_app.utils.ids import parse_uuid

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100


def serialize_conversation(conversation: EmailConversation) -> Dict[str, Any]:
    return {
        "id": str(conversation.id),
        "campaign_id": str(conversation.campaign_id) if conversation.campaign_id else None,
        "email_account_id": str(conversation.email_account_id) if conversation.email_account_id else None,
        "direction": conversation.direction.value if conversation.direction else None,
        "from_email": conversation.from_email,
        "to_email": conversation.to_email,
        "subject": conversation.subject,
        "body_text": conversation.body_text,
        "body_html": conversation.body_html,
        "lead_id": conversation.lead_id,
        "gmail_message_id": conversation.gmail_message_id,
        "is_read": conversation.is_read,
        "received_at": conversation.received_at.isoformat() if conversation.received_at else None,
    }


def list_conversations(
    repo: Repository,
    shop: str,
    campaign_id: Optional[str] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> Dict[str, Any]:
    """Newest first. An unparseable campaign id matches nothing."""
    page = max(1, page)
    limit = max(1, min(limit, MAX_PAGE_SIZE))

    filters: Dict[str, Any] = {"shop": shop}
    if campaign_id:
        campaign_uuid = parse_uuid(campaign_id)
        if campaign_uuid is None:
            return {
                "conversations": [],
                "pagination": {"page": page, "limit": limit, "total": 0, "total_pages": 0},
            }
        filters["campaign_id"] = campaign_uuid

    total = repo.count(EmailConversation, filters)
    conversations = repo.select_many(
        EmailConversation,
        filters,
        order_by="-received_at",
        limit=limit,
        offset=(page - 1) * limit,
    )
    return {
        "conversations": [serialize_conversation(c) for c in conversations],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit),
        },
    }


def _require_conversation(repo: Repository, shop: str, conversation_id: Any) -> EmailConversation:
    conversation_uuid = parse_uuid(conversation_id)
    conversation = (
        repo.select_one(EmailConversation, {"shop": shop, "id": conversation_uuid})
        if conversation_uuid else None
    )
    if conversation is None:
        raise NotFound("Conversation not found")
    return conversation


def get_conversation(repo: Repository, shop: str, conversation_id: Any) -> Dict[str, Any]:
    """Viewing a conversation marks it read."""
    conversation = _require_conversation(repo, shop, conversation_id)
    if not conversation.is_read:
        conversation = repo.update(EmailConversation, {"is_read": True}, {"id": conversation.id})
    return serialize_conversation(conversation)


def mark_read(repo: Repository, shop: str, conversation_id: Any) -> Dict[str, Any]:
    conversation = _require_conversation(repo, shop, conversation_id)
    repo.update(EmailConversation, {"is_read": True}, {"id": conversation.id})
    return {"success": True}


def inbox_stats(repo: Repository, shop: str) -> Dict[str, Any]:
    return {
        "total": repo.count(EmailConversation, {"shop": shop}),
        "unread": repo.count(EmailConversation, {"shop": shop, "is_read": False}),
        "by_campaign": [
            {"campaign_id": str(campaign_id) if campaign_id else None, "count": count}
            for campaign_id, count in repo.conversation_counts_by_campaign(shop)
        ],
    }
