"""Reply inbox endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from oce_app.deps import Tenant, get_current_tenant, get_repository
from oce_app.repository import Repository
from oce_app.services import inbox_service

router = APIRouter(prefix="/inbox", tags=["Inbox"])


@router.get("")
def list_conversations(
    campaign_id: Optional[str] = Query(None, alias="campaignId"),
    page: int = Query(1, ge=1),
    limit: int = Query(inbox_service.DEFAULT_PAGE_SIZE, ge=1, le=inbox_service.MAX_PAGE_SIZE),
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
):
    result = inbox_service.list_conversations(repo, tenant.shop, campaign_id, page, limit)
    return {"success": True, **result}


@router.get("/stats")
def inbox_stats(
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
):
    return {"success": True, **inbox_service.inbox_stats(repo, tenant.shop)}


@router.get("/{conversation_id}")
def read_conversation(
    conversation_id: str,
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
):
    """Return one conversation and mark it read."""
    conversation = inbox_service.get_conversation(repo, tenant.shop, conversation_id)
    return {"success": True, "conversation": conversation}


@router.put("/{conversation_id}/read")
def mark_read(
    conversation_id: str,
    tenant: Tenant = Depends(get_current_tenant),
    repo: Repository = Depends(get_repository),
):
    return inbox_service.mark_read(repo, tenant.shop, conversation_id)
