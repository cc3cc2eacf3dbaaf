"""Smartlead reply webhook.

WHAT:
    POST /webhooks/smartlead/reply
    1. optional shared secret (`?secret=`)
    2. store the conversation for the shop owning the recipient mailbox
    3. acknowledge, then forward the reply into Gmail outside the request

WHY:
    Smartlead only retries on transport failures, so the reply row must be
    durable before we answer; forwarding is best-effort.
"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from oce_app.deps import Settings, get_repository, get_settings, get_vendor_clients
from oce_app.errors import Unauthorized
from oce_app.repository import Repository
from oce_app.schemas import SmartleadReplyPayload
from oce_app.services.clients import VendorClients
from oce_app.services.reply_service import store_inbound_reply
from oce_app.workers.arq_enqueue import enqueue_or_run
from oce_app.workers.arq_worker import run_forward_reply

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/smartlead", tags=["Outreach Webhooks"])


@router.post("/reply")
async def handle_reply(
    payload: SmartleadReplyPayload,
    background_tasks: BackgroundTasks,
    secret: Optional[str] = Query(None),
    repo: Repository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
    clients: VendorClients = Depends(get_vendor_clients),
):
    expected = settings.SMARTLEAD_WEBHOOK_SECRET
    if expected and not (secret and hmac.compare_digest(secret, expected)):
        logger.warning("[REPLY_WEBHOOK] Rejected reply webhook with bad secret")
        raise Unauthorized("Unauthorized")

    conversation = store_inbound_reply(repo, payload.model_dump())
    if conversation is None:
        return {"success": True, "stored": False}

    conversation_id = str(conversation.id)
    await enqueue_or_run(
        settings,
        background_tasks,
        "forward_inbound_reply",
        (conversation_id,),
        run_forward_reply,
        clients,
        conversation_id,
    )
    return {"success": True, "stored": True, "conversation_id": conversation_id}
